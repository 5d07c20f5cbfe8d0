#!/usr/bin/env python3
"""
Switchboard Data Models

Data classes for backend requests and responses, health, fallback chains,
skills, verification verdicts, consensus results, and batch tasks.
"""
from __future__ import annotations

import dataclasses
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple

if TYPE_CHECKING:
    from switchboard.backends import BaseBackend

# Backend health states
AVAILABLE = "available"
UNAVAILABLE = "unavailable"
DEGRADED = "degraded"

# Consensus states
UNANIMOUS = "unanimous"
MAJORITY = "majority"
NO_CONSENSUS = "no_consensus"

DEFAULT_TIMEOUT_SECONDS = 120.0
DEFAULT_TASK_TIMEOUT_SECONDS = 120.0


@dataclasses.dataclass(frozen=True)
class GenerationRequest:
    """One call to a backend. Prompt is already rendered."""
    system_prompt: str
    prompt: str
    output_schema: Optional[Dict[str, Any]] = None
    max_tokens: Optional[int] = None
    temperature: Optional[float] = None
    timeout: Optional[float] = None  # seconds, None = backend default


@dataclasses.dataclass(frozen=True)
class GenerationResponse:
    """Normalized result of one backend invocation."""
    text: str
    backend: str
    parsed: Optional[Any] = None
    duration_ms: int = 0
    cost_usd: Optional[float] = None
    was_fallback: bool = False
    original_backend: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "text": self.text,
            "backend": self.backend,
            "parsed": self.parsed,
            "duration_ms": self.duration_ms,
            "was_fallback": self.was_fallback,
        }
        if self.cost_usd is not None:
            d["cost_usd"] = self.cost_usd
        if self.original_backend:
            d["original_backend"] = self.original_backend
        return d


@dataclasses.dataclass(frozen=True)
class BackendHealth:
    """Result of one health probe."""
    backend: str
    status: str  # available, unavailable, degraded
    latency_ms: Optional[int] = None
    error: Optional[str] = None
    checked_at: str = ""

    @property
    def is_available(self) -> bool:
        return self.status == AVAILABLE

    def to_dict(self) -> Dict[str, Any]:
        return dataclasses.asdict(self)


@dataclasses.dataclass(frozen=True)
class FallbackChain:
    """Ordered backend preference: primary, then fallbacks."""
    primary: str
    fallbacks: Tuple[str, ...] = ()

    def members(self) -> List[str]:
        return [self.primary, *self.fallbacks]

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "FallbackChain":
        return cls(primary=d["primary"], fallbacks=tuple(d.get("fallbacks", [])))


@dataclasses.dataclass(frozen=True)
class Skill:
    """Named prompt template plus generation defaults."""
    id: str
    system_prompt: str
    prompt_template: str
    preferred_backend: str
    output_schema: Optional[Dict[str, Any]] = None
    max_tokens: int = 2000
    temperature: float = 0.3
    name: str = ""
    description: str = ""
    domain: Optional[str] = None

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Skill":
        return cls(
            id=d["id"],
            system_prompt=d.get("system_prompt", ""),
            prompt_template=d["prompt_template"],
            preferred_backend=d["preferred_backend"],
            output_schema=d.get("output_schema"),
            max_tokens=d.get("max_tokens", 2000),
            temperature=d.get("temperature", 0.3),
            name=d.get("name", d["id"]),
            description=d.get("description", ""),
            domain=d.get("domain"),
        )


@dataclasses.dataclass(frozen=True)
class VerificationVerdict:
    """One verifier backend's judgment of a primary response."""
    backend: str
    agrees: bool
    confidence: float
    concerns: List[str] = dataclasses.field(default_factory=list)
    alternative: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return dataclasses.asdict(self)


@dataclasses.dataclass
class ConsensusResult:
    """Reduction of verifier verdicts against one primary response."""
    status: str  # unanimous, majority, no_consensus
    primary: GenerationResponse
    verifications: List[VerificationVerdict] = dataclasses.field(default_factory=list)
    minority_concerns: Optional[List[str]] = None

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "status": self.status,
            "primary": self.primary.to_dict(),
            "verifications": [v.to_dict() for v in self.verifications],
        }
        if self.minority_concerns is not None:
            d["minority_concerns"] = self.minority_concerns
        return d


@dataclasses.dataclass
class ExecuteOptions:
    """Per-call overrides for Orchestrator.execute."""
    backend_override: Optional[str] = None
    timeout: Optional[float] = None
    verify: Optional[bool] = None  # None = use configured default
    verifier_count: Optional[int] = None
    strict: bool = False  # fail instead of forcing primary when all unhealthy


@dataclasses.dataclass
class Selection:
    """Backend chosen by the registry for one call."""
    backend: "BaseBackend"
    type: str
    was_fallback: bool = False
    original_type: Optional[str] = None


@dataclasses.dataclass
class SubagentTask:
    """Independent unit of work for the batch executor."""
    id: str
    skill: str
    input: Dict[str, Any] = dataclasses.field(default_factory=dict)
    backend: Optional[str] = None
    timeout: float = DEFAULT_TASK_TIMEOUT_SECONDS
    verify: bool = False

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "SubagentTask":
        return cls(
            id=str(d["id"]),
            skill=d["skill"],
            input=d.get("input", {}) or {},
            backend=d.get("backend"),
            timeout=float(d.get("timeout", DEFAULT_TASK_TIMEOUT_SECONDS)),
            verify=bool(d.get("verify", False)),
        )


@dataclasses.dataclass
class SubagentResult:
    """Outcome of one batch task."""
    task_id: str
    success: bool
    duration_ms: int
    response: Optional[GenerationResponse] = None
    consensus: Optional[ConsensusResult] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "task_id": self.task_id,
            "success": self.success,
            "duration_ms": self.duration_ms,
        }
        if self.response is not None:
            d["response"] = self.response.to_dict()
        if self.consensus is not None:
            d["consensus"] = self.consensus.to_dict()
        if self.error is not None:
            d["error"] = self.error
        return d


@dataclasses.dataclass
class BatchResult:
    """Aggregate of a batch run."""
    results: List[SubagentResult]
    success_count: int
    failure_count: int
    total_duration_ms: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "results": [r.to_dict() for r in self.results],
            "success_count": self.success_count,
            "failure_count": self.failure_count,
            "total_duration_ms": self.total_duration_ms,
        }
