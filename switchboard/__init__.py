"""Multi-backend AI orchestration over command-line model CLIs."""
from __future__ import annotations

from switchboard.backends import BaseBackend, ClaudeBackend, CodexBackend, GeminiBackend
from switchboard.config import SwitchboardConfig, load_config
from switchboard.errors import (
    AllBackendsFailedError,
    BackendError,
    BackendExecutionError,
    BackendTimeoutError,
    ConfigError,
    SubagentTimeoutError,
    SwitchboardError,
    UnknownBackendError,
    UnknownSkillError,
)
from switchboard.executor import SubagentExecutor
from switchboard.models import (
    BackendHealth,
    BatchResult,
    ConsensusResult,
    ExecuteOptions,
    FallbackChain,
    GenerationRequest,
    GenerationResponse,
    Skill,
    SubagentResult,
    SubagentTask,
    VerificationVerdict,
)
from switchboard.orchestrator import Orchestrator
from switchboard.registry import BackendRegistry
from switchboard.skills import SkillRegistry, render_prompt

__version__ = "0.1.0"

__all__ = [
    "AllBackendsFailedError",
    "BackendError",
    "BackendExecutionError",
    "BackendHealth",
    "BackendRegistry",
    "BackendTimeoutError",
    "BaseBackend",
    "BatchResult",
    "ClaudeBackend",
    "CodexBackend",
    "ConfigError",
    "ConsensusResult",
    "ExecuteOptions",
    "FallbackChain",
    "GeminiBackend",
    "GenerationRequest",
    "GenerationResponse",
    "Orchestrator",
    "Skill",
    "SkillRegistry",
    "SubagentExecutor",
    "SubagentResult",
    "SubagentTask",
    "SubagentTimeoutError",
    "SwitchboardConfig",
    "SwitchboardError",
    "UnknownBackendError",
    "UnknownSkillError",
    "VerificationVerdict",
    "load_config",
    "render_prompt",
]
