"""
Switchboard Errors

Exception taxonomy for skill lookup, backend execution, and orchestration.

Programmer errors (unknown skill/backend, bad config) are not transient and
must not be retried. Backend errors are transient: the orchestrator answers
them by advancing the fallback chain.
"""
from __future__ import annotations

from typing import Dict, Iterable, List, Optional


class SwitchboardError(Exception):
    """Base exception for the orchestration core."""

    is_transient = False


class ConfigError(SwitchboardError):
    """Configuration file could not be loaded or is malformed."""


class UnknownSkillError(SwitchboardError):
    """Skill id is not registered."""

    def __init__(self, skill_id: str, available: Iterable[str]):
        self.skill_id = skill_id
        self.available: List[str] = sorted(available)
        super().__init__(
            f"Unknown skill: {skill_id}. Available: {', '.join(self.available)}"
        )


class UnknownBackendError(SwitchboardError):
    """Backend type is not registered."""

    def __init__(self, backend: str, registered: Iterable[str]):
        self.backend = backend
        self.registered: List[str] = list(registered)
        super().__init__(
            f"Unknown backend: {backend}. Registered: {', '.join(self.registered)}"
        )


class BackendError(SwitchboardError):
    """A backend invocation failed at runtime."""

    is_transient = True

    def __init__(self, backend: str, message: str):
        self.backend = backend
        super().__init__(message)


class BackendExecutionError(BackendError):
    """CLI exited non-zero, produced no output, or could not be started."""

    def __init__(self, backend: str, message: str, returncode: Optional[int] = None):
        self.returncode = returncode
        super().__init__(backend, message)


class BackendTimeoutError(BackendError):
    """CLI did not finish before its deadline and was terminated."""

    def __init__(self, backend: str, timeout: float):
        self.timeout = timeout
        super().__init__(backend, f"{backend} CLI timed out after {timeout:g}s")


class AllBackendsFailedError(SwitchboardError):
    """Every member of a fallback chain failed."""

    def __init__(self, chain: List[str], failures: Dict[str, str]):
        self.chain = list(chain)
        self.failures = dict(failures)
        detail = "; ".join(f"{name}: {msg}" for name, msg in self.failures.items())
        message = f"All backends failed. Chain: {' -> '.join(self.chain)}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)


class SubagentTimeoutError(SwitchboardError):
    """A batch task exceeded its own timeout."""

    def __init__(self, task_id: str, timeout: float):
        self.task_id = task_id
        self.timeout = timeout
        super().__init__(f"Subagent {task_id} timed out after {timeout:g}s")
