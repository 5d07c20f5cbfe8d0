"""Shared test fixtures.

Fake backends stand in for the claude/gemini/codex CLIs so orchestration
tests never spawn real model processes.
"""

from __future__ import annotations

import asyncio
import sys
from typing import Any, Dict, List, Sequence, Union

import pytest

from switchboard.backends import BaseBackend
from switchboard.errors import BackendExecutionError
from switchboard.models import (
    AVAILABLE,
    BackendHealth,
    GenerationRequest,
    GenerationResponse,
)
from switchboard.parsers import JsonEnvelopeDecoder, extract_json
from switchboard.registry import BackendRegistry
from switchboard.skills import SkillRegistry
from switchboard.utils import utc_now_iso

Output = Union[str, BaseException]


class FakeBackend(BaseBackend):
    """Backend that replays canned outputs instead of spawning a CLI.

    Outputs are consumed in order; the last one repeats.
    """

    def __init__(
        self,
        name: str,
        outputs: Sequence[Output] = ("ok",),
        health: str = AVAILABLE,
        delay: float = 0.0,
        probe_delay: float = 0.0,
    ):
        super().__init__()
        self.name = name
        self.command = name
        self.outputs: List[Output] = list(outputs)
        self.health_status = health
        self.delay = delay
        self.probe_delay = probe_delay
        self.calls: List[GenerationRequest] = []
        self.health_calls = 0

    async def execute(self, request: GenerationRequest) -> GenerationResponse:
        self.calls.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)
        item = self.outputs.pop(0) if len(self.outputs) > 1 else self.outputs[0]
        if isinstance(item, BaseException):
            raise item
        return GenerationResponse(
            text=item,
            backend=self.name,
            parsed=extract_json(item),
            duration_ms=1,
        )

    async def health_check(self) -> BackendHealth:
        self.health_calls += 1
        if self.probe_delay:
            await asyncio.sleep(self.probe_delay)
        error = None if self.health_status == AVAILABLE else "probe failed"
        return BackendHealth(
            backend=self.name,
            status=self.health_status,
            latency_ms=1,
            error=error,
            checked_at=utc_now_iso(),
        )


class ScriptBackend(BaseBackend):
    """Backend whose CLI is a real shell or python snippet."""

    decoder = JsonEnvelopeDecoder(text_fields=("result",), cost_fields=("cost_usd",))

    def __init__(self, argv: List[str], name: str = "script", **kwargs: Any):
        super().__init__(**kwargs)
        self.name = name
        self.command = argv[0]
        self.argv = argv[1:]

    def build_args(self, request: GenerationRequest) -> List[str]:
        return list(self.argv)

    def health_args(self) -> List[str]:
        return list(self.argv)


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def failure(name: str, message: str = "boom") -> BackendExecutionError:
    return BackendExecutionError(name, f"{name} CLI failed: {message}", returncode=1)


@pytest.fixture
def make_backend():
    """Factory for FakeBackend instances."""
    return FakeBackend


@pytest.fixture
def script_backend():
    """Factory for ScriptBackend instances running a python snippet."""
    def factory(code: str, **kwargs: Any) -> ScriptBackend:
        return ScriptBackend([sys.executable, "-c", code], **kwargs)
    return factory


@pytest.fixture
def shell_backend():
    """Factory for ScriptBackend instances running an sh command."""
    def factory(command: str, **kwargs: Any) -> ScriptBackend:
        return ScriptBackend(["sh", "-c", command], **kwargs)
    return factory


@pytest.fixture
def fail():
    """Factory for transient backend failures."""
    return failure


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def backends() -> Dict[str, FakeBackend]:
    """Healthy claude/gemini/codex fakes in registration order."""
    return {
        "claude": FakeBackend("claude"),
        "gemini": FakeBackend("gemini"),
        "codex": FakeBackend("codex"),
    }


@pytest.fixture
def registry(backends, clock) -> BackendRegistry:
    return BackendRegistry(backends, clock=clock)


@pytest.fixture(scope="session")
def skills() -> SkillRegistry:
    return SkillRegistry.load()
