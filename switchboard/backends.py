#!/usr/bin/env python3
"""
Switchboard Backend Adapters

One adapter per AI CLI (claude, gemini, codex). Each adapter owns a fixed
argument contract, its output decoder, and a cheap health probe.

Adapters hold no per-call state and are safe to share across concurrent calls.
"""
from __future__ import annotations

import json
import logging
import time
from typing import Dict, List

from switchboard.errors import BackendExecutionError, BackendTimeoutError
from switchboard.models import (
    AVAILABLE,
    DEFAULT_TIMEOUT_SECONDS,
    DEGRADED,
    UNAVAILABLE,
    BackendHealth,
    GenerationRequest,
    GenerationResponse,
)
from switchboard.parsers import (
    EventStreamDecoder,
    JsonEnvelopeDecoder,
    OutputDecoder,
    PlainTextDecoder,
)
from switchboard.process import DEFAULT_KILL_GRACE_SECONDS, child_env, run_process
from switchboard.utils import describe_error, elapsed_ms, utc_now_iso

logger = logging.getLogger("switchboard.backends")

HEALTH_PROMPT = "Respond with exactly: OK"
HEALTH_TIMEOUT_SECONDS = 10.0
DEGRADED_LATENCY_SECONDS = 8.0
STDERR_EXCERPT = 500


def with_system_block(request: GenerationRequest) -> str:
    """Prepend system instructions for CLIs without a system-prompt flag."""
    if request.system_prompt:
        return f"<system>\n{request.system_prompt}\n</system>\n\n{request.prompt}"
    return request.prompt


class BaseBackend:
    """CLI-based AI backend.

    Subclasses set name/command/decoder and implement build_args() and
    health_args().
    """

    name: str = ""
    command: str = ""
    decoder: OutputDecoder = PlainTextDecoder()

    def __init__(
        self,
        default_timeout: float = DEFAULT_TIMEOUT_SECONDS,
        health_timeout: float = HEALTH_TIMEOUT_SECONDS,
        degraded_latency: float = DEGRADED_LATENCY_SECONDS,
        kill_grace: float = DEFAULT_KILL_GRACE_SECONDS,
    ):
        self.default_timeout = default_timeout
        self.health_timeout = health_timeout
        self.degraded_latency = degraded_latency
        self.kill_grace = kill_grace

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"

    def build_args(self, request: GenerationRequest) -> List[str]:
        raise NotImplementedError

    def health_args(self) -> List[str]:
        raise NotImplementedError

    def env(self) -> Dict[str, str]:
        return child_env()

    async def _spawn(self, args: List[str], timeout: float) -> str:
        """Run the CLI and return stdout. Raises BackendError subclasses."""
        cmd = [self.command, *args]
        logger.debug(f"Spawning {self.name}: {self.command} ({len(args)} args, timeout {timeout:g}s)")
        try:
            result = await run_process(cmd, timeout, env=self.env(), kill_grace=self.kill_grace)
        except OSError as e:
            raise BackendExecutionError(self.name, f"{self.name} CLI failed to start: {e}") from e

        if result.timed_out:
            raise BackendTimeoutError(self.name, timeout)
        if result.output_overflow:
            raise BackendExecutionError(self.name, f"{self.name} CLI failed: {result.stderr}")
        if result.returncode != 0:
            detail = result.stderr.strip()[:STDERR_EXCERPT] or f"exit code {result.returncode}"
            raise BackendExecutionError(
                self.name, f"{self.name} CLI failed: {detail}", returncode=result.returncode
            )
        if not result.stdout.strip():
            raise BackendExecutionError(self.name, f"{self.name} CLI produced no output", returncode=0)
        return result.stdout

    async def execute(self, request: GenerationRequest) -> GenerationResponse:
        """Run one request and return the normalized response."""
        timeout = request.timeout or self.default_timeout
        args = self.build_args(request)
        start = time.monotonic()
        stdout = await self._spawn(args, timeout)
        decoded = self.decoder.decode(stdout)
        return GenerationResponse(
            text=decoded.text,
            backend=self.name,
            parsed=decoded.parsed,
            duration_ms=elapsed_ms(start),
            cost_usd=decoded.cost_usd,
        )

    async def health_check(self) -> BackendHealth:
        """Probe the CLI with a minimal prompt. Never raises."""
        start = time.monotonic()
        try:
            await self._spawn(self.health_args(), self.health_timeout)
        except Exception as e:
            return BackendHealth(
                backend=self.name,
                status=UNAVAILABLE,
                latency_ms=elapsed_ms(start),
                error=describe_error(e),
                checked_at=utc_now_iso(),
            )

        latency = elapsed_ms(start)
        status = DEGRADED if latency > self.degraded_latency * 1000 else AVAILABLE
        return BackendHealth(
            backend=self.name,
            status=status,
            latency_ms=latency,
            checked_at=utc_now_iso(),
        )


class ClaudeBackend(BaseBackend):
    """Claude Code CLI.

    claude -p PROMPT --output-format json --model opus --no-session-persistence
           --dangerously-skip-permissions [--system-prompt S] [--json-schema J]
           [--max-tokens N]

    Output: {"result": "...", "cost_usd": ..., "session_id": "..."}
    """

    name = "claude"
    command = "claude"
    decoder = JsonEnvelopeDecoder(
        text_fields=("result", "content"),
        cost_fields=("cost_usd", "total_cost_usd"),
    )

    def build_args(self, request: GenerationRequest) -> List[str]:
        args = [
            "-p", request.prompt,
            "--output-format", "json",
            "--model", "opus",
            "--no-session-persistence",
            "--dangerously-skip-permissions",
        ]
        # Claude takes system instructions natively
        if request.system_prompt:
            args += ["--system-prompt", request.system_prompt]
        if request.output_schema:
            args += ["--json-schema", json.dumps(request.output_schema)]
        if request.max_tokens:
            args += ["--max-tokens", str(request.max_tokens)]
        return args

    def health_args(self) -> List[str]:
        return [
            "-p", HEALTH_PROMPT,
            "--output-format", "json",
            "--model", "haiku",
            "--no-session-persistence",
            "--dangerously-skip-permissions",
            "--max-tokens", "10",
        ]


class GeminiBackend(BaseBackend):
    """Gemini CLI.

    gemini -p PROMPT -o json -m gemini-3.1-pro-preview -y

    No system-prompt flag. Output: {"response": "...", "model": "..."}
    """

    name = "gemini"
    command = "gemini"
    model = "gemini-3.1-pro-preview"
    decoder = JsonEnvelopeDecoder(text_fields=("response", "content", "result"))

    def build_args(self, request: GenerationRequest) -> List[str]:
        return ["-p", with_system_block(request), "-o", "json", "-m", self.model, "-y"]

    def health_args(self) -> List[str]:
        return ["-p", HEALTH_PROMPT, "-o", "json", "-m", self.model, "-y"]


class CodexBackend(BaseBackend):
    """Codex CLI.

    codex exec PROMPT --json --ephemeral -m gpt-5.3-codex -a never
          [--output-schema J]

    No system-prompt flag. Output is JSONL events (item.completed, turn.completed).
    """

    name = "codex"
    command = "codex"
    model = "gpt-5.3-codex"
    decoder = EventStreamDecoder()

    def _base_args(self, prompt: str) -> List[str]:
        return ["exec", prompt, "--json", "--ephemeral", "-m", self.model, "-a", "never"]

    def build_args(self, request: GenerationRequest) -> List[str]:
        args = self._base_args(with_system_block(request))
        if request.output_schema:
            args += ["--output-schema", json.dumps(request.output_schema)]
        return args

    def health_args(self) -> List[str]:
        return self._base_args(HEALTH_PROMPT)


BACKEND_CLASSES = {
    ClaudeBackend.name: ClaudeBackend,
    GeminiBackend.name: GeminiBackend,
    CodexBackend.name: CodexBackend,
}
ALL_BACKENDS = list(BACKEND_CLASSES)
