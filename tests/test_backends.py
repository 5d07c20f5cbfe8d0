"""
Tests for backend adapters
==========================

Argument contracts, and real subprocess behaviour (timeouts, kills,
cancellation) using sh/python stand-ins for the model CLIs.
"""

import asyncio
import os
import time

import pytest

from switchboard.backends import (
    HEALTH_PROMPT,
    ClaudeBackend,
    CodexBackend,
    GeminiBackend,
    with_system_block,
)
from switchboard.errors import BackendExecutionError, BackendTimeoutError
from switchboard.models import AVAILABLE, DEGRADED, UNAVAILABLE, GenerationRequest
from switchboard.process import child_env, run_process


def read_pid(path, wait=2.0):
    """Poll for a pid file written by a child process."""
    deadline = time.monotonic() + wait
    while time.monotonic() < deadline:
        if path.exists() and path.read_text().strip():
            return int(path.read_text().strip())
        time.sleep(0.01)
    raise AssertionError(f"pid file never written: {path}")


def assert_gone(pid):
    with pytest.raises(ProcessLookupError):
        os.kill(pid, 0)


class TestArgumentContracts:
    """Test CLI argument construction per backend."""

    def test_claude_uses_system_prompt_flag(self):
        request = GenerationRequest(
            system_prompt="Be terse.",
            prompt="Classify this",
            output_schema={"type": "object"},
            max_tokens=500,
        )
        args = ClaudeBackend().build_args(request)

        assert args[:2] == ["-p", "Classify this"]
        assert args[args.index("--output-format") + 1] == "json"
        assert args[args.index("--model") + 1] == "opus"
        assert "--no-session-persistence" in args
        assert "--dangerously-skip-permissions" in args
        assert args[args.index("--system-prompt") + 1] == "Be terse."
        assert args[args.index("--json-schema") + 1] == '{"type": "object"}'
        assert args[args.index("--max-tokens") + 1] == "500"

    def test_claude_omits_optional_flags(self):
        args = ClaudeBackend().build_args(GenerationRequest(system_prompt="", prompt="hi"))
        assert "--system-prompt" not in args
        assert "--json-schema" not in args
        assert "--max-tokens" not in args

    def test_claude_health_check_is_cheap(self):
        args = ClaudeBackend().health_args()
        assert args[:2] == ["-p", HEALTH_PROMPT]
        assert args[args.index("--model") + 1] == "haiku"
        assert args[args.index("--max-tokens") + 1] == "10"

    def test_gemini_prepends_system_block(self):
        request = GenerationRequest(system_prompt="Be terse.", prompt="Classify this")
        args = GeminiBackend().build_args(request)

        assert args[0] == "-p"
        assert args[1] == "<system>\nBe terse.\n</system>\n\nClassify this"
        assert args[2:] == ["-o", "json", "-m", "gemini-3.1-pro-preview", "-y"]

    def test_codex_exec_with_schema(self):
        request = GenerationRequest(
            system_prompt="Be terse.",
            prompt="Classify this",
            output_schema={"type": "array"},
        )
        args = CodexBackend().build_args(request)

        assert args[0] == "exec"
        assert args[1].startswith("<system>\nBe terse.\n</system>")
        assert args[2:8] == ["--json", "--ephemeral", "-m", "gpt-5.3-codex", "-a", "never"]
        assert args[args.index("--output-schema") + 1] == '{"type": "array"}'

    def test_system_block_skipped_without_system_prompt(self):
        request = GenerationRequest(system_prompt="", prompt="just this")
        assert with_system_block(request) == "just this"


class TestChildEnvironment:
    """Test environment scrubbing for spawned CLIs."""

    def test_claudecode_removed(self):
        env = child_env({"PATH": "/bin", "CLAUDECODE": "1"})
        assert env == {"PATH": "/bin"}

    @pytest.mark.asyncio
    async def test_claudecode_not_visible_to_child(self, monkeypatch, script_backend):
        monkeypatch.setenv("CLAUDECODE", "1")
        backend = script_backend(
            "import json, os; print(json.dumps({'result': os.environ.get('CLAUDECODE', 'unset')}))"
        )
        response = await backend.execute(GenerationRequest(system_prompt="", prompt="x", timeout=10))
        assert response.text == "unset"


class TestExecute:
    """Test executing real subprocesses."""

    @pytest.mark.asyncio
    async def test_decodes_stdout(self, script_backend):
        backend = script_backend(
            "import json; print(json.dumps({'result': '[1, 2]', 'cost_usd': 0.25}))"
        )
        response = await backend.execute(GenerationRequest(system_prompt="", prompt="x", timeout=10))

        assert response.text == "[1, 2]"
        assert response.parsed == [1, 2]
        assert response.cost_usd == 0.25
        assert response.backend == "script"
        assert response.duration_ms >= 0
        assert response.was_fallback is False

    @pytest.mark.asyncio
    async def test_nonzero_exit_includes_stderr(self, script_backend):
        backend = script_backend("import sys; sys.stderr.write('quota exceeded'); sys.exit(3)")

        with pytest.raises(BackendExecutionError, match="quota exceeded") as exc_info:
            await backend.execute(GenerationRequest(system_prompt="", prompt="x", timeout=10))
        assert exc_info.value.returncode == 3
        assert exc_info.value.backend == "script"
        assert exc_info.value.is_transient

    @pytest.mark.asyncio
    async def test_empty_output_is_an_error(self, script_backend):
        backend = script_backend("pass")
        with pytest.raises(BackendExecutionError, match="no output"):
            await backend.execute(GenerationRequest(system_prompt="", prompt="x", timeout=10))

    @pytest.mark.asyncio
    async def test_missing_binary(self):
        backend = ClaudeBackend()
        backend.command = "switchboard-no-such-cli"

        with pytest.raises(BackendExecutionError, match="failed to start"):
            await backend.execute(GenerationRequest(system_prompt="", prompt="x", timeout=5))


class TestTimeouts:
    """Test deadline enforcement and process cleanup."""

    @pytest.mark.asyncio
    async def test_timeout_kills_process(self, tmp_path, shell_backend):
        pidfile = tmp_path / "child.pid"
        backend = shell_backend(f"echo $$ > {pidfile}; exec sleep 5")

        start = time.monotonic()
        with pytest.raises(BackendTimeoutError) as exc_info:
            await backend.execute(GenerationRequest(system_prompt="", prompt="x", timeout=0.05))
        elapsed = time.monotonic() - start

        assert elapsed < 0.2
        assert exc_info.value.timeout == 0.05
        assert_gone(read_pid(pidfile))

    @pytest.mark.asyncio
    async def test_sigterm_ignored_then_killed(self, tmp_path, script_backend):
        pidfile = tmp_path / "stubborn.pid"
        backend = script_backend(
            "import os, signal, time\n"
            "signal.signal(signal.SIGTERM, signal.SIG_IGN)\n"
            f"open({str(pidfile)!r}, 'w').write(str(os.getpid()))\n"
            "time.sleep(30)\n",
            kill_grace=0.2,
        )

        start = time.monotonic()
        with pytest.raises(BackendTimeoutError):
            await backend.execute(GenerationRequest(system_prompt="", prompt="x", timeout=1.0))

        assert time.monotonic() - start < 5
        assert_gone(read_pid(pidfile))

    @pytest.mark.asyncio
    async def test_cancellation_kills_process(self, tmp_path, shell_backend):
        pidfile = tmp_path / "cancelled.pid"
        backend = shell_backend(f"echo $$ > {pidfile}; exec sleep 5")

        task = asyncio.create_task(
            backend.execute(GenerationRequest(system_prompt="", prompt="x", timeout=30))
        )
        for _ in range(200):
            if pidfile.exists() and pidfile.read_text().strip():
                break
            await asyncio.sleep(0.01)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert_gone(read_pid(pidfile))

    @pytest.mark.asyncio
    async def test_oversized_output_line_stops_process(self, tmp_path, script_backend):
        pidfile = tmp_path / "flood.pid"
        backend = script_backend(
            "import os, sys, time\n"
            f"with open({str(pidfile)!r}, 'w') as f: f.write(str(os.getpid()))\n"
            "sys.stdout.write('x' * (11 * 1024 * 1024))\n"
            "sys.stdout.flush()\n"
            "time.sleep(30)\n",
            kill_grace=0.5,
        )

        start = time.monotonic()
        with pytest.raises(BackendExecutionError, match="exceeded 10MB") as exc_info:
            await backend.execute(GenerationRequest(system_prompt="", prompt="x", timeout=20))

        assert time.monotonic() - start < 10
        assert exc_info.value.is_transient
        assert_gone(read_pid(pidfile))

    @pytest.mark.asyncio
    async def test_run_process_reports_timeout(self):
        result = await run_process(["sleep", "5"], timeout=0.05, kill_grace=1.0)

        assert result.timed_out
        assert result.returncode == -1
        assert "timed out" in result.stderr


class TestHealthCheck:
    """Test health probes against real subprocesses."""

    @pytest.mark.asyncio
    async def test_available(self, script_backend):
        backend = script_backend("import json; print(json.dumps({'result': 'OK'}))")
        health = await backend.health_check()

        assert health.status == AVAILABLE
        assert health.is_available
        assert health.error is None
        assert health.latency_ms is not None
        assert health.checked_at

    @pytest.mark.asyncio
    async def test_slow_health_check_is_degraded(self, script_backend):
        backend = script_backend(
            "import json, time; time.sleep(0.05); print(json.dumps({'result': 'OK'}))",
            degraded_latency=0.01,
        )
        health = await backend.health_check()

        assert health.status == DEGRADED
        assert not health.is_available

    @pytest.mark.asyncio
    async def test_failing_health_check_never_raises(self, script_backend):
        backend = script_backend("import sys; sys.stderr.write('not logged in'); sys.exit(1)")
        health = await backend.health_check()

        assert health.status == UNAVAILABLE
        assert "not logged in" in health.error

    @pytest.mark.asyncio
    async def test_health_check_timeout(self, shell_backend):
        backend = shell_backend("exec sleep 5", health_timeout=0.05)
        health = await backend.health_check()

        assert health.status == UNAVAILABLE
        assert "timed out" in health.error
