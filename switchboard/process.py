"""
Switchboard Subprocess Runner

Spawns backend CLIs with a deadline. On timeout or cancellation the process
gets SIGTERM, then SIGKILL after a grace period, and is always reaped.
"""
from __future__ import annotations

import asyncio
import dataclasses
import logging
import os
from typing import Dict, List, Optional

logger = logging.getLogger("switchboard.process")

# Environment variables that must not leak into backend CLIs.
# CLAUDECODE makes the claude CLI refuse to start, believing it is nested.
SCRUBBED_ENV_VARS = ("CLAUDECODE",)

DEFAULT_KILL_GRACE_SECONDS = 5.0
MAX_OUTPUT_LINE_BYTES = 10 * 1024 * 1024  # 10MB, single-line JSON envelopes


@dataclasses.dataclass
class ProcessResult:
    """Captured output of a finished (or terminated) process."""
    returncode: int
    stdout: str
    stderr: str
    timed_out: bool = False
    output_overflow: bool = False  # a stdout/stderr line exceeded MAX_OUTPUT_LINE_BYTES
    pid: Optional[int] = None


def child_env(base: Optional[Dict[str, str]] = None) -> Dict[str, str]:
    """Copy of the environment with nesting-detection variables removed."""
    env = dict(os.environ if base is None else base)
    for name in SCRUBBED_ENV_VARS:
        env.pop(name, None)
    return env


async def _stop(proc: asyncio.subprocess.Process, grace: float) -> None:
    """Terminate politely, then kill if the process outlives the grace period."""
    if proc.returncode is not None:
        return
    try:
        proc.terminate()
    except ProcessLookupError:
        return
    try:
        await asyncio.wait_for(proc.wait(), timeout=grace)
    except asyncio.TimeoutError:
        logger.warning(f"Process {proc.pid} ignored SIGTERM, killing")
        try:
            proc.kill()
        except ProcessLookupError:
            pass
        await proc.wait()


async def run_process(
    cmd: List[str],
    timeout: Optional[float],
    env: Optional[Dict[str, str]] = None,
    kill_grace: float = DEFAULT_KILL_GRACE_SECONDS,
) -> ProcessResult:
    """Run subprocess with optional timeout.

    Args:
        cmd: Command and arguments
        timeout: Timeout in seconds (None = no timeout)
        env: Child environment (defaults to a scrubbed copy of os.environ)
        kill_grace: Seconds between SIGTERM and SIGKILL

    Returns:
        ProcessResult; timed_out is set when the deadline passed, output_overflow
        when a single output line exceeded MAX_OUTPUT_LINE_BYTES. In both cases
        the process has been stopped.

    Raises:
        OSError: the command could not be started.
        asyncio.CancelledError: the caller was cancelled (process is stopped first).
    """
    proc = await asyncio.create_subprocess_exec(
        *cmd,
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        env=env if env is not None else child_env(),
        limit=MAX_OUTPUT_LINE_BYTES,
    )

    stdout_lines: List[str] = []
    stderr_lines: List[str] = []

    async def read_stream(stream: asyncio.StreamReader, lines: List[str]) -> None:
        while True:
            line_bytes = await stream.readline()
            if not line_bytes:
                break
            lines.append(line_bytes.decode("utf-8", errors="replace").rstrip("\n\r"))

    async def run_to_exit() -> int:
        await asyncio.gather(
            read_stream(proc.stdout, stdout_lines),
            read_stream(proc.stderr, stderr_lines),
        )
        await proc.wait()
        return proc.returncode or 0

    try:
        if timeout:
            rc = await asyncio.wait_for(run_to_exit(), timeout=timeout)
        else:
            rc = await run_to_exit()
    except asyncio.TimeoutError:
        await _stop(proc, kill_grace)
        return ProcessResult(
            returncode=-1,
            stdout="\n".join(stdout_lines),
            stderr=f"Process timed out after {timeout:g}s",
            timed_out=True,
            pid=proc.pid,
        )
    except (ValueError, asyncio.LimitOverrunError):
        # readline() refuses lines longer than the stream limit
        logger.warning(f"Process {proc.pid} output line exceeded {MAX_OUTPUT_LINE_BYTES} bytes, stopping")
        await _stop(proc, kill_grace)
        return ProcessResult(
            returncode=-1,
            stdout="\n".join(stdout_lines),
            stderr=f"Output line exceeded {MAX_OUTPUT_LINE_BYTES // (1024 * 1024)}MB limit",
            output_overflow=True,
            pid=proc.pid,
        )
    except asyncio.CancelledError:
        # Caller gave up: the OS process must not outlive the request
        await asyncio.shield(_stop(proc, kill_grace))
        raise

    return ProcessResult(
        returncode=rc,
        stdout="\n".join(stdout_lines),
        stderr="\n".join(stderr_lines),
        pid=proc.pid,
    )
