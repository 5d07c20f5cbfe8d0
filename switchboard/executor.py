"""
Switchboard Subagent Executor

Runs independent skill tasks concurrently. Each task has its own timeout,
and one task failing or timing out never affects the others.
"""
from __future__ import annotations

import asyncio
import logging
import time
from typing import List, Sequence

from switchboard.errors import SubagentTimeoutError
from switchboard.models import (
    BatchResult,
    ExecuteOptions,
    SubagentResult,
    SubagentTask,
)
from switchboard.orchestrator import Orchestrator
from switchboard.utils import describe_error, elapsed_ms, gather_settled

logger = logging.getLogger("switchboard.executor")


class SubagentExecutor:
    """Parallel batch runner on top of an Orchestrator.

    Usage:
        batch = await SubagentExecutor(orchestrator).run([
            SubagentTask(id="stocks", skill="analyze-technicals", input={...}, timeout=60),
            SubagentTask(id="crypto", skill="analyze-technicals", input={...}, timeout=60),
        ])
    """

    def __init__(self, orchestrator: Orchestrator):
        self.orchestrator = orchestrator

    async def run(self, tasks: Sequence[SubagentTask]) -> BatchResult:
        """Execute every task concurrently and wait for all of them to settle."""
        batch_start = time.monotonic()
        outcomes = await gather_settled(*(self.execute_one(task) for task in tasks))

        results: List[SubagentResult] = []
        for task, outcome in zip(tasks, outcomes):
            if outcome.ok:
                results.append(outcome.value)
            else:
                results.append(SubagentResult(
                    task_id=task.id,
                    success=False,
                    error=describe_error(outcome.error),
                    duration_ms=elapsed_ms(batch_start),
                ))

        success_count = sum(1 for r in results if r.success)
        batch = BatchResult(
            results=results,
            success_count=success_count,
            failure_count=len(results) - success_count,
            total_duration_ms=elapsed_ms(batch_start),
        )
        logger.info(
            f"Batch finished: {batch.success_count} ok, {batch.failure_count} failed "
            f"in {batch.total_duration_ms}ms"
        )
        return batch

    async def execute_one(self, task: SubagentTask) -> SubagentResult:
        """Execute one task under its own timeout. Errors become a failed result."""
        start = time.monotonic()
        options = ExecuteOptions(
            backend_override=task.backend,
            timeout=task.timeout,
            verify=True if task.verify else None,
        )

        try:
            if task.verify:
                consensus = await self._with_timeout(
                    task, self.orchestrator.execute_with_verification(task.skill, task.input, options)
                )
                return SubagentResult(
                    task_id=task.id,
                    success=True,
                    response=consensus.primary,
                    consensus=consensus,
                    duration_ms=elapsed_ms(start),
                )

            response = await self._with_timeout(
                task, self.orchestrator.execute(task.skill, task.input, options)
            )
            return SubagentResult(
                task_id=task.id,
                success=True,
                response=response,
                duration_ms=elapsed_ms(start),
            )
        except Exception as e:
            logger.warning(f"Subagent {task.id} failed: {describe_error(e)}")
            return SubagentResult(
                task_id=task.id,
                success=False,
                error=describe_error(e),
                duration_ms=elapsed_ms(start),
            )

    @staticmethod
    async def _with_timeout(task: SubagentTask, coro):
        # wait_for cancels the inner call, which stops any running subprocess
        try:
            return await asyncio.wait_for(coro, timeout=task.timeout)
        except asyncio.TimeoutError as e:
            raise SubagentTimeoutError(task.id, task.timeout) from e
