#!/usr/bin/env python3
"""
Switchboard Utilities

Time helpers and the settled parallel join used for health probes,
verification fan-out, and batch tasks.
"""
from __future__ import annotations

import asyncio
import dataclasses
import datetime as dt
import time
from typing import Any, Awaitable, Generic, List, Optional, TypeVar

T = TypeVar("T")


def utc_now_iso() -> str:
    """Return current UTC time in ISO format."""
    return dt.datetime.now(dt.timezone.utc).isoformat()


def elapsed_ms(start: float) -> int:
    """Milliseconds since a time.monotonic() reading."""
    return int((time.monotonic() - start) * 1000)


@dataclasses.dataclass
class Outcome(Generic[T]):
    """Settled result of one branch: a value or the exception it raised."""
    value: Optional[T] = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


async def gather_settled(*aws: Awaitable[Any]) -> List[Outcome[Any]]:
    """Run awaitables concurrently and wait for all of them to settle.

    One branch failing never cancels the others. Results keep input order.
    Cancelling the caller cancels every branch.
    """
    results = await asyncio.gather(*aws, return_exceptions=True)
    outcomes: List[Outcome[Any]] = []
    for result in results:
        if isinstance(result, BaseException):
            outcomes.append(Outcome(error=result))
        else:
            outcomes.append(Outcome(value=result))
    return outcomes


def describe_error(error: BaseException) -> str:
    """Readable message for an exception, falling back to its type name."""
    return str(error) or type(error).__name__
