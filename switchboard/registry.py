#!/usr/bin/env python3
"""
Switchboard Backend Registry

Owns one adapter per backend type, caches health probes for a fixed TTL,
and selects a live backend from a fallback chain.

The registry is constructed explicitly and handed to the orchestrator; there
is one health cache per registry instance.
"""
from __future__ import annotations

import asyncio
import dataclasses
import logging
import time
from typing import Any, Callable, Dict, List, Mapping, Optional

from switchboard.backends import BACKEND_CLASSES, BaseBackend
from switchboard.config import SwitchboardConfig
from switchboard.errors import AllBackendsFailedError, UnknownBackendError
from switchboard.models import UNAVAILABLE, BackendHealth, FallbackChain, Selection
from switchboard.utils import describe_error, gather_settled, utc_now_iso

logger = logging.getLogger("switchboard.registry")

HEALTH_CACHE_TTL_SECONDS = 5 * 60


@dataclasses.dataclass(frozen=True)
class _CachedHealth:
    result: BackendHealth
    expires_at: float


def default_backends(config: Optional[SwitchboardConfig] = None) -> Dict[str, BaseBackend]:
    """Instantiate the built-in claude/gemini/codex adapters."""
    config = config or SwitchboardConfig()
    return {
        name: cls(
            default_timeout=config.default_timeout,
            health_timeout=config.health_timeout,
            degraded_latency=config.degraded_latency,
            kill_grace=config.kill_grace,
        )
        for name, cls in BACKEND_CLASSES.items()
    }


class BackendRegistry:
    """Adapters, health cache, and fallback selection."""

    def __init__(
        self,
        backends: Optional[Mapping[str, BaseBackend]] = None,
        health_ttl: float = HEALTH_CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._backends: Dict[str, BaseBackend] = dict(
            backends if backends is not None else default_backends()
        )
        self._health_cache: Dict[str, _CachedHealth] = {}
        self._inflight: Dict[str, "asyncio.Future[BackendHealth]"] = {}
        self.health_ttl = health_ttl
        self._clock = clock

    @classmethod
    def from_config(cls, config: SwitchboardConfig) -> "BackendRegistry":
        return cls(default_backends(config), health_ttl=config.health_ttl)

    def get(self, backend_type: str) -> BaseBackend:
        """Adapter for a backend type."""
        backend = self._backends.get(backend_type)
        if backend is None:
            raise UnknownBackendError(backend_type, self._backends)
        return backend

    def types(self) -> List[str]:
        """Registered backend types, in registration order."""
        return list(self._backends)

    def cached_health(self, backend_type: str) -> Optional[BackendHealth]:
        """Cached health if still within TTL, else None. Never probes."""
        cached = self._health_cache.get(backend_type)
        if cached and self._clock() < cached.expires_at:
            return cached.result
        return None

    async def check_health(self, backend_type: str) -> BackendHealth:
        """Health of one backend, probing only when the cache entry is missing or stale."""
        cached = self.cached_health(backend_type)
        if cached is not None:
            logger.debug(f"Health cache hit for {backend_type}: {cached.status}")
            return cached

        backend = self.get(backend_type)

        # Concurrent misses share one probe
        pending = self._inflight.get(backend_type)
        if pending is not None:
            return await asyncio.shield(pending)

        probe = asyncio.ensure_future(self._probe(backend_type, backend))
        self._inflight[backend_type] = probe
        return await asyncio.shield(probe)

    async def _probe(self, backend_type: str, backend: BaseBackend) -> BackendHealth:
        try:
            result = await backend.health_check()
        except Exception as e:
            # Adapters should not raise from health_check; guard anyway
            result = BackendHealth(
                backend=backend_type,
                status=UNAVAILABLE,
                error=describe_error(e),
                checked_at=utc_now_iso(),
            )
        finally:
            self._inflight.pop(backend_type, None)

        self._health_cache[backend_type] = _CachedHealth(
            result=result, expires_at=self._clock() + self.health_ttl
        )
        logger.debug(f"Health probe {backend_type}: {result.status} ({result.latency_ms}ms)")
        return result

    async def check_all_health(self) -> List[BackendHealth]:
        """Probe every registered backend concurrently."""
        types = self.types()
        outcomes = await gather_settled(*(self.check_health(t) for t in types))
        results: List[BackendHealth] = []
        for backend_type, outcome in zip(types, outcomes):
            if outcome.ok:
                results.append(outcome.value)
            else:
                results.append(BackendHealth(
                    backend=backend_type,
                    status=UNAVAILABLE,
                    error=describe_error(outcome.error),
                    checked_at=utc_now_iso(),
                ))
        return results

    async def health_summary(self) -> Dict[str, Any]:
        """Per-backend health plus available/total counts."""
        results = await self.check_all_health()
        return {
            "backends": [r.to_dict() for r in results],
            "available_count": sum(1 for r in results if r.is_available),
            "total_count": len(results),
        }

    async def select_backend(self, chain: FallbackChain, strict: bool = False) -> Selection:
        """Pick the first available backend from a chain.

        When every member is unhealthy the primary is returned anyway, since a
        cached verdict does not prove this call will fail. strict=True raises
        AllBackendsFailedError instead.
        """
        primary_health = await self.check_health(chain.primary)
        if primary_health.is_available:
            return Selection(backend=self.get(chain.primary), type=chain.primary)

        health_errors: Dict[str, str] = {
            chain.primary: primary_health.error or primary_health.status
        }
        for fallback_type in chain.fallbacks:
            health = await self.check_health(fallback_type)
            if health.is_available:
                logger.info(f"{chain.primary} unavailable, falling back to {fallback_type}")
                return Selection(
                    backend=self.get(fallback_type),
                    type=fallback_type,
                    was_fallback=True,
                    original_type=chain.primary,
                )
            health_errors[fallback_type] = health.error or health.status

        if strict:
            raise AllBackendsFailedError(chain.members(), health_errors)

        logger.warning(f"All backends in chain unavailable, forcing {chain.primary}")
        return Selection(backend=self.get(chain.primary), type=chain.primary)

    def verifiers(self, exclude: str, count: int) -> List[BaseBackend]:
        """Up to count adapters other than exclude, in registration order."""
        others = [t for t in self.types() if t != exclude]
        return [self._backends[t] for t in others[:max(count, 0)]]

    def invalidate_health(self, backend_type: str) -> None:
        """Drop one cached health entry."""
        self._health_cache.pop(backend_type, None)

    def invalidate_all_health(self) -> None:
        """Drop every cached health entry."""
        self._health_cache.clear()
