#!/usr/bin/env python3
"""
Backend Health-Check Cache

Answers "is the backend reachable?" without probing on every call.

STAGE-H: Health probe

Behaviour:
- A probe is ``GET /health`` with a strict timeout and no retries; only a
  successful 200 whose body decodes to a JSON object counts as healthy
- The last result is reused for ``ttl`` seconds (shorter than the role
  cache's fresh window)
- Concurrent callers share one in-flight probe (single-flight)
- ``force=True`` bypasses both the cached result and any in-flight probe
"""

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass, field

from course_resilience.core.config.constants import (
    CONTENT_TYPE_JSON,
    ENDPOINT_HEALTH,
    HEADER_ACCEPT,
    Stage,
)
from course_resilience.core.config.settings import get_settings
from course_resilience.core.logging.logger import get_logger
from course_resilience.infrastructure.http.api_client import ApiClient, get_api_client
from course_resilience.infrastructure.http.models import RequestEnvelope, ResponseEnvelope
from course_resilience.infrastructure.monitoring.metrics_collector import get_metrics_collector

logger = get_logger(__name__)


@dataclass(frozen=True)
class HealthStatus:
    """Result of one health probe."""

    is_healthy: bool
    response_time_ms: float
    error: str | None = None
    checked_at: float = field(default=0.0, compare=False)

    def to_dict(self) -> dict:
        return {
            "is_healthy": self.is_healthy,
            "response_time_ms": round(self.response_time_ms, 2),
            "error": self.error,
        }


def _unhealthy_reason(result: ResponseEnvelope) -> str | None:
    """None for a successful 200 carrying a JSON object, otherwise the failure reason."""
    if result.status_code is None:
        return result.error.message
    if result.status_code != 200:
        return f"HTTP {result.status_code}"
    if not result.success:
        return result.error.message
    if not isinstance(result.data, dict):
        return "Health response is not a JSON object"
    return None


class HealthCheckCache:
    """
    Cached, single-flight backend health probe.

    Usage:
        health = HealthCheckCache(api_client, ttl=15, timeout=3)
        status = await health.check_health()
        if not status.is_healthy:
            show_offline_banner(status.error)
    """

    def __init__(
        self,
        api_client: ApiClient | None = None,
        ttl: float | None = None,
        timeout: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        settings = get_settings()
        self._api_client = api_client
        self.ttl = settings.HEALTH_CHECK_TTL if ttl is None else ttl
        self.timeout = settings.HEALTH_CHECK_TIMEOUT if timeout is None else timeout
        self._clock = clock
        self._last_status: HealthStatus | None = None
        self._inflight: asyncio.Future | None = None
        self.probe_count = 0

    @property
    def api_client(self) -> ApiClient:
        if self._api_client is None:
            self._api_client = get_api_client()
        return self._api_client

    def _is_cache_valid(self) -> bool:
        return (
            self._last_status is not None
            and self._clock() - self._last_status.checked_at < self.ttl
        )

    async def check_health(self, force: bool = False) -> HealthStatus:
        """
        Return the backend health, probing only when needed.

        Args:
            force: Probe now regardless of cache and in-flight state

        Returns:
            HealthStatus of the latest (possibly cached) probe
        """
        if not force:
            if self._is_cache_valid():
                return self._last_status
            if self._inflight is not None:
                return await asyncio.shield(self._inflight)

        probe = asyncio.ensure_future(self._probe())
        self._inflight = probe
        # Shielded: one caller being cancelled must not cancel the shared probe
        return await asyncio.shield(probe)

    async def _probe(self) -> HealthStatus:
        checked_at = self._clock()
        started = time.perf_counter()
        self.probe_count += 1
        try:
            result = await self.api_client.request(
                RequestEnvelope(
                    method="GET",
                    path=ENDPOINT_HEALTH,
                    headers={HEADER_ACCEPT: CONTENT_TYPE_JSON},
                    timeout=self.timeout,
                    retries=0,
                ),
                allow_fallback=False,
            )
            elapsed_ms = (time.perf_counter() - started) * 1000

            reason = _unhealthy_reason(result)
            status = HealthStatus(reason is None, elapsed_ms, reason, checked_at)

            log = logger.debug if status.is_healthy else logger.warning
            log(
                "Health probe complete",
                stage=Stage.HEALTH_PROBE.value,
                is_healthy=status.is_healthy,
                response_time_ms=round(elapsed_ms, 2),
                error=status.error,
            )
            self._last_status = status
            get_metrics_collector().record_health_probe(status.is_healthy)
            return status
        finally:
            if self._inflight is asyncio.current_task():
                self._inflight = None

    def get_cached_status(self) -> HealthStatus | None:
        """Last known status without probing (None when never checked or cleared)."""
        return self._last_status

    def clear(self) -> None:
        self._last_status = None
        self._inflight = None

    reset = clear


# Global instance
_health_cache: HealthCheckCache | None = None


def get_health_cache() -> HealthCheckCache:
    """Get the process-wide health-check cache."""
    global _health_cache
    if _health_cache is None:
        _health_cache = HealthCheckCache()
    return _health_cache


def reset_health_cache() -> None:
    global _health_cache
    _health_cache = None
