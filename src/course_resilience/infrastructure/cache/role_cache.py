"""
TTL Role Cache

In-process memo of each principal's role with two windows:

    written_at ──── fresh ────> fresh_until ──── stale ────> stale_until ── expired
                  (served,                 (served only when a
                  no network)               refresh has failed)

STAGE-2.0: Role cache lookup

This is a per-process cache, not shared across workers. Entries are
overwritten on every successful lookup and never explicitly deleted; an
expired entry is simply never returned.

All operations are synchronous: with a single-threaded event loop no
read/modify/write here can interleave, so no lock is needed.
"""

import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar

from course_resilience.core.config.settings import get_settings
from course_resilience.core.exceptions import ConfigurationError
from course_resilience.core.logging.logger import get_logger

logger = get_logger(__name__)

V = TypeVar("V")


class Freshness(str, Enum):
    """Where an entry sits relative to its windows."""

    FRESH = "fresh"
    STALE = "stale"
    EXPIRED = "expired"


@dataclass(frozen=True)
class CacheEntry(Generic[V]):
    """A cached value plus the two deadlines derived from its write time."""

    value: V
    written_at: float
    fresh_until: float
    stale_until: float

    def freshness(self, now: float) -> Freshness:
        if now < self.fresh_until:
            return Freshness.FRESH
        if now < self.stale_until:
            return Freshness.STALE
        return Freshness.EXPIRED


class RoleCache:
    """
    Principal id -> role, with fresh and stale windows.

    Usage:
        cache = RoleCache(fresh_ttl=900, stale_ttl=3600)
        cache.set_role("user_123", "INSTRUCTOR")
        cache.get_fresh_role("user_123")   # "INSTRUCTOR" for 15 minutes
        cache.get_role("user_123")         # "INSTRUCTOR" for 60 minutes
    """

    def __init__(
        self,
        fresh_ttl: float | None = None,
        stale_ttl: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            fresh_ttl: Seconds an entry is served without a refresh
            stale_ttl: Seconds an entry remains usable as a fallback
            clock: Monotonic time source, injectable for tests

        Raises:
            ConfigurationError: stale_ttl shorter than fresh_ttl
        """
        if fresh_ttl is None or stale_ttl is None:
            settings = get_settings()
            fresh_ttl = settings.ROLE_CACHE_FRESH_TTL if fresh_ttl is None else fresh_ttl
            stale_ttl = settings.ROLE_CACHE_STALE_TTL if stale_ttl is None else stale_ttl
        if fresh_ttl < 0 or stale_ttl < fresh_ttl:
            raise ConfigurationError(
                "Role cache windows must satisfy 0 <= fresh_ttl <= stale_ttl",
                details={"fresh_ttl": fresh_ttl, "stale_ttl": stale_ttl},
            )

        self.fresh_ttl = fresh_ttl
        self.stale_ttl = stale_ttl
        self._clock = clock
        self._entries: dict[str, CacheEntry[str]] = {}

    def get_entry(self, principal_id: str) -> CacheEntry[str] | None:
        """Return the entry unless it is missing or expired."""
        entry = self._entries.get(principal_id)
        if entry is None or entry.freshness(self._clock()) is Freshness.EXPIRED:
            return None
        return entry

    def get_role(self, principal_id: str) -> str | None:
        """Return the cached role while fresh or stale-but-usable, never when expired."""
        entry = self.get_entry(principal_id)
        return entry.value if entry is not None else None

    def get_fresh_role(self, principal_id: str) -> str | None:
        """Return the cached role only inside the fresh window."""
        entry = self._entries.get(principal_id)
        if entry is None or entry.freshness(self._clock()) is not Freshness.FRESH:
            return None
        return entry.value

    def freshness(self, principal_id: str) -> Freshness | None:
        entry = self._entries.get(principal_id)
        return entry.freshness(self._clock()) if entry is not None else None

    def set_role(self, principal_id: str, role: str) -> CacheEntry[str]:
        now = self._clock()
        entry = CacheEntry(
            value=role,
            written_at=now,
            fresh_until=now + self.fresh_ttl,
            stale_until=now + self.stale_ttl,
        )
        self._entries[principal_id] = entry
        logger.debug("Role cached", principal_id=principal_id, role=role)
        return entry

    def reset(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


# Global instance
_role_cache: RoleCache | None = None


def get_role_cache() -> RoleCache:
    """Get the process-wide role cache, creating it from settings on first use."""
    global _role_cache
    if _role_cache is None:
        _role_cache = RoleCache()
    return _role_cache


def reset_role_cache() -> None:
    """Drop the process-wide role cache (tests, reconfiguration)."""
    global _role_cache
    _role_cache = None
