from course_resilience.infrastructure.cache.role_cache import (
    CacheEntry,
    Freshness,
    RoleCache,
    get_role_cache,
    reset_role_cache,
)

__all__ = ["CacheEntry", "Freshness", "RoleCache", "get_role_cache", "reset_role_cache"]
