"""
Cache-Related Exceptions
"""

from course_resilience.core.exceptions.base import ResilienceBaseError


class CacheError(ResilienceBaseError):
    """Base exception for cache-related errors."""
    pass


class RoleLookupError(CacheError):
    """
    Raised when the role endpoint cannot produce a role.

    Common causes:
    - No token available for the principal
    - Backend unreachable or timing out
    - Response body without a ``role`` field
    """
    pass
