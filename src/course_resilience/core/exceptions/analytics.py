"""
Analytics Exceptions
"""

from course_resilience.core.exceptions.base import ResilienceBaseError


class AnalyticsError(ResilienceBaseError):
    """Base exception for analytics batching errors."""
    pass


class AnalyticsDispatchError(AnalyticsError):
    """Raised by a dispatcher when the backend rejects an analytics payload."""
    pass


class BatcherClosedError(AnalyticsError):
    """Raised when an event is added after the batcher has been closed."""
    pass
