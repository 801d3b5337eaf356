"""
HTTP Transport Exceptions

Raised by the timeout-bounded fetch primitive. The API client converts them
into ErrorInfo at its public boundary, so callers of ApiClient.request()
never see them.
"""

from course_resilience.core.exceptions.base import ResilienceBaseError


class HttpClientError(ResilienceBaseError):
    """Base exception for HTTP transport errors."""
    pass


class RequestTimeoutError(HttpClientError):
    """
    Raised when the request deadline elapses before a response arrives.

    Retryable: the deadline is generated internally.
    """
    pass


class RequestCancelledError(HttpClientError):
    """
    Raised when the caller cancels an in-flight request.

    Terminal: a cancelled request is never retried.
    """
    pass


class NetworkError(HttpClientError):
    """
    Raised on connection-level failures (DNS, refused, reset).

    Common causes:
    - Backend process down
    - Proxy not routing
    - TLS handshake failure
    """
    pass


class InvalidStateTransitionError(HttpClientError):
    """Raised when a request lifecycle is driven through an illegal transition."""
    pass
