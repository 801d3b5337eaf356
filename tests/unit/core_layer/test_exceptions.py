"""
Unit Tests for the Exception Hierarchy
"""

import httpx
import pytest

from course_resilience.core.exceptions import (
    AnalyticsDispatchError,
    AnalyticsError,
    BatcherClosedError,
    CacheError,
    ConfigurationError,
    HttpClientError,
    NetworkError,
    RequestCancelledError,
    RequestTimeoutError,
    ResilienceBaseError,
    RoleLookupError,
)


@pytest.mark.unit
class TestHierarchy:
    """Test inheritance."""

    @pytest.mark.parametrize(
        "exc_class,parent",
        [
            (RequestTimeoutError, HttpClientError),
            (RequestCancelledError, HttpClientError),
            (NetworkError, HttpClientError),
            (RoleLookupError, CacheError),
            (AnalyticsDispatchError, AnalyticsError),
            (BatcherClosedError, AnalyticsError),
            (ConfigurationError, ResilienceBaseError),
            (HttpClientError, ResilienceBaseError),
        ],
    )
    def test_inherits(self, exc_class, parent):
        assert issubclass(exc_class, parent)


@pytest.mark.unit
class TestBaseError:
    """Test ResilienceBaseError helpers."""

    def test_to_dict(self):
        error = RequestTimeoutError("Request timeout", request_id="req-1", details={"timeout": 3.0})

        assert error.to_dict() == {
            "error_type": "RequestTimeoutError",
            "message": "Request timeout",
            "request_id": "req-1",
            "details": {"timeout": 3.0},
        }

    def test_details_are_copied(self):
        details = {"url": "http://api.test"}
        error = NetworkError("down", details=details)
        error.with_context(attempt=2)

        assert details == {"url": "http://api.test"}
        assert error.details == {"url": "http://api.test", "attempt": 2}

    def test_with_suggestion_chains(self):
        error = ConfigurationError("bad windows").with_suggestion("raise ROLE_CACHE_STALE_TTL")

        assert isinstance(error, ConfigurationError)
        assert error.details["suggestion"] == "raise ROLE_CACHE_STALE_TTL"

    def test_from_exception(self):
        original = httpx.ConnectError("connection refused")
        error = NetworkError.from_exception(original, url="http://direct.test/health")

        assert isinstance(error, NetworkError)
        assert error.message == "connection refused"
        assert error.details["original_error"] == "ConnectError"
        assert error.details["url"] == "http://direct.test/health"

    def test_repr_includes_request_id(self):
        error = RoleLookupError("no token", request_id="abc")

        assert "request_id='abc'" in repr(error)
