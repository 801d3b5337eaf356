"""
System Constants and Enumerations

This module defines constants and enumerations shared across the client
resilience layer.

Architectural Decision: Centralized constants for maintainability
- Single source of truth for magic numbers and endpoint paths
- Type-safe enums for state management
"""

from enum import Enum

# ============================================================================
# Stage Identifiers (for structured logging)
# ============================================================================


class Stage(str, Enum):
    """
    Processing stages used as the ``stage`` field of log entries.

    Format: {PREFIX}_{DESCRIPTIVE_NAME}
    """

    INITIALIZATION = "0.0_INITIALIZATION"
    HTTP_REQUEST = "1.0_HTTP_REQUEST"
    HTTP_ATTEMPT = "1.1_HTTP_ATTEMPT"
    HTTP_RETRY = "1.2_HTTP_RETRY"
    HTTP_FALLBACK = "1.3_HTTP_FALLBACK"
    HTTP_RESPONSE = "1.4_HTTP_RESPONSE"
    ROLE_CACHE_LOOKUP = "2.0_ROLE_CACHE_LOOKUP"
    ROLE_NETWORK_LOOKUP = "2.1_ROLE_NETWORK_LOOKUP"
    ROLE_STALE_FALLBACK = "2.2_ROLE_STALE_FALLBACK"
    ROUTE_DECISION = "3.0_ROUTE_DECISION"
    HEALTH_PROBE = "H.1_HEALTH_PROBE"
    ANALYTICS_ENQUEUE = "AN.1_ANALYTICS_ENQUEUE"
    ANALYTICS_FLUSH = "AN.2_ANALYTICS_FLUSH"
    ANALYTICS_DISPATCH = "AN.3_ANALYTICS_DISPATCH"
    SHUTDOWN = "6.0_SHUTDOWN"


# ============================================================================
# Error Kinds
# ============================================================================


class ErrorKind(str, Enum):
    """
    Failure taxonomy surfaced in ErrorInfo.

    TIMEOUT: deadline elapsed, HTTP 408, or caller cancellation
    NETWORK: connection-level failure, no response received
    CLIENT: 4xx other than 408/429, never retried
    SERVER: 5xx, retried
    RATE_LIMIT: 429, retried with backoff
    """

    TIMEOUT = "timeout"
    NETWORK = "network"
    CLIENT = "client"
    SERVER = "server"
    RATE_LIMIT = "rate_limit"


# ============================================================================
# Request State Machine
# ============================================================================


class RequestState(str, Enum):
    """
    States of one logical request.

    ATTEMPTING -> SUCCESS
    ATTEMPTING -> RETRYABLE_FAILURE -> ATTEMPTING
    ATTEMPTING -> TERMINAL_FAILURE -> FALLBACK -> (SUCCESS | TERMINAL_FAILURE)
    SUCCESS | TERMINAL_FAILURE -> DONE
    """

    ATTEMPTING = "attempting"
    SUCCESS = "success"
    RETRYABLE_FAILURE = "retryable_failure"
    TERMINAL_FAILURE = "terminal_failure"
    FALLBACK = "fallback"
    DONE = "done"


# ============================================================================
# Analytics
# ============================================================================


class AnalyticsEventType(str, Enum):
    """Analytics event types accepted by the batcher."""

    PROGRESS_UPDATE = "progress_update"
    COURSE_VIEW = "course_view"
    LECTURE_COMPLETE = "lecture_complete"
    ENGAGEMENT = "engagement"


# Exempt from sampling; losing one corrupts completion tracking
CRITICAL_EVENT_TYPES = frozenset(
    {AnalyticsEventType.LECTURE_COMPLETE, AnalyticsEventType.PROGRESS_UPDATE}
)

PROGRESS_LAST_UPDATED_FIELD = "lastUpdated"


# ============================================================================
# Roles
# ============================================================================


class Role(str, Enum):
    """Roles returned by the role endpoint."""

    STUDENT = "STUDENT"
    INSTRUCTOR = "INSTRUCTOR"
    ADMIN = "ADMIN"


# ============================================================================
# Defaults
# ============================================================================

# Retry settings
RETRY_BASE_DELAY = 1.0  # Base delay for exponential backoff (seconds)
RETRY_MAX_DELAY = 5.0  # Maximum delay for exponential backoff (seconds)

# Status codes outside 4xx "client" semantics
RETRYABLE_CLIENT_STATUS_CODES = frozenset({408, 429})
NO_RESPONSE_STATUS_CODE = 0  # Nothing came back from the transport
TIMEOUT_STATUS_CODE = 408

# ============================================================================
# HTTP Headers
# ============================================================================

HEADER_AUTHORIZATION = "Authorization"
HEADER_CONTENT_TYPE = "Content-Type"
HEADER_ACCEPT = "Accept"
HEADER_REQUEST_ID = "X-Request-ID"
CONTENT_TYPE_JSON = "application/json"

# ============================================================================
# API Endpoints
# ============================================================================

API_PREFIX = "/api"
LECTURE_PROGRESS_PREFIX = "/lecture-progress"

ENDPOINT_HEALTH = "/health"
ENDPOINT_ME = f"{API_PREFIX}/me"
ENDPOINT_ANALYTICS_BATCH = f"{API_PREFIX}/analytics/batch"


def progress_update_path(lecture_id: str) -> str:
    return f"{API_PREFIX}{LECTURE_PROGRESS_PREFIX}/lecture/{lecture_id}"


def lecture_complete_path(lecture_id: str, course_id: str) -> str:
    return f"{API_PREFIX}{LECTURE_PROGRESS_PREFIX}/lecture/{lecture_id}/course/{course_id}/complete"


# ============================================================================
# Route Classification
# ============================================================================

PUBLIC_ROUTE_PREFIXES = (
    "/api",
    "/_next",
    "/favicon.ico",
    "/sign-in",
    "/sign-up",
    "/sso-callback",
    "/forgot-password",
    "/verify-email",
    "/course-detail",
)
AUTH_ROUTE_PREFIXES = ("/sign-in", "/sign-up", "/sso-callback")
PROTECTED_ROUTE_PREFIXES = (
    "/profile",
    "/my-learning",
    "/course-progress",
    "/dashboard",
    "/creator",
)
INSTRUCTOR_ROUTE_PREFIXES = ("/dashboard", "/creator")

SERVER_WARNING_PARAM = "server_warning"
SERVER_WARNING_CONNECTIVITY = "connectivity_issue"
