"""
Request / Response Envelopes

RequestEnvelope is what callers hand to the API client; ResponseEnvelope is
the only thing that comes back. Transport and HTTP failures are values
(ErrorInfo), never exceptions.

Invariant enforced by validation:
    ResponseEnvelope.success is False  <=>  ResponseEnvelope.error is not None
"""

from dataclasses import dataclass, field
from typing import Any

import httpx
from pydantic import BaseModel, ConfigDict, Field, model_validator

from course_resilience.core.config.constants import (
    NO_RESPONSE_STATUS_CODE,
    TIMEOUT_STATUS_CODE,
    ErrorKind,
)
from course_resilience.core.resilience.retry_policy import classify_status_code

# ============================================================================
# Request
# ============================================================================


@dataclass(frozen=True)
class RequestEnvelope:
    """
    One logical request.

    Exactly one body form should be given: ``json_body`` (serialized as JSON),
    ``content`` (opaque bytes/str), ``form`` (urlencoded fields) or ``files``
    (multipart, optionally with ``form`` fields alongside).

    ``timeout`` and ``retries`` override the client defaults when set.
    """

    method: str
    path: str
    headers: httpx.Headers = field(default_factory=httpx.Headers)
    params: dict[str, Any] | None = None
    json_body: Any = None
    content: bytes | str | None = None
    form: dict[str, Any] | None = None
    files: dict[str, Any] | None = None
    timeout: float | None = None
    retries: int | None = None

    def __post_init__(self):
        object.__setattr__(self, "method", self.method.upper())
        object.__setattr__(self, "headers", httpx.Headers(self.headers))

    @property
    def is_multipart(self) -> bool:
        return self.files is not None


# ============================================================================
# Response
# ============================================================================


class ErrorInfo(BaseModel):
    """Classified failure carried by a ResponseEnvelope."""

    model_config = ConfigDict(frozen=True)

    kind: ErrorKind
    status_code: int = Field(ge=0)
    message: str
    retryable: bool = False
    cancelled: bool = False

    @classmethod
    def from_status(cls, status_code: int, message: str | None = None) -> "ErrorInfo":
        kind, retryable = classify_status_code(status_code)
        return cls(
            kind=kind,
            status_code=status_code,
            message=message or f"HTTP error! status: {status_code}",
            retryable=retryable,
        )

    @classmethod
    def timeout(cls, message: str = "Request timeout") -> "ErrorInfo":
        return cls(
            kind=ErrorKind.TIMEOUT,
            status_code=TIMEOUT_STATUS_CODE,
            message=message,
            retryable=True,
        )

    @classmethod
    def cancelled_by_caller(cls, message: str = "Request cancelled") -> "ErrorInfo":
        return cls(
            kind=ErrorKind.TIMEOUT,
            status_code=TIMEOUT_STATUS_CODE,
            message=message,
            retryable=False,
            cancelled=True,
        )

    @classmethod
    def network(cls, message: str = "Network error", retryable: bool = True) -> "ErrorInfo":
        return cls(
            kind=ErrorKind.NETWORK,
            status_code=NO_RESPONSE_STATUS_CODE,
            message=message,
            retryable=retryable,
        )


class ResponseEnvelope(BaseModel):
    """
    Uniform result of ApiClient.request().

    Attributes:
        success: True for 2xx responses (or a pass-through envelope saying so)
        data: Decoded payload (JSON, text or bytes)
        error: Present exactly when success is False
        message: Server-provided message, when any
        status_code: Last HTTP status, None when nothing came back
        attempts: Network attempts made, fallback included
    """

    success: bool
    data: Any = None
    error: ErrorInfo | None = None
    message: str | None = None
    status_code: int | None = None
    attempts: int = Field(default=0, ge=0)

    @model_validator(mode="after")
    def check_error_matches_success(self):
        if self.success and self.error is not None:
            raise ValueError("successful response must not carry an error")
        if not self.success and self.error is None:
            raise ValueError("failed response must carry an error")
        return self

    @property
    def retryable(self) -> bool:
        return self.error is not None and self.error.retryable

    @classmethod
    def ok(
        cls, data: Any = None, status_code: int | None = None, message: str | None = None
    ) -> "ResponseEnvelope":
        return cls(success=True, data=data, status_code=status_code, message=message)

    @classmethod
    def failure(
        cls, error: ErrorInfo, data: Any = None, status_code: int | None = None
    ) -> "ResponseEnvelope":
        return cls(
            success=False,
            data=data,
            error=error,
            message=error.message,
            status_code=status_code,
        )
