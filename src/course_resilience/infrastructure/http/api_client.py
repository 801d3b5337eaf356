"""
Dual-Endpoint API Client
========================

Asynchronous HTTP client for the course backend. Every call goes through the
same pipeline and comes back as a ResponseEnvelope; nothing transport- or
HTTP-related is raised across the public boundary.

PIPELINE
--------
```
request(envelope)
   │
   ├─ normalize headers (auth, request id, no Content-Type for form/multipart)
   ├─ RetryPolicy ── attempt ── fetch_with_timeout ── httpx.AsyncClient
   │        ↑            │
   │        └─ retryable ┘ (408 / 429 / 5xx / timeout / connection failure)
   │
   ├─ FALLBACK (non-production, final error NETWORK, other base differs):
   │     one attempt against the secondary base, shorter timeout, no retries;
   │     if it fails too, the primary error is returned
   └─ ResponseEnvelope
```

KEY DESIGN DECISIONS
--------------------
1. **Errors as values**: ErrorInfo carries kind/status/retryable so callers
   branch on data instead of exception types.
2. **Explicit lifecycle**: each logical request walks the RequestLifecycle
   state machine; attempt counts come from it.
3. **Reusable HTTP client**: one pooled httpx.AsyncClient per ApiClient,
   created lazily, closed by ``aclose()`` / the async context manager.
4. **Configuration validation**: ApiClientConfig is a frozen pydantic model.

USAGE
-----
```python
async with ApiClient() as client:
    response = await client.get("/api/courses")
    if response.success:
        courses = response.data
```
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from typing import Any

import httpx
import orjson
from pydantic import BaseModel, Field

from course_resilience.core.config.constants import (
    CONTENT_TYPE_JSON,
    ENDPOINT_HEALTH,
    HEADER_ACCEPT,
    HEADER_AUTHORIZATION,
    HEADER_CONTENT_TYPE,
    HEADER_REQUEST_ID,
    ErrorKind,
    RequestState,
    Stage,
)
from course_resilience.core.config.settings import Settings, get_settings
from course_resilience.core.exceptions import (
    NetworkError,
    RequestCancelledError,
    RequestTimeoutError,
)
from course_resilience.core.logging.logger import get_logger, get_request_id
from course_resilience.core.resilience.lifecycle import RequestLifecycle
from course_resilience.core.resilience.retry_policy import RetryPolicy
from course_resilience.core.resilience.timeout import CancellationToken, fetch_with_timeout
from course_resilience.infrastructure.http.models import (
    ErrorInfo,
    RequestEnvelope,
    ResponseEnvelope,
)
from course_resilience.infrastructure.monitoring.metrics_collector import get_metrics_collector

logger = get_logger(__name__)


# =============================================================================
# CONFIGURATION
# =============================================================================


class ApiClientConfig(BaseModel):
    """
    Validated, immutable client configuration.

    Attributes:
        direct_url: Base URL of the backend origin
        proxy_url: Base URL routed through the proxy
        use_direct: Start on the direct URL instead of the proxy
        timeout: Default per-attempt deadline (seconds)
        fast_timeout: Deadline for quick probes such as /health
        fallback_timeout: Deadline for the single fallback attempt
        max_retries: Retry budget (attempts = max_retries + 1)
        retry_base_delay: Backoff base (seconds)
        retry_max_delay: Backoff cap (seconds)
        fallback_enabled: False in production
        max_connections: Connection pool size
    """

    model_config = {"frozen": True}

    direct_url: str = Field(default="http://localhost:5000")
    proxy_url: str = Field(default="http://localhost:5000")
    use_direct: bool = False
    timeout: float = Field(default=8.0, gt=0)
    fast_timeout: float = Field(default=3.0, gt=0)
    fallback_timeout: float = Field(default=3.0, gt=0)
    max_retries: int = Field(default=2, ge=0, le=10)
    retry_base_delay: float = Field(default=1.0, ge=0)
    retry_max_delay: float = Field(default=5.0, ge=0)
    fallback_enabled: bool = True
    max_connections: int = Field(default=20, ge=1, le=200)

    @classmethod
    def from_settings(cls, settings: Settings | None = None, interactive: bool = False) -> ApiClientConfig:
        """
        Build the client configuration from application settings.

        Interactive contexts get the smaller retry budget because the data
        layer driving them already retries on its own.
        """
        settings = settings or get_settings()
        return cls(
            direct_url=settings.direct_base_url,
            proxy_url=settings.proxy_base_url,
            use_direct=settings.API_USE_DIRECT,
            timeout=settings.API_TIMEOUT,
            fast_timeout=settings.API_FAST_TIMEOUT,
            fallback_timeout=settings.API_FALLBACK_TIMEOUT,
            max_retries=(
                settings.API_INTERACTIVE_RETRY_ATTEMPTS if interactive else settings.API_RETRY_ATTEMPTS
            ),
            retry_base_delay=settings.API_RETRY_BASE_DELAY,
            retry_max_delay=settings.API_RETRY_MAX_DELAY,
            fallback_enabled=not settings.is_production,
        )


# =============================================================================
# PAYLOAD DECODING
# =============================================================================


def decode_body(response: httpx.Response) -> Any:
    """
    Decode a response body by Content-Type.

    JSON (``application/json`` or ``+json``) -> parsed value, falling back to
    text when the body is not valid JSON; ``text/*`` -> str; anything else ->
    bytes. Empty bodies decode to None.
    """
    if not response.content:
        return None

    content_type = response.headers.get(HEADER_CONTENT_TYPE, "").split(";")[0].strip().lower()
    if content_type == CONTENT_TYPE_JSON or content_type.endswith("+json"):
        try:
            return orjson.loads(response.content)
        except orjson.JSONDecodeError:
            logger.debug("Response declared JSON but did not parse", content_type=content_type)
            return response.text
    if content_type.startswith("text/"):
        return response.text
    return response.content


def _is_envelope_shaped(payload: Any) -> bool:
    return isinstance(payload, dict) and isinstance(payload.get("success"), bool)


def to_response_envelope(response: httpx.Response) -> ResponseEnvelope:
    """
    Convert an HTTP response into a ResponseEnvelope.

    Payloads already shaped like an envelope (``{"success": bool, ...}``) pass
    through; a pass-through ``success: false`` without an error gets one
    derived from its status code and message.
    """
    payload = decode_body(response)
    status = response.status_code

    if not response.is_success:
        message = None
        if isinstance(payload, dict):
            message = payload.get("message") or payload.get("error")
        return ResponseEnvelope.failure(
            ErrorInfo.from_status(status, message if isinstance(message, str) else None),
            data=payload,
            status_code=status,
        )

    if not _is_envelope_shaped(payload):
        return ResponseEnvelope.ok(payload, status_code=status)

    message = payload.get("message") if isinstance(payload.get("message"), str) else None
    if payload["success"]:
        return ResponseEnvelope.ok(payload.get("data"), status_code=status, message=message)

    error = payload.get("error")
    error_message = error if isinstance(error, str) else message
    return ResponseEnvelope.failure(
        ErrorInfo(
            kind=ErrorKind.CLIENT,
            status_code=status,
            message=error_message or "Request unsuccessful",
            retryable=False,
        ),
        data=payload.get("data"),
        status_code=status,
    )


# =============================================================================
# CLIENT
# =============================================================================


class ApiClient:
    """
    Timeout-, retry- and fallback-aware HTTP client.

    LIFECYCLE:
    ----------
    The underlying httpx.AsyncClient is created on first use and closed by
    ``aclose()``; the async context manager does both.

    Attributes:
        config: Validated configuration object
    """

    def __init__(
        self,
        config: ApiClientConfig | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        auth_token: str | None = None,
    ):
        """
        Args:
            config: Client configuration, built from settings when omitted
            transport: Custom httpx transport (tests use httpx.MockTransport)
            sleep: Backoff sleep, injectable so tests need not wait
            auth_token: Bearer token sent on every request
        """
        self.config = config or ApiClientConfig.from_settings()
        self._transport = transport
        self._sleep = sleep
        self._client: httpx.AsyncClient | None = None
        self._base_url = self.config.direct_url if self.config.use_direct else self.config.proxy_url
        self._default_headers = httpx.Headers({HEADER_CONTENT_TYPE: CONTENT_TYPE_JSON})
        if auth_token:
            self.set_auth_token(auth_token)

        logger.info(
            "API client initialized",
            stage=Stage.INITIALIZATION.value,
            base_url=self._base_url,
            timeout=self.config.timeout,
            max_retries=self.config.max_retries,
            fallback_enabled=self.config.fallback_enabled,
        )

    async def __aenter__(self) -> ApiClient:
        self._get_http_client()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    def _get_http_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                transport=self._transport,
                timeout=httpx.Timeout(self.config.timeout),
                limits=httpx.Limits(
                    max_connections=self.config.max_connections,
                    max_keepalive_connections=self.config.max_connections // 2,
                ),
                follow_redirects=True,
            )
            logger.debug("HTTP client created", max_connections=self.config.max_connections)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            logger.debug("HTTP client closed")
        self._client = None

    # ------------------------------------------------------------------
    # Endpoint & auth management
    # ------------------------------------------------------------------

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def fallback_url(self) -> str:
        """The base URL not currently in use."""
        if self._base_url == self.config.direct_url:
            return self.config.proxy_url
        return self.config.direct_url

    def use_direct_access(self) -> None:
        self._base_url = self.config.direct_url
        logger.info("Switched to direct API access", base_url=self._base_url)

    def use_proxy_access(self) -> None:
        self._base_url = self.config.proxy_url
        logger.info("Switched to proxied API access", base_url=self._base_url)

    def set_auth_token(self, token: str) -> None:
        self._default_headers[HEADER_AUTHORIZATION] = f"Bearer {token}"

    def clear_auth_token(self) -> None:
        self._default_headers.pop(HEADER_AUTHORIZATION, None)

    @property
    def is_authenticated(self) -> bool:
        return HEADER_AUTHORIZATION in self._default_headers

    # ------------------------------------------------------------------
    # Core request pipeline
    # ------------------------------------------------------------------

    async def request(
        self,
        envelope: RequestEnvelope,
        *,
        cancel_token: CancellationToken | None = None,
        allow_fallback: bool = True,
    ) -> ResponseEnvelope:
        """
        Execute one logical request.

        Args:
            envelope: What to send
            cancel_token: Caller cancellation; a cancelled request is never retried
            allow_fallback: Set False to pin the request to the current base URL

        Returns:
            ResponseEnvelope; never raises for transport or HTTP failures
        """
        description = f"{envelope.method} {envelope.path}"
        lifecycle = RequestLifecycle(description)
        timeout = envelope.timeout or self.config.timeout
        retries = envelope.retries if envelope.retries is not None else self.config.max_retries
        headers = self._build_headers(envelope)
        base_url = self._base_url
        started = time.perf_counter()

        policy = RetryPolicy(
            max_retries=retries,
            base_delay=self.config.retry_base_delay,
            max_delay=self.config.retry_max_delay,
            sleep=self._sleep,
        )

        async def attempt(attempt_number: int) -> ResponseEnvelope:
            logger.debug(
                "Sending request",
                stage=Stage.HTTP_ATTEMPT.value,
                request=description,
                base_url=base_url,
                attempt=attempt_number,
            )
            return await self._send_once(base_url, envelope, headers, timeout, cancel_token)

        def cancelled() -> ResponseEnvelope:
            return ResponseEnvelope.failure(
                ErrorInfo.cancelled_by_caller(cancel_token.reason or "Request cancelled")
            )

        result = await policy.execute(
            attempt,
            lifecycle,
            cancel_token=cancel_token,
            on_cancel=cancelled if cancel_token is not None else None,
        )

        if not result.success and self._should_fallback(result, base_url, allow_fallback):
            result = await self._fallback(
                result, envelope, headers, timeout, cancel_token, lifecycle
            )

        lifecycle.transition(RequestState.DONE)
        get_metrics_collector().record_http_request(
            envelope.method,
            "success" if result.success else result.error.kind.value,
            attempts=lifecycle.attempts,
            duration_seconds=time.perf_counter() - started,
        )

        if result.success:
            logger.debug(
                "Request succeeded",
                stage=Stage.HTTP_RESPONSE.value,
                request=description,
                status_code=result.status_code,
                attempts=lifecycle.attempts,
            )
        else:
            logger.warning(
                "Request failed",
                stage=Stage.HTTP_RESPONSE.value,
                request=description,
                error_kind=result.error.kind.value,
                status_code=result.error.status_code,
                error=result.error.message,
                attempts=lifecycle.attempts,
            )
        return result.model_copy(update={"attempts": lifecycle.attempts})

    def _should_fallback(
        self, result: ResponseEnvelope, base_url: str, allow_fallback: bool
    ) -> bool:
        if not (allow_fallback and self.config.fallback_enabled):
            return False
        if result.error is None or result.error.kind is not ErrorKind.NETWORK:
            return False
        if self.fallback_url == base_url:
            logger.info(
                "Fallback skipped, secondary base URL equals primary",
                stage=Stage.HTTP_FALLBACK.value,
                base_url=base_url,
            )
            return False
        return True

    async def _fallback(
        self,
        primary: ResponseEnvelope,
        envelope: RequestEnvelope,
        headers: httpx.Headers,
        timeout: float,
        cancel_token: CancellationToken | None,
        lifecycle: RequestLifecycle,
    ) -> ResponseEnvelope:
        fallback_url = self.fallback_url
        fallback_timeout = min(timeout, self.config.fallback_timeout)
        logger.info(
            "Primary endpoint unreachable, trying fallback",
            stage=Stage.HTTP_FALLBACK.value,
            request=lifecycle.description,
            fallback_url=fallback_url,
            timeout=fallback_timeout,
        )
        lifecycle.transition(RequestState.FALLBACK)
        result = await self._send_once(fallback_url, envelope, headers, fallback_timeout, cancel_token)
        get_metrics_collector().record_fallback(result.success)
        if result.success:
            lifecycle.transition(RequestState.SUCCESS)
            return result

        lifecycle.transition(RequestState.TERMINAL_FAILURE)
        if result.error.cancelled:
            return result
        logger.warning(
            "Fallback failed, keeping primary error",
            stage=Stage.HTTP_FALLBACK.value,
            request=lifecycle.description,
            fallback_url=fallback_url,
            fallback_error_kind=result.error.kind.value,
            fallback_error=result.error.message,
        )
        return primary

    def _build_headers(self, envelope: RequestEnvelope) -> httpx.Headers:
        headers = httpx.Headers(self._default_headers)
        headers.update(envelope.headers)
        if request_id := get_request_id():
            headers.setdefault(HEADER_REQUEST_ID, request_id)
        # Form and multipart bodies: the transport writes Content-Type (and the boundary)
        if envelope.is_multipart or envelope.form is not None:
            headers.pop(HEADER_CONTENT_TYPE, None)
        return headers

    @staticmethod
    def _body_kwargs(envelope: RequestEnvelope) -> dict[str, Any]:
        if envelope.files is not None:
            return {"files": envelope.files, "data": envelope.form}
        if envelope.form is not None:
            return {"data": envelope.form}
        if envelope.content is not None:
            return {"content": envelope.content}
        if envelope.json_body is not None:
            return {"content": orjson.dumps(envelope.json_body)}
        return {}

    async def _send_once(
        self,
        base_url: str,
        envelope: RequestEnvelope,
        headers: httpx.Headers,
        timeout: float,
        cancel_token: CancellationToken | None,
    ) -> ResponseEnvelope:
        url = f"{base_url}{envelope.path}"
        client = self._get_http_client()
        body = self._body_kwargs(envelope)

        def send() -> Awaitable[httpx.Response]:
            return client.request(
                envelope.method,
                url,
                headers=headers,
                params=envelope.params,
                timeout=timeout,
                **body,
            )

        try:
            response = await fetch_with_timeout(send, timeout, cancel_token, url=url)
        except RequestCancelledError as e:
            return ResponseEnvelope.failure(ErrorInfo.cancelled_by_caller(e.message))
        except RequestTimeoutError as e:
            return ResponseEnvelope.failure(ErrorInfo.timeout(e.message))
        except NetworkError as e:
            return ResponseEnvelope.failure(ErrorInfo.network(e.message))
        except Exception as e:
            logger.error(
                "Unexpected error while sending request",
                url=url,
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )
            return ResponseEnvelope.failure(ErrorInfo.network(str(e), retryable=False))

        return to_response_envelope(response)

    # ------------------------------------------------------------------
    # Verb helpers
    # ------------------------------------------------------------------

    def _envelope(
        self,
        method: str,
        path: str,
        body: Any = None,
        *,
        files: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
        retries: int | None = None,
    ) -> RequestEnvelope:
        kwargs: dict[str, Any] = {}
        if files is not None:
            kwargs["files"] = files
            kwargs["form"] = body
        elif isinstance(body, (bytes, str)):
            kwargs["content"] = body
        else:
            kwargs["json_body"] = body
        return RequestEnvelope(
            method=method,
            path=path,
            headers=httpx.Headers(headers or {}),
            params=params,
            timeout=timeout,
            retries=retries,
            **kwargs,
        )

    async def get(self, path: str, *, cancel_token: CancellationToken | None = None, **options) -> ResponseEnvelope:
        return await self.request(self._envelope("GET", path, **options), cancel_token=cancel_token)

    async def post(self, path: str, body: Any = None, *, cancel_token: CancellationToken | None = None, **options) -> ResponseEnvelope:
        return await self.request(self._envelope("POST", path, body, **options), cancel_token=cancel_token)

    async def put(self, path: str, body: Any = None, *, cancel_token: CancellationToken | None = None, **options) -> ResponseEnvelope:
        return await self.request(self._envelope("PUT", path, body, **options), cancel_token=cancel_token)

    async def patch(self, path: str, body: Any = None, *, cancel_token: CancellationToken | None = None, **options) -> ResponseEnvelope:
        return await self.request(self._envelope("PATCH", path, body, **options), cancel_token=cancel_token)

    async def delete(self, path: str, body: Any = None, *, cancel_token: CancellationToken | None = None, **options) -> ResponseEnvelope:
        return await self.request(self._envelope("DELETE", path, body, **options), cancel_token=cancel_token)

    async def head(self, path: str, *, cancel_token: CancellationToken | None = None, **options) -> ResponseEnvelope:
        return await self.request(self._envelope("HEAD", path, **options), cancel_token=cancel_token)

    # ------------------------------------------------------------------
    # Connectivity
    # ------------------------------------------------------------------

    async def check_connectivity(self) -> dict[str, Any]:
        """
        Probe ``/health`` on both base URLs, once each, no retries.

        Returns:
            Dict with per-endpoint reachability and the recommended base URL
        """
        probe = RequestEnvelope(method="GET", path=ENDPOINT_HEALTH, headers={HEADER_ACCEPT: CONTENT_TYPE_JSON})
        headers = self._build_headers(probe)
        timeout = self.config.fast_timeout

        direct, proxy = await asyncio.gather(
            self._send_once(self.config.direct_url, probe, headers, timeout, None),
            self._send_once(self.config.proxy_url, probe, headers, timeout, None),
        )
        report = {
            "direct": {"url": self.config.direct_url, "reachable": direct.success},
            "proxy": {"url": self.config.proxy_url, "reachable": proxy.success},
        }
        if direct.success:
            report["recommended"] = self.config.direct_url
        elif proxy.success:
            report["recommended"] = self.config.proxy_url
        else:
            report["recommended"] = None

        logger.info(
            "Connectivity check complete",
            stage=Stage.HEALTH_PROBE.value,
            direct_reachable=direct.success,
            proxy_reachable=proxy.success,
        )
        return report


# =============================================================================
# FACTORIES & GLOBAL INSTANCE
# =============================================================================


def create_authenticated_client(
    token: str, config: ApiClientConfig | None = None, **kwargs
) -> ApiClient:
    """Create a dedicated client that sends ``Authorization: Bearer <token>``."""
    return ApiClient(config, auth_token=token, **kwargs)


_api_client: ApiClient | None = None


def get_api_client() -> ApiClient:
    """Get the process-wide API client, creating it on first use."""
    global _api_client
    if _api_client is None:
        _api_client = ApiClient()
    return _api_client


async def close_api_client() -> None:
    """Close and forget the process-wide API client."""
    global _api_client
    if _api_client is not None:
        await _api_client.aclose()
    _api_client = None
