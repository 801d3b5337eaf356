"""
Unit Tests for the Dual-Endpoint API Client

HTTP is faked with httpx.MockTransport via ScriptedBackend; backoff sleeps
are recorded, never awaited for real.
"""

import asyncio

import httpx
import pytest

from course_resilience.core.config.constants import ErrorKind
from course_resilience.core.config.settings import Settings
from course_resilience.core.resilience.timeout import CancellationToken
from course_resilience.infrastructure.http.api_client import (
    ApiClientConfig,
    create_authenticated_client,
    decode_body,
    get_api_client,
)
from course_resilience.infrastructure.http.models import (
    ErrorInfo,
    RequestEnvelope,
    ResponseEnvelope,
)
from test_fixtures import DIRECT_URL, HANG, PROXY_URL, HttpTestFactory, ScriptedBackend


@pytest.mark.unit
class TestEnvelopes:
    """Test envelope models."""

    def test_success_with_error_rejected(self):
        with pytest.raises(ValueError):
            ResponseEnvelope(success=True, error=ErrorInfo.network())

    def test_failure_without_error_rejected(self):
        with pytest.raises(ValueError):
            ResponseEnvelope(success=False)

    def test_request_headers_case_insensitive(self):
        envelope = RequestEnvelope("get", "/x", headers={"X-Trace": "1"})

        assert envelope.method == "GET"
        assert envelope.headers["x-trace"] == "1"

    def test_error_info_from_status(self):
        assert ErrorInfo.from_status(404).kind is ErrorKind.CLIENT
        assert not ErrorInfo.from_status(404).retryable
        assert ErrorInfo.from_status(503).retryable


@pytest.mark.unit
class TestRequestSuccess:
    """Test the happy path and payload decoding."""

    @pytest.mark.asyncio
    async def test_wraps_plain_payload(self, make_client):
        backend = ScriptedBackend((200, [{"id": 1}]))

        async with make_client(backend) as client:
            response = await client.get("/api/courses")

        assert response.success
        assert response.data == [{"id": 1}]
        assert response.status_code == 200
        assert response.attempts == 1

    @pytest.mark.asyncio
    async def test_envelope_payload_passes_through(self, make_client):
        backend = ScriptedBackend((200, {"success": True, "data": {"id": 7}, "message": "ok"}))

        async with make_client(backend) as client:
            response = await client.get("/api/courses/7")

        assert response.data == {"id": 7}
        assert response.message == "ok"

    @pytest.mark.asyncio
    async def test_unsuccessful_envelope_payload_gets_error(self, make_client):
        backend = ScriptedBackend((200, {"success": False, "message": "Already enrolled"}))

        async with make_client(backend) as client:
            response = await client.post("/api/enroll", {"courseId": "c1"})

        assert not response.success
        assert response.error.message == "Already enrolled"
        assert not response.error.retryable
        assert backend.call_count == 1

    @pytest.mark.asyncio
    async def test_text_and_bytes_decoding(self, make_client):
        backend = ScriptedBackend(
            lambda request: httpx.Response(200, text="pong"),
        )
        async with make_client(backend) as client:
            assert (await client.get("/ping")).data == "pong"

        backend = ScriptedBackend(
            lambda request: httpx.Response(
                200, content=b"\x00\x01", headers={"Content-Type": "application/octet-stream"}
            ),
        )
        async with make_client(backend) as client:
            assert (await client.get("/blob")).data == b"\x00\x01"

    def test_invalid_json_falls_back_to_text(self):
        response = httpx.Response(200, content=b"{not json", headers={"Content-Type": "application/json"})

        assert decode_body(response) == "{not json"

    @pytest.mark.asyncio
    async def test_json_body_and_headers_sent(self, make_client):
        backend = ScriptedBackend((201, {}))

        async with make_client(backend) as client:
            client.set_auth_token("tok-123")
            await client.post("/api/courses", {"title": "Python"})

        sent = backend.requests[0]
        assert sent.headers["Authorization"] == "Bearer tok-123"
        assert sent.headers["Content-Type"] == "application/json"
        assert sent.content == b'{"title":"Python"}'


@pytest.mark.unit
class TestRetryBehaviour:
    """Test classification-driven retries."""

    @pytest.mark.asyncio
    async def test_404_never_retried(self, make_client, recording_sleep):
        backend = ScriptedBackend((404, {"message": "Course not found"}))

        async with make_client(backend) as client:
            response = await client.get("/api/courses/missing")

        assert backend.call_count == 1
        assert recording_sleep.delays == []
        assert response.error.kind is ErrorKind.CLIENT
        assert response.error.status_code == 404
        assert response.error.message == "Course not found"

    @pytest.mark.asyncio
    async def test_503_retried_up_to_budget(self, make_client, recording_sleep):
        backend = ScriptedBackend((503, {}))

        async with make_client(backend, max_retries=2) as client:
            response = await client.get("/api/courses")

        assert backend.call_count == 3
        assert recording_sleep.delays == [1.0, 2.0]
        assert response.error.kind is ErrorKind.SERVER
        assert response.attempts == 3

    @pytest.mark.asyncio
    async def test_recovers_after_5xx(self, make_client):
        backend = ScriptedBackend((502, {}), (200, {"ok": True}))

        async with make_client(backend) as client:
            response = await client.get("/api/courses")

        assert response.success
        assert response.attempts == 2

    @pytest.mark.asyncio
    async def test_429_is_rate_limit_and_retried(self, make_client):
        backend = ScriptedBackend((429, {}), (200, {}))

        async with make_client(backend) as client:
            response = await client.get("/api/search")

        assert response.success
        assert backend.call_count == 2

    @pytest.mark.asyncio
    async def test_per_request_retry_override(self, make_client):
        backend = ScriptedBackend((500, {}))

        async with make_client(backend, max_retries=3) as client:
            await client.get("/api/courses", retries=0)

        assert backend.call_count == 1

    @pytest.mark.asyncio
    async def test_deadline_classified_timeout(self, make_client):
        backend = ScriptedBackend(HANG)

        async with make_client(backend, max_retries=1) as client:
            response = await client.get("/api/slow", timeout=0.05)

        assert response.error.kind is ErrorKind.TIMEOUT
        assert response.error.status_code == 408
        assert response.error.retryable
        assert backend.call_count == 2

    @pytest.mark.asyncio
    async def test_caller_cancellation_is_terminal(self, make_client):
        backend = ScriptedBackend(HANG)
        token = CancellationToken()

        async with make_client(backend, max_retries=3) as client:
            task = asyncio.create_task(client.get("/api/slow", cancel_token=token))
            await asyncio.sleep(0.01)
            token.cancel()
            response = await task

        assert response.error.cancelled
        assert response.error.kind is ErrorKind.TIMEOUT
        assert backend.call_count == 1

    @pytest.mark.asyncio
    async def test_cancellation_during_backoff_returns_immediately(self):
        backend = ScriptedBackend((503, {}))
        token = CancellationToken()
        client = HttpTestFactory.client(
            backend, sleep=asyncio.sleep, max_retries=3, retry_base_delay=2.0
        )

        loop = asyncio.get_running_loop()
        async with client:
            loop.call_later(0.1, token.cancel)
            started = loop.time()
            response = await client.get("/api/courses", cancel_token=token)
            elapsed = loop.time() - started

        assert elapsed < 0.5
        assert response.error.cancelled
        assert not response.error.retryable
        assert backend.call_count == 1
        assert response.attempts == 1

    @pytest.mark.asyncio
    async def test_already_cancelled_token_sends_nothing(self, make_client):
        backend = ScriptedBackend((200, {}))
        token = CancellationToken()
        token.cancel("navigated away")

        async with make_client(backend, max_retries=3) as client:
            response = await client.get("/api/courses", cancel_token=token)

        assert response.error.cancelled
        assert response.error.message == "navigated away"
        assert response.attempts == 0
        assert backend.call_count == 0


@pytest.mark.unit
class TestFallback:
    """Test dual-endpoint fallback."""

    @pytest.mark.asyncio
    async def test_network_failure_falls_back_once(self, make_client):
        def route(request):
            if request.url.host == "proxy.test":
                raise httpx.ConnectError("connection refused")
            return httpx.Response(200, json={"via": "direct"})

        backend = ScriptedBackend(route)

        async with make_client(backend, max_retries=1) as client:
            response = await client.get("/api/courses")

        assert response.success
        assert response.data == {"via": "direct"}
        assert backend.calls_to(PROXY_URL) == 2
        assert backend.calls_to(DIRECT_URL) == 1
        assert response.attempts == 3

    @pytest.mark.asyncio
    async def test_no_fallback_for_http_errors(self, make_client):
        backend = ScriptedBackend((500, {}))

        async with make_client(backend, max_retries=0) as client:
            await client.get("/api/courses")

        assert backend.calls_to(DIRECT_URL) == 0

    @pytest.mark.asyncio
    async def test_no_fallback_in_production(self, make_client):
        backend = ScriptedBackend(httpx.ConnectError("connection refused"))

        async with make_client(backend, max_retries=0, fallback_enabled=False) as client:
            response = await client.get("/api/courses")

        assert response.error.kind is ErrorKind.NETWORK
        assert response.error.status_code == 0
        assert backend.call_count == 1

    @pytest.mark.asyncio
    async def test_no_fallback_when_urls_coincide(self, make_client):
        backend = ScriptedBackend(httpx.ConnectError("connection refused"))

        async with make_client(backend, max_retries=0, direct_url=PROXY_URL) as client:
            await client.get("/api/courses")

        assert backend.call_count == 1

    @pytest.mark.asyncio
    async def test_fallback_can_be_disabled_per_request(self, make_client):
        backend = ScriptedBackend(httpx.ConnectError("connection refused"))

        async with make_client(backend, max_retries=0) as client:
            await client.request(RequestEnvelope("GET", "/api/me"), allow_fallback=False)

        assert backend.call_count == 1

    @pytest.mark.asyncio
    async def test_failed_fallback_returns_primary_error(self, make_client):
        def route(request):
            if request.url.host == "proxy.test":
                raise httpx.ConnectError("proxy refused")
            return httpx.Response(503, json={"message": "direct down"})

        backend = ScriptedBackend(route)

        async with make_client(backend, max_retries=1) as client:
            response = await client.get("/api/courses")

        assert response.error.kind is ErrorKind.NETWORK
        assert "proxy refused" in response.error.message
        assert response.status_code is None
        assert backend.calls_to(PROXY_URL) == 2
        assert backend.calls_to(DIRECT_URL) == 1
        assert response.attempts == 3


@pytest.mark.unit
class TestBodies:
    """Test body and header normalization."""

    @pytest.mark.asyncio
    async def test_multipart_has_no_explicit_json_content_type(self, make_client):
        backend = ScriptedBackend((200, {}))

        async with make_client(backend) as client:
            await client.post("/api/upload", {"title": "intro"}, files={"video": ("a.mp4", b"data")})

        content_type = backend.requests[0].headers["Content-Type"]
        assert content_type.startswith("multipart/form-data; boundary=")

    @pytest.mark.asyncio
    async def test_delete_without_body_sends_none(self, make_client):
        backend = ScriptedBackend((204, None))

        async with make_client(backend) as client:
            response = await client.delete("/api/courses/1")

        assert response.success
        assert backend.requests[0].content == b""

    @pytest.mark.asyncio
    async def test_head_request(self, make_client):
        backend = ScriptedBackend(lambda request: httpx.Response(200))

        async with make_client(backend) as client:
            response = await client.head("/api/courses")

        assert response.success
        assert response.data is None
        assert backend.requests[0].method == "HEAD"


@pytest.mark.unit
class TestClientManagement:
    """Test endpoint switching, auth and factories."""

    def test_endpoint_switching(self, make_client):
        client = make_client(ScriptedBackend())

        assert client.base_url == PROXY_URL
        client.use_direct_access()
        assert client.base_url == DIRECT_URL
        assert client.fallback_url == PROXY_URL
        client.use_proxy_access()
        assert client.base_url == PROXY_URL

    def test_auth_token_lifecycle(self, make_client):
        client = make_client(ScriptedBackend())

        client.set_auth_token("abc")
        assert client.is_authenticated
        client.clear_auth_token()
        assert not client.is_authenticated

    def test_create_authenticated_client(self):
        client = create_authenticated_client("tok", ApiClientConfig())

        assert client.is_authenticated

    def test_config_from_settings(self):
        settings = Settings(
            API_DIRECT_URL="http://origin.test",
            API_PROXY_URL="http://edge.test",
            ENVIRONMENT="production",
        )

        server = ApiClientConfig.from_settings(settings)
        interactive = ApiClientConfig.from_settings(settings, interactive=True)

        assert server.max_retries == 2
        assert interactive.max_retries == 1
        assert not server.fallback_enabled
        assert server.direct_url == "http://origin.test"

    def test_global_client_is_singleton(self):
        assert get_api_client() is get_api_client()

    @pytest.mark.asyncio
    async def test_check_connectivity(self, make_client):
        def route(request):
            if request.url.host == "direct.test":
                return httpx.Response(200, json={"status": "ok"})
            raise httpx.ConnectError("connection refused")

        async with make_client(ScriptedBackend(route)) as client:
            report = await client.check_connectivity()

        assert report["direct"]["reachable"]
        assert not report["proxy"]["reachable"]
        assert report["recommended"] == DIRECT_URL
