"""
Unit Tests for the API-backed Analytics Dispatcher
"""

import orjson
import pytest

from course_resilience.analytics.dispatcher import ApiAnalyticsDispatcher
from course_resilience.core.exceptions import AnalyticsDispatchError
from test_fixtures import ScriptedBackend


@pytest.mark.unit
class TestApiAnalyticsDispatcher:
    """Test endpoint mapping and rejection handling."""

    @pytest.mark.asyncio
    async def test_progress_update_is_put_to_lecture(self, make_client):
        backend = ScriptedBackend((200, {"success": True, "data": {}}))

        async with make_client(backend) as client:
            await ApiAnalyticsDispatcher(client).send_progress_update(
                "c1", "l1", {"watchedDuration": 40}
            )

        request = backend.requests[0]
        assert request.method == "PUT"
        assert request.url.path == "/api/lecture-progress/lecture/l1"
        assert orjson.loads(request.content) == {"watchedDuration": 40}

    @pytest.mark.asyncio
    async def test_completion_is_posted(self, make_client):
        backend = ScriptedBackend((200, {}))

        async with make_client(backend) as client:
            await ApiAnalyticsDispatcher(client).send_lecture_completion("c1", "l1", {})

        request = backend.requests[0]
        assert request.method == "POST"
        assert request.url.path == "/api/lecture-progress/lecture/l1/course/c1/complete"

    @pytest.mark.asyncio
    async def test_batched_summary_posted_with_type(self, make_client):
        backend = ScriptedBackend((200, {}))

        async with make_client(backend) as client:
            await ApiAnalyticsDispatcher(client).send_batched_analytics(
                "engagement", {"totalEvents": 2}
            )

        request = backend.requests[0]
        assert request.url.path == "/api/analytics/batch"
        assert orjson.loads(request.content) == {
            "type": "engagement",
            "data": {"totalEvents": 2},
        }

    @pytest.mark.asyncio
    async def test_rejected_dispatch_raises(self, make_client):
        backend = ScriptedBackend((400, {"message": "bad payload"}))

        async with make_client(backend, max_retries=0) as client:
            with pytest.raises(AnalyticsDispatchError) as exc_info:
                await ApiAnalyticsDispatcher(client).send_lecture_completion("c1", "l1", {})

        assert exc_info.value.details["status_code"] == 400
        assert "bad payload" in exc_info.value.message
