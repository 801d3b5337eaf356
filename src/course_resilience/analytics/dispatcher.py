"""
Analytics Dispatchers

The batcher talks to a dispatcher, never to HTTP directly. The API-backed
dispatcher maps each dispatch unit onto a backend endpoint and raises
AnalyticsDispatchError when the backend does not accept it.
"""

from typing import Any, Protocol, runtime_checkable

from course_resilience.core.config.constants import (
    ENDPOINT_ANALYTICS_BATCH,
    lecture_complete_path,
    progress_update_path,
)
from course_resilience.core.exceptions import AnalyticsDispatchError
from course_resilience.infrastructure.http.api_client import ApiClient, get_api_client
from course_resilience.infrastructure.http.models import ResponseEnvelope


@runtime_checkable
class AnalyticsDispatcher(Protocol):
    """Interface the batcher dispatches through; tests provide their own."""

    async def send_progress_update(
        self, course_id: str | None, lecture_id: str, data: dict[str, Any]
    ) -> Any: ...

    async def send_lecture_completion(
        self, course_id: str, lecture_id: str, data: dict[str, Any]
    ) -> Any: ...

    async def send_batched_analytics(self, kind: str, data: dict[str, Any]) -> Any: ...


class ApiAnalyticsDispatcher:
    """Dispatcher backed by the dual-endpoint API client."""

    def __init__(self, api_client: ApiClient | None = None):
        self._api_client = api_client

    @property
    def api_client(self) -> ApiClient:
        if self._api_client is None:
            self._api_client = get_api_client()
        return self._api_client

    @staticmethod
    def _check(response: ResponseEnvelope, unit: str) -> ResponseEnvelope:
        if not response.success:
            raise AnalyticsDispatchError(
                f"Analytics dispatch rejected: {response.error.message}",
                details={
                    "unit": unit,
                    "error_kind": response.error.kind.value,
                    "status_code": response.error.status_code,
                },
            )
        return response

    async def send_progress_update(
        self, course_id: str | None, lecture_id: str, data: dict[str, Any]
    ) -> ResponseEnvelope:
        response = await self.api_client.put(progress_update_path(lecture_id), data)
        return self._check(response, f"progress_update:{lecture_id}")

    async def send_lecture_completion(
        self, course_id: str, lecture_id: str, data: dict[str, Any]
    ) -> ResponseEnvelope:
        response = await self.api_client.post(lecture_complete_path(lecture_id, course_id), data)
        return self._check(response, f"lecture_complete:{lecture_id}")

    async def send_batched_analytics(self, kind: str, data: dict[str, Any]) -> ResponseEnvelope:
        response = await self.api_client.post(ENDPOINT_ANALYTICS_BATCH, {"type": kind, "data": data})
        return self._check(response, kind)
