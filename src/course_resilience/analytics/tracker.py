"""
Analytics Tracking Helpers

Thin, intention-revealing wrappers that build AnalyticsEvents and hand them
to the batcher.
"""

import time
from typing import Any

from course_resilience.analytics.batcher import AnalyticsBatcher, get_analytics_batcher
from course_resilience.analytics.models import AnalyticsEvent, DispatchResult
from course_resilience.core.config.constants import AnalyticsEventType


class AnalyticsTracker:
    def __init__(self, batcher: AnalyticsBatcher | None = None):
        self._batcher = batcher

    @property
    def batcher(self) -> AnalyticsBatcher:
        if self._batcher is None:
            self._batcher = get_analytics_batcher()
        return self._batcher

    async def track_progress(
        self,
        course_id: str,
        lecture_id: str,
        watched_duration: float,
        is_completed: bool | None = None,
        **extra: Any,
    ) -> DispatchResult:
        """Record playback progress; merged per lecture before dispatch."""
        payload = {
            "watchedDuration": watched_duration,
            "lastUpdated": int(time.time() * 1000),
            **extra,
        }
        if is_completed is not None:
            payload["isCompleted"] = is_completed
        return await self.batcher.add_event(
            AnalyticsEvent(
                AnalyticsEventType.PROGRESS_UPDATE,
                payload,
                course_id=course_id,
                lecture_id=lecture_id,
            )
        )

    async def track_course_view(self, course_id: str, duration: float = 0) -> DispatchResult:
        return await self.batcher.add_event(
            AnalyticsEvent(AnalyticsEventType.COURSE_VIEW, {"duration": duration}, course_id=course_id)
        )

    async def track_lecture_complete(
        self, course_id: str, lecture_id: str, **data: Any
    ) -> DispatchResult:
        return await self.batcher.add_event(
            AnalyticsEvent(
                AnalyticsEventType.LECTURE_COMPLETE,
                dict(data),
                course_id=course_id,
                lecture_id=lecture_id,
            )
        )

    async def track_engagement(
        self,
        event_type: str,
        course_id: str | None = None,
        lecture_id: str | None = None,
        **data: Any,
    ) -> DispatchResult:
        return await self.batcher.add_event(
            AnalyticsEvent(
                AnalyticsEventType.ENGAGEMENT,
                {"eventType": event_type, **data},
                course_id=course_id,
                lecture_id=lecture_id,
            )
        )
