"""
Analytics Module

- **models.py**: AnalyticsEvent, DispatchResult
- **dispatcher.py**: dispatcher protocol + API-backed implementation
- **batcher.py**: sampling, merging batcher
- **tracker.py**: track_* helpers
"""

from course_resilience.analytics.batcher import (
    AnalyticsBatcher,
    aggregate_course_views,
    aggregate_engagement,
    get_analytics_batcher,
    merge_progress_updates,
)
from course_resilience.analytics.dispatcher import AnalyticsDispatcher, ApiAnalyticsDispatcher
from course_resilience.analytics.models import AnalyticsEvent, DispatchResult
from course_resilience.analytics.tracker import AnalyticsTracker

__all__ = [
    "AnalyticsBatcher",
    "AnalyticsDispatcher",
    "AnalyticsEvent",
    "AnalyticsTracker",
    "ApiAnalyticsDispatcher",
    "DispatchResult",
    "aggregate_course_views",
    "aggregate_engagement",
    "get_analytics_batcher",
    "merge_progress_updates",
]
