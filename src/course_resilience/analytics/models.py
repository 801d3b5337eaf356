"""
Analytics Event Models
"""

from dataclasses import dataclass, field
from typing import Any

from course_resilience.core.config.constants import AnalyticsEventType

# Types whose dispatch URL needs these identifiers
_REQUIRES_LECTURE = frozenset(
    {AnalyticsEventType.PROGRESS_UPDATE, AnalyticsEventType.LECTURE_COMPLETE}
)
_REQUIRES_COURSE = frozenset(
    {AnalyticsEventType.LECTURE_COMPLETE, AnalyticsEventType.COURSE_VIEW}
)


@dataclass(frozen=True)
class AnalyticsEvent:
    """
    One telemetry event.

    ``enqueued_at`` is stamped by the batcher (epoch seconds) when the event
    enters the queue.
    """

    type: AnalyticsEventType
    payload: dict[str, Any] = field(default_factory=dict)
    course_id: str | None = None
    lecture_id: str | None = None
    enqueued_at: float | None = None

    def __post_init__(self):
        object.__setattr__(self, "type", AnalyticsEventType(self.type))
        if self.type in _REQUIRES_LECTURE and not self.lecture_id:
            raise ValueError(f"{self.type.value} events require a lecture_id")
        if self.type in _REQUIRES_COURSE and not self.course_id:
            raise ValueError(f"{self.type.value} events require a course_id")

    @property
    def enqueued_at_ms(self) -> int | None:
        return int(self.enqueued_at * 1000) if self.enqueued_at is not None else None


@dataclass(frozen=True)
class DispatchResult:
    """
    What ``AnalyticsBatcher.add_event`` resolves with.

    Attributes:
        unit: Dispatch unit the event travelled in, e.g. ``progress_update:lec-1``
        success: Whether the dispatch carrying the event succeeded
        batch_id: Batch the event was flushed in (None when never queued)
        event_count: Events folded into this dispatch
        sampled_out: Dropped by sampling before enqueue
        disabled: Dropped because analytics is switched off
        error: Failure message when success is False
    """

    unit: str
    success: bool
    batch_id: int | None = None
    event_count: int = 0
    sampled_out: bool = False
    disabled: bool = False
    error: str | None = None
