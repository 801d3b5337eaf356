"""
Analytics Batcher

Cuts telemetry traffic without losing business-critical events.

Flow:
    1. add_event() samples non-critical types (COURSE_VIEW, ENGAGEMENT) at
       ``keep_rate``; dropped events resolve immediately
    2. Kept events are queued, each with its own future
    3. A flush starts when the queue reaches ``batch_size`` or ``batch_delay``
       seconds after the first event lands in an empty queue
    4. The queue is snapshotted and cleared synchronously (so a batch never
       holds more than ``batch_size`` events), then dispatch units are built:
         PROGRESS_UPDATE  -> merged per (course, lecture), one call each
         LECTURE_COMPLETE -> one call per event
         COURSE_VIEW      -> one aggregated summary
         ENGAGEMENT       -> one aggregated summary
    5. Units run concurrently; each settles the futures of the events it
       carries, so a failing unit never fails another

STAGE-AN: Analytics batching

Queue state is only touched in synchronous sections, so the batcher needs no
lock on a single event loop. Pending futures live in a table keyed by batch id
until every unit of that batch has settled.
"""

import asyncio
import itertools
import random
import time
from collections.abc import Awaitable, Callable, Coroutine
from dataclasses import dataclass, field, replace
from functools import partial
from typing import Any

from course_resilience.analytics.dispatcher import AnalyticsDispatcher, ApiAnalyticsDispatcher
from course_resilience.analytics.models import AnalyticsEvent, DispatchResult
from course_resilience.core.config.constants import (
    CRITICAL_EVENT_TYPES,
    PROGRESS_LAST_UPDATED_FIELD,
    AnalyticsEventType,
    Stage,
)
from course_resilience.core.config.settings import get_settings
from course_resilience.core.exceptions import AnalyticsError, BatcherClosedError
from course_resilience.core.logging.logger import get_logger
from course_resilience.core.teardown import TeardownRegistry, get_teardown_registry
from course_resilience.infrastructure.monitoring.metrics_collector import get_metrics_collector

logger = get_logger(__name__)

TEARDOWN_HOOK_NAME = "analytics_batcher"


# =============================================================================
# AGGREGATION
# =============================================================================


def merge_progress_updates(events: list[AnalyticsEvent]) -> dict[str, Any]:
    """
    Fold progress updates for one lecture into a single payload.

    Later events win field by field, except ``lastUpdated`` which keeps the
    maximum seen. An event without ``lastUpdated`` contributes its enqueue time.
    """
    merged: dict[str, Any] = {}
    for event in events:
        last_updated = max(
            merged.get(PROGRESS_LAST_UPDATED_FIELD) or 0,
            event.payload.get(PROGRESS_LAST_UPDATED_FIELD) or event.enqueued_at_ms or 0,
        )
        merged.update(event.payload)
        merged[PROGRESS_LAST_UPDATED_FIELD] = last_updated
    return merged


def _timestamp_ms(event: AnalyticsEvent) -> int:
    return event.payload.get("timestamp") or event.enqueued_at_ms or 0


def aggregate_course_views(events: list[AnalyticsEvent]) -> dict[str, Any]:
    """Summarize course views per course: count, first/last view, total duration."""
    courses: dict[str, dict[str, Any]] = {}
    for event in events:
        ts = _timestamp_ms(event)
        summary = courses.get(event.course_id)
        if summary is None:
            summary = courses[event.course_id] = {
                "count": 0,
                "firstView": ts,
                "lastView": ts,
                "totalDuration": 0,
            }
        summary["count"] += 1
        summary["firstView"] = min(summary["firstView"], ts)
        summary["lastView"] = max(summary["lastView"], ts)
        summary["totalDuration"] += event.payload.get("duration") or 0
    return courses


def aggregate_engagement(events: list[AnalyticsEvent]) -> dict[str, Any]:
    """Summarize engagement events: total, per-type counts and time range."""
    event_types: dict[str, int] = {}
    timestamps = []
    for event in events:
        event_type = event.payload.get("eventType", "unknown")
        event_types[event_type] = event_types.get(event_type, 0) + 1
        timestamps.append(_timestamp_ms(event))
    return {
        "totalEvents": len(events),
        "eventTypes": event_types,
        "timeRange": {"start": min(timestamps), "end": max(timestamps)},
    }


# =============================================================================
# QUEUE STRUCTURES
# =============================================================================


@dataclass
class _QueuedEvent:
    event: AnalyticsEvent
    future: asyncio.Future


@dataclass
class _Batch:
    batch_id: int
    entries: list[_QueuedEvent]


@dataclass
class _DispatchUnit:
    name: str
    entries: list[_QueuedEvent]
    send: Callable[[], Awaitable[Any]]


@dataclass
class BatcherStats:
    enqueued: int = 0
    sampled_out: int = 0
    flushes: int = 0
    dispatched_units: int = 0
    failed_units: int = 0
    by_type: dict[str, int] = field(default_factory=dict)


# =============================================================================
# BATCHER
# =============================================================================


class AnalyticsBatcher:
    """
    Sampling, merging event batcher.

    Usage:
        batcher = AnalyticsBatcher(ApiAnalyticsDispatcher(client))
        result = await batcher.add_event(
            AnalyticsEvent(AnalyticsEventType.LECTURE_COMPLETE, course_id="c1", lecture_id="l1")
        )
        await batcher.close()
    """

    def __init__(
        self,
        dispatcher: AnalyticsDispatcher,
        batch_size: int | None = None,
        batch_delay: float | None = None,
        keep_rate: float | None = None,
        random_source: random.Random | None = None,
        clock: Callable[[], float] = time.time,
        enabled: bool | None = None,
    ):
        """
        Args:
            dispatcher: Where dispatch units are sent
            batch_size: Queue length that triggers an immediate flush
            batch_delay: Seconds from first enqueue to timed flush
            keep_rate: Probability a non-critical event is kept
            random_source: Sampling randomness, seed it in tests
            clock: Wall clock used to stamp ``enqueued_at``
            enabled: When False every event resolves without dispatch
        """
        settings = get_settings()
        self._dispatcher = dispatcher
        self.batch_size = settings.ANALYTICS_BATCH_SIZE if batch_size is None else batch_size
        self.batch_delay = settings.ANALYTICS_BATCH_DELAY if batch_delay is None else batch_delay
        self.keep_rate = settings.ANALYTICS_KEEP_RATE if keep_rate is None else keep_rate
        self.enabled = settings.ANALYTICS_ENABLED if enabled is None else enabled
        if self.batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        if not 0.0 <= self.keep_rate <= 1.0:
            raise ValueError("keep_rate must be within [0, 1]")

        self._random = random_source or random.Random()
        self._clock = clock
        self._queue: list[_QueuedEvent] = []
        self._timer: asyncio.TimerHandle | None = None
        self._pending: dict[int, _Batch] = {}
        self._flush_tasks: set[asyncio.Task] = set()
        self._batch_ids = itertools.count(1)
        self._closed = False
        self.stats = BatcherStats()

    # ------------------------------------------------------------------
    # Enqueue
    # ------------------------------------------------------------------

    def should_keep(self, event: AnalyticsEvent) -> bool:
        """Critical types are always kept; the rest survive with probability keep_rate."""
        if event.type in CRITICAL_EVENT_TYPES:
            return True
        return self._random.random() < self.keep_rate

    async def add_event(self, event: AnalyticsEvent) -> DispatchResult:
        """
        Queue an event and wait until the dispatch carrying it settles.

        Returns:
            DispatchResult of that dispatch (or an immediate sampled-out result)

        Raises:
            BatcherClosedError: After close()
        """
        if self._closed:
            raise BatcherClosedError("Analytics batcher is closed", details={"type": event.type.value})

        metrics = get_metrics_collector()
        if not self.enabled:
            metrics.record_analytics_event(event.type.value, "disabled")
            return DispatchResult(unit=event.type.value, success=True, disabled=True)

        if not self.should_keep(event):
            self.stats.sampled_out += 1
            metrics.record_analytics_event(event.type.value, "sampled_out")
            return DispatchResult(unit=event.type.value, success=True, sampled_out=True)

        loop = asyncio.get_running_loop()
        future = loop.create_future()
        self._queue.append(_QueuedEvent(replace(event, enqueued_at=self._clock()), future))
        self.stats.enqueued += 1
        self.stats.by_type[event.type.value] = self.stats.by_type.get(event.type.value, 0) + 1
        metrics.record_analytics_event(event.type.value, "queued")
        metrics.set_analytics_queue_depth(len(self._queue))

        logger.debug(
            "Analytics event queued",
            stage=Stage.ANALYTICS_ENQUEUE.value,
            type=event.type.value,
            queue_size=len(self._queue),
        )

        if len(self._queue) >= self.batch_size:
            # Snapshot now so the batch never grows past batch_size
            self._spawn(self._dispatch_batch(self._take_batch()))
        elif self._timer is None:
            self._timer = loop.call_later(self.batch_delay, self._start_flush)

        return await future

    @property
    def queue_size(self) -> int:
        return len(self._queue)

    @property
    def pending_batches(self) -> int:
        return len(self._pending)

    # ------------------------------------------------------------------
    # Flush
    # ------------------------------------------------------------------

    def _start_flush(self) -> None:
        self._spawn(self.flush())

    def _spawn(self, coro: Coroutine[Any, Any, list[DispatchResult]]) -> None:
        task = asyncio.ensure_future(coro)
        self._flush_tasks.add(task)
        task.add_done_callback(self._on_flush_done)

    def _on_flush_done(self, task: asyncio.Task) -> None:
        self._flush_tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(
                "Analytics flush crashed",
                stage=Stage.ANALYTICS_FLUSH.value,
                error=str(task.exception()),
            )

    def _take_batch(self) -> _Batch | None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if not self._queue:
            return None
        entries, self._queue = self._queue, []
        get_metrics_collector().set_analytics_queue_depth(0)
        batch = _Batch(next(self._batch_ids), entries)
        self._pending[batch.batch_id] = batch
        return batch

    async def flush(self) -> list[DispatchResult]:
        """
        Dispatch everything queued right now.

        Returns:
            One DispatchResult per dispatch unit; empty when the queue was empty
        """
        batch = self._take_batch()
        if batch is None:
            return []
        return await self._dispatch_batch(batch)

    async def _dispatch_batch(self, batch: _Batch) -> list[DispatchResult]:
        self.stats.flushes += 1
        try:
            units = self._build_units(batch)
            logger.info(
                "Flushing analytics batch",
                stage=Stage.ANALYTICS_FLUSH.value,
                batch_id=batch.batch_id,
                events=len(batch.entries),
                units=len(units),
            )
            return list(await asyncio.gather(*(self._run_unit(batch.batch_id, u) for u in units)))
        finally:
            for entry in batch.entries:
                if not entry.future.done():
                    entry.future.set_exception(
                        AnalyticsError("Analytics batch aborted", details={"batch_id": batch.batch_id})
                    )
            self._pending.pop(batch.batch_id, None)

    def _build_units(self, batch: _Batch) -> list[_DispatchUnit]:
        progress: dict[tuple[str | None, str], list[_QueuedEvent]] = {}
        completions: list[_QueuedEvent] = []
        views: list[_QueuedEvent] = []
        engagement: list[_QueuedEvent] = []

        for entry in batch.entries:
            event = entry.event
            if event.type is AnalyticsEventType.PROGRESS_UPDATE:
                progress.setdefault((event.course_id, event.lecture_id), []).append(entry)
            elif event.type is AnalyticsEventType.LECTURE_COMPLETE:
                completions.append(entry)
            elif event.type is AnalyticsEventType.COURSE_VIEW:
                views.append(entry)
            else:
                engagement.append(entry)

        units = []
        for (course_id, lecture_id), entries in progress.items():
            merged = merge_progress_updates([e.event for e in entries])
            units.append(
                _DispatchUnit(
                    f"progress_update:{lecture_id}",
                    entries,
                    partial(self._dispatcher.send_progress_update, course_id, lecture_id, merged),
                )
            )
        for entry in completions:
            event = entry.event
            units.append(
                _DispatchUnit(
                    f"lecture_complete:{event.lecture_id}",
                    [entry],
                    partial(
                        self._dispatcher.send_lecture_completion,
                        event.course_id,
                        event.lecture_id,
                        dict(event.payload),
                    ),
                )
            )
        if views:
            summary = aggregate_course_views([e.event for e in views])
            units.append(
                _DispatchUnit(
                    "course_views",
                    views,
                    partial(self._dispatcher.send_batched_analytics, "course_views", summary),
                )
            )
        if engagement:
            summary = aggregate_engagement([e.event for e in engagement])
            units.append(
                _DispatchUnit(
                    "engagement",
                    engagement,
                    partial(self._dispatcher.send_batched_analytics, "engagement", summary),
                )
            )
        return units

    async def _run_unit(self, batch_id: int, unit: _DispatchUnit) -> DispatchResult:
        error = None
        try:
            await unit.send()
        except Exception as e:
            error = str(e)
            self.stats.failed_units += 1
            logger.warning(
                "Analytics dispatch failed",
                stage=Stage.ANALYTICS_DISPATCH.value,
                batch_id=batch_id,
                unit=unit.name,
                events=len(unit.entries),
                error=error,
                error_type=type(e).__name__,
            )
        else:
            self.stats.dispatched_units += 1
            logger.debug(
                "Analytics dispatch complete",
                stage=Stage.ANALYTICS_DISPATCH.value,
                batch_id=batch_id,
                unit=unit.name,
                events=len(unit.entries),
            )

        get_metrics_collector().record_analytics_dispatch(unit.name.split(":")[0], error is None)
        result = DispatchResult(
            unit=unit.name,
            success=error is None,
            batch_id=batch_id,
            event_count=len(unit.entries),
            error=error,
        )
        for entry in unit.entries:
            if not entry.future.done():
                entry.future.set_result(result)
        return result

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    async def close(self) -> list[DispatchResult]:
        """Stop accepting events, flush what is queued, wait for running flushes."""
        self._closed = True
        results = await self.flush()
        if self._flush_tasks:
            await asyncio.gather(*self._flush_tasks, return_exceptions=True)
        logger.info(
            "Analytics batcher closed",
            stage=Stage.SHUTDOWN.value,
            enqueued=self.stats.enqueued,
            sampled_out=self.stats.sampled_out,
            flushes=self.stats.flushes,
            failed_units=self.stats.failed_units,
        )
        return results

    def register_teardown(self, registry: TeardownRegistry | None = None) -> bool:
        """Register ``close`` as the process teardown hook (once per process)."""
        registry = registry or get_teardown_registry()
        return registry.register(TEARDOWN_HOOK_NAME, self.close)

    def get_stats(self) -> dict[str, Any]:
        return {
            "queue_size": len(self._queue),
            "pending_batches": len(self._pending),
            "enqueued": self.stats.enqueued,
            "sampled_out": self.stats.sampled_out,
            "flushes": self.stats.flushes,
            "dispatched_units": self.stats.dispatched_units,
            "failed_units": self.stats.failed_units,
            "by_type": dict(self.stats.by_type),
        }


# Global instance
_analytics_batcher: AnalyticsBatcher | None = None


def get_analytics_batcher() -> AnalyticsBatcher:
    """Get the process-wide batcher; its teardown hook is registered on creation."""
    global _analytics_batcher
    if _analytics_batcher is None:
        _analytics_batcher = AnalyticsBatcher(ApiAnalyticsDispatcher())
        _analytics_batcher.register_teardown()
    return _analytics_batcher


def reset_analytics_batcher() -> None:
    global _analytics_batcher
    _analytics_batcher = None
