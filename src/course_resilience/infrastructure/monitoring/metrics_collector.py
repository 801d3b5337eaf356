#!/usr/bin/env python3
"""
Metrics Collector with Prometheus Integration

Counters and histograms for the client resilience layer:
- Outbound request outcomes, attempts and latency
- Fallback usage
- Role resolution sources (cache / network / stale / none)
- Health probe results
- Analytics enqueue outcomes, dispatch results and queue depth

Architectural Decision: prometheus-client for industry-standard metrics
- Metric objects are module-level and registered once on import
- MetricsCollector is a thin facade so call sites never touch label plumbing
"""

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    Counter,
    Gauge,
    Histogram,
    Info,
    generate_latest,
)

from course_resilience.core.config.constants import Stage
from course_resilience.core.config.settings import get_settings
from course_resilience.core.logging.logger import get_logger

logger = get_logger(__name__)


# ============================================================================
# Metric Definitions
# ============================================================================

# HTTP client metrics
HTTP_REQUESTS = Counter(
    'resilience_http_requests_total',
    'Logical API requests by final outcome',
    ['method', 'outcome']  # outcome: success or an ErrorKind value
)

HTTP_ATTEMPTS = Histogram(
    'resilience_http_attempts',
    'Network attempts per logical request, fallback included',
    ['method'],
    buckets=(1, 2, 3, 4, 5, 8, 11)
)

HTTP_DURATION = Histogram(
    'resilience_http_request_duration_seconds',
    'Logical request duration including backoff sleeps',
    ['method'],
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0)
)

HTTP_FALLBACKS = Counter(
    'resilience_http_fallbacks_total',
    'Fallback attempts against the secondary base URL',
    ['status']  # success, failure
)

# Role resolution metrics
ROLE_RESOLUTIONS = Counter(
    'resilience_role_resolutions_total',
    'Role resolutions by source',
    ['source']  # cache, network, stale_cache, none
)

# Health metrics
HEALTH_PROBES = Counter(
    'resilience_health_probes_total',
    'Backend health probes sent',
    ['healthy']
)

# Analytics metrics
ANALYTICS_EVENTS = Counter(
    'resilience_analytics_events_total',
    'Analytics events offered to the batcher',
    ['type', 'outcome']  # outcome: queued, sampled_out, disabled
)

ANALYTICS_DISPATCHES = Counter(
    'resilience_analytics_dispatches_total',
    'Analytics dispatch units sent',
    ['unit', 'status']
)

ANALYTICS_QUEUE_DEPTH = Gauge(
    'resilience_analytics_queue_depth',
    'Events waiting for the next analytics flush'
)

# App info
APP_INFO = Info(
    'resilience_app',
    'Application information'
)


class MetricsCollector:
    """
    Centralized metrics collector.

    STAGE-M: Metrics collection

    Usage:
        metrics = get_metrics_collector()
        metrics.record_http_request("GET", "success", attempts=1, duration_seconds=0.12)
        output = metrics.get_prometheus_metrics()
    """

    def __init__(self):
        self.settings = get_settings()

        APP_INFO.info({
            'version': self.settings.app.APP_VERSION,
            'environment': self.settings.app.ENVIRONMENT,
            'app_name': self.settings.app.APP_NAME
        })

        logger.info("Metrics collector initialized", stage=Stage.INITIALIZATION.value)

    # =========================================================================
    # HTTP Client Metrics
    # =========================================================================

    def record_http_request(
        self,
        method: str,
        outcome: str,
        attempts: int,
        duration_seconds: float
    ) -> None:
        """Record one logical request after its lifecycle is done."""
        HTTP_REQUESTS.labels(method=method, outcome=outcome).inc()
        HTTP_ATTEMPTS.labels(method=method).observe(attempts)
        HTTP_DURATION.labels(method=method).observe(duration_seconds)

    def record_fallback(self, success: bool) -> None:
        HTTP_FALLBACKS.labels(status="success" if success else "failure").inc()

    # =========================================================================
    # Role & Health Metrics
    # =========================================================================

    def record_role_resolution(self, source: str) -> None:
        ROLE_RESOLUTIONS.labels(source=source).inc()

    def record_health_probe(self, is_healthy: bool) -> None:
        HEALTH_PROBES.labels(healthy=str(is_healthy).lower()).inc()

    # =========================================================================
    # Analytics Metrics
    # =========================================================================

    def record_analytics_event(self, event_type: str, outcome: str) -> None:
        ANALYTICS_EVENTS.labels(type=event_type, outcome=outcome).inc()

    def record_analytics_dispatch(self, unit: str, success: bool) -> None:
        """Record a dispatch unit; ``unit`` is the unit kind, e.g. ``lecture_complete``."""
        ANALYTICS_DISPATCHES.labels(unit=unit, status="success" if success else "failure").inc()

    def set_analytics_queue_depth(self, depth: int) -> None:
        ANALYTICS_QUEUE_DEPTH.set(depth)

    # =========================================================================
    # Export
    # =========================================================================

    def get_prometheus_metrics(self) -> bytes:
        """
        Get Prometheus metrics output.

        Returns:
            bytes: Prometheus text format metrics
        """
        return generate_latest(REGISTRY)

    def get_content_type(self) -> str:
        """Get Prometheus content type."""
        return CONTENT_TYPE_LATEST


# Global metrics collector
_metrics: MetricsCollector | None = None


def get_metrics_collector() -> MetricsCollector:
    """Get global metrics collector."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics
