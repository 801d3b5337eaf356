#!/usr/bin/env python3
"""
Application Wiring

``resilience_lifespan()`` brings the resilience layer up and down:

startup:
    settings -> logging -> API client -> role cache / role service
             -> health cache -> analytics batcher (+ teardown hook) -> tracker -> metrics
shutdown:
    teardown hooks (batcher flush) -> API client close

``create_app()`` mounts the layer on a FastAPI app: request-id correlation,
the role guard middleware, a backend health endpoint and Prometheus metrics.
"""

import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

from fastapi import FastAPI, Request, Response

from course_resilience.analytics.batcher import (
    AnalyticsBatcher,
    get_analytics_batcher,
    reset_analytics_batcher,
)
from course_resilience.analytics.tracker import AnalyticsTracker
from course_resilience.application.api.middleware.role_guard import (
    IdentityResolver,
    RoleGuardMiddleware,
)
from course_resilience.application.services.role_service import RoleService
from course_resilience.application.services.route_guard import RouteGuard
from course_resilience.core.config.constants import HEADER_REQUEST_ID, Stage
from course_resilience.core.config.settings import Settings, get_settings
from course_resilience.core.logging.logger import (
    clear_request_id,
    get_logger,
    set_request_id,
    setup_logging,
)
from course_resilience.core.teardown import get_teardown_registry
from course_resilience.infrastructure.cache.role_cache import RoleCache, get_role_cache
from course_resilience.infrastructure.http.api_client import (
    ApiClient,
    close_api_client,
    get_api_client,
)
from course_resilience.infrastructure.monitoring.health_checker import (
    HealthCheckCache,
    get_health_cache,
)
from course_resilience.infrastructure.monitoring.metrics_collector import (
    MetricsCollector,
    get_metrics_collector,
)

logger = get_logger(__name__)


@dataclass
class ResilienceLayer:
    """Handles to the wired components."""

    settings: Settings
    api_client: ApiClient
    role_cache: RoleCache
    role_service: RoleService
    route_guard: RouteGuard
    health: HealthCheckCache
    batcher: AnalyticsBatcher
    tracker: AnalyticsTracker
    metrics: MetricsCollector


# ============================================================================
# Lifespan
# ============================================================================


@asynccontextmanager
async def resilience_lifespan(settings: Settings | None = None) -> AsyncIterator[ResilienceLayer]:
    """
    Wire the process-wide components, yield them, and tear them down.
    """
    settings = settings or get_settings()

    setup_logging(log_level=settings.LOG_LEVEL, log_format=settings.LOG_FORMAT)

    logger.info(
        "Starting client resilience layer",
        stage=Stage.INITIALIZATION.value,
        environment=settings.ENVIRONMENT,
        version=settings.APP_VERSION,
    )

    api_client = get_api_client()
    role_cache = get_role_cache()
    role_service = RoleService(api_client, role_cache)
    batcher = get_analytics_batcher()
    # No-op when the batcher registered itself on creation
    batcher.register_teardown()

    layer = ResilienceLayer(
        settings=settings,
        api_client=api_client,
        role_cache=role_cache,
        role_service=role_service,
        route_guard=RouteGuard(role_service),
        health=get_health_cache(),
        batcher=batcher,
        tracker=AnalyticsTracker(batcher),
        metrics=get_metrics_collector(),
    )
    logger.info("Client resilience layer ready", stage=Stage.INITIALIZATION.value)

    try:
        yield layer
    finally:
        logger.info("Shutting down client resilience layer", stage=Stage.SHUTDOWN.value)
        await get_teardown_registry().run_all()
        await close_api_client()
        reset_analytics_batcher()
        logger.info("Client resilience layer shutdown complete", stage=Stage.SHUTDOWN.value)


# ============================================================================
# Application Factory
# ============================================================================


def create_app(identity_resolver: IdentityResolver | None = None) -> FastAPI:
    """
    Create a FastAPI application guarded by the resilience layer.

    Args:
        identity_resolver: Passed to RoleGuardMiddleware

    Returns:
        FastAPI: Configured application instance
    """
    settings = get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        async with resilience_lifespan(settings) as layer:
            app.state.resilience = layer
            yield

    app = FastAPI(title=settings.APP_NAME, version=settings.APP_VERSION, lifespan=lifespan)

    # RoleService() picks up the client and cache singletons lazily
    app.add_middleware(
        RoleGuardMiddleware,
        guard=RouteGuard(RoleService()),
        identity_resolver=identity_resolver,
    )

    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next):
        request_id = request.headers.get(HEADER_REQUEST_ID) or str(uuid.uuid4())
        set_request_id(request_id)
        try:
            response = await call_next(request)
            response.headers[HEADER_REQUEST_ID] = request_id
            return response
        finally:
            clear_request_id()

    @app.get("/api/backend-health")
    async def backend_health(force: bool = False):
        status = await get_health_cache().check_health(force=force)
        return status.to_dict()

    @app.get("/metrics")
    async def prometheus_metrics():
        metrics = get_metrics_collector()
        return Response(content=metrics.get_prometheus_metrics(), media_type=metrics.get_content_type())

    return app
