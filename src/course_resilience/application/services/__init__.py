"""
Application Services

- **role_service.py**: cache-first role resolution
- **route_guard.py**: route access decisions
"""

from course_resilience.application.services.role_service import (
    RoleResolution,
    RoleService,
    RoleSource,
    StaticTokenProvider,
    TokenProvider,
)
from course_resilience.application.services.route_guard import (
    AccessDecision,
    RouteAccess,
    RouteGuard,
    classify_route,
)

__all__ = [
    "AccessDecision",
    "RoleResolution",
    "RoleService",
    "RoleSource",
    "RouteAccess",
    "RouteGuard",
    "StaticTokenProvider",
    "TokenProvider",
    "classify_route",
]
