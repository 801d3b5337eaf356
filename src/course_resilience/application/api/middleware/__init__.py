from course_resilience.application.api.middleware.role_guard import (
    RoleGuardMiddleware,
    default_identity_resolver,
)

__all__ = ["RoleGuardMiddleware", "default_identity_resolver"]
