"""
Role Guard Middleware

Starlette adapter around RouteGuard: works out who is asking, asks the guard,
and turns its decision into a redirect or a pass-through.

IDENTITY:
---------
Authentication happens upstream. By default the signed-in principal is read
from ``request.state.principal_id`` and the bearer token from the
``Authorization`` header; pass ``identity_resolver`` to source them elsewhere.

DEGRADED ACCESS:
----------------
When the role cannot be determined the request is let through with
``server_warning=connectivity_issue`` appended to its query string, so the
page can tell the user why instructor features may misbehave.
"""

from collections.abc import Awaitable, Callable

from fastapi import Request, Response
from fastapi.responses import RedirectResponse
from starlette.middleware.base import BaseHTTPMiddleware

from course_resilience.application.services.role_service import StaticTokenProvider, TokenSource
from course_resilience.application.services.route_guard import RouteAccess, RouteGuard
from course_resilience.core.config.constants import HEADER_AUTHORIZATION
from course_resilience.core.logging.logger import get_logger

logger = get_logger(__name__)

IdentityResolver = Callable[[Request], Awaitable[tuple[str | None, TokenSource]]]


async def default_identity_resolver(request: Request) -> tuple[str | None, TokenSource]:
    principal_id = getattr(request.state, "principal_id", None)
    authorization = request.headers.get(HEADER_AUTHORIZATION, "")
    token = authorization[7:] if authorization.lower().startswith("bearer ") else None
    return principal_id, StaticTokenProvider(token)


class RoleGuardMiddleware(BaseHTTPMiddleware):
    """Route access enforcement for page requests."""

    def __init__(
        self,
        app,
        guard: RouteGuard | None = None,
        identity_resolver: IdentityResolver | None = None,
    ):
        """
        Args:
            app: The ASGI application
            guard: Decision logic, a default RouteGuard when omitted
            identity_resolver: Coroutine returning (principal_id, token source)
        """
        super().__init__(app)
        self.guard = guard or RouteGuard()
        self.identity_resolver = identity_resolver or default_identity_resolver

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        principal_id, tokens = await self.identity_resolver(request)
        decision = await self.guard.decide(request.url.path, principal_id, tokens)

        if decision.is_redirect:
            logger.info(
                "Route access redirected",
                path=request.url.path,
                access=decision.access.value,
                redirect_to=decision.redirect_to,
            )
            return RedirectResponse(decision.redirect_to, status_code=307)

        request.state.role = decision.role
        request.state.role_degraded = decision.access is RouteAccess.ALLOW_DEGRADED

        if decision.warning:
            query = request.scope.get("query_string", b"")
            warning = decision.warning.encode("latin-1")
            request.scope["query_string"] = query + b"&" + warning if query else warning

        return await call_next(request)
