"""
Route Access Guard

Pure decision logic for page routes: given a path and who is asking, decide
whether to allow, redirect or deny. Transport concerns (reading cookies,
building responses) live in RoleGuardMiddleware.

STAGE-3: Route decision

Decision table (first match wins):
    signed in  + auth route (sign-in, sign-up, ...)   -> REDIRECT_HOME
    public route, not protected                       -> ALLOW
    anonymous  + protected route                      -> REDIRECT_SIGN_IN
    signed in  + instructor route, role INSTRUCTOR    -> ALLOW
    signed in  + instructor route, role indeterminate -> ALLOW_DEGRADED
    signed in  + instructor route, other role         -> DENY_INSTRUCTOR_REQUIRED
    anything else                                     -> ALLOW

The role is only resolved for instructor routes.
"""

from dataclasses import dataclass
from enum import Enum
from urllib.parse import urlencode

from course_resilience.application.services.role_service import (
    RoleResolution,
    RoleService,
    TokenSource,
)
from course_resilience.core.config.constants import (
    AUTH_ROUTE_PREFIXES,
    INSTRUCTOR_ROUTE_PREFIXES,
    PROTECTED_ROUTE_PREFIXES,
    PUBLIC_ROUTE_PREFIXES,
    SERVER_WARNING_CONNECTIVITY,
    SERVER_WARNING_PARAM,
    Role,
    Stage,
)
from course_resilience.core.logging.logger import get_logger

logger = get_logger(__name__)

SIGN_IN_PATH = "/sign-in"
HOME_PATH = "/"
ACCESS_DENIED_PATH = "/?" + urlencode({"error": "access-denied", "message": "instructor-required"})


class RouteAccess(str, Enum):
    ALLOW = "allow"
    ALLOW_DEGRADED = "allow_degraded"
    REDIRECT_SIGN_IN = "redirect_sign_in"
    REDIRECT_HOME = "redirect_home"
    DENY_INSTRUCTOR_REQUIRED = "deny_instructor_required"


def _matches(path: str, prefixes: tuple[str, ...]) -> bool:
    return any(path == prefix or path.startswith(prefix.rstrip("/") + "/") for prefix in prefixes)


@dataclass(frozen=True)
class RouteClassification:
    is_public: bool
    is_auth: bool
    is_protected: bool
    is_instructor_only: bool


def classify_route(path: str) -> RouteClassification:
    return RouteClassification(
        is_public=path == HOME_PATH or _matches(path, PUBLIC_ROUTE_PREFIXES),
        is_auth=_matches(path, AUTH_ROUTE_PREFIXES),
        is_protected=_matches(path, PROTECTED_ROUTE_PREFIXES),
        is_instructor_only=_matches(path, INSTRUCTOR_ROUTE_PREFIXES),
    )


@dataclass(frozen=True)
class AccessDecision:
    access: RouteAccess
    redirect_to: str | None = None
    role: str | None = None
    warning: str | None = None

    @property
    def is_redirect(self) -> bool:
        return self.redirect_to is not None


class RouteGuard:
    def __init__(self, role_service: RoleService | None = None):
        self.role_service = role_service or RoleService()

    async def decide(
        self,
        path: str,
        principal_id: str | None,
        tokens: TokenSource = None,
    ) -> AccessDecision:
        """
        Decide access for ``path``.

        Args:
            path: Request path, without query string
            principal_id: Signed-in user id, None when anonymous
            tokens: Token source for the role lookup

        Returns:
            AccessDecision
        """
        route = classify_route(path)
        decision = await self._decide(path, route, principal_id, tokens)
        logger.debug(
            "Route decision",
            stage=Stage.ROUTE_DECISION.value,
            path=path,
            signed_in=principal_id is not None,
            access=decision.access.value,
            role=decision.role,
        )
        return decision

    async def _decide(
        self,
        path: str,
        route: RouteClassification,
        principal_id: str | None,
        tokens: TokenSource,
    ) -> AccessDecision:
        if principal_id and route.is_auth:
            return AccessDecision(RouteAccess.REDIRECT_HOME, redirect_to=HOME_PATH)

        if route.is_public and not route.is_protected:
            return AccessDecision(RouteAccess.ALLOW)

        if not principal_id:
            if route.is_protected:
                return AccessDecision(
                    RouteAccess.REDIRECT_SIGN_IN,
                    redirect_to=f"{SIGN_IN_PATH}?{urlencode({'redirect_url': path})}",
                )
            return AccessDecision(RouteAccess.ALLOW)

        if not route.is_instructor_only:
            return AccessDecision(RouteAccess.ALLOW)

        resolution: RoleResolution = await self.role_service.resolve(principal_id, tokens)
        if resolution.role is None:
            logger.warning(
                "Instructor route allowed with indeterminate role",
                stage=Stage.ROUTE_DECISION.value,
                path=path,
                principal_id=principal_id,
            )
            return AccessDecision(
                RouteAccess.ALLOW_DEGRADED,
                warning=f"{SERVER_WARNING_PARAM}={SERVER_WARNING_CONNECTIVITY}",
            )
        if resolution.role != Role.INSTRUCTOR.value:
            return AccessDecision(
                RouteAccess.DENY_INSTRUCTOR_REQUIRED,
                redirect_to=ACCESS_DENIED_PATH,
                role=resolution.role,
            )
        return AccessDecision(RouteAccess.ALLOW, role=resolution.role)
