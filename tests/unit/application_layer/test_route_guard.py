"""
Unit Tests for Route Access Decisions
"""

from unittest.mock import AsyncMock

import pytest

from course_resilience.application.services.role_service import RoleResolution, RoleSource
from course_resilience.application.services.route_guard import (
    ACCESS_DENIED_PATH,
    RouteAccess,
    RouteGuard,
    classify_route,
)


def guard_with(role, source=RoleSource.NETWORK):
    role_service = AsyncMock()
    role_service.resolve.return_value = RoleResolution(role, source)
    return RouteGuard(role_service), role_service


@pytest.mark.unit
class TestClassifyRoute:
    """Test prefix matching."""

    @pytest.mark.parametrize(
        "path,public,protected,instructor",
        [
            ("/", True, False, False),
            ("/course-detail/abc", True, False, False),
            ("/my-learning", False, True, False),
            ("/dashboard/courses/1", False, True, True),
            ("/creator", False, True, True),
            ("/creators-hub", False, False, False),
        ],
    )
    def test_classification(self, path, public, protected, instructor):
        route = classify_route(path)

        assert route.is_public is public
        assert route.is_protected is protected
        assert route.is_instructor_only is instructor

    def test_auth_routes(self):
        assert classify_route("/sign-in").is_auth
        assert classify_route("/sso-callback/google").is_auth
        assert not classify_route("/profile").is_auth


@pytest.mark.unit
class TestRouteGuard:
    """Test the decision table."""

    @pytest.mark.asyncio
    async def test_signed_in_user_leaves_auth_routes(self):
        guard, _ = guard_with("STUDENT")

        decision = await guard.decide("/sign-in", "user_1")

        assert decision.access is RouteAccess.REDIRECT_HOME
        assert decision.redirect_to == "/"

    @pytest.mark.asyncio
    async def test_public_route_allowed_anonymously(self):
        guard, role_service = guard_with("STUDENT")

        decision = await guard.decide("/course-detail/42", None)

        assert decision.access is RouteAccess.ALLOW
        role_service.resolve.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_anonymous_user_sent_to_sign_in(self):
        guard, _ = guard_with("STUDENT")

        decision = await guard.decide("/my-learning/c1", None)

        assert decision.access is RouteAccess.REDIRECT_SIGN_IN
        assert decision.redirect_to == "/sign-in?redirect_url=%2Fmy-learning%2Fc1"

    @pytest.mark.asyncio
    async def test_protected_non_instructor_route_skips_role_lookup(self):
        guard, role_service = guard_with("STUDENT")

        decision = await guard.decide("/profile", "user_1")

        assert decision.access is RouteAccess.ALLOW
        role_service.resolve.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_instructor_allowed(self):
        guard, role_service = guard_with("INSTRUCTOR")

        decision = await guard.decide("/dashboard", "user_1", "tok")

        assert decision.access is RouteAccess.ALLOW
        assert decision.role == "INSTRUCTOR"
        role_service.resolve.assert_awaited_once_with("user_1", "tok")

    @pytest.mark.asyncio
    async def test_student_denied_instructor_route(self):
        guard, _ = guard_with("STUDENT")

        decision = await guard.decide("/creator/new", "user_1")

        assert decision.access is RouteAccess.DENY_INSTRUCTOR_REQUIRED
        assert decision.redirect_to == ACCESS_DENIED_PATH
        assert ACCESS_DENIED_PATH == "/?error=access-denied&message=instructor-required"

    @pytest.mark.asyncio
    async def test_indeterminate_role_fails_open_with_warning(self):
        guard, _ = guard_with(None, RoleSource.NONE)

        decision = await guard.decide("/dashboard", "user_1")

        assert decision.access is RouteAccess.ALLOW_DEGRADED
        assert not decision.is_redirect
        assert decision.warning == "server_warning=connectivity_issue"

    @pytest.mark.asyncio
    async def test_stale_instructor_role_still_allowed(self):
        guard, _ = guard_with("INSTRUCTOR", RoleSource.STALE_CACHE)

        decision = await guard.decide("/dashboard", "user_1")

        assert decision.access is RouteAccess.ALLOW
