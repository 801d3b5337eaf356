"""
Role Resolution Service

Resolves a principal's role for access decisions, preferring the role cache
and falling back to a single bounded network lookup.

Lookup protocol:
    1. Fresh cache entry            -> return it, no network call
    2. Otherwise GET /api/me with the caller's bearer token, a bounded timeout
       and at most one retry
    3. Lookup succeeded             -> overwrite the cache entry, return role
    4. Lookup failed, stale entry   -> return the stale role (fail open)
    5. Lookup failed, nothing usable -> None ("role indeterminate")

STAGE-2: Role resolution

Every failure mode of step 2 (no token, token provider error, timeout,
non-2xx, body without ``role``) is treated the same way: lookup failed.
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol, runtime_checkable

from course_resilience.core.config.constants import (
    CONTENT_TYPE_JSON,
    ENDPOINT_ME,
    HEADER_ACCEPT,
    HEADER_AUTHORIZATION,
    Stage,
)
from course_resilience.core.config.settings import get_settings
from course_resilience.core.exceptions import RoleLookupError
from course_resilience.core.logging.logger import get_logger
from course_resilience.infrastructure.cache.role_cache import RoleCache, get_role_cache
from course_resilience.infrastructure.http.api_client import ApiClient, get_api_client
from course_resilience.infrastructure.http.models import RequestEnvelope
from course_resilience.infrastructure.monitoring.metrics_collector import get_metrics_collector

logger = get_logger(__name__)


@runtime_checkable
class TokenProvider(Protocol):
    """Identity-provider session: issues bearer tokens for the signed-in principal."""

    async def get_token(self) -> str | None: ...


class StaticTokenProvider:
    """TokenProvider over an already-known token."""

    def __init__(self, token: str | None):
        self._token = token

    async def get_token(self) -> str | None:
        return self._token


TokenSource = TokenProvider | Callable[[], Awaitable[str | None]] | str | None


class RoleSource(str, Enum):
    CACHE = "cache"
    NETWORK = "network"
    STALE_CACHE = "stale_cache"
    NONE = "none"


@dataclass(frozen=True)
class RoleResolution:
    role: str | None
    source: RoleSource

    @property
    def is_indeterminate(self) -> bool:
        return self.role is None

    @property
    def degraded(self) -> bool:
        """True when the answer did not come from a fresh cache entry or a live lookup."""
        return self.source in (RoleSource.STALE_CACHE, RoleSource.NONE)


def extract_role(payload: Any) -> str | None:
    """Read ``role`` from a bare payload or from one wrapped under ``data``."""
    if not isinstance(payload, dict):
        return None
    role = payload.get("role")
    if role is None and isinstance(payload.get("data"), dict):
        role = payload["data"].get("role")
    return role if isinstance(role, str) and role else None


class RoleService:
    """
    Cache-first role resolver.

    Usage:
        service = RoleService()
        resolution = await service.resolve("user_123", session)
        if resolution.role == Role.INSTRUCTOR:
            ...
    """

    def __init__(
        self,
        api_client: ApiClient | None = None,
        role_cache: RoleCache | None = None,
        lookup_timeout: float | None = None,
        lookup_retries: int | None = None,
    ):
        settings = get_settings()
        self._api_client = api_client
        self._role_cache = role_cache
        self.lookup_timeout = (
            settings.ROLE_LOOKUP_TIMEOUT if lookup_timeout is None else lookup_timeout
        )
        self.lookup_retries = min(
            1, settings.ROLE_LOOKUP_RETRIES if lookup_retries is None else lookup_retries
        )

    @property
    def api_client(self) -> ApiClient:
        if self._api_client is None:
            self._api_client = get_api_client()
        return self._api_client

    @property
    def role_cache(self) -> RoleCache:
        if self._role_cache is None:
            self._role_cache = get_role_cache()
        return self._role_cache

    async def get_role(self, principal_id: str, tokens: TokenSource = None) -> str | None:
        return (await self.resolve(principal_id, tokens)).role

    async def resolve(self, principal_id: str, tokens: TokenSource = None) -> RoleResolution:
        """
        Resolve a principal's role.

        Args:
            principal_id: Identity-provider user id
            tokens: TokenProvider, coroutine function, or raw token string

        Returns:
            RoleResolution; ``role`` is None when the role is indeterminate
        """
        resolution = await self._resolve(principal_id, tokens)
        get_metrics_collector().record_role_resolution(resolution.source.value)
        return resolution

    async def _resolve(self, principal_id: str, tokens: TokenSource) -> RoleResolution:
        cached = self.role_cache.get_fresh_role(principal_id)
        if cached is not None:
            logger.debug(
                "Role served from cache",
                stage=Stage.ROLE_CACHE_LOOKUP.value,
                principal_id=principal_id,
                role=cached,
            )
            return RoleResolution(cached, RoleSource.CACHE)

        try:
            role = await self._lookup(principal_id, tokens)
        except RoleLookupError as e:
            logger.warning(
                "Role lookup failed",
                stage=Stage.ROLE_NETWORK_LOOKUP.value,
                principal_id=principal_id,
                error=e.message,
                **e.details,
            )
        else:
            self.role_cache.set_role(principal_id, role)
            logger.info(
                "Role resolved from backend",
                stage=Stage.ROLE_NETWORK_LOOKUP.value,
                principal_id=principal_id,
                role=role,
            )
            return RoleResolution(role, RoleSource.NETWORK)

        stale = self.role_cache.get_role(principal_id)
        if stale is not None:
            logger.warning(
                "Using stale cached role",
                stage=Stage.ROLE_STALE_FALLBACK.value,
                principal_id=principal_id,
                role=stale,
            )
            return RoleResolution(stale, RoleSource.STALE_CACHE)

        logger.warning(
            "Role indeterminate",
            stage=Stage.ROLE_STALE_FALLBACK.value,
            principal_id=principal_id,
        )
        return RoleResolution(None, RoleSource.NONE)

    async def _get_token(self, tokens: TokenSource) -> str | None:
        if tokens is None or isinstance(tokens, str):
            return tokens
        try:
            if isinstance(tokens, TokenProvider):
                return await tokens.get_token()
            return await tokens()
        except Exception as e:
            raise RoleLookupError.from_exception(e, message="Token provider failed") from e

    async def _lookup(self, principal_id: str, tokens: TokenSource) -> str:
        token = await self._get_token(tokens)
        if not token:
            raise RoleLookupError("No token available", details={"reason": "no_token"})

        response = await self.api_client.request(
            RequestEnvelope(
                method="GET",
                path=ENDPOINT_ME,
                headers={
                    HEADER_AUTHORIZATION: f"Bearer {token}",
                    HEADER_ACCEPT: CONTENT_TYPE_JSON,
                },
                timeout=self.lookup_timeout,
                retries=self.lookup_retries,
            ),
            allow_fallback=False,
        )
        if not response.success:
            raise RoleLookupError(
                "Role endpoint request failed",
                details={
                    "error_kind": response.error.kind.value,
                    "status_code": response.error.status_code,
                },
            )

        role = extract_role(response.data)
        if role is None:
            raise RoleLookupError("Role missing from response", details={"reason": "no_role"})
        return role
