"""
API dependencies - shared across all routes.

Protected endpoints declare an EndpointGuard, which runs the request
pipeline: authenticate, rate-limit, authorize role, authorize tenant,
check plan feature, count usage.
"""
import logging
import uuid
from dataclasses import dataclass
from typing import Iterable, Optional

from fastapi import Depends, Request, Response
from sqlmodel.ext.asyncio.session import AsyncSession

from dietsaas.config import settings
from dietsaas.core.client_info import ClientInfo, get_client_info
from dietsaas.core.exceptions import NotFoundError, RateLimitedError
from dietsaas.core.rate_limiter import get_rate_limiter
from dietsaas.database import get_session
from dietsaas.models.user import UserRole
from dietsaas.services.authorization import AuthorizationGate, AuthUser, require_role
from dietsaas.services.entitlements import EntitlementService

logger = logging.getLogger(__name__)

ACCESS_TOKEN_COOKIE = "accessToken"
REFRESH_TOKEN_COOKIE = "refreshToken"

OWNER_ROLES = (UserRole.ORGANIZATION_OWNER, UserRole.SUPER_ADMIN)


@dataclass
class RequestContext:
    """What a protected handler gets once the pipeline has passed."""
    user: AuthUser
    organization_id: uuid.UUID
    client: ClientInfo


def enforce_rate_limit(key: str, limit: int, window_seconds: float) -> None:
    if not get_rate_limiter().check(key, limit, window_seconds):
        logger.warning(f"Rate limit exceeded for {key}")
        raise RateLimitedError()


class RateLimit:
    """
    Per-IP rate limit for public endpoints.

    Usage:
        @router.post("/login", dependencies=[Depends(RateLimit("login", 10, 60))])
    """

    def __init__(self, scope: str, limit: int, window_seconds: float):
        self.scope = scope
        self.limit = limit
        self.window_seconds = window_seconds

    async def __call__(self, request: Request) -> None:
        client = get_client_info(request)
        enforce_rate_limit(f"{self.scope}:{client.ip}", self.limit, self.window_seconds)


async def get_current_user(
    request: Request,
    session: AsyncSession = Depends(get_session)
) -> AuthUser:
    """Get current authenticated user from the access cookie or bearer header."""
    return await AuthorizationGate(session).authenticate(
        request.cookies.get(ACCESS_TOKEN_COOKIE),
        request.headers.get("authorization"),
    )


class EndpointGuard:
    """
    Composable guard for protected endpoints.

    Args:
        roles: Roles allowed to call the endpoint (any role when None)
        rate_limit: (scope, limit, window_seconds), keyed per user
        organization_param: Path parameter naming the target organization
        feature: Plan feature the target organization must have
        usage: Counted resource charged one unit per call
    """

    def __init__(
        self,
        roles: Optional[Iterable[UserRole]] = None,
        rate_limit: Optional[tuple] = None,
        organization_param: Optional[str] = None,
        feature: Optional[str] = None,
        usage: Optional[str] = None,
    ):
        self.roles = tuple(roles) if roles else None
        self.rate_limit = rate_limit
        self.organization_param = organization_param
        self.feature = feature
        self.usage = usage

    def _target_organization(self, request: Request, user: AuthUser) -> uuid.UUID:
        if not self.organization_param:
            return user.organization_id
        raw = request.path_params.get(self.organization_param)
        try:
            return uuid.UUID(str(raw))
        except ValueError:
            raise NotFoundError("Organization", raw)

    async def __call__(
        self,
        request: Request,
        session: AsyncSession = Depends(get_session)
    ) -> RequestContext:
        gate = AuthorizationGate(session)
        user = await gate.authenticate(
            request.cookies.get(ACCESS_TOKEN_COOKIE),
            request.headers.get("authorization"),
        )

        if self.rate_limit:
            scope, limit, window_seconds = self.rate_limit
            enforce_rate_limit(f"{scope}:{user.id}", limit, window_seconds)

        if self.roles:
            require_role(user, self.roles)

        organization_id = self._target_organization(request, user)
        if self.organization_param:
            await gate.require_organization_access(user.id, organization_id)

        if self.feature or self.usage:
            entitlements = EntitlementService(session)
            if self.feature:
                await entitlements.require_feature(organization_id, self.feature)
            if self.usage:
                await entitlements.check_and_increment_usage(organization_id, self.usage)

        return RequestContext(user=user, organization_id=organization_id, client=get_client_info(request))


# =============================================================================
# COOKIES
# =============================================================================

def _cookie_options() -> dict:
    return {
        "httponly": True,
        "secure": settings.is_production,
        "samesite": "lax",
        "path": "/",
    }


def set_auth_cookies(
    response: Response,
    access_token: str,
    refresh_token: Optional[str],
    max_age: int
) -> None:
    response.set_cookie(ACCESS_TOKEN_COOKIE, access_token, max_age=max_age, **_cookie_options())
    if refresh_token:
        response.set_cookie(REFRESH_TOKEN_COOKIE, refresh_token, max_age=max_age, **_cookie_options())


def clear_auth_cookies(response: Response) -> None:
    options = _cookie_options()
    for name in (ACCESS_TOKEN_COOKIE, REFRESH_TOKEN_COOKIE):
        response.delete_cookie(
            name,
            path=options["path"],
            secure=options["secure"],
            httponly=options["httponly"],
            samesite=options["samesite"],
        )
