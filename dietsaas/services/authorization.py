"""
Authorization gate: who is calling, what role they hold and which tenant
they may touch.
"""
import logging
import uuid
from typing import Iterable, Optional

from pydantic import BaseModel
from sqlmodel.ext.asyncio.session import AsyncSession

from dietsaas.core.exceptions import ForbiddenError, TokenInvalidError, UnauthorizedError
from dietsaas.core.security import verify_access_token
from dietsaas.models.user import UserRole
from dietsaas.repositories.user_repo import UserRepository

logger = logging.getLogger(__name__)


class AuthUser(BaseModel):
    """Minimal identity handed to protected endpoints."""
    id: uuid.UUID
    email: str
    role: UserRole
    organization_id: uuid.UUID


def extract_token(access_cookie: Optional[str], authorization_header: Optional[str]) -> Optional[str]:
    """Access token from the cookie, falling back to a bearer header."""
    if access_cookie:
        return access_cookie
    if authorization_header and authorization_header.startswith("Bearer "):
        return authorization_header[len("Bearer "):].strip() or None
    return None


def require_role(user: AuthUser, allowed_roles: Iterable[UserRole]) -> None:
    """Raise ForbiddenError unless the user's role is in `allowed_roles`."""
    if user.role not in set(allowed_roles):
        raise ForbiddenError("Forbidden - Insufficient permissions")


class AuthorizationGate:
    """Resolves identities and enforces tenant isolation."""

    def __init__(self, session: AsyncSession):
        self.user_repo = UserRepository(session)

    async def authenticate(
        self,
        access_cookie: Optional[str] = None,
        authorization_header: Optional[str] = None
    ) -> AuthUser:
        """
        Resolve the caller from the request credentials.

        Raises:
            UnauthorizedError: no token, invalid or expired token, unknown
                or inactive user
        """
        token = extract_token(access_cookie, authorization_header)
        if not token:
            raise UnauthorizedError("Unauthorized - No token provided")

        try:
            claims = verify_access_token(token)
            user_id = uuid.UUID(claims.subject_id)
        except (TokenInvalidError, ValueError):
            raise UnauthorizedError("Unauthorized - Invalid token")

        user = await self.user_repo.get(user_id)
        if not user or not user.is_active:
            raise UnauthorizedError("Unauthorized - User not found or inactive")

        return AuthUser(
            id=user.id,
            email=user.email,
            role=user.role,
            organization_id=user.organization_id,
        )

    async def has_organization_access(self, user_id: uuid.UUID, organization_id: uuid.UUID) -> bool:
        """Super admins reach every tenant; everyone else only their own."""
        user = await self.user_repo.get(user_id)
        if not user:
            return False

        if user.role == UserRole.SUPER_ADMIN:
            return True

        return user.organization_id == organization_id

    async def require_organization_access(self, user_id: uuid.UUID, organization_id: uuid.UUID) -> None:
        if not await self.has_organization_access(user_id, organization_id):
            logger.warning(f"Tenant access denied: user {user_id} -> organization {organization_id}")
            raise ForbiddenError("You do not have access to this organization")
