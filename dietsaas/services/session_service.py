"""
Session manager - refresh-token backed sessions.
"""
import logging
import uuid
from datetime import datetime
from typing import Optional

from sqlmodel.ext.asyncio.session import AsyncSession

from dietsaas.core.clock import utcnow
from dietsaas.core.client_info import ClientInfo
from dietsaas.core.exceptions import UnauthorizedError
from dietsaas.core.security import TokenClaims, issue_access_token
from dietsaas.models.token import UserSession
from dietsaas.models.user import UserRole
from dietsaas.repositories.token_repo import UserSessionRepository
from dietsaas.repositories.user_repo import UserRepository

logger = logging.getLogger(__name__)


class SessionManager:
    """Creates, refreshes and revokes user sessions."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.session_repo = UserSessionRepository(session)
        self.user_repo = UserRepository(session)

    async def create_session(
        self,
        user_id: uuid.UUID,
        refresh_token: str,
        access_token: str,
        client: Optional[ClientInfo],
        expires_at: datetime
    ) -> UserSession:
        """Insert a new valid session. Existing sessions are left alone."""
        return await self.session_repo.create({
            "user_id": user_id,
            "refresh_token": refresh_token,
            "access_token": access_token,
            "ip_address": client.ip if client else None,
            "user_agent": client.user_agent if client else None,
            "browser": client.browser if client else None,
            "device": client.device if client else None,
            "os": client.os if client else None,
            "expires_at": expires_at,
        })

    async def refresh(self, refresh_token: str, now: Optional[datetime] = None) -> str:
        """
        Exchange a refresh token for a new access token.

        The refresh token itself is not rotated. An expired session is
        marked invalid for good.

        Raises:
            UnauthorizedError: unknown, invalidated or expired session, or
                inactive user
        """
        db_session = await self.session_repo.get_by_refresh_token(refresh_token)
        if not db_session:
            raise UnauthorizedError("Invalid refresh token")

        if not db_session.is_valid:
            raise UnauthorizedError("Session is no longer valid. Please log in again.")

        if db_session.expires_at < (now or utcnow()):
            await self.session_repo.mark_invalid(db_session)
            logger.info(f"Expired session {db_session.id} invalidated on refresh")
            raise UnauthorizedError("Session has expired. Please log in again.")

        user = await self.user_repo.get(db_session.user_id)
        if not user or not user.is_active:
            raise UnauthorizedError("User account is not active")

        access_token = issue_access_token(TokenClaims(
            subject_id=str(user.id),
            email=user.email,
            role=UserRole(user.role).value,
            organization_id=str(user.organization_id),
        ))
        await self.session_repo.touch(db_session, access_token)
        return access_token

    async def invalidate(self, user_id: uuid.UUID, refresh_token: str) -> int:
        """Invalidate the single session holding `refresh_token`; no-op if none."""
        return await self.session_repo.invalidate_for_user(user_id, refresh_token=refresh_token)

    async def invalidate_all(
        self,
        user_id: uuid.UUID,
        except_refresh_token: Optional[str] = None
    ) -> int:
        """Invalidate every valid session of the user, optionally keeping one."""
        count = await self.session_repo.invalidate_for_user(
            user_id, except_refresh_token=except_refresh_token
        )
        logger.info(f"Invalidated {count} sessions for user {user_id}")
        return count

    async def count_active(self, user_id: uuid.UUID) -> int:
        return await self.session_repo.count_active(user_id)
