"""
Session repository for refresh-token backed sessions.
"""
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import update, func
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from dietsaas.core.clock import utcnow
from dietsaas.models.token import UserSession
from dietsaas.repositories.base import BaseRepository


class UserSessionRepository(BaseRepository[UserSession]):
    """Repository for UserSession operations."""

    def __init__(self, session: AsyncSession):
        super().__init__(UserSession, session)

    async def get_by_refresh_token(self, refresh_token: str) -> Optional[UserSession]:
        """Get session by refresh token string."""
        query = select(UserSession).where(UserSession.refresh_token == refresh_token)
        result = await self.session.exec(query)
        return result.first()

    async def mark_invalid(self, db_session: UserSession) -> UserSession:
        db_session.is_valid = False
        return await self.save(db_session)

    async def touch(self, db_session: UserSession, access_token: str) -> UserSession:
        """Store the newly minted access token and bump last activity."""
        db_session.access_token = access_token
        db_session.last_activity_at = utcnow()
        return await self.save(db_session)

    async def invalidate_for_user(
        self,
        user_id: uuid.UUID,
        refresh_token: Optional[str] = None,
        except_refresh_token: Optional[str] = None,
    ) -> int:
        """
        Mark valid sessions of a user invalid.

        Args:
            user_id: Owner of the sessions
            refresh_token: Only touch the session holding this token
            except_refresh_token: Leave the session holding this token alone

        Returns:
            Number of sessions invalidated
        """
        stmt = update(UserSession).where(
            UserSession.user_id == user_id,
            UserSession.is_valid == True
        )
        if refresh_token is not None:
            stmt = stmt.where(UserSession.refresh_token == refresh_token)
        if except_refresh_token is not None:
            stmt = stmt.where(UserSession.refresh_token != except_refresh_token)

        result = await self.session.execute(
            stmt.values(is_valid=False).execution_options(synchronize_session="fetch")
        )
        await self.session.commit()
        return result.rowcount or 0

    async def count_active(self, user_id: uuid.UUID, now: Optional[datetime] = None) -> int:
        """Valid, unexpired sessions of a user."""
        query = select(func.count()).select_from(UserSession).where(
            UserSession.user_id == user_id,
            UserSession.is_valid == True,
            UserSession.expires_at > (now or utcnow())
        )
        result = await self.session.exec(query)
        return result.one()
