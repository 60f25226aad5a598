"""
Security log repository. Write-only from the application's point of view.
"""
import logging
import uuid
from typing import Optional

from sqlmodel.ext.asyncio.session import AsyncSession

from dietsaas.models.activity import SecurityLog
from dietsaas.repositories.base import BaseRepository

logger = logging.getLogger(__name__)


class SecurityLogRepository(BaseRepository[SecurityLog]):
    """Repository for SecurityLog inserts."""

    def __init__(self, session: AsyncSession):
        super().__init__(SecurityLog, session)

    async def record(
        self,
        event: str,
        severity: str = "low",
        user_id: Optional[uuid.UUID] = None,
        email: Optional[str] = None,
        details: Optional[dict] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        blocked: bool = False
    ) -> SecurityLog:
        """Append a security event."""
        entry = SecurityLog(
            event=event,
            severity=severity,
            user_id=user_id,
            email=email,
            details=details or {},
            ip_address=ip_address,
            user_agent=user_agent,
            blocked=blocked
        )
        self.session.add(entry)
        await self.session.commit()
        logger.debug(f"Security event recorded: {event} ({severity})")
        return entry
