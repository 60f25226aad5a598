"""
Account lockout guard.

A user is OPEN while failed_login_attempts < MAX_LOGIN_ATTEMPTS and
LOCKED while locked_until lies in the future. Lock expiry is lazy: an
elapsed lock is simply ignored on the next attempt.
"""
import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlmodel.ext.asyncio.session import AsyncSession

from dietsaas.config import settings
from dietsaas.core.clock import utcnow
from dietsaas.core.exceptions import AccountLockedError
from dietsaas.core.validators import mask_email
from dietsaas.models.user import User
from dietsaas.repositories.user_repo import UserRepository

logger = logging.getLogger(__name__)


@dataclass
class LockoutResult:
    attempts: int
    locked: bool
    remaining_attempts: int


class LockoutGuard:
    """Tracks failed logins and temporary locks per user."""

    def __init__(
        self,
        session: AsyncSession,
        max_attempts: Optional[int] = None,
        lock_duration: Optional[timedelta] = None,
    ):
        self.user_repo = UserRepository(session)
        self.max_attempts = max_attempts or settings.MAX_LOGIN_ATTEMPTS
        self.lock_duration = lock_duration or timedelta(minutes=settings.LOCK_DURATION_MINUTES)

    @staticmethod
    def is_locked(user: User, now: Optional[datetime] = None) -> bool:
        return user.locked_until is not None and user.locked_until > (now or utcnow())

    @staticmethod
    def minutes_remaining(user: User, now: Optional[datetime] = None) -> int:
        if user.locked_until is None:
            return 0
        seconds = (user.locked_until - (now or utcnow())).total_seconds()
        return max(0, math.ceil(seconds / 60))

    def ensure_not_locked(self, user: User, now: Optional[datetime] = None) -> None:
        """Reject a locked account before its password is even looked at."""
        if self.is_locked(user, now):
            minutes = self.minutes_remaining(user, now)
            logger.warning(f"Login rejected for locked account {mask_email(user.email)}")
            raise AccountLockedError(minutes)

    async def register_failure(self, user: User, now: Optional[datetime] = None) -> LockoutResult:
        """Count a wrong password; lock the account once the limit is reached."""
        user.failed_login_attempts += 1
        locked = user.failed_login_attempts >= self.max_attempts
        if locked:
            user.locked_until = (now or utcnow()) + self.lock_duration
            logger.warning(
                f"Account {mask_email(user.email)} locked after "
                f"{user.failed_login_attempts} failed attempts"
            )
        await self.user_repo.save(user)

        return LockoutResult(
            attempts=user.failed_login_attempts,
            locked=locked,
            remaining_attempts=max(0, self.max_attempts - user.failed_login_attempts),
        )

    async def register_success(self, user: User) -> None:
        """A correct password clears the counter and any elapsed lock."""
        if user.failed_login_attempts or user.locked_until:
            user.failed_login_attempts = 0
            user.locked_until = None
            await self.user_repo.save(user)
