"""
User and Organization repositories.
"""
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import update, case
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from dietsaas.core.clock import utcnow
from dietsaas.models.user import User, Organization
from dietsaas.models.activity import ConsentRecord
from dietsaas.models.organization import OrganizationSettings
from dietsaas.repositories.base import BaseRepository


class UserRepository(BaseRepository[User]):
    """Repository for User operations."""

    def __init__(self, session: AsyncSession):
        super().__init__(User, session)

    async def get_by_email(self, email: str) -> Optional[User]:
        """Get user by email."""
        query = select(User).where(User.email == email)
        result = await self.session.exec(query)
        return result.first()

    async def get_by_national_id(self, national_id: str) -> Optional[User]:
        query = select(User).where(User.national_id == national_id)
        result = await self.session.exec(query)
        return result.first()

    async def get_by_valid_reset_token(self, token: str) -> Optional[User]:
        """User holding an unexpired password reset token."""
        query = select(User).where(
            User.reset_password_token == token,
            User.reset_password_expires > utcnow()
        )
        result = await self.session.exec(query)
        return result.first()

    async def get_by_valid_verification_token(self, token: str) -> Optional[User]:
        """User holding an unexpired email verification token."""
        query = select(User).where(
            User.email_verification_token == token,
            User.email_verification_expires > utcnow()
        )
        result = await self.session.exec(query)
        return result.first()

    async def create_with_organization(
        self,
        organization: Organization,
        user: User,
        consent: ConsentRecord,
    ) -> tuple[User, Organization]:
        """
        Create an organization, its owner, its default settings and the
        owner's consent record in one transaction. Nothing is persisted if
        any insert fails.
        """
        try:
            self.session.add(organization)
            await self.session.flush()  # Get organization.id without committing

            self.session.add(OrganizationSettings(organization_id=organization.id))

            user.organization_id = organization.id
            self.session.add(user)
            await self.session.flush()

            consent.organization_id = organization.id
            consent.subject_id = user.id
            self.session.add(consent)

            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        await self.session.refresh(organization)
        await self.session.refresh(user)
        return user, organization

    async def record_login(
        self,
        user: User,
        ip_address: Optional[str],
        browser: Optional[str],
        device: Optional[str],
        os: Optional[str],
    ) -> User:
        """Store last-login metadata after a successful login."""
        user.last_login_at = utcnow()
        user.last_login_ip = ip_address
        user.last_login_browser = browser
        user.last_login_device = device
        user.last_login_os = os
        return await self.save(user)

    async def set_password(self, user: User, password_hash: str) -> User:
        """Store a new password hash and burn any pending reset token."""
        user.password_hash = password_hash
        user.reset_password_token = None
        user.reset_password_expires = None
        return await self.save(user)

    async def set_reset_token(self, user: User, token: str, expires_at: datetime) -> User:
        user.reset_password_token = token
        user.reset_password_expires = expires_at
        return await self.save(user)

    async def set_verification_token(self, user: User, token: str, expires_at: datetime) -> User:
        user.email_verification_token = token
        user.email_verification_expires = expires_at
        return await self.save(user)

    async def mark_email_verified(self, user: User) -> User:
        user.email_verified = True
        user.email_verified_at = utcnow()
        user.email_verification_token = None
        user.email_verification_expires = None
        return await self.save(user)

    async def unlock(self, user_id: uuid.UUID) -> bool:
        """Admin action: clear the failed-login counter and any lock."""
        user = await self.get(user_id)
        if not user:
            return False
        user.failed_login_attempts = 0
        user.locked_until = None
        await self.save(user)
        return True

    def organization_members_query(self, organization_id: uuid.UUID, role: Optional[str] = None):
        query = select(User).where(User.organization_id == organization_id)
        if role:
            query = query.where(User.role == role)
        return query.order_by(User.created_at.desc())


class OrganizationRepository(BaseRepository[Organization]):
    """Repository for Organization operations."""

    def __init__(self, session: AsyncSession):
        super().__init__(Organization, session)

    async def get_current(self, organization_id: uuid.UUID) -> Optional[Organization]:
        """Load the row from the database, overwriting any stale in-session copy."""
        query = (
            select(Organization)
            .where(Organization.id == organization_id)
            .execution_options(populate_existing=True)
        )
        result = await self.session.exec(query)
        return result.first()

    async def list_newest_first(self) -> list[Organization]:
        result = await self.session.exec(select(Organization).order_by(Organization.created_at.desc()))
        return list(result.all())

    async def get_by_subdomain(self, subdomain: str) -> Optional[Organization]:
        query = select(Organization).where(Organization.subdomain == subdomain)
        result = await self.session.exec(query)
        return result.first()

    async def get_by_custom_domain(
        self,
        domain: str,
        exclude_id: Optional[uuid.UUID] = None
    ) -> Optional[Organization]:
        query = select(Organization).where(Organization.custom_domain == domain)
        if exclude_id:
            query = query.where(Organization.id != exclude_id)
        result = await self.session.exec(query)
        return result.first()

    async def increment_counter(self, organization_id: uuid.UUID, column: str, amount: int) -> None:
        """Single-statement increment; relies on the database's row atomicity."""
        counter = getattr(Organization, column)
        await self.session.execute(
            update(Organization)
            .where(Organization.id == organization_id)
            .values({column: counter + amount})
        )
        await self.session.commit()

    async def decrement_counter(self, organization_id: uuid.UUID, column: str, amount: int) -> None:
        """Single-statement decrement, floored at zero."""
        counter = getattr(Organization, column)
        await self.session.execute(
            update(Organization)
            .where(Organization.id == organization_id)
            .values({column: case((counter - amount < 0, 0), else_=counter - amount)})
        )
        await self.session.commit()

    async def reset_ai_queries(self, organization_id: uuid.UUID, now: datetime) -> None:
        await self.session.execute(
            update(Organization)
            .where(Organization.id == organization_id)
            .values(current_ai_queries=0, ai_queries_reset_at=now)
        )
        await self.session.commit()
