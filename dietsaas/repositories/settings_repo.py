"""
Organization settings and branding repositories.
"""
import uuid
from typing import Optional

from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from dietsaas.models.organization import OrganizationBranding, OrganizationSettings
from dietsaas.repositories.base import BaseRepository


class OrganizationSettingsRepository(BaseRepository[OrganizationSettings]):

    def __init__(self, session: AsyncSession):
        super().__init__(OrganizationSettings, session)

    async def get_by_organization(self, organization_id: uuid.UUID) -> Optional[OrganizationSettings]:
        query = select(OrganizationSettings).where(OrganizationSettings.organization_id == organization_id)
        result = await self.session.exec(query)
        return result.first()


class OrganizationBrandingRepository(BaseRepository[OrganizationBranding]):

    def __init__(self, session: AsyncSession):
        super().__init__(OrganizationBranding, session)

    async def get_by_organization(self, organization_id: uuid.UUID) -> Optional[OrganizationBranding]:
        query = select(OrganizationBranding).where(OrganizationBranding.organization_id == organization_id)
        result = await self.session.exec(query)
        return result.first()

    async def get_or_create(self, organization_id: uuid.UUID) -> OrganizationBranding:
        """Branding row of an organization, created with the default look if missing."""
        branding = await self.get_by_organization(organization_id)
        if branding:
            return branding
        return await self.create({"organization_id": organization_id})
