"""
Organization service - staff membership, usage, custom domains,
settings and branding.
"""
import logging
import uuid
from typing import Optional

from sqlmodel.ext.asyncio.session import AsyncSession

from dietsaas.config import settings
from dietsaas.core.client_info import ClientInfo
from dietsaas.core.exceptions import ConflictError, NotFoundError
from dietsaas.core.pagination import PaginationParams, paginate_query
from dietsaas.core.security import generate_secure_token, generate_temporary_password, hash_password
from dietsaas.core.validators import mask_email
from dietsaas.models.activity import SecurityEvents
from dietsaas.models.organization import OrganizationBranding, OrganizationSettings
from dietsaas.models.user import Organization, OrganizationStatus, SubscriptionPlan, User, UserRole
from dietsaas.repositories.activity_repo import SecurityLogRepository
from dietsaas.repositories.settings_repo import OrganizationBrandingRepository, OrganizationSettingsRepository
from dietsaas.repositories.user_repo import OrganizationRepository, UserRepository
from dietsaas.schemas.organization import (
    AddCustomDomainRequest,
    InviteUserRequest,
    UpdateBrandingRequest,
    UpdateOrganizationSettingsRequest,
)
from dietsaas.services.auth_service import user_summary
from dietsaas.services.authorization import AuthUser
from dietsaas.services.email_service import get_email_service, send_in_background
from dietsaas.services.entitlements import EntitlementService

logger = logging.getLogger(__name__)

_BRANDING_KEPT_FIELDS = {"id", "organization_id", "created_at", "updated_at"}


def member_response(user: User) -> dict:
    return {
        "id": str(user.id),
        "email": user.email,
        "first_name": user.first_name,
        "last_name": user.last_name,
        "phone": user.phone,
        "role": UserRole(user.role).value,
        "is_active": user.is_active,
        "email_verified": user.email_verified,
        "last_login_at": user.last_login_at.isoformat() if user.last_login_at else None,
        "created_at": user.created_at.isoformat(),
    }


def organization_detail(
    organization: Organization,
    org_settings: Optional[OrganizationSettings],
    branding: Optional[OrganizationBranding],
) -> dict:
    return {
        "id": str(organization.id),
        "name": organization.name,
        "subdomain": organization.subdomain,
        "custom_domain": organization.custom_domain,
        "domain_verified": organization.domain_verified,
        "status": OrganizationStatus(organization.status).value,
        "plan": SubscriptionPlan(organization.plan).value,
        "trial_ends_at": organization.trial_ends_at.isoformat() if organization.trial_ends_at else None,
        "user_count": organization.current_users,
        "patient_count": organization.current_patients,
        "created_at": organization.created_at.isoformat(),
        "settings": org_settings.model_dump(mode="json") if org_settings else None,
        "branding": branding.model_dump(mode="json") if branding else None,
    }


class OrganizationService:
    """Service for organization management."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.user_repo = UserRepository(session)
        self.org_repo = OrganizationRepository(session)
        self.settings_repo = OrganizationSettingsRepository(session)
        self.branding_repo = OrganizationBrandingRepository(session)
        self.security_log = SecurityLogRepository(session)
        self.entitlements = EntitlementService(session)
        self.email_service = get_email_service()

    async def get_usage(self, organization_id: uuid.UUID) -> dict:
        return await self.entitlements.get_usage(organization_id)

    async def list_members(
        self,
        organization_id: uuid.UUID,
        params: PaginationParams,
        role: Optional[UserRole] = None
    ) -> dict:
        """Paginated staff of an organization, newest first."""
        query = self.user_repo.organization_members_query(organization_id, role)
        page = await paginate_query(self.session, query, params)
        page["items"] = [member_response(user) for user in page["items"]]
        return page

    async def invite_user(
        self,
        organization_id: uuid.UUID,
        inviter_id: uuid.UUID,
        data: InviteUserRequest,
        client: Optional[ClientInfo] = None
    ) -> dict:
        """
        Create a staff account with a temporary password and email it.

        The caller has already counted the new user against the `users`
        quota; that unit is handed back if the account cannot be created.
        """
        organization = await self.org_repo.get(organization_id)
        if not organization:
            await self.entitlements.decrement_usage(organization_id, "users")
            raise NotFoundError("Organization")

        if await self.user_repo.get_by_email(data.email):
            await self.entitlements.decrement_usage(organization_id, "users")
            raise ConflictError("User", "email")

        temporary_password = generate_temporary_password(12)
        user = await self.user_repo.create({
            "organization_id": organization_id,
            "email": data.email,
            "password_hash": hash_password(temporary_password),
            "first_name": data.first_name,
            "last_name": data.last_name,
            "phone": data.phone,
            "role": UserRole(data.role),
            "is_active": True,
        })

        inviter = await self.user_repo.get(inviter_id)
        inviter_name = f"{inviter.first_name} {inviter.last_name}" if inviter else organization.name
        send_in_background(
            self.email_service.send_invitation_email(
                user.email,
                user.first_name,
                inviter_name,
                organization.name,
                data.role,
                temporary_password,
            ),
            "invitation email"
        )

        await self.security_log.record(
            SecurityEvents.USER_INVITED,
            user_id=inviter_id,
            email=inviter.email if inviter else None,
            details={"invited_user_id": str(user.id), "role": data.role},
            ip_address=client.ip if client else None,
            user_agent=client.user_agent if client else None,
        )
        logger.info(f"User {mask_email(user.email)} invited to organization {organization_id}")

        response = {
            "message": "User invited. The temporary password was sent by email.",
            "user": user_summary(user),
        }
        if settings.DEV_MODE:
            response["_dev_temporary_password"] = temporary_password
        return response

    async def add_custom_domain(
        self,
        organization_id: uuid.UUID,
        actor_id: uuid.UUID,
        data: AddCustomDomainRequest,
        client: Optional[ClientInfo] = None
    ) -> dict:
        """Attach an unverified custom domain and hand out its DNS TXT record."""
        organization = await self.org_repo.get(organization_id)
        if not organization:
            raise NotFoundError("Organization")

        if await self.org_repo.get_by_custom_domain(data.domain, exclude_id=organization_id):
            raise ConflictError("Organization", "domain", data.domain)

        txt_record = f"diet-verify={generate_secure_token(24)}"
        organization.custom_domain = data.domain
        organization.domain_verified = False
        organization.dns_txt_record = txt_record
        await self.org_repo.save(organization)

        await self.security_log.record(
            SecurityEvents.DOMAIN_CHANGED,
            user_id=actor_id,
            details={"organization_id": str(organization_id), "custom_domain": data.domain},
            ip_address=client.ip if client else None,
            user_agent=client.user_agent if client else None,
        )

        return {
            "message": "Domain added. Configure your DNS records.",
            "domain": data.domain,
            "txt_record": txt_record,
            "instructions": [
                "Add the following TXT record to your DNS settings:",
                f"Host: @ or {data.domain}",
                "Type: TXT",
                f"Value: {txt_record}",
                "",
                "Also point the domain's A or CNAME record to our servers.",
            ],
        }

    async def remove_custom_domain(
        self,
        organization_id: uuid.UUID,
        actor_id: uuid.UUID,
        client: Optional[ClientInfo] = None
    ) -> None:
        organization = await self.org_repo.get(organization_id)
        if not organization:
            raise NotFoundError("Organization")

        previous = organization.custom_domain
        organization.custom_domain = None
        organization.domain_verified = False
        organization.dns_txt_record = None
        await self.org_repo.save(organization)

        await self.security_log.record(
            SecurityEvents.DOMAIN_CHANGED,
            user_id=actor_id,
            details={"organization_id": str(organization_id), "removed_domain": previous},
            ip_address=client.ip if client else None,
            user_agent=client.user_agent if client else None,
        )

    async def verify_custom_domain(
        self,
        organization_id: uuid.UUID,
        actor_id: uuid.UUID,
        client: Optional[ClientInfo] = None
    ) -> dict:
        """
        Report whether the custom domain is verified.

        No DNS query is made. In DEV_MODE the domain is marked verified
        straight away; otherwise the expected record is handed back.
        """
        organization = await self.org_repo.get(organization_id)
        if not organization or not organization.custom_domain:
            raise NotFoundError("Custom domain")

        if organization.domain_verified:
            return {"verified": True, "message": "Domain already verified"}

        if settings.DEV_MODE:
            organization.domain_verified = True
            await self.org_repo.save(organization)
            await self.security_log.record(
                SecurityEvents.DOMAIN_VERIFIED,
                user_id=actor_id,
                details={"organization_id": str(organization_id), "custom_domain": organization.custom_domain},
                ip_address=client.ip if client else None,
                user_agent=client.user_agent if client else None,
            )
            logger.info(f"Custom domain {organization.custom_domain} verified for organization {organization_id}")
            return {"verified": True, "message": "Domain verified"}

        return {
            "verified": False,
            "message": "TXT record not found yet. DNS changes can take up to 48 hours.",
            "expected_txt_record": organization.dns_txt_record,
        }

    # =========================================================================
    # SETTINGS AND BRANDING
    # =========================================================================

    async def list_organizations(self, user: AuthUser) -> list[dict]:
        """Every organization for a super admin, otherwise the caller's own."""
        if user.role == UserRole.SUPER_ADMIN:
            organizations = await self.org_repo.list_newest_first()
        else:
            organization = await self.org_repo.get(user.organization_id)
            if not organization:
                raise NotFoundError("Organization")
            organizations = [organization]

        return [
            organization_detail(
                organization,
                await self.settings_repo.get_by_organization(organization.id),
                await self.branding_repo.get_by_organization(organization.id),
            )
            for organization in organizations
        ]

    async def get_settings(self, organization_id: uuid.UUID) -> dict:
        org_settings = await self.settings_repo.get_by_organization(organization_id)
        if not org_settings:
            raise NotFoundError("Organization settings")
        return org_settings.model_dump(mode="json")

    async def update_settings(
        self,
        organization_id: uuid.UUID,
        actor_id: uuid.UUID,
        data: UpdateOrganizationSettingsRequest,
        client: Optional[ClientInfo] = None
    ) -> dict:
        org_settings = await self.settings_repo.get_by_organization(organization_id)
        if not org_settings:
            raise NotFoundError("Organization settings")

        org_settings = await self.settings_repo.apply_changes(org_settings, data)
        await self.security_log.record(
            SecurityEvents.SETTINGS_UPDATED,
            user_id=actor_id,
            details={
                "organization_id": str(organization_id),
                "fields": sorted(data.model_dump(exclude_unset=True)),
            },
            ip_address=client.ip if client else None,
            user_agent=client.user_agent if client else None,
        )
        return org_settings.model_dump(mode="json")

    async def get_branding(self, organization_id: uuid.UUID) -> dict:
        branding = await self.branding_repo.get_or_create(organization_id)
        return branding.model_dump(mode="json")

    async def update_branding(
        self,
        organization_id: uuid.UUID,
        actor_id: uuid.UUID,
        data: UpdateBrandingRequest,
        client: Optional[ClientInfo] = None
    ) -> dict:
        branding = await self.branding_repo.get_or_create(organization_id)
        branding = await self.branding_repo.apply_changes(branding, data)

        await self.security_log.record(
            SecurityEvents.BRANDING_UPDATED,
            user_id=actor_id,
            details={
                "organization_id": str(organization_id),
                "fields": sorted(data.model_dump(exclude_unset=True)),
            },
            ip_address=client.ip if client else None,
            user_agent=client.user_agent if client else None,
        )
        return branding.model_dump(mode="json")

    async def reset_branding(
        self,
        organization_id: uuid.UUID,
        actor_id: uuid.UUID,
        client: Optional[ClientInfo] = None
    ) -> dict:
        """Put every branding field back to its default."""
        branding = await self.branding_repo.get_or_create(organization_id)
        defaults = OrganizationBranding(organization_id=organization_id)
        for field in OrganizationBranding.model_fields:
            if field not in _BRANDING_KEPT_FIELDS:
                setattr(branding, field, getattr(defaults, field))
        branding = await self.branding_repo.save(branding)

        await self.security_log.record(
            SecurityEvents.BRANDING_RESET,
            user_id=actor_id,
            details={"organization_id": str(organization_id)},
            ip_address=client.ip if client else None,
            user_agent=client.user_agent if client else None,
        )
        return branding.model_dump(mode="json")
