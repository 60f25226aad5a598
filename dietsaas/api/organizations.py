"""
Organization API routes.
Tenant-scoped: usage, staff members, custom domains, settings and branding.
"""
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlmodel.ext.asyncio.session import AsyncSession

from dietsaas.database import get_session
from dietsaas.core.pagination import PaginationParams
from dietsaas.models.user import UserRole
from dietsaas.services.org_service import OrganizationService
from dietsaas.schemas.organization import (
    AddCustomDomainRequest,
    InviteUserRequest,
    UpdateBrandingRequest,
    UpdateOrganizationSettingsRequest,
)
from dietsaas.schemas.common import ERROR_RESPONSES, success_response, message_response
from dietsaas.services.authorization import AuthUser
from dietsaas.api.deps import OWNER_ROLES, EndpointGuard, RequestContext, get_current_user

router = APIRouter(prefix="/organizations", tags=["organizations"], responses=ERROR_RESPONSES)

tenant_member = EndpointGuard(organization_param="organization_id")
tenant_owner = EndpointGuard(roles=OWNER_ROLES, organization_param="organization_id")


@router.get("")
async def list_organizations(
    user: AuthUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session)
):
    """All organizations for a super admin, the caller's own otherwise."""
    organizations = await OrganizationService(session).list_organizations(user)
    return success_response(organizations)


@router.get("/{organization_id}/usage")
async def get_usage(
    organization_id: uuid.UUID,
    context: RequestContext = Depends(tenant_member),
    session: AsyncSession = Depends(get_session)
):
    """Current usage against plan limits."""
    usage = await OrganizationService(session).get_usage(context.organization_id)
    return success_response(usage)


@router.get("/{organization_id}/users")
async def list_users(
    organization_id: uuid.UUID,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    role: Optional[UserRole] = None,
    context: RequestContext = Depends(tenant_member),
    session: AsyncSession = Depends(get_session)
):
    """Staff of the organization, newest first."""
    result = await OrganizationService(session).list_members(
        context.organization_id,
        PaginationParams(page=page, limit=limit),
        role
    )
    return success_response(result)


@router.post("/{organization_id}/users", status_code=status.HTTP_201_CREATED)
async def invite_user(
    organization_id: uuid.UUID,
    data: InviteUserRequest,
    context: RequestContext = Depends(EndpointGuard(
        roles=OWNER_ROLES,
        organization_param="organization_id",
        usage="users",
    )),
    session: AsyncSession = Depends(get_session)
):
    """
    Add a dietitian or assistant.
    Counts against the `users` quota; the temporary password is emailed.
    """
    result = await OrganizationService(session).invite_user(
        context.organization_id,
        context.user.id,
        data,
        context.client
    )
    return success_response(result)


@router.post("/{organization_id}/domain")
async def add_custom_domain(
    organization_id: uuid.UUID,
    data: AddCustomDomainRequest,
    context: RequestContext = Depends(EndpointGuard(
        roles=OWNER_ROLES,
        organization_param="organization_id",
        feature="custom_domain",
    )),
    session: AsyncSession = Depends(get_session)
):
    """Attach a white-label domain (PROFESSIONAL plan and up)."""
    result = await OrganizationService(session).add_custom_domain(
        context.organization_id,
        context.user.id,
        data,
        context.client
    )
    return success_response(result)


@router.delete("/{organization_id}/domain")
async def remove_custom_domain(
    organization_id: uuid.UUID,
    context: RequestContext = Depends(tenant_owner),
    session: AsyncSession = Depends(get_session)
):
    await OrganizationService(session).remove_custom_domain(
        context.organization_id,
        context.user.id,
        context.client
    )
    return message_response("Domain removed")


@router.get("/{organization_id}/domain/verify")
async def verify_custom_domain(
    organization_id: uuid.UUID,
    context: RequestContext = Depends(tenant_member),
    session: AsyncSession = Depends(get_session)
):
    result = await OrganizationService(session).verify_custom_domain(
        context.organization_id,
        context.user.id,
        context.client
    )
    return success_response(result)


# =============================================================================
# SETTINGS
# =============================================================================

@router.get("/{organization_id}/settings")
async def get_settings(
    organization_id: uuid.UUID,
    context: RequestContext = Depends(tenant_member),
    session: AsyncSession = Depends(get_session)
):
    result = await OrganizationService(session).get_settings(context.organization_id)
    return success_response(result)


@router.patch("/{organization_id}/settings")
async def update_settings(
    organization_id: uuid.UUID,
    data: UpdateOrganizationSettingsRequest,
    context: RequestContext = Depends(tenant_owner),
    session: AsyncSession = Depends(get_session)
):
    """Working hours, booking rules, notifications and KVKK contact."""
    result = await OrganizationService(session).update_settings(
        context.organization_id,
        context.user.id,
        data,
        context.client
    )
    return success_response(result)


# =============================================================================
# BRANDING
# =============================================================================

@router.get("/{organization_id}/branding")
async def get_branding(
    organization_id: uuid.UUID,
    context: RequestContext = Depends(tenant_member),
    session: AsyncSession = Depends(get_session)
):
    result = await OrganizationService(session).get_branding(context.organization_id)
    return success_response(result)


@router.patch("/{organization_id}/branding")
async def update_branding(
    organization_id: uuid.UUID,
    data: UpdateBrandingRequest,
    context: RequestContext = Depends(EndpointGuard(
        roles=OWNER_ROLES,
        organization_param="organization_id",
        feature="white_label",
    )),
    session: AsyncSession = Depends(get_session)
):
    """Logo, colors and contact details (PROFESSIONAL plan and up)."""
    result = await OrganizationService(session).update_branding(
        context.organization_id,
        context.user.id,
        data,
        context.client
    )
    return success_response(result)


@router.delete("/{organization_id}/branding")
async def reset_branding(
    organization_id: uuid.UUID,
    context: RequestContext = Depends(tenant_owner),
    session: AsyncSession = Depends(get_session)
):
    result = await OrganizationService(session).reset_branding(
        context.organization_id,
        context.user.id,
        context.client
    )
    return success_response(result)
