"""Tests for the organization endpoints."""
import pytest
from httpx import AsyncClient
from sqlmodel import select

from dietsaas.config import settings
from dietsaas.core.security import verify_password
from dietsaas.models.activity import SecurityEvents, SecurityLog
from dietsaas.models.organization import OrganizationBranding, OrganizationSettings
from dietsaas.models.user import SubscriptionPlan, User, UserRole
from dietsaas.services.email_service import wait_for_background_emails


@pytest.fixture
async def clinic(make_organization):
    return await make_organization(max_users=3)


@pytest.fixture
async def owner(clinic, make_user):
    return await make_user(clinic)


# =============================================================================
# Usage / tenant isolation
# =============================================================================

async def test_member_reads_own_usage(client: AsyncClient, clinic, make_user, login):
    dietitian = await make_user(clinic, role=UserRole.DIETITIAN)
    await login(dietitian.email)

    response = await client.get(f"/api/organizations/{clinic.id}/usage")

    assert response.status_code == 200
    usage = response.json()["data"]
    assert usage["users"] == {"current": 1, "max": 3, "percentage": pytest.approx(33.33, abs=0.01)}
    assert "reset_at" in usage["ai_queries"]


async def test_other_tenant_is_forbidden(client: AsyncClient, owner, make_organization, login):
    other = await make_organization()
    await login(owner.email)

    response = await client.get(f"/api/organizations/{other.id}/usage")
    assert response.status_code == 403


async def test_super_admin_crosses_tenants(client: AsyncClient, clinic, make_organization, make_user, login):
    platform = await make_organization()
    admin = await make_user(platform, role=UserRole.SUPER_ADMIN)
    await login(admin.email)

    response = await client.get(f"/api/organizations/{clinic.id}/usage")
    assert response.status_code == 200


async def test_malformed_organization_id(client: AsyncClient, owner, login):
    await login(owner.email)
    response = await client.get("/api/organizations/not-a-uuid/usage")
    assert response.status_code in (400, 404)


async def test_usage_requires_authentication(client: AsyncClient, clinic):
    response = await client.get(f"/api/organizations/{clinic.id}/usage")
    assert response.status_code == 401


# =============================================================================
# Members
# =============================================================================

async def test_list_users_is_paginated(client: AsyncClient, clinic, owner, make_user, login):
    for _ in range(3):
        await make_user(clinic, role=UserRole.DIETITIAN)
    await make_user(clinic, role=UserRole.ASSISTANT)
    await login(owner.email)

    response = await client.get(f"/api/organizations/{clinic.id}/users", params={"page": 1, "limit": 2})

    assert response.status_code == 200
    data = response.json()["data"]
    assert len(data["items"]) == 2
    assert data["pagination"] == {
        "page": 1,
        "limit": 2,
        "total": 5,
        "total_pages": 3,
        "has_more": True,
    }
    assert "password_hash" not in data["items"][0]


async def test_list_users_filters_by_role(client: AsyncClient, clinic, owner, make_user, login):
    await make_user(clinic, role=UserRole.DIETITIAN)
    await make_user(clinic, role=UserRole.ASSISTANT)
    await login(owner.email)

    response = await client.get(f"/api/organizations/{clinic.id}/users", params={"role": "ASSISTANT"})

    items = response.json()["data"]["items"]
    assert [item["role"] for item in items] == ["ASSISTANT"]


# =============================================================================
# Invitations
# =============================================================================

INVITE = {
    "email": "new.dietitian@example.com",
    "first_name": "Elif",
    "last_name": "Demir",
    "role": "DIETITIAN",
}


async def test_owner_invites_dietitian(client: AsyncClient, session, clinic, owner, login, outbox):
    await login(owner.email)

    response = await client.post(f"/api/organizations/{clinic.id}/users", json=INVITE)

    assert response.status_code == 201, response.text
    data = response.json()["data"]
    assert data["user"]["role"] == "DIETITIAN"

    invited = (await session.exec(select(User).where(User.email == INVITE["email"]))).one()
    assert invited.organization_id == clinic.id
    assert verify_password(data["_dev_temporary_password"], invited.password_hash)

    await session.refresh(clinic)
    assert clinic.current_users == 2

    await wait_for_background_emails()
    email = outbox.get_last_email()
    assert email["to"] == INVITE["email"]
    assert data["_dev_temporary_password"] in email["body"]

    events = (await session.exec(select(SecurityLog.event).where(SecurityLog.user_id == owner.id))).all()
    assert SecurityEvents.USER_INVITED in events


async def test_dietitian_cannot_invite(client: AsyncClient, session, clinic, make_user, login):
    dietitian = await make_user(clinic, role=UserRole.DIETITIAN)
    await login(dietitian.email)

    response = await client.post(f"/api/organizations/{clinic.id}/users", json=INVITE)

    assert response.status_code == 403
    await session.refresh(clinic)
    assert clinic.current_users == 1


async def test_invite_at_quota_is_refused(client: AsyncClient, session, make_organization, make_user, login):
    full = await make_organization(current_users=1, max_users=1)
    owner = await make_user(full)
    await login(owner.email)

    response = await client.post(f"/api/organizations/{full.id}/users", json=INVITE)

    assert response.status_code == 403
    assert "Usage limit exceeded" in response.json()["error"]
    await session.refresh(full)
    assert full.current_users == 1


async def test_invite_existing_email_returns_unit(client: AsyncClient, session, clinic, owner, login):
    await login(owner.email)

    response = await client.post(f"/api/organizations/{clinic.id}/users", json={**INVITE, "email": owner.email})

    assert response.status_code == 409
    await session.refresh(clinic)
    assert clinic.current_users == 1


async def test_invite_cannot_grant_owner_role(client: AsyncClient, clinic, owner, login):
    await login(owner.email)
    response = await client.post(
        f"/api/organizations/{clinic.id}/users",
        json={**INVITE, "role": "ORGANIZATION_OWNER"}
    )
    assert response.status_code == 400


# =============================================================================
# Custom domains
# =============================================================================

async def test_custom_domain_needs_professional_plan(client: AsyncClient, session, clinic, owner, login):
    await login(owner.email)

    response = await client.post(f"/api/organizations/{clinic.id}/domain", json={"domain": "clinic.example.com"})

    assert response.status_code == 403
    await session.refresh(clinic)
    assert clinic.custom_domain is None


async def test_add_and_remove_custom_domain(client: AsyncClient, session, make_organization, make_user, login):
    organization = await make_organization(plan=SubscriptionPlan.PROFESSIONAL)
    owner = await make_user(organization)
    await login(owner.email)

    response = await client.post(
        f"/api/organizations/{organization.id}/domain",
        json={"domain": "Clinic.Example.com"}
    )

    assert response.status_code == 200, response.text
    data = response.json()["data"]
    assert data["domain"] == "clinic.example.com"
    assert data["txt_record"].startswith("diet-verify=")

    await session.refresh(organization)
    assert organization.custom_domain == "clinic.example.com"
    assert organization.dns_txt_record == data["txt_record"]
    assert not organization.domain_verified

    response = await client.delete(f"/api/organizations/{organization.id}/domain")

    assert response.status_code == 200
    await session.refresh(organization)
    assert organization.custom_domain is None
    assert organization.dns_txt_record is None


async def test_custom_domain_taken_by_another_organization(client: AsyncClient, make_organization, make_user, login):
    await make_organization(plan=SubscriptionPlan.ENTERPRISE, custom_domain="taken.example.com")
    organization = await make_organization(plan=SubscriptionPlan.PROFESSIONAL)
    owner = await make_user(organization)
    await login(owner.email)

    response = await client.post(f"/api/organizations/{organization.id}/domain", json={"domain": "taken.example.com"})
    assert response.status_code == 409


async def test_invalid_domain_is_rejected(client: AsyncClient, make_organization, make_user, login):
    organization = await make_organization(plan=SubscriptionPlan.PROFESSIONAL)
    owner = await make_user(organization)
    await login(owner.email)

    response = await client.post(f"/api/organizations/{organization.id}/domain", json={"domain": "not a domain"})
    assert response.status_code == 400


async def test_verify_domain_in_dev_mode(client: AsyncClient, session, make_organization, make_user, login):
    organization = await make_organization(
        plan=SubscriptionPlan.PROFESSIONAL,
        custom_domain="clinic.example.com",
        dns_txt_record="diet-verify=abc",
    )
    owner = await make_user(organization)
    await login(owner.email)

    response = await client.get(f"/api/organizations/{organization.id}/domain/verify")

    assert response.status_code == 200
    assert response.json()["data"]["verified"] is True
    await session.refresh(organization)
    assert organization.domain_verified

    again = await client.get(f"/api/organizations/{organization.id}/domain/verify")
    assert again.json()["data"] == {"verified": True, "message": "Domain already verified"}

    events = (await session.exec(select(SecurityLog.event).where(SecurityLog.user_id == owner.id))).all()
    assert SecurityEvents.DOMAIN_VERIFIED in events


async def test_verify_domain_returns_expected_record(client: AsyncClient, session, monkeypatch, make_organization, make_user, login):
    monkeypatch.setattr(settings, "DEV_MODE", False)
    organization = await make_organization(custom_domain="clinic.example.com", dns_txt_record="diet-verify=abc")
    owner = await make_user(organization)
    await login(owner.email)

    response = await client.get(f"/api/organizations/{organization.id}/domain/verify")

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["verified"] is False
    assert data["expected_txt_record"] == "diet-verify=abc"
    await session.refresh(organization)
    assert not organization.domain_verified


async def test_verify_without_domain(client: AsyncClient, clinic, owner, login):
    await login(owner.email)
    response = await client.get(f"/api/organizations/{clinic.id}/domain/verify")
    assert response.status_code == 404


async def test_verify_domain_of_other_tenant(client: AsyncClient, owner, make_organization, login):
    other = await make_organization(custom_domain="other.example.com")
    await login(owner.email)

    response = await client.get(f"/api/organizations/{other.id}/domain/verify")
    assert response.status_code == 403


# =============================================================================
# Settings
# =============================================================================

@pytest.fixture
async def clinic_settings(session, clinic):
    org_settings = OrganizationSettings(organization_id=clinic.id)
    session.add(org_settings)
    await session.commit()
    await session.refresh(org_settings)
    return org_settings


async def test_member_reads_settings(client: AsyncClient, clinic, clinic_settings, make_user, login):
    dietitian = await make_user(clinic, role=UserRole.DIETITIAN)
    await login(dietitian.email)

    response = await client.get(f"/api/organizations/{clinic.id}/settings")

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["organization_id"] == str(clinic.id)
    assert data["working_hours"] == {"start": "09:00", "end": "18:00"}
    assert data["appointment_duration"] == 45


async def test_missing_settings_is_not_found(client: AsyncClient, clinic, owner, login):
    await login(owner.email)
    response = await client.get(f"/api/organizations/{clinic.id}/settings")
    assert response.status_code == 404


async def test_owner_updates_settings(client: AsyncClient, session, clinic, owner, clinic_settings, login):
    await login(owner.email)

    response = await client.patch(f"/api/organizations/{clinic.id}/settings", json={
        "working_days": ["MONDAY", "WEDNESDAY", "MONDAY"],
        "working_hours": {"start": "10:00", "end": "16:30"},
        "appointment_duration": 30,
        "kvkk_contact_phone": "0532 123 45 67",
    })

    assert response.status_code == 200, response.text
    data = response.json()["data"]
    assert data["working_days"] == ["MONDAY", "WEDNESDAY"]
    assert data["working_hours"] == {"start": "10:00", "end": "16:30"}
    assert data["kvkk_contact_phone"] == "+905321234567"
    assert data["buffer_time"] == 15

    await session.refresh(clinic_settings)
    assert clinic_settings.appointment_duration == 30

    events = (await session.exec(select(SecurityLog.event).where(SecurityLog.user_id == owner.id))).all()
    assert SecurityEvents.SETTINGS_UPDATED in events


@pytest.mark.parametrize("body", [
    {"appointment_duration": 10},
    {"buffer_time": 61},
    {"data_retention_days": 100},
    {"working_hours": {"start": "18:00", "end": "09:00"}},
    {"working_hours": {"start": "9am", "end": "17:00"}},
    {"working_days": ["FUNDAY"]},
    {"kvkk_contact_email": "not-an-email"},
])
async def test_invalid_settings_are_rejected(client: AsyncClient, clinic, owner, clinic_settings, login, body):
    await login(owner.email)
    response = await client.patch(f"/api/organizations/{clinic.id}/settings", json=body)
    assert response.status_code == 400


async def test_dietitian_cannot_update_settings(client: AsyncClient, clinic, clinic_settings, make_user, login):
    dietitian = await make_user(clinic, role=UserRole.DIETITIAN)
    await login(dietitian.email)

    response = await client.patch(f"/api/organizations/{clinic.id}/settings", json={"buffer_time": 0})
    assert response.status_code == 403


# =============================================================================
# Branding
# =============================================================================

async def test_branding_is_created_on_first_read(client: AsyncClient, session, clinic, owner, login):
    await login(owner.email)

    response = await client.get(f"/api/organizations/{clinic.id}/branding")

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["primary_color"] == "#10b981"
    assert data["logo_url"] is None
    rows = (await session.exec(select(OrganizationBranding))).all()
    assert [row.organization_id for row in rows] == [clinic.id]


async def test_branding_update_needs_white_label(client: AsyncClient, session, clinic, owner, login):
    await login(owner.email)

    response = await client.patch(f"/api/organizations/{clinic.id}/branding", json={"primary_color": "#000000"})

    assert response.status_code == 403
    assert (await session.exec(select(OrganizationBranding))).first() is None


async def test_owner_updates_and_resets_branding(client: AsyncClient, session, make_organization, make_user, login):
    organization = await make_organization(plan=SubscriptionPlan.PROFESSIONAL)
    owner = await make_user(organization)
    await login(owner.email)

    response = await client.patch(f"/api/organizations/{organization.id}/branding", json={
        "primary_color": "#112233",
        "company_name": "Healthy Life",
        "website": "https://healthylife.example.com",
    })

    assert response.status_code == 200, response.text
    data = response.json()["data"]
    assert data["primary_color"] == "#112233"
    assert data["company_name"] == "Healthy Life"
    assert data["secondary_color"] == "#3b82f6"

    response = await client.delete(f"/api/organizations/{organization.id}/branding")

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["primary_color"] == "#10b981"
    assert data["company_name"] is None
    assert data["website"] is None

    events = (await session.exec(select(SecurityLog.event).where(SecurityLog.user_id == owner.id))).all()
    assert SecurityEvents.BRANDING_UPDATED in events
    assert SecurityEvents.BRANDING_RESET in events


@pytest.mark.parametrize("body", [
    {"primary_color": "green"},
    {"accent_color": None},
    {"logo_url": "ftp://files.example.com/logo.png"},
    {"phone": "12345"},
])
async def test_invalid_branding_is_rejected(client: AsyncClient, make_organization, make_user, login, body):
    organization = await make_organization(plan=SubscriptionPlan.ENTERPRISE)
    owner = await make_user(organization)
    await login(owner.email)

    response = await client.patch(f"/api/organizations/{organization.id}/branding", json=body)
    assert response.status_code == 400


# =============================================================================
# Organization list
# =============================================================================

async def test_owner_lists_own_organization(client: AsyncClient, clinic, owner, clinic_settings, make_organization, login):
    await make_organization()
    await login(owner.email)

    response = await client.get("/api/organizations")

    assert response.status_code == 200
    organizations = response.json()["data"]
    assert [o["id"] for o in organizations] == [str(clinic.id)]
    assert organizations[0]["settings"]["organization_id"] == str(clinic.id)
    assert organizations[0]["branding"] is None


async def test_super_admin_lists_every_organization(client: AsyncClient, clinic, make_organization, make_user, login):
    platform = await make_organization()
    admin = await make_user(platform, role=UserRole.SUPER_ADMIN)
    await login(admin.email)

    response = await client.get("/api/organizations")

    assert response.status_code == 200
    ids = {o["id"] for o in response.json()["data"]}
    assert ids == {str(clinic.id), str(platform.id)}


async def test_list_organizations_requires_authentication(client: AsyncClient):
    response = await client.get("/api/organizations")
    assert response.status_code == 401
