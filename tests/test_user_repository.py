"""Tests for the user and organization repositories."""
import pytest
from sqlalchemy.exc import IntegrityError
from sqlmodel import select, func

from dietsaas.models.activity import ConsentRecord
from dietsaas.models.organization import OrganizationSettings
from dietsaas.models.user import Organization, User, UserRole
from dietsaas.repositories.user_repo import OrganizationRepository, UserRepository


async def count_rows(session, model) -> int:
    result = await session.exec(select(func.count()).select_from(model))
    return result.one()


def new_registration(email: str):
    organization = Organization(
        name="Second Clinic",
        subdomain="second-clinic",
        owner_email=email,
        owner_name="Second Owner",
        current_users=1,
    )
    user = User(
        email=email,
        password_hash="not-a-real-hash",
        first_name="Second",
        last_name="Owner",
        role=UserRole.ORGANIZATION_OWNER,
    )
    consent = ConsentRecord(consent_text="KVKK explicit consent")
    return organization, user, consent


async def test_create_with_organization_persists_all_rows(session):
    organization, user, consent = new_registration("second@example.com")

    user, organization = await UserRepository(session).create_with_organization(organization, user, consent)

    assert user.organization_id == organization.id
    org_settings = (await session.exec(select(OrganizationSettings))).one()
    assert org_settings.organization_id == organization.id
    stored_consent = (await session.exec(select(ConsentRecord))).one()
    assert stored_consent.subject_id == user.id


async def test_create_with_organization_rolls_back_on_duplicate_email(session, make_organization, make_user):
    existing = await make_user(await make_organization())
    organizations_before = await count_rows(session, Organization)
    users_before = await count_rows(session, User)

    organization, user, consent = new_registration(existing.email)
    with pytest.raises(IntegrityError):
        await UserRepository(session).create_with_organization(organization, user, consent)

    assert await count_rows(session, Organization) == organizations_before
    assert await count_rows(session, User) == users_before
    assert await count_rows(session, OrganizationSettings) == 0
    assert await count_rows(session, ConsentRecord) == 0
    assert await OrganizationRepository(session).get_by_subdomain("second-clinic") is None
