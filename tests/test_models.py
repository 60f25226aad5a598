"""Tests for table definitions and stored values."""
import typing
from datetime import datetime, timedelta

import pytest
from sqlalchemy import DateTime
from sqlmodel import select

from dietsaas.core.clock import utcnow
from dietsaas.models.activity import ConsentRecord, SecurityLog
from dietsaas.models.organization import OrganizationBranding, OrganizationSettings
from dietsaas.models.token import UserSession
from dietsaas.models.user import Organization, User

TABLE_MODELS = [
    Organization,
    OrganizationSettings,
    OrganizationBranding,
    User,
    UserSession,
    SecurityLog,
    ConsentRecord,
]


def datetime_fields(model):
    for name, field in model.model_fields.items():
        if field.annotation is datetime or datetime in typing.get_args(field.annotation):
            yield name


@pytest.mark.parametrize("model", TABLE_MODELS, ids=lambda model: model.__name__)
def test_datetime_columns_store_naive_utc(model):
    for name in datetime_fields(model):
        column_type = model.__table__.c[name].type
        assert type(column_type) is DateTime, f"{model.__name__}.{name}"
        assert not column_type.timezone


async def test_timestamps_round_trip(session, make_organization, make_user):
    trial_end = datetime(2030, 5, 17, 9, 30, 15)
    organization = await make_organization(trial_ends_at=trial_end)
    user = await make_user(organization, locked_until=utcnow() + timedelta(minutes=15))
    locked_until = user.locked_until

    reloaded = (await session.exec(
        select(Organization)
        .where(Organization.id == organization.id)
        .execution_options(populate_existing=True)
    )).one()
    assert reloaded.trial_ends_at == trial_end
    assert reloaded.trial_ends_at.tzinfo is None

    await session.refresh(user)
    assert user.locked_until == locked_until
    assert user.locked_until > utcnow()
