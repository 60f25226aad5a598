"""
Test configuration and fixtures.

Provides:
- Fresh in-memory SQLite database per test
- HTTPX AsyncClient against the app with get_session overridden
- Fresh rate limiter and a recording mock email service per test
- Factories for organizations and users
"""
import os
import uuid
from datetime import timedelta
from typing import AsyncGenerator, Optional

# Must be set before the app modules read their settings
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["DEV_MODE"] = "True"
os.environ["ENVIRONMENT"] = "test"
os.environ["SMTP_HOST"] = ""

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

import dietsaas.models  # noqa: F401
from dietsaas.main import app
from dietsaas.database import get_session
from dietsaas.core.clock import utcnow
from dietsaas.core.rate_limiter import InMemoryCounterStore, RateLimiter, set_rate_limiter
from dietsaas.core.security import hash_password
from dietsaas.models.user import Organization, OrganizationStatus, SubscriptionPlan, User, UserRole
from dietsaas.services.email_service import MockEmailService, set_email_service

DEFAULT_PASSWORD = "Passw0rdX"


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


# =============================================================================
# App Fixtures
# =============================================================================

@pytest.fixture(autouse=True)
def rate_limiter() -> RateLimiter:
    limiter = RateLimiter(InMemoryCounterStore())
    set_rate_limiter(limiter)
    return limiter


@pytest.fixture(autouse=True)
def outbox() -> MockEmailService:
    service = MockEmailService()
    set_email_service(service)
    return service


@pytest.fixture
async def client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    async def override_get_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client
    app.dependency_overrides.clear()


# =============================================================================
# Factories
# =============================================================================

@pytest.fixture
def make_organization(session: AsyncSession):
    async def factory(**overrides) -> Organization:
        suffix = uuid.uuid4().hex[:8]
        values = {
            "name": f"Clinic {suffix}",
            "subdomain": f"clinic-{suffix}",
            "owner_email": f"owner-{suffix}@example.com",
            "owner_name": "Owner Person",
            "status": OrganizationStatus.ACTIVE,
            "plan": SubscriptionPlan.FREE,
            "trial_ends_at": utcnow() + timedelta(days=14),
            "current_users": 1,
        }
        values.update(overrides)
        organization = Organization(**values)
        session.add(organization)
        await session.commit()
        await session.refresh(organization)
        return organization

    return factory


@pytest.fixture
def make_user(session: AsyncSession):
    async def factory(
        organization: Organization,
        password: str = DEFAULT_PASSWORD,
        **overrides
    ) -> User:
        suffix = uuid.uuid4().hex[:8]
        values = {
            "organization_id": organization.id,
            "email": f"user-{suffix}@example.com",
            "password_hash": hash_password(password),
            "role": UserRole.ORGANIZATION_OWNER,
            "first_name": "Test",
            "last_name": "User",
        }
        values.update(overrides)
        user = User(**values)
        session.add(user)
        await session.commit()
        await session.refresh(user)
        return user

    return factory


@pytest.fixture
def login(client: AsyncClient):
    """Log in through the API and return the response data."""
    async def do_login(email: str, password: str = DEFAULT_PASSWORD, remember_me: bool = False, ip: Optional[str] = None):
        headers = {"X-Forwarded-For": ip} if ip else {}
        response = await client.post(
            "/api/auth/login",
            json={"email": email, "password": password, "remember_me": remember_me},
            headers=headers,
        )
        assert response.status_code == 200, response.text
        return response.json()["data"]

    return do_login
