"""
User and Organization models.
Every user belongs to exactly one organization (tenant).
"""
import uuid
from datetime import date, datetime
from enum import Enum
from typing import Optional, List

from sqlalchemy import DateTime
from sqlmodel import SQLModel, Field, Relationship

from dietsaas.core.clock import utcnow


class UserRole(str, Enum):
    SUPER_ADMIN = "SUPER_ADMIN"
    ORGANIZATION_OWNER = "ORGANIZATION_OWNER"
    DIETITIAN = "DIETITIAN"
    ASSISTANT = "ASSISTANT"


class OrganizationStatus(str, Enum):
    TRIAL = "TRIAL"
    ACTIVE = "ACTIVE"
    SUSPENDED = "SUSPENDED"
    CANCELLED = "CANCELLED"


class SubscriptionPlan(str, Enum):
    FREE = "FREE"
    STARTER = "STARTER"
    PROFESSIONAL = "PROFESSIONAL"
    ENTERPRISE = "ENTERPRISE"


class Organization(SQLModel, table=True):
    """
    Organization/Tenant model.
    All clinical data is scoped to an organization.
    """
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    name: str = Field(index=True)
    subdomain: str = Field(unique=True, index=True)

    # Custom domain (white-label plans)
    custom_domain: Optional[str] = Field(default=None, unique=True, index=True)
    domain_verified: bool = Field(default=False)
    dns_txt_record: Optional[str] = None

    # Owner contact
    owner_email: str
    owner_name: str
    owner_phone: Optional[str] = None

    # Subscription
    status: OrganizationStatus = Field(default=OrganizationStatus.TRIAL, index=True)
    plan: SubscriptionPlan = Field(default=SubscriptionPlan.FREE)
    trial_ends_at: Optional[datetime] = Field(default=None, sa_type=DateTime)

    # Usage counters
    current_users: int = Field(default=0)
    max_users: int = Field(default=1)
    current_patients: int = Field(default=0)
    max_patients: int = Field(default=50)
    current_storage: int = Field(default=0)  # MB
    max_storage: int = Field(default=1024)  # MB
    current_ai_queries: int = Field(default=0)
    max_ai_queries: int = Field(default=100)
    ai_queries_reset_at: datetime = Field(default_factory=utcnow, sa_type=DateTime)

    # Timestamps
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=DateTime)

    # Relationships
    users: List["User"] = Relationship(back_populates="organization")


class User(SQLModel, table=True):
    """
    User model with authentication, lockout and profile info.
    """
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    organization_id: uuid.UUID = Field(foreign_key="organization.id", index=True)

    # Auth
    email: str = Field(unique=True, index=True)
    password_hash: str
    role: UserRole = Field(default=UserRole.DIETITIAN)
    is_active: bool = Field(default=True)

    # Lockout
    failed_login_attempts: int = Field(default=0)
    locked_until: Optional[datetime] = Field(default=None, sa_type=DateTime)

    # Password reset
    reset_password_token: Optional[str] = Field(default=None, index=True)
    reset_password_expires: Optional[datetime] = Field(default=None, sa_type=DateTime)

    # Email verification
    email_verified: bool = Field(default=False)
    email_verified_at: Optional[datetime] = Field(default=None, sa_type=DateTime)
    email_verification_token: Optional[str] = Field(default=None, index=True)
    email_verification_expires: Optional[datetime] = Field(default=None, sa_type=DateTime)

    # Profile
    first_name: str
    last_name: str
    phone: Optional[str] = None
    national_id: Optional[str] = Field(default=None, unique=True, index=True)
    birth_date: Optional[date] = None
    gender: Optional[str] = None
    avatar_url: Optional[str] = None
    address_line1: Optional[str] = None
    address_line2: Optional[str] = None
    city: Optional[str] = None
    district: Optional[str] = None
    postal_code: Optional[str] = None

    # Registration / last login metadata
    registration_ip: Optional[str] = None
    registration_browser: Optional[str] = None
    registration_device: Optional[str] = None
    registration_os: Optional[str] = None
    last_login_at: Optional[datetime] = Field(default=None, sa_type=DateTime)
    last_login_ip: Optional[str] = None
    last_login_browser: Optional[str] = None
    last_login_device: Optional[str] = None
    last_login_os: Optional[str] = None

    # Timestamps
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=DateTime)

    # Relationships
    organization: Organization = Relationship(back_populates="users")
