"""
Per-organization settings and white-label branding.
One row of each per organization; settings are created at registration,
branding on first read.
"""
import uuid
from datetime import datetime
from typing import Optional, List, Dict

from sqlalchemy import Column, DateTime, JSON
from sqlmodel import SQLModel, Field

from dietsaas.core.clock import utcnow

DEFAULT_WORKING_DAYS = ["MONDAY", "TUESDAY", "WEDNESDAY", "THURSDAY", "FRIDAY"]
DEFAULT_WORKING_HOURS = {"start": "09:00", "end": "18:00"}

DEFAULT_PRIMARY_COLOR = "#10b981"
DEFAULT_SECONDARY_COLOR = "#3b82f6"
DEFAULT_ACCENT_COLOR = "#8b5cf6"


class OrganizationSettings(SQLModel, table=True):
    """Practice settings: locale, working hours, booking and notifications."""
    __tablename__ = "organization_settings"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    organization_id: uuid.UUID = Field(foreign_key="organization.id", unique=True, index=True)

    # Locale
    timezone: str = Field(default="Europe/Istanbul")
    language: str = Field(default="tr")
    currency: str = Field(default="TRY")

    # Calendar
    working_days: List[str] = Field(
        default_factory=lambda: list(DEFAULT_WORKING_DAYS), sa_column=Column(JSON)
    )
    working_hours: Dict[str, str] = Field(
        default_factory=lambda: dict(DEFAULT_WORKING_HOURS), sa_column=Column(JSON)
    )
    appointment_duration: int = Field(default=45)  # minutes
    buffer_time: int = Field(default=15)  # minutes
    allow_online_booking: bool = Field(default=True)
    require_approval: bool = Field(default=True)

    # Notifications
    email_notifications: bool = Field(default=True)
    sms_notifications: bool = Field(default=False)
    whatsapp_notifications: bool = Field(default=False)

    # Modules
    enable_ai_diet_plans: bool = Field(default=False)
    enable_video_consult: bool = Field(default=False)
    enable_patient_portal: bool = Field(default=True)

    # KVKK
    kvkk_contact_email: Optional[str] = None
    kvkk_contact_phone: Optional[str] = None
    data_retention_days: int = Field(default=3650)

    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=DateTime)


class OrganizationBranding(SQLModel, table=True):
    """White-label look of the clinic's patient-facing pages."""
    __tablename__ = "organization_branding"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    organization_id: uuid.UUID = Field(foreign_key="organization.id", unique=True, index=True)

    logo_url: Optional[str] = None
    favicon_url: Optional[str] = None
    primary_color: str = Field(default=DEFAULT_PRIMARY_COLOR)
    secondary_color: str = Field(default=DEFAULT_SECONDARY_COLOR)
    accent_color: str = Field(default=DEFAULT_ACCENT_COLOR)

    company_name: Optional[str] = None
    tagline: Optional[str] = None
    description: Optional[str] = None

    # Contact
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    website: Optional[str] = None

    # Social
    facebook: Optional[str] = None
    instagram: Optional[str] = None
    twitter: Optional[str] = None
    linkedin: Optional[str] = None

    custom_css: Optional[str] = None

    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=DateTime)
