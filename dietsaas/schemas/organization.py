"""
Organization request schemas.
"""
import re
from typing import List, Literal, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator

from dietsaas.schemas.auth import normalize_phone

_DOMAIN_RE = re.compile(r"^(?!-)[a-z0-9-]{1,63}(?<!-)(\.(?!-)[a-z0-9-]{1,63}(?<!-))+$")


# =============================================================================
# REQUEST SCHEMAS
# =============================================================================

class InviteUserRequest(BaseModel):
    """Request to add a staff member to an organization."""
    email: EmailStr
    first_name: str = Field(..., min_length=2)
    last_name: str = Field(..., min_length=2)
    phone: Optional[str] = None
    role: Literal["DIETITIAN", "ASSISTANT"] = "DIETITIAN"


class AddCustomDomainRequest(BaseModel):
    """Request to attach a white-label domain."""
    domain: str = Field(..., max_length=253)

    @field_validator("domain")
    @classmethod
    def check_domain(cls, v: str) -> str:
        v = v.strip().lower()
        if not _DOMAIN_RE.match(v):
            raise ValueError("Invalid domain name")
        return v


_COLOR_RE = re.compile(r"^#[0-9A-Fa-f]{6}$")
_URL_RE = re.compile(r"^https?://[^\s/$.?#][^\s]*$", re.IGNORECASE)
_TIME_RE = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")

Weekday = Literal["MONDAY", "TUESDAY", "WEDNESDAY", "THURSDAY", "FRIDAY", "SATURDAY", "SUNDAY"]


def _check_url(value: Optional[str]) -> Optional[str]:
    if value is not None and not _URL_RE.match(value):
        raise ValueError("Invalid URL")
    return value


class UpdateBrandingRequest(BaseModel):
    """Partial update of the white-label branding; omitted fields are kept."""
    logo_url: Optional[str] = None
    favicon_url: Optional[str] = None
    primary_color: Optional[str] = None
    secondary_color: Optional[str] = None
    accent_color: Optional[str] = None

    company_name: Optional[str] = Field(None, max_length=200)
    tagline: Optional[str] = Field(None, max_length=200)
    description: Optional[str] = Field(None, max_length=2000)

    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    address: Optional[str] = Field(None, max_length=500)
    website: Optional[str] = None

    facebook: Optional[str] = None
    instagram: Optional[str] = None
    twitter: Optional[str] = None
    linkedin: Optional[str] = None

    custom_css: Optional[str] = Field(None, max_length=20000)

    @field_validator("logo_url", "favicon_url", "website", "facebook", "instagram", "twitter", "linkedin")
    @classmethod
    def check_url(cls, v: Optional[str]) -> Optional[str]:
        return _check_url(v)

    @field_validator("primary_color", "secondary_color", "accent_color")
    @classmethod
    def check_color(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            raise ValueError("Color cannot be null")
        if not _COLOR_RE.match(v):
            raise ValueError("Color must be a hex value like #10b981")
        return v

    @field_validator("phone")
    @classmethod
    def check_phone(cls, v: Optional[str]) -> Optional[str]:
        return normalize_phone(v)


class WorkingHours(BaseModel):
    start: str
    end: str

    @field_validator("start", "end")
    @classmethod
    def check_time(cls, v: str) -> str:
        if not _TIME_RE.match(v):
            raise ValueError("Time must be HH:MM")
        return v

    @model_validator(mode="after")
    def check_order(self) -> "WorkingHours":
        if self.start >= self.end:
            raise ValueError("Working hours must end after they start")
        return self


class UpdateOrganizationSettingsRequest(BaseModel):
    """Partial update of the practice settings; omitted fields are kept."""
    timezone: Optional[str] = Field(None, min_length=1, max_length=64)
    language: Optional[Literal["tr", "en"]] = None
    currency: Optional[Literal["TRY", "USD", "EUR"]] = None

    working_days: Optional[List[Weekday]] = Field(None, min_length=1, max_length=7)
    working_hours: Optional[WorkingHours] = None
    appointment_duration: Optional[int] = Field(None, ge=15, le=240)
    buffer_time: Optional[int] = Field(None, ge=0, le=60)
    allow_online_booking: Optional[bool] = None
    require_approval: Optional[bool] = None

    email_notifications: Optional[bool] = None
    sms_notifications: Optional[bool] = None
    whatsapp_notifications: Optional[bool] = None

    enable_ai_diet_plans: Optional[bool] = None
    enable_video_consult: Optional[bool] = None
    enable_patient_portal: Optional[bool] = None

    kvkk_contact_email: Optional[EmailStr] = None
    kvkk_contact_phone: Optional[str] = None
    data_retention_days: Optional[int] = Field(None, ge=365, le=7300)

    @field_validator("working_days")
    @classmethod
    def dedupe_days(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        if v is None:
            raise ValueError("Working days cannot be null")
        return list(dict.fromkeys(v))

    @field_validator("kvkk_contact_phone")
    @classmethod
    def check_phone(cls, v: Optional[str]) -> Optional[str]:
        return normalize_phone(v)
