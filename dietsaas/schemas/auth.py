"""
Authentication schemas.
"""
import re
from datetime import date
from typing import Literal, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

from dietsaas.core.clock import utcnow
from dietsaas.core.validators import (
    RESERVED_SUBDOMAINS,
    format_phone,
    validate_national_id,
    validate_password_strength,
    validate_phone,
)

Gender = Literal["MALE", "FEMALE", "OTHER"]

_SUBDOMAIN_RE = re.compile(r"^[a-z0-9-]+$")
_POSTAL_CODE_RE = re.compile(r"^\d{5}$")


def normalize_phone(value: Optional[str]) -> Optional[str]:
    if value is None:
        return value
    if len(value) < 10 or not validate_phone(value):
        raise ValueError("Invalid phone number")
    return format_phone(value)


def _check_postal_code(value: Optional[str]) -> Optional[str]:
    if value is not None and not _POSTAL_CODE_RE.match(value):
        raise ValueError("Postal code must be 5 digits")
    return value


def _age_on(birth_date: date, today: date) -> int:
    years = today.year - birth_date.year
    if (today.month, today.day) < (birth_date.month, birth_date.day):
        years -= 1
    return years


class RegisterRequest(BaseModel):
    """Clinic registration: the organization plus its owner account."""
    # Organization
    organization_name: str = Field(..., min_length=2)
    subdomain: str = Field(..., min_length=3, max_length=20)

    # Owner
    email: EmailStr
    password: str
    first_name: str = Field(..., min_length=2)
    last_name: str = Field(..., min_length=2)
    phone: str

    # Personal data
    national_id: str
    birth_date: date
    gender: Gender

    # Address
    address_line1: str = Field(..., min_length=5)
    address_line2: Optional[str] = None
    city: str = Field(..., min_length=2)
    district: str = Field(..., min_length=2)
    postal_code: str

    kvkk_consent: bool

    @field_validator("subdomain")
    @classmethod
    def check_subdomain(cls, v: str) -> str:
        if not _SUBDOMAIN_RE.match(v):
            raise ValueError("Subdomain may only contain lowercase letters, digits and hyphens")
        if v in RESERVED_SUBDOMAINS:
            raise ValueError("This subdomain is reserved")
        return v

    @field_validator("password")
    @classmethod
    def check_password(cls, v: str) -> str:
        return validate_password_strength(v)

    @field_validator("phone")
    @classmethod
    def check_phone(cls, v: str) -> str:
        return normalize_phone(v)

    @field_validator("national_id")
    @classmethod
    def check_national_id(cls, v: str) -> str:
        if not validate_national_id(v):
            raise ValueError("Invalid national ID number")
        return v

    @field_validator("birth_date")
    @classmethod
    def check_birth_date(cls, v: date) -> date:
        age = _age_on(v, utcnow().date())
        if age < 18 or age > 120:
            raise ValueError("Age must be between 18 and 120")
        return v

    @field_validator("postal_code")
    @classmethod
    def check_postal_code(cls, v: str) -> str:
        return _check_postal_code(v)

    @field_validator("kvkk_consent")
    @classmethod
    def check_consent(cls, v: bool) -> bool:
        if v is not True:
            raise ValueError("The KVKK disclosure text must be accepted")
        return v

    class Config:
        json_schema_extra = {
            "example": {
                "organization_name": "Healthy Life Clinic",
                "subdomain": "healthylife",
                "email": "owner@healthylife.com",
                "password": "SecurePass123",
                "first_name": "Ayse",
                "last_name": "Yilmaz",
                "phone": "05321234567",
                "national_id": "10000000078",
                "birth_date": "1985-04-12",
                "gender": "FEMALE",
                "address_line1": "Ataturk Cad. No: 10",
                "city": "Istanbul",
                "district": "Kadikoy",
                "postal_code": "34710",
                "kvkk_consent": True
            }
        }


class LoginRequest(BaseModel):
    """User login request."""
    email: EmailStr
    password: str = Field(..., min_length=1)
    remember_me: bool = False

    class Config:
        json_schema_extra = {
            "example": {
                "email": "owner@healthylife.com",
                "password": "SecurePass123",
                "remember_me": False
            }
        }


class RefreshRequest(BaseModel):
    """Refresh token in the body; the refreshToken cookie wins when both are sent."""
    refresh_token: Optional[str] = None


class ForgotPasswordRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    """Confirm password reset with token."""
    token: str = Field(..., min_length=1)
    password: str

    @field_validator("password")
    @classmethod
    def check_password(cls, v: str) -> str:
        return validate_password_strength(v)


class ChangePasswordRequest(BaseModel):
    """Change password for logged-in user."""
    current_password: str = Field(..., min_length=1)
    new_password: str

    @field_validator("new_password")
    @classmethod
    def check_password(cls, v: str) -> str:
        return validate_password_strength(v)


class UpdateProfileRequest(BaseModel):
    """
    Partial profile update.

    Only fields present in the body are applied. Sending null clears an
    optional field; first and last name cannot be cleared.
    """
    first_name: Optional[str] = Field(None, min_length=2)
    last_name: Optional[str] = Field(None, min_length=2)
    phone: Optional[str] = None
    avatar_url: Optional[str] = None
    birth_date: Optional[date] = None
    gender: Optional[Gender] = None
    address_line1: Optional[str] = Field(None, min_length=5)
    address_line2: Optional[str] = None
    city: Optional[str] = Field(None, min_length=2)
    district: Optional[str] = Field(None, min_length=2)
    postal_code: Optional[str] = None

    @field_validator("first_name", "last_name")
    @classmethod
    def not_null(cls, v: Optional[str]) -> str:
        if v is None:
            raise ValueError("This field cannot be cleared")
        return v

    @field_validator("phone")
    @classmethod
    def check_phone(cls, v: Optional[str]) -> Optional[str]:
        return normalize_phone(v)

    @field_validator("avatar_url")
    @classmethod
    def check_avatar_url(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.startswith(("http://", "https://")):
            raise ValueError("Invalid URL")
        return v

    @field_validator("postal_code")
    @classmethod
    def check_postal_code(cls, v: Optional[str]) -> Optional[str]:
        return _check_postal_code(v)
