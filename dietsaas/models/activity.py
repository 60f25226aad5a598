"""
Security log and consent records.
Both are append-only: the application inserts rows and never edits them.
"""
import uuid
from datetime import datetime
from typing import Optional, Dict, Any

from sqlmodel import SQLModel, Field
from sqlalchemy import Column, DateTime, JSON

from dietsaas.core.clock import utcnow


class SecurityLog(SQLModel, table=True):
    """
    Audit trail for sensitive actions: logins, lockouts, password changes
    and session revocations.
    """
    __tablename__ = "security_log"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    event: str = Field(index=True)
    severity: str = Field(default="low")  # low, medium, high

    user_id: Optional[uuid.UUID] = Field(default=None, foreign_key="user.id", index=True)
    email: Optional[str] = None

    details: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))
    # Example: {"attempt": 3, "locked": false}

    # Request context
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    blocked: bool = Field(default=False)

    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime)


class ConsentRecord(SQLModel, table=True):
    """KVKK consent captured when an account is opened."""
    __tablename__ = "consent_record"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    organization_id: uuid.UUID = Field(foreign_key="organization.id", index=True)
    subject_id: uuid.UUID = Field(index=True)

    type: str = Field(default="KVKK_EXPLICIT")
    status: str = Field(default="GRANTED")
    consent_text: str
    consent_version: str = Field(default="1.0")

    ip_address: Optional[str] = None
    user_agent: Optional[str] = None

    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime)


# Event constants for consistency
class SecurityEvents:
    LOGIN_SUCCESS = "login.success"
    LOGIN_FAILED = "login.failed"
    LOGIN_LOCKED = "login.locked"
    LOGOUT_ALL = "logout.all_devices"
    PASSWORD_CHANGE_FAILED = "password.change_failed"
    PASSWORD_CHANGED = "password.changed"
    PASSWORD_RESET_REQUESTED = "password.reset_requested"
    PASSWORD_RESET_COMPLETED = "password.reset_completed"
    USER_INVITED = "organization.user_invited"
    DOMAIN_CHANGED = "organization.domain_changed"
    DOMAIN_VERIFIED = "organization.domain_verified"
    SETTINGS_UPDATED = "organization.settings_updated"
    BRANDING_UPDATED = "organization.branding_updated"
    BRANDING_RESET = "organization.branding_reset"
