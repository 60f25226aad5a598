"""
Session model backing refresh tokens.
Sessions are invalidated, never deleted, so they double as a login history.
"""
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime
from sqlmodel import SQLModel, Field

from dietsaas.core.clock import utcnow


class UserSession(SQLModel, table=True):
    """
    One row per login. The refresh token is opaque and only used as a
    lookup key; a user may hold many valid sessions at once.
    """
    __tablename__ = "user_session"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    user_id: uuid.UUID = Field(foreign_key="user.id", index=True)

    refresh_token: str = Field(unique=True, index=True)
    access_token: str  # Last access token minted for this session

    # Client metadata
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    browser: Optional[str] = None
    device: Optional[str] = None
    os: Optional[str] = None

    # Status
    is_valid: bool = Field(default=True, index=True)

    # Timestamps
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime)
    last_activity_at: datetime = Field(default_factory=utcnow, sa_type=DateTime)
    expires_at: datetime = Field(sa_type=DateTime)
