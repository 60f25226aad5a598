"""
Security utilities for the DietSaaS API.
Password hashing, signed access tokens, opaque refresh tokens and
duration parsing.
"""
import re
import secrets
from datetime import datetime, timedelta
from typing import Optional

import jwt
import bcrypt
from pydantic import BaseModel

from dietsaas.config import settings
from dietsaas.core.clock import utcnow
from dietsaas.core.exceptions import InvalidDurationError, TokenInvalidError


_DURATION_RE = re.compile(r"^(\d+)([dhms])$")

_UNIT_SECONDS = {
    "d": 24 * 60 * 60,
    "h": 60 * 60,
    "m": 60,
    "s": 1,
}


def hash_password(password: str, rounds: Optional[int] = None) -> str:
    """Hash a password."""
    salt = bcrypt.gensalt(rounds=rounds or settings.BCRYPT_ROUNDS)
    return bcrypt.hashpw(password.encode('utf-8'), salt).decode('utf-8')


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against its hash."""
    return bcrypt.checkpw(
        plain_password.encode('utf-8'),
        hashed_password.encode('utf-8')
    )


def parse_duration(expression: str) -> timedelta:
    """Turn "7d", "12h", "30m" or "45s" into a timedelta."""
    match = _DURATION_RE.match(expression or "")
    if not match:
        raise InvalidDurationError(expression)
    value, unit = int(match.group(1)), match.group(2)
    return timedelta(seconds=value * _UNIT_SECONDS[unit])


def expiry_for(expression: str, now: Optional[datetime] = None) -> datetime:
    """Absolute expiry timestamp for a duration expression, counted from now."""
    return (now or utcnow()) + parse_duration(expression)


class TokenClaims(BaseModel):
    """Identity carried inside an access token."""
    subject_id: str
    email: Optional[str] = None
    role: str
    organization_id: str


def issue_access_token(
    claims: TokenClaims,
    expires_in: Optional[str] = None,
    now: Optional[datetime] = None,
) -> str:
    """
    Create a signed access token.

    Args:
        claims: Identity to encode
        expires_in: Duration expression, defaults to ACCESS_TOKEN_EXPIRES_IN
        now: Issue time (UTC)

    Returns:
        Encoded JWT string
    """
    issued_at = now or utcnow()
    payload = {
        "sub": claims.subject_id,
        "email": claims.email,
        "role": claims.role,
        "org_id": claims.organization_id,
        "iat": issued_at,
        "exp": expiry_for(expires_in or settings.ACCESS_TOKEN_EXPIRES_IN, issued_at),
        "type": "access",
    }
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def verify_access_token(token: str) -> TokenClaims:
    """
    Decode and validate an access token.

    Raises:
        TokenInvalidError: bad signature, malformed, expired, wrong type
            or missing claims
    """
    try:
        payload = jwt.decode(
            token,
            settings.SECRET_KEY,
            algorithms=[settings.ALGORITHM],
            options={"require": ["exp", "sub"]},
        )
    except jwt.InvalidTokenError:
        raise TokenInvalidError("Access token")

    if payload.get("type") != "access" or not payload.get("org_id") or not payload.get("role"):
        raise TokenInvalidError("Access token")

    return TokenClaims(
        subject_id=payload["sub"],
        email=payload.get("email"),
        role=payload["role"],
        organization_id=payload["org_id"],
    )


def issue_refresh_token() -> str:
    """Opaque refresh token; only ever used as a lookup key."""
    return secrets.token_urlsafe(48)


def generate_secure_token(length: int = 32) -> str:
    """Generate a secure random token for password reset, email verification, etc."""
    return secrets.token_urlsafe(length)


def generate_temporary_password(length: int = 12) -> str:
    """Random password handed to invited users."""
    return secrets.token_urlsafe(length)[:length]
