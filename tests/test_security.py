"""Tests for the token service and password helpers."""
from datetime import datetime, timedelta

import jwt
import pytest

from dietsaas.config import settings
from dietsaas.core.clock import utcnow
from dietsaas.core.exceptions import InvalidDurationError, TokenInvalidError
from dietsaas.core.security import (
    TokenClaims,
    expiry_for,
    hash_password,
    issue_access_token,
    issue_refresh_token,
    parse_duration,
    verify_access_token,
    verify_password,
)


CLAIMS = TokenClaims(
    subject_id="8a7d4a52-2f7e-4c36-9c41-3f1f6f0b1a11",
    email="dietitian@example.com",
    role="DIETITIAN",
    organization_id="0f6c5b0e-7f0a-4a5e-8f53-2a9f1c6f4b22",
)


class TestDurations:
    @pytest.mark.parametrize("expression,expected", [
        ("7d", timedelta(days=7)),
        ("12h", timedelta(hours=12)),
        ("30m", timedelta(minutes=30)),
        ("45s", timedelta(seconds=45)),
    ])
    def test_parse_duration(self, expression, expected):
        assert parse_duration(expression) == expected

    @pytest.mark.parametrize("expression", ["", "7", "d7", "7w", "1.5h", "-1d", "7 d"])
    def test_rejects_malformed_expressions(self, expression):
        with pytest.raises(InvalidDurationError):
            parse_duration(expression)

    def test_expiry_for_is_relative_to_now(self):
        now = datetime(2024, 1, 31, 12, 0, 0)
        assert expiry_for("1d", now) == datetime(2024, 2, 1, 12, 0, 0)


class TestAccessTokens:
    def test_round_trips_claims_before_expiry(self):
        token = issue_access_token(CLAIMS)
        assert verify_access_token(token) == CLAIMS

    def test_fails_after_expiry(self):
        issued = utcnow() - timedelta(hours=2)
        token = issue_access_token(CLAIMS, expires_in="1h", now=issued)
        with pytest.raises(TokenInvalidError):
            verify_access_token(token)

    def test_rejects_wrong_signature(self):
        payload = {
            "sub": CLAIMS.subject_id,
            "role": CLAIMS.role,
            "org_id": CLAIMS.organization_id,
            "type": "access",
            "exp": utcnow() + timedelta(hours=1),
        }
        token = jwt.encode(payload, "not-the-secret", algorithm="HS256")
        with pytest.raises(TokenInvalidError):
            verify_access_token(token)

    def test_rejects_other_token_types(self):
        payload = {
            "sub": CLAIMS.subject_id,
            "role": CLAIMS.role,
            "org_id": CLAIMS.organization_id,
            "type": "refresh",
            "exp": utcnow() + timedelta(hours=1),
        }
        token = jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.ALGORITHM)
        with pytest.raises(TokenInvalidError):
            verify_access_token(token)

    def test_rejects_missing_organization_claim(self):
        payload = {
            "sub": CLAIMS.subject_id,
            "role": CLAIMS.role,
            "type": "access",
            "exp": utcnow() + timedelta(hours=1),
        }
        token = jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.ALGORITHM)
        with pytest.raises(TokenInvalidError):
            verify_access_token(token)

    def test_rejects_garbage(self):
        with pytest.raises(TokenInvalidError):
            verify_access_token("not.a.token")

    def test_default_expiry_follows_settings(self):
        now = utcnow().replace(microsecond=0)
        token = issue_access_token(CLAIMS, now=now)
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
        assert payload["exp"] - payload["iat"] == int(parse_duration(settings.ACCESS_TOKEN_EXPIRES_IN).total_seconds())


def test_refresh_tokens_are_opaque_and_unique():
    tokens = {issue_refresh_token() for _ in range(50)}
    assert len(tokens) == 50
    assert all(len(token) == 64 for token in tokens)


def test_password_hash_round_trip():
    hashed = hash_password("Passw0rdX", rounds=4)
    assert hashed != "Passw0rdX"
    assert verify_password("Passw0rdX", hashed)
    assert not verify_password("passw0rdx", hashed)
