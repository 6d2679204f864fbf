"""Unit tests for bizhub.core.security: JWT tokens and invitation tokens.

These tests do NOT require a database; they exercise pure functions only.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone

import jwt

from bizhub.config import settings
from bizhub.core.security import (
    ALGORITHM,
    create_access_token,
    decode_access_token,
    generate_invitation_token,
)

# ---------------------------------------------------------------------------
# JWT
# ---------------------------------------------------------------------------


class TestCreateAccessToken:
    def test_contains_required_claims(self):
        user_id = uuid.uuid4()
        token = create_access_token(user_id, "manager")
        payload = jwt.decode(token, options={"verify_signature": False})
        assert payload["sub"] == str(user_id)
        assert payload["role"] == "manager"
        assert payload["iss"] == "bizhub"
        assert payload["aud"] == "bizhub"
        assert "iat" in payload
        assert "exp" in payload

    def test_default_role_is_employee(self):
        token = create_access_token(uuid.uuid4())
        payload = jwt.decode(token, options={"verify_signature": False})
        assert payload["role"] == "employee"


class TestDecodeAccessToken:
    def test_round_trip(self):
        user_id = uuid.uuid4()
        payload = decode_access_token(create_access_token(user_id))
        assert payload is not None
        assert payload["sub"] == str(user_id)

    def test_garbage_returns_none(self):
        assert decode_access_token("not-a-jwt") is None

    def test_wrong_secret_returns_none(self):
        token = jwt.encode(
            {"sub": "x", "iss": "bizhub", "aud": "bizhub"}, "other-secret", algorithm=ALGORITHM
        )
        assert decode_access_token(token) is None

    def test_expired_returns_none(self):
        now = datetime.now(timezone.utc)
        token = jwt.encode(
            {
                "sub": str(uuid.uuid4()),
                "iat": now - timedelta(hours=2),
                "exp": now - timedelta(hours=1),
                "iss": "bizhub",
                "aud": "bizhub",
            },
            settings.SECRET_KEY,
            algorithm=ALGORITHM,
        )
        assert decode_access_token(token) is None

    def test_wrong_audience_returns_none(self):
        token = jwt.encode(
            {"sub": "x", "iss": "bizhub", "aud": "someone-else"},
            settings.SECRET_KEY,
            algorithm=ALGORITHM,
        )
        assert decode_access_token(token) is None


# ---------------------------------------------------------------------------
# Invitation tokens
# ---------------------------------------------------------------------------


class TestInvitationToken:
    def test_length(self):
        assert len(generate_invitation_token()) >= 32

    def test_url_safe(self):
        token = generate_invitation_token()
        assert all(c.isalnum() or c in "-_" for c in token)

    def test_unique(self):
        tokens = {generate_invitation_token() for _ in range(200)}
        assert len(tokens) == 200
