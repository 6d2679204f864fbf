from __future__ import annotations

import secrets
import uuid
from datetime import datetime, timedelta, timezone

import jwt

from bizhub.config import settings

ALGORITHM = "HS256"
TOKEN_ISSUER = "bizhub"
TOKEN_AUDIENCE = "bizhub"

# 32 random bytes → 43 url-safe characters
INVITATION_TOKEN_BYTES = 32


def create_access_token(user_id: uuid.UUID | str, role: str = "employee") -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "role": role,
        "iat": now,
        "exp": now + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
        "iss": TOKEN_ISSUER,
        "aud": TOKEN_AUDIENCE,
    }
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=ALGORITHM)


def decode_access_token(token: str) -> dict | None:
    try:
        return jwt.decode(
            token,
            settings.SECRET_KEY,
            algorithms=[ALGORITHM],
            audience=TOKEN_AUDIENCE,
            issuer=TOKEN_ISSUER,
        )
    except jwt.PyJWTError:
        return None


def generate_invitation_token() -> str:
    """Unguessable, URL-safe invitation token."""
    return secrets.token_urlsafe(INVITATION_TOKEN_BYTES)
