"""Bearer token helpers.

Tokens are issued by the identity provider; this service only verifies
them. ``create_access_token`` is kept for scripts and tests.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict

import jwt

from parley.config import get_settings
from parley.core.errors import Unauthenticated

settings = get_settings()


def create_access_token(data: Dict[str, Any], expires_delta: timedelta | None = None) -> str:
    """Create a signed JWT access token with an expiration time."""

    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (
        expires_delta if expires_delta is not None else timedelta(minutes=settings.access_token_expire_minutes)
    )
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> Dict[str, Any]:
    """Decode and validate a JWT access token."""

    try:
        payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except jwt.ExpiredSignatureError as exc:
        raise Unauthenticated("Token has expired") from exc
    except jwt.InvalidTokenError as exc:
        raise Unauthenticated("Could not validate credentials") from exc
    return payload


def user_id_from_token(token: str | None) -> str:
    """Return the stable user id carried in the ``sub`` claim."""

    if not token:
        raise Unauthenticated()
    subject = decode_access_token(token).get("sub")
    if not subject or not isinstance(subject, str):
        raise Unauthenticated("Could not validate credentials")
    return subject
