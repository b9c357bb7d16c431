"""
JWT creation and verification.

Access and refresh tokens are issued for the `authenticated` audience.
Verification accepts tokens with that audience first and falls back to an
audience-free check, so tokens minted by other services with the same secret
still validate.
"""

import logging
import uuid
from datetime import timedelta
from typing import Any, Dict, Optional

from jose import JWTError, jwt
from jose.exceptions import JWTClaimsError

from portal_backend.settings import settings
from portal_backend.utils import utc_now

logger = logging.getLogger(__name__)

ACCESS_TOKEN = "access"
REFRESH_TOKEN = "refresh"
SESSION_TOKEN = "session"


class TokenError(Exception):
    pass


def _create_token(user_id: str, token_type: str, expires_minutes: int, extra: Optional[Dict[str, Any]] = None) -> str:
    now = utc_now()
    payload = {
        "sub": user_id,
        "type": token_type,
        "aud": settings.JWT_AUDIENCE,
        "jti": str(uuid.uuid4()),
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=expires_minutes)).timestamp()),
    }
    if extra:
        payload.update(extra)
    return jwt.encode(payload, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def create_access_token(user_id: str, extra: Optional[Dict[str, Any]] = None) -> str:
    return _create_token(user_id, ACCESS_TOKEN, settings.ACCESS_TOKEN_EXPIRY_MINUTES, extra)


def create_refresh_token(user_id: str) -> str:
    return _create_token(user_id, REFRESH_TOKEN, settings.REFRESH_TOKEN_EXPIRY_MINUTES)


def decode_token(token: str) -> Dict[str, Any]:
    try:
        return jwt.decode(
            token,
            settings.JWT_SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM],
            audience=settings.JWT_AUDIENCE,
        )
    except JWTClaimsError:
        pass
    except JWTError as e:
        raise TokenError(str(e)) from e

    try:
        return jwt.decode(
            token,
            settings.JWT_SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM],
            options={"verify_aud": False},
        )
    except JWTError as e:
        raise TokenError(str(e)) from e


def user_id_from_payload(payload: Dict[str, Any]) -> Optional[str]:
    """Session tokens embed a user object, access tokens carry `sub` or `user_id`."""
    if payload.get("type") == SESSION_TOKEN and isinstance(payload.get("user"), dict):
        user = payload["user"]
        return user.get("id") or user.get("user_id")
    return payload.get("sub") or payload.get("user_id")


def seconds_until_expiry(payload: Dict[str, Any]) -> int:
    exp = payload.get("exp")
    if exp is None:
        return settings.ACCESS_TOKEN_EXPIRY_MINUTES * 60
    return max(int(exp - utc_now().timestamp()), 1)
