"""
Authentication dependencies.

The bearer JWT is read from the `X-Session-Token` header, then from
`Authorization: Bearer`, then from the `access_token` query parameter. The
token's user is loaded and turned into a `Principal` with resolved groups
and permissions. A request carrying `X-Acting-For` is switched to the
shared account when an active share allows it.
"""

import logging
from typing import Annotated, Optional

from fastapi import Depends, Request
from fastapi.security.utils import get_authorization_scheme_param
from sqlalchemy.orm import Session

from portal_backend.api.exceptions import ForbiddenException, UnauthorizedException
from portal_backend.auth.tokens import REFRESH_TOKEN, TokenError, decode_token, user_id_from_payload
from portal_backend.cache import get_cache
from portal_backend.cache.keys import revoked_token_key
from portal_backend.database import get_db
from portal_backend.model.auth import User
from portal_backend.permissions.core import PermissionResolver, check_permission
from portal_backend.permissions.principal import Principal
from portal_backend.services.account_shares import resolve_delegated_principal

logger = logging.getLogger(__name__)

INVALID_TOKEN_MESSAGE = "Missing or invalid Bearer token or Expired session"
ACTING_FOR_HEADER = "X-Acting-For"


def extract_token(request: Request) -> Optional[str]:
    session_token = request.headers.get("X-Session-Token")
    if session_token:
        return session_token

    authorization = request.headers.get("Authorization")
    if authorization:
        scheme, param = get_authorization_scheme_param(authorization)
        if scheme.lower() == "bearer" and param:
            return param

    return request.query_params.get("access_token")


async def authenticate_token(token: Optional[str], db: Session) -> tuple[User, dict]:
    if not token:
        raise UnauthorizedException(INVALID_TOKEN_MESSAGE)

    try:
        payload = decode_token(token)
    except TokenError as e:
        logger.debug(f"Token rejected: {e}")
        raise UnauthorizedException(INVALID_TOKEN_MESSAGE)

    if payload.get("type") == REFRESH_TOKEN:
        raise UnauthorizedException(INVALID_TOKEN_MESSAGE)

    jti = payload.get("jti")
    if jti and await get_cache().exists(revoked_token_key(jti)):
        raise UnauthorizedException(INVALID_TOKEN_MESSAGE)

    user_id = user_id_from_payload(payload)
    if not user_id:
        raise UnauthorizedException(INVALID_TOKEN_MESSAGE)

    user = db.query(User).filter(User.id == user_id).first()
    if user is None or user.is_trashed or not user.is_active:
        raise UnauthorizedException(INVALID_TOKEN_MESSAGE)
    if user.status == "SUSPENDED":
        raise ForbiddenException("Account suspended")
    if user.status != "ACTIVE":
        raise ForbiddenException("Account is not active")

    return user, payload


async def get_current_principal(request: Request, db: Session = Depends(get_db)) -> Principal:
    """Main dependency for the authenticated principal of a request."""

    user, payload = await authenticate_token(extract_token(request), db)

    principal = await PermissionResolver(db).build_principal(user.id, user.email)

    owner_id = request.headers.get(ACTING_FOR_HEADER)
    if owner_id and owner_id != user.id:
        principal = await resolve_delegated_principal(db, principal, owner_id, request)

    request.state.principal = principal
    request.state.token_payload = payload
    return principal


def require_permissions(*codenames: str, require_all: bool = False):
    """Dependency factory: authenticated principal holding `codenames` (any-of unless `require_all`)."""

    async def dependency(principal: Annotated[Principal, Depends(get_current_principal)]) -> Principal:
        return check_permission(principal, list(codenames), require_all)

    return dependency


async def require_admin(principal: Annotated[Principal, Depends(get_current_principal)]) -> Principal:
    if not (principal.is_superuser or principal.is_admin):
        raise ForbiddenException(detail={"message": "Administrator access required"})
    return principal
