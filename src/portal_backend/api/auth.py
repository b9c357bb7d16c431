import logging
from datetime import datetime, timezone
from typing import Annotated

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from portal_backend.api.exceptions import BadRequestException, ForbiddenException, NotFoundException, UnauthorizedException
from portal_backend.auth.passwords import hash_password, verify_password
from portal_backend.auth.tokens import (
    REFRESH_TOKEN,
    TokenError,
    create_access_token,
    create_refresh_token,
    decode_token,
    seconds_until_expiry,
)
from portal_backend.cache import get_cache
from portal_backend.cache.invalidation import invalidate_user_cache
from portal_backend.cache.keys import revoked_token_key
from portal_backend.database import get_db
from portal_backend.interface.auth import ChangePasswordRequest, LoginRequest, RefreshRequest, TokenInfo, TokenResponse
from portal_backend.model.auth import User
from portal_backend.permissions.auth import INVALID_TOKEN_MESSAGE, get_current_principal, require_permissions
from portal_backend.permissions.core import check_permission
from portal_backend.permissions.principal import Principal
from portal_backend.services.activity_log import ActivityLogService
from portal_backend.settings import settings
from portal_backend.utils import utc_now

logger = logging.getLogger(__name__)

auth_router = APIRouter()


def _token_response(user_id: str) -> TokenResponse:
    return TokenResponse(
        access_token=create_access_token(user_id),
        refresh_token=create_refresh_token(user_id),
        expires_in=settings.ACCESS_TOKEN_EXPIRY_MINUTES * 60,
    )


@auth_router.post("/login", response_model=TokenResponse)
async def login(payload: LoginRequest, request: Request, db: Session = Depends(get_db)):
    login_name = payload.login.strip()
    user = (
        db.query(User)
        .filter(or_(func.lower(User.email) == login_name.lower(), User.user_name == login_name))
        .first()
    )

    if user is None or user.is_trashed or not verify_password(payload.password, user.password):
        ActivityLogService(db).log(
            f"Failed login for {login_name}", level="WARNING",
            user_id=user.id if user else None, action="login_failed", module="auth",
            request=request, status_code=status.HTTP_401_UNAUTHORIZED,
        )
        raise UnauthorizedException("Invalid credentials")

    if user.status != "ACTIVE" or not user.is_active:
        raise ForbiddenException("Account is not active")

    user.last_sign_in_at = utc_now()
    db.commit()

    ActivityLogService(db).log(
        "User logged in", user_id=user.id, action="login", module="auth", request=request,
        status_code=status.HTTP_200_OK,
    )
    await invalidate_user_cache(user.id)
    return _token_response(user.id)


@auth_router.post("/refresh", response_model=TokenResponse)
async def refresh_token(payload: RefreshRequest, db: Session = Depends(get_db)):
    try:
        claims = decode_token(payload.refresh_token)
    except TokenError:
        raise UnauthorizedException(INVALID_TOKEN_MESSAGE)

    if claims.get("type") != REFRESH_TOKEN:
        raise UnauthorizedException(INVALID_TOKEN_MESSAGE)
    if claims.get("jti") and await get_cache().exists(revoked_token_key(claims["jti"])):
        raise UnauthorizedException(INVALID_TOKEN_MESSAGE)

    user = db.query(User).filter(User.id == claims.get("sub")).first()
    if user is None or user.is_trashed or not user.is_active or user.status != "ACTIVE":
        raise UnauthorizedException(INVALID_TOKEN_MESSAGE)

    return TokenResponse(
        access_token=create_access_token(user.id),
        refresh_token=payload.refresh_token,
        expires_in=settings.ACCESS_TOKEN_EXPIRY_MINUTES * 60,
    )


@auth_router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(
    principal: Annotated[Principal, Depends(get_current_principal)],
    request: Request,
    db: Session = Depends(get_db),
):
    claims = request.state.token_payload
    jti = claims.get("jti")
    if jti:
        await get_cache().set(revoked_token_key(jti), True, seconds_until_expiry(claims))

    ActivityLogService(db).log(
        "User logged out", user_id=principal.actor_id or principal.user_id,
        action="logout", module="auth", request=request,
    )


@auth_router.get("/token-info", response_model=TokenInfo)
async def token_info(principal: Annotated[Principal, Depends(get_current_principal)], request: Request):
    claims = request.state.token_payload

    def _timestamp(name):
        value = claims.get(name)
        return datetime.fromtimestamp(value, tz=timezone.utc) if value else None

    return TokenInfo(
        user_id=principal.user_id,
        token_type=claims.get("type"),
        issued_at=_timestamp("iat"),
        expires_at=_timestamp("exp"),
        groups=principal.groups,
        permissions=principal.permissions,
        is_superuser=principal.is_superuser,
        is_admin=principal.is_admin,
        acting_for=principal.acting_for,
    )


@auth_router.post("/change-password", status_code=status.HTTP_204_NO_CONTENT)
async def change_password(
    payload: ChangePasswordRequest,
    permissions: Annotated[Principal, Depends(require_permissions("edit_profile", "manage_auth", "reset_user_password"))],
    request: Request,
    db: Session = Depends(get_db),
):
    if permissions.is_delegated:
        raise ForbiddenException("Passwords cannot be changed through a shared account")
    if payload.password != payload.confirm_password:
        raise BadRequestException("Passwords do not match")

    target_id = payload.user_id or permissions.user_id
    own_password = target_id == permissions.user_id

    if own_password:
        check_permission(permissions, "edit_profile")
        if not payload.old_password:
            raise BadRequestException("Current password is required")
    else:
        check_permission(permissions, ["manage_auth", "reset_user_password"])

    user = db.query(User).filter(User.id == target_id, User.is_trashed.is_(False)).first()
    if user is None:
        raise NotFoundException("User not found")
    if user.is_protected and not own_password and not permissions.is_superuser:
        raise ForbiddenException("Protected accounts can only change their own password")
    if own_password and not verify_password(payload.old_password, user.password):
        raise BadRequestException("Current password is incorrect")

    user.password = hash_password(payload.password)
    db.commit()

    ActivityLogService(db).log(
        "Password changed", user_id=permissions.user_id, action="change_password", module="auth",
        request=request, metadata={"target_user_id": target_id} if not own_password else None,
    )
    await invalidate_user_cache(target_id)
