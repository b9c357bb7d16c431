import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from portal_backend.api.crud import get_id_db, to_dict, update_db
from portal_backend.api.exceptions import BadRequestException
from portal_backend.cache import keys
from portal_backend.cache.middleware import cached, with_cache_invalidation
from portal_backend.database import get_db
from portal_backend.interface.settings import LanguageUpdate, ProfileUpdate, ThemeUpdate, TimezoneUpdate
from portal_backend.interface.users import UserGet
from portal_backend.model.auth import User
from portal_backend.permissions.auth import require_permissions
from portal_backend.permissions.core import check_permission
from portal_backend.permissions.principal import Principal
from portal_backend.services.activity_log import ActivityLogService

logger = logging.getLogger(__name__)

settings_router = APIRouter()


async def _apply(db: Session, principal: Principal, changes: dict, action: str, request: Request) -> dict:
    """Write `changes` to the principal's own account and drop every cached view of it."""

    user_id = principal.user_id

    async def mutation():
        user = update_db(db, get_id_db(db, user_id, User), changes)
        ActivityLogService(db).log(
            "Updated own settings", user_id=principal.actor_id or user_id, action=action,
            module="settings", request=request, metadata={"fields": sorted(changes), "acting_for": principal.acting_for},
        )
        return to_dict(UserGet, user)

    return await with_cache_invalidation(
        mutation,
        keys=[keys.user_key(user_id), keys.profile_key(user_id)],
        patterns=[keys.users_list_pattern(), keys.dashboard_pattern()],
    )


@settings_router.get("/profile", response_model=UserGet)
async def get_profile(
    permissions: Annotated[Principal, Depends(require_permissions("view_profile"))],
    refresh: bool = Query(False, alias="_refresh"),
    db: Session = Depends(get_db),
):
    async def fetch():
        return to_dict(UserGet, get_id_db(db, permissions.user_id, User))

    return await cached(keys.profile_key(permissions.user_id), fetch, "medium", force_refresh=refresh)


@settings_router.patch("/profile", response_model=UserGet)
async def update_profile(
    permissions: Annotated[Principal, Depends(require_permissions("edit_profile"))],
    entity: ProfileUpdate,
    request: Request,
    db: Session = Depends(get_db),
):
    changes = entity.model_dump(exclude_unset=True)
    if "email" in changes:
        raise BadRequestException("Email cannot be changed from profile settings")
    if "phone" in changes:
        check_permission(permissions, "change_phone")
    if not changes:
        raise BadRequestException("No changes given")

    return await _apply(db, permissions, changes, "update_profile", request)


@settings_router.put("/theme", response_model=UserGet)
async def update_theme(
    permissions: Annotated[Principal, Depends(require_permissions("update_theme"))],
    entity: ThemeUpdate,
    request: Request,
    db: Session = Depends(get_db),
):
    return await _apply(db, permissions, {"theme": entity.theme}, "update_theme", request)


@settings_router.put("/language", response_model=UserGet)
async def update_language(
    permissions: Annotated[Principal, Depends(require_permissions("update_language"))],
    entity: LanguageUpdate,
    request: Request,
    db: Session = Depends(get_db),
):
    return await _apply(db, permissions, {"language": entity.language}, "update_language", request)


@settings_router.put("/timezone", response_model=UserGet)
async def update_timezone(
    permissions: Annotated[Principal, Depends(require_permissions("update_timezone"))],
    entity: TimezoneUpdate,
    request: Request,
    db: Session = Depends(get_db),
):
    return await _apply(db, permissions, {"timezone": entity.timezone}, "update_timezone", request)
