import logging
from typing import Annotated, List

from fastapi import APIRouter, Depends, Query, Request, Response, status
from sqlalchemy.orm import Session

from portal_backend.api.crud import create_db, delete_db, get_id_db, to_dict, update_db
from portal_backend.api.exceptions import BadRequestException
from portal_backend.auth.passwords import hash_password
from portal_backend.cache import keys
from portal_backend.cache.invalidation import invalidate_all_user_related_cache, invalidate_media_cache
from portal_backend.cache.middleware import cached
from portal_backend.database import get_db
from portal_backend.interface.base import Pagination
from portal_backend.interface.groups import UserGroupGet, UserGroupsAssign, UserGroupWithPermissions
from portal_backend.interface.permissions import (
    PermissionCheck,
    PermissionCheckResponse,
    PermissionGet,
    UserPermissionsResponse,
)
from portal_backend.interface.users import (
    UserCreate,
    UserGet,
    UserList,
    UserListResponse,
    UserQuery,
    UserUpdate,
    user_search,
)
from portal_backend.model.auth import User
from portal_backend.model.seeder import DEFAULT_USER_GROUP
from portal_backend.permissions.auth import get_current_principal, require_permissions
from portal_backend.permissions.core import PermissionResolver
from portal_backend.permissions.management import assign_groups_to_user
from portal_backend.permissions.principal import Principal
from portal_backend.services.activity_log import ActivityLogService
from portal_backend.services.media import MediaService

logger = logging.getLogger(__name__)

user_router = APIRouter()


async def _permissions_response(db: Session, user_id: str, force_refresh: bool) -> dict:
    resolver = PermissionResolver(db)
    principal = await resolver.build_principal(user_id, force_refresh=force_refresh)
    return UserPermissionsResponse(
        user_id=user_id,
        permissions=principal.permissions,
        is_superuser=principal.is_superuser,
        is_admin=principal.is_admin,
    ).model_dump()


# current user

@user_router.get("/me", response_model=UserGet)
async def get_me(
    principal: Annotated[Principal, Depends(get_current_principal)],
    refresh: bool = Query(False, alias="_refresh"),
    db: Session = Depends(get_db),
):
    async def fetch():
        return to_dict(UserGet, get_id_db(db, principal.user_id, User))

    return await cached(keys.profile_key(principal.user_id), fetch, "medium", force_refresh=refresh)


@user_router.get("/me/groups", response_model=List[UserGroupGet])
async def get_my_groups(
    principal: Annotated[Principal, Depends(get_current_principal)],
    refresh: bool = Query(False, alias="_refresh"),
    db: Session = Depends(get_db),
):
    return await PermissionResolver(db).get_user_groups(principal.user_id, force_refresh=refresh)


@user_router.get("/me/permissions", response_model=UserPermissionsResponse)
async def get_my_permissions(principal: Annotated[Principal, Depends(get_current_principal)]):
    return UserPermissionsResponse(
        user_id=principal.user_id,
        permissions=principal.permissions,
        is_superuser=principal.is_superuser,
        is_admin=principal.is_admin,
    )


# administration

@user_router.get("", response_model=UserListResponse)
async def list_users(
    permissions: Annotated[Principal, Depends(require_permissions("view_users"))],
    response: Response,
    params: UserQuery = Depends(),
    refresh: bool = Query(False, alias="_refresh"),
    db: Session = Depends(get_db),
):
    key = keys.users_list_key(
        page=params.page,
        limit=params.limit,
        search=params.search,
        auth_type=params.auth_type,
        status=params.status,
        gender=params.gender,
        is_active=params.is_active,
        is_verified=params.is_verified,
    )

    async def fetch():
        query = user_search(db, db.query(User), params)
        total = query.order_by(None).count()
        rows = query.order_by(User.created_at.desc()).limit(params.limit).offset(params.offset).all()
        return {
            "users": [to_dict(UserList, u) for u in rows],
            "total": total,
            "pagination": Pagination.build(params.page, params.limit, total).model_dump(),
        }

    result = await cached(key, fetch, "medium", force_refresh=refresh)
    response.headers["X-Total-Count"] = str(result["total"])
    return result


@user_router.post("", response_model=UserGet, status_code=status.HTTP_201_CREATED)
async def create_user(
    permissions: Annotated[Principal, Depends(require_permissions("add_user"))],
    entity: UserCreate,
    request: Request,
    db: Session = Depends(get_db),
):
    user = create_db(
        db, entity, User,
        exclude={"password", "groups"},
        commit=False,
        password=hash_password(entity.password),
    )
    await assign_groups_to_user(db, user.id, entity.groups or [DEFAULT_USER_GROUP], assigned_by=permissions.user_id)
    db.refresh(user)

    ActivityLogService(db).log(
        f"Created user {user.email}", user_id=permissions.user_id, action="create_user",
        module="users", request=request, status_code=status.HTTP_201_CREATED,
        metadata={"target_user_id": user.id},
    )
    await invalidate_all_user_related_cache(user.id)
    return user


@user_router.get("/{user_id}", response_model=UserGet)
async def get_user(
    permissions: Annotated[Principal, Depends(require_permissions("view_user"))],
    user_id: str,
    refresh: bool = Query(False, alias="_refresh"),
    db: Session = Depends(get_db),
):
    async def fetch():
        return to_dict(UserGet, get_id_db(db, user_id, User))

    return await cached(keys.user_key(user_id), fetch, "medium", force_refresh=refresh)


@user_router.patch("/{user_id}", response_model=UserGet)
async def update_user(
    permissions: Annotated[Principal, Depends(require_permissions("edit_user"))],
    user_id: str,
    entity: UserUpdate,
    request: Request,
    db: Session = Depends(get_db),
):
    user = get_id_db(db, user_id, User)
    changes = entity.model_dump(exclude_unset=True)
    if changes.get("password"):
        changes["password"] = hash_password(changes["password"])
    else:
        changes.pop("password", None)

    user = update_db(db, user, changes)

    ActivityLogService(db).log(
        f"Updated user {user.email}", user_id=permissions.user_id, action="update_user",
        module="users", request=request, metadata={"target_user_id": user_id, "fields": sorted(changes)},
    )
    await invalidate_all_user_related_cache(user_id)
    return user


@user_router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_user(
    permissions: Annotated[Principal, Depends(require_permissions("delete_user"))],
    user_id: str,
    request: Request,
    db: Session = Depends(get_db),
):
    user = get_id_db(db, user_id, User)
    if user.is_protected:
        raise BadRequestException(detail="Protected users cannot be deleted")
    if user.id == (permissions.actor_id or permissions.user_id):
        raise BadRequestException(detail="You cannot delete your own account")

    email = user.email
    media_service = MediaService(db)
    stored_files = media_service.stored_files(user.id)
    delete_db(db, user)
    media_service.remove_files(stored_files)

    ActivityLogService(db).log(
        f"Deleted user {email}", user_id=permissions.user_id, action="delete_user",
        module="users", request=request, metadata={"target_user_id": user_id},
    )
    await invalidate_all_user_related_cache(user_id)
    await invalidate_media_cache(user_id)


@user_router.get("/{user_id}/groups", response_model=List[UserGroupGet])
async def get_user_groups(
    permissions: Annotated[Principal, Depends(require_permissions("view_user_groups"))],
    user_id: str,
    refresh: bool = Query(False, alias="_refresh"),
    db: Session = Depends(get_db),
):
    get_id_db(db, user_id, User)
    return await PermissionResolver(db).get_user_groups(user_id, force_refresh=refresh)


@user_router.put("/{user_id}/groups", response_model=List[UserGroupGet])
async def set_user_groups(
    permissions: Annotated[Principal, Depends(require_permissions("assign_user_groups"))],
    user_id: str,
    entity: UserGroupsAssign,
    request: Request,
    db: Session = Depends(get_db),
):
    groups = await assign_groups_to_user(db, user_id, entity.groups, assigned_by=permissions.user_id)

    ActivityLogService(db).log(
        f"Assigned groups to user {user_id}", user_id=permissions.user_id, action="assign_user_groups",
        module="users", request=request, metadata={"groups": [g.codename for g in groups]},
    )
    await invalidate_all_user_related_cache(user_id)
    return groups


@user_router.get("/{user_id}/permissions", response_model=UserPermissionsResponse)
async def get_user_permissions(
    permissions: Annotated[Principal, Depends(require_permissions("view_user_permissions"))],
    user_id: str,
    refresh: bool = Query(False, alias="_refresh"),
    db: Session = Depends(get_db),
):
    get_id_db(db, user_id, User)

    async def fetch():
        return await _permissions_response(db, user_id, force_refresh=refresh)

    return await cached(keys.user_permissions_response_key(user_id), fetch, "very_long", force_refresh=refresh)


@user_router.get("/{user_id}/groups/permissions", response_model=List[UserGroupWithPermissions])
async def get_user_groups_with_permissions(
    permissions: Annotated[Principal, Depends(require_permissions("view_user_groups"))],
    user_id: str,
    db: Session = Depends(get_db),
):
    get_id_db(db, user_id, User)
    return PermissionResolver(db).get_user_groups_with_permissions(user_id)


@user_router.get("/{user_id}/permissions/details", response_model=List[PermissionGet])
async def get_user_permission_details(
    permissions: Annotated[Principal, Depends(require_permissions("view_user_permissions"))],
    user_id: str,
    refresh: bool = Query(False, alias="_refresh"),
    db: Session = Depends(get_db),
):
    get_id_db(db, user_id, User)
    return await PermissionResolver(db).get_user_permission_details(user_id, force_refresh=refresh)


@user_router.post("/{user_id}/permissions/check", response_model=PermissionCheckResponse)
async def check_user_permissions(
    permissions: Annotated[Principal, Depends(require_permissions("view_user_permissions"))],
    user_id: str,
    entity: PermissionCheck,
    db: Session = Depends(get_db),
):
    get_id_db(db, user_id, User)
    resolver = PermissionResolver(db)
    if entity.require_all:
        granted = await resolver.has_all_permissions(user_id, entity.permissions)
    else:
        granted = await resolver.has_any_permission(user_id, entity.permissions)
    return PermissionCheckResponse(
        user_id=user_id,
        granted=granted,
        is_superuser=resolver.is_superuser(user_id),
        is_admin=resolver.is_admin(user_id),
    )
