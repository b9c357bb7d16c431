import logging
from typing import Annotated, List

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy import func
from sqlalchemy.orm import Session

from portal_backend.api.crud import create_db, get_id_db, to_dict, update_db
from portal_backend.cache import keys
from portal_backend.cache.invalidation import invalidate_groups_cache
from portal_backend.cache.middleware import cached
from portal_backend.database import get_db
from portal_backend.interface.groups import (
    GroupCreate,
    GroupGet,
    GroupPermissionsAssign,
    GroupUpdate,
    GroupWithPermissions,
)
from portal_backend.interface.permissions import PermissionGet
from portal_backend.model.group import Group, GroupPermission, Permission, UserGroup
from portal_backend.permissions.auth import require_permissions
from portal_backend.permissions.management import (
    after_group_update,
    assign_permissions_to_group,
    delete_group,
)
from portal_backend.permissions.principal import Principal
from portal_backend.services.activity_log import ActivityLogService

logger = logging.getLogger(__name__)

group_router = APIRouter()


def _counts(db: Session, association) -> dict:
    return dict(db.query(association.group_id, func.count(association.id)).group_by(association.group_id).all())


def _group_dict(group: Group, permission_counts: dict, user_counts: dict) -> dict:
    result = to_dict(GroupGet, group)
    result["permission_count"] = permission_counts.get(group.id, 0)
    result["user_count"] = user_counts.get(group.id, 0)
    return result


def _group_detail(db: Session, group: Group) -> dict:
    permissions = (
        db.query(Permission)
        .join(GroupPermission, GroupPermission.permission_id == Permission.id)
        .filter(GroupPermission.group_id == group.id)
        .order_by(Permission.category, Permission.name)
        .all()
    )
    user_count = db.query(func.count(UserGroup.id)).filter(UserGroup.group_id == group.id).scalar() or 0

    result = to_dict(GroupGet, group)
    result["permission_count"] = len(permissions)
    result["user_count"] = user_count
    result["permissions"] = [to_dict(PermissionGet, p) for p in permissions]
    return GroupWithPermissions.model_validate(result).model_dump(mode="json")


@group_router.get("", response_model=List[GroupGet])
async def list_groups(
    permissions: Annotated[Principal, Depends(require_permissions("view_group"))],
    refresh: bool = Query(False, alias="_refresh"),
    db: Session = Depends(get_db),
):
    async def fetch():
        permission_counts = _counts(db, GroupPermission)
        user_counts = _counts(db, UserGroup)
        groups = db.query(Group).order_by(Group.name).all()
        return [_group_dict(g, permission_counts, user_counts) for g in groups]

    return await cached(keys.groups_all_key(), fetch, "long", force_refresh=refresh)


@group_router.get("/statistics")
async def group_statistics(
    permissions: Annotated[Principal, Depends(require_permissions("view_group_statistics"))],
    refresh: bool = Query(False, alias="_refresh"),
    db: Session = Depends(get_db),
):
    async def fetch():
        user_counts = _counts(db, UserGroup)
        groups = db.query(Group).order_by(Group.name).all()
        return {
            "total": len(groups),
            "active": sum(1 for g in groups if g.is_active),
            "system": sum(1 for g in groups if g.is_system),
            "users_per_group": {g.codename: user_counts.get(g.id, 0) for g in groups},
        }

    return await cached(keys.groups_statistics_key(), fetch, "medium", force_refresh=refresh)


@group_router.post("", response_model=GroupWithPermissions, status_code=status.HTTP_201_CREATED)
async def create_group(
    permissions: Annotated[Principal, Depends(require_permissions("add_group"))],
    entity: GroupCreate,
    request: Request,
    db: Session = Depends(get_db),
):
    group = create_db(db, entity, Group, exclude={"permission_ids"}, commit=not entity.permission_ids, is_system=False)
    if entity.permission_ids:
        group = await assign_permissions_to_group(db, group.id, entity.permission_ids)

    ActivityLogService(db).log(
        f"Created group {group.codename}", user_id=permissions.user_id, action="create_group",
        module="groups", request=request, status_code=status.HTTP_201_CREATED,
    )
    await invalidate_groups_cache(group.id)
    return _group_detail(db, group)


@group_router.get("/{group_id}", response_model=GroupWithPermissions)
async def get_group(
    permissions: Annotated[Principal, Depends(require_permissions("view_group"))],
    group_id: str,
    refresh: bool = Query(False, alias="_refresh"),
    db: Session = Depends(get_db),
):
    async def fetch():
        return _group_detail(db, get_id_db(db, group_id, Group))

    return await cached(keys.group_key(group_id), fetch, "long", force_refresh=refresh)


@group_router.patch("/{group_id}", response_model=GroupWithPermissions)
async def update_group(
    permissions: Annotated[Principal, Depends(require_permissions("edit_group"))],
    group_id: str,
    entity: GroupUpdate,
    request: Request,
    db: Session = Depends(get_db),
):
    group = get_id_db(db, group_id, Group)
    changes = entity.model_dump(exclude_unset=True)
    membership_affected = any(
        field in changes and changes[field] != getattr(group, field) for field in ("codename", "is_active")
    )

    group = update_db(db, group, changes)

    ActivityLogService(db).log(
        f"Updated group {group.codename}", user_id=permissions.user_id, action="update_group",
        module="groups", request=request, metadata={"fields": sorted(changes)},
    )
    await after_group_update(db, group, membership_affected)
    return _group_detail(db, group)


@group_router.delete("/{group_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_group(
    permissions: Annotated[Principal, Depends(require_permissions("delete_group"))],
    group_id: str,
    request: Request,
    db: Session = Depends(get_db),
):
    await delete_group(db, group_id)

    ActivityLogService(db).log(
        f"Deleted group {group_id}", user_id=permissions.user_id, action="delete_group",
        module="groups", request=request,
    )


@group_router.get("/{group_id}/permissions", response_model=List[PermissionGet])
async def get_group_permissions(
    permissions: Annotated[Principal, Depends(require_permissions("view_group_permissions"))],
    group_id: str,
    refresh: bool = Query(False, alias="_refresh"),
    db: Session = Depends(get_db),
):
    async def fetch():
        return _group_detail(db, get_id_db(db, group_id, Group))["permissions"]

    return await cached(keys.group_permissions_key(group_id), fetch, "long", force_refresh=refresh)


@group_router.put("/{group_id}/permissions", response_model=GroupWithPermissions)
async def set_group_permissions(
    permissions: Annotated[Principal, Depends(require_permissions("assign_group_permissions"))],
    group_id: str,
    entity: GroupPermissionsAssign,
    request: Request,
    db: Session = Depends(get_db),
):
    group = await assign_permissions_to_group(db, group_id, entity.permission_ids)

    ActivityLogService(db).log(
        f"Assigned {len(entity.permission_ids)} permissions to group {group.codename}",
        user_id=permissions.user_id, action="assign_group_permissions", module="groups", request=request,
    )
    return _group_detail(db, group)
