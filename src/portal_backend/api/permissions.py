import logging
from collections import Counter
from typing import Annotated, List, Optional

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from portal_backend.api.crud import create_db, delete_db, get_id_db, to_dict, update_db
from portal_backend.cache import keys
from portal_backend.cache.invalidation import invalidate_permissions_cache
from portal_backend.cache.middleware import cached
from portal_backend.database import get_db
from portal_backend.interface.permissions import (
    PermissionCreate,
    PermissionGet,
    PermissionStatistics,
    PermissionUpdate,
)
from portal_backend.model.group import GroupPermission, Permission
from portal_backend.permissions.auth import require_permissions
from portal_backend.permissions.management import after_permission_change
from portal_backend.permissions.principal import Principal
from portal_backend.services.activity_log import ActivityLogService

logger = logging.getLogger(__name__)

permission_router = APIRouter()


@permission_router.get("", response_model=List[PermissionGet])
async def list_permissions(
    permissions: Annotated[Principal, Depends(require_permissions("view_permission"))],
    category: Optional[str] = None,
    refresh: bool = Query(False, alias="_refresh"),
    db: Session = Depends(get_db),
):
    async def fetch():
        rows = db.query(Permission).order_by(Permission.category, Permission.name).all()
        return [to_dict(PermissionGet, p) for p in rows]

    result = await cached(keys.permissions_all_key(), fetch, "long", force_refresh=refresh)

    # the cached set is unfiltered
    if category:
        result = [p for p in result if p["category"] == category]
    return result


@permission_router.get("/statistics", response_model=PermissionStatistics)
async def permission_statistics(
    permissions: Annotated[Principal, Depends(require_permissions("view_permission_statistics"))],
    refresh: bool = Query(False, alias="_refresh"),
    db: Session = Depends(get_db),
):
    async def fetch():
        rows = db.query(Permission).all()
        assigned = {pid for (pid,) in db.query(GroupPermission.permission_id).distinct().all()}
        return PermissionStatistics(
            total=len(rows),
            by_category=dict(Counter(p.category for p in rows)),
            unassigned=sorted(p.codename for p in rows if p.id not in assigned),
        ).model_dump()

    return await cached(keys.permissions_statistics_key(), fetch, "medium", force_refresh=refresh)


@permission_router.post("", response_model=PermissionGet, status_code=status.HTTP_201_CREATED)
async def create_permission(
    permissions: Annotated[Principal, Depends(require_permissions("add_permission"))],
    entity: PermissionCreate,
    request: Request,
    db: Session = Depends(get_db),
):
    permission = create_db(db, entity, Permission)

    ActivityLogService(db).log(
        f"Created permission {permission.codename}", user_id=permissions.user_id,
        action="create_permission", module="permissions", request=request,
        status_code=status.HTTP_201_CREATED,
    )
    await invalidate_permissions_cache()
    return permission


@permission_router.get("/{permission_id}", response_model=PermissionGet)
async def get_permission(
    permissions: Annotated[Principal, Depends(require_permissions("view_permission"))],
    permission_id: str,
    refresh: bool = Query(False, alias="_refresh"),
    db: Session = Depends(get_db),
):
    async def fetch():
        return to_dict(PermissionGet, get_id_db(db, permission_id, Permission))

    return await cached(keys.permission_key(permission_id), fetch, "long", force_refresh=refresh)


@permission_router.patch("/{permission_id}", response_model=PermissionGet)
async def update_permission(
    permissions: Annotated[Principal, Depends(require_permissions("edit_permission"))],
    permission_id: str,
    entity: PermissionUpdate,
    request: Request,
    db: Session = Depends(get_db),
):
    permission = update_db(db, get_id_db(db, permission_id, Permission), entity)

    ActivityLogService(db).log(
        f"Updated permission {permission.codename}", user_id=permissions.user_id,
        action="update_permission", module="permissions", request=request,
    )
    await after_permission_change(permission_id)
    return permission


@permission_router.delete("/{permission_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_permission(
    permissions: Annotated[Principal, Depends(require_permissions("delete_permission"))],
    permission_id: str,
    request: Request,
    db: Session = Depends(get_db),
):
    permission = get_id_db(db, permission_id, Permission)
    codename = permission.codename
    delete_db(db, permission)

    ActivityLogService(db).log(
        f"Deleted permission {codename}", user_id=permissions.user_id,
        action="delete_permission", module="permissions", request=request,
    )
    await after_permission_change(permission_id)
