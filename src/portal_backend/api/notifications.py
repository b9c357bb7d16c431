import logging
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session

from portal_backend.cache import keys
from portal_backend.cache.middleware import cached
from portal_backend.database import get_db
from portal_backend.interface.notifications import (
    MarkReadRequest,
    NotificationCreate,
    NotificationGet,
    NotificationListResponse,
    NotificationQuery,
    NotificationUpdate,
)
from portal_backend.permissions.auth import require_permissions
from portal_backend.permissions.principal import Principal
from portal_backend.services.notifications import NotificationService

logger = logging.getLogger(__name__)

notification_router = APIRouter()


def _scope(principal: Principal, user_id: Optional[str]) -> Optional[str]:
    """Administrators see everyone's notifications unless they narrow to one user."""
    if principal.is_admin and not principal.is_delegated:
        return user_id
    return principal.user_id


@notification_router.get("", response_model=NotificationListResponse)
async def list_notifications(
    permissions: Annotated[Principal, Depends(require_permissions("view_notification"))],
    response: Response,
    params: NotificationQuery = Depends(),
    user_id: Optional[str] = None,
    refresh: bool = Query(False, alias="_refresh"),
    db: Session = Depends(get_db),
):
    scope = _scope(permissions, user_id)
    key = keys.notifications_list_key(
        user_id=scope,
        status=params.status,
        notification_type=params.notification_type,
        priority=params.priority,
        limit=params.limit,
        offset=params.offset,
    )

    async def fetch():
        items, total, unread = NotificationService(db).list(scope, params)
        return {"notifications": items, "total": total, "unread": unread}

    result = await cached(key, fetch, "short", force_refresh=refresh)
    response.headers["X-Total-Count"] = str(result["total"])
    return result


@notification_router.get("/unread-count")
async def unread_count(
    permissions: Annotated[Principal, Depends(require_permissions("view_notification_count"))],
    user_id: Optional[str] = None,
    refresh: bool = Query(False, alias="_refresh"),
    db: Session = Depends(get_db),
):
    scope = _scope(permissions, user_id)

    async def fetch():
        return {"unread": NotificationService(db).unread_count(scope)}

    return await cached(keys.notifications_unread_count_key(scope), fetch, "short", force_refresh=refresh)


@notification_router.post("", response_model=NotificationGet, status_code=status.HTTP_201_CREATED)
async def create_notification(
    permissions: Annotated[Principal, Depends(require_permissions("add_notification"))],
    entity: NotificationCreate,
    db: Session = Depends(get_db),
):
    return await NotificationService(db).create(entity, permissions)


@notification_router.post("/mark-read")
async def mark_notifications_read(
    permissions: Annotated[Principal, Depends(require_permissions("mark_notification_read"))],
    entity: MarkReadRequest,
    db: Session = Depends(get_db),
):
    updated = await NotificationService(db).mark_read(permissions.user_id, entity.notification_ids)
    return {"updated": updated}


@notification_router.get("/{notification_id}", response_model=NotificationGet)
async def get_notification(
    permissions: Annotated[Principal, Depends(require_permissions("view_notification"))],
    notification_id: str,
    db: Session = Depends(get_db),
):
    return NotificationService(db).get_for(notification_id, permissions)


@notification_router.patch("/{notification_id}", response_model=NotificationGet)
async def update_notification(
    permissions: Annotated[Principal, Depends(require_permissions("edit_notification", "mark_notification_read"))],
    notification_id: str,
    entity: NotificationUpdate,
    db: Session = Depends(get_db),
):
    return await NotificationService(db).update(notification_id, entity, permissions)


@notification_router.delete("/{notification_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_notification(
    permissions: Annotated[Principal, Depends(require_permissions("delete_notification"))],
    notification_id: str,
    db: Session = Depends(get_db),
):
    await NotificationService(db).delete(notification_id, permissions)
