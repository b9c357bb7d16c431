import logging
from datetime import datetime
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Query, Request, Response
from sqlalchemy.orm import Session

from portal_backend.cache import keys
from portal_backend.cache.invalidation import invalidate_activity_logs_cache
from portal_backend.cache.middleware import cached
from portal_backend.database import get_db
from portal_backend.interface.activity import (
    ActivityCleanupResult,
    ActivityLogListResponse,
    ActivityLogQuery,
    ActivityStatistics,
)
from portal_backend.permissions.auth import require_permissions
from portal_backend.permissions.principal import Principal
from portal_backend.services.activity_log import ActivityLogService

logger = logging.getLogger(__name__)

activity_router = APIRouter()


async def _list(db: Session, params: ActivityLogQuery, refresh: bool) -> dict:
    key = keys.activity_logs_key(
        user_id=params.user_id,
        level=params.level,
        action=params.action,
        module=params.module,
        search=params.search,
        limit=params.limit,
        offset=params.offset,
    )

    async def fetch():
        logs, total = ActivityLogService(db).list(params)
        return {"logs": logs, "total": total}

    return await cached(key, fetch, "short", force_refresh=refresh)


@activity_router.get("", response_model=ActivityLogListResponse)
async def list_activity_logs(
    permissions: Annotated[Principal, Depends(require_permissions("view_activity_log", "view_user_activity_log"))],
    response: Response,
    params: ActivityLogQuery = Depends(),
    refresh: bool = Query(False, alias="_refresh"),
    db: Session = Depends(get_db),
):
    result = await _list(db, params, refresh)
    response.headers["X-Total-Count"] = str(result["total"])
    return result


@activity_router.get("/me", response_model=ActivityLogListResponse)
async def list_own_activity(
    permissions: Annotated[Principal, Depends(require_permissions("view_own_activity_log"))],
    response: Response,
    params: ActivityLogQuery = Depends(),
    refresh: bool = Query(False, alias="_refresh"),
    db: Session = Depends(get_db),
):
    params = params.model_copy(update={"user_id": permissions.user_id})
    result = await _list(db, params, refresh)
    response.headers["X-Total-Count"] = str(result["total"])
    return result


@activity_router.get("/statistics", response_model=ActivityStatistics)
async def activity_statistics(
    permissions: Annotated[Principal, Depends(require_permissions("view_activity_statistics"))],
    user_id: Optional[str] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    refresh: bool = Query(False, alias="_refresh"),
    db: Session = Depends(get_db),
):
    key = keys.activity_statistics_key(
        user_id,
        start.isoformat() if start else None,
        end.isoformat() if end else None,
    )

    async def fetch():
        return ActivityLogService(db).statistics(user_id, start, end)

    return await cached(key, fetch, "medium", force_refresh=refresh)


@activity_router.delete("/cleanup", response_model=ActivityCleanupResult)
async def cleanup_activity_logs(
    permissions: Annotated[Principal, Depends(require_permissions("cleanup_activity_log"))],
    request: Request,
    days: int = Query(90, ge=1, le=3650),
    db: Session = Depends(get_db),
):
    service = ActivityLogService(db)
    deleted = service.cleanup(days)
    service.log(
        f"Removed {deleted} activity log entries older than {days} days",
        user_id=permissions.user_id, action="cleanup_activity_log", module="activity", request=request,
    )
    await invalidate_activity_logs_cache()
    return ActivityCleanupResult(deleted=deleted, older_than_days=days)
