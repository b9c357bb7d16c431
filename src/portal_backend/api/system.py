import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from portal_backend.api.exceptions import BadRequestException, NotFoundException
from portal_backend.cache import get_cache
from portal_backend.database import get_db
from portal_backend.permissions.auth import require_permissions
from portal_backend.permissions.principal import Principal
from portal_backend.services.activity_log import ActivityLogService

logger = logging.getLogger(__name__)

system_router = APIRouter()

# mounted at the root, not behind authentication
health_router = APIRouter()


@health_router.get("/health")
async def health(db: Session = Depends(get_db)):
    database = "ok"
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.error(f"Health check database failure: {e}")
        database = "unavailable"

    cache = get_cache()
    stats = await cache.stats()

    return {
        "status": "ok" if database == "ok" else "degraded",
        "database": database,
        "cache": {"enabled": stats["enabled"], "backend": stats["backend"]},
    }


@system_router.get("/cache/statistics")
async def cache_statistics(permissions: Annotated[Principal, Depends(require_permissions("view_cache_statistics"))]):
    return await get_cache().stats()


@system_router.get("/cache/keys")
async def cache_keys(
    permissions: Annotated[Principal, Depends(require_permissions("view_cache_statistics"))],
    pattern: str = "*",
    limit: int = Query(200, ge=1, le=5000),
):
    found = sorted(await get_cache().keys(pattern))
    return {"pattern": pattern, "total": len(found), "keys": found[:limit]}


@system_router.get("/cache/keys/{key:path}")
async def cache_get_key(
    permissions: Annotated[Principal, Depends(require_permissions("view_cache_statistics"))],
    key: str,
):
    value = await get_cache().get(key)
    if value is None:
        raise NotFoundException(detail=f"Cache key [{key}] not found")
    return {"key": key, "value": value}


@system_router.delete("/cache/keys/{key:path}")
async def cache_delete_key(
    permissions: Annotated[Principal, Depends(require_permissions("manage_cache"))],
    key: str,
):
    cache = get_cache()
    existed = await cache.exists(key)
    await cache.delete(key)
    return {"key": key, "deleted": existed}


@system_router.delete("/cache/pattern")
async def cache_delete_pattern(
    permissions: Annotated[Principal, Depends(require_permissions("manage_cache"))],
    request: Request,
    pattern: str = Query(..., min_length=1),
    db: Session = Depends(get_db),
):
    if pattern.strip("*") == "":
        raise BadRequestException(detail="Use the clear endpoint to remove every key")

    deleted = await get_cache().delete_by_pattern(pattern)
    ActivityLogService(db).log(
        f"Deleted {deleted} cache keys matching {pattern}", user_id=permissions.user_id,
        action="delete_cache_pattern", module="system", request=request,
    )
    return {"pattern": pattern, "deleted": deleted}


@system_router.delete("/cache")
async def cache_clear(
    permissions: Annotated[Principal, Depends(require_permissions("manage_cache"))],
    request: Request,
    db: Session = Depends(get_db),
):
    await get_cache().clear()
    logger.warning(f"Cache cleared by {permissions.user_id}")
    ActivityLogService(db).log(
        "Cache cleared", level="WARNING", user_id=permissions.user_id,
        action="clear_cache", module="system", request=request,
    )
    return {"cleared": True}
