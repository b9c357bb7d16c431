from typing import Annotated

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from portal_backend.cache import keys
from portal_backend.cache.middleware import cached
from portal_backend.database import get_db
from portal_backend.permissions.auth import require_permissions
from portal_backend.permissions.principal import Principal
from portal_backend.services.dashboard import DashboardService

dashboard_router = APIRouter()


@dashboard_router.get("/overview")
async def dashboard_overview(
    permissions: Annotated[Principal, Depends(require_permissions("view_dashboard"))],
    refresh: bool = Query(False, alias="_refresh"),
    db: Session = Depends(get_db),
):
    async def fetch():
        return DashboardService(db).overview()

    return await cached(keys.dashboard_key("overview"), fetch, "short", force_refresh=refresh)


@dashboard_router.get("/users-by-status")
async def users_by_status(
    permissions: Annotated[Principal, Depends(require_permissions("view_dashboard_statistics"))],
    refresh: bool = Query(False, alias="_refresh"),
    db: Session = Depends(get_db),
):
    async def fetch():
        return DashboardService(db).users_by_status()

    return await cached(keys.dashboard_key("users-by-status"), fetch, "medium", force_refresh=refresh)


@dashboard_router.get("/users-by-auth-type")
async def users_by_auth_type(
    permissions: Annotated[Principal, Depends(require_permissions("view_dashboard_statistics"))],
    refresh: bool = Query(False, alias="_refresh"),
    db: Session = Depends(get_db),
):
    async def fetch():
        return DashboardService(db).users_by_auth_type()

    return await cached(keys.dashboard_key("users-by-auth-type"), fetch, "medium", force_refresh=refresh)


@dashboard_router.get("/user-growth")
async def user_growth(
    permissions: Annotated[Principal, Depends(require_permissions("view_dashboard_statistics"))],
    days: int = Query(30, ge=1, le=365),
    refresh: bool = Query(False, alias="_refresh"),
    db: Session = Depends(get_db),
):
    async def fetch():
        return DashboardService(db).user_growth(days)

    return await cached(keys.dashboard_key(f"user-growth:days:{days}"), fetch, "medium", force_refresh=refresh)


@dashboard_router.get("/users-per-group")
async def users_per_group(
    permissions: Annotated[Principal, Depends(require_permissions("view_dashboard_statistics"))],
    refresh: bool = Query(False, alias="_refresh"),
    db: Session = Depends(get_db),
):
    async def fetch():
        return DashboardService(db).users_per_group()

    return await cached(keys.dashboard_key("users-per-group"), fetch, "medium", force_refresh=refresh)


@dashboard_router.get("/users-by-country")
async def users_by_country(
    permissions: Annotated[Principal, Depends(require_permissions("view_dashboard_statistics"))],
    refresh: bool = Query(False, alias="_refresh"),
    db: Session = Depends(get_db),
):
    async def fetch():
        return DashboardService(db).users_by_country()

    return await cached(keys.dashboard_key("users-by-country"), fetch, "long", force_refresh=refresh)


@dashboard_router.get("/users-by-language")
async def users_by_language(
    permissions: Annotated[Principal, Depends(require_permissions("view_dashboard_statistics"))],
    refresh: bool = Query(False, alias="_refresh"),
    db: Session = Depends(get_db),
):
    async def fetch():
        return DashboardService(db).users_by_language()

    return await cached(keys.dashboard_key("users-by-language"), fetch, "long", force_refresh=refresh)


@dashboard_router.get("/recent-sign-ins")
async def recent_sign_ins(
    permissions: Annotated[Principal, Depends(require_permissions("view_dashboard_statistics"))],
    limit: int = Query(10, ge=1, le=100),
    refresh: bool = Query(False, alias="_refresh"),
    db: Session = Depends(get_db),
):
    async def fetch():
        return DashboardService(db).recent_sign_ins(limit)

    return await cached(keys.dashboard_key(f"recent-sign-ins:{limit}"), fetch, "short", force_refresh=refresh)


@dashboard_router.get("/role-statistics")
async def role_statistics(
    permissions: Annotated[Principal, Depends(require_permissions("view_dashboard_statistics"))],
    refresh: bool = Query(False, alias="_refresh"),
    db: Session = Depends(get_db),
):
    async def fetch():
        return DashboardService(db).role_statistics()

    return await cached(keys.dashboard_key("role-statistics"), fetch, "long", force_refresh=refresh)


@dashboard_router.get("/notifications-stats")
async def notifications_stats(
    permissions: Annotated[Principal, Depends(require_permissions("view_dashboard_statistics"))],
    refresh: bool = Query(False, alias="_refresh"),
    db: Session = Depends(get_db),
):
    async def fetch():
        return DashboardService(db).notification_statistics()

    return await cached(keys.dashboard_key("notifications-stats"), fetch, "long", force_refresh=refresh)


@dashboard_router.get("/activity-stats")
async def activity_stats(
    permissions: Annotated[Principal, Depends(require_permissions("view_dashboard_statistics"))],
    refresh: bool = Query(False, alias="_refresh"),
    db: Session = Depends(get_db),
):
    async def fetch():
        return DashboardService(db).activity_statistics()

    return await cached(keys.dashboard_key("activity-stats"), fetch, "long", force_refresh=refresh)
