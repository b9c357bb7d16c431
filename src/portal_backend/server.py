import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.orm import Session

from portal_backend.api.account_shares import account_share_router
from portal_backend.api.activity import activity_router
from portal_backend.api.auth import auth_router
from portal_backend.api.dashboard import dashboard_router
from portal_backend.api.groups import group_router
from portal_backend.api.media import media_files_router, media_router
from portal_backend.api.notifications import notification_router
from portal_backend.api.permissions import permission_router
from portal_backend.api.settings import settings_router
from portal_backend.api.system import health_router, system_router
from portal_backend.api.users import user_router
from portal_backend.auth.passwords import hash_password
from portal_backend.cache import get_cache
from portal_backend.database import get_db
from portal_backend.model.seeder import ensure_superuser, seed_defaults
from portal_backend.settings import settings

logger = logging.getLogger(__name__)


async def init_admin_user(db: Session):

    email = settings.PORTAL_ADMIN_EMAIL
    password = settings.PORTAL_ADMIN_PASSWORD

    if not email or not password:
        logger.info("PORTAL_ADMIN_EMAIL/PORTAL_ADMIN_PASSWORD not set, skipping admin bootstrap")
        return

    ensure_superuser(db, email, hash_password(password))


async def startup_logic():

    with next(get_db()) as db:
        if settings.SEED_ON_STARTUP:
            result = seed_defaults(db)
            logger.info(f"Default permissions and groups ready: {result}")

        await init_admin_user(db)

    await get_cache().init()


@asynccontextmanager
async def lifespan(app: FastAPI):

    await startup_logic()

    yield


app = FastAPI(title="Portal Backend", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Total-Count"],
)

prefix = settings.API_PREFIX.rstrip("/")

app.include_router(auth_router, prefix=f"{prefix}/auth", tags=["auth"])
app.include_router(user_router, prefix=f"{prefix}/users", tags=["users"])
app.include_router(settings_router, prefix=f"{prefix}/settings", tags=["settings"])
app.include_router(group_router, prefix=f"{prefix}/groups", tags=["groups"])
app.include_router(permission_router, prefix=f"{prefix}/permissions", tags=["permissions"])
app.include_router(account_share_router, prefix=f"{prefix}/account-shares", tags=["account sharing"])
app.include_router(notification_router, prefix=f"{prefix}/notifications", tags=["notifications"])
app.include_router(media_router, prefix=f"{prefix}/media", tags=["media"])
app.include_router(activity_router, prefix=f"{prefix}/activity-logs", tags=["activity"])
app.include_router(dashboard_router, prefix=f"{prefix}/dashboard", tags=["dashboard"])
app.include_router(system_router, prefix=f"{prefix}/system", tags=["system"])
app.include_router(health_router, tags=["system"])
app.include_router(media_files_router, tags=["media"])


@app.head("/", status_code=204)
def get_status_head():
    return
