import logging
from typing import Optional

from aiocache import Cache

from portal_backend.settings import settings

logger = logging.getLogger(__name__)


def create_redis_client() -> Optional[Cache]:
    """aiocache Redis client for the configured server, None when caching is disabled."""
    if not settings.REDIS_CACHE_ENABLED:
        logger.info("Redis cache disabled by REDIS_CACHE_ENABLED")
        return None

    return Cache(
        Cache.REDIS,
        endpoint=settings.REDIS_HOST,
        port=settings.REDIS_PORT,
        password=settings.REDIS_PASSWORD or None,
        db=settings.REDIS_DB,
        pool_max_size=10,
    )
