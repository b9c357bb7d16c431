"""
Get-or-set and force-refresh helpers used by every cached endpoint.

A cache problem never fails a request. Reads fall back to the fetcher and
writes after a successful mutation only log.
"""

import logging
from typing import Any, Awaitable, Callable, Iterable, Optional, TypeVar

from portal_backend.cache import get_cache
from portal_backend.cache.hybrid import CacheDuration, cache_ttl

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def with_cache(
    fetcher: Callable[[], Awaitable[T]],
    key: str,
    duration: CacheDuration = "medium",
    enabled: Optional[bool] = None,
) -> T:
    cache = get_cache()
    if enabled is None:
        enabled = cache.enabled

    if not enabled:
        return await fetcher()

    try:
        cached = await cache.get(key)
    except Exception as e:
        logger.error(f"Cache error for {key}, falling back to direct fetch: {e}")
        return await fetcher()

    if cached is not None:
        logger.debug(f"Cache hit for {key}")
        return cached

    logger.debug(f"Cache miss for {key}")
    data = await fetcher()

    try:
        await cache.set(key, data, cache_ttl(duration))
        if data is not None and not await cache.exists(key):
            logger.warning(f"Cache verification failed for {key}")
    except Exception as e:
        logger.warning(f"Failed to store {key} in cache: {e}")

    return data


async def re_cache(
    fetcher: Callable[[], Awaitable[T]],
    key: str,
    duration: CacheDuration = "medium",
    enabled: Optional[bool] = None,
) -> T:
    """Drop `key` and rebuild it from the fetcher."""
    cache = get_cache()
    if enabled is False or not cache.enabled:
        return await fetcher()
    try:
        await cache.delete(key)
        logger.debug(f"Force refresh of {key}")
    except Exception as e:
        logger.error(f"Force refresh failed for {key}, fetching directly: {e}")
        return await fetcher()
    return await with_cache(fetcher, key, duration, enabled)


async def cached(
    key: str,
    fetcher: Callable[[], Awaitable[T]],
    duration: CacheDuration = "medium",
    force_refresh: bool = False,
) -> T:
    if force_refresh:
        return await re_cache(fetcher, key, duration)
    return await with_cache(fetcher, key, duration)


async def with_cache_invalidation(
    mutation: Callable[[], Awaitable[T]],
    keys: Iterable[str] = (),
    patterns: Iterable[str] = (),
) -> T:
    """Run `mutation`, then invalidate. Invalidation happens only after success."""
    result = await mutation()

    cache = get_cache()
    if not cache.enabled:
        return result

    for key in keys:
        try:
            await cache.delete(key)
        except Exception as e:
            logger.error(f"Failed to invalidate {key}: {e}")
    for pattern in patterns:
        try:
            await cache.delete_by_pattern(pattern)
        except Exception as e:
            logger.error(f"Failed to invalidate pattern {pattern}: {e}")

    return result
