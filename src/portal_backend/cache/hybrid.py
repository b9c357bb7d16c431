"""
Hybrid cache with a Redis tier and an in-process memory tier.

Redis is used when it is enabled and answers a ping. Any Redis failure
switches the cache to the memory tier for the rest of the process lifetime,
so a broken Redis never fails a request.
"""

import asyncio
import json
import logging
import re
import time
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Literal, Optional, Tuple
from uuid import UUID

from pydantic import BaseModel

from portal_backend.settings import settings

logger = logging.getLogger(__name__)

CacheDuration = Literal["short", "medium", "long", "very_long"]

SCAN_COUNT = 100
DELETE_CHUNK_SIZE = 100


def cache_ttl(duration: CacheDuration) -> int:
    """Seconds for a named cache tier."""
    return {
        "short": settings.REDIS_SHORT_TTL,
        "medium": settings.REDIS_MEDIUM_TTL,
        "long": settings.REDIS_LONG_TTL,
        "very_long": settings.REDIS_VERY_LONG_TTL,
    }[duration]


def _default(value: Any):
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (set, frozenset, tuple)):
        return list(value)
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    raise TypeError(f"Object of type {type(value).__name__} is not cacheable")


def serialize_for_cache(value: Any) -> str:
    return json.dumps(value, default=_default)


def glob_to_regex(pattern: str) -> re.Pattern:
    """Anchored regex for a Redis glob: `*`, `?`, `[...]` classes and backslash escapes."""
    out = []
    i = 0
    while i < len(pattern):
        c = pattern[i]
        if c == "*":
            out.append(".*")
        elif c == "?":
            out.append(".")
        elif c == "\\" and i + 1 < len(pattern):
            i += 1
            out.append(re.escape(pattern[i]))
        elif c == "[" and pattern.find("]", i + 2) != -1:
            end = pattern.find("]", i + 2)
            body = pattern[i + 1:end]
            negate = body.startswith("^")
            if negate:
                body = body[1:]
            # keep ranges, escape everything else
            body = "".join(ch if ch == "-" else re.escape(ch) for ch in body)
            out.append(f"[{'^' if negate else ''}{body}]" if body else "(?!)")
            i = end
        else:
            out.append(re.escape(c))
        i += 1
    return re.compile("^" + "".join(out) + "$", re.DOTALL)


class HybridCache:

    def __init__(self, redis_client=None, enabled: Optional[bool] = None, default_ttl: Optional[int] = None):
        self._redis = redis_client
        self.enabled = settings.REDIS_CACHE_ENABLED if enabled is None else enabled
        self.default_ttl = default_ttl or settings.REDIS_DEFAULT_TTL

        # key -> (serialized value, ttl seconds, set time)
        self._local_cache: Dict[str, Tuple[str, int, float]] = {}

        self._use_redis = False
        self._initialized = False
        self._init_task: Optional[asyncio.Task] = None

    @property
    def backend(self) -> str:
        return "redis" if self._use_redis else "memory"

    async def init(self):
        if self._initialized:
            return
        if self._init_task is None:
            self._init_task = asyncio.ensure_future(self._connect())
        try:
            await asyncio.shield(self._init_task)
        finally:
            if self._init_task is not None and self._init_task.done():
                self._init_task = None

    async def _connect(self):
        if self._initialized:
            return
        if self.enabled and self._redis is not None:
            try:
                await self._redis.raw("ping")
                self._use_redis = True
                logger.info("Cache connected to Redis")
            except Exception as e:
                logger.warning(f"Redis unavailable, using in-memory cache: {e}")
                self._use_redis = False
        else:
            self._use_redis = False
            logger.info("Cache running in memory-only mode")
        self._initialized = True

    def _fallback(self, operation: str, error: Exception):
        logger.warning(f"Redis {operation} failed, switching to in-memory cache: {error}")
        self._use_redis = False

    def _is_cache_valid(self, key: str) -> bool:
        entry = self._local_cache.get(key)
        if entry is None:
            return False
        _, ttl, set_time = entry
        if time.monotonic() - set_time >= ttl:
            self._local_cache.pop(key, None)
            return False
        return True

    async def get(self, key: str) -> Any:
        await self.init()
        if self._use_redis:
            try:
                raw = await self._redis.get(key)
                if raw is None:
                    return None
                return json.loads(raw)
            except Exception as e:
                self._fallback("get", e)

        if not self._is_cache_valid(key):
            return None
        return json.loads(self._local_cache[key][0])

    async def set(self, key: str, value: Any, ttl: Optional[int] = None):
        await self.init()
        ttl = ttl or self.default_ttl
        serialized = serialize_for_cache(value)

        if self._use_redis:
            try:
                await self._redis.set(key, serialized, ttl=ttl)
                return
            except Exception as e:
                self._fallback("set", e)

        self._local_cache[key] = (serialized, ttl, time.monotonic())

    async def exists(self, key: str) -> bool:
        await self.init()
        if self._use_redis:
            try:
                return bool(await self._redis.exists(key))
            except Exception as e:
                self._fallback("exists", e)
        return self._is_cache_valid(key)

    async def delete(self, key: str):
        await self.init()
        if self._use_redis:
            try:
                await self._redis.delete(key)
                return
            except Exception as e:
                self._fallback("delete", e)
        self._local_cache.pop(key, None)

    async def clear(self):
        await self.init()
        if self._use_redis:
            try:
                await self._redis.clear()
                return
            except Exception as e:
                self._fallback("clear", e)
        self._local_cache.clear()

    async def delete_by_pattern(self, pattern: str) -> int:
        await self.init()
        if self._use_redis:
            try:
                return await self._redis_delete_by_pattern(pattern)
            except Exception as e:
                logger.error(f"Error deleting keys by pattern {pattern}: {e}")
                return 0

        regex = glob_to_regex(pattern)
        matching = [key for key in self._local_cache if regex.match(key)]
        for key in matching:
            self._local_cache.pop(key, None)
        logger.debug(f"Deleted {len(matching)} in-memory keys matching {pattern}")
        return len(matching)

    async def _redis_delete_by_pattern(self, pattern: str) -> int:
        client = self._redis.client
        keys = [key async for key in client.scan_iter(match=pattern, count=SCAN_COUNT)]
        for start in range(0, len(keys), DELETE_CHUNK_SIZE):
            await client.delete(*keys[start:start + DELETE_CHUNK_SIZE])
        logger.debug(f"Deleted {len(keys)} Redis keys matching {pattern}")
        return len(keys)

    async def keys(self, pattern: str = "*") -> list[str]:
        await self.init()
        if self._use_redis:
            try:
                return sorted(
                    key.decode() if isinstance(key, bytes) else key
                    async for key in self._redis.client.scan_iter(match=pattern, count=SCAN_COUNT)
                )
            except Exception as e:
                self._fallback("scan", e)
        regex = glob_to_regex(pattern)
        return sorted(key for key in list(self._local_cache) if regex.match(key) and self._is_cache_valid(key))

    async def get_or_set(self, key: str, fetcher: Callable[[], Awaitable[Any]], duration: CacheDuration = "medium") -> Any:
        cached = await self.get(key)
        if cached is not None:
            logger.debug(f"Cache hit for {key}")
            return cached

        logger.debug(f"Cache miss for {key}")
        data = await fetcher()
        await self.set(key, data, cache_ttl(duration))
        return data

    async def stats(self) -> dict:
        await self.init()
        key_count = None
        if self._use_redis:
            try:
                key_count = await self._redis.raw("dbsize")
            except Exception as e:
                self._fallback("dbsize", e)
        if key_count is None:
            key_count = sum(1 for key in list(self._local_cache) if self._is_cache_valid(key))
        return {
            "enabled": self.enabled,
            "backend": self.backend,
            "redis_available": self._use_redis,
            "keys": key_count,
            "default_ttl": self.default_ttl,
            "ttl": {d: cache_ttl(d) for d in ("short", "medium", "long", "very_long")},
        }
