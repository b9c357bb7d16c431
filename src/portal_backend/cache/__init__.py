from typing import Optional

from portal_backend.cache.hybrid import HybridCache
from portal_backend.redis_cache import create_redis_client

_cache: Optional[HybridCache] = None

def get_cache() -> HybridCache:
    global _cache
    if _cache is None:
        _cache = HybridCache(redis_client=create_redis_client())
    return _cache

def set_cache(cache: Optional[HybridCache]):
    """Replace the process wide cache, mainly for tests."""
    global _cache
    _cache = cache