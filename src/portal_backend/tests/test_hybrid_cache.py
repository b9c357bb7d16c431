"""
Tests for the hybrid Redis / in-memory cache.
"""

import pytest
from datetime import datetime, timezone
from enum import Enum
from uuid import UUID

from pydantic import BaseModel

from portal_backend.cache import get_cache, set_cache
from portal_backend.cache.hybrid import HybridCache, cache_ttl, glob_to_regex, serialize_for_cache
from portal_backend.redis_cache import create_redis_client
from portal_backend.settings import settings


class FakeRedisClient:
    """Stands in for the low level redis client used for SCAN and bulk DELETE."""

    def __init__(self, store):
        self._store = store
        self.delete_calls = []

    async def scan_iter(self, match=None, count=None):
        regex = glob_to_regex(match or "*")
        for key in list(self._store):
            if regex.match(key):
                yield key

    async def delete(self, *keys):
        self.delete_calls.append(keys)
        for key in keys:
            self._store.pop(key, None)


class FakeRedis:
    """Mimics the aiocache Redis backend API the hybrid cache relies on."""

    def __init__(self, failing=()):
        self.store = {}
        self.client = FakeRedisClient(self.store)
        self.failing = set(failing)

    def _check(self, operation):
        if operation in self.failing:
            raise ConnectionError(f"redis {operation} failed")

    async def raw(self, command, *args):
        self._check(command)
        if command == "ping":
            return True
        if command == "dbsize":
            return len(self.store)

    async def get(self, key):
        self._check("get")
        return self.store.get(key)

    async def set(self, key, value, ttl=None):
        self._check("set")
        self.store[key] = value

    async def exists(self, key):
        self._check("exists")
        return key in self.store

    async def delete(self, key):
        self._check("delete")
        self.store.pop(key, None)

    async def clear(self):
        self._check("clear")
        self.store.clear()


@pytest.fixture
def memory_cache():
    return HybridCache(redis_client=None, enabled=True, default_ttl=60)


class TestMemoryBackend:
    """Cache without Redis"""

    @pytest.mark.asyncio
    async def test_set_and_get(self, memory_cache):
        await memory_cache.set("user:1", {"name": "Alice", "groups": ["user"]})

        assert await memory_cache.get("user:1") == {"name": "Alice", "groups": ["user"]}
        assert await memory_cache.exists("user:1") is True
        assert memory_cache.backend == "memory"

    @pytest.mark.asyncio
    async def test_missing_key(self, memory_cache):
        assert await memory_cache.get("nothing") is None
        assert await memory_cache.exists("nothing") is False

    @pytest.mark.asyncio
    async def test_entry_expires_after_ttl(self, memory_cache):
        await memory_cache.set("short", "value", ttl=10)
        value, ttl, set_time = memory_cache._local_cache["short"]

        memory_cache._local_cache["short"] = (value, ttl, set_time - 9)
        assert await memory_cache.get("short") == "value"

        memory_cache._local_cache["short"] = (value, ttl, set_time - 11)
        assert await memory_cache.get("short") is None

        assert "short" not in memory_cache._local_cache

    @pytest.mark.asyncio
    async def test_default_ttl_used(self, memory_cache):
        await memory_cache.set("key", 1)
        _, ttl, _ = memory_cache._local_cache["key"]
        assert ttl == 60

    @pytest.mark.asyncio
    async def test_delete_and_clear(self, memory_cache):
        await memory_cache.set("a", 1)
        await memory_cache.set("b", 2)

        await memory_cache.delete("a")
        assert await memory_cache.get("a") is None
        assert await memory_cache.get("b") == 2

        await memory_cache.clear()
        assert await memory_cache.keys() == []

    @pytest.mark.asyncio
    async def test_delete_by_pattern(self, memory_cache):
        for key in ("users:list:page:1:limit:50", "users:list:page:2:limit:50", "user:1", "users:other"):
            await memory_cache.set(key, True)

        deleted = await memory_cache.delete_by_pattern("users:list:*")

        assert deleted == 2
        assert await memory_cache.keys() == ["user:1", "users:other"]

    @pytest.mark.asyncio
    async def test_pattern_special_characters_are_literal(self, memory_cache):
        await memory_cache.set("media:list:user:a.b", True)
        await memory_cache.set("media:list:user:aXb", True)

        assert await memory_cache.delete_by_pattern("media:list:user:a.b") == 1
        assert await memory_cache.keys() == ["media:list:user:aXb"]

    @pytest.mark.asyncio
    async def test_get_or_set_calls_fetcher_once(self, memory_cache):
        calls = []

        async def fetch():
            calls.append(1)
            return {"total": 3}

        first = await memory_cache.get_or_set("dashboard:overview", fetch, "short")
        second = await memory_cache.get_or_set("dashboard:overview", fetch, "short")

        assert first == second == {"total": 3}
        assert len(calls) == 1
        _, ttl, _ = memory_cache._local_cache["dashboard:overview"]
        assert ttl == cache_ttl("short")

    @pytest.mark.asyncio
    async def test_stats(self, memory_cache):
        await memory_cache.set("a", 1)
        stats = await memory_cache.stats()

        assert stats["enabled"] is True
        assert stats["backend"] == "memory"
        assert stats["redis_available"] is False
        assert stats["keys"] == 1
        assert stats["ttl"] == {"short": 300, "medium": 900, "long": 3600, "very_long": 86400}

    @pytest.mark.asyncio
    async def test_disabled_cache_never_contacts_redis(self):
        redis = FakeRedis()
        cache = HybridCache(redis_client=redis, enabled=False)

        await cache.set("key", "value")

        assert cache.backend == "memory"
        assert redis.store == {}


class TestRedisBackend:
    """Cache with a reachable, then failing, Redis"""

    @pytest.mark.asyncio
    async def test_uses_redis_when_ping_succeeds(self):
        redis = FakeRedis()
        cache = HybridCache(redis_client=redis, enabled=True)

        await cache.set("user:1", {"id": "1"})

        assert cache.backend == "redis"
        assert "user:1" in redis.store
        assert cache._local_cache == {}
        assert await cache.get("user:1") == {"id": "1"}

    @pytest.mark.asyncio
    async def test_ping_failure_uses_memory(self):
        redis = FakeRedis(failing={"ping"})
        cache = HybridCache(redis_client=redis, enabled=True)

        await cache.set("key", "value")

        assert cache.backend == "memory"
        assert await cache.get("key") == "value"

    @pytest.mark.asyncio
    async def test_get_failure_switches_to_memory(self):
        redis = FakeRedis()
        cache = HybridCache(redis_client=redis, enabled=True)
        await cache.init()
        assert cache.backend == "redis"

        redis.failing.add("get")
        assert await cache.get("missing") is None
        assert cache.backend == "memory"

        # subsequent writes land in memory
        await cache.set("after", 1)
        assert await cache.get("after") == 1
        assert "after" not in redis.store

    @pytest.mark.asyncio
    async def test_set_failure_falls_back_without_raising(self):
        redis = FakeRedis(failing={"set"})
        cache = HybridCache(redis_client=redis, enabled=True)

        await cache.set("key", [1, 2])

        assert cache.backend == "memory"
        assert await cache.get("key") == [1, 2]

    @pytest.mark.asyncio
    async def test_delete_by_pattern_in_chunks(self):
        redis = FakeRedis()
        cache = HybridCache(redis_client=redis, enabled=True)
        for i in range(150):
            redis.store[f"users:list:page:{i}"] = "1"
        redis.store["user:1"] = "1"

        deleted = await cache.delete_by_pattern("users:list:*")

        assert deleted == 150
        assert [len(call) for call in redis.client.delete_calls] == [100, 50]
        assert list(redis.store) == ["user:1"]

    @pytest.mark.asyncio
    async def test_delete_by_pattern_error_returns_zero(self):
        redis = FakeRedis()
        cache = HybridCache(redis_client=redis, enabled=True)
        await cache.init()

        async def broken_scan(match=None, count=None):
            raise ConnectionError("scan failed")
            yield  # pragma: no cover

        redis.client.scan_iter = broken_scan

        assert await cache.delete_by_pattern("users:*") == 0

    @pytest.mark.asyncio
    async def test_stats_reports_redis_key_count(self):
        redis = FakeRedis()
        cache = HybridCache(redis_client=redis, enabled=True)
        await cache.set("a", 1)
        await cache.set("b", 2)

        stats = await cache.stats()

        assert stats["backend"] == "redis"
        assert stats["keys"] == 2

    @pytest.mark.asyncio
    async def test_init_runs_once(self):
        redis = FakeRedis()
        pings = []
        original = redis.raw

        async def counting_raw(command, *args):
            pings.append(command)
            return await original(command, *args)

        redis.raw = counting_raw
        cache = HybridCache(redis_client=redis, enabled=True)

        await cache.init()
        await cache.init()
        await cache.get("x")

        assert pings == ["ping"]


class TestSerialization:
    """Values are stored as JSON"""

    def test_rich_types(self):
        class Color(Enum):
            red = "red"

        class Item(BaseModel):
            name: str

        serialized = serialize_for_cache({
            "at": datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc),
            "id": UUID("12345678-1234-5678-1234-567812345678"),
            "color": Color.red,
            "tags": {"a"},
            "item": Item(name="x"),
        })

        assert '"2024-01-02T03:04:05+00:00"' in serialized
        assert '"12345678-1234-5678-1234-567812345678"' in serialized
        assert '"red"' in serialized
        assert '["a"]' in serialized
        assert '{"name": "x"}' in serialized

    def test_unsupported_type_raises(self):
        with pytest.raises(TypeError):
            serialize_for_cache({"value": object()})

    def test_glob_to_regex(self):
        regex = glob_to_regex("user:*:permissions*")
        assert regex.match("user:1:permissions")
        assert regex.match("user:1:permissions:details")
        assert not regex.match("user:1:groups")
        assert not regex.match("xuser:1:permissions")

    def test_glob_to_regex_matches_redis_wildcards(self):
        assert glob_to_regex("user:?:groups").match("user:7:groups")
        assert not glob_to_regex("user:?:groups").match("user:17:groups")
        assert glob_to_regex("group:[ab]*").match("group:b1")
        assert not glob_to_regex("group:[ab]*").match("group:c1")
        assert glob_to_regex("group:[^ab]*").match("group:c1")
        assert glob_to_regex("group:[0-9]").match("group:5")
        assert glob_to_regex(r"media:\*").match("media:*")
        assert not glob_to_regex(r"media:\*").match("media:x")
        assert glob_to_regex("a.b").match("a.b")
        assert not glob_to_regex("a.b").match("aXb")


class TestClientFactory:

    def test_disabled_cache_has_no_client(self, monkeypatch):
        monkeypatch.setattr(settings, "REDIS_CACHE_ENABLED", False)
        assert create_redis_client() is None

    def test_enabled_cache_builds_client(self, monkeypatch):
        monkeypatch.setattr(settings, "REDIS_CACHE_ENABLED", True)
        monkeypatch.setattr(settings, "REDIS_DB", 3)

        client = create_redis_client()

        assert client is not None
        assert client.db == 3

    def test_process_cache_is_created_once(self, monkeypatch):
        monkeypatch.setattr(settings, "REDIS_CACHE_ENABLED", False)
        set_cache(None)

        first = get_cache()

        assert get_cache() is first
        assert first.enabled is False
