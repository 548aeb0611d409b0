"""Tests for aimon.core.cache: expiring key/value backends.

Tests cover:
- get/set/get_or_set semantics of MemoryCache, including per-entry TTL.
- Loader invocation rules (miss only, sync or async loaders).
- Argument validation (empty key, non-positive TTL).
- Isolation of cached values from caller mutation.
- RedisCache JSON encoding over a mocked redis client.
"""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from aimon.core.cache import MemoryCache, RedisCache


class TestMemoryCacheGetSet:
    """Plain get/set behaviour."""

    @pytest.mark.asyncio
    async def test_get_missing_key_is_none(self, memory_cache):
        assert await memory_cache.get("gallery:all") is None

    @pytest.mark.asyncio
    async def test_set_then_get(self, memory_cache):
        await memory_cache.set("gallery:all", [{"id": 1}], 300)
        assert await memory_cache.get("gallery:all") == [{"id": 1}]

    @pytest.mark.asyncio
    async def test_set_overwrites(self, memory_cache):
        await memory_cache.set("k", "old", 300)
        await memory_cache.set("k", "new", 300)
        assert await memory_cache.get("k") == "new"

    @pytest.mark.asyncio
    async def test_entry_expires_after_ttl(self, memory_cache, clock):
        await memory_cache.set("k", "v", 300)
        clock.advance(299)
        assert await memory_cache.get("k") == "v"
        clock.advance(1)
        assert await memory_cache.get("k") is None

    @pytest.mark.asyncio
    async def test_ttl_is_per_entry(self, memory_cache, clock):
        await memory_cache.set("short", 1, 10)
        await memory_cache.set("long", 2, 100)
        clock.advance(50)
        assert await memory_cache.get("short") is None
        assert await memory_cache.get("long") == 2

    @pytest.mark.asyncio
    async def test_set_resets_ttl(self, memory_cache, clock):
        await memory_cache.set("k", "v1", 300)
        clock.advance(200)
        await memory_cache.set("k", "v2", 300)
        clock.advance(200)
        assert await memory_cache.get("k") == "v2"

    @pytest.mark.asyncio
    async def test_mutating_fetched_value_does_not_touch_cache(self, memory_cache):
        await memory_cache.set("k", [{"id": 1}], 300)
        fetched = await memory_cache.get("k")
        fetched.insert(0, {"id": 2})
        fetched[1]["id"] = 99
        assert await memory_cache.get("k") == [{"id": 1}]

    @pytest.mark.asyncio
    async def test_mutating_stored_value_does_not_touch_cache(self, memory_cache):
        value = [{"id": 1}]
        await memory_cache.set("k", value, 300)
        value.append({"id": 2})
        assert await memory_cache.get("k") == [{"id": 1}]

    @pytest.mark.asyncio
    async def test_close_clears_entries(self, memory_cache):
        await memory_cache.set("k", "v", 300)
        await memory_cache.close()
        assert await memory_cache.get("k") is None


class TestMemoryCacheGetOrSet:
    """Read-through behaviour."""

    @pytest.mark.asyncio
    async def test_miss_calls_loader_and_stores(self, memory_cache):
        loader = MagicMock(return_value=[{"id": 1}])
        result = await memory_cache.get_or_set("gallery:all", loader, 300)
        assert result == [{"id": 1}]
        loader.assert_called_once_with()
        assert await memory_cache.get("gallery:all") == [{"id": 1}]

    @pytest.mark.asyncio
    async def test_hit_skips_loader(self, memory_cache):
        await memory_cache.set("gallery:all", ["cached"], 300)
        loader = MagicMock(return_value=["fresh"])
        assert await memory_cache.get_or_set("gallery:all", loader, 300) == ["cached"]
        loader.assert_not_called()

    @pytest.mark.asyncio
    async def test_expired_value_is_reloaded(self, memory_cache, clock):
        loader = MagicMock(side_effect=[["first"], ["second"]])
        assert await memory_cache.get_or_set("k", loader, 300) == ["first"]
        clock.advance(300)
        assert await memory_cache.get_or_set("k", loader, 300) == ["second"]
        assert loader.call_count == 2

    @pytest.mark.asyncio
    async def test_async_loader_is_awaited(self, memory_cache):
        loader = AsyncMock(return_value={"a": 1})
        assert await memory_cache.get_or_set("k", loader, 60) == {"a": 1}
        loader.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_loader_error_propagates_and_stores_nothing(self, memory_cache):
        loader = MagicMock(side_effect=RuntimeError("store down"))
        with pytest.raises(RuntimeError):
            await memory_cache.get_or_set("k", loader, 60)
        assert await memory_cache.get("k") is None


class TestValidation:
    """Key and TTL constraints."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("ttl", [0, -5, 1.5, True])
    async def test_invalid_ttl_rejected(self, memory_cache, ttl):
        with pytest.raises(ValueError):
            await memory_cache.set("k", "v", ttl)
        with pytest.raises(ValueError):
            await memory_cache.get_or_set("k", lambda: "v", ttl)

    @pytest.mark.asyncio
    async def test_empty_key_rejected(self, memory_cache):
        with pytest.raises(ValueError):
            await memory_cache.get("")
        with pytest.raises(ValueError):
            await memory_cache.set("", "v", 10)


class TestRedisCache:
    """RedisCache with a mocked redis.asyncio client."""

    @pytest.fixture
    def redis_client(self):
        client = MagicMock()
        client.get = AsyncMock(return_value=None)
        client.setex = AsyncMock(return_value=True)
        client.aclose = AsyncMock()
        return client

    @pytest.fixture
    def redis_cache(self, redis_client):
        return RedisCache("redis://localhost:6379/0", client=redis_client)

    @pytest.mark.asyncio
    async def test_get_missing_returns_none(self, redis_cache, redis_client):
        assert await redis_cache.get("gallery:all") is None
        redis_client.get.assert_awaited_once_with("gallery:all")

    @pytest.mark.asyncio
    async def test_get_decodes_json(self, redis_cache, redis_client):
        redis_client.get.return_value = json.dumps([{"id": 3, "name": "Inky"}])
        assert await redis_cache.get("gallery:all") == [{"id": 3, "name": "Inky"}]

    @pytest.mark.asyncio
    async def test_set_uses_setex_with_json(self, redis_cache, redis_client):
        await redis_cache.set("gallery:all", [{"id": 1}], 300)
        redis_client.setex.assert_awaited_once_with("gallery:all", 300, json.dumps([{"id": 1}]))

    @pytest.mark.asyncio
    async def test_get_or_set_miss_stores_loaded_value(self, redis_cache, redis_client):
        result = await redis_cache.get_or_set("gallery:all", lambda: [{"id": 1}], 300)
        assert result == [{"id": 1}]
        redis_client.setex.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_close(self, redis_cache, redis_client):
        await redis_cache.close()
        redis_client.aclose.assert_awaited_once()
