"""
Tests for the in-memory cache store.
"""

import pytest

from articlerag.cache.store import TTL_MISSING, TTL_PERSISTENT, InMemoryCacheStore


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class TestInMemoryCacheStore:
    """Test TTL expiry, glob keys and hash counters."""

    def setup_method(self):
        self.clock = FakeClock()
        self.store = InMemoryCacheStore(clock=self.clock)

    @pytest.mark.asyncio
    async def test_get_and_expiry(self):
        await self.store.set_with_ttl("k", 60, "v")
        assert await self.store.get("k") == "v"
        assert await self.store.ttl("k") == 60

        self.clock.now += 61
        assert await self.store.get("k") is None
        assert await self.store.ttl("k") == TTL_MISSING

    @pytest.mark.asyncio
    async def test_keys_glob(self):
        await self.store.set_with_ttl("p:query:en:a", 60, "1")
        await self.store.set_with_ttl("p:query:zh:b", 60, "2")
        await self.store.hincrby("p:metrics", "hits")

        assert sorted(await self.store.keys("p:query:*")) == ["p:query:en:a", "p:query:zh:b"]
        assert await self.store.keys("p:query:zh:*") == ["p:query:zh:b"]
        assert len(await self.store.keys("p:*")) == 3

    @pytest.mark.asyncio
    async def test_delete(self):
        await self.store.set_with_ttl("a", 60, "1")
        await self.store.hincrby("h", "f")

        assert await self.store.delete("a", "h", "missing") == 2
        assert await self.store.delete() == 0
        assert await self.store.get("a") is None
        assert await self.store.hgetall("h") == {}

    @pytest.mark.asyncio
    async def test_hash_counters(self):
        assert await self.store.hincrby("m", "hits") == 1
        assert await self.store.hincrby("m", "hits", 2) == 3
        assert await self.store.hgetall("m") == {"hits": "3"}
        assert await self.store.ttl("m") == TTL_PERSISTENT

    @pytest.mark.asyncio
    async def test_info_memory(self):
        assert (await self.store.info_memory())["used_memory"] == 0
        await self.store.set_with_ttl("ab", 60, "cde")
        assert (await self.store.info_memory())["used_memory"] == 5
