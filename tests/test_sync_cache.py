"""Tests for docgate.sync.cache -- backend selection, TTLs and degraded mode."""

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from docgate.config import CacheConfig
from docgate.sync import CacheBackend, DocumentCache, DocumentMetadata, InMemoryCacheBackend
from docgate.sync.cache import RedisCacheBackend

MODIFIED = datetime(2025, 6, 1, 9, 30, tzinfo=timezone.utc)


class UnreachableBackend(CacheBackend):
    """Stands in for a Redis server that refuses connections."""

    name = "redis"

    def __init__(self):
        self.closed = False

    async def get(self, key):
        raise ConnectionError("refused")

    async def set(self, key, value, ttl=None):
        raise ConnectionError("refused")

    async def delete(self, *keys):
        raise ConnectionError("refused")

    async def keys(self, prefix):
        raise ConnectionError("refused")

    async def ping(self):
        raise ConnectionError("refused")

    async def close(self):
        self.closed = True


class BrokenAfterInit(InMemoryCacheBackend):
    """Answers the ping, then fails every operation."""

    name = "redis"

    async def get(self, key):
        raise ConnectionError("connection lost")

    async def set(self, key, value, ttl=None):
        raise ConnectionError("connection lost")

    async def delete(self, *keys):
        raise ConnectionError("connection lost")


class DateClock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now


class TestBackendSelection:
    """initialize() chooses Redis or the in-memory fallback once."""

    @pytest.mark.asyncio
    async def test_falls_back_when_ping_fails(self):
        unreachable = UnreachableBackend()
        cache = DocumentCache(CacheConfig(), redis_factory=lambda url, timeout: unreachable)
        backend = await cache.initialize()
        assert isinstance(backend, InMemoryCacheBackend)
        assert cache.backend_name == "memory"
        assert unreachable.closed

    @pytest.mark.asyncio
    async def test_uses_redis_when_reachable(self):
        reachable = InMemoryCacheBackend()
        reachable.name = "redis"
        seen = []

        def factory(url, timeout):
            seen.append((url, timeout))
            return reachable

        cache = DocumentCache(CacheConfig(redis_url="redis://cache:6379/2"), redis_factory=factory)
        assert await cache.initialize() is reachable
        assert await cache.initialize() is reachable
        assert seen == [("redis://cache:6379/2", 2.0)]

    @pytest.mark.asyncio
    async def test_concurrent_initialize_builds_one_client(self):
        created = []

        class SlowPing(InMemoryCacheBackend):
            name = "redis"

            async def ping(self):
                await asyncio.sleep(0)
                return True

        def factory(url, timeout):
            created.append(SlowPing())
            return created[-1]

        cache = DocumentCache(CacheConfig(), redis_factory=factory)
        backends = await asyncio.gather(*(cache.initialize() for _ in range(5)))
        assert len(created) == 1
        assert all(b is created[0] for b in backends)

    @pytest.mark.asyncio
    async def test_disabled_never_contacts_redis(self):
        def factory(url, timeout):
            raise AssertionError("redis must not be contacted")

        cache = DocumentCache(CacheConfig(enabled=False), redis_factory=factory)
        await cache.initialize()
        assert cache.backend_name == "memory"


class TestContentCache:
    """Content and metadata round trips with TTL."""

    @pytest.mark.asyncio
    async def test_miss_then_hit(self):
        cache = DocumentCache(CacheConfig(), backend=InMemoryCacheBackend())
        assert await cache.get("doc-1") is None
        await cache.set("doc-1", "Spec", "body text", "text/plain", MODIFIED)
        cached = await cache.get("doc-1")
        assert cached.content == "body text"
        assert cached.modified_time == MODIFIED
        assert (cache.hits, cache.misses) == (1, 1)

    @pytest.mark.asyncio
    async def test_content_expires(self):
        clock = DateClock(datetime(2025, 6, 2, tzinfo=timezone.utc))
        cache = DocumentCache(
            CacheConfig(content_ttl_seconds=900), backend=InMemoryCacheBackend(), clock=clock,
        )
        await cache.set("doc-1", "Spec", "body", "text/plain", MODIFIED)
        clock.now += timedelta(seconds=899)
        assert await cache.get("doc-1") is not None
        clock.now += timedelta(seconds=1)
        assert await cache.get("doc-1") is None

    @pytest.mark.asyncio
    async def test_backend_ttl(self, clock):
        backend = InMemoryCacheBackend(clock=clock)
        await backend.set("k", "v", ttl=10)
        clock.advance(5)
        assert await backend.get("k") == "v"
        clock.advance(5)
        assert await backend.get("k") is None

    @pytest.mark.asyncio
    async def test_metadata(self):
        cache = DocumentCache(CacheConfig(), backend=InMemoryCacheBackend())
        meta = DocumentMetadata("doc-1", "Spec", "text/plain", MODIFIED, "Engineering/Specs")
        await cache.set_metadata(meta)
        assert await cache.get_metadata("doc-1") == meta

    @pytest.mark.asyncio
    async def test_invalidate_many(self):
        cache = DocumentCache(CacheConfig(), backend=InMemoryCacheBackend())
        for file_id in ("a", "b", "c"):
            await cache.set(file_id, file_id, "x", "text/plain", MODIFIED)
        assert await cache.invalidate_many(["a", "b"]) == 2
        assert await cache.get("a") is None
        assert await cache.get("c") is not None
        assert await cache.invalidate_many([]) == 0

    @pytest.mark.asyncio
    async def test_key_prefix(self):
        backend = InMemoryCacheBackend()
        cache = DocumentCache(CacheConfig(key_prefix="tenant1:"), backend=backend)
        await cache.set("doc-1", "Spec", "x", "text/plain", MODIFIED)
        await cache.set_change_token("global", "42")
        assert sorted(await backend.keys("tenant1:")) == ["tenant1:changes:global", "tenant1:doc:doc-1"]


class TestChangeTokens:
    """Cursor persistence."""

    @pytest.mark.asyncio
    async def test_token_round_trip(self, clock):
        backend = InMemoryCacheBackend(clock=clock)
        cache = DocumentCache(CacheConfig(), backend=backend)
        assert await cache.get_change_token() is None
        await cache.set_change_token("global", "1234")
        clock.advance(10 ** 7)
        assert await cache.get_change_token("global") == "1234"
        await cache.delete_change_token("global")
        assert await cache.get_change_token("global") is None

    @pytest.mark.asyncio
    async def test_scopes_are_independent(self):
        cache = DocumentCache(CacheConfig(), backend=InMemoryCacheBackend())
        await cache.set_change_token("team-a", "1")
        await cache.set_change_token("team-b", "2")
        assert await cache.get_change_token("team-a") == "1"
        assert await cache.get_change_token("team-b") == "2"


class TestDegradedMode:
    """Storage errors never propagate."""

    @pytest.mark.asyncio
    async def test_errors_are_misses_and_noops(self):
        cache = DocumentCache(CacheConfig(), backend=BrokenAfterInit())
        await cache.set("doc-1", "Spec", "x", "text/plain", MODIFIED)
        assert await cache.get("doc-1") is None
        assert await cache.get_change_token() is None
        await cache.set_change_token("global", "1")
        assert await cache.invalidate_many(["doc-1"]) == 0
        assert cache.misses == 1


class TestHousekeeping:
    """Stats, clear, health and shutdown."""

    @pytest.mark.asyncio
    async def test_stats_and_clear(self):
        cache = DocumentCache(CacheConfig(), backend=InMemoryCacheBackend())
        await cache.set("doc-1", "Spec", "x", "text/plain", MODIFIED)
        await cache.set("doc-2", "Plan", "y", "text/plain", MODIFIED)
        await cache.set_change_token("global", "9")
        await cache.get("doc-1")
        await cache.get("missing")

        stats = await cache.get_stats()
        assert stats.backend == "memory"
        assert stats.total_cached == 2
        assert stats.hit_rate == 0.5
        assert stats.to_dict()["hits"] == 1

        assert await cache.clear() == 3
        assert await cache.get_change_token() is None
        assert (cache.hits, cache.misses) == (0, 0)

    @pytest.mark.asyncio
    async def test_health_and_shutdown(self):
        cache = DocumentCache(CacheConfig(), backend=InMemoryCacheBackend())
        assert await cache.health_check()
        await cache.shutdown()
        assert cache.backend_name == "uninitialized"


class TestRedisBackend:
    """Thin adapter over redis.asyncio."""

    @pytest.mark.asyncio
    async def test_delegates_to_client(self):
        client = AsyncMock()
        client.get.return_value = "cached"
        client.delete.return_value = 2
        client.ping.return_value = True
        backend = RedisCacheBackend(client)

        await backend.set("gdoc:doc:1", "cached", ttl=900)
        client.set.assert_awaited_once_with("gdoc:doc:1", "cached", ex=900)
        assert await backend.get("gdoc:doc:1") == "cached"
        assert await backend.delete("gdoc:doc:1", "gdoc:meta:1") == 2
        assert await backend.delete() == 0
        assert await backend.ping()

        await backend.close()
        client.aclose.assert_awaited_once()
