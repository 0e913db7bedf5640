"""Tests for the Redis listing cache."""

import json
from unittest.mock import AsyncMock

import pytest
import redis.asyncio as redis

from projectfiles.services.cache_service import CacheService
from projectfiles.services.file_service import FileService

from tests.conftest import OWNER


class FakeRedis:
    """The handful of async Redis commands the cache uses, backed by a dict."""

    def __init__(self):
        self.data = {}
        self.ttls = {}

    async def get(self, key):
        return self.data.get(key)

    async def mget(self, *keys):
        return [self.data.get(k) for k in keys]

    async def setex(self, key, ttl, value):
        self.data[key] = value
        self.ttls[key] = ttl

    async def incr(self, key):
        self.data[key] = str(int(self.data.get(key, 0)) + 1)
        return int(self.data[key])

    async def delete(self, key):
        self.data.pop(key, None)


@pytest.fixture
def redis_client():
    return FakeRedis()


class TestCacheService:
    @pytest.mark.asyncio
    async def test_without_client_everything_is_a_noop(self):
        cache = CacheService()
        assert await cache.get_listing_cache("p1") is None
        assert await cache.get_listing_version("p1") == 0
        await cache.set_listing_cache("p1", [{"id": "a"}])
        await cache.invalidate_listing_cache("p1")

    @pytest.mark.asyncio
    async def test_set_and_get(self, redis_client):
        cache = CacheService(redis_client, ttl=30)
        await cache.set_listing_cache("p1", [{"id": "a"}])

        assert redis_client.ttls["projectfiles:listing:p1"] == 30
        assert await cache.get_listing_cache("p1") == [{"id": "a"}]

    @pytest.mark.asyncio
    async def test_redis_errors_read_as_miss(self):
        client = AsyncMock()
        client.mget.side_effect = redis.ConnectionError("down")
        cache = CacheService(client)
        assert await cache.get_listing_cache("p1") is None

    @pytest.mark.asyncio
    async def test_invalidate_bumps_version_and_drops_entry(self, redis_client):
        cache = CacheService(redis_client)
        await cache.set_listing_cache("p1", [{"id": "a"}])

        await cache.invalidate_listing_cache("p1")

        assert "projectfiles:listing:p1" not in redis_client.data
        assert await cache.get_listing_version("p1") == 1

    @pytest.mark.asyncio
    async def test_listing_read_before_invalidation_is_never_served(self, redis_client):
        cache = CacheService(redis_client)
        version = await cache.get_listing_version("p1")

        # A mutation lands between the database read and the cache write
        await cache.invalidate_listing_cache("p1")
        await cache.set_listing_cache("p1", [{"id": "old"}], version)

        assert await cache.get_listing_cache("p1") is None

        fresh = await cache.get_listing_version("p1")
        await cache.set_listing_cache("p1", [{"id": "new"}], fresh)
        assert await cache.get_listing_cache("p1") == [{"id": "new"}]


class TestListingCache:
    @pytest.mark.asyncio
    async def test_listing_is_cached_and_invalidated_on_change(self, tree_store, storage, project, redis_client):
        service = FileService(tree_store, storage, cache=CacheService(redis_client), notifier=AsyncMock())
        key = f"projectfiles:listing:{project.id}"

        nodes = await service.list_nodes(project.id, OWNER)
        assert len(nodes) == 4
        cached_rows = json.loads(redis_client.data[key])["rows"]
        assert {row["name"] for row in cached_rows} == {"Documents", "Assets", "Design", "Print"}

        from_cache = await service.list_nodes(project.id, OWNER)
        assert {n.name for n in from_cache} == {"Documents", "Assets", "Design", "Print"}

        await service.create_folder(project.id, OWNER, "Extra")
        assert key not in redis_client.data

        refreshed = await service.list_nodes(project.id, OWNER)
        assert "Extra" in {n.name for n in refreshed}
