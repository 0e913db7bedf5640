"""Redis cache for per-project node listings"""
import asyncio
import json
from typing import Any, Dict, List, Optional

import redis.asyncio as redis

from projectfiles.core.config import settings
from projectfiles.utils.logger import get_logger

logger = get_logger(__name__)


class CacheService:
    """
    Redis-backed cache of project listings.

    Every method is a no-op when Redis is not configured or unreachable, so
    the cache can only ever make reads faster, never fail them.
    """

    def __init__(self, redis_client: Optional[redis.Redis] = None, ttl: Optional[int] = None):
        self.redis_client: Optional[redis.Redis] = redis_client
        self.cache_ttl = ttl or settings.CACHE_TTL

    async def connect(self):
        """Initialize Redis connection"""
        if self.redis_client is not None or not settings.REDIS_HOST:
            return

        redis_host = settings.REDIS_HOST
        redis_port = settings.REDIS_PORT
        redis_db = settings.REDIS_DB
        connection_url = f"redis://{redis_host}:{redis_port}/{redis_db}"

        try:
            self.redis_client = redis.from_url(
                connection_url,
                decode_responses=True,
                socket_connect_timeout=10,
                socket_timeout=10,
            )
            logger.info(f"Attempting to connect to Redis at {redis_host}:{redis_port}...")
            await asyncio.wait_for(self.redis_client.ping(), timeout=10.0)
            logger.info(f"Redis cache connected to {redis_host}:{redis_port}/{redis_db}")
        except asyncio.TimeoutError:
            logger.warning(f"Redis connection timeout after 10 seconds. Caching will be disabled.")
            await self._drop_client()
        except (redis.RedisError, OSError) as e:
            logger.warning(f"Failed to connect to Redis: {type(e).__name__}: {e}. Caching will be disabled.")
            await self._drop_client()

    async def _drop_client(self):
        if self.redis_client:
            try:
                await self.redis_client.aclose()
            except (redis.RedisError, OSError) as e:
                logger.debug(f"Ignoring error while closing Redis client: {e}")
        self.redis_client = None

    async def disconnect(self):
        """Close Redis connection"""
        await self._drop_client()

    def _get_cache_key(self, project_id: str) -> str:
        return f"projectfiles:listing:{project_id}"

    def _get_version_key(self, project_id: str) -> str:
        return f"projectfiles:listing-version:{project_id}"

    async def get_listing_version(self, project_id: str) -> int:
        """
        Current invalidation counter of a project's listing.

        Read it before loading the listing from the database and pass it to
        set_listing_cache; an invalidation in between makes the entry stale.
        """
        if not self.redis_client:
            return 0
        try:
            version = await self.redis_client.get(self._get_version_key(project_id))
        except redis.RedisError as e:
            logger.error(f"Error reading cache version for {project_id}: {e}")
            return 0
        return int(version or 0)

    async def get_listing_cache(self, project_id: str) -> Optional[List[Dict[str, Any]]]:
        """Get the cached node listing of a project"""
        if not self.redis_client:
            return None

        cache_key = self._get_cache_key(project_id)
        try:
            cached_data, version = await self.redis_client.mget(cache_key, self._get_version_key(project_id))
        except redis.RedisError as e:
            logger.error(f"Error getting cache for {project_id}: {e}")
            return None

        if not cached_data:
            logger.debug(f"Cache miss for key: {cache_key}")
            return None
        entry = json.loads(cached_data)
        if entry.get("version") != int(version or 0):
            logger.debug(f"Stale cache entry for key: {cache_key}")
            return None
        logger.debug(f"Cache hit for key: {cache_key}")
        return entry["rows"]

    async def set_listing_cache(
        self,
        project_id: str,
        rows: List[Dict[str, Any]],
        version: int = 0,
        ttl: Optional[int] = None,
    ):
        """Cache a project's node listing, stamped with the version it was read at"""
        if not self.redis_client:
            return

        cache_key = self._get_cache_key(project_id)
        ttl = ttl or self.cache_ttl
        try:
            await self.redis_client.setex(cache_key, ttl, json.dumps({"version": version, "rows": rows}))
            logger.debug(f"Cached {len(rows)} node(s) for key: {cache_key} (TTL: {ttl}s, version {version})")
        except redis.RedisError as e:
            logger.error(f"Error setting cache for {project_id}: {e}")

    async def invalidate_listing_cache(self, project_id: str):
        """Drop a project's cached listing after any tree mutation"""
        if not self.redis_client:
            return

        try:
            # Entries stamped with an older version now read as stale
            await self.redis_client.incr(self._get_version_key(project_id))
            await self.redis_client.delete(self._get_cache_key(project_id))
            logger.debug(f"Invalidated listing cache for project: {project_id}")
        except redis.RedisError as e:
            logger.error(f"Error invalidating cache for {project_id}: {e}")


# Global cache service instance
_cache_service: Optional[CacheService] = None


async def get_cache_service() -> CacheService:
    """Get or create cache service instance (non-blocking)"""
    global _cache_service
    if _cache_service is None:
        _cache_service = CacheService()
        await _cache_service.connect()
    return _cache_service


async def close_cache_service():
    """Close cache service connection"""
    global _cache_service
    if _cache_service:
        await _cache_service.disconnect()
        _cache_service = None
