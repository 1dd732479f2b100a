"""
Redis-backed cache store for the Render Service.
"""

from typing import Optional

import redis.asyncio as redis
from pydantic import ValidationError

from shared.logging import get_logger
from shared.errors import StoreFailure
from .models import CacheEntry


class RedisCacheStore:
    """Stores one JSON document per cache key, without expiry."""

    def __init__(self, redis_url: str, key_prefix: str = "render:"):
        self.redis_url = redis_url
        self.key_prefix = key_prefix
        self.logger = get_logger("renderer.cache.redis")
        self.redis: Optional[redis.Redis] = None

    async def start(self):
        """Start the Redis store."""
        try:
            self.redis = redis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
                retry_on_timeout=True,
                health_check_interval=30
            )
            await self.redis.ping()
            self.logger.info("Redis cache store started")

        except Exception as e:
            self.logger.error("Failed to start Redis cache store", error=str(e))
            raise StoreFailure("start", str(e))

    async def stop(self):
        """Stop the Redis store."""
        if self.redis:
            await self.redis.aclose()
            self.redis = None
            self.logger.info("Redis cache store stopped")

    def _storage_key(self, key: str) -> str:
        return f"{self.key_prefix}{key}"

    async def get(self, key: str) -> Optional[CacheEntry]:
        """Fetch the entry stored under ``key``."""
        if self.redis is None:
            raise StoreFailure("get", "store not started")

        try:
            cached_data = await self.redis.get(self._storage_key(key))
        except Exception as e:
            self.logger.error("Error reading cache entry", key=key, error=str(e))
            raise StoreFailure("get", str(e), {"key": key})

        if cached_data is None:
            return None

        try:
            return CacheEntry.model_validate_json(cached_data)
        except ValidationError as e:
            self.logger.error("Corrupt cache entry", key=key, error=str(e))
            raise StoreFailure("get", "corrupt entry", {"key": key})

    async def put(self, entry: CacheEntry) -> CacheEntry:
        """Write ``entry`` over whatever is stored under its key."""
        if self.redis is None:
            raise StoreFailure("put", "store not started")

        payload = entry.model_dump_json()
        try:
            await self.redis.set(self._storage_key(entry.key), payload)
        except Exception as e:
            self.logger.error("Error writing cache entry", key=entry.key, error=str(e))
            raise StoreFailure("put", str(e), {"key": entry.key})

        # What was written, decoded back, is what callers get.
        return CacheEntry.model_validate_json(payload)

    async def health_check(self) -> bool:
        """Check Redis health."""
        try:
            return bool(self.redis) and bool(await self.redis.ping())
        except Exception:
            return False
