"""
Redis Cache Implementation
Async Redis-based cache provider
"""
from __future__ import annotations

import json
from typing import Any

from redis.asyncio import Redis
from redis.exceptions import RedisError

from src.shared.logging import get_logger
from src.shared.utils.serialization import dumps, loads

logger = get_logger(__name__)


class RedisCache:
    """
    Async Redis cache implementation.

    CRITICAL: Redis is ONLY for optimization - never source of truth.

    Attributes:
        redis: Async Redis client
        key_prefix: Prefix for all cache keys (for namespacing)
    """

    def __init__(self, redis: Redis, key_prefix: str = "pharmacy") -> None:
        self.redis = redis
        self.key_prefix = key_prefix

    @classmethod
    def from_url(cls, url: str, key_prefix: str = "pharmacy") -> "RedisCache":
        return cls(Redis.from_url(url, decode_responses=True), key_prefix=key_prefix)

    def _make_key(self, key: str) -> str:
        """Create prefixed key for namespacing."""
        return f"{self.key_prefix}:{key}"

    async def get(self, key: str) -> Any | None:
        try:
            value = await self.redis.get(self._make_key(key))
            if value is None:
                return None
            return loads(value)
        except RedisError as e:
            logger.error("Redis GET failed", key=key, error=str(e))
            return None
        except json.JSONDecodeError as e:
            logger.error("Failed to deserialize cached value", key=key, error=str(e))
            return None

    async def set(
        self,
        key: str,
        value: Any,
        ttl: int | None = None,
    ) -> bool:
        try:
            serialized = dumps(value)
            if ttl:
                await self.redis.setex(self._make_key(key), ttl, serialized)
            else:
                await self.redis.set(self._make_key(key), serialized)
            logger.debug("Cached value", key=key, ttl=ttl)
            return True
        except (RedisError, TypeError, ValueError) as e:
            logger.error("Redis SET failed", key=key, error=str(e))
            return False

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        try:
            return int(await self.redis.delete(*(self._make_key(k) for k in keys)))
        except RedisError as e:
            logger.error("Redis DELETE failed", keys=list(keys), error=str(e))
            return 0

    async def increment(self, key: str, amount: int = 1) -> int:
        try:
            return int(await self.redis.incrby(self._make_key(key), amount))
        except RedisError as e:
            logger.error("Redis INCR failed", key=key, error=str(e))
            raise

    async def delete_pattern(self, pattern: str) -> int:
        """SCAN + DEL in pages; never blocks Redis with KEYS."""
        match = self._make_key(pattern)
        deleted = 0
        cursor = 0
        try:
            while True:
                cursor, keys = await self.redis.scan(cursor, match=match, count=100)
                if keys:
                    deleted += int(await self.redis.delete(*keys))
                if cursor == 0:
                    break
        except RedisError as e:
            logger.error("Redis pattern delete failed", pattern=pattern, error=str(e))
            raise
        return deleted

    async def ping(self) -> bool:
        try:
            await self.redis.ping()
            return True
        except RedisError as e:
            logger.error("Redis PING failed", error=str(e))
            return False

    async def close(self) -> None:
        await self.redis.aclose()
