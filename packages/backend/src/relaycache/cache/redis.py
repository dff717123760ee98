"""Redis cache backend.

Learn: SET with EX gives Redis-side expiry, so a stale snapshot vanishes
even if this process dies. DEL on a missing key returns 0 rather than
failing, which makes invalidation idempotent for free.
"""

from typing import Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from relaycache.errors import CacheError


class RedisCache:
    """Cache backed by a shared redis.asyncio connection pool."""

    def __init__(self, client: aioredis.Redis):
        self._redis = client

    @classmethod
    def from_url(cls, url: str) -> "RedisCache":
        return cls(
            aioredis.from_url(url, encoding="utf-8", decode_responses=True)
        )

    async def get(self, key: str) -> Optional[str]:
        try:
            return await self._redis.get(key)
        except (RedisError, OSError) as e:
            raise CacheError(f"Cache GET {key!r} failed: {e}") from e

    async def set(self, key: str, value: str, ttl: int) -> None:
        try:
            await self._redis.set(key, value, ex=ttl)
        except (RedisError, OSError) as e:
            raise CacheError(f"Cache SET {key!r} failed: {e}") from e

    async def delete(self, key: str) -> None:
        try:
            await self._redis.delete(key)
        except (RedisError, OSError) as e:
            raise CacheError(f"Cache DEL {key!r} failed: {e}") from e

    async def ping(self) -> None:
        try:
            await self._redis.ping()
        except (RedisError, OSError) as e:
            raise CacheError(f"Cache PING failed: {e}") from e

    async def close(self) -> None:
        await self._redis.aclose()
