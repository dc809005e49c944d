"""Redis caching layer with TTL support."""

from __future__ import annotations

import json
from datetime import timedelta
from typing import TYPE_CHECKING, Any

import redis.asyncio as redis
from attrs import field, frozen
from beartype import beartype

from .config import get_settings

__all__ = [
    "Cache",
    "CacheConfig",
    "get_cache",
]

if TYPE_CHECKING:
    from redis.asyncio import Redis as RedisType
else:
    RedisType = redis.Redis


@frozen
class CacheConfig:
    """Immutable cache configuration."""

    url: str = field()
    default_ttl: int = field(default=300)
    max_connections: int = field(default=10)
    key_prefix: str = field(default="policy_issuance:")


class Cache:
    """Redis cache manager with async support.

    An already-created ``redis.asyncio.Redis`` client may be injected, in which
    case :py:meth:`connect` becomes a no-op.
    """

    def __init__(self, redis_client: RedisType | None = None, config: CacheConfig | None = None) -> None:
        self._redis: RedisType | None = redis_client
        self._config = config or self._get_config()

    @staticmethod
    def _get_config() -> CacheConfig:
        settings = get_settings()
        return CacheConfig(url=settings.redis_url, default_ttl=settings.redis_ttl_seconds)

    def _key(self, key: str) -> str:
        return f"{self._config.key_prefix}{key}"

    @property
    def is_connected(self) -> bool:
        return self._redis is not None

    async def connect(self) -> None:
        """Create Redis connection pool."""
        if self._redis is not None:
            return

        client = redis.from_url(
            self._config.url,
            max_connections=self._config.max_connections,
            decode_responses=True,
        )
        try:
            await client.ping()
        except Exception:
            await client.aclose()
            raise
        self._redis = client

    async def disconnect(self) -> None:
        """Close Redis connection."""
        if self._redis is None:
            return

        await self._redis.aclose()
        self._redis = None

    @beartype
    async def get(self, key: str) -> Any | None:
        """Get a JSON value from cache, ``None`` on miss."""
        if self._redis is None:
            raise RuntimeError("Cache not connected")

        value = await self._redis.get(self._key(key))
        if value is None:
            return None

        try:
            return json.loads(value)
        except (json.JSONDecodeError, TypeError):
            return value

    @beartype
    async def set(
        self,
        key: str,
        value: Any,
        ttl: int | timedelta | None = None,
    ) -> bool:
        """Set a JSON value in cache with optional TTL."""
        if self._redis is None:
            raise RuntimeError("Cache not connected")

        if ttl is None:
            ttl = self._config.default_ttl
        if isinstance(ttl, int):
            ttl = timedelta(seconds=ttl)

        result = await self._redis.setex(
            self._key(key), ttl, json.dumps(value, default=str)
        )
        return bool(result)

    @beartype
    async def delete(self, key: str) -> bool:
        """Delete key from cache."""
        if self._redis is None:
            raise RuntimeError("Cache not connected")

        result = await self._redis.delete(self._key(key))
        return bool(result > 0)


_cache: Cache | None = None


@beartype
def get_cache() -> Cache:
    """Get global cache instance."""
    global _cache
    if _cache is None:
        _cache = Cache()
    return _cache
