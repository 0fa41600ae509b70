# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Redis backend for the query cache.

Shares cached query results between processes. Every key is prefixed with
the configured ``cache.key_prefix`` so the backend can purge its own
entries without touching anything else stored in the same database.

Example:
    from src.infrastructure.cache import QueryCache, RedisCacheBackend

    backend = RedisCacheBackend(settings)
    await backend.connect()
    cache = QueryCache(backend, ttl_seconds=settings.cache.ttl_seconds)
    ...
    await backend.close()
"""

import json
import math
from datetime import datetime
from typing import TYPE_CHECKING, Any, Optional

from redis.asyncio import ConnectionPool, Redis
from redis.exceptions import RedisError as BaseRedisError

from src.infrastructure.cache.backends import CacheBackend, CacheError

if TYPE_CHECKING:
    from src.core.config.settings import Settings

# Marker key of an encoded datetime inside a cached value
DATETIME_TAG = "__datetime__"


def _encode_value(value: Any) -> Any:
    if isinstance(value, datetime):
        return {DATETIME_TAG: value.isoformat()}
    return str(value)


def _decode_object(obj: dict[str, Any]) -> Any:
    if len(obj) == 1 and DATETIME_TAG in obj:
        return datetime.fromisoformat(obj[DATETIME_TAG])
    return obj


class RedisCacheBackend(CacheBackend):
    """Async Redis cache backend.

    Values are stored as JSON envelopes ``{"insertedAt": ..., "value": ...}``
    with a Redis expiry equal to the cache TTL. Datetimes (store
    timestamps) are tagged on write and read back as datetimes; other
    values that are not JSON native are stored as strings.

    Attributes:
        key_prefix: Namespace prepended to every cache key.
    """

    def __init__(self, settings: "Settings", redis: Optional[Redis] = None) -> None:
        """Initialize the backend.

        Args:
            settings: Application settings containing Redis and cache configuration.
            redis: Pre-built client (tests); connect() is then a no-op.
        """
        self._settings = settings
        self._pool: Optional[ConnectionPool] = None
        self._redis: Optional[Redis] = redis
        self.key_prefix = settings.cache.key_prefix

    async def connect(self) -> None:
        """Create the Redis connection pool.

        Raises:
            CacheError: If connection fails.
        """
        if self._redis is not None:
            return

        try:
            self._pool = ConnectionPool.from_url(
                self._settings.redis.url,
                max_connections=self._settings.redis.max_connections,
                decode_responses=True,
            )
            self._redis = Redis(connection_pool=self._pool)

            # Verify connection
            await self._redis.ping()
        except BaseRedisError as e:
            raise CacheError("Failed to connect to Redis", e) from e

    async def close(self) -> None:
        """Close the Redis connection pool."""
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None

        if self._pool is not None:
            await self._pool.disconnect()
            self._pool = None

    def _ensure_connected(self) -> Redis:
        if self._redis is None:
            raise CacheError("Redis cache backend not connected. Call connect() first.")
        return self._redis

    def _full_key(self, key: str) -> str:
        return f"{self.key_prefix}:{key}"

    # ========== Backend operations ==========

    async def get(self, key: str) -> tuple[float, Any] | None:
        redis = self._ensure_connected()
        try:
            raw = await redis.get(self._full_key(key))
        except BaseRedisError as e:
            raise CacheError(f"Failed to get key: {key}", e) from e

        if raw is None:
            return None
        try:
            envelope = json.loads(raw, object_hook=_decode_object)
            return float(envelope["insertedAt"]), envelope["value"]
        except (json.JSONDecodeError, KeyError, TypeError, ValueError):
            # Unreadable entries count as misses
            return None

    async def set(self, key: str, inserted_at: float, value: Any, ttl_seconds: int) -> None:
        redis = self._ensure_connected()
        serialized = json.dumps(
            {"insertedAt": inserted_at, "value": value},
            ensure_ascii=False,
            default=_encode_value,
        )
        try:
            await redis.set(self._full_key(key), serialized, ex=max(1, math.ceil(ttl_seconds)))
        except BaseRedisError as e:
            raise CacheError(f"Failed to set key: {key}", e) from e

    async def delete(self, key: str) -> None:
        redis = self._ensure_connected()
        try:
            await redis.delete(self._full_key(key))
        except BaseRedisError as e:
            raise CacheError(f"Failed to delete key: {key}", e) from e

    async def delete_prefix(self, prefix: str) -> int:
        redis = self._ensure_connected()
        pattern = f"{self._full_key(prefix)}*"

        try:
            keys = []
            async for key in redis.scan_iter(match=pattern):
                keys.append(key)

            if keys:
                return await redis.delete(*keys)
            return 0
        except BaseRedisError as e:
            raise CacheError(f"Failed to delete keys with prefix: {prefix}", e) from e

    async def clear(self) -> int:
        return await self.delete_prefix("")

    async def ping(self) -> bool:
        """Check if Redis is reachable.

        Returns:
            True if Redis responds to ping, False otherwise.
        """
        try:
            redis = self._ensure_connected()
            await redis.ping()
            return True
        except (CacheError, BaseRedisError):
            return False
