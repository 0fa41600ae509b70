# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Read-through query cache.

QueryCache is constructed and injected by the caller; there is no module
level instance. The memory backend is process-local; the Redis backend
shares entries between processes under the configured key prefix.

Example:
    from src.infrastructure.cache import MemoryCacheBackend, QueryCache

    cache = QueryCache(MemoryCacheBackend(), ttl_seconds=300)
    await cache.invalidate("users")
"""

from src.infrastructure.cache.backends import CacheBackend, CacheError, MemoryCacheBackend
from src.infrastructure.cache.query_cache import DEFAULT_TTL_SECONDS, QueryCache
from src.infrastructure.cache.redis_backend import RedisCacheBackend

__all__ = [
    "CacheBackend",
    "CacheError",
    "MemoryCacheBackend",
    "RedisCacheBackend",
    "QueryCache",
    "DEFAULT_TTL_SECONDS",
]
