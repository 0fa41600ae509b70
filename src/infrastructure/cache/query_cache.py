# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Read-through cache for collection list queries.

Entries are keyed by collection plus a deterministic serialisation of the
query shape, live for a fixed TTL (5 minutes by default) and are purged
per collection on every write. The clock is injected so tests can move
time without sleeping.

Staleness across processes is bounded only by the TTL: a write made by
another process does not invalidate this process's memory backend.

Example:
    cache = QueryCache(MemoryCacheBackend(), ttl_seconds=300)
    key = cache.build_key("users", filters, ordering, limit=50)
    documents = await cache.get(key)
    if documents is None:
        generation = cache.generation("users")
        documents = await store.query("users", filters, ordering, 50)
        await cache.set(key, documents, generation)
"""

import copy
import json
import logging
import time
from collections.abc import Callable, Sequence
from typing import Any

from src.infrastructure.cache.backends import CacheBackend, CacheError
from src.models.query import Filter, Ordering

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 300

Generation = tuple[int, int]


class QueryCache:
    """TTL cache of query results with per-collection invalidation.

    Backend failures never fail a read: a broken backend behaves like an
    empty cache and is logged.

    Attributes:
        backend: Entry storage.
        ttl_seconds: Entry lifetime.
    """

    def __init__(
        self,
        backend: CacheBackend,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the cache.

        Args:
            backend: Entry storage.
            ttl_seconds: Entry lifetime in seconds.
            clock: Returns the current time in seconds.
        """
        self.backend = backend
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._epoch = 0
        self._generations: dict[str, int] = {}

    @staticmethod
    def build_key(
        collection: str,
        filters: Sequence[Filter] = (),
        ordering: Ordering | None = None,
        limit: int | None = None,
    ) -> str:
        """Build the cache key of a query shape.

        Filter order does not change the key.

        Args:
            collection: Collection name (key prefix).
            filters: Query filters.
            ordering: Query ordering.
            limit: Effective limit.

        Returns:
            ``"<collection>:<json>"``.
        """
        shape = {
            "filters": sorted(
                [item.field, item.operator.value, item.value] for item in filters
            ),
            "order": [ordering.field, ordering.direction.value] if ordering else None,
            "limit": limit,
        }
        return f"{collection}:{json.dumps(shape, sort_keys=True, default=str)}"

    @staticmethod
    def collection_of(key: str) -> str:
        """Return the collection a key belongs to."""
        return key.split(":", 1)[0]

    def generation(self, collection: str) -> Generation:
        """Current invalidation generation of a collection.

        Capture it before issuing a store read and pass it to set() so a
        result read before a concurrent invalidation is not cached.
        """
        return self._epoch, self._generations.get(collection, 0)

    async def get(self, key: str) -> list[dict[str, Any]] | None:
        """Return a cached result, or None on a miss.

        An entry is a miss once ``now - inserted_at >= ttl``; expired
        entries are evicted.
        """
        try:
            entry = await self.backend.get(key)
        except CacheError as e:
            logger.warning("Cache read failed for %s: %s", key, e)
            return None

        if entry is None:
            return None

        inserted_at, value = entry
        if self._clock() - inserted_at >= self.ttl_seconds:
            try:
                await self.backend.delete(key)
            except CacheError as e:
                logger.warning("Cache eviction failed for %s: %s", key, e)
            return None

        return copy.deepcopy(value)

    async def set(
        self,
        key: str,
        value: list[dict[str, Any]],
        generation: Generation | None = None,
    ) -> bool:
        """Store a result stamped with the current time.

        Args:
            key: Cache key from build_key().
            value: Documents to cache.
            generation: Generation captured before the read; a stale one
                drops the write.

        Returns:
            True if the entry was stored.
        """
        collection = self.collection_of(key)
        if generation is not None and generation != self.generation(collection):
            logger.debug("Dropping stale cache fill for %s", collection)
            return False

        try:
            await self.backend.set(key, self._clock(), copy.deepcopy(value), self.ttl_seconds)
        except CacheError as e:
            logger.warning("Cache write failed for %s: %s", key, e)
            return False
        return True

    async def invalidate(self, collection: str | None = None) -> int:
        """Purge the entries of one collection, or everything.

        Args:
            collection: Collection to purge; None clears the whole cache.

        Returns:
            Number of entries removed.
        """
        if collection is None:
            self._epoch += 1
            self._generations.clear()
        else:
            self._generations[collection] = self._generations.get(collection, 0) + 1

        try:
            if collection is None:
                removed = await self.backend.clear()
            else:
                removed = await self.backend.delete_prefix(f"{collection}:")
        except CacheError as e:
            logger.error("Cache invalidation failed for %s: %s", collection or "all", e)
            return 0

        logger.debug("Invalidated %d cache entries for %s", removed, collection or "all")
        return removed

    async def close(self) -> None:
        """Close the backend."""
        await self.backend.close()
