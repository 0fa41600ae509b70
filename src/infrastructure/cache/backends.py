# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Storage backends for the query cache.

A backend stores ``(inserted_at, value)`` pairs by key. Expiry decisions
belong to QueryCache; backends only need to keep entries at least as long
as the TTL they are given.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional


class CacheError(Exception):
    """Exception raised for cache backend failures.

    Attributes:
        message: Human-readable error description.
        original_error: The underlying backend error.
    """

    def __init__(self, message: str, original_error: Optional[Exception] = None) -> None:
        """Initialize the cache error.

        Args:
            message: Human-readable error description.
            original_error: The underlying exception that caused this error.
        """
        super().__init__(message)
        self.message = message
        self.original_error = original_error

    def __str__(self) -> str:
        """Return string representation of the error."""
        if self.original_error:
            return f"{self.message}: {self.original_error}"
        return self.message


class CacheBackend(ABC):
    """Key/value storage used by QueryCache."""

    @abstractmethod
    async def get(self, key: str) -> tuple[float, Any] | None:
        """Return ``(inserted_at, value)`` or None when absent."""

    @abstractmethod
    async def set(self, key: str, inserted_at: float, value: Any, ttl_seconds: int) -> None:
        """Store a value with its insertion time."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove one key."""

    @abstractmethod
    async def delete_prefix(self, prefix: str) -> int:
        """Remove every key starting with ``prefix`` and return the count."""

    @abstractmethod
    async def clear(self) -> int:
        """Remove every key and return the count."""

    async def close(self) -> None:
        """Release backend resources."""


class MemoryCacheBackend(CacheBackend):
    """Process-local dictionary backend."""

    def __init__(self) -> None:
        self._entries: dict[str, tuple[float, Any]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    async def get(self, key: str) -> tuple[float, Any] | None:
        return self._entries.get(key)

    async def set(self, key: str, inserted_at: float, value: Any, ttl_seconds: int) -> None:
        self._entries[key] = (inserted_at, value)

    async def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    async def delete_prefix(self, prefix: str) -> int:
        keys = [key for key in self._entries if key.startswith(prefix)]
        for key in keys:
            del self._entries[key]
        return len(keys)

    async def clear(self) -> int:
        removed = len(self._entries)
        self._entries.clear()
        return removed
