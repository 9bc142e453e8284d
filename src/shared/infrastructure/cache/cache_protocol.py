"""
Cache Protocol (Abstract Interface)
Contract for all cache implementations
"""
from __future__ import annotations

from typing import Any, Protocol


class ICacheProvider(Protocol):
    """
    Abstract cache provider interface.

    Cache is used ONLY for optimization - never as source of truth.
    Values must be JSON-serializable (see shared.utils.serialization).
    """

    async def get(self, key: str) -> Any | None:
        """
        Retrieve value from cache by key.

        Returns:
            Cached value or None if not found/expired
        """
        ...

    async def set(
        self,
        key: str,
        value: Any,
        ttl: int | None = None,
    ) -> bool:
        """
        Set a value in cache with optional TTL (seconds).

        Returns:
            True if successful, False otherwise
        """
        ...

    async def delete(self, *keys: str) -> int:
        """
        Delete keys from cache.

        Returns:
            Number of keys that existed and were deleted
        """
        ...

    async def increment(self, key: str, amount: int = 1) -> int:
        """
        Increment a numeric value in cache, creating it at 0 first.

        Returns:
            New value after increment
        """
        ...

    async def delete_pattern(self, pattern: str) -> int:
        """
        Delete every key matching a glob-style pattern.

        Returns:
            Number of keys deleted
        """
        ...

    async def ping(self) -> bool:
        """
        Check connectivity.

        Returns:
            True if cache is reachable, False otherwise
        """
        ...

    async def close(self) -> None:
        ...
