"""
Cache Store Protocol
====================
Abstract interface of the persistence used for cached analyses

Implementations:
- SQLiteCacheStore (src/infrastructure/persistence/cache_store.py)
- InMemoryCacheStore (same module, tests and local runs)
"""

from datetime import timedelta
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class CacheStoreProtocol(Protocol):
    """
    Key/value store with per-entry expiry

    Namespaces keep market analyses and demographic indicators apart.
    An expired entry is treated as absent.
    """

    async def get(self, namespace: str, key: str) -> dict[str, Any] | None:
        """
        Fetch a live entry.

        Returns:
            The stored payload, or None when missing or expired
        """
        ...

    async def put(
        self, namespace: str, key: str, value: dict[str, Any], ttl: timedelta
    ) -> None:
        """
        Store (or overwrite) an entry that expires after ttl.
        """
        ...

    async def delete(self, namespace: str, key: str) -> None:
        ...

    async def close(self) -> None:
        ...
