"""
Persistence Layer
=================
CacheStoreProtocol implementations

- SQLiteCacheStore: aiosqlite backend (production)
- InMemoryCacheStore: dict backend (tests, local runs)
"""

from src.infrastructure.persistence.cache_store import InMemoryCacheStore, SQLiteCacheStore

__all__ = ["InMemoryCacheStore", "SQLiteCacheStore"]
