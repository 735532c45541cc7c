"""Analysis cache store with expiry, two backends.

- InMemoryCacheStore: dict-based, for tests and local runs
- SQLiteCacheStore: aiosqlite-backed, survives restarts

Both treat an expired entry as absent and delete it on read. Writes are
idempotent overwrites (INSERT OR REPLACE), so concurrent duplicate writes for
the same key are harmless.
"""

from __future__ import annotations

import json
import os
import time
from datetime import timedelta
from typing import Any

import aiosqlite

MARKET_ANALYSIS_NAMESPACE = "market_analysis"
DEMOGRAPHIC_NAMESPACE = "demographic_indicators"


class InMemoryCacheStore:
    """Dict-based store. Entries are (expires_at, payload)."""

    def __init__(self):
        self._entries: dict[tuple[str, str], tuple[float, str]] = {}
        self._hits = 0
        self._misses = 0

    async def get(self, namespace: str, key: str) -> dict[str, Any] | None:
        entry = self._entries.get((namespace, key))
        if entry is None:
            self._misses += 1
            return None

        expires_at, payload = entry
        if expires_at <= time.time():
            del self._entries[(namespace, key)]
            self._misses += 1
            return None

        self._hits += 1
        return json.loads(payload)

    async def put(
        self, namespace: str, key: str, value: dict[str, Any], ttl: timedelta
    ) -> None:
        # stored serialized so callers never share mutable state with the cache
        self._entries[(namespace, key)] = (
            time.time() + ttl.total_seconds(),
            json.dumps(value, default=str),
        )

    async def delete(self, namespace: str, key: str) -> None:
        self._entries.pop((namespace, key), None)

    def get_stats(self) -> dict[str, Any]:
        total = self._hits + self._misses
        return {
            "size": len(self._entries),
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": self._hits / max(1, total),
        }

    async def close(self) -> None:
        self._entries.clear()


class SQLiteCacheStore:
    """SQLite-backed store.

    One table keyed by (namespace, key) holding a JSON payload and an absolute
    expiry timestamp.
    """

    def __init__(self, db_path: str = "data/expansion_cache.db"):
        """Initialize SQLite store.

        Args:
            db_path: Path to SQLite database file
        """
        self._db_path = db_path
        self._db: aiosqlite.Connection | None = None
        self._hits = 0
        self._misses = 0

    async def _ensure_db(self) -> aiosqlite.Connection:
        """Lazy init - create connection and table if needed."""
        if self._db is not None:
            return self._db

        if self._db_path != ":memory:":
            os.makedirs(os.path.dirname(self._db_path) or ".", exist_ok=True)

        self._db = await aiosqlite.connect(self._db_path)
        await self._db.execute(
            """
            CREATE TABLE IF NOT EXISTS cache_entries (
                namespace TEXT NOT NULL,
                key TEXT NOT NULL,
                payload TEXT NOT NULL,
                expires_at REAL NOT NULL,
                created_at REAL NOT NULL,
                PRIMARY KEY (namespace, key)
            )
            """
        )
        await self._db.execute(
            """
            CREATE INDEX IF NOT EXISTS idx_cache_expires_at
            ON cache_entries(expires_at)
            """
        )
        await self._db.commit()
        return self._db

    async def get(self, namespace: str, key: str) -> dict[str, Any] | None:
        """Fetch a live entry; expired rows are deleted and reported as missing."""
        db = await self._ensure_db()
        cursor = await db.execute(
            "SELECT payload, expires_at FROM cache_entries WHERE namespace = ? AND key = ?",
            (namespace, key),
        )
        row = await cursor.fetchone()

        if row is None:
            self._misses += 1
            return None

        payload, expires_at = row
        if expires_at <= time.time():
            await self.delete(namespace, key)
            self._misses += 1
            return None

        self._hits += 1
        return json.loads(payload)

    async def put(
        self, namespace: str, key: str, value: dict[str, Any], ttl: timedelta
    ) -> None:
        db = await self._ensure_db()
        now = time.time()
        await db.execute(
            """
            INSERT OR REPLACE INTO cache_entries (namespace, key, payload, expires_at, created_at)
            VALUES (?, ?, ?, ?, ?)
            """,
            (namespace, key, json.dumps(value, default=str), now + ttl.total_seconds(), now),
        )
        await db.commit()

    async def delete(self, namespace: str, key: str) -> None:
        db = await self._ensure_db()
        await db.execute(
            "DELETE FROM cache_entries WHERE namespace = ? AND key = ?", (namespace, key)
        )
        await db.commit()

    async def purge_expired(self) -> int:
        """Delete every expired row. Returns the number of rows removed."""
        db = await self._ensure_db()
        cursor = await db.execute(
            "DELETE FROM cache_entries WHERE expires_at <= ?", (time.time(),)
        )
        await db.commit()
        return cursor.rowcount

    def get_stats(self) -> dict[str, Any]:
        total = self._hits + self._misses
        return {
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": self._hits / max(1, total),
        }

    async def close(self) -> None:
        """Close database connection."""
        if self._db is not None:
            await self._db.close()
            self._db = None
