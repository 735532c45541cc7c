"""
Cache store tests (in-memory and SQLite backends)
"""

from datetime import timedelta

import pytest
import pytest_asyncio

from src.infrastructure.persistence.cache_store import (
    MARKET_ANALYSIS_NAMESPACE,
    InMemoryCacheStore,
    SQLiteCacheStore,
)

TTL = timedelta(days=7)


@pytest_asyncio.fixture(params=["memory", "sqlite"])
async def store(request, tmp_path):
    if request.param == "memory":
        backend = InMemoryCacheStore()
    else:
        backend = SQLiteCacheStore(str(tmp_path / "cache" / "test.db"))
    yield backend
    await backend.close()


class TestCacheStore:
    @pytest.mark.asyncio
    async def test_miss(self, store):
        assert await store.get(MARKET_ANALYSIS_NAMESPACE, "absent") is None

    @pytest.mark.asyncio
    async def test_put_then_get(self, store):
        await store.put(MARKET_ANALYSIS_NAMESPACE, "berlin", {"saturation": 0.4}, TTL)
        assert await store.get(MARKET_ANALYSIS_NAMESPACE, "berlin") == {"saturation": 0.4}

    @pytest.mark.asyncio
    async def test_namespaces_are_separate(self, store):
        await store.put(MARKET_ANALYSIS_NAMESPACE, "k", {"a": 1}, TTL)
        assert await store.get("demographic_indicators", "k") is None

    @pytest.mark.asyncio
    async def test_overwrite_is_idempotent(self, store):
        await store.put(MARKET_ANALYSIS_NAMESPACE, "k", {"v": 1}, TTL)
        await store.put(MARKET_ANALYSIS_NAMESPACE, "k", {"v": 2}, TTL)
        assert await store.get(MARKET_ANALYSIS_NAMESPACE, "k") == {"v": 2}

    @pytest.mark.asyncio
    async def test_expired_entry_is_absent(self, store):
        await store.put(MARKET_ANALYSIS_NAMESPACE, "k", {"v": 1}, timedelta(seconds=-1))
        assert await store.get(MARKET_ANALYSIS_NAMESPACE, "k") is None

    @pytest.mark.asyncio
    async def test_delete(self, store):
        await store.put(MARKET_ANALYSIS_NAMESPACE, "k", {"v": 1}, TTL)
        await store.delete(MARKET_ANALYSIS_NAMESPACE, "k")
        assert await store.get(MARKET_ANALYSIS_NAMESPACE, "k") is None

    @pytest.mark.asyncio
    async def test_hit_rate(self, store):
        await store.put(MARKET_ANALYSIS_NAMESPACE, "k", {"v": 1}, TTL)
        await store.get(MARKET_ANALYSIS_NAMESPACE, "k")
        await store.get(MARKET_ANALYSIS_NAMESPACE, "other")

        stats = store.get_stats()
        assert stats["hits"] == 1
        assert stats["misses"] == 1
        assert stats["hit_rate"] == 0.5

    @pytest.mark.asyncio
    async def test_returned_value_is_a_copy(self, store):
        await store.put(MARKET_ANALYSIS_NAMESPACE, "k", {"items": [1]}, TTL)
        first = await store.get(MARKET_ANALYSIS_NAMESPACE, "k")
        first["items"].append(2)
        assert await store.get(MARKET_ANALYSIS_NAMESPACE, "k") == {"items": [1]}


class TestSQLiteCacheStore:
    @pytest.mark.asyncio
    async def test_survives_reopen(self, tmp_path):
        path = str(tmp_path / "persist.db")
        first = SQLiteCacheStore(path)
        await first.put(MARKET_ANALYSIS_NAMESPACE, "k", {"v": 1}, TTL)
        await first.close()

        second = SQLiteCacheStore(path)
        try:
            assert await second.get(MARKET_ANALYSIS_NAMESPACE, "k") == {"v": 1}
        finally:
            await second.close()

    @pytest.mark.asyncio
    async def test_purge_expired(self, tmp_path):
        store = SQLiteCacheStore(str(tmp_path / "purge.db"))
        try:
            await store.put(MARKET_ANALYSIS_NAMESPACE, "old", {"v": 1}, timedelta(seconds=-1))
            await store.put(MARKET_ANALYSIS_NAMESPACE, "new", {"v": 2}, TTL)
            assert await store.purge_expired() == 1
            assert await store.get(MARKET_ANALYSIS_NAMESPACE, "new") == {"v": 2}
        finally:
            await store.close()
