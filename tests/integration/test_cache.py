"""
Integration tests for the storage-backed cache
"""

import pytest
from datetime import datetime, timedelta
from unittest.mock import patch
from sqlalchemy import select
from core.cache import MISS, CacheService, build_cache_key
from models.cache_entry import CacheEntry


@pytest.fixture
def cache(session_factory):
    return CacheService(session_factory)


def test_build_cache_key_is_deterministic():
    key = build_cache_key("metrics:campaign", 42, "daily", start="2024-01-01", end="2024-01-31")
    same = build_cache_key("metrics:campaign", 42, "daily", end="2024-01-31", start="2024-01-01")

    assert key == same == "metrics:campaign:42:daily:end=2024-01-31:start=2024-01-01"
    assert build_cache_key("campaigns", 7, status=None) == "campaigns:7"


@pytest.mark.asyncio
async def test_get_missing_key_is_miss(cache):
    assert await cache.get("nope") is MISS


@pytest.mark.asyncio
async def test_set_then_get_counts_hits(cache, session_factory):
    await cache.set("k1", {"points": [1, 2]}, ttl_seconds=60)

    assert await cache.get("k1") == {"points": [1, 2]}
    assert await cache.get("k1") == {"points": [1, 2]}

    async with session_factory() as session:
        entry = (await session.execute(select(CacheEntry).where(CacheEntry.cache_key == "k1"))).scalar_one()
    assert entry.hit_count == 2
    assert entry.last_accessed_at is not None


@pytest.mark.asyncio
async def test_cached_empty_list_is_not_a_miss(cache):
    await cache.set("empty", [], ttl_seconds=60)
    result = await cache.get("empty")
    assert result is not MISS
    assert result == []


@pytest.mark.asyncio
async def test_expired_entry_is_miss_and_deleted(cache, session_factory):
    """ttl=1s; reading 2s later is a miss and removes the row"""
    written_at = datetime(2024, 1, 15, 10, 0, 0)

    with patch("core.timeutils.utcnow", return_value=written_at):
        await cache.set("short", {"v": 1}, ttl_seconds=1)
        assert await cache.get("short") == {"v": 1}

    with patch("core.timeutils.utcnow", return_value=written_at + timedelta(seconds=2)):
        assert await cache.get("short") is MISS

    async with session_factory() as session:
        rows = (await session.execute(select(CacheEntry))).scalars().all()
    assert rows == []


@pytest.mark.asyncio
async def test_set_overwrites_and_resets_hits(cache, session_factory):
    await cache.set("k", "old", ttl_seconds=60)
    await cache.get("k")
    await cache.set("k", "new", ttl_seconds=60)

    assert await cache.get("k") == "new"
    async with session_factory() as session:
        entry = (await session.execute(select(CacheEntry))).scalar_one()
    assert entry.hit_count == 1


@pytest.mark.asyncio
async def test_invalidation(cache):
    await cache.set("metrics:campaign:1:daily", [1], resource_type="account", resource_id=1)
    await cache.set("metrics:campaign:2:daily", [2], resource_type="account", resource_id=1)
    await cache.set("metrics:ad:9:hourly", [3], resource_type="account", resource_id=2)
    await cache.set("report:100%", [4])

    assert await cache.invalidate_by_resource("account", 1) == 2
    assert await cache.get("metrics:ad:9:hourly") == [3]

    # Pattern is a literal substring, not a LIKE expression
    assert await cache.invalidate_by_pattern("100%") == 1
    assert await cache.delete("metrics:ad:9:hourly") == 1
    assert (await cache.get_stats()).total_entries == 0


@pytest.mark.asyncio
async def test_cleanup_and_stats(cache):
    now = datetime(2024, 1, 15, 10, 0, 0)
    with patch("core.timeutils.utcnow", return_value=now):
        await cache.set("stale", 1, ttl_seconds=10)
        await cache.set("fresh", 2, ttl_seconds=3600)
        await cache.get("fresh")
        await cache.get("fresh")

    with patch("core.timeutils.utcnow", return_value=now + timedelta(minutes=5)):
        assert await cache.cleanup() == 1
        stats = await cache.get_stats()

    assert stats.total_entries == 1
    assert stats.total_hits == 2
    assert stats.top_keys[0].key == "fresh"


@pytest.mark.asyncio
async def test_storage_errors_degrade_to_miss():
    def broken_factory():
        raise OSError("disk gone")

    cache = CacheService(broken_factory)

    assert await cache.get("k") is MISS
    assert await cache.set("k", 1) is False
    assert await cache.invalidate_by_pattern("k") == 0
    assert (await cache.get_stats()).total_entries == 0


@pytest.mark.asyncio
async def test_storage_errors_are_logged_as_cache_errors(caplog):
    def broken_factory():
        raise OSError("disk gone")

    with caplog.at_level("ERROR", logger="core.cache"):
        await CacheService(broken_factory).get("metrics:campaign:1")

    record = caplog.records[-1]
    assert record.error_context["error_type"] == "CacheError"
    assert record.error_context["context"]["cache_key"] == "metrics:campaign:1"
    assert "disk gone" in record.error_context["original_error"]
