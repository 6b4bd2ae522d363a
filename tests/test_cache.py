"""Tests for the multi-level cache."""

import asyncio

import pytest

from inphrone.services.cache import CacheLevel, MultiLevelCache


def _cache():
    return MultiLevelCache(hot_ttl=60, warm_ttl=300, cold_ttl=3600)


@pytest.mark.asyncio
async def test_concurrent_callers_load_once():
    """Test that parallel misses share one load and leave no lock behind."""
    cache = _cache()
    calls = []

    async def loader():
        calls.append(1)
        await asyncio.sleep(0.01)
        return {"total": 3}

    results = await asyncio.gather(*(cache.get_or_set("results", loader) for _ in range(5)))

    assert results == [{"total": 3}] * 5
    assert len(calls) == 1
    assert cache._locks == {}
    assert cache._lock_users == {}


@pytest.mark.asyncio
async def test_locks_do_not_accumulate_across_keys():
    """Test that each distinct key's lock is dropped once its load finishes."""
    cache = _cache()

    async def loader():
        return "value"

    for day in range(30):
        await cache.get_or_set(f"inphrosync:2025-01-{day + 1:02d}:results", loader, CacheLevel.WARM)

    assert cache._locks == {}
    assert cache.stats()[CacheLevel.WARM]["size"] == 30


@pytest.mark.asyncio
async def test_failed_load_releases_lock():
    """Test that a loader error propagates, caches nothing and frees the key."""
    cache = _cache()

    async def broken():
        raise RuntimeError("database unavailable")

    async def loader():
        return 7

    with pytest.raises(RuntimeError):
        await cache.get_or_set("counts", broken)

    assert cache._locks == {}
    assert cache.get("counts") is None
    assert await cache.get_or_set("counts", loader) == 7
