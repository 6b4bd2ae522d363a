"""Tiered read cache for poll aggregates and dashboard counters."""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Dict, Optional

from cachetools import TTLCache

from inphrone.core.constants import CacheDefaults


class CacheLevel:
    """Cache level names."""
    HOT = "hot"
    WARM = "warm"
    COLD = "cold"


class MultiLevelCache:
    """Three TTL tiers sharing one key space.

    Hot holds data that changes with every vote (today's poll results),
    warm holds day-scoped aggregates (yesterday's insights) and cold holds
    reference data (categories).
    """

    def __init__(
        self,
        hot_ttl: int,
        warm_ttl: int,
        cold_ttl: int,
        hot_size: int = CacheDefaults.HOT_SIZE,
        warm_size: int = CacheDefaults.WARM_SIZE,
        cold_size: int = CacheDefaults.COLD_SIZE,
    ) -> None:
        self._tiers: Dict[str, TTLCache] = {
            CacheLevel.HOT: TTLCache(maxsize=hot_size, ttl=hot_ttl),
            CacheLevel.WARM: TTLCache(maxsize=warm_size, ttl=warm_ttl),
            CacheLevel.COLD: TTLCache(maxsize=cold_size, ttl=cold_ttl),
        }
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}

    def _tier(self, level: str) -> TTLCache:
        try:
            return self._tiers[level]
        except KeyError:
            raise ValueError(f"Unknown cache level: {level}") from None

    def get(self, key: str, level: str = CacheLevel.HOT) -> Optional[Any]:
        return self._tier(level).get(key)

    def set(self, key: str, value: Any, level: str = CacheLevel.HOT) -> None:
        self._tier(level)[key] = value

    async def get_or_set(
        self,
        key: str,
        loader: Callable[[], Awaitable[Any]],
        level: str = CacheLevel.HOT,
    ) -> Any:
        """Return the cached value or load it once, even under concurrent callers."""
        cache = self._tier(level)
        if key in cache:
            return cache[key]

        lock = self._locks.setdefault(key, asyncio.Lock())
        self._lock_users[key] = self._lock_users.get(key, 0) + 1
        try:
            async with lock:
                if key in cache:
                    return cache[key]
                value = await loader()
                cache[key] = value
                return value
        finally:
            # Last caller out drops the lock so the map only holds keys being loaded.
            users = self._lock_users.pop(key, 1) - 1
            if users:
                self._lock_users[key] = users
            elif self._locks.get(key) is lock:
                del self._locks[key]

    def invalidate(self, key: str) -> None:
        for cache in self._tiers.values():
            cache.pop(key, None)

    def invalidate_prefix(self, prefix: str) -> int:
        """Drop every key starting with ``prefix``. Returns how many were dropped."""
        count = 0
        for cache in self._tiers.values():
            for key in [k for k in cache if k.startswith(prefix)]:
                cache.pop(key, None)
                count += 1
        return count

    def clear(self) -> None:
        for cache in self._tiers.values():
            cache.clear()

    def stats(self) -> Dict[str, Dict[str, Any]]:
        return {
            level: {"size": len(cache), "maxsize": cache.maxsize, "ttl": cache.ttl}
            for level, cache in self._tiers.items()
        }


def init_cache(hot_ttl: int, warm_ttl: int, cold_ttl: int) -> MultiLevelCache:
    return MultiLevelCache(hot_ttl=hot_ttl, warm_ttl=warm_ttl, cold_ttl=cold_ttl)
