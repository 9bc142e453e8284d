from decimal import Decimal

import pytest

from src.shared.infrastructure.cache.memory_cache import MemoryCache


class Clock:
    now = 0.0

    def __call__(self) -> float:
        return self.now


@pytest.mark.asyncio
async def test_values_come_back_json_shaped():
    cache = MemoryCache()
    await cache.set("k", {"total": Decimal("12.50"), "tags": ("a",)})
    assert await cache.get("k") == {"total": "12.50", "tags": ["a"]}


@pytest.mark.asyncio
async def test_ttl_expires_entries():
    clock = Clock()
    cache = MemoryCache(clock=clock)
    await cache.set("k", 1, ttl=10)
    clock.now = 9.9
    assert await cache.get("k") == 1
    clock.now = 10
    assert await cache.get("k") is None


@pytest.mark.asyncio
async def test_increment_and_delete():
    cache = MemoryCache()
    assert await cache.increment("n") == 1
    assert await cache.increment("n", 2) == 3
    assert await cache.delete("n", "missing") == 1
    assert await cache.get("n") is None


@pytest.mark.asyncio
async def test_delete_pattern_is_glob():
    cache = MemoryCache()
    for key in ("alerts:expiry:t1", "alerts:lowstock:t1", "sales:today:t1"):
        await cache.set(key, True)
    assert await cache.delete_pattern("alerts:*") == 2
    assert cache.keys() == ["sales:today:t1"]
