import asyncio

import pytest

from src.shared.infrastructure.cache.memory_cache import MemoryCache
from src.shared.infrastructure.cache.swr import CacheLayer, build_hash
from src.shared.utils.background import BackgroundTaskRunner


class Clock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class CountingLoader:
    def __init__(self, *values, fail_after: int | None = None) -> None:
        self.values = list(values)
        self.calls = 0
        self.fail_after = fail_after

    async def __call__(self):
        self.calls += 1
        if self.fail_after is not None and self.calls > self.fail_after:
            raise RuntimeError("upstream down")
        return self.values[min(self.calls - 1, len(self.values) - 1)]


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
async def runner():
    r = BackgroundTaskRunner(max_concurrency=2)
    yield r
    await r.close(cancel=True)


@pytest.fixture
def layer(clock, runner):
    return CacheLayer(MemoryCache(clock=clock), runner, clock=clock)


@pytest.mark.asyncio
async def test_miss_loads_and_stores(layer):
    loader = CountingLoader({"total": 1})
    result = await layer.fetch("k", loader, ttl=100, stale_after=50)
    assert result.data == {"total": 1}
    assert not result.from_cache
    assert loader.calls == 1


@pytest.mark.asyncio
async def test_fresh_hit_does_not_reload(layer, clock):
    loader = CountingLoader("v1", "v2")
    await layer.fetch("k", loader, ttl=100, stale_after=50)
    clock.now = 40
    result = await layer.fetch("k", loader, ttl=100, stale_after=50)
    assert result.data == "v1"
    assert result.from_cache and not result.is_revalidating
    assert loader.calls == 1


@pytest.mark.asyncio
async def test_stale_hit_serves_old_value_and_refreshes_once(layer, clock, runner):
    loader = CountingLoader("v1", "v2")
    await layer.fetch("k", loader, ttl=100, stale_after=50)
    clock.now = 60

    result = await layer.fetch("k", loader, ttl=100, stale_after=50)
    assert result.data == "v1"
    assert result.is_revalidating

    await runner.drain()
    assert loader.calls == 2

    after = await layer.fetch("k", loader, ttl=100, stale_after=50)
    assert after.data == "v2"
    assert not after.is_revalidating


@pytest.mark.asyncio
async def test_concurrent_stale_reads_share_one_refresh(layer, clock, runner):
    loader = CountingLoader("v1", "v2")
    await layer.fetch("k", loader, ttl=100, stale_after=50)
    clock.now = 70

    results = await asyncio.gather(*(layer.fetch("k", loader, ttl=100, stale_after=50) for _ in range(5)))
    await runner.drain()

    assert all(r.data == "v1" for r in results)
    assert loader.calls == 2


@pytest.mark.asyncio
async def test_failed_refresh_keeps_old_value(layer, clock, runner):
    loader = CountingLoader("v1", fail_after=1)
    await layer.fetch("k", loader, ttl=100, stale_after=50)
    clock.now = 60

    result = await layer.fetch("k", loader, ttl=100, stale_after=50)
    await runner.drain()

    assert result.data == "v1"
    assert (await layer.fetch("k", loader, ttl=100, stale_after=50)).data == "v1"


@pytest.mark.asyncio
async def test_hard_expiry_reloads(layer, clock):
    loader = CountingLoader("v1", "v2")
    await layer.fetch("k", loader, ttl=100, stale_after=50)
    clock.now = 101
    result = await layer.fetch("k", loader, ttl=100, stale_after=50)
    assert result.data == "v2"
    assert not result.from_cache


@pytest.mark.asyncio
async def test_stats_count_hits_and_misses(layer):
    loader = CountingLoader(1)
    for _ in range(3):
        await layer.fetch("k", loader, ttl=100, tenant_id="t1", tag="sales:today")
    stats = await layer.stats("t1", "sales:today")
    assert stats == {"hit": 2, "miss": 1, "refresh": 0}


@pytest.mark.asyncio
async def test_on_fresh_failure_is_ignored(layer):
    def explode(_):
        raise RuntimeError("push failed")

    result = await layer.fetch("k", CountingLoader(5), ttl=100, on_fresh=explode)
    assert result.data == 5


@pytest.mark.asyncio
async def test_invalidate_patterns(layer):
    for key in ("medicines:search:t1:a", "medicines:search:t1:b", "medicines:search:t2:a"):
        await layer.fetch(key, CountingLoader([]), ttl=100)
    await layer.invalidate_patterns(["medicines:search:t1:*"])
    assert layer.backend.keys() == ["medicines:search:t2:a"]


def test_build_hash_ignores_key_order():
    assert build_hash({"q": "napa", "limit": 20}) == build_hash({"limit": 20, "q": "napa"})
    assert build_hash({"q": "napa"}) != build_hash({"q": "ace"})
    assert "=" not in build_hash({"q": "x"})
