"""Opt-in checks against real services: set TEST_REDIS_URL / TEST_DATABASE_URL."""
import asyncio
from datetime import date
from uuid import uuid4

import pytest

from src.commerce.infrastructure.sequence_counter import SALE_SCOPE, SequenceCounterService
from src.shared.config import Settings
from src.shared.infrastructure.cache.redis_cache import RedisCache
from src.tenancy.infrastructure.connection_router import TenantConnectionRouter


@pytest.mark.redis
@pytest.mark.asyncio
async def test_redis_cache_contract(redis_url):
    cache = RedisCache.from_url(redis_url, key_prefix=f"test-{uuid4().hex[:8]}")
    try:
        assert await cache.ping()
        await cache.set("medicines:search:t1:a", {"n": 1}, ttl=30)
        await cache.set("medicines:search:t1:b", {"n": 2}, ttl=30)
        assert await cache.get("medicines:search:t1:a") == {"n": 1}
        assert await cache.increment("cache:stats:t1:x:hit") == 1
        assert await cache.delete_pattern("medicines:search:t1:*") == 2
        assert await cache.get("medicines:search:t1:b") is None
        await cache.delete("cache:stats:t1:x:hit")
    finally:
        await cache.close()


@pytest.mark.postgres
@pytest.mark.asyncio
async def test_postgres_partitions_and_counter(postgres_url):
    base = postgres_url.rsplit("/", 1)[0]
    settings = Settings(
        is_testing=True,
        admin_database_url=postgres_url,
        tenant_database_url_template=f"{base}/{{database}}",
    )
    router = TenantConnectionRouter(settings)
    await router.connect_admin()
    try:
        tenant_id = f"pg{uuid4().hex[:10]}"
        connection = await router.provision_partition(tenant_id)
        counter = SequenceCounterService()
        day = date(2026, 1, 1)
        issued = await asyncio.gather(
            *(counter.issue(connection.session_factory, SALE_SCOPE, day) for _ in range(10))
        )
        assert sorted(issued) == list(range(1, 11))
    finally:
        await router.close_all()
