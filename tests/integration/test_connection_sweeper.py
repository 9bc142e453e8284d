import asyncio

import pytest

from src.tenancy.infrastructure.connection_router import TenantConnectionRouter
from src.workers.connection_sweeper import IdleConnectionSweeper


class Clock:
    now = 0.0

    def __call__(self) -> float:
        return self.now


@pytest.mark.asyncio
async def test_sweeper_evicts_on_its_interval(settings):
    clock = Clock()
    router = TenantConnectionRouter(settings, clock=clock)
    await router.connect_admin()
    try:
        await router.get_tenant_connection("sleepy")
        clock.now = settings.tenant_idle_timeout_seconds + 1

        sweeper = IdleConnectionSweeper(router, interval=0.01)
        sweeper.start()
        for _ in range(100):
            if not router.get_stats()["tenant_ids"]:
                break
            await asyncio.sleep(0.01)
        await sweeper.shutdown()

        assert router.get_stats()["tenant_ids"] == []
        assert not sweeper.is_running
    finally:
        await router.close_all()


@pytest.mark.asyncio
async def test_shutdown_before_first_tick(router):
    sweeper = IdleConnectionSweeper(router, interval=60)
    sweeper.start()
    await sweeper.shutdown()
    assert router.get_stats()["admin_connected"]
