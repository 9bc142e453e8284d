from src.shared.logging import get_logger
from src.tenancy.infrastructure.connection_router import TenantConnectionRouter
from src.workers.base_worker import BaseWorker

logger = get_logger(__name__)


class IdleConnectionSweeper(BaseWorker):
    """Evicts tenant partition connections that have been idle too long."""

    def __init__(self, router: TenantConnectionRouter, interval: float | None = None) -> None:
        super().__init__(
            "idle_connection_sweeper",
            interval=interval if interval is not None else router.settings.tenant_sweep_interval_seconds,
        )
        self.router = router

    async def execute(self) -> bool:
        evicted = await self.router.sweep_idle_connections()
        if evicted:
            logger.info("Sweep evicted idle tenants", count=len(evicted))
        return True
