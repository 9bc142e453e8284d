"""
Application context: the explicitly constructed object graph shared by every
request (connection router, cache, notification sink, background runner and
the commerce engine). Built once per process, started and stopped by the app
lifespan.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from fastapi import Request

from src.commerce.application.engine import CommerceEngine
from src.shared.config import Settings, get_settings
from src.shared.infrastructure.cache.cache_protocol import ICacheProvider
from src.shared.infrastructure.cache.memory_cache import MemoryCache
from src.shared.infrastructure.cache.redis_cache import RedisCache
from src.shared.infrastructure.cache.swr import CacheLayer
from src.shared.infrastructure.messaging.notification_sink import NotificationSink
from src.shared.logging import get_logger
from src.shared.utils.background import BackgroundTaskRunner
from src.tenancy.application.tenant_directory import TenantDirectory
from src.tenancy.infrastructure.connection_router import TenantConnectionRouter
from src.workers.connection_sweeper import IdleConnectionSweeper

logger = get_logger(__name__)


def build_cache_backend(settings: Settings) -> ICacheProvider:
    if settings.redis_url:
        return RedisCache.from_url(settings.redis_url, key_prefix=settings.cache_key_prefix)
    logger.info("No REDIS_URL configured, using in-process cache")
    return MemoryCache()


@dataclass
class AppContext:
    settings: Settings
    router: TenantConnectionRouter
    background: BackgroundTaskRunner
    cache_backend: ICacheProvider
    cache: CacheLayer
    sink: NotificationSink
    engine: CommerceEngine
    directory: TenantDirectory
    sweeper: IdleConnectionSweeper

    @classmethod
    def build(cls, settings: Optional[Settings] = None, *, cache_backend: Optional[ICacheProvider] = None) -> "AppContext":
        settings = settings or get_settings()
        router = TenantConnectionRouter(settings)
        background = BackgroundTaskRunner(settings.cache_background_concurrency)
        backend = cache_backend or build_cache_backend(settings)
        cache = CacheLayer(backend, background)
        sink = NotificationSink(background)
        return cls(
            settings=settings,
            router=router,
            background=background,
            cache_backend=backend,
            cache=cache,
            sink=sink,
            engine=CommerceEngine(router, cache, sink, settings),
            directory=TenantDirectory(router),
            sweeper=IdleConnectionSweeper(router),
        )

    async def startup(self) -> None:
        await self.router.connect_admin()
        self.sweeper.start()
        logger.info("Application context started", environment=self.settings.environment)

    async def shutdown(self) -> None:
        await self.sweeper.shutdown()
        await self.background.close()
        await self.router.close_all()
        await self.cache_backend.close()
        logger.info("Application context stopped")


def get_app_context(request: Request) -> AppContext:
    return request.app.state.context


def get_engine(request: Request) -> CommerceEngine:
    return get_app_context(request).engine
