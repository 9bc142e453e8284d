from __future__ import annotations

import asyncio
from typing import Any, Dict, Optional

import sqlalchemy as sa
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from src.shared.config import Settings
from src.shared.logging import get_logger

logger = get_logger(__name__)


def backend_name(url: str) -> str:
    return make_url(url).get_backend_name()


def isolation_level_for(url: str, settings: Settings) -> str:
    """SQLite has no REPEATABLE READ; its only transactional level is SERIALIZABLE."""
    if backend_name(url) == "sqlite":
        return "SERIALIZABLE"
    return settings.transaction_isolation_level


def _connect_args(url: str, settings: Settings, application_name: str) -> Dict[str, Any]:
    if backend_name(url) == "postgresql":
        return {
            # asyncpg: connection establishment vs. per-statement bounds
            "timeout": settings.connect_timeout_seconds,
            "command_timeout": settings.socket_timeout_seconds,
            "server_settings": {
                "application_name": application_name,
                "statement_timeout": str(settings.socket_timeout_seconds * 1000),
            },
        }
    # sqlite: busy timeout while another connection holds the write lock
    return {"timeout": settings.socket_timeout_seconds}


def create_partition_engine(url: str, settings: Settings, *, application_name: str) -> AsyncEngine:
    """
    Build an async engine for one partition with bounded pool and timeouts.
    Pool sizing: `tenant_pool_min_size` persistent connections, growing up to
    `tenant_pool_max_size` under load.
    """
    kwargs: Dict[str, Any] = {
        "echo": settings.debug and not settings.is_prod,
        "pool_pre_ping": True,
        "isolation_level": isolation_level_for(url, settings),
        "connect_args": _connect_args(url, settings, application_name),
    }
    if settings.is_testing:
        kwargs["poolclass"] = NullPool
    else:
        kwargs.update(
            pool_size=max(settings.tenant_pool_min_size, 1),
            max_overflow=max(settings.tenant_pool_max_size - settings.tenant_pool_min_size, 0),
            pool_timeout=settings.pool_timeout_seconds,
            pool_recycle=settings.pool_recycle_seconds,
        )
    return create_async_engine(url, **kwargs)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=True,
    )


async def verify_connectivity(engine: AsyncEngine, *, timeout: float) -> None:
    """Smoke test bounded by the server-selection timeout."""

    async def _ping() -> None:
        async with engine.connect() as conn:
            await conn.execute(sa.text("SELECT 1"))

    await asyncio.wait_for(_ping(), timeout=timeout)


async def create_schema(engine: AsyncEngine, metadata: sa.MetaData) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)


async def dispose_engine(engine: Optional[AsyncEngine], *, label: str) -> None:
    if engine is None:
        return
    try:
        await engine.dispose()
        logger.info("Database engine disposed", partition=label)
    except Exception as e:
        logger.warning("Database engine dispose failed", partition=label, error=str(e))
