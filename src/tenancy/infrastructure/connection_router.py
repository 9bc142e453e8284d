"""
Tenant Connection Router

Owns the admin partition connection and a registry of per-tenant partition
connections. Tenant connections are created lazily on first use, refreshed on
every access, and reclaimed once idle.

Registry rules:
- get-or-create is single-flight per tenant (one asyncio.Lock per tenant id),
  so a burst of first requests never opens two engines for one tenant
- a disconnect reported by the driver deregisters the handle; the next call
  builds a fresh one and the dead engine is disposed by the next sweep
"""
from __future__ import annotations

import asyncio
import re
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

import sqlalchemy as sa
from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from src.shared.config import Settings
from src.shared.database.base_model import AdminBase, TenantBase
from src.shared.database.engine import (
    backend_name,
    create_partition_engine,
    create_schema,
    create_session_factory,
    dispose_engine,
    verify_connectivity,
)
from src.shared.exceptions import ConnectivityError, NotConnectedError, ValidationError
from src.shared.logging import get_logger
from src.shared.model_loader import import_all_models

logger = get_logger(__name__)

EngineFactory = Callable[[str, Settings, str], AsyncEngine]

TENANT_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,48}$")
ADMIN_LABEL = "admin"


def _default_engine_factory(url: str, settings: Settings, application_name: str) -> AsyncEngine:
    return create_partition_engine(url, settings, application_name=application_name)


@dataclass
class PartitionConnection:
    """Process-local handle to one partition; never persisted."""

    label: str
    database_name: str
    engine: AsyncEngine
    session_factory: async_sessionmaker[AsyncSession]
    created_at: float
    last_accessed: float
    healthy: bool = True
    listeners: List[Callable] = field(default_factory=list)

    def touch(self, now: float) -> None:
        self.last_accessed = now

    def session(self) -> AsyncSession:
        return self.session_factory()


class TenantConnectionRouter:
    def __init__(
        self,
        settings: Settings,
        *,
        engine_factory: Optional[EngineFactory] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.settings = settings
        self._engine_factory = engine_factory or _default_engine_factory
        self._clock = clock
        self._admin: Optional[PartitionConnection] = None
        self._admin_lock = asyncio.Lock()
        self._tenants: Dict[str, PartitionConnection] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._retired: List[PartitionConnection] = []
        import_all_models()

    # ------------------------------------------------------------------ addressing

    def database_name_for(self, tenant_id: str) -> str:
        if not isinstance(tenant_id, str) or not TENANT_ID_PATTERN.match(tenant_id):
            raise ValidationError(
                {"tenantId": "Tenant id must be 1-48 letters, digits, '-' or '_'"},
                code="invalid_tenant_id",
            )
        return f"{self.settings.tenant_database_prefix}{tenant_id}"

    def tenant_url_for(self, tenant_id: str) -> str:
        return self.settings.tenant_database_url_template.format(database=self.database_name_for(tenant_id))

    # ------------------------------------------------------------------ admin

    async def connect_admin(self) -> PartitionConnection:
        async with self._admin_lock:
            if self._admin is not None and self._admin.healthy:
                return self._admin
            url = self.settings.admin_database_url
            self._admin = await self._open(
                label=ADMIN_LABEL,
                url=url,
                database_name=make_url(url).database or ADMIN_LABEL,
                metadata=AdminBase.metadata,
            )
            logger.info("Admin partition connected", database=self._admin.database_name)
            return self._admin

    def get_admin_connection(self) -> PartitionConnection:
        if self._admin is None or not self._admin.healthy:
            raise NotConnectedError("Admin partition is not connected")
        self._admin.touch(self._clock())
        return self._admin

    # ------------------------------------------------------------------ tenants

    async def get_tenant_connection(self, tenant_id: str) -> PartitionConnection:
        database_name = self.database_name_for(tenant_id)
        handle = self._tenants.get(tenant_id)
        if handle is not None and handle.healthy:
            handle.touch(self._clock())
            return handle

        lock = await self._acquire_tenant_lock(tenant_id)
        try:
            handle = self._tenants.get(tenant_id)
            if handle is not None and handle.healthy:
                handle.touch(self._clock())
                return handle
            if handle is not None:
                self._retire(tenant_id, handle)

            handle = await self._open(
                label=tenant_id,
                url=self.tenant_url_for(tenant_id),
                database_name=database_name,
                metadata=TenantBase.metadata,
            )
            self._tenants[tenant_id] = handle
            logger.info(
                "Tenant partition connected",
                tenant_id=tenant_id,
                database=database_name,
                active_connections=len(self._tenants),
            )
            return handle
        finally:
            lock.release()

    async def close_tenant_connection(self, tenant_id: str, *, idle_before: Optional[float] = None) -> bool:
        """
        Idempotent; returns True when a live entry was closed. With `idle_before`
        the entry is only closed if it has not been touched since that instant.
        """
        lock = await self._acquire_tenant_lock(tenant_id)
        try:
            handle = self._tenants.get(tenant_id)
            if handle is None:
                return False
            if idle_before is not None and handle.last_accessed >= idle_before:
                return False
            del self._tenants[tenant_id]
            # waiters on this lock see it is gone and queue on a fresh one
            if self._locks.get(tenant_id) is lock:
                del self._locks[tenant_id]
            handle.healthy = False
            await self._dispose(handle)
            logger.info("Tenant partition closed", tenant_id=tenant_id)
            return True
        finally:
            lock.release()

    async def provision_partition(self, tenant_id: str) -> PartitionConnection:
        """
        Ensure the tenant's database and schema exist. PostgreSQL databases are
        created through the admin connection; SQLite files appear on connect.
        """
        url = self.tenant_url_for(tenant_id)
        if backend_name(url) == "postgresql":
            await self._create_postgres_database(self.database_name_for(tenant_id))
        return await self.get_tenant_connection(tenant_id)

    async def _create_postgres_database(self, database_name: str) -> None:
        admin = self.get_admin_connection()
        autocommit = admin.engine.execution_options(isolation_level="AUTOCOMMIT")
        async with autocommit.connect() as conn:
            exists = await conn.scalar(
                sa.text("SELECT 1 FROM pg_database WHERE datname = :name"), {"name": database_name}
            )
            if not exists:
                # name is derived from a validated tenant id, safe to quote directly
                await conn.execute(sa.text(f'CREATE DATABASE "{database_name}"'))
                logger.info("Tenant database created", database=database_name)

    # ------------------------------------------------------------------ reclamation

    async def sweep_idle_connections(self) -> List[str]:
        """Close tenant connections idle past the threshold; returns evicted ids."""
        idle_before = self._clock() - self.settings.tenant_idle_timeout_seconds
        evicted: List[str] = []
        for tenant_id, handle in list(self._tenants.items()):
            if handle.last_accessed < idle_before:
                # re-checked under the tenant lock; a request may touch it meanwhile
                if await self.close_tenant_connection(tenant_id, idle_before=idle_before):
                    evicted.append(tenant_id)

        retired, self._retired = self._retired, []
        for handle in retired:
            await self._dispose(handle)

        if evicted:
            logger.info("Idle tenant connections evicted", tenant_ids=evicted, remaining=len(self._tenants))
        return evicted

    async def close_all(self) -> None:
        for tenant_id in list(self._tenants):
            await self.close_tenant_connection(tenant_id)
        retired, self._retired = self._retired, []
        for handle in retired:
            await self._dispose(handle)
        if self._admin is not None:
            admin, self._admin = self._admin, None
            admin.healthy = False
            await self._dispose(admin)
        self._locks.clear()
        logger.info("All partition connections closed")

    def get_stats(self) -> Dict[str, object]:
        return {
            "admin_connected": self._admin is not None and self._admin.healthy,
            "tenant_connections_count": len(self._tenants),
            "tenant_ids": sorted(self._tenants),
        }

    # ------------------------------------------------------------------ internals

    async def _open(
        self,
        *,
        label: str,
        url: str,
        database_name: str,
        metadata: sa.MetaData,
    ) -> PartitionConnection:
        application_name = f"pharmacy-{label}"
        engine = self._engine_factory(url, self.settings, application_name)
        try:
            await verify_connectivity(engine, timeout=self.settings.connect_timeout_seconds)
            if self.settings.tenant_auto_create_schema:
                await create_schema(engine, metadata)
        except Exception as e:
            await dispose_engine(engine, label=label)
            logger.error("Partition connection failed", partition=label, database=database_name, error=str(e))
            raise ConnectivityError(
                f"Could not connect to partition {database_name}",
                details={"partition": label},
            ) from e

        now = self._clock()
        handle = PartitionConnection(
            label=label,
            database_name=database_name,
            engine=engine,
            session_factory=create_session_factory(engine),
            created_at=now,
            last_accessed=now,
        )
        listener = self._disconnect_listener(handle)
        event.listen(engine.sync_engine, "handle_error", listener)
        handle.listeners.append(listener)
        return handle

    def _disconnect_listener(self, handle: PartitionConnection) -> Callable:
        def _on_error(context) -> None:
            if not context.is_disconnect or not handle.healthy:
                return
            logger.warning("Partition connection lost", partition=handle.label)
            if handle is self._admin:
                handle.healthy = False
                self._retired.append(handle)
                self._admin = None
            else:
                self._retire(handle.label, handle)

        return _on_error

    async def _acquire_tenant_lock(self, tenant_id: str) -> asyncio.Lock:
        while True:
            lock = self._locks.setdefault(tenant_id, asyncio.Lock())
            await lock.acquire()
            if self._locks.get(tenant_id) is lock:
                return lock
            lock.release()

    def _retire(self, tenant_id: str, handle: PartitionConnection) -> None:
        handle.healthy = False
        if self._tenants.get(tenant_id) is handle:
            del self._tenants[tenant_id]
        if handle not in self._retired:
            self._retired.append(handle)

    async def _dispose(self, handle: PartitionConnection) -> None:
        for listener in handle.listeners:
            if event.contains(handle.engine.sync_engine, "handle_error", listener):
                event.remove(handle.engine.sync_engine, "handle_error", listener)
        handle.listeners.clear()
        await dispose_engine(handle.engine, label=handle.label)
