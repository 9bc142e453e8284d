import os
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from src.commerce.application.commands import ActorContext
from src.commerce.application.engine import CommerceEngine
from src.commerce.domain.enums import CounterStatus
from src.commerce.infrastructure.models import Counter, Customer, InventoryBatch, Medicine, Supplier
from src.shared.config import Settings
from src.shared.infrastructure.cache.memory_cache import MemoryCache
from src.shared.infrastructure.cache.swr import CacheLayer
from src.shared.infrastructure.messaging.notification_sink import NotificationSink
from src.shared.utils.background import BackgroundTaskRunner
from src.tenancy.infrastructure.connection_router import TenantConnectionRouter

TENANT = "acme-pharmacy"


class FakeClock:
    """Manually advanced clock, in seconds."""

    def __init__(self, start: float = 1_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def postgres_url() -> str:
    url = os.getenv("TEST_DATABASE_URL")
    if not url:
        pytest.skip("TEST_DATABASE_URL not set; skipping DB-dependent tests")
    return url


@pytest.fixture
def redis_url() -> str:
    url = os.getenv("TEST_REDIS_URL")
    if not url:
        pytest.skip("TEST_REDIS_URL not set; skipping Redis-dependent tests")
    return url


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        environment="local",
        is_testing=True,
        admin_database_url=f"sqlite+aiosqlite:///{tmp_path}/admin.db",
        tenant_database_url_template=f"sqlite+aiosqlite:///{tmp_path}/{{database}}.db",
        transaction_retry_base_ms=0,
        transaction_retry_jitter_ms=0,
        log_format="console",
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
async def router(settings):
    r = TenantConnectionRouter(settings)
    await r.connect_admin()
    yield r
    await r.close_all()


@pytest.fixture
async def background():
    runner = BackgroundTaskRunner(max_concurrency=4)
    yield runner
    await runner.close(cancel=True)


@pytest.fixture
def cache_backend(clock) -> MemoryCache:
    return MemoryCache(clock=clock)


@pytest.fixture
def cache(cache_backend, background, clock) -> CacheLayer:
    return CacheLayer(cache_backend, background, clock=clock)


@pytest.fixture
def sink(background) -> NotificationSink:
    return NotificationSink(background)


@pytest.fixture
def engine(router, cache, sink, settings) -> CommerceEngine:
    return CommerceEngine(router, cache, sink, settings)


@pytest.fixture
def tenant_id() -> str:
    return TENANT


@pytest.fixture
def actor() -> ActorContext:
    return ActorContext(tenant_id=TENANT, actor_id="user-1", role="cashier")


@pytest.fixture
async def tenant_session(router):
    """Session factory for the test tenant's partition, for seeding and assertions."""
    connection = await router.get_tenant_connection(TENANT)
    return connection.session_factory


@pytest.fixture
async def seeded(tenant_session):
    """One medicine with a 10-unit batch at 50.00, an active counter, a customer and a supplier."""
    today = datetime.now(timezone.utc).date()
    async with tenant_session() as session:
        async with session.begin():
            medicine = Medicine(name="Napa 500", generic_name="Paracetamol", unit="strip")
            supplier = Supplier(company_name="Square Pharma Ltd")
            customer = Customer(name="Rahim", phone="01700000000")
            counter = Counter(name="Front", status=CounterStatus.ACTIVE, is_default=True)
            session.add_all([medicine, supplier, customer, counter])
            await session.flush()
            batch = InventoryBatch(
                medicine_id=medicine.id,
                batch_number="B1",
                quantity=10,
                initial_quantity=10,
                expiry_date=today + timedelta(days=365),
                purchase_price=Decimal("35.00"),
                mrp=Decimal("55.00"),
                selling_price=Decimal("50.00"),
                supplier_id=supplier.id,
            )
            session.add(batch)
    return {
        "medicine": medicine,
        "batch": batch,
        "supplier": supplier,
        "customer": customer,
        "counter": counter,
        "today": today,
    }
