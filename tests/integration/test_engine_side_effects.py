from datetime import timedelta
from decimal import Decimal

import pytest

from src.commerce.application.commands import CreatePurchase, CreateSale, PurchaseLine, ReceivePurchase, SaleLine
from src.commerce.domain.cache_keys import CacheKeys
from src.commerce.domain.enums import PaymentMethod
from src.commerce.infrastructure.models import InventoryBatch
from src.shared.exceptions import ValidationError


@pytest.fixture
def events(sink, tenant_id):
    received = []
    sink.subscribe(tenant_id, lambda event, payload: received.append((event, payload)))
    return received


def _sale(seeded, quantity=2, paid="100"):
    line = SaleLine(medicine_id=seeded["medicine"].id, batch_id=seeded["batch"].id, quantity=quantity)
    return CreateSale(items=(line,), payment_method=PaymentMethod.CASH, amount_paid=Decimal(paid))


@pytest.mark.asyncio
async def test_sale_notifies_after_commit(engine, actor, seeded, events, background):
    sale = await engine.create_sale(actor, _sale(seeded))
    await background.drain()
    assert events == [
        ("sale-created", {"invoiceNumber": sale.invoice_number, "grandTotal": "100.00"}),
        ("inventory-updated", None),
    ]


@pytest.mark.asyncio
async def test_rejected_sale_emits_nothing(engine, actor, seeded, events, background):
    with pytest.raises(ValidationError):
        await engine.create_sale(actor, _sale(seeded, quantity=50, paid="5000"))
    await background.drain()
    assert events == []


@pytest.mark.asyncio
async def test_other_tenants_hear_nothing(engine, actor, seeded, sink, background):
    heard = []
    sink.subscribe("another-pharmacy", lambda event, payload: heard.append(event))
    await engine.create_sale(actor, _sale(seeded))
    await background.drain()
    assert heard == []


@pytest.mark.asyncio
async def test_sale_invalidates_cached_reads(engine, actor, seeded, tenant_id, cache_backend):
    before = await engine.todays_sales_summary(tenant_id)
    assert before.data["totalOrders"] == 0
    await engine.search_medicines(tenant_id, "napa")
    await engine.inventory_summary(tenant_id)
    assert cache_backend.keys()

    await engine.create_sale(actor, _sale(seeded))

    live = [k for k in cache_backend.keys() if not k.startswith("cache:stats:")]
    assert live == []
    after = await engine.todays_sales_summary(tenant_id)
    assert not after.from_cache
    assert after.data["totalOrders"] == 1
    assert after.data["totalSales"] == "100.00"


@pytest.mark.asyncio
async def test_cached_summary_served_until_invalidated(engine, tenant_id, seeded, cache):
    first = await engine.inventory_summary(tenant_id)
    second = await engine.inventory_summary(tenant_id)
    assert not first.from_cache and second.from_cache
    assert second.data["unitsInStock"] == 10
    assert await cache.stats(tenant_id, "inventory:summary") == {"hit": 1, "miss": 1, "refresh": 0}


@pytest.mark.asyncio
async def test_search_returns_sellable_batches(engine, tenant_id, seeded):
    result = await engine.search_medicines(tenant_id, "  PARACET ")
    [medicine] = result.data
    assert medicine["name"] == "Napa 500"
    assert medicine["totalStock"] == 10
    assert [b["batchNumber"] for b in medicine["batches"]] == ["B1"]
    assert (await engine.search_medicines(tenant_id, "paracet")).from_cache


@pytest.mark.asyncio
async def test_stock_alerts_after_large_sale(engine, actor, seeded, tenant_id):
    await engine.create_sale(actor, _sale(seeded, quantity=8, paid="400"))
    alerts = await engine.stock_alerts(tenant_id)
    assert [a["batchNumber"] for a in alerts["lowStock"]] == ["B1"]
    assert alerts["expiring"] == []


@pytest.mark.asyncio
async def test_purchase_events(engine, actor, seeded, events, background):
    line = PurchaseLine(
        medicine_id=seeded["medicine"].id,
        batch_number="LOT-1",
        quantity=10,
        purchase_price=Decimal("10"),
        selling_price=Decimal("12"),
        mrp=Decimal("13"),
        expiry_date=seeded["today"] + timedelta(days=730),
    )
    purchase = await engine.create_purchase(actor, CreatePurchase(supplier_id=seeded["supplier"].id, items=(line,)))
    await engine.receive_purchase(actor, ReceivePurchase(purchase_id=purchase.id))
    await background.drain()

    assert [e for e, _ in events] == ["purchase-created", "purchase-received", "inventory-updated"]
    created = events[0][1]
    assert created["supplier"] == {"id": str(seeded["supplier"].id), "name": "Square Pharma Ltd"}
    assert events[1][1]["status"] == "received"


@pytest.mark.asyncio
async def test_every_key_is_tenant_scoped(engine, tenant_id, seeded, cache_backend):
    await engine.todays_sales_summary(tenant_id)
    assert CacheKeys.sales_today(tenant_id) in cache_backend.keys()
    assert CacheKeys.sales_today("another-pharmacy") not in cache_backend.keys()


@pytest.mark.asyncio
async def test_batch_expiring_today_is_not_sellable(engine, seeded, tenant_id, tenant_session):
    async with tenant_session() as session:
        async with session.begin():
            session.add(
                InventoryBatch(
                    medicine_id=seeded["medicine"].id,
                    batch_number="OLD-1",
                    quantity=4,
                    initial_quantity=4,
                    expiry_date=seeded["today"],
                    purchase_price=Decimal("30.00"),
                    mrp=Decimal("55.00"),
                    selling_price=Decimal("50.00"),
                )
            )

    [medicine] = (await engine.search_medicines(tenant_id, "napa")).data
    assert [b["batchNumber"] for b in medicine["batches"]] == ["B1"]

    alerts = await engine.stock_alerts(tenant_id)
    assert [(a["batchNumber"], a["expired"]) for a in alerts["expiring"]] == [("OLD-1", True)]
