from datetime import timedelta
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import select

from src.commerce.application.commands import (
    CancelPurchase,
    CreatePurchase,
    PurchaseLine,
    ReceiveOverride,
    ReceivePurchase,
    RecordPayment,
)
from src.commerce.domain.enums import InventoryStatus, PaymentMethod, PaymentStatus, PurchaseStatus
from src.commerce.infrastructure.models import InventoryBatch, Supplier
from src.shared.exceptions import StateConflictError, ValidationError


def _order(seeded, *, batch_number="LOT-9", quantity=100, price="10", paid="0", method=None, free=0):
    line = PurchaseLine(
        medicine_id=seeded["medicine"].id,
        batch_number=batch_number,
        quantity=quantity,
        free_quantity=free,
        purchase_price=Decimal(price),
        selling_price=Decimal("12.00"),
        mrp=Decimal("13.00"),
        expiry_date=seeded["today"] + timedelta(days=400),
    )
    return CreatePurchase(
        supplier_id=seeded["supplier"].id,
        items=(line,),
        amount_paid=Decimal(paid),
        payment_method=method,
    )


async def _supplier(tenant_session, supplier_id) -> Supplier:
    async with tenant_session() as session:
        return await session.get(Supplier, supplier_id)


@pytest.mark.asyncio
async def test_order_receive_and_settle(engine, actor, seeded, tenant_session):
    purchase = await engine.create_purchase(actor, _order(seeded, paid="400", method=PaymentMethod.CASH))
    assert purchase.purchase_order_number == f"PO-{seeded['today']:%Y%m%d}-0001"
    assert purchase.grand_total == Decimal("1000.00")
    assert purchase.due_amount == Decimal("600.00")
    assert purchase.payment_status == PaymentStatus.PARTIAL
    assert purchase.status == PurchaseStatus.ORDERED

    supplier = await _supplier(tenant_session, seeded["supplier"].id)
    assert supplier.current_due == Decimal("600.00")
    assert supplier.total_purchases == Decimal("1000.00")

    received = await engine.receive_purchase(actor, ReceivePurchase(purchase_id=purchase.id))
    assert received.status == PurchaseStatus.RECEIVED
    assert received.received_by == "user-1"

    async with tenant_session() as session:
        batch = await session.scalar(select(InventoryBatch).where(InventoryBatch.batch_number == "LOT-9"))
    assert batch.quantity == 100
    assert batch.selling_price == Decimal("12.00")
    assert batch.status == InventoryStatus.ACTIVE

    paid = await engine.record_payment(
        actor, RecordPayment(purchase_id=purchase.id, amount=Decimal("600"), method=PaymentMethod.CARD)
    )
    assert paid.payment_status == PaymentStatus.PAID
    assert paid.status == PurchaseStatus.COMPLETED
    assert paid.due_amount == Decimal("0.00")
    assert len(paid.payments) == 2
    assert (await _supplier(tenant_session, seeded["supplier"].id)).current_due == Decimal("0.00")

    with pytest.raises(StateConflictError) as exc:
        await engine.record_payment(
            actor, RecordPayment(purchase_id=purchase.id, amount=Decimal("1"), method=PaymentMethod.CASH)
        )
    assert exc.value.code == "purchase_already_paid"


@pytest.mark.asyncio
async def test_receiving_twice_is_a_conflict(engine, actor, seeded):
    purchase = await engine.create_purchase(actor, _order(seeded))
    await engine.receive_purchase(actor, ReceivePurchase(purchase_id=purchase.id))
    with pytest.raises(StateConflictError) as exc:
        await engine.receive_purchase(actor, ReceivePurchase(purchase_id=purchase.id))
    assert exc.value.code == "purchase_not_receivable"


@pytest.mark.asyncio
async def test_receipt_merges_into_existing_batch(engine, actor, seeded, tenant_session):
    purchase = await engine.create_purchase(actor, _order(seeded, batch_number="B1", quantity=20, free=2))
    override = ReceiveOverride(medicine_id=seeded["medicine"].id, batch_number="B1", quantity_received=15)
    received = await engine.receive_purchase(actor, ReceivePurchase(purchase_id=purchase.id, items=(override,)))

    item = received.items[0]
    assert (item.received_quantity, item.received_free_quantity) == (15, 2)
    assert item.total == Decimal("150.00")
    async with tenant_session() as session:
        batch = await session.get(InventoryBatch, seeded["batch"].id)
    assert batch.quantity == 10 + 15 + 2
    assert batch.purchase_price == Decimal("10.00")


@pytest.mark.asyncio
async def test_unknown_receive_override_is_rejected(engine, actor, seeded):
    purchase = await engine.create_purchase(actor, _order(seeded))
    stray = ReceiveOverride(medicine_id=uuid4(), batch_number="LOT-9", quantity_received=1)
    with pytest.raises(ValidationError) as exc:
        await engine.receive_purchase(actor, ReceivePurchase(purchase_id=purchase.id, items=(stray,)))
    assert set(exc.value.errors) == {"items.0"}


@pytest.mark.asyncio
async def test_overpayment_is_rejected(engine, actor, seeded):
    purchase = await engine.create_purchase(actor, _order(seeded, paid="900", method=PaymentMethod.CASH))
    with pytest.raises(ValidationError) as exc:
        await engine.record_payment(
            actor, RecordPayment(purchase_id=purchase.id, amount=Decimal("100.01"), method=PaymentMethod.CASH)
        )
    assert exc.value.code == "due_exceeded"


@pytest.mark.asyncio
async def test_cancel_reverses_supplier_totals(engine, actor, seeded, tenant_session):
    purchase = await engine.create_purchase(actor, _order(seeded, paid="250", method=PaymentMethod.CASH))
    cancelled = await engine.cancel_purchase(actor, CancelPurchase(purchase_id=purchase.id, reason="wrong supplier"))

    assert cancelled.status == PurchaseStatus.CANCELLED
    assert cancelled.payment_status == PaymentStatus.PENDING
    assert "Cancelled: wrong supplier" in cancelled.notes
    supplier = await _supplier(tenant_session, seeded["supplier"].id)
    assert supplier.current_due == Decimal("0.00")
    assert supplier.total_purchases == Decimal("0.00")

    with pytest.raises(StateConflictError) as exc:
        await engine.receive_purchase(actor, ReceivePurchase(purchase_id=purchase.id))
    assert exc.value.code == "purchase_cancelled"
    with pytest.raises(StateConflictError) as exc:
        await engine.cancel_purchase(actor, CancelPurchase(purchase_id=purchase.id))
    assert exc.value.code == "purchase_already_cancelled"


@pytest.mark.asyncio
async def test_received_order_cannot_be_cancelled(engine, actor, seeded):
    purchase = await engine.create_purchase(actor, _order(seeded))
    await engine.receive_purchase(actor, ReceivePurchase(purchase_id=purchase.id))
    with pytest.raises(StateConflictError) as exc:
        await engine.cancel_purchase(actor, CancelPurchase(purchase_id=purchase.id))
    assert exc.value.code == "purchase_not_cancellable"


@pytest.mark.asyncio
async def test_duplicate_batch_lines_are_rejected(engine, actor, seeded):
    order = _order(seeded)
    with pytest.raises(ValidationError) as exc:
        await engine.create_purchase(actor, CreatePurchase(supplier_id=order.supplier_id, items=order.items * 2))
    assert exc.value.code == "duplicate_batch"


@pytest.mark.asyncio
async def test_inactive_supplier_cannot_take_orders(engine, actor, seeded, tenant_session):
    async with tenant_session() as session:
        async with session.begin():
            (await session.get(Supplier, seeded["supplier"].id)).is_active = False
    with pytest.raises(ValidationError) as exc:
        await engine.create_purchase(actor, _order(seeded))
    assert exc.value.code == "supplier_inactive"
