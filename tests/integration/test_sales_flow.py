from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import select

from src.commerce.application.commands import CreateSale, ReturnLine, ReturnSale, SaleLine
from src.commerce.domain.enums import CounterStatus, PaymentMethod, SaleStatus
from src.commerce.infrastructure import daily_summary
from src.commerce.infrastructure.models import Counter, Customer, InventoryBatch, Sale
from src.shared.exceptions import NotFoundError, StateConflictError, ValidationError


def _sale(seeded, quantity, paid, **kwargs):
    line = SaleLine(medicine_id=seeded["medicine"].id, batch_id=seeded["batch"].id, quantity=quantity)
    return CreateSale(items=(line,), payment_method=kwargs.pop("method", PaymentMethod.CASH), amount_paid=Decimal(paid), **kwargs)


async def _batch(tenant_session, batch_id) -> InventoryBatch:
    async with tenant_session() as session:
        return await session.get(InventoryBatch, batch_id)


@pytest.mark.asyncio
async def test_cash_sale_decrements_stock_and_numbers_invoice(engine, actor, seeded, tenant_session):
    sale = await engine.create_sale(actor, _sale(seeded, 3, "150"))

    assert sale.grand_total == Decimal("150.00")
    assert sale.change_returned == Decimal("0.00")
    assert sale.invoice_number == f"INV-{seeded['today']:%Y%m%d}-0001"
    assert sale.counter_id == seeded["counter"].id
    assert sale.sold_by == "user-1"
    assert (await _batch(tenant_session, seeded["batch"].id)).quantity == 7

    second = await engine.create_sale(actor, _sale(seeded, 1, "100"))
    assert second.invoice_number.endswith("-0002")
    assert second.change_returned == Decimal("50.00")


@pytest.mark.asyncio
async def test_insufficient_stock_leaves_batch_untouched(engine, actor, seeded, tenant_session):
    with pytest.raises(ValidationError) as exc:
        await engine.create_sale(actor, _sale(seeded, 11, "1000"))

    assert exc.value.code == "insufficient_stock"
    assert exc.value.errors["items"] == "Insufficient stock for Napa 500. Available: 10"
    assert (await _batch(tenant_session, seeded["batch"].id)).quantity == 10


@pytest.mark.asyncio
async def test_repeated_lines_on_one_batch_are_summed(engine, actor, seeded):
    line = SaleLine(medicine_id=seeded["medicine"].id, batch_id=seeded["batch"].id, quantity=6)
    cmd = CreateSale(items=(line, line), payment_method=PaymentMethod.CASH, amount_paid=Decimal("600"))
    with pytest.raises(ValidationError) as exc:
        await engine.create_sale(actor, cmd)
    assert exc.value.code == "insufficient_stock"


@pytest.mark.asyncio
async def test_underpayment_is_rejected_unless_credit(engine, actor, seeded, tenant_session):
    with pytest.raises(ValidationError) as exc:
        await engine.create_sale(actor, _sale(seeded, 2, "50"))
    assert exc.value.code == "insufficient_payment"

    sale = await engine.create_sale(
        actor, _sale(seeded, 2, "40", method=PaymentMethod.CREDIT, customer_id=seeded["customer"].id)
    )
    assert sale.change_returned == Decimal("0.00")
    async with tenant_session() as session:
        customer = await session.get(Customer, seeded["customer"].id)
    assert customer.due_amount == Decimal("60.00")
    assert customer.total_purchases == Decimal("100.00")
    assert customer.loyalty_points == 1


@pytest.mark.asyncio
async def test_failed_sale_does_not_consume_an_invoice_number(engine, actor, seeded):
    with pytest.raises(ValidationError):
        await engine.create_sale(actor, _sale(seeded, 2, "10"))
    sale = await engine.create_sale(actor, _sale(seeded, 2, "100"))
    assert sale.invoice_number.endswith("-0001")


@pytest.mark.asyncio
async def test_sale_needs_an_active_counter(engine, actor, seeded, tenant_session):
    async with tenant_session() as session:
        async with session.begin():
            for counter in (await session.scalars(select(Counter))).all():
                counter.status = CounterStatus.INACTIVE
    with pytest.raises(ValidationError) as exc:
        await engine.create_sale(actor, _sale(seeded, 1, "50"))
    assert exc.value.code == "no_active_counter"


@pytest.mark.asyncio
async def test_sale_feeds_daily_summary(engine, actor, seeded, tenant_session):
    await engine.create_sale(actor, _sale(seeded, 2, "100"))
    await engine.create_sale(actor, _sale(seeded, 1, "50", method=PaymentMethod.CARD))

    async with tenant_session() as session:
        summary = await daily_summary.get_summary(session, seeded["today"])
    assert summary.total_sales == Decimal("150.00")
    assert summary.order_count == 2
    assert summary.items_sold == 3
    assert summary.cash_sales == Decimal("100.00")
    assert summary.card_sales == Decimal("50.00")


@pytest.mark.asyncio
async def test_partial_then_full_return(engine, actor, seeded, tenant_session):
    sale = await engine.create_sale(actor, _sale(seeded, 5, "250"))

    outcome = await engine.return_sale(actor, ReturnSale(sale_id=sale.id, items=(ReturnLine(0, 2),), reason="damaged"))
    assert outcome.return_amount == Decimal("100.00")
    assert outcome.sale.status == SaleStatus.PARTIAL_RETURN
    assert outcome.sale.grand_total == Decimal("150.00")
    line = outcome.sale.items[0]
    assert (line.quantity, line.returned_quantity, line.total) == (3, 2, Decimal("150.00"))
    assert (await _batch(tenant_session, seeded["batch"].id)).quantity == 7

    with pytest.raises(StateConflictError) as exc:
        await engine.return_sale(actor, ReturnSale(sale_id=sale.id, items=(ReturnLine(0, 4),)))
    assert exc.value.code == "return_exceeds_remaining"

    final = await engine.return_sale(actor, ReturnSale(sale_id=sale.id, items=(ReturnLine(0, 3),)))
    assert final.return_amount == Decimal("150.00")
    assert final.sale.status == SaleStatus.RETURNED
    assert final.sale.grand_total == Decimal("0.00")

    with pytest.raises(StateConflictError) as exc:
        await engine.return_sale(actor, ReturnSale(sale_id=sale.id, items=(ReturnLine(0, 1),)))
    assert exc.value.code == "sale_already_returned"


@pytest.mark.asyncio
async def test_returned_sales_drop_out_of_todays_summary(engine, actor, seeded, tenant_id):
    sale = await engine.create_sale(actor, _sale(seeded, 1, "50"))
    await engine.create_sale(actor, _sale(seeded, 2, "100"))
    await engine.return_sale(actor, ReturnSale(sale_id=sale.id, items=(ReturnLine(0, 1),)))

    summary = (await engine.todays_sales_summary(tenant_id)).data
    assert summary["totalOrders"] == 1
    assert summary["totalSales"] == "100.00"
    assert summary["byPaymentMethod"]["cash"] == "100.00"


@pytest.mark.asyncio
async def test_return_of_unknown_sale_or_line(engine, actor, seeded):
    with pytest.raises(NotFoundError) as exc:
        await engine.return_sale(actor, ReturnSale(sale_id=uuid4(), items=(ReturnLine(0, 1),)))
    assert exc.value.code == "sale_not_found"

    sale = await engine.create_sale(actor, _sale(seeded, 1, "50"))
    with pytest.raises(ValidationError) as exc:
        await engine.return_sale(actor, ReturnSale(sale_id=sale.id, items=(ReturnLine(3, 1),)))
    assert "items.0.lineIndex" in exc.value.errors




@pytest.mark.asyncio
async def test_repeated_return_lines_are_summed_against_remaining(engine, actor, seeded, tenant_session):
    sale = await engine.create_sale(actor, _sale(seeded, 5, "250"))

    with pytest.raises(StateConflictError) as exc:
        await engine.return_sale(actor, ReturnSale(sale_id=sale.id, items=(ReturnLine(0, 3), ReturnLine(0, 3))))
    assert exc.value.code == "return_exceeds_remaining"
    assert exc.value.details["requested"] == 6
    assert (await _batch(tenant_session, seeded["batch"].id)).quantity == 5

    outcome = await engine.return_sale(actor, ReturnSale(sale_id=sale.id, items=(ReturnLine(0, 2), ReturnLine(0, 1))))
    assert outcome.return_amount == Decimal("150.00")
    assert outcome.sale.grand_total == Decimal("100.00")
    assert outcome.sale.status == SaleStatus.PARTIAL_RETURN
    assert (await _batch(tenant_session, seeded["batch"].id)).quantity == 8


@pytest.mark.asyncio
@pytest.mark.parametrize("quantity", [0, -2])
async def test_return_quantity_must_be_positive(engine, actor, seeded, tenant_session, quantity):
    sale = await engine.create_sale(actor, _sale(seeded, 5, "250"))

    with pytest.raises(ValidationError) as exc:
        await engine.return_sale(actor, ReturnSale(sale_id=sale.id, items=(ReturnLine(0, quantity),)))
    assert exc.value.errors["items.0.quantity"] == "Quantity must be at least 1"

    assert (await _batch(tenant_session, seeded["batch"].id)).quantity == 5
    async with tenant_session() as session:
        stored = await session.get(Sale, sale.id)
        assert stored.grand_total == Decimal("250.00")
        assert stored.status == SaleStatus.COMPLETED


@pytest.mark.asyncio
async def test_return_reverses_customer_totals_and_loyalty(engine, actor, seeded, tenant_session):
    sale = await engine.create_sale(actor, _sale(seeded, 5, "250", customer_id=seeded["customer"].id))
    async with tenant_session() as session:
        customer = await session.get(Customer, seeded["customer"].id)
    assert customer.total_purchases == Decimal("250.00")
    assert customer.loyalty_points == 2

    await engine.return_sale(actor, ReturnSale(sale_id=sale.id, items=(ReturnLine(0, 3),)))
    async with tenant_session() as session:
        customer = await session.get(Customer, seeded["customer"].id)
    assert customer.total_purchases == Decimal("100.00")
    assert customer.loyalty_points == 1

    await engine.return_sale(actor, ReturnSale(sale_id=sale.id, items=(ReturnLine(0, 2),)))
    async with tenant_session() as session:
        customer = await session.get(Customer, seeded["customer"].id)
    assert customer.total_purchases == Decimal("0.00")
    assert customer.loyalty_points == 0

@pytest.mark.asyncio
async def test_sale_rows_persist_with_items(engine, actor, seeded, tenant_session):
    sale = await engine.create_sale(actor, _sale(seeded, 2, "100", notes="walk-in"))
    async with tenant_session() as session:
        stored = await session.get(Sale, sale.id)
        assert stored.notes == "walk-in"
        assert [(i.medicine_name, i.batch_number, i.quantity) for i in stored.items] == [("Napa 500", "B1", 2)]
