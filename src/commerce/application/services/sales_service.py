# src/commerce/application/services/sales_service.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.commerce.application.commands import ActorContext, CreateSale, ReturnSale
from src.commerce.domain.enums import CounterStatus, PaymentMethod, SaleStatus
from src.commerce.domain.rules import ZERO, due_amount, format_invoice_number, loyalty_points, money
from src.commerce.infrastructure import daily_summary
from src.commerce.infrastructure.models import Counter, Customer, InventoryBatch, Medicine, Sale, SaleItem
from src.commerce.infrastructure.sequence_counter import SALE_SCOPE, SequenceCounterService
from src.shared.exceptions import NotFoundError, StateConflictError, ValidationError
from src.shared.logging import get_logger

logger = get_logger(__name__)

# reserved for per-tenant tax settings; sales are currently untaxed
SALE_TAX = ZERO


@dataclass(frozen=True)
class SaleReturnOutcome:
    sale: Sale
    return_amount: Decimal


@dataclass
class SalesService:
    """
    Transactional sale closures. Each method runs inside the caller's
    transaction and may be re-run from scratch on a fresh session, so it
    keeps no state between calls.
    """
    sequences: SequenceCounterService

    # ------------ Helpers -----------------------------------------------------
    @staticmethod
    async def _resolve_counter(session: AsyncSession, counter_id: Optional[UUID]) -> Counter:
        if counter_id is not None:
            counter = await session.get(Counter, counter_id)
            if counter is None:
                raise NotFoundError("Counter not found", code="counter_not_found", details={"counterId": str(counter_id)})
            if counter.status != CounterStatus.ACTIVE:
                raise ValidationError({"counterId": "Counter is not active"}, code="no_active_counter")
            return counter

        counter = await session.scalar(
            select(Counter)
            .where(Counter.status == CounterStatus.ACTIVE)
            .order_by(Counter.is_default.desc(), Counter.created_at)
            .limit(1)
        )
        if counter is None:
            raise ValidationError({"counterId": "No active counter is available"}, code="no_active_counter")
        return counter

    # ------------ Commands ----------------------------------------------------
    async def create_sale(
        self, session: AsyncSession, actor: ActorContext, command: CreateSale, now: datetime
    ) -> Sale:
        if not command.items:
            raise ValidationError({"items": "At least one item is required"})
        if command.amount_paid < 0:
            raise ValidationError({"amountPaid": "Amount paid cannot be negative"})

        customer: Optional[Customer] = None
        if command.customer_id is not None:
            customer = await session.get(Customer, command.customer_id)
            if customer is None:
                raise NotFoundError(
                    "Customer not found", code="customer_not_found", details={"customerId": str(command.customer_id)}
                )

        # 1. check every line against stock before touching any batch
        requested: Dict[UUID, int] = {}
        sale_items: List[SaleItem] = []
        batches: Dict[UUID, InventoryBatch] = {}
        subtotal = ZERO
        for index, line in enumerate(command.items):
            batch = batches.get(line.batch_id) or await session.get(InventoryBatch, line.batch_id, with_for_update=True)
            if batch is None:
                raise NotFoundError(
                    "Inventory batch not found", code="batch_not_found", details={"batchId": str(line.batch_id)}
                )
            if batch.medicine_id != line.medicine_id:
                raise ValidationError({f"items.{index}.batchId": "Batch does not belong to the selected medicine"})
            medicine = await session.get(Medicine, line.medicine_id)
            if medicine is None:
                raise NotFoundError(
                    "Medicine not found", code="medicine_not_found", details={"medicineId": str(line.medicine_id)}
                )

            wanted = requested.get(batch.id, 0) + line.quantity
            if batch.quantity < wanted:
                raise ValidationError(
                    {"items": f"Insufficient stock for {medicine.name}. Available: {batch.quantity}"},
                    code="insufficient_stock",
                )
            requested[batch.id] = wanted
            batches[batch.id] = batch

            price = line.selling_price if line.selling_price is not None else batch.selling_price
            item_total = money(price * line.quantity - line.discount)
            if item_total < 0:
                raise ValidationError({f"items.{index}.discount": "Discount exceeds the line amount"})
            subtotal += item_total
            sale_items.append(
                SaleItem(
                    line_index=index,
                    medicine_id=medicine.id,
                    batch_id=batch.id,
                    medicine_name=medicine.name,
                    batch_number=batch.batch_number,
                    mrp=batch.mrp,
                    selling_price=money(price),
                    discount=line.discount,
                    quantity=line.quantity,
                    total=item_total,
                )
            )

        # 2. totals and payment
        subtotal = money(subtotal)
        if command.total_discount > subtotal:
            raise ValidationError({"totalDiscount": "Total discount cannot exceed the subtotal"})
        grand_total = money(subtotal - command.total_discount + SALE_TAX)
        on_credit = command.payment_method == PaymentMethod.CREDIT
        if command.amount_paid < grand_total and not on_credit:
            raise ValidationError(
                {"amountPaid": f"Insufficient payment amount. Grand total: {grand_total}"},
                code="insufficient_payment",
            )
        change_returned = ZERO if on_credit else money(command.amount_paid - grand_total)

        # 3. counter, 4. invoice number
        counter = await self._resolve_counter(session, command.counter_id)
        sale_day = now.date()
        invoice_number = format_invoice_number(sale_day, await self.sequences.next(session, SALE_SCOPE, sale_day))

        # 5. writes
        for batch_id, quantity in requested.items():
            batch = batches[batch_id]
            batch.quantity -= quantity
            batch.refresh_status(now)

        sale = Sale(
            invoice_number=invoice_number,
            sale_date=sale_day,
            customer_id=command.customer_id,
            prescription_id=command.prescription_id,
            counter_id=counter.id,
            sold_by=actor.actor_id,
            sale_type=command.sale_type,
            subtotal=subtotal,
            total_discount=command.total_discount,
            tax=SALE_TAX,
            grand_total=grand_total,
            amount_paid=command.amount_paid,
            change_returned=change_returned,
            payment_method=command.payment_method,
            status=SaleStatus.COMPLETED,
            notes=command.notes,
            items=sale_items,
        )
        session.add(sale)
        counter.last_session_at = now

        if customer is not None:
            customer.total_purchases = money(customer.total_purchases + grand_total)
            customer.loyalty_points += loyalty_points(grand_total)
            if on_credit:
                customer.due_amount = money(customer.due_amount + due_amount(grand_total, command.amount_paid))
            customer.last_purchase_date = now

        await daily_summary.record_sale(
            session,
            sale_day,
            grand_total=grand_total,
            items_sold=sum(requested.values()),
            payment_method=command.payment_method,
        )
        await session.flush()
        logger.info(
            "Sale created",
            invoice_number=invoice_number,
            grand_total=str(grand_total),
            line_count=len(sale_items),
            counter_id=str(counter.id),
        )
        return sale

    async def return_sale(
        self, session: AsyncSession, actor: ActorContext, command: ReturnSale, now: datetime
    ) -> SaleReturnOutcome:
        if not command.items:
            raise ValidationError({"items": "At least one item is required"})

        sale = await session.get(Sale, command.sale_id, with_for_update=True)
        if sale is None:
            raise NotFoundError("Sale not found", code="sale_not_found", details={"saleId": str(command.sale_id)})
        if sale.status == SaleStatus.RETURNED:
            raise StateConflictError(
                "Sale has already been fully returned", code="sale_already_returned", details={"saleId": str(sale.id)}
            )

        lines = {item.line_index: item for item in sale.items}
        errors: Dict[str, str] = {}
        requested: Dict[int, int] = {}
        for position, entry in enumerate(command.items):
            if entry.line_index not in lines:
                errors[f"items.{position}.lineIndex"] = f"Invalid item index: {entry.line_index}"
            elif entry.quantity < 1:
                errors[f"items.{position}.quantity"] = "Quantity must be at least 1"
            else:
                requested[entry.line_index] = requested.get(entry.line_index, 0) + entry.quantity
        if errors:
            raise ValidationError(errors)

        for line_index, quantity in requested.items():
            line = lines[line_index]
            if quantity > line.quantity:
                raise StateConflictError(
                    "Return quantity exceeds the remaining quantity",
                    code="return_exceeds_remaining",
                    details={"lineIndex": line_index, "remaining": line.quantity, "requested": quantity},
                )

        total_return = ZERO
        for line_index, quantity in requested.items():
            line = lines[line_index]
            batch = await session.get(InventoryBatch, line.batch_id, with_for_update=True)
            if batch is None:
                raise NotFoundError("Inventory batch not found", code="batch_not_found", details={"batchId": str(line.batch_id)})
            batch.quantity += quantity
            batch.refresh_status(now)

            if quantity == line.quantity:
                # the last units give back exactly what is left, no rounding residue
                return_amount = line.total
            else:
                return_amount = money(line.total / line.quantity * quantity)
            line.quantity -= quantity
            line.returned_quantity += quantity
            line.total = money(line.total - return_amount)
            total_return += return_amount

        total_return = money(total_return)
        sale.status = SaleStatus.RETURNED if all(i.quantity == 0 for i in sale.items) else SaleStatus.PARTIAL_RETURN
        sale.grand_total = money(sale.grand_total - total_return)
        if command.reason:
            sale.notes = f"{sale.notes}\nReturn: {command.reason}" if sale.notes else f"Return: {command.reason}"

        if sale.customer_id is not None:
            customer = await session.get(Customer, sale.customer_id)
            if customer is not None:
                customer.total_purchases = money(customer.total_purchases - total_return)
                customer.loyalty_points = max(0, customer.loyalty_points - loyalty_points(total_return))

        await session.flush()
        logger.info(
            "Sale returned",
            invoice_number=sale.invoice_number,
            return_amount=str(total_return),
            status=sale.status.value,
            actor_id=actor.actor_id,
        )
        return SaleReturnOutcome(sale=sale, return_amount=total_return)
