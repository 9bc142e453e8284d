# src/commerce/application/services/purchase_service.py
"""
Purchase order lifecycle.

    ORDERED --receive--> RECEIVED (due > 0) --pay in full--> COMPLETED
    ORDERED --receive--> COMPLETED (nothing due)
    ORDERED --cancel---> CANCELLED

Every change to a purchase's grand total or due amount is mirrored on the
supplier's running aggregates in the same transaction.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional, Set, Tuple
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.commerce.application.commands import (
    ActorContext,
    CancelPurchase,
    CreatePurchase,
    ReceiveOverride,
    ReceivePurchase,
    RecordPayment,
)
from src.commerce.domain.enums import PaymentStatus, PurchaseStatus
from src.commerce.domain.rules import ZERO, format_purchase_order_number, money
from src.commerce.infrastructure import daily_summary
from src.commerce.infrastructure.models import (
    InventoryBatch,
    Medicine,
    Purchase,
    PurchaseItem,
    PurchasePayment,
    Supplier,
)
from src.commerce.infrastructure.sequence_counter import PURCHASE_SCOPE, SequenceCounterService
from src.shared.exceptions import NotFoundError, StateConflictError, ValidationError
from src.shared.logging import get_logger
from src.shared.utils.parsers import FieldErrors

logger = get_logger(__name__)

PURCHASE_TAX = ZERO


def _append_note(existing: Optional[str], line: str) -> str:
    return f"{existing}\n{line}" if existing else line


@dataclass
class PurchaseService:
    sequences: SequenceCounterService

    # ------------ Helpers -----------------------------------------------------
    @staticmethod
    async def _load_purchase(session: AsyncSession, purchase_id: UUID) -> Purchase:
        purchase = await session.get(Purchase, purchase_id, with_for_update=True)
        if purchase is None:
            raise NotFoundError("Purchase order not found", code="purchase_not_found", details={"purchaseId": str(purchase_id)})
        return purchase

    @staticmethod
    async def _load_supplier(session: AsyncSession, supplier_id: UUID) -> Supplier:
        supplier = await session.get(Supplier, supplier_id, with_for_update=True)
        if supplier is None:
            raise NotFoundError("Supplier not found", code="supplier_not_found", details={"supplierId": str(supplier_id)})
        return supplier

    # ------------ Commands ----------------------------------------------------
    async def create_purchase(
        self, session: AsyncSession, actor: ActorContext, command: CreatePurchase, now: datetime
    ) -> Tuple[Purchase, Supplier]:
        if not command.items:
            raise ValidationError({"items": "At least one medicine is required"})

        supplier = await self._load_supplier(session, command.supplier_id)
        if not supplier.is_active:
            raise ValidationError({"supplierId": "Supplier is inactive"}, code="supplier_inactive")

        errors = FieldErrors(context="purchase")
        seen: Set[Tuple[UUID, str]] = set()
        for index, line in enumerate(command.items):
            key = (line.medicine_id, line.batch_number)
            if key in seen:
                raise ValidationError(
                    {f"items.{index}.batchNumber": f"Duplicate batch number {line.batch_number} for the same medicine"},
                    code="duplicate_batch",
                )
            seen.add(key)
            if line.quantity <= 0:
                errors.add(f"items.{index}.quantity", "Quantity must be greater than zero")
            if line.free_quantity < 0:
                errors.add(f"items.{index}.freeQuantity", "Free quantity cannot be negative")
            for name in ("purchase_price", "selling_price", "mrp"):
                if getattr(line, name) < 0:
                    errors.add(f"items.{index}.{name}", f"{name.replace('_', ' ').capitalize()} cannot be negative")
        errors.raise_if_any()

        items: List[PurchaseItem] = []
        subtotal = ZERO
        for index, line in enumerate(command.items):
            medicine = await session.get(Medicine, line.medicine_id)
            if medicine is None:
                raise NotFoundError(
                    "Medicine not found", code="medicine_not_found", details={"medicineId": str(line.medicine_id)}
                )
            total = money(line.purchase_price * line.quantity)
            subtotal += total
            items.append(
                PurchaseItem(
                    line_index=index,
                    medicine_id=medicine.id,
                    medicine_name=medicine.name,
                    batch_number=line.batch_number,
                    quantity=line.quantity,
                    free_quantity=line.free_quantity,
                    purchase_price=line.purchase_price,
                    selling_price=line.selling_price,
                    mrp=line.mrp,
                    expiry_date=line.expiry_date,
                    alert_threshold=line.alert_threshold,
                    total=total,
                    notes=line.notes,
                )
            )

        subtotal = money(subtotal)
        if command.discount > subtotal:
            raise ValidationError({"discount": "Discount cannot exceed subtotal"})
        grand_total = money(subtotal - command.discount + PURCHASE_TAX)
        if grand_total < 0:
            raise ValidationError({"grandTotal": "Grand total cannot be negative"})
        if command.amount_paid > grand_total:
            raise ValidationError({"amountPaid": "Amount paid cannot exceed grand total"})
        if command.amount_paid > 0 and command.payment_method is None:
            raise ValidationError({"paymentMethod": "Payment method is required when an amount is paid"})

        order_date = command.order_date or now
        sequence = await self.sequences.next(session, PURCHASE_SCOPE, now.date())
        purchase = Purchase(
            purchase_order_number=format_purchase_order_number(now.date(), sequence),
            supplier_id=supplier.id,
            order_date=order_date,
            expected_delivery_date=command.expected_delivery_date,
            status=PurchaseStatus.ORDERED,
            subtotal=subtotal,
            discount=command.discount,
            tax=PURCHASE_TAX,
            grand_total=grand_total,
            amount_paid=command.amount_paid,
            payment_method=command.payment_method,
            notes=command.notes,
            created_by=actor.actor_id,
            items=items,
            payments=[],
        )
        purchase.apply_payment_totals()
        if command.amount_paid > 0:
            purchase.payments.append(
                PurchasePayment(
                    amount=command.amount_paid,
                    method=command.payment_method,
                    paid_at=order_date,
                    note="Initial payment",
                    recorded_by=actor.actor_id,
                )
            )
        session.add(purchase)

        supplier.total_purchases = money(supplier.total_purchases + grand_total)
        supplier.current_due = money(supplier.current_due + purchase.due_amount)
        supplier.last_purchase_date = order_date

        await session.flush()
        logger.info(
            "Purchase order created",
            purchase_order_number=purchase.purchase_order_number,
            supplier_id=str(supplier.id),
            grand_total=str(grand_total),
            payment_status=purchase.payment_status.value,
        )
        return purchase, supplier

    async def receive_purchase(
        self, session: AsyncSession, actor: ActorContext, command: ReceivePurchase, now: datetime
    ) -> Purchase:
        purchase = await self._load_purchase(session, command.purchase_id)
        if purchase.status == PurchaseStatus.CANCELLED:
            raise StateConflictError(
                "Cannot receive a cancelled purchase order", code="purchase_cancelled", details={"purchaseId": str(purchase.id)}
            )
        if purchase.status in (PurchaseStatus.RECEIVED, PurchaseStatus.COMPLETED):
            raise StateConflictError(
                "Purchase already received", code="purchase_not_receivable", details={"purchaseId": str(purchase.id)}
            )

        overrides: Dict[Tuple[UUID, str], ReceiveOverride] = {o.key: o for o in command.items}
        lines = {(item.medicine_id, item.batch_number): item for item in purchase.items}
        unknown = [f"items.{i}" for i, o in enumerate(command.items) if o.key not in lines]
        if unknown:
            raise ValidationError({k: "Item does not match any line of this purchase order" for k in unknown})

        for item in purchase.items:
            override = overrides.get((item.medicine_id, item.batch_number))
            self._apply_override(item, override)

        received_at = command.received_date or now
        for item in purchase.items:
            received = item.received_quantity + item.received_free_quantity
            if received <= 0:
                continue
            batch = await session.scalar(
                select(InventoryBatch)
                .where(InventoryBatch.medicine_id == item.medicine_id, InventoryBatch.batch_number == item.batch_number)
                .with_for_update()
            )
            if batch is None:
                batch = InventoryBatch(
                    medicine_id=item.medicine_id,
                    batch_number=item.batch_number,
                    quantity=0,
                    initial_quantity=0,
                )
                session.add(batch)
            # latest receipt wins for pricing and dates
            batch.quantity += received
            batch.initial_quantity += received
            batch.purchase_price = item.purchase_price
            batch.mrp = item.mrp
            batch.selling_price = item.selling_price
            batch.expiry_date = item.expiry_date
            batch.alert_threshold = item.alert_threshold
            batch.supplier_id = purchase.supplier_id
            batch.purchase_date = received_at.date()
            batch.refresh_status(now)

        purchase.status = PurchaseStatus.RECEIVED if purchase.due_amount > 0 else PurchaseStatus.COMPLETED
        purchase.received_date = received_at
        purchase.received_by = actor.actor_id
        if command.notes:
            purchase.notes = command.notes

        supplier = await self._load_supplier(session, purchase.supplier_id)
        supplier.last_purchase_date = received_at
        await daily_summary.record_purchase(session, received_at.date(), amount=purchase.grand_total)

        await session.flush()
        logger.info(
            "Purchase order received",
            purchase_order_number=purchase.purchase_order_number,
            status=purchase.status.value,
            lines=len(purchase.items),
        )
        return purchase

    @staticmethod
    def _apply_override(item: PurchaseItem, override: Optional[ReceiveOverride]) -> None:
        received = item.quantity
        free = item.free_quantity or 0
        if override is not None:
            if override.quantity_received is not None:
                received = override.quantity_received
            if override.free_quantity_received is not None:
                free = override.free_quantity_received
            for name in ("purchase_price", "selling_price", "mrp", "expiry_date", "alert_threshold", "notes"):
                value = getattr(override, name)
                if value is not None:
                    setattr(item, name, value)
        item.received_quantity = received
        item.received_free_quantity = free
        item.total = money(received * item.purchase_price)

    async def record_payment(
        self, session: AsyncSession, actor: ActorContext, command: RecordPayment, now: datetime
    ) -> Purchase:
        if command.amount <= 0:
            raise ValidationError({"amount": "Amount must be at least 0.01"})
        if command.method is None:
            raise ValidationError({"paymentMethod": "Payment method is required"})

        purchase = await self._load_purchase(session, command.purchase_id)
        if purchase.status == PurchaseStatus.CANCELLED:
            raise StateConflictError(
                "Cannot add payment to a cancelled purchase", code="purchase_cancelled", details={"purchaseId": str(purchase.id)}
            )
        if purchase.payment_status == PaymentStatus.PAID or purchase.due_amount <= 0:
            raise StateConflictError(
                "Purchase is already fully paid", code="purchase_already_paid", details={"purchaseId": str(purchase.id)}
            )
        if command.amount > purchase.due_amount:
            raise ValidationError(
                {"amount": f"Payment exceeds remaining due amount ({purchase.due_amount})"}, code="due_exceeded"
            )

        purchase.payments.append(
            PurchasePayment(
                amount=command.amount,
                method=command.method,
                paid_at=command.paid_at or now,
                reference=command.reference,
                note=command.note,
                recorded_by=actor.actor_id,
            )
        )
        purchase.amount_paid = money(purchase.amount_paid + command.amount)
        purchase.payment_method = command.method
        purchase.apply_payment_totals()
        if purchase.status == PurchaseStatus.RECEIVED and purchase.payment_status == PaymentStatus.PAID:
            purchase.status = PurchaseStatus.COMPLETED

        supplier = await self._load_supplier(session, purchase.supplier_id)
        supplier.current_due = money(supplier.current_due - command.amount)

        await session.flush()
        logger.info(
            "Purchase payment recorded",
            purchase_order_number=purchase.purchase_order_number,
            amount=str(command.amount),
            due_amount=str(purchase.due_amount),
            status=purchase.status.value,
        )
        return purchase

    async def cancel_purchase(
        self, session: AsyncSession, actor: ActorContext, command: CancelPurchase, now: datetime
    ) -> Purchase:
        purchase = await self._load_purchase(session, command.purchase_id)
        if purchase.status == PurchaseStatus.CANCELLED:
            raise StateConflictError(
                "Purchase already cancelled", code="purchase_already_cancelled", details={"purchaseId": str(purchase.id)}
            )
        if purchase.status in (PurchaseStatus.RECEIVED, PurchaseStatus.COMPLETED):
            raise StateConflictError(
                "Cannot cancel a received purchase order", code="purchase_not_cancellable", details={"purchaseId": str(purchase.id)}
            )

        supplier = await self._load_supplier(session, purchase.supplier_id)
        supplier.current_due = money(supplier.current_due - purchase.due_amount)
        supplier.total_purchases = money(supplier.total_purchases - purchase.grand_total)

        purchase.status = PurchaseStatus.CANCELLED
        purchase.payment_status = PaymentStatus.PENDING
        if command.reason:
            purchase.notes = _append_note(purchase.notes, f"Cancelled: {command.reason}")

        await session.flush()
        logger.info(
            "Purchase order cancelled",
            purchase_order_number=purchase.purchase_order_number,
            actor_id=actor.actor_id,
        )
        return purchase
