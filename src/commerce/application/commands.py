"""
Command objects handed to the commerce engine.

All values are already normalized (see mappers): money is Decimal with two
places, dates are timezone-aware UTC, ids are UUIDs.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import FrozenSet, Optional, Tuple
from uuid import UUID

from src.commerce.domain.enums import PaymentMethod, SaleType


@dataclass(frozen=True)
class ActorContext:
    """Trusted identity of the caller; authentication happens upstream."""
    tenant_id: str
    actor_id: str
    role: str = "cashier"
    permissions: FrozenSet[str] = field(default_factory=frozenset)


# ------------ Sales -----------------------------------------------------------


@dataclass(frozen=True)
class SaleLine:
    medicine_id: UUID
    batch_id: UUID
    quantity: int
    selling_price: Optional[Decimal] = None
    discount: Decimal = Decimal("0.00")


@dataclass(frozen=True)
class CreateSale:
    items: Tuple[SaleLine, ...]
    payment_method: PaymentMethod
    amount_paid: Decimal
    total_discount: Decimal = Decimal("0.00")
    sale_type: SaleType = SaleType.RETAIL
    customer_id: Optional[UUID] = None
    prescription_id: Optional[str] = None
    counter_id: Optional[UUID] = None
    notes: Optional[str] = None


@dataclass(frozen=True)
class ReturnLine:
    line_index: int
    quantity: int


@dataclass(frozen=True)
class ReturnSale:
    sale_id: UUID
    items: Tuple[ReturnLine, ...]
    reason: Optional[str] = None


# ------------ Purchases -------------------------------------------------------


@dataclass(frozen=True)
class PurchaseLine:
    medicine_id: UUID
    batch_number: str
    quantity: int
    purchase_price: Decimal
    selling_price: Decimal
    mrp: Decimal
    expiry_date: date
    free_quantity: int = 0
    alert_threshold: int = 10
    notes: Optional[str] = None


@dataclass(frozen=True)
class CreatePurchase:
    supplier_id: UUID
    items: Tuple[PurchaseLine, ...]
    order_date: Optional[datetime] = None
    expected_delivery_date: Optional[datetime] = None
    discount: Decimal = Decimal("0.00")
    amount_paid: Decimal = Decimal("0.00")
    payment_method: Optional[PaymentMethod] = None
    notes: Optional[str] = None


@dataclass(frozen=True)
class ReceiveOverride:
    """Per-line receipt correction, matched on (medicine_id, batch_number)."""
    medicine_id: UUID
    batch_number: str
    quantity_received: Optional[int] = None
    free_quantity_received: Optional[int] = None
    purchase_price: Optional[Decimal] = None
    selling_price: Optional[Decimal] = None
    mrp: Optional[Decimal] = None
    expiry_date: Optional[date] = None
    alert_threshold: Optional[int] = None
    notes: Optional[str] = None

    @property
    def key(self) -> Tuple[UUID, str]:
        return (self.medicine_id, self.batch_number)


@dataclass(frozen=True)
class ReceivePurchase:
    purchase_id: UUID
    received_date: Optional[datetime] = None
    items: Tuple[ReceiveOverride, ...] = ()
    notes: Optional[str] = None


@dataclass(frozen=True)
class RecordPayment:
    purchase_id: UUID
    amount: Decimal
    method: PaymentMethod
    paid_at: Optional[datetime] = None
    reference: Optional[str] = None
    note: Optional[str] = None


@dataclass(frozen=True)
class CancelPurchase:
    purchase_id: UUID
    reason: Optional[str] = None
