"""
Tenant partition models. Every tenant database carries this full schema.
"""
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from sqlalchemy import Boolean, Enum as SAEnum, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.commerce.domain.enums import (
    CounterStatus,
    InventoryStatus,
    PaymentMethod,
    PaymentStatus,
    PurchaseStatus,
    SaleStatus,
    SaleType,
)
from src.commerce.domain.rules import compute_batch_status, due_amount, resolve_payment_status
from src.shared.database.base_model import TenantBase, TimestampMixin, UUIDPrimaryKeyMixin, utcnow

ZERO = Decimal("0.00")


def _enum(enum_cls, name: str) -> SAEnum:
    return SAEnum(enum_cls, name=name, native_enum=False, values_callable=lambda e: [m.value for m in e])


# --------------------------------------------------------------------------- catalog


class Medicine(UUIDPrimaryKeyMixin, TimestampMixin, TenantBase):
    __tablename__ = "medicines"

    name: Mapped[str] = mapped_column(String(200), index=True)
    generic_name: Mapped[Optional[str]] = mapped_column(String(200), index=True)
    manufacturer: Mapped[Optional[str]] = mapped_column(String(200))
    category: Mapped[Optional[str]] = mapped_column(String(100))
    strength: Mapped[Optional[str]] = mapped_column(String(50))
    unit: Mapped[str] = mapped_column(String(30), default="piece")
    barcode: Mapped[Optional[str]] = mapped_column(String(64), unique=True)
    min_stock_level: Mapped[int] = mapped_column(Integer, default=10)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)


class InventoryBatch(UUIDPrimaryKeyMixin, TimestampMixin, TenantBase):
    __tablename__ = "inventory_batches"
    __table_args__ = (UniqueConstraint("medicine_id", "batch_number", name="uq_batches_medicine_batch"),)

    medicine_id: Mapped[UUID] = mapped_column(ForeignKey("medicines.id"), index=True)
    batch_number: Mapped[str] = mapped_column(String(64))
    quantity: Mapped[int] = mapped_column(Integer, default=0)
    initial_quantity: Mapped[int] = mapped_column(Integer, default=0)
    expiry_date: Mapped[date] = mapped_column(index=True)
    purchase_price: Mapped[Decimal] = mapped_column(default=ZERO)
    mrp: Mapped[Decimal] = mapped_column(default=ZERO)
    selling_price: Mapped[Decimal] = mapped_column(default=ZERO)
    status: Mapped[InventoryStatus] = mapped_column(
        _enum(InventoryStatus, "inventory_status"), default=InventoryStatus.ACTIVE
    )
    alert_threshold: Mapped[int] = mapped_column(Integer, default=10)
    supplier_id: Mapped[Optional[UUID]] = mapped_column(ForeignKey("suppliers.id"))
    purchase_date: Mapped[Optional[date]]
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    def refresh_status(self, now: datetime) -> InventoryStatus:
        self.status = compute_batch_status(self.quantity, self.expiry_date, now)
        return self.status


# --------------------------------------------------------------------------- parties


class Supplier(UUIDPrimaryKeyMixin, TimestampMixin, TenantBase):
    __tablename__ = "suppliers"

    company_name: Mapped[str] = mapped_column(String(200))
    contact_person: Mapped[Optional[str]] = mapped_column(String(200))
    phone: Mapped[Optional[str]] = mapped_column(String(32))
    email: Mapped[Optional[str]] = mapped_column(String(320))
    address: Mapped[Optional[str]] = mapped_column(String(500))
    credit_limit: Mapped[Decimal] = mapped_column(default=ZERO)
    current_due: Mapped[Decimal] = mapped_column(default=ZERO)
    total_purchases: Mapped[Decimal] = mapped_column(default=ZERO)
    last_purchase_date: Mapped[Optional[datetime]]
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)


class Customer(UUIDPrimaryKeyMixin, TimestampMixin, TenantBase):
    __tablename__ = "customers"

    name: Mapped[str] = mapped_column(String(200))
    phone: Mapped[Optional[str]] = mapped_column(String(32), index=True)
    email: Mapped[Optional[str]] = mapped_column(String(320))
    loyalty_points: Mapped[int] = mapped_column(Integer, default=0)
    total_purchases: Mapped[Decimal] = mapped_column(default=ZERO)
    due_amount: Mapped[Decimal] = mapped_column(default=ZERO)
    last_purchase_date: Mapped[Optional[datetime]]
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)


class Counter(UUIDPrimaryKeyMixin, TimestampMixin, TenantBase):
    __tablename__ = "counters"

    name: Mapped[str] = mapped_column(String(100))
    status: Mapped[CounterStatus] = mapped_column(_enum(CounterStatus, "counter_status"), default=CounterStatus.ACTIVE)
    is_default: Mapped[bool] = mapped_column(Boolean, default=False)
    last_session_at: Mapped[Optional[datetime]]


# --------------------------------------------------------------------------- sequences & summaries


class CounterSequence(TenantBase):
    __tablename__ = "counter_sequences"

    scope: Mapped[str] = mapped_column(String(32), primary_key=True)
    day: Mapped[date] = mapped_column(primary_key=True)
    sequence: Mapped[int] = mapped_column(Integer, default=0)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow)


class DailySummary(TenantBase):
    __tablename__ = "daily_summaries"

    day: Mapped[date] = mapped_column(primary_key=True)
    total_sales: Mapped[Decimal] = mapped_column(default=ZERO)
    total_purchases: Mapped[Decimal] = mapped_column(default=ZERO)
    items_sold: Mapped[int] = mapped_column(Integer, default=0)
    order_count: Mapped[int] = mapped_column(Integer, default=0)
    cash_sales: Mapped[Decimal] = mapped_column(default=ZERO)
    card_sales: Mapped[Decimal] = mapped_column(default=ZERO)
    mobile_banking_sales: Mapped[Decimal] = mapped_column(default=ZERO)
    credit_sales: Mapped[Decimal] = mapped_column(default=ZERO)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow)


# --------------------------------------------------------------------------- sales


class Sale(UUIDPrimaryKeyMixin, TimestampMixin, TenantBase):
    __tablename__ = "sales"

    invoice_number: Mapped[str] = mapped_column(String(32), unique=True)
    sale_date: Mapped[date] = mapped_column(index=True)
    customer_id: Mapped[Optional[UUID]] = mapped_column(ForeignKey("customers.id"), index=True)
    prescription_id: Mapped[Optional[str]] = mapped_column(String(64))
    counter_id: Mapped[UUID] = mapped_column(ForeignKey("counters.id"))
    sold_by: Mapped[str] = mapped_column(String(64))
    sale_type: Mapped[SaleType] = mapped_column(_enum(SaleType, "sale_type"), default=SaleType.RETAIL)

    subtotal: Mapped[Decimal] = mapped_column(default=ZERO)
    total_discount: Mapped[Decimal] = mapped_column(default=ZERO)
    tax: Mapped[Decimal] = mapped_column(default=ZERO)
    grand_total: Mapped[Decimal] = mapped_column(default=ZERO)
    amount_paid: Mapped[Decimal] = mapped_column(default=ZERO)
    change_returned: Mapped[Decimal] = mapped_column(default=ZERO)
    payment_method: Mapped[PaymentMethod] = mapped_column(_enum(PaymentMethod, "payment_method"))
    status: Mapped[SaleStatus] = mapped_column(_enum(SaleStatus, "sale_status"), default=SaleStatus.COMPLETED)
    notes: Mapped[Optional[str]] = mapped_column(Text)

    items: Mapped[List["SaleItem"]] = relationship(
        back_populates="sale",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="SaleItem.line_index",
    )


class SaleItem(UUIDPrimaryKeyMixin, TenantBase):
    __tablename__ = "sale_items"
    __table_args__ = (UniqueConstraint("sale_id", "line_index", name="uq_sale_items_line"),)

    sale_id: Mapped[UUID] = mapped_column(ForeignKey("sales.id"), index=True)
    line_index: Mapped[int] = mapped_column(Integer)
    medicine_id: Mapped[UUID] = mapped_column(ForeignKey("medicines.id"))
    batch_id: Mapped[UUID] = mapped_column(ForeignKey("inventory_batches.id"))
    # snapshot at time of sale
    medicine_name: Mapped[str] = mapped_column(String(200))
    batch_number: Mapped[str] = mapped_column(String(64))
    mrp: Mapped[Decimal] = mapped_column(default=ZERO)
    selling_price: Mapped[Decimal]
    discount: Mapped[Decimal] = mapped_column(default=ZERO)
    # shrink on return
    quantity: Mapped[int] = mapped_column(Integer)
    total: Mapped[Decimal]
    returned_quantity: Mapped[int] = mapped_column(Integer, default=0)

    sale: Mapped[Sale] = relationship(back_populates="items")


# --------------------------------------------------------------------------- purchases


class Purchase(UUIDPrimaryKeyMixin, TimestampMixin, TenantBase):
    __tablename__ = "purchases"

    purchase_order_number: Mapped[str] = mapped_column(String(32), unique=True)
    supplier_id: Mapped[UUID] = mapped_column(ForeignKey("suppliers.id"), index=True)
    order_date: Mapped[datetime]
    expected_delivery_date: Mapped[Optional[datetime]]
    received_date: Mapped[Optional[datetime]]
    status: Mapped[PurchaseStatus] = mapped_column(
        _enum(PurchaseStatus, "purchase_status"), default=PurchaseStatus.ORDERED
    )

    subtotal: Mapped[Decimal] = mapped_column(default=ZERO)
    discount: Mapped[Decimal] = mapped_column(default=ZERO)
    tax: Mapped[Decimal] = mapped_column(default=ZERO)
    grand_total: Mapped[Decimal] = mapped_column(default=ZERO)
    amount_paid: Mapped[Decimal] = mapped_column(default=ZERO)
    due_amount: Mapped[Decimal] = mapped_column(default=ZERO)
    payment_status: Mapped[PaymentStatus] = mapped_column(
        _enum(PaymentStatus, "payment_status"), default=PaymentStatus.PENDING
    )
    payment_method: Mapped[Optional[PaymentMethod]] = mapped_column(_enum(PaymentMethod, "payment_method"))
    notes: Mapped[Optional[str]] = mapped_column(Text)
    created_by: Mapped[str] = mapped_column(String(64))
    received_by: Mapped[Optional[str]] = mapped_column(String(64))

    items: Mapped[List["PurchaseItem"]] = relationship(
        back_populates="purchase",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="PurchaseItem.line_index",
    )
    payments: Mapped[List["PurchasePayment"]] = relationship(
        back_populates="purchase",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="PurchasePayment.paid_at",
    )

    def apply_payment_totals(self) -> None:
        """Recompute due and payment status from grand total and amount paid."""
        self.due_amount = due_amount(self.grand_total, self.amount_paid)
        self.payment_status = resolve_payment_status(self.grand_total, self.amount_paid)


class PurchaseItem(UUIDPrimaryKeyMixin, TenantBase):
    __tablename__ = "purchase_items"
    __table_args__ = (UniqueConstraint("purchase_id", "medicine_id", "batch_number", name="uq_purchase_items_batch"),)

    purchase_id: Mapped[UUID] = mapped_column(ForeignKey("purchases.id"), index=True)
    line_index: Mapped[int] = mapped_column(Integer)
    medicine_id: Mapped[UUID] = mapped_column(ForeignKey("medicines.id"))
    medicine_name: Mapped[str] = mapped_column(String(200))
    batch_number: Mapped[str] = mapped_column(String(64))
    quantity: Mapped[int] = mapped_column(Integer)
    free_quantity: Mapped[int] = mapped_column(Integer, default=0)
    received_quantity: Mapped[int] = mapped_column(Integer, default=0)
    received_free_quantity: Mapped[int] = mapped_column(Integer, default=0)
    purchase_price: Mapped[Decimal]
    selling_price: Mapped[Decimal]
    mrp: Mapped[Decimal]
    expiry_date: Mapped[date]
    alert_threshold: Mapped[int] = mapped_column(Integer, default=10)
    total: Mapped[Decimal]
    notes: Mapped[Optional[str]] = mapped_column(Text)

    purchase: Mapped[Purchase] = relationship(back_populates="items")


class PurchasePayment(UUIDPrimaryKeyMixin, TenantBase):
    __tablename__ = "purchase_payments"

    purchase_id: Mapped[UUID] = mapped_column(ForeignKey("purchases.id"), index=True)
    amount: Mapped[Decimal]
    method: Mapped[PaymentMethod] = mapped_column(_enum(PaymentMethod, "payment_method"))
    paid_at: Mapped[datetime]
    reference: Mapped[Optional[str]] = mapped_column(String(100))
    note: Mapped[Optional[str]] = mapped_column(Text)
    recorded_by: Mapped[str] = mapped_column(String(64))

    purchase: Mapped[Purchase] = relationship(back_populates="payments")
