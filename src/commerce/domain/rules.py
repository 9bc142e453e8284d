"""
Derived fields as pure functions.

Batch status and payment status are never set directly; every mutation site
recomputes them from these functions.
"""
from __future__ import annotations

from datetime import date, datetime, timedelta
from decimal import ROUND_FLOOR, ROUND_HALF_UP, Decimal
from typing import Union

from src.commerce.domain.enums import InventoryStatus, PaymentStatus

NEAR_EXPIRY_WINDOW = timedelta(days=30)
LOYALTY_SPEND_PER_POINT = Decimal("100")
ZERO = Decimal("0.00")
_CENT = Decimal("0.01")


def money(value: Union[Decimal, int, str]) -> Decimal:
    return Decimal(value).quantize(_CENT, rounding=ROUND_HALF_UP)


def _as_date(value: Union[date, datetime]) -> date:
    return value.date() if isinstance(value, datetime) else value


def is_expired(expiry_date: Union[date, datetime], now: datetime) -> bool:
    """An expiry date means midnight at the start of that day, so the batch is expired all day."""
    return _as_date(expiry_date) <= now.date()


def compute_batch_status(quantity: int, expiry_date: Union[date, datetime], now: datetime) -> InventoryStatus:
    if quantity <= 0:
        return InventoryStatus.OUT_OF_STOCK
    if is_expired(expiry_date, now):
        return InventoryStatus.EXPIRED
    if _as_date(expiry_date) <= (now + NEAR_EXPIRY_WINDOW).date():
        return InventoryStatus.NEAR_EXPIRY
    return InventoryStatus.ACTIVE


def resolve_payment_status(grand_total: Decimal, amount_paid: Decimal) -> PaymentStatus:
    if amount_paid >= grand_total:
        return PaymentStatus.PAID
    if amount_paid > 0:
        return PaymentStatus.PARTIAL
    return PaymentStatus.PENDING


def due_amount(grand_total: Decimal, amount_paid: Decimal) -> Decimal:
    return money(max(ZERO, grand_total - amount_paid))


def loyalty_points(amount: Decimal) -> int:
    """One point per full 100 spent."""
    if amount <= 0:
        return 0
    return int((amount / LOYALTY_SPEND_PER_POINT).to_integral_value(rounding=ROUND_FLOOR))


def format_invoice_number(day: date, sequence: int) -> str:
    return f"INV-{day:%Y%m%d}-{sequence:04d}"


def format_purchase_order_number(day: date, sequence: int) -> str:
    return f"PO-{day:%Y%m%d}-{sequence:04d}"
