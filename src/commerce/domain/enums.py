from __future__ import annotations

from enum import Enum


class InventoryStatus(str, Enum):
    ACTIVE = "active"
    NEAR_EXPIRY = "near_expiry"
    EXPIRED = "expired"
    OUT_OF_STOCK = "out_of_stock"


class PaymentMethod(str, Enum):
    CASH = "cash"
    CARD = "card"
    MOBILE_BANKING = "mobile_banking"
    CREDIT = "credit"


class SaleStatus(str, Enum):
    COMPLETED = "completed"
    PARTIAL_RETURN = "partial_return"
    RETURNED = "returned"


class SaleType(str, Enum):
    RETAIL = "retail"
    WHOLESALE = "wholesale"
    INSURANCE = "insurance"


class PurchaseStatus(str, Enum):
    ORDERED = "ordered"
    RECEIVED = "received"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    PAID = "paid"
    PARTIAL = "partial"
    PENDING = "pending"


class CounterStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
