from __future__ import annotations

from enum import Enum


class SubscriptionPlan(str, Enum):
    BASIC = "basic"
    PROFESSIONAL = "professional"
    ENTERPRISE = "enterprise"
    HOSPITAL = "hospital"


class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    TRIAL = "trial"
    SUSPENDED = "suspended"
    CANCELLED = "cancelled"


class UserRole(str, Enum):
    SUPER_ADMIN = "super_admin"
    PHARMACY_OWNER = "pharmacy_owner"
    PHARMACIST = "pharmacist"
    CASHIER = "cashier"
    INVENTORY_MANAGER = "inventory_manager"
