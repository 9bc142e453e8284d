"""
Admin partition models: tenant identity, subscription and staff accounts
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from sqlalchemy import Boolean, Enum as SAEnum, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from src.shared.database.base_model import AdminBase, TimestampMixin, UUIDPrimaryKeyMixin
from src.tenancy.domain.enums import SubscriptionPlan, SubscriptionStatus, UserRole


def _enum(enum_cls, name: str) -> SAEnum:
    return SAEnum(enum_cls, name=name, native_enum=False, values_callable=lambda e: [m.value for m in e])


class Tenant(TimestampMixin, AdminBase):
    __tablename__ = "tenants"

    # slug; also addresses the tenant's data partition
    id: Mapped[str] = mapped_column(String(48), primary_key=True)
    pharmacy_name: Mapped[str] = mapped_column(String(200))
    owner_name: Mapped[str] = mapped_column(String(200))
    email: Mapped[str] = mapped_column(String(320), unique=True)
    phone: Mapped[Optional[str]] = mapped_column(String(32))
    address: Mapped[Optional[str]] = mapped_column(String(500))
    license_number: Mapped[Optional[str]] = mapped_column(String(100))

    subscription_plan: Mapped[SubscriptionPlan] = mapped_column(
        _enum(SubscriptionPlan, "subscription_plan"), default=SubscriptionPlan.BASIC
    )
    subscription_status: Mapped[SubscriptionStatus] = mapped_column(
        _enum(SubscriptionStatus, "subscription_status"), default=SubscriptionStatus.TRIAL
    )
    subscription_start_date: Mapped[datetime]
    subscription_end_date: Mapped[Optional[datetime]]
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    # settings
    currency: Mapped[str] = mapped_column(String(8), default="BDT")
    timezone: Mapped[str] = mapped_column(String(64), default="Asia/Dhaka")
    tax_rate: Mapped[Decimal] = mapped_column(default=Decimal("0"))


class User(UUIDPrimaryKeyMixin, TimestampMixin, AdminBase):
    __tablename__ = "users"
    __table_args__ = (UniqueConstraint("tenant_id", "email", name="uq_users_tenant_email"),)

    tenant_id: Mapped[Optional[str]] = mapped_column(ForeignKey("tenants.id"), index=True)
    email: Mapped[str] = mapped_column(String(320))
    full_name: Mapped[str] = mapped_column(String(200))
    role: Mapped[UserRole] = mapped_column(_enum(UserRole, "user_role"), default=UserRole.CASHIER)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    last_login_at: Mapped[Optional[datetime]]
