"""
SQLAlchemy Declarative Bases

Two metadata trees, one per partition kind:
- AdminBase: control-plane tables living in the admin partition
- TenantBase: per-pharmacy tables created inside every tenant partition
"""
from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import Date, DateTime, Numeric, Uuid
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


_TYPE_MAP = {
    UUID: Uuid(as_uuid=True),
    datetime: DateTime(timezone=True),
    date: Date(),
    # money and prices: fixed precision, never float
    Decimal: Numeric(12, 2, asdecimal=True),
}


class AdminBase(DeclarativeBase):
    type_annotation_map = _TYPE_MAP


class TenantBase(DeclarativeBase):
    type_annotation_map = _TYPE_MAP


class UUIDPrimaryKeyMixin:
    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}(id={self.id})>"


class TimestampMixin:
    """Python-side defaults keep both columns loaded after flush."""
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow, nullable=False)
