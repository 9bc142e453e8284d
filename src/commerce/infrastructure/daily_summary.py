"""Per-day tenant aggregates, upserted in the same transaction as the sale or receipt."""
from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Dict, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.commerce.domain.enums import PaymentMethod
from src.commerce.infrastructure.models import DailySummary
from src.commerce.infrastructure.upsert import dialect_insert
from src.shared.database.base_model import utcnow

_METHOD_COLUMNS = {
    PaymentMethod.CASH: "cash_sales",
    PaymentMethod.CARD: "card_sales",
    PaymentMethod.MOBILE_BANKING: "mobile_banking_sales",
    PaymentMethod.CREDIT: "credit_sales",
}


async def _increment(session: AsyncSession, day: date, deltas: Dict[str, object]) -> None:
    insert = dialect_insert(session)
    stmt = insert(DailySummary).values(day=day, updated_at=utcnow(), **deltas)
    stmt = stmt.on_conflict_do_update(
        index_elements=[DailySummary.day],
        set_={
            **{name: getattr(DailySummary, name) + delta for name, delta in deltas.items()},
            "updated_at": utcnow(),
        },
    )
    await session.execute(stmt)


async def record_sale(
    session: AsyncSession,
    day: date,
    *,
    grand_total: Decimal,
    items_sold: int,
    payment_method: PaymentMethod,
) -> None:
    await _increment(
        session,
        day,
        {
            "total_sales": grand_total,
            "items_sold": items_sold,
            "order_count": 1,
            _METHOD_COLUMNS[payment_method]: grand_total,
        },
    )


async def record_purchase(session: AsyncSession, day: date, *, amount: Decimal) -> None:
    await _increment(session, day, {"total_purchases": amount})


async def get_summary(session: AsyncSession, day: date) -> Optional[DailySummary]:
    return await session.scalar(select(DailySummary).where(DailySummary.day == day))
