"""
Sequence Counter Service

Gap-free, per-scope, per-day numbering (invoice and purchase order numbers).
The increment and the read are one statement:

    INSERT INTO counter_sequences (scope, day, sequence) VALUES (:scope, :day, 1)
    ON CONFLICT (scope, day) DO UPDATE SET sequence = counter_sequences.sequence + 1
    RETURNING sequence

Called inside the business transaction, a rolled-back sale or purchase also
rolls back its number, so issued numbers stay contiguous.
"""
from __future__ import annotations

from datetime import date

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.commerce.infrastructure.models import CounterSequence
from src.commerce.infrastructure.upsert import dialect_insert
from src.shared.database.base_model import utcnow
from src.shared.logging import get_logger

logger = get_logger(__name__)

SALE_SCOPE = "sale"
PURCHASE_SCOPE = "purchase"


class SequenceCounterService:
    async def next(self, session: AsyncSession, scope: str, day: date) -> int:
        insert = dialect_insert(session)
        stmt = insert(CounterSequence).values(scope=scope, day=day, sequence=1, updated_at=utcnow())
        stmt = stmt.on_conflict_do_update(
            index_elements=[CounterSequence.scope, CounterSequence.day],
            set_={"sequence": CounterSequence.sequence + 1, "updated_at": utcnow()},
        ).returning(CounterSequence.sequence)
        value = int(await session.scalar(stmt))
        logger.debug("Sequence issued", scope=scope, day=day.isoformat(), sequence=value)
        return value

    async def issue(self, session_factory: async_sessionmaker[AsyncSession], scope: str, day: date) -> int:
        """
        Standalone issue in its own short transaction.

        On PostgreSQL the statement runs at READ COMMITTED, where a conflicting
        upsert waits for the row lock and increments the committed value
        instead of failing with a serialization error.
        """
        async with session_factory() as session:
            if session.get_bind().dialect.name == "postgresql":
                await session.connection(execution_options={"isolation_level": "READ COMMITTED"})
            async with session.begin():
                return await self.next(session, scope, day)
