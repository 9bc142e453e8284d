"""
Transactional closure runner with bounded retry on transient conflicts.

The whole closure is re-run on a fresh session for every attempt, so nothing
from a failed attempt (ORM state included) leaks into the next one.
"""
from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Optional, TypeVar

from sqlalchemy import exc as sa_exc
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.shared.exceptions import TransientStorageError
from src.shared.logging import get_logger
from src.shared.utils.retry import RetryExhaustedError, retry

logger = get_logger(__name__)

T = TypeVar("T")
TransientClassifier = Callable[[BaseException], bool]

# serialization_failure, deadlock_detected
TRANSIENT_SQLSTATES = frozenset({"40001", "40P01"})


def _sqlstate(err: BaseException) -> Optional[str]:
    orig = getattr(err, "orig", None)
    for candidate in (orig, getattr(orig, "__cause__", None)):
        if candidate is None:
            continue
        code = getattr(candidate, "sqlstate", None) or getattr(candidate, "pgcode", None)
        if code:
            return str(code)
    return None


def is_transient_error(err: BaseException) -> bool:
    if isinstance(err, TransientStorageError):
        return True
    if isinstance(err, (asyncio.TimeoutError, TimeoutError, sa_exc.TimeoutError)):
        return True
    if isinstance(err, sa_exc.DBAPIError):
        if _sqlstate(err) in TRANSIENT_SQLSTATES:
            return True
        if isinstance(err, sa_exc.OperationalError) and "database is locked" in str(err.orig):
            return True
        if isinstance(getattr(err, "orig", None), (asyncio.TimeoutError, TimeoutError)):
            return True
    return False


async def run_in_transaction(
    session_factory: async_sessionmaker[AsyncSession],
    work: Callable[[AsyncSession], Awaitable[T]],
    *,
    attempts: int = 3,
    base_ms: int = 25,
    jitter_ms: int = 25,
    is_transient: TransientClassifier = is_transient_error,
    label: str = "transaction",
) -> T:
    async def _attempt() -> T:
        async with session_factory() as session:
            async with session.begin():
                return await work(session)

    def _on_retry(attempt: int, err: BaseException) -> None:
        logger.warning(
            "Transient storage conflict, retrying",
            operation=label,
            attempt=attempt,
            max_attempts=attempts,
            error=str(err),
        )

    try:
        return await retry(
            _attempt,
            attempts=attempts,
            base_ms=base_ms,
            jitter_ms=jitter_ms,
            is_retryable=is_transient,
            on_retry=_on_retry,
        )
    except RetryExhaustedError as e:
        logger.error("Transaction retry budget exhausted", operation=label, attempts=e.attempts, error=str(e.last_error))
        raise TransientStorageError(
            f"{label} failed after {e.attempts} attempts",
            details={"operation": label, "attempts": e.attempts},
        ) from e.last_error
