import asyncio

import pytest
from sqlalchemy import exc as sa_exc

from src.shared.database.transaction import is_transient_error, run_in_transaction
from src.shared.exceptions import TransientStorageError


class DriverError(Exception):
    def __init__(self, sqlstate: str) -> None:
        super().__init__(f"sqlstate {sqlstate}")
        self.sqlstate = sqlstate


def _dbapi(orig: Exception, cls=sa_exc.DBAPIError):
    return cls("SELECT 1", {}, orig)


@pytest.mark.parametrize("sqlstate", ["40001", "40P01"])
def test_serialization_and_deadlock_are_transient(sqlstate):
    assert is_transient_error(_dbapi(DriverError(sqlstate)))


def test_sqlite_lock_and_timeouts_are_transient():
    assert is_transient_error(_dbapi(Exception("database is locked"), sa_exc.OperationalError))
    assert is_transient_error(asyncio.TimeoutError())
    assert is_transient_error(TransientStorageError("busy"))


def test_constraint_violations_are_not_transient():
    assert not is_transient_error(_dbapi(DriverError("23505"), sa_exc.IntegrityError))
    assert not is_transient_error(ValueError("bad"))


class FakeSession:
    def __init__(self, log):
        self.log = log

    async def __aenter__(self):
        self.log.append("open")
        return self

    async def __aexit__(self, *exc):
        self.log.append("close")

    def begin(self):
        return self


def _factory(log):
    return lambda: FakeSession(log)


@pytest.mark.asyncio
async def test_each_attempt_gets_a_fresh_session():
    log, calls = [], []

    async def work(session):
        calls.append(session)
        if len(calls) < 3:
            raise TransientStorageError("conflict")
        return "done"

    result = await run_in_transaction(_factory(log), work, attempts=3, base_ms=0, jitter_ms=0)
    assert result == "done"
    assert len({id(s) for s in calls}) == 3


@pytest.mark.asyncio
async def test_exhausted_retries_surface_as_transient_storage_error():
    async def work(session):
        raise TransientStorageError("conflict")

    with pytest.raises(TransientStorageError) as exc:
        await run_in_transaction(_factory([]), work, attempts=2, base_ms=0, jitter_ms=0, label="create_sale")
    assert exc.value.details == {"operation": "create_sale", "attempts": 2}


@pytest.mark.asyncio
async def test_business_errors_are_not_retried():
    calls = []

    async def work(session):
        calls.append(1)
        raise ValueError("insufficient stock")

    with pytest.raises(ValueError):
        await run_in_transaction(_factory([]), work, attempts=3, base_ms=0, jitter_ms=0)
    assert calls == [1]
