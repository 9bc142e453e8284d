"""Dialect-specific INSERT .. ON CONFLICT constructs for the tenant partition."""
from __future__ import annotations

from typing import Callable

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def dialect_insert(session: AsyncSession) -> Callable:
    name = session.get_bind().dialect.name
    try:
        return _INSERTS[name]
    except KeyError:
        raise RuntimeError(f"Upsert is not supported on the {name!r} dialect") from None
