"""Shared fixtures for commerce_core unit tests.

Storage tests run against a temporary SQLite file created through the
SQLite adapter.  SQLite returns naive datetimes, so timezone-aware columns
are swapped for a decorator that coerces results back to UTC.
"""

from __future__ import annotations

from datetime import UTC

import pytest_asyncio
from commerce_core.state.database import get_session_factory_for
from commerce_core.state.sqlite_adapter import create_local_tables, get_local_engine
from commerce_core.state.tables import Base
from sqlalchemy import DateTime
from sqlalchemy.types import TypeDecorator


def _patch_columns_for_sqlite() -> None:
    """Make ``DateTime(timezone=True)`` columns return UTC-aware values on SQLite."""

    class _UTCAwareDateTime(TypeDecorator):
        impl = DateTime
        cache_ok = True

        def process_result_value(self, value, dialect):  # type: ignore[override]
            if value is not None and value.tzinfo is None:
                return value.replace(tzinfo=UTC)
            return value

    for table in Base.metadata.tables.values():
        for column in table.columns:
            if isinstance(column.type, DateTime) and getattr(column.type, "timezone", False):
                column.type = _UTCAwareDateTime()


_patch_columns_for_sqlite()


@pytest_asyncio.fixture
async def engine(tmp_path):
    """A fresh SQLite database with every table created."""
    eng = get_local_engine(tmp_path / "state.db")
    await create_local_tables(eng)
    yield eng
    await eng.dispose()


@pytest_asyncio.fixture
async def session(engine):
    factory = get_session_factory_for(engine)
    async with factory() as sess:
        yield sess
