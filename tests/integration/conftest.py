"""Fixtures for tests against a live PostgreSQL.

These tests drop and recreate the public schema of the configured database,
so they only run when SGDB_INTEGRATION=1 is set and the server is reachable.
"""

from __future__ import annotations

import os
from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy import insert, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, create_async_engine

from sgdb.config import Settings, get_settings


@pytest.fixture
def settings() -> Settings:
    if os.environ.get("SGDB_INTEGRATION") != "1":
        pytest.skip("set SGDB_INTEGRATION=1 to run against a live database")
    return get_settings()


@pytest_asyncio.fixture
async def conn(settings: Settings) -> AsyncGenerator[AsyncConnection, None]:
    """Autocommit connection to an emptied public schema."""
    engine = create_async_engine(settings.database_url, isolation_level="AUTOCOMMIT")
    try:
        connection = await engine.connect()
    except (OSError, SQLAlchemyError) as exc:
        await engine.dispose()
        pytest.skip(f"PostgreSQL not reachable: {exc}")

    await connection.execute(text("DROP SCHEMA IF EXISTS public CASCADE"))
    await connection.execute(text("CREATE SCHEMA public"))
    try:
        yield connection
    finally:
        await connection.close()
        await engine.dispose()


async def insert_row(conn: AsyncConnection, model, **values):
    """Insert one row through the model's table and return its primary key value(s)."""
    table = model.__table__
    result = await conn.execute(insert(table).values(**values).returning(*table.primary_key.columns))
    row = result.one()
    return row[0] if len(row) == 1 else tuple(row)
