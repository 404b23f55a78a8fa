"""Sequential, fail-fast execution of the schema plan."""

from __future__ import annotations

import time
from collections.abc import Sequence
from dataclasses import dataclass, field

import structlog
from sqlalchemy import select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from sgdb.config import Settings
from sgdb.database import close_db, get_engine, init_db
from sgdb.db.models import ENUM_TYPES, TIMESTAMPED_TABLES, SchemaMigration
from sgdb.ddl import UPDATED_AT_FUNCTION, updated_at_trigger_name
from sgdb.exceptions import SchemaInitError, SchemaStepError
from sgdb.migrations import BASELINE_TABLES, BASELINE_VERSION, Step, plan

logger = structlog.get_logger()


async def apply_schema(conn: AsyncConnection, steps: Sequence[Step]) -> int:
    """Execute steps one at a time; stop at the first failure.

    Nothing is rolled back: on an autocommit connection every step that ran
    before the failing one stays applied.
    """
    for index, step in enumerate(steps, start=1):
        try:
            await conn.execute(step.statement)
        except SQLAlchemyError as exc:
            logger.exception(
                "schema_step_failed",
                step=step.name,
                index=index,
                error=str(getattr(exc, "orig", None) or exc),
            )
            raise SchemaStepError(step, exc) from exc
        logger.info("schema_step_applied", step=step.name, index=index)
    return len(steps)


async def _connect(engine: AsyncEngine, settings: Settings) -> AsyncConnection:
    try:
        return await engine.connect()
    except (OSError, SQLAlchemyError) as exc:
        msg = f"cannot connect to database {settings.name!r} on port {settings.port}: {exc}"
        raise SchemaInitError(msg) from exc


async def run(settings: Settings, steps: Sequence[Step] | None = None) -> int:
    """Bring the configured database to the baseline schema. Returns the number of steps issued."""
    steps = plan() if steps is None else steps
    logger.info("schema_init_started", user=settings.user, admin_user=settings.admin_user)
    started = time.monotonic()

    init_db(settings.database_url)
    try:
        conn = await _connect(get_engine(), settings)
        try:
            count = await apply_schema(conn, steps)
        finally:
            await conn.close()
    finally:
        await close_db()

    logger.info("schema_init_complete", steps=count, elapsed_seconds=round(time.monotonic() - started, 3))
    return count


# ---------------------------------------------------------------------------
# Introspection
# ---------------------------------------------------------------------------


@dataclass
class SchemaReport:
    """What the live catalog says about the baseline."""

    applied_versions: list[str] = field(default_factory=list)
    missing: list[str] = field(default_factory=list)

    @property
    def is_complete(self) -> bool:
        return not self.missing and BASELINE_VERSION in self.applied_versions


def expected_objects() -> dict[str, set[str]]:
    """Names of every catalog object the baseline creates, by kind."""
    tables = [*BASELINE_TABLES, SchemaMigration.__table__]
    return {
        "type": {enum.name for enum in ENUM_TYPES},
        "function": {UPDATED_AT_FUNCTION},
        "trigger": {updated_at_trigger_name(name) for name in TIMESTAMPED_TABLES},
        "table": {table.name for table in tables},
        "index": {index.name for table in tables for index in table.indexes},
    }


_CATALOG_QUERIES = {
    "type": "SELECT typname FROM pg_type",
    "function": "SELECT proname FROM pg_proc",
    "trigger": "SELECT tgname FROM pg_trigger WHERE NOT tgisinternal",
    "table": "SELECT tablename FROM pg_tables WHERE schemaname = 'public'",
    "index": "SELECT indexname FROM pg_indexes WHERE schemaname = 'public'",
}


async def missing_objects(conn: AsyncConnection) -> list[str]:
    """Expected objects absent from the catalog, as sorted 'kind:name' strings."""
    missing: list[str] = []
    for kind, names in expected_objects().items():
        result = await conn.execute(text(_CATALOG_QUERIES[kind]))
        present = set(result.scalars())
        missing.extend(f"{kind}:{name}" for name in names - present)
    return sorted(missing)


async def applied_versions(conn: AsyncConnection) -> list[str]:
    """Ledger versions in apply order; empty when the ledger table does not exist yet."""
    exists = await conn.scalar(text("SELECT to_regclass('public.schema_migrations') IS NOT NULL"))
    if not exists:
        return []
    result = await conn.execute(
        select(SchemaMigration.version).order_by(SchemaMigration.applied_at, SchemaMigration.version)
    )
    return list(result.scalars())


async def check(settings: Settings) -> SchemaReport:
    """Inspect the configured database without changing it."""
    init_db(settings.database_url)
    try:
        conn = await _connect(get_engine(), settings)
        try:
            report = SchemaReport(
                applied_versions=await applied_versions(conn),
                missing=await missing_objects(conn),
            )
        finally:
            await conn.close()
    finally:
        await close_db()

    logger.info(
        "schema_check_complete",
        applied_versions=report.applied_versions,
        missing=len(report.missing),
    )
    return report
