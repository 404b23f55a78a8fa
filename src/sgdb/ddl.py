"""Conditional DDL builders.

Every statement built here is safe to issue against a database that already
has the object: types and triggers are guarded by a catalog lookup inside a
DO block, tables and indexes use IF NOT EXISTS, the function is replaced, and
the ledger insert ignores conflicts.
"""

from __future__ import annotations

from sqlalchemy import DDL, Table
from sqlalchemy.dialects import postgresql
from sqlalchemy.dialects.postgresql import ENUM
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.schema import BaseDDLElement, CreateIndex, CreateTable
from sqlalchemy.sql.expression import Executable

from sgdb.db.models import SchemaMigration

UPDATED_AT_FUNCTION = "set_updated_at"

SET_SEARCH_PATH = DDL("SET search_path TO public")

CREATE_PGCRYPTO = DDL("CREATE EXTENSION IF NOT EXISTS pgcrypto")

SET_UPDATED_AT_FUNCTION = DDL(
    f"""CREATE OR REPLACE FUNCTION {UPDATED_AT_FUNCTION}()
RETURNS trigger
LANGUAGE plpgsql
AS $$
BEGIN
  NEW.updated_at = NOW();
  RETURN NEW;
END;
$$"""
)


def create_enum_if_missing(enum: ENUM) -> DDL:
    """CREATE TYPE ... AS ENUM, skipped when a type with that name exists."""
    labels = ",".join(f"'{label}'" for label in enum.enums)
    return DDL(
        f"""DO $$ BEGIN
  IF NOT EXISTS (SELECT 1 FROM pg_type WHERE typname = '{enum.name}') THEN
    CREATE TYPE {enum.name} AS ENUM ({labels});
  END IF;
END $$"""
    )


def updated_at_trigger_name(table_name: str) -> str:
    return f"trg_{table_name}_updated_at"


def create_updated_at_trigger(table_name: str) -> DDL:
    """BEFORE UPDATE trigger stamping updated_at, skipped when already present."""
    trigger = updated_at_trigger_name(table_name)
    return DDL(
        f"""DO $$ BEGIN
  IF NOT EXISTS (SELECT 1 FROM pg_trigger WHERE tgname = '{trigger}') THEN
    CREATE TRIGGER {trigger}
    BEFORE UPDATE ON {table_name}
    FOR EACH ROW
    EXECUTE FUNCTION {UPDATED_AT_FUNCTION}();
  END IF;
END $$"""
    )


def create_table(table: Table) -> CreateTable:
    return CreateTable(table, if_not_exists=True)


def create_indexes(table: Table) -> list[CreateIndex]:
    """CREATE [UNIQUE] INDEX IF NOT EXISTS for every named index on the table, by name."""
    return [CreateIndex(index, if_not_exists=True) for index in sorted(table.indexes, key=lambda ix: ix.name)]


def record_version(version: str) -> Executable:
    """Ledger insert that is a no-op when the version is already recorded."""
    return (
        pg_insert(SchemaMigration.__table__)
        .values(version=version)
        .on_conflict_do_nothing(index_elements=["version"])
    )


def render(statement: Executable) -> str:
    """Compile a statement to PostgreSQL SQL text with literal values inlined."""
    dialect = postgresql.dialect()
    if isinstance(statement, BaseDDLElement):
        compiled = statement.compile(dialect=dialect)
    else:
        compiled = statement.compile(dialect=dialect, compile_kwargs={"literal_binds": True})
    return str(compiled).strip()
