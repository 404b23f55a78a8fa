"""Ordered statement plan and the schema_migrations ledger.

The plan is flattened from MIGRATIONS and re-issued in full on every run;
each statement is conditional, so a database that is already at the baseline
comes out unchanged. New versions are appended to MIGRATIONS and must be
written the same way.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from sqlalchemy import Table
from sqlalchemy.sql.expression import Executable

from sgdb import ddl
from sgdb.db.models import (
    ENUM_TYPES,
    TIMESTAMPED_TABLES,
    Action,
    Game,
    GamePlayer,
    Lobby,
    LobbyPlayer,
    Match,
    MatchPlayer,
    SchemaMigration,
    Turn,
    Unit,
    User,
)

BASELINE_VERSION = "0001_baseline_strategy_game"

# Leaves first: every table only references tables listed before it.
BASELINE_TABLES: tuple[Table, ...] = (
    User.__table__,
    Lobby.__table__,
    LobbyPlayer.__table__,
    Game.__table__,
    GamePlayer.__table__,
    Unit.__table__,
    Turn.__table__,
    Action.__table__,
    Match.__table__,
    MatchPlayer.__table__,
)


@dataclass(frozen=True)
class Step:
    """One statement, executed and committed on its own."""

    name: str
    statement: Executable

    @property
    def sql(self) -> str:
        return ddl.render(self.statement)


@dataclass(frozen=True)
class Migration:
    version: str
    steps: Callable[[], list[Step]]


def _table_steps(table: Table) -> list[Step]:
    steps = [Step(f"create_table:{table.name}", ddl.create_table(table))]
    if table.name in TIMESTAMPED_TABLES:
        steps.append(
            Step(
                f"create_trigger:{ddl.updated_at_trigger_name(table.name)}",
                ddl.create_updated_at_trigger(table.name),
            )
        )
    steps.extend(Step(f"create_index:{create.element.name}", create) for create in ddl.create_indexes(table))
    return steps


def baseline_steps() -> list[Step]:
    """Statements that build the strategy game baseline, in dependency order."""
    steps = [
        Step("set_search_path", ddl.SET_SEARCH_PATH),
        Step("create_extension:pgcrypto", ddl.CREATE_PGCRYPTO),
    ]
    steps.extend(Step(f"create_type:{enum.name}", ddl.create_enum_if_missing(enum)) for enum in ENUM_TYPES)
    steps.append(Step(f"create_function:{ddl.UPDATED_AT_FUNCTION}", ddl.SET_UPDATED_AT_FUNCTION))

    for table in BASELINE_TABLES:
        steps.extend(_table_steps(table))

    steps.append(Step("create_table:schema_migrations", ddl.create_table(SchemaMigration.__table__)))
    steps.append(Step(f"record_version:{BASELINE_VERSION}", ddl.record_version(BASELINE_VERSION)))
    return steps


MIGRATIONS: tuple[Migration, ...] = (Migration(BASELINE_VERSION, baseline_steps),)


def plan() -> list[Step]:
    """Every registered migration's steps, flattened in registry order."""
    return [step for migration in MIGRATIONS for step in migration.steps()]
