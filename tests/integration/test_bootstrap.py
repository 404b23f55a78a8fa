"""End-to-end bootstrap behaviour against PostgreSQL."""

from __future__ import annotations

import asyncio

import pytest
from sqlalchemy import DDL, delete, func, select, text, update
from sqlalchemy.exc import IntegrityError

from sgdb.db.models import Game, GamePlayer, Lobby, SchemaMigration, Unit, User
from sgdb.exceptions import SchemaStepError
from sgdb.migrations import BASELINE_VERSION, Step, plan
from sgdb.runner import apply_schema, applied_versions, check, missing_objects, run

from .conftest import insert_row

pytestmark = pytest.mark.integration

_CATALOG_SNAPSHOT = """
SELECT 'table:' || tablename FROM pg_tables WHERE schemaname = 'public'
UNION ALL SELECT 'index:' || indexname FROM pg_indexes WHERE schemaname = 'public'
UNION ALL SELECT 'trigger:' || tgname FROM pg_trigger WHERE NOT tgisinternal
UNION ALL SELECT 'type:' || t.typname FROM pg_type t
    JOIN pg_namespace n ON n.oid = t.typnamespace
    WHERE n.nspname = 'public' AND t.typtype = 'e'
UNION ALL SELECT 'constraint:' || conname FROM pg_constraint c
    JOIN pg_namespace n ON n.oid = c.connamespace WHERE n.nspname = 'public'
"""

_FOREIGN_KEYS = """
SELECT kcu.table_name, kcu.column_name, ccu.table_name, rc.delete_rule
FROM information_schema.referential_constraints rc
JOIN information_schema.key_column_usage kcu
    ON kcu.constraint_name = rc.constraint_name AND kcu.constraint_schema = rc.constraint_schema
JOIN information_schema.constraint_column_usage ccu
    ON ccu.constraint_name = rc.constraint_name AND ccu.constraint_schema = rc.constraint_schema
WHERE rc.constraint_schema = 'public'
"""


async def _snapshot(conn) -> list[str]:
    result = await conn.execute(text(_CATALOG_SNAPSHOT))
    return sorted(result.scalars())


async def _user(conn, name: str) -> str:
    return await insert_row(conn, User, email=f"{name}@example.com", username=name, password_hash="x")


async def _game(conn, lobby_id: str | None = None) -> str:
    return await insert_row(conn, Game, lobby_id=lobby_id, map_width=8, map_height=8)


class TestIdempotence:
    @pytest.mark.asyncio
    async def test_second_run_changes_nothing(self, conn, settings):
        await run(settings)
        first = await _snapshot(conn)

        await run(settings)

        assert await _snapshot(conn) == first
        assert await missing_objects(conn) == []

    @pytest.mark.asyncio
    async def test_ledger_has_one_baseline_row(self, conn, settings):
        for _ in range(3):
            await run(settings)

        count = await conn.scalar(
            select(func.count()).select_from(SchemaMigration).where(SchemaMigration.version == BASELINE_VERSION)
        )
        assert count == 1
        assert await applied_versions(conn) == [BASELINE_VERSION]

    @pytest.mark.asyncio
    async def test_missing_everything_before_first_run(self, conn):
        assert await applied_versions(conn) == []
        assert "table:users" in await missing_objects(conn)

    @pytest.mark.asyncio
    async def test_check_tracks_bootstrap(self, conn, settings):
        before = await check(settings)
        assert not before.is_complete
        assert before.applied_versions == []
        assert "index:ux_units_alive_tile" in before.missing

        await run(settings)
        after = await check(settings)
        assert after.is_complete
        assert after.applied_versions == [BASELINE_VERSION]

        await conn.execute(text("DROP INDEX ux_units_alive_tile"))
        dropped = await check(settings)
        assert dropped.missing == ["index:ux_units_alive_tile"]

        await run(settings)
        assert (await check(settings)).is_complete

    @pytest.mark.asyncio
    async def test_failure_keeps_earlier_statements(self, conn):
        steps = plan()
        users_at = next(i for i, s in enumerate(steps) if s.name == "create_table:users")
        broken = [*steps[: users_at + 1], Step("broken", DDL("CREATE TABLE users_broken (")), *steps[users_at + 1 :]]

        with pytest.raises(SchemaStepError) as exc_info:
            await apply_schema(conn, broken)

        assert exc_info.value.step.name == "broken"
        tables = set((await conn.execute(text("SELECT tablename FROM pg_tables WHERE schemaname = 'public'"))).scalars())
        assert "users" in tables
        assert "lobbies" not in tables


class TestConstraints:
    @pytest.mark.asyncio
    async def test_foreign_key_delete_rules(self, conn):
        await apply_schema(conn, plan())

        rows = {tuple(r) for r in (await conn.execute(text(_FOREIGN_KEYS))).all()}

        assert ("games", "lobby_id", "lobbies", "SET NULL") in rows
        assert ("game_players", "user_id", "users", "RESTRICT") in rows
        assert ("lobby_players", "lobby_id", "lobbies", "CASCADE") in rows
        assert ("actions", "actor_unit_id", "units", "SET NULL") in rows
        assert ("matches", "game_id", "games", "SET NULL") in rows
        assert ("match_players", "match_id", "matches", "CASCADE") in rows
        assert len(rows) == 18

    @pytest.mark.asyncio
    async def test_one_alive_unit_per_tile(self, conn):
        await apply_schema(conn, plan())
        owner = await _user(conn, "owner")
        game = await _game(conn)
        tile = {"game_id": game, "owner_user_id": owner, "unit_type": "archer", "x": 2, "y": 3, "hp": 10, "max_hp": 10}

        first = await insert_row(conn, Unit, **tile)
        with pytest.raises(IntegrityError):
            await insert_row(conn, Unit, **tile)

        # dead units may share the tile
        await insert_row(conn, Unit, **tile, is_alive=False)
        await conn.execute(update(Unit).where(Unit.id == first).values(is_alive=False))
        await insert_row(conn, Unit, **tile)

        alive = await conn.scalar(select(func.count()).select_from(Unit).where(Unit.is_alive.is_(True)))
        assert alive == 1

    @pytest.mark.asyncio
    async def test_lobby_delete_nulls_game_link_and_user_delete_is_restricted(self, conn):
        await apply_schema(conn, plan())
        host = await _user(conn, "host")
        lobby = await insert_row(conn, Lobby, code="ABCD", name="friday", host_user_id=host)
        game = await _game(conn, lobby_id=lobby)
        await insert_row(conn, GamePlayer, game_id=game, user_id=host, player_index=0)

        await conn.execute(delete(Lobby).where(Lobby.id == lobby))

        assert await conn.scalar(select(func.count()).select_from(Game).where(Game.id == game)) == 1
        assert await conn.scalar(select(Game.lobby_id).where(Game.id == game)) is None

        with pytest.raises(IntegrityError):
            await conn.execute(delete(User).where(User.id == host))


class TestUpdatedAtTrigger:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("explicit", [False, True])
    async def test_update_stamps_every_timestamped_table(self, conn, explicit):
        await apply_schema(conn, plan())
        host = await _user(conn, "stamp")
        lobby = await insert_row(conn, Lobby, code="STMP", name="stamp", host_user_id=host)
        game = await _game(conn, lobby_id=lobby)
        unit = await insert_row(
            conn, Unit, game_id=game, owner_user_id=host, unit_type="scout", x=0, y=0, hp=5, max_hp=5
        )

        targets = [
            (User, host, {"display_name": "Stamp"}),
            (Lobby, lobby, {"name": "renamed"}),
            (Game, game, {"status": "active"}),
            (Unit, unit, {"hp": 4}),
        ]
        for model, row_id, values in targets:
            before = await conn.scalar(select(model.updated_at).where(model.id == row_id))
            await asyncio.sleep(0.01)
            if explicit:
                values = {**values, "updated_at": before}
            await conn.execute(update(model).where(model.id == row_id).values(**values))
            after = await conn.scalar(select(model.updated_at).where(model.id == row_id))
            assert after > before, model.__tablename__
