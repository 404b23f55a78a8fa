"""ORM models for the strategy game schema.

The bootstrap compiles its CREATE TABLE / CREATE INDEX statements from these
models, so they are the single description of the schema. Enum types are
declared with create_type=False: they are created by conditional DO blocks,
never by the table DDL.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import ENUM, JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from sgdb.db.base import Base

# ---------------------------------------------------------------------------
# Enumerated types
# ---------------------------------------------------------------------------

LOBBY_STATUSES = ("open", "in_game", "closed")
GAME_STATUSES = ("waiting", "active", "finished", "abandoned")
PLAYER_STATUSES = ("joined", "ready", "left", "disconnected")
ACTION_TYPES = ("move", "attack", "ability", "end_turn", "surrender")
MATCH_RESULTS = ("win", "loss", "draw", "abandoned")

lobby_status_enum = ENUM(*LOBBY_STATUSES, name="lobby_status", create_type=False)
game_status_enum = ENUM(*GAME_STATUSES, name="game_status", create_type=False)
player_status_enum = ENUM(*PLAYER_STATUSES, name="player_status", create_type=False)
action_type_enum = ENUM(*ACTION_TYPES, name="action_type", create_type=False)
match_result_enum = ENUM(*MATCH_RESULTS, name="match_result", create_type=False)

ENUM_TYPES = (lobby_status_enum, game_status_enum, player_status_enum, action_type_enum, match_result_enum)

# Tables whose updated_at is stamped by the set_updated_at() trigger
TIMESTAMPED_TABLES = ("users", "lobbies", "games", "units")

_UUID_PK = text("gen_random_uuid()")
_NOW = text("NOW()")
_EMPTY_OBJECT = text("'{}'::jsonb")
_EMPTY_ARRAY = text("'[]'::jsonb")


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class User(Base):
    """Registered player account."""

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, server_default=_UUID_PK)
    email: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    username: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    password_hash: Mapped[str] = mapped_column(Text, nullable=False)
    display_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    avatar_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=_NOW)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=_NOW)
    last_login_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


# ---------------------------------------------------------------------------
# Lobbies
# ---------------------------------------------------------------------------


class Lobby(Base):
    """Pre-game matchmaking room with a single host."""

    __tablename__ = "lobbies"

    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, server_default=_UUID_PK)
    code: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    host_user_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False), ForeignKey("users.id", ondelete="RESTRICT"), nullable=False
    )
    status: Mapped[str] = mapped_column(lobby_status_enum, nullable=False, server_default="open")
    max_players: Mapped[int] = mapped_column(Integer, nullable=False, server_default="2")
    is_private: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default="false")
    settings: Mapped[dict[str, Any]] = mapped_column(JSONB, nullable=False, server_default=_EMPTY_OBJECT)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=_NOW)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=_NOW)


class LobbyPlayer(Base):
    """Membership of a user in a lobby."""

    __tablename__ = "lobby_players"
    __table_args__ = (
        UniqueConstraint("lobby_id", "slot"),
        Index("idx_lobby_players_lobby", "lobby_id"),
        Index("idx_lobby_players_user", "user_id"),
    )

    lobby_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False), ForeignKey("lobbies.id", ondelete="CASCADE"), primary_key=True
    )
    user_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    slot: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(player_status_enum, nullable=False, server_default="joined")
    joined_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=_NOW)
    ready_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    left_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


# ---------------------------------------------------------------------------
# Games
# ---------------------------------------------------------------------------


class Game(Base):
    """A running or finished match instance.

    lobby_id is nulled, not cascaded, when the originating lobby goes away.
    """

    __tablename__ = "games"
    __table_args__ = (
        Index("idx_games_lobby", "lobby_id"),
        Index("idx_games_status", "status"),
        Index("idx_games_turn_expires", "turn_expires_at"),
    )

    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, server_default=_UUID_PK)
    lobby_id: Mapped[str | None] = mapped_column(
        UUID(as_uuid=False), ForeignKey("lobbies.id", ondelete="SET NULL"), nullable=True
    )
    status: Mapped[str] = mapped_column(game_status_enum, nullable=False, server_default="waiting")
    map_width: Mapped[int] = mapped_column(Integer, nullable=False)
    map_height: Mapped[int] = mapped_column(Integer, nullable=False)
    map_seed: Mapped[str | None] = mapped_column(Text, nullable=True)
    map_state: Mapped[dict[str, Any]] = mapped_column(JSONB, nullable=False, server_default=_EMPTY_OBJECT)
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    finished_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    current_turn: Mapped[int] = mapped_column(Integer, nullable=False, server_default="1")
    current_player_index: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    turn_expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    winning_user_id: Mapped[str | None] = mapped_column(
        UUID(as_uuid=False), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    result_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=_NOW)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=_NOW)


class GamePlayer(Base):
    """A user's seat in a game."""

    __tablename__ = "game_players"
    __table_args__ = (
        UniqueConstraint("game_id", "player_index"),
        Index("idx_game_players_game", "game_id"),
        Index("idx_game_players_user", "user_id"),
    )

    game_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False), ForeignKey("games.id", ondelete="CASCADE"), primary_key=True
    )
    user_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False), ForeignKey("users.id", ondelete="RESTRICT"), primary_key=True
    )
    player_index: Mapped[int] = mapped_column(Integer, nullable=False)
    team: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    is_ai: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default="false")
    joined_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=_NOW)
    eliminated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


# ---------------------------------------------------------------------------
# Units
# ---------------------------------------------------------------------------


class Unit(Base):
    """A game piece on the map.

    Dead units stay in the table; only alive ones are unique per tile.
    """

    __tablename__ = "units"
    __table_args__ = (
        Index("idx_units_game", "game_id"),
        Index("idx_units_owner", "owner_user_id"),
        Index("idx_units_game_pos", "game_id", "x", "y"),
        Index(
            "ux_units_alive_tile",
            "game_id",
            "x",
            "y",
            unique=True,
            postgresql_where=text("is_alive = true"),
        ),
    )

    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, server_default=_UUID_PK)
    game_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False), ForeignKey("games.id", ondelete="CASCADE"), nullable=False
    )
    owner_user_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False), ForeignKey("users.id", ondelete="RESTRICT"), nullable=False
    )
    unit_type: Mapped[str] = mapped_column(Text, nullable=False)
    name: Mapped[str | None] = mapped_column(Text, nullable=True)
    x: Mapped[int] = mapped_column(Integer, nullable=False)
    y: Mapped[int] = mapped_column(Integer, nullable=False)
    hp: Mapped[int] = mapped_column(Integer, nullable=False)
    max_hp: Mapped[int] = mapped_column(Integer, nullable=False)
    attack: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    defense: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    movement: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    range_: Mapped[int] = mapped_column("range", Integer, nullable=False, server_default="1")
    status_effects: Mapped[list[Any]] = mapped_column(JSONB, nullable=False, server_default=_EMPTY_ARRAY)
    cooldowns: Mapped[dict[str, Any]] = mapped_column(JSONB, nullable=False, server_default=_EMPTY_OBJECT)
    is_alive: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default="true")
    spawned_turn: Mapped[int] = mapped_column(Integer, nullable=False, server_default="1")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=_NOW)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=_NOW)


# ---------------------------------------------------------------------------
# Turns / Actions
# ---------------------------------------------------------------------------


class Turn(Base):
    """One player's turn within a game."""

    __tablename__ = "turns"
    __table_args__ = (
        UniqueConstraint("game_id", "turn_number", "player_index"),
        Index("idx_turns_game_turn", "game_id", "turn_number"),
    )

    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, server_default=_UUID_PK)
    game_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False), ForeignKey("games.id", ondelete="CASCADE"), nullable=False
    )
    turn_number: Mapped[int] = mapped_column(Integer, nullable=False)
    player_index: Mapped[int] = mapped_column(Integer, nullable=False)
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=_NOW)
    ended_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    time_limit_seconds: Mapped[int | None] = mapped_column(Integer, nullable=True)
    ended_reason: Mapped[str | None] = mapped_column(Text, nullable=True)


class Action(Base):
    """A single player action. Rows are written once and never updated."""

    __tablename__ = "actions"
    __table_args__ = (
        Index("idx_actions_game_created", "game_id", "created_at"),
        Index("idx_actions_turn", "turn_id"),
        Index("idx_actions_actor_user", "actor_user_id"),
    )

    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, server_default=_UUID_PK)
    game_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False), ForeignKey("games.id", ondelete="CASCADE"), nullable=False
    )
    turn_id: Mapped[str | None] = mapped_column(
        UUID(as_uuid=False), ForeignKey("turns.id", ondelete="SET NULL"), nullable=True
    )
    actor_user_id: Mapped[str | None] = mapped_column(
        UUID(as_uuid=False), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    actor_unit_id: Mapped[str | None] = mapped_column(
        UUID(as_uuid=False), ForeignKey("units.id", ondelete="SET NULL"), nullable=True
    )
    action_type: Mapped[str] = mapped_column(action_type_enum, nullable=False)
    payload: Mapped[dict[str, Any]] = mapped_column(JSONB, nullable=False, server_default=_EMPTY_OBJECT)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=_NOW)


# ---------------------------------------------------------------------------
# Match history
# ---------------------------------------------------------------------------


class Match(Base):
    """Finished-game summary. Survives deletion of the game it records."""

    __tablename__ = "matches"
    __table_args__ = (
        Index("idx_matches_finished_at", "finished_at"),
        Index("idx_matches_winner", "winning_user_id"),
    )

    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, server_default=_UUID_PK)
    game_id: Mapped[str | None] = mapped_column(
        UUID(as_uuid=False), ForeignKey("games.id", ondelete="SET NULL"), nullable=True, unique=True
    )
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    finished_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    result: Mapped[str] = mapped_column(match_result_enum, nullable=False, server_default="abandoned")
    winning_user_id: Mapped[str | None] = mapped_column(
        UUID(as_uuid=False), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    summary: Mapped[dict[str, Any]] = mapped_column(JSONB, nullable=False, server_default=_EMPTY_OBJECT)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=_NOW)


class MatchPlayer(Base):
    """Per-user outcome in a finished match."""

    __tablename__ = "match_players"
    __table_args__ = (Index("idx_match_players_user", "user_id"),)

    match_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False), ForeignKey("matches.id", ondelete="CASCADE"), primary_key=True
    )
    user_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False), ForeignKey("users.id", ondelete="RESTRICT"), primary_key=True
    )
    result: Mapped[str] = mapped_column(match_result_enum, nullable=False)
    stats: Mapped[dict[str, Any]] = mapped_column(JSONB, nullable=False, server_default=_EMPTY_OBJECT)
    player_index: Mapped[int | None] = mapped_column(Integer, nullable=True)
    team: Mapped[int | None] = mapped_column(Integer, nullable=True)


# ---------------------------------------------------------------------------
# Schema versioning
# ---------------------------------------------------------------------------


class SchemaMigration(Base):
    """Append-only ledger of applied schema versions."""

    __tablename__ = "schema_migrations"

    version: Mapped[str] = mapped_column(Text, primary_key=True)
    applied_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=_NOW)
