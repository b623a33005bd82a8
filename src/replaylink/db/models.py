# src/replaylink/db/models.py

"""Database models for the ReplayLink application."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import List

from sqlalchemy import (
    JSON,
    CheckConstraint,
    ForeignKey,
    String,
    Text,
    UniqueConstraint,
    select,
)
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import (
    Mapped,
    declarative_base,
    mapped_column,
    relationship,
)

Base = declarative_base()

SIDE_CHECK = "side IN ('p1', 'p2')"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ===============================================
# Mixins for Common Columns
# ===============================================


class TimestampMixin:
    """Mixin providing created_at and updated_at timestamp columns."""

    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime | None] = mapped_column(
        default=None,
        onupdate=utcnow,
        nullable=True,
    )


class BattleScopedMixin:
    """Mixin for rows derived from a battle and rebuilt on every ingestion."""

    battle_id: Mapped[int] = mapped_column(
        ForeignKey("battles.id", ondelete="CASCADE"), nullable=False, index=True
    )
    side: Mapped[str] = mapped_column(String(2), nullable=False)


# ===============================================
# Battle header
# ===============================================


class Battle(Base, TimestampMixin):
    """One recorded match transcript, keyed by its external replay id.

    The header is upserted on every ingestion; ``created_at`` keeps the time
    of the first import.
    """

    __tablename__ = "battles"
    id: Mapped[int] = mapped_column(primary_key=True)
    replay_id: Mapped[str] = mapped_column(String, unique=True, nullable=False)
    replay_url: Mapped[str | None] = mapped_column(String, nullable=True)
    replay_json_url: Mapped[str | None] = mapped_column(String, nullable=True)

    format_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    format_name: Mapped[str | None] = mapped_column(String, nullable=True)
    gen: Mapped[int | None] = mapped_column(nullable=True)
    game_type: Mapped[str | None] = mapped_column(String, nullable=True)

    # Business timestamps: upload time from the replay source, played_at from
    # the first time marker of the log (falls back to upload time)
    upload_time: Mapped[datetime | None] = mapped_column(nullable=True)
    played_at: Mapped[datetime | None] = mapped_column(nullable=True, index=True)

    views: Mapped[int | None] = mapped_column(nullable=True)
    rating: Mapped[int | None] = mapped_column(nullable=True)
    is_private: Mapped[bool] = mapped_column(default=False, nullable=False)
    is_rated: Mapped[bool] = mapped_column(default=False, nullable=False)

    # winner_status: 'none' | 'unresolved' | 'resolved'
    winner_name: Mapped[str | None] = mapped_column(String, nullable=True)
    winner_side: Mapped[str | None] = mapped_column(String(2), nullable=True)
    winner_status: Mapped[str] = mapped_column(String, default="none", nullable=False)

    raw_log: Mapped[str] = mapped_column(Text, nullable=False)
    raw_json: Mapped[dict] = mapped_column(JSON, default=lambda: {})


# ===============================================
# Rows derived from the transcript
# ===============================================


class BattleSide(Base, BattleScopedMixin):
    """A player declaration for one side of a battle."""

    __tablename__ = "battle_sides"
    id: Mapped[int] = mapped_column(primary_key=True)
    player_name: Mapped[str] = mapped_column(String, nullable=False)
    avatar: Mapped[str | None] = mapped_column(String, nullable=True)
    rating: Mapped[int | None] = mapped_column(nullable=True)
    # Display name matched the configured operator name
    is_user: Mapped[bool] = mapped_column(default=False, nullable=False)

    __table_args__ = (
        UniqueConstraint("battle_id", "side", name="_battle_side_uc"),
        CheckConstraint(SIDE_CHECK, name="ck_battle_sides_side"),
    )


class BattlePreviewPokemon(Base, BattleScopedMixin):
    """A pokemon shown at team preview; slots count per side from 1."""

    __tablename__ = "battle_preview_pokemon"
    id: Mapped[int] = mapped_column(primary_key=True)
    slot_index: Mapped[int] = mapped_column(nullable=False)
    species_name: Mapped[str] = mapped_column(String, nullable=False)
    level: Mapped[int | None] = mapped_column(nullable=True)
    gender: Mapped[str | None] = mapped_column(String(1), nullable=True)
    shiny: Mapped[bool] = mapped_column(default=False, nullable=False)
    raw_text: Mapped[str | None] = mapped_column(String, nullable=True)

    __table_args__ = (
        UniqueConstraint("battle_id", "side", "slot_index", name="_preview_slot_uc"),
        CheckConstraint(SIDE_CHECK, name="ck_battle_preview_side"),
    )


class BattleRevealedSet(Base, BattleScopedMixin):
    """A full set revealed by a team-reveal line; one per species per side."""

    __tablename__ = "battle_revealed_sets"
    id: Mapped[int] = mapped_column(primary_key=True)
    species_name: Mapped[str] = mapped_column(String, nullable=False)
    # Normalized species (trimmed, case-folded)
    species_key: Mapped[str] = mapped_column(String, nullable=False)
    nickname: Mapped[str | None] = mapped_column(String, nullable=True)
    item_name: Mapped[str | None] = mapped_column(String, nullable=True)
    ability_name: Mapped[str | None] = mapped_column(String, nullable=True)
    tera_type: Mapped[str | None] = mapped_column(String, nullable=True)
    level: Mapped[int | None] = mapped_column(nullable=True)
    gender: Mapped[str | None] = mapped_column(String(1), nullable=True)
    shiny: Mapped[bool] = mapped_column(default=False, nullable=False)
    # Ex: ["Moonblast", "Shadow Ball", "Protect", "Icy Wind"]
    moves: Mapped[list] = mapped_column(JSON, default=lambda: [])
    raw_fragment: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        UniqueConstraint("battle_id", "side", "species_key", name="_revealed_set_uc"),
        CheckConstraint(SIDE_CHECK, name="ck_battle_revealed_side"),
    )


class BattleEvent(Base):
    """One transcript line, stamped with the turn and time marker at that line.

    Events are the only input of re-derivation, so every line is kept, known
    line type or not.
    """

    __tablename__ = "battle_events"
    id: Mapped[int] = mapped_column(primary_key=True)
    battle_id: Mapped[int] = mapped_column(
        ForeignKey("battles.id", ondelete="CASCADE"), nullable=False, index=True
    )
    event_index: Mapped[int] = mapped_column(nullable=False)
    turn_num: Mapped[int | None] = mapped_column(nullable=True)
    t_unix: Mapped[int | None] = mapped_column(nullable=True)
    line_type: Mapped[str] = mapped_column(String, nullable=False, index=True)
    raw_line: Mapped[str] = mapped_column(Text, nullable=False)
    move_name: Mapped[str | None] = mapped_column(String, nullable=True)

    __table_args__ = (
        UniqueConstraint("battle_id", "event_index", name="_battle_event_index_uc"),
    )


class BattlePokemonInstance(Base, BattleScopedMixin):
    """Stable identity of one species on one side of a battle."""

    __tablename__ = "battle_pokemon_instances"
    id: Mapped[int] = mapped_column(primary_key=True)
    species_name: Mapped[str] = mapped_column(String, nullable=False)
    species_key: Mapped[str] = mapped_column(String, nullable=False)

    __table_args__ = (
        UniqueConstraint("battle_id", "side", "species_key", name="_instance_uc"),
        CheckConstraint(SIDE_CHECK, name="ck_battle_instances_side"),
    )

    @classmethod
    async def find(
        cls, db: AsyncSession, battle_id: int, side: str, species_key: str
    ) -> "BattlePokemonInstance | None":
        query = select(cls).where(
            cls.battle_id == battle_id,
            cls.side == side,
            cls.species_key == species_key,
        )
        result = await db.execute(query)
        return result.scalar_one_or_none()


class BattleBroughtPokemon(Base, BattleScopedMixin):
    """Fact that a pokemon instance was sent into play at least once."""

    __tablename__ = "battle_brought_pokemon"
    id: Mapped[int] = mapped_column(primary_key=True)
    pokemon_instance_id: Mapped[int] = mapped_column(
        ForeignKey("battle_pokemon_instances.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    first_seen_event_index: Mapped[int] = mapped_column(nullable=False)
    # 0/1 flags, merged with MAX on conflict so they never go back to 0
    is_lead: Mapped[int] = mapped_column(default=0, nullable=False)
    fainted: Mapped[int] = mapped_column(default=0, nullable=False)

    instance: Mapped["BattlePokemonInstance"] = relationship()

    __table_args__ = (
        UniqueConstraint(
            "battle_id", "side", "pokemon_instance_id", name="_brought_instance_uc"
        ),
        CheckConstraint(SIDE_CHECK, name="ck_battle_brought_side"),
    )


class BattleAnalysisCache(Base, TimestampMixin):
    """Cached downstream analysis of a battle, dropped on re-ingestion."""

    __tablename__ = "battle_analysis_cache"
    id: Mapped[int] = mapped_column(primary_key=True)
    battle_id: Mapped[int] = mapped_column(
        ForeignKey("battles.id", ondelete="CASCADE"), nullable=False, index=True
    )
    analysis_kind: Mapped[str] = mapped_column(String, nullable=False)
    payload: Mapped[dict] = mapped_column(JSON, default=lambda: {})

    __table_args__ = (
        UniqueConstraint("battle_id", "analysis_kind", name="_analysis_kind_uc"),
    )


# ===============================================
# Team rosters (written by the team-import subsystem)
# ===============================================


class Team(Base, TimestampMixin):
    """A user team; its rosters live in versions."""

    __tablename__ = "teams"
    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    format_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)

    versions: Mapped[List["TeamVersion"]] = relationship(
        back_populates="team", cascade="all, delete-orphan"
    )


class TeamVersion(Base):
    """An immutable roster snapshot of a team."""

    __tablename__ = "team_versions"
    id: Mapped[int] = mapped_column(primary_key=True)
    team_id: Mapped[int] = mapped_column(
        ForeignKey("teams.id", ondelete="CASCADE"), nullable=False, index=True
    )
    version_num: Mapped[int] = mapped_column(default=1, nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    team: Mapped["Team"] = relationship(back_populates="versions")
    slots: Mapped[List["TeamVersionSlot"]] = relationship(
        back_populates="team_version",
        cascade="all, delete-orphan",
        order_by="TeamVersionSlot.slot_index",
    )

    __table_args__ = (
        UniqueConstraint("team_id", "version_num", name="_team_version_num_uc"),
    )


class TeamVersionSlot(Base):
    """One roster slot of a team version."""

    __tablename__ = "team_version_slots"
    id: Mapped[int] = mapped_column(primary_key=True)
    team_version_id: Mapped[int] = mapped_column(
        ForeignKey("team_versions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    slot_index: Mapped[int] = mapped_column(nullable=False)
    species_name: Mapped[str] = mapped_column(String, nullable=False)

    team_version: Mapped["TeamVersion"] = relationship(back_populates="slots")

    __table_args__ = (
        UniqueConstraint("team_version_id", "slot_index", name="_team_slot_uc"),
    )


# ===============================================
# Links and sets
# ===============================================


class BattleTeamLink(Base):
    """Which team version a side of a battle played.

    ``matched_by`` is 'auto' or 'user'; user rows survive re-ingestion and are
    never replaced by automatic linking.
    """

    __tablename__ = "battle_team_links"
    id: Mapped[int] = mapped_column(primary_key=True)
    battle_id: Mapped[int] = mapped_column(
        ForeignKey("battles.id", ondelete="CASCADE"), nullable=False, index=True
    )
    side: Mapped[str] = mapped_column(String(2), nullable=False)
    team_version_id: Mapped[int | None] = mapped_column(
        ForeignKey("team_versions.id", ondelete="SET NULL"), nullable=True, index=True
    )
    match_confidence: Mapped[float | None] = mapped_column(nullable=True)
    match_method: Mapped[str | None] = mapped_column(String, nullable=True)
    matched_by: Mapped[str] = mapped_column(String, default="auto", nullable=False)
    matched_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("battle_id", "side", name="_battle_link_side_uc"),
        CheckConstraint(SIDE_CHECK, name="ck_battle_links_side"),
        CheckConstraint("matched_by IN ('auto', 'user')", name="ck_links_matched_by"),
    )


class BattleSet(Base, TimestampMixin):
    """A group of battles imported together (e.g. the games of a best-of-3).

    ``set_key`` hashes the sorted replay ids, so the same battles resolve to
    the same set whatever order they are submitted in.
    """

    __tablename__ = "battle_sets"
    id: Mapped[int] = mapped_column(primary_key=True)
    set_key: Mapped[str] = mapped_column(String, unique=True, nullable=False)
    format_id: Mapped[str | None] = mapped_column(String, nullable=True)
    format_name: Mapped[str | None] = mapped_column(String, nullable=True)
    player1_name: Mapped[str | None] = mapped_column(String, nullable=True)
    player2_name: Mapped[str | None] = mapped_column(String, nullable=True)
    # Ex: 'import-batch', 'manual'
    source: Mapped[str] = mapped_column(String, default="import-batch", nullable=False)

    games: Mapped[List["BattleSetGame"]] = relationship(
        back_populates="battle_set",
        cascade="all, delete-orphan",
        order_by="BattleSetGame.game_number",
    )


class BattleSetGame(Base):
    """Position of a battle inside a set."""

    __tablename__ = "battle_set_games"
    id: Mapped[int] = mapped_column(primary_key=True)
    set_id: Mapped[int] = mapped_column(
        ForeignKey("battle_sets.id", ondelete="CASCADE"), nullable=False, index=True
    )
    battle_id: Mapped[int] = mapped_column(
        ForeignKey("battles.id", ondelete="CASCADE"), nullable=False, index=True
    )
    game_number: Mapped[int] = mapped_column(nullable=False)
    total_games: Mapped[int] = mapped_column(nullable=False)

    battle_set: Mapped["BattleSet"] = relationship(back_populates="games")
    battle: Mapped["Battle"] = relationship()

    __table_args__ = (UniqueConstraint("set_id", "battle_id", name="_set_battle_uc"),)
