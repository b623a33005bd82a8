# src/replaylink/schemas/battle.py

"""Pydantic schemas for the Battle resource and its derived rows."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict

from .link import LinkDecisionRead, TeamLinkRead

# ===============================================
# == Derived row schemas
# ===============================================


class BattleSideRead(BaseModel):
    side: str
    player_name: str
    avatar: str | None = None
    rating: int | None = None
    is_user: bool

    model_config = ConfigDict(from_attributes=True)


class PreviewPokemonRead(BaseModel):
    side: str
    slot_index: int
    species_name: str
    level: int | None = None
    gender: str | None = None
    shiny: bool = False
    raw_text: str | None = None

    model_config = ConfigDict(from_attributes=True)


class RevealedSetRead(BaseModel):
    side: str
    species_name: str
    nickname: str | None = None
    item_name: str | None = None
    ability_name: str | None = None
    tera_type: str | None = None
    level: int | None = None
    gender: str | None = None
    shiny: bool = False
    moves: list[str] = []

    model_config = ConfigDict(from_attributes=True)


class BroughtPokemonRead(BaseModel):
    side: str
    species_name: str
    is_lead: bool
    fainted: bool
    first_seen_event_index: int


class BattleEventRead(BaseModel):
    event_index: int
    turn_num: int | None = None
    t_unix: int | None = None
    line_type: str
    raw_line: str

    model_config = ConfigDict(from_attributes=True)


# ===============================================
# == Battle schemas
# ===============================================


class BattleRead(BaseModel):
    """Battle header fields returned to the client."""

    id: int
    replay_id: str
    replay_url: str | None = None
    format_id: str | None = None
    format_name: str | None = None
    gen: int | None = None
    game_type: str | None = None
    upload_time: datetime | None = None
    played_at: datetime | None = None
    views: int | None = None
    rating: int | None = None
    is_private: bool
    is_rated: bool
    winner_name: str | None = None
    winner_side: str | None = None
    winner_status: Literal["none", "unresolved", "resolved"]
    created_at: datetime
    updated_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class BattleListItem(BattleRead):
    """A battle row in listings, seen from the user's side."""

    user_side: str | None = None
    user_player_name: str | None = None
    opponent_name: str | None = None
    result: Literal["win", "loss"] | None = None
    user_link: TeamLinkRead | None = None
    user_species: list[str] = []
    opponent_species: list[str] = []


class BattleDetail(BaseModel):
    """Full view of one battle with all derived rows."""

    battle: BattleRead
    sides: list[BattleSideRead]
    preview: list[PreviewPokemonRead]
    revealed: list[RevealedSetRead]
    brought: list[BroughtPokemonRead]
    events: list[BattleEventRead]
    user_side: str | None = None
    user_link: TeamLinkRead | None = None


class BroughtSummaryRead(BaseModel):
    p1: int
    p2: int
    total: int


class BattleIngestResponse(BaseModel):
    """Result of ingesting one replay payload."""

    battle: BattleRead
    brought: BroughtSummaryRead
    link: LinkDecisionRead | None = None
