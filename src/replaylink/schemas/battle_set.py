# src/replaylink/schemas/battle_set.py

"""Pydantic schemas for battle sets (series of games imported together)."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict


class BattleSetGameRead(BaseModel):
    battle_id: int
    replay_id: str
    game_number: int
    total_games: int
    winner_side: str | None = None


class BattleSetRead(BaseModel):
    id: int
    set_key: str
    format_id: str | None = None
    format_name: str | None = None
    player1_name: str | None = None
    player2_name: str | None = None
    source: str
    created_at: datetime
    updated_at: datetime | None = None
    games: list[BattleSetGameRead] = []

    model_config = ConfigDict(from_attributes=True)
