# src/replaylink/schemas/link.py

"""Pydantic schemas for battle-to-team links."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class TeamLinkRead(BaseModel):
    """A stored link between a battle side and a team version."""

    side: str
    team_version_id: int | None
    match_confidence: float | None
    match_method: str | None
    matched_by: Literal["auto", "user"]
    matched_at: datetime

    model_config = ConfigDict(from_attributes=True)


class LinkDecisionRead(BaseModel):
    """Result of an auto-link attempt."""

    linked: bool
    team_version_id: int | None = None
    confidence: float | None = Field(default=None, ge=0, le=1)
    method: str | None = None
    source: str | None = None
    overlap: int | None = None
    team_size: int | None = None


class UserLinkUpdate(BaseModel):
    """Properties to receive when the user sets a battle's team by hand.

    A null ``team_version_id`` records that the battle used no known team.
    """

    team_version_id: int | None = None


class BackfillResult(BaseModel):
    team_version_id: int
    scanned: int
    linked: int
