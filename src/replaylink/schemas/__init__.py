# src/replaylink/schemas/__init__.py

"""Pydantic schemas for API validation and serialization."""

from .battle import (
    BattleDetail,
    BattleEventRead,
    BattleIngestResponse,
    BattleListItem,
    BattleRead,
    BattleSideRead,
    BroughtPokemonRead,
    BroughtSummaryRead,
    PreviewPokemonRead,
    RevealedSetRead,
)
from .battle_set import BattleSetGameRead, BattleSetRead
from .link import BackfillResult, LinkDecisionRead, TeamLinkRead, UserLinkUpdate
from .pagination import BattleSortField, PaginatedResponse, SortOrder
from .replay import (
    ReplayImportRequest,
    ReplayImportResult,
    ReplayImportRow,
    ReplayIngestRequest,
    ReplayPayload,
)

__all__ = [
    # Battle
    "BattleDetail",
    "BattleEventRead",
    "BattleIngestResponse",
    "BattleListItem",
    "BattleRead",
    "BattleSideRead",
    "BroughtPokemonRead",
    "BroughtSummaryRead",
    "PreviewPokemonRead",
    "RevealedSetRead",
    # Battle Set
    "BattleSetGameRead",
    "BattleSetRead",
    # Link
    "BackfillResult",
    "LinkDecisionRead",
    "TeamLinkRead",
    "UserLinkUpdate",
    # Pagination
    "BattleSortField",
    "PaginatedResponse",
    "SortOrder",
    # Replay
    "ReplayImportRequest",
    "ReplayImportResult",
    "ReplayImportRow",
    "ReplayIngestRequest",
    "ReplayPayload",
]
