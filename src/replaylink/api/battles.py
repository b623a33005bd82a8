# src/replaylink/api/battles.py

"""API endpoints for importing, browsing and linking battles."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from replaylink.api.deps import get_replay_client
from replaylink.config import Settings, get_settings
from replaylink.db.models import BattleTeamLink
from replaylink.db.session import get_db
from replaylink.exceptions import ReplayLinkError
from replaylink.matching.overlap import LinkDecision
from replaylink.schemas import battle as battle_schema
from replaylink.schemas import link as link_schema
from replaylink.schemas import replay as replay_schema
from replaylink.schemas.pagination import BattleSortField, PaginatedResponse, SortOrder
from replaylink.services import (
    battle_ingest_service,
    battle_link_service,
    battle_query_service,
)
from replaylink.services.replay_client import ReplayClient
from replaylink.services.replay_refs import split_references

logger = logging.getLogger(__name__)

# Create an APIRouter instance for battles
router = APIRouter(prefix="/battles", tags=["Battles"])


def _decision_read(decision: LinkDecision) -> link_schema.LinkDecisionRead:
    return link_schema.LinkDecisionRead(
        linked=decision.linked,
        team_version_id=decision.team_version_id,
        confidence=decision.confidence,
        method=decision.method,
        source=decision.source.value,
        overlap=decision.overlap,
        team_size=decision.team_size,
    )


@router.post("/import", response_model=replay_schema.ReplayImportResult)
async def import_battles(
    request: replay_schema.ReplayImportRequest,
    db: AsyncSession = Depends(get_db),
    client: ReplayClient = Depends(get_replay_client),
    settings: Settings = Depends(get_settings),
) -> replay_schema.ReplayImportResult:
    """
    Import a batch of replays by URL or id.

    - **replays**: List of replay URLs or ids
    - **text**: Pasted block with one replay URL or id per line

    Each reference gets its own result row; one failure never stops the
    batch. Two or more successful imports are grouped into a battle set.
    """
    references = list(request.replays)
    if request.text:
        references.extend(split_references(request.text))
    if not references:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="No replay references given",
        )

    return await battle_ingest_service.import_replays(db, references, client, settings)


@router.post(
    "/ingest",
    response_model=battle_schema.BattleIngestResponse,
    status_code=status.HTTP_201_CREATED,
)
async def ingest_battle(
    request: replay_schema.ReplayIngestRequest,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> battle_schema.BattleIngestResponse:
    """
    Ingest an already-fetched replay document.

    Raises:
        422: If the payload has no replay id or no log
    """
    outcome = await battle_ingest_service.ingest_replay(
        db,
        request.payload,
        operator_name=settings.operator_name,
        replay_url=request.replay_url,
        replay_json_url=request.replay_json_url,
    )

    decision = None
    if request.autolink:
        try:
            decision = _decision_read(
                await battle_ingest_service.relink_battle(
                    db,
                    outcome.battle.id,
                    limit=settings.autolink_team_limit,
                    trust_floor=settings.revealed_trust_floor,
                )
            )
        except (ReplayLinkError, SQLAlchemyError) as e:
            logger.warning(
                "Auto-link failed after ingest",
                extra={"battle_id": outcome.battle.id, "error": str(e)},
            )

    return battle_schema.BattleIngestResponse(
        battle=battle_schema.BattleRead.model_validate(outcome.battle),
        brought=battle_schema.BroughtSummaryRead(
            p1=outcome.brought.p1, p2=outcome.brought.p2, total=outcome.brought.total
        ),
        link=decision,
    )


@router.get("/", response_model=PaginatedResponse[battle_schema.BattleListItem])
async def read_battles(
    skip: int = Query(0, ge=0, description="Records to skip"),
    limit: int = Query(50, ge=1, le=100, description="Max records to return"),
    sort_by: BattleSortField = Query(BattleSortField.PLAYED_AT, description="Sort field"),
    sort_order: SortOrder = Query(SortOrder.DESC, description="Sort direction"),
    format_id: str | None = Query(None, description="Filter by format"),
    linked: bool | None = Query(None, description="Filter by user-side team link"),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> PaginatedResponse[battle_schema.BattleListItem]:
    """
    Retrieve a paginated list of battles from the user's point of view.

    - **skip**: Number of records to skip (for pagination)
    - **limit**: Maximum number of records to return (1-100)
    - **sort_by**: Field to sort by (id, played_at, created_at)
    - **sort_order**: Sort direction (asc, desc)
    - **format_id**: Filter by format id (or format name when the id is missing)
    - **linked**: Only battles whose user side has (true) or lacks (false) a team
    """
    items, total = await battle_query_service.list_battles(
        db,
        skip=skip,
        limit=limit,
        sort_by=sort_by,
        sort_order=sort_order,
        format_id=format_id,
        linked=linked,
        trust_floor=settings.revealed_trust_floor,
    )
    return PaginatedResponse(
        items=items,
        total=total,
        skip=skip,
        limit=limit,
        has_more=(skip + len(items)) < total,
    )


@router.get("/{battle_id}", response_model=battle_schema.BattleDetail)
async def read_battle(
    battle_id: int, db: AsyncSession = Depends(get_db)
) -> battle_schema.BattleDetail:
    """
    Retrieve one battle with its sides, preview, revealed sets, brought
    pokemon, events and the user-side link.
    """
    return await battle_query_service.get_battle_detail(db, battle_id)


@router.post("/{battle_id}/relink", response_model=link_schema.LinkDecisionRead)
async def relink_battle(
    battle_id: int,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> link_schema.LinkDecisionRead:
    """Auto-link the user side of a battle to its best-matching team version."""
    decision = await battle_ingest_service.relink_battle(
        db,
        battle_id,
        limit=settings.autolink_team_limit,
        trust_floor=settings.revealed_trust_floor,
    )
    return _decision_read(decision)


@router.post("/{battle_id}/rederive", response_model=battle_schema.BroughtSummaryRead)
async def rederive_battle(
    battle_id: int, db: AsyncSession = Depends(get_db)
) -> battle_schema.BroughtSummaryRead:
    """Rebuild brought pokemon from the stored events of a battle."""
    summary = await battle_ingest_service.rederive_battle(db, battle_id)
    return battle_schema.BroughtSummaryRead(
        p1=summary.p1, p2=summary.p2, total=summary.total
    )


@router.get("/{battle_id}/score", response_model=link_schema.LinkDecisionRead)
async def score_battle(
    battle_id: int,
    team_version_id: int = Query(..., description="Team version to score"),
    min_overlap: int | None = Query(None, ge=0, description="Override min overlap"),
    min_confidence: float | None = Query(
        None, ge=0, le=1, description="Override min confidence"
    ),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> link_schema.LinkDecisionRead:
    """Score one team version against a battle without writing a link."""
    decision = await battle_link_service.evaluate_battle(
        db,
        battle_id,
        team_version_id,
        min_overlap=min_overlap,
        min_confidence=min_confidence,
        trust_floor=settings.revealed_trust_floor,
    )
    return _decision_read(decision)


@router.put("/{battle_id}/link", response_model=link_schema.TeamLinkRead)
async def set_battle_link(
    battle_id: int,
    link_in: link_schema.UserLinkUpdate,
    db: AsyncSession = Depends(get_db),
) -> BattleTeamLink:
    """
    Record the team the user played in a battle.

    - **team_version_id**: The team version, or null for "no known team"

    Raises:
        404: If the battle or team version doesn't exist
        422: If no side of the battle belongs to the operator
    """
    return await battle_link_service.set_user_link(
        db, battle_id, link_in.team_version_id
    )
