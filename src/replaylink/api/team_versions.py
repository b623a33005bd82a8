# src/replaylink/api/team_versions.py

"""API endpoints acting on imported team versions."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from replaylink.config import Settings, get_settings
from replaylink.db.session import get_db
from replaylink.schemas.link import BackfillResult
from replaylink.services import battle_link_service

router = APIRouter(prefix="/team-versions", tags=["Team Versions"])


@router.post("/{team_version_id}/backfill", response_model=BackfillResult)
async def backfill_team_version(
    team_version_id: int,
    format_hint: str | None = Query(None, description="Format to scan first"),
    limit: int = Query(
        battle_link_service.DEFAULT_BACKFILL_LIMIT,
        ge=1,
        le=5000,
        description="Max battles to scan",
    ),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> BackfillResult:
    """
    Link existing battles to a team version.

    Scans the newest battles whose user side has no team yet and links the
    ones that match. Defaults to the team's own format.
    """
    scanned, linked = await battle_link_service.backfill_for_team_version(
        db,
        team_version_id,
        format_hint=format_hint,
        limit=limit,
        trust_floor=settings.revealed_trust_floor,
    )
    return BackfillResult(team_version_id=team_version_id, scanned=scanned, linked=linked)
