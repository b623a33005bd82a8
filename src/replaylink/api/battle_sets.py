# src/replaylink/api/battle_sets.py

"""API endpoints for battle sets."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from replaylink.db.session import get_db
from replaylink.schemas.battle_set import BattleSetRead
from replaylink.schemas.pagination import PaginatedResponse
from replaylink.services import battle_query_service

router = APIRouter(prefix="/battle-sets", tags=["Battle Sets"])


@router.get("/", response_model=PaginatedResponse[BattleSetRead])
async def read_battle_sets(
    skip: int = Query(0, ge=0, description="Records to skip"),
    limit: int = Query(50, ge=1, le=100, description="Max records to return"),
    db: AsyncSession = Depends(get_db),
) -> PaginatedResponse[BattleSetRead]:
    """Retrieve battle sets, most recently updated first, with their games."""
    items, total = await battle_query_service.list_battle_sets(db, skip=skip, limit=limit)
    return PaginatedResponse(
        items=items,
        total=total,
        skip=skip,
        limit=limit,
        has_more=(skip + len(items)) < total,
    )


@router.get("/{set_id}", response_model=BattleSetRead)
async def read_battle_set(set_id: int, db: AsyncSession = Depends(get_db)) -> BattleSetRead:
    """Retrieve one battle set with its games in order."""
    return await battle_query_service.get_battle_set(db, set_id)
