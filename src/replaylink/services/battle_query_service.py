# src/replaylink/services/battle_query_service.py

"""Read-side projections of battles and battle sets."""

from __future__ import annotations

from collections import defaultdict

from sqlalchemy import and_, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from replaylink.db import models
from replaylink.exceptions import BattleNotFoundError, BattleSetNotFoundError
from replaylink.matching.overlap import DEFAULT_REVEALED_TRUST_FLOOR, select_evidence
from replaylink.schemas import battle as battle_schema
from replaylink.schemas import battle_set as battle_set_schema
from replaylink.schemas.link import TeamLinkRead
from replaylink.schemas.pagination import BattleSortField, SortOrder


def _sort_column(sort_by: BattleSortField):  # type: ignore[no-untyped-def]
    Battle = models.Battle
    if sort_by == BattleSortField.PLAYED_AT:
        return func.coalesce(Battle.played_at, Battle.upload_time, Battle.created_at)
    return getattr(Battle, sort_by.value)


def _user_team_link_exists():  # type: ignore[no-untyped-def]
    Link = models.BattleTeamLink
    Side = models.BattleSide
    return (
        select(Link.id)
        .join(Side, and_(Side.battle_id == Link.battle_id, Side.side == Link.side))
        .where(
            Link.battle_id == models.Battle.id,
            Side.is_user.is_(True),
            Link.team_version_id.is_not(None),
        )
        .exists()
    )


async def _species_by_side(
    db: AsyncSession, battle_ids: list[int], trust_floor: int
) -> dict[tuple[int, str], list[str]]:
    """Best available species per (battle, side), for a page of battles."""
    brought: dict[tuple[int, str], list[str]] = defaultdict(list)
    revealed: dict[tuple[int, str], list[str]] = defaultdict(list)
    preview: dict[tuple[int, str], list[str]] = defaultdict(list)

    Brought = models.BattleBroughtPokemon
    Instance = models.BattlePokemonInstance
    result = await db.execute(
        select(Brought.battle_id, Brought.side, Instance.species_name)
        .join(Instance, Instance.id == Brought.pokemon_instance_id)
        .where(Brought.battle_id.in_(battle_ids))
        .order_by(Brought.battle_id, Brought.first_seen_event_index)
    )
    for battle_id, side, species in result.all():
        brought[(battle_id, side)].append(species)

    Revealed = models.BattleRevealedSet
    result = await db.execute(
        select(Revealed.battle_id, Revealed.side, Revealed.species_name)
        .where(Revealed.battle_id.in_(battle_ids))
        .order_by(Revealed.battle_id, Revealed.id)
    )
    for battle_id, side, species in result.all():
        revealed[(battle_id, side)].append(species)

    Preview = models.BattlePreviewPokemon
    result = await db.execute(
        select(Preview.battle_id, Preview.side, Preview.species_name)
        .where(Preview.battle_id.in_(battle_ids))
        .order_by(Preview.battle_id, Preview.slot_index)
    )
    for battle_id, side, species in result.all():
        preview[(battle_id, side)].append(species)

    return {
        key: select_evidence(
            brought.get(key, []),
            revealed.get(key, []),
            preview.get(key, []),
            trust_floor=trust_floor,
        ).species
        for key in set(brought) | set(revealed) | set(preview)
    }


async def list_battles(
    db: AsyncSession,
    skip: int = 0,
    limit: int = 50,
    sort_by: BattleSortField = BattleSortField.PLAYED_AT,
    sort_order: SortOrder = SortOrder.DESC,
    format_id: str | None = None,
    linked: bool | None = None,
    trust_floor: int = DEFAULT_REVEALED_TRUST_FLOOR,
) -> tuple[list[battle_schema.BattleListItem], int]:
    """
    One page of battles as seen from the user's side, and the total count.

    ``format_id`` matches the format id, or the format name when a battle has
    no id. ``linked`` keeps only battles whose user side has (or lacks) a team.
    """
    Battle = models.Battle
    base_query = select(Battle)

    if format_id:
        base_query = base_query.where(
            func.coalesce(Battle.format_id, Battle.format_name, "") == format_id
        )
    if linked is True:
        base_query = base_query.where(_user_team_link_exists())
    elif linked is False:
        base_query = base_query.where(~_user_team_link_exists())

    count_query = select(func.count()).select_from(base_query.subquery())
    total = (await db.execute(count_query)).scalar_one()

    sort_column = _sort_column(sort_by)
    if sort_order == SortOrder.DESC:
        order = (sort_column.desc(), Battle.id.desc())
    else:
        order = (sort_column.asc(), Battle.id.asc())

    result = await db.execute(base_query.order_by(*order).offset(skip).limit(limit))
    battles = list(result.scalars().all())
    if not battles:
        return [], total

    battle_ids = [b.id for b in battles]
    sides_result = await db.execute(
        select(models.BattleSide).where(models.BattleSide.battle_id.in_(battle_ids))
    )
    sides: dict[int, dict[str, models.BattleSide]] = defaultdict(dict)
    for row in sides_result.scalars().all():
        sides[row.battle_id][row.side] = row

    links_result = await db.execute(
        select(models.BattleTeamLink)
        .where(models.BattleTeamLink.battle_id.in_(battle_ids))
        .execution_options(populate_existing=True)
    )
    links = {(row.battle_id, row.side): row for row in links_result.scalars().all()}
    species = await _species_by_side(db, battle_ids, trust_floor)

    items = []
    for battle in battles:
        battle_sides = sides.get(battle.id, {})
        user = next((s for s in battle_sides.values() if s.is_user), None)
        opponent_side = None
        if user is not None:
            opponent_side = "p2" if user.side == "p1" else "p1"
        opponent = battle_sides.get(opponent_side) if opponent_side else None

        result_tag = None
        if user is not None and battle.winner_side is not None:
            result_tag = "win" if battle.winner_side == user.side else "loss"

        link = links.get((battle.id, user.side)) if user is not None else None
        items.append(
            battle_schema.BattleListItem.model_validate(
                {
                    **battle_schema.BattleRead.model_validate(battle).model_dump(),
                    "user_side": user.side if user else None,
                    "user_player_name": user.player_name if user else None,
                    "opponent_name": opponent.player_name if opponent else None,
                    "result": result_tag,
                    "user_link": TeamLinkRead.model_validate(link) if link else None,
                    "user_species": species.get((battle.id, user.side), [])
                    if user
                    else [],
                    "opponent_species": species.get((battle.id, opponent_side), [])
                    if opponent_side
                    else [],
                }
            )
        )

    return items, total


async def get_battle_detail(
    db: AsyncSession, battle_id: int
) -> battle_schema.BattleDetail:
    """Battle header with every derived row.

    Raises:
        BattleNotFoundError: If the battle doesn't exist
    """
    battle = await db.get(models.Battle, battle_id, populate_existing=True)
    if battle is None:
        raise BattleNotFoundError(battle_id)

    async def rows(model, *order):  # type: ignore[no-untyped-def]
        result = await db.execute(
            select(model).where(model.battle_id == battle_id).order_by(*order)
        )
        return list(result.scalars().all())

    sides = await rows(models.BattleSide, models.BattleSide.side)
    preview = await rows(
        models.BattlePreviewPokemon,
        models.BattlePreviewPokemon.side,
        models.BattlePreviewPokemon.slot_index,
    )
    revealed = await rows(
        models.BattleRevealedSet, models.BattleRevealedSet.side, models.BattleRevealedSet.id
    )
    events = await rows(models.BattleEvent, models.BattleEvent.event_index)

    Brought = models.BattleBroughtPokemon
    brought_result = await db.execute(
        select(Brought)
        .where(Brought.battle_id == battle_id)
        .options(selectinload(Brought.instance))
        .order_by(Brought.first_seen_event_index)
    )
    brought = [
        battle_schema.BroughtPokemonRead(
            side=row.side,
            species_name=row.instance.species_name,
            is_lead=bool(row.is_lead),
            fainted=bool(row.fainted),
            first_seen_event_index=row.first_seen_event_index,
        )
        for row in brought_result.scalars().all()
    ]

    user_side = next((s.side for s in sides if s.is_user), None)
    user_link = None
    if user_side is not None:
        link_result = await db.execute(
            select(models.BattleTeamLink)
            .where(
                models.BattleTeamLink.battle_id == battle_id,
                models.BattleTeamLink.side == user_side,
            )
            .execution_options(populate_existing=True)
        )
        user_link = link_result.scalar_one_or_none()

    return battle_schema.BattleDetail(
        battle=battle_schema.BattleRead.model_validate(battle),
        sides=[battle_schema.BattleSideRead.model_validate(s) for s in sides],
        preview=[battle_schema.PreviewPokemonRead.model_validate(p) for p in preview],
        revealed=[battle_schema.RevealedSetRead.model_validate(r) for r in revealed],
        brought=brought,
        events=[battle_schema.BattleEventRead.model_validate(e) for e in events],
        user_side=user_side,
        user_link=TeamLinkRead.model_validate(user_link) if user_link else None,
    )


def _set_read(battle_set: models.BattleSet) -> battle_set_schema.BattleSetRead:
    return battle_set_schema.BattleSetRead(
        id=battle_set.id,
        set_key=battle_set.set_key,
        format_id=battle_set.format_id,
        format_name=battle_set.format_name,
        player1_name=battle_set.player1_name,
        player2_name=battle_set.player2_name,
        source=battle_set.source,
        created_at=battle_set.created_at,
        updated_at=battle_set.updated_at,
        games=[
            battle_set_schema.BattleSetGameRead(
                battle_id=game.battle_id,
                replay_id=game.battle.replay_id,
                game_number=game.game_number,
                total_games=game.total_games,
                winner_side=game.battle.winner_side,
            )
            for game in battle_set.games
        ],
    )


def _set_query():  # type: ignore[no-untyped-def]
    return (
        select(models.BattleSet)
        .options(
            selectinload(models.BattleSet.games).selectinload(models.BattleSetGame.battle)
        )
        .execution_options(populate_existing=True)
    )


async def list_battle_sets(
    db: AsyncSession, skip: int = 0, limit: int = 50
) -> tuple[list[battle_set_schema.BattleSetRead], int]:
    """Battle sets, most recently touched first, and the total count."""
    BattleSet = models.BattleSet
    total = (await db.execute(select(func.count(BattleSet.id)))).scalar_one()
    result = await db.execute(
        _set_query()
        .order_by(
            func.coalesce(BattleSet.updated_at, BattleSet.created_at).desc(),
            BattleSet.id.desc(),
        )
        .offset(skip)
        .limit(limit)
    )
    return [_set_read(s) for s in result.scalars().all()], total


async def get_battle_set(
    db: AsyncSession, set_id: int
) -> battle_set_schema.BattleSetRead:
    """
    Raises:
        BattleSetNotFoundError: If the set doesn't exist
    """
    result = await db.execute(_set_query().where(models.BattleSet.id == set_id))
    battle_set = result.scalar_one_or_none()
    if battle_set is None:
        raise BattleSetNotFoundError(set_id)
    return _set_read(battle_set)
