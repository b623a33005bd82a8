# src/replaylink/services/battle_link_service.py

"""Business logic for linking battles to team versions.

Only the user's side of a battle is ever linked. Scoring lives in
``replaylink.matching.overlap``; this module loads the species facts and
rosters it needs and persists the outcome as ``BattleTeamLink`` rows.
"""

from __future__ import annotations

import logging
from collections import defaultdict

from sqlalchemy import and_, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from replaylink.db import models
from replaylink.db.models import utcnow
from replaylink.db.upsert import insert_for
from replaylink.exceptions import (
    BattleNotFoundError,
    NoUserSideError,
    TeamVersionNotFoundError,
)
from replaylink.matching.overlap import (
    DEFAULT_REVEALED_TRUST_FLOOR,
    METHOD_BY_SOURCE,
    EvidenceSource,
    LinkDecision,
    SpeciesEvidence,
    pick_best,
    score_team,
    select_evidence,
)

logger = logging.getLogger(__name__)

MATCHED_BY_AUTO = "auto"
MATCHED_BY_USER = "user"
METHOD_USER = "user"

DEFAULT_TEAM_LIMIT = 200
DEFAULT_BACKFILL_LIMIT = 500


# ===============================================
# == Species loaders
# ===============================================


async def get_user_side(db: AsyncSession, battle_id: int) -> str | None:
    """The side whose player is the operator, if any."""
    result = await db.execute(
        select(models.BattleSide.side)
        .where(
            models.BattleSide.battle_id == battle_id,
            models.BattleSide.is_user.is_(True),
        )
        .order_by(models.BattleSide.side)
        .limit(1)
    )
    return result.scalar_one_or_none()


async def list_brought_species(db: AsyncSession, battle_id: int, side: str) -> list[str]:
    Brought = models.BattleBroughtPokemon
    Instance = models.BattlePokemonInstance
    result = await db.execute(
        select(Instance.species_name)
        .join(Brought, Brought.pokemon_instance_id == Instance.id)
        .where(Brought.battle_id == battle_id, Brought.side == side)
        .order_by(Brought.first_seen_event_index)
    )
    return list(result.scalars().all())


async def list_revealed_species(
    db: AsyncSession, battle_id: int, side: str
) -> list[str]:
    Revealed = models.BattleRevealedSet
    result = await db.execute(
        select(Revealed.species_name)
        .where(Revealed.battle_id == battle_id, Revealed.side == side)
        .order_by(Revealed.id)
    )
    return list(result.scalars().all())


async def list_preview_species(db: AsyncSession, battle_id: int, side: str) -> list[str]:
    Preview = models.BattlePreviewPokemon
    result = await db.execute(
        select(Preview.species_name)
        .where(Preview.battle_id == battle_id, Preview.side == side)
        .order_by(Preview.slot_index)
    )
    return list(result.scalars().all())


async def load_side_evidence(
    db: AsyncSession,
    battle_id: int,
    side: str,
    trust_floor: int = DEFAULT_REVEALED_TRUST_FLOOR,
) -> SpeciesEvidence:
    """Best available species evidence for one side of a battle."""
    return select_evidence(
        brought=await list_brought_species(db, battle_id, side),
        revealed=await list_revealed_species(db, battle_id, side),
        preview=await list_preview_species(db, battle_id, side),
        trust_floor=trust_floor,
    )


async def list_team_species(
    db: AsyncSession, team_version_ids: list[int]
) -> dict[int, list[str]]:
    """Roster species of each team version, in slot order."""
    if not team_version_ids:
        return {}
    Slot = models.TeamVersionSlot
    result = await db.execute(
        select(Slot.team_version_id, Slot.species_name)
        .where(Slot.team_version_id.in_(team_version_ids))
        .order_by(Slot.team_version_id, Slot.slot_index)
    )
    species: dict[int, list[str]] = defaultdict(list)
    for team_version_id, species_name in result.all():
        species[team_version_id].append(species_name)
    return species


async def list_candidate_team_versions(
    db: AsyncSession,
    format_hint: str | None = None,
    limit: int = DEFAULT_TEAM_LIMIT,
) -> list[int]:
    """IDs of the latest version of every team, newest first.

    With a format hint only teams of that format are considered.
    """
    Team = models.Team
    Version = models.TeamVersion

    latest = (
        select(Version.team_id, func.max(Version.version_num).label("max_version"))
        .group_by(Version.team_id)
        .subquery()
    )
    query = (
        select(Version.id)
        .join(Team, Team.id == Version.team_id)
        .join(
            latest,
            and_(
                latest.c.team_id == Version.team_id,
                latest.c.max_version == Version.version_num,
            ),
        )
        .order_by(Version.created_at.desc(), Version.id.desc())
        .limit(limit)
    )

    format_key = (format_hint or "").strip()
    if format_key:
        query = query.where(func.coalesce(Team.format_id, "") == format_key)

    result = await db.execute(query)
    return list(result.scalars().all())


# ===============================================
# == Link persistence
# ===============================================


async def get_link(
    db: AsyncSession, battle_id: int, side: str
) -> models.BattleTeamLink | None:
    # Links are written with Core upserts; refresh any copy already in the session
    result = await db.execute(
        select(models.BattleTeamLink)
        .where(
            models.BattleTeamLink.battle_id == battle_id,
            models.BattleTeamLink.side == side,
        )
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def upsert_link(
    db: AsyncSession,
    battle_id: int,
    side: str,
    team_version_id: int | None,
    confidence: float | None,
    method: str,
    matched_by: str = MATCHED_BY_AUTO,
) -> None:
    """Insert or replace the link of one battle side.

    Automatic writes leave rows with matched_by='user' untouched. Does not
    commit.
    """
    table = models.BattleTeamLink.__table__
    stmt = insert_for(db, table).values(
        battle_id=battle_id,
        side=side,
        team_version_id=team_version_id,
        match_confidence=confidence,
        match_method=method,
        matched_by=matched_by,
        matched_at=utcnow(),
    )
    set_ = {
        "team_version_id": stmt.excluded.team_version_id,
        "match_confidence": stmt.excluded.match_confidence,
        "match_method": stmt.excluded.match_method,
        "matched_by": stmt.excluded.matched_by,
        "matched_at": stmt.excluded.matched_at,
    }
    if matched_by == MATCHED_BY_USER:
        stmt = stmt.on_conflict_do_update(index_elements=["battle_id", "side"], set_=set_)
    else:
        stmt = stmt.on_conflict_do_update(
            index_elements=["battle_id", "side"],
            set_=set_,
            where=table.c.matched_by != MATCHED_BY_USER,
        )
    await db.execute(stmt)


# ===============================================
# == Matching
# ===============================================


def _no_data(source: EvidenceSource = EvidenceSource.NONE) -> LinkDecision:
    return LinkDecision(
        linked=False,
        confidence=0.0,
        method=METHOD_BY_SOURCE[source],
        source=source,
        team_size=0,
        overlap=0,
    )


async def evaluate_battle(
    db: AsyncSession,
    battle_id: int,
    team_version_id: int,
    min_overlap: int | None = None,
    min_confidence: float | None = None,
    trust_floor: int = DEFAULT_REVEALED_TRUST_FLOOR,
) -> LinkDecision:
    """Score one team version against the user side of one battle.

    Read-only. A battle without a user side scores as ``team-link_no_data``.

    Raises:
        BattleNotFoundError: If the battle doesn't exist
        TeamVersionNotFoundError: If the team version doesn't exist
    """
    if await db.get(models.Battle, battle_id) is None:
        raise BattleNotFoundError(battle_id)
    if await db.get(models.TeamVersion, team_version_id) is None:
        raise TeamVersionNotFoundError(team_version_id)

    side = await get_user_side(db, battle_id)
    if side is None:
        return _no_data()

    evidence = await load_side_evidence(db, battle_id, side, trust_floor)
    rosters = await list_team_species(db, [team_version_id])
    return score_team(
        evidence,
        rosters.get(team_version_id, []),
        min_overlap=min_overlap,
        min_confidence=min_confidence,
        team_version_id=team_version_id,
    )


async def auto_link_battle(
    db: AsyncSession,
    battle_id: int,
    format_hint: str | None = None,
    limit: int = DEFAULT_TEAM_LIMIT,
    trust_floor: int = DEFAULT_REVEALED_TRUST_FLOOR,
) -> LinkDecision:
    """
    Links the user side of a battle to the best-matching team version.

    Candidates are the latest versions of all teams (see
    ``list_candidate_team_versions``). The highest confidence among the
    candidates that clear their thresholds wins; on ties the newest team
    wins. Nothing is written when no candidate qualifies, and a link the user
    set by hand is reported back unchanged.

    Raises:
        BattleNotFoundError: If the battle doesn't exist
    """
    if await db.get(models.Battle, battle_id) is None:
        raise BattleNotFoundError(battle_id)

    side = await get_user_side(db, battle_id)
    if side is None:
        logger.debug("No user side, skipping auto-link", extra={"battle_id": battle_id})
        return _no_data()

    existing = await get_link(db, battle_id, side)
    if existing is not None and existing.matched_by == MATCHED_BY_USER:
        logger.debug("Keeping user link", extra={"battle_id": battle_id})
        return LinkDecision(
            linked=existing.team_version_id is not None,
            confidence=existing.match_confidence or 0.0,
            method=METHOD_USER,
            source=EvidenceSource.NONE,
            team_size=0,
            overlap=0,
            team_version_id=existing.team_version_id,
        )

    evidence = await load_side_evidence(db, battle_id, side, trust_floor)
    if not evidence.species:
        return _no_data(evidence.source)

    candidates = await list_candidate_team_versions(db, format_hint, limit)
    rosters = await list_team_species(db, candidates)
    best = pick_best(
        score_team(evidence, rosters.get(tv_id, []), team_version_id=tv_id)
        for tv_id in candidates
    )
    if best is None:
        logger.info(
            "No team version qualified",
            extra={"battle_id": battle_id, "candidates": len(candidates)},
        )
        return _no_data(evidence.source)

    try:
        await upsert_link(
            db,
            battle_id,
            side,
            best.team_version_id,
            best.confidence,
            best.method,
            matched_by=MATCHED_BY_AUTO,
        )
        await db.commit()
    except Exception as e:
        logger.error(
            "Failed to write auto link",
            extra={"battle_id": battle_id, "error": str(e)},
            exc_info=True,
        )
        await db.rollback()
        raise

    logger.info(
        "Battle auto-linked",
        extra={
            "battle_id": battle_id,
            "team_version_id": best.team_version_id,
            "confidence": best.confidence,
            "method": best.method,
        },
    )
    return best


async def list_backfill_battle_ids(
    db: AsyncSession,
    format_hint: str | None = None,
    limit: int = DEFAULT_BACKFILL_LIMIT,
) -> list[int]:
    """Battles whose user side has no team yet, newest first.

    Battles carrying any link the user made are left out. A format hint that
    matches nothing falls back to all battles.
    """
    Battle = models.Battle
    Link = models.BattleTeamLink
    Side = models.BattleSide

    has_user_team = (
        select(Link.id)
        .join(Side, and_(Side.battle_id == Link.battle_id, Side.side == Link.side))
        .where(
            Link.battle_id == Battle.id,
            Side.is_user.is_(True),
            Link.team_version_id.is_not(None),
        )
        .exists()
    )
    has_user_made = (
        select(Link.id)
        .where(Link.battle_id == Battle.id, Link.matched_by == MATCHED_BY_USER)
        .exists()
    )
    query = (
        select(Battle.id)
        .where(~has_user_team, ~has_user_made)
        .order_by(
            func.coalesce(Battle.played_at, Battle.upload_time, Battle.created_at).desc(),
            Battle.id.desc(),
        )
        .limit(limit)
    )

    format_key = (format_hint or "").strip()
    if format_key:
        result = await db.execute(
            query.where(
                func.coalesce(Battle.format_id, Battle.format_name, "") == format_key
            )
        )
        ids = list(result.scalars().all())
        if ids:
            return ids

    result = await db.execute(query)
    return list(result.scalars().all())


async def backfill_for_team_version(
    db: AsyncSession,
    team_version_id: int,
    format_hint: str | None = None,
    limit: int = DEFAULT_BACKFILL_LIMIT,
    trust_floor: int = DEFAULT_REVEALED_TRUST_FLOOR,
) -> tuple[int, int]:
    """
    Links existing battles to a newly imported team version.

    Every battle still lacking a team on its user side is scored against the
    team version; the ones that clear the thresholds get an automatic link.

    Returns:
        (scanned, linked) counts

    Raises:
        TeamVersionNotFoundError: If the team version doesn't exist
    """
    if await db.get(models.TeamVersion, team_version_id) is None:
        raise TeamVersionNotFoundError(team_version_id)

    if not format_hint:
        team = await db.execute(
            select(models.Team.format_id)
            .join(models.TeamVersion, models.TeamVersion.team_id == models.Team.id)
            .where(models.TeamVersion.id == team_version_id)
        )
        format_hint = team.scalar_one_or_none()

    rosters = await list_team_species(db, [team_version_id])
    roster = rosters.get(team_version_id, [])
    scanned = 0
    linked = 0

    try:
        for battle_id in await list_backfill_battle_ids(db, format_hint, limit):
            scanned += 1
            side = await get_user_side(db, battle_id)
            if side is None:
                continue

            evidence = await load_side_evidence(db, battle_id, side, trust_floor)
            decision = score_team(evidence, roster, team_version_id=team_version_id)
            if not decision.linked:
                continue

            await upsert_link(
                db,
                battle_id,
                side,
                team_version_id,
                decision.confidence,
                decision.method,
                matched_by=MATCHED_BY_AUTO,
            )
            linked += 1

        await db.commit()
    except Exception as e:
        logger.error(
            "Backfill failed",
            extra={"team_version_id": team_version_id, "error": str(e)},
            exc_info=True,
        )
        await db.rollback()
        raise

    logger.info(
        "Backfill complete",
        extra={"team_version_id": team_version_id, "scanned": scanned, "linked": linked},
    )
    return scanned, linked


async def set_user_link(
    db: AsyncSession, battle_id: int, team_version_id: int | None
) -> models.BattleTeamLink:
    """
    Records the team the user says they played in a battle.

    A null team version records "no known team". User links outrank every
    automatic pass and survive re-ingestion.

    Raises:
        BattleNotFoundError: If the battle doesn't exist
        TeamVersionNotFoundError: If the team version doesn't exist
        NoUserSideError: If neither side of the battle is the operator's
    """
    if await db.get(models.Battle, battle_id) is None:
        raise BattleNotFoundError(battle_id)
    if (
        team_version_id is not None
        and await db.get(models.TeamVersion, team_version_id) is None
    ):
        raise TeamVersionNotFoundError(team_version_id)

    side = await get_user_side(db, battle_id)
    if side is None:
        raise NoUserSideError(battle_id)

    try:
        await upsert_link(
            db,
            battle_id,
            side,
            team_version_id,
            1.0 if team_version_id is not None else None,
            METHOD_USER,
            matched_by=MATCHED_BY_USER,
        )
        await db.commit()
    except Exception as e:
        logger.error(
            "Failed to set user link",
            extra={"battle_id": battle_id, "error": str(e)},
            exc_info=True,
        )
        await db.rollback()
        raise

    logger.info(
        "User link set",
        extra={"battle_id": battle_id, "team_version_id": team_version_id},
    )
    link = await get_link(db, battle_id, side)
    if link is None:
        # The battle was deleted after the commit
        raise BattleNotFoundError(battle_id)
    return link
