# src/replaylink/services/battle_ingest_service.py

"""Business logic for ingesting replays into the battle store."""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import delete, func, insert, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from replaylink.config import Settings
from replaylink.db import models
from replaylink.db.models import utcnow
from replaylink.db.upsert import insert_for
from replaylink.derive.brought import BroughtSummary, derive_brought_from_events
from replaylink.exceptions import (
    BattleNotFoundError,
    MissingReplayFieldError,
    ReplayLinkError,
)
from replaylink.matching.overlap import LinkDecision
from replaylink.protocol.classifier import TranscriptScan, scan_transcript
from replaylink.protocol.names import normalize_species
from replaylink.protocol.tokenizer import parse_int, split_log_lines
from replaylink.schemas.replay import (
    ReplayImportResult,
    ReplayImportRow,
    ReplayPayload,
)
from replaylink.services import battle_link_service
from replaylink.services.replay_client import ReplayClient
from replaylink.services.replay_refs import ReplayRef, parse_replay_ref

logger = logging.getLogger(__name__)

SET_SOURCE_BATCH = "import-batch"


@dataclass(frozen=True)
class IngestOutcome:
    battle: models.Battle
    brought: BroughtSummary


def _from_unix(value: int | None) -> datetime | None:
    if value is None:
        return None
    try:
        return datetime.fromtimestamp(value, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


def compute_set_key(replay_ids: list[str]) -> str:
    """Order-independent key of a group of replays."""
    digest = hashlib.sha1(",".join(sorted(replay_ids)).encode("utf-8")).hexdigest()
    return f"batch:{digest}"


async def _get_battle(db: AsyncSession, battle_id: int) -> models.Battle:
    # The header is written with a Core upsert; reload over any stale copy
    result = await db.execute(
        select(models.Battle)
        .where(models.Battle.id == battle_id)
        .execution_options(populate_existing=True)
    )
    battle = result.scalar_one_or_none()
    if battle is None:
        raise BattleNotFoundError(battle_id)
    return battle


# ===============================================
# == Single replay
# ===============================================


async def _upsert_header(
    db: AsyncSession,
    payload: ReplayPayload,
    scan: TranscriptScan,
    replay_url: str | None,
    replay_json_url: str | None,
) -> int:
    """Insert or refresh the battle header and return its id.

    ``created_at`` is only set by the first insert.
    """
    now = utcnow()
    upload_time = _from_unix(payload.uploadtime)
    played_at = _from_unix(scan.first_t_unix) or upload_time or now

    header: dict[str, Any] = {
        "replay_url": replay_url,
        "replay_json_url": replay_json_url,
        "format_id": payload.formatid,
        "format_name": payload.format,
        "gen": scan.gen,
        "game_type": scan.game_type,
        "upload_time": upload_time,
        "played_at": played_at,
        "views": parse_int(payload.views),
        "rating": parse_int(payload.rating),
        "is_private": payload.private,
        "is_rated": scan.is_rated,
        "winner_name": scan.winner_name,
        "winner_side": scan.winner_side,
        "winner_status": scan.winner_status.value,
        "raw_log": payload.log,
        "raw_json": payload.model_dump(mode="json"),
    }

    table = models.Battle.__table__
    stmt = insert_for(db, table).values(
        replay_id=payload.id, created_at=now, **header
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["replay_id"],
        set_={**header, "updated_at": now},
    ).returning(table.c.id)
    result = await db.execute(stmt)
    return result.scalar_one()


async def _clear_derived_rows(db: AsyncSession, battle_id: int) -> None:
    """Delete everything rebuilt from the transcript. User links are kept."""
    for model in (
        models.BattleBroughtPokemon,
        models.BattlePokemonInstance,
        models.BattleEvent,
        models.BattleSide,
        models.BattlePreviewPokemon,
        models.BattleRevealedSet,
        models.BattleAnalysisCache,
    ):
        await db.execute(delete(model).where(model.battle_id == battle_id))

    await db.execute(
        delete(models.BattleTeamLink).where(
            models.BattleTeamLink.battle_id == battle_id,
            models.BattleTeamLink.matched_by != battle_link_service.MATCHED_BY_USER,
        )
    )


async def _bulk_insert(db: AsyncSession, model: Any, rows: list[dict]) -> None:
    if rows:
        await db.execute(insert(model), rows)


async def _write_scan(db: AsyncSession, battle_id: int, scan: TranscriptScan) -> None:
    await _bulk_insert(
        db,
        models.BattleEvent,
        [
            {
                "battle_id": battle_id,
                "event_index": e.event_index,
                "turn_num": e.turn_num,
                "t_unix": e.t_unix,
                "line_type": e.line_type,
                "raw_line": e.raw_line,
                "move_name": e.move_name,
            }
            for e in scan.events
        ],
    )
    await _bulk_insert(
        db,
        models.BattleSide,
        [
            {
                "battle_id": battle_id,
                "side": s.side,
                "player_name": s.player_name,
                "avatar": s.avatar,
                "rating": s.rating,
                "is_user": s.is_user,
            }
            for s in scan.sides.values()
        ],
    )
    await _bulk_insert(
        db,
        models.BattlePreviewPokemon,
        [
            {
                "battle_id": battle_id,
                "side": p.side,
                "slot_index": p.slot_index,
                "species_name": p.species,
                "level": p.level,
                "gender": p.gender,
                "shiny": p.shiny,
                "raw_text": p.raw_text,
            }
            for p in scan.previews
        ],
    )
    await _bulk_insert(
        db,
        models.BattleRevealedSet,
        [
            {
                "battle_id": battle_id,
                "side": r.side,
                "species_name": r.revealed.species,
                "species_key": normalize_species(r.revealed.species),
                "nickname": r.revealed.nickname,
                "item_name": r.revealed.item,
                "ability_name": r.revealed.ability,
                "tera_type": r.revealed.tera_type,
                "level": r.revealed.level,
                "gender": r.revealed.gender,
                "shiny": r.revealed.shiny,
                "moves": list(r.revealed.moves),
                "raw_fragment": r.revealed.raw,
            }
            for r in scan.revealed
        ],
    )


async def ingest_replay(
    db: AsyncSession,
    payload: ReplayPayload,
    operator_name: str | None = None,
    replay_url: str | None = None,
    replay_json_url: str | None = None,
) -> IngestOutcome:
    """
    Ingests one replay document.

    This service is responsible for:
    1. Validating that the payload carries a replay id and a transcript
    2. Upserting the battle header, keyed by replay id
    3. Replacing every derived row (events, sides, preview, revealed sets,
       analysis cache and automatic links) with a fresh scan of the transcript
    4. Deriving pokemon instances and brought facts from the new events

    Steps 2-3 run in one transaction; derivation runs in its own. Ingesting
    the same replay again yields the same rows, except that ``created_at`` and
    user-made links are preserved. Linking is left to the caller.

    Raises:
        MissingReplayFieldError: If the id or the log is missing
    """
    if not payload.id:
        raise MissingReplayFieldError("id")
    if not (payload.log or "").strip():
        raise MissingReplayFieldError("log", payload.id)

    scan = scan_transcript(split_log_lines(payload.log or ""), operator_name)
    logger.info(
        "Ingesting replay",
        extra={"replay_id": payload.id, "event_count": len(scan.events)},
    )

    try:
        battle_id = await _upsert_header(db, payload, scan, replay_url, replay_json_url)
        await _clear_derived_rows(db, battle_id)
        await _write_scan(db, battle_id, scan)
        await db.commit()
    except Exception as e:
        logger.error(
            "Failed to ingest replay",
            extra={"replay_id": payload.id, "error": str(e)},
            exc_info=True,
        )
        await db.rollback()
        raise

    brought = await derive_brought_from_events(db, battle_id)
    battle = await _get_battle(db, battle_id)
    logger.info(
        "Replay ingested",
        extra={
            "battle_id": battle_id,
            "replay_id": battle.replay_id,
            "winner_status": battle.winner_status,
        },
    )
    return IngestOutcome(battle=battle, brought=brought)


async def rederive_battle(db: AsyncSession, battle_id: int) -> BroughtSummary:
    """Re-run brought derivation over a battle's stored events."""
    await _get_battle(db, battle_id)
    return await derive_brought_from_events(db, battle_id)


async def relink_battle(
    db: AsyncSession,
    battle_id: int,
    limit: int = battle_link_service.DEFAULT_TEAM_LIMIT,
    trust_floor: int = battle_link_service.DEFAULT_REVEALED_TRUST_FLOOR,
) -> LinkDecision:
    """Auto-link a battle, using its format as the candidate hint."""
    battle = await _get_battle(db, battle_id)
    return await battle_link_service.auto_link_battle(
        db,
        battle_id,
        format_hint=battle.format_id or battle.format_name,
        limit=limit,
        trust_floor=trust_floor,
    )


# ===============================================
# == Batch import
# ===============================================


async def _side_names(db: AsyncSession, battle_id: int) -> dict[str, str]:
    result = await db.execute(
        select(models.BattleSide.side, models.BattleSide.player_name).where(
            models.BattleSide.battle_id == battle_id
        )
    )
    return {side: name for side, name in result.all()}


async def attach_battle_set(db: AsyncSession, battle_ids: list[int]) -> int:
    """
    Groups battles imported together into a set and returns its id.

    The set is found by its order-independent key, so re-importing the same
    replays in any order updates the same set. Game numbers follow the order
    of ``battle_ids`` and overwrite those of earlier imports.
    """
    # Reload: a failed sibling import rolls back and expires loaded battles
    result = await db.execute(
        select(models.Battle)
        .where(models.Battle.id.in_(battle_ids))
        .execution_options(populate_existing=True)
    )
    by_id = {battle.id: battle for battle in result.scalars()}
    battles = [by_id[battle_id] for battle_id in battle_ids]

    set_key = compute_set_key([b.replay_id for b in battles])
    first = battles[0]
    names = await _side_names(db, first.id)
    now = utcnow()

    try:
        table = models.BattleSet.__table__
        stmt = insert_for(db, table).values(
            set_key=set_key,
            format_id=first.format_id,
            format_name=first.format_name,
            player1_name=names.get("p1"),
            player2_name=names.get("p2"),
            source=SET_SOURCE_BATCH,
            created_at=now,
        )
        # source is left alone so a manual set keeps its origin
        stmt = stmt.on_conflict_do_update(
            index_elements=["set_key"],
            set_={
                "format_id": stmt.excluded.format_id,
                "format_name": stmt.excluded.format_name,
                "player1_name": func.coalesce(
                    stmt.excluded.player1_name, table.c.player1_name
                ),
                "player2_name": func.coalesce(
                    stmt.excluded.player2_name, table.c.player2_name
                ),
                "updated_at": now,
            },
        ).returning(table.c.id)
        set_id = (await db.execute(stmt)).scalar_one()

        games = models.BattleSetGame.__table__
        for number, battle in enumerate(battles, start=1):
            game_stmt = insert_for(db, games).values(
                set_id=set_id,
                battle_id=battle.id,
                game_number=number,
                total_games=len(battles),
            )
            game_stmt = game_stmt.on_conflict_do_update(
                index_elements=["set_id", "battle_id"],
                set_={
                    "game_number": game_stmt.excluded.game_number,
                    "total_games": game_stmt.excluded.total_games,
                },
            )
            await db.execute(game_stmt)

        await db.commit()
    except Exception as e:
        logger.error(
            "Failed to attach battle set",
            extra={"set_key": set_key, "error": str(e)},
            exc_info=True,
        )
        await db.rollback()
        raise

    logger.info(
        "Battle set updated",
        extra={"set_id": set_id, "set_key": set_key, "games": len(battles)},
    )
    return set_id


async def import_replays(
    db: AsyncSession,
    references: list[str],
    client: ReplayClient,
    settings: Settings,
) -> ReplayImportResult:
    """
    Fetches and ingests a batch of replay URLs or ids.

    References are normalized to replay ids and de-duplicated
    case-insensitively, keeping the first occurrence. Replays are fetched and
    ingested one at a time; a bad reference, a failed fetch or an invalid
    payload only fails its own row, as does any other error raised while
    ingesting it. Each ingested battle is auto-linked, and when at least two
    succeed they are grouped into a battle set.
    """
    pending: list[tuple[str, ReplayRef | None, str | None]] = []
    seen: set[str] = set()
    for raw in references:
        try:
            ref = parse_replay_ref(raw, settings.replay_base_url)
        except ReplayLinkError as e:
            pending.append((raw, None, e.message))
            continue
        if ref.key in seen:
            continue
        seen.add(ref.key)
        pending.append((raw, ref, None))

    rows: list[ReplayImportRow] = []
    imported: list[int] = []

    for raw, ref, parse_error in pending:
        if ref is None:
            rows.append(ReplayImportRow(input=raw, ok=False, error=parse_error))
            continue

        try:
            payload = await client.fetch_replay(ref)
            outcome = await ingest_replay(
                db,
                payload,
                operator_name=settings.operator_name,
                replay_url=ref.replay_url,
                replay_json_url=ref.json_url,
            )
        except ReplayLinkError as e:
            logger.warning(
                "Replay import failed",
                extra={"replay_id": ref.replay_id, "error": e.message},
            )
            rows.append(
                ReplayImportRow(
                    input=raw, ok=False, replay_id=ref.replay_id, error=e.message
                )
            )
            continue
        except Exception as e:
            logger.error(
                "Replay import failed unexpectedly",
                extra={"replay_id": ref.replay_id, "error": str(e)},
                exc_info=True,
            )
            await db.rollback()
            rows.append(
                ReplayImportRow(
                    input=raw,
                    ok=False,
                    replay_id=ref.replay_id,
                    error=f"Ingest failed: {e}",
                )
            )
            continue

        battle = outcome.battle
        imported.append(battle.id)
        rows.append(
            ReplayImportRow(
                input=raw, ok=True, replay_id=battle.replay_id, battle_id=battle.id
            )
        )

        # Linking is retriable later; its failure doesn't fail the import
        try:
            await relink_battle(
                db,
                battle.id,
                limit=settings.autolink_team_limit,
                trust_floor=settings.revealed_trust_floor,
            )
        except (ReplayLinkError, SQLAlchemyError) as e:
            logger.warning(
                "Auto-link failed after import",
                extra={"battle_id": battle.id, "error": str(e)},
            )

    set_id = await attach_battle_set(db, imported) if len(imported) >= 2 else None

    ok_count = sum(1 for row in rows if row.ok)
    logger.info(
        "Replay batch imported",
        extra={"ok": ok_count, "failed": len(rows) - ok_count, "set_id": set_id},
    )
    return ReplayImportResult(
        ok_count=ok_count,
        fail_count=len(rows) - ok_count,
        set_id=set_id,
        rows=rows,
    )
