# tests/test_ingest_service.py

"""Tests for single-replay ingestion."""

from datetime import datetime, timezone

import pytest
from replaylink.db import models
from replaylink.exceptions import BattleNotFoundError, MissingReplayFieldError
from replaylink.schemas.replay import ReplayPayload
from replaylink.services import battle_ingest_service, battle_link_service
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from samples import (
    FORMAT_ID,
    FORMAT_NAME,
    OPERATOR,
    USER_ROSTER,
    VGC_LOG,
    replay_payload,
)

DERIVED_MODELS = (
    models.BattleEvent,
    models.BattleSide,
    models.BattlePreviewPokemon,
    models.BattleRevealedSet,
    models.BattlePokemonInstance,
    models.BattleBroughtPokemon,
)


async def _count(db: AsyncSession, model) -> int:
    return await db.scalar(select(func.count()).select_from(model))


async def _counts(db: AsyncSession) -> dict[str, int]:
    return {model.__tablename__: await _count(db, model) for model in DERIVED_MODELS}


@pytest.mark.asyncio
async def test_ingest_writes_header_and_derived_rows(db_session, ingest):
    battle = await ingest("gen9vgc2024regg-300")

    assert battle.replay_id == "gen9vgc2024regg-300"
    assert battle.format_id == FORMAT_ID
    assert battle.format_name == FORMAT_NAME
    assert battle.gen == 9
    assert battle.game_type == "doubles"
    assert battle.is_rated is True
    assert battle.winner_name == "Ash Ketchum"
    assert battle.winner_side == "p1"
    assert battle.winner_status == "resolved"
    assert battle.views == 12
    assert battle.raw_log == VGC_LOG
    assert battle.raw_json["id"] == "gen9vgc2024regg-300"

    counts = await _counts(db_session)
    assert counts["battle_events"] == len(VGC_LOG.split("\n"))
    assert counts["battle_sides"] == 2
    assert counts["battle_preview_pokemon"] == 12
    assert counts["battle_revealed_sets"] == 4
    assert counts["battle_pokemon_instances"] == 6
    assert counts["battle_brought_pokemon"] == 6


@pytest.mark.asyncio
async def test_ingest_reports_brought_summary(db_session):
    outcome = await battle_ingest_service.ingest_replay(
        db_session, ReplayPayload(**replay_payload("gen9vgc2024regg-301")), OPERATOR
    )
    assert (outcome.brought.p1, outcome.brought.p2, outcome.brought.total) == (4, 2, 6)


@pytest.mark.asyncio
async def test_reingest_is_idempotent(db_session, ingest):
    first = await ingest("gen9vgc2024regg-302")
    created_at = first.created_at
    counts = await _counts(db_session)

    second = await ingest("gen9vgc2024regg-302")

    assert second.id == first.id
    assert second.created_at == created_at
    assert second.updated_at is not None
    assert await _counts(db_session) == counts
    assert await _count(db_session, models.Battle) == 1


@pytest.mark.asyncio
async def test_reingest_refreshes_header(db_session, ingest):
    await ingest("gen9vgc2024regg-303")
    battle = await ingest("gen9vgc2024regg-303", views=99)
    assert battle.views == 99


@pytest.mark.asyncio
async def test_reingest_keeps_user_link_and_drops_auto_link(
    db_session, ingest, make_team
):
    battle = await ingest("gen9vgc2024regg-304")
    other = await ingest("gen9vgc2024regg-305")
    team = await make_team("Full roster", USER_ROSTER)

    await battle_link_service.set_user_link(db_session, battle.id, team.id)
    await battle_link_service.auto_link_battle(db_session, other.id)
    assert await battle_link_service.get_link(db_session, other.id, "p1") is not None

    await ingest("gen9vgc2024regg-304")
    await ingest("gen9vgc2024regg-305")

    kept = await battle_link_service.get_link(db_session, battle.id, "p1")
    assert kept is not None
    assert kept.matched_by == "user"
    assert kept.team_version_id == team.id
    assert await battle_link_service.get_link(db_session, other.id, "p1") is None


@pytest.mark.asyncio
async def test_reingest_clears_analysis_cache(db_session, ingest):
    battle = await ingest("gen9vgc2024regg-306")
    db_session.add(
        models.BattleAnalysisCache(
            battle_id=battle.id, analysis_kind="turn_summary", payload={"turns": 2}
        )
    )
    await db_session.commit()

    await ingest("gen9vgc2024regg-306")

    assert await _count(db_session, models.BattleAnalysisCache) == 0


@pytest.mark.asyncio
async def test_missing_fields_write_nothing(db_session):
    with pytest.raises(MissingReplayFieldError) as exc:
        await battle_ingest_service.ingest_replay(
            db_session, ReplayPayload(log=VGC_LOG), OPERATOR
        )
    assert exc.value.details["field"] == "id"

    with pytest.raises(MissingReplayFieldError) as exc:
        await battle_ingest_service.ingest_replay(
            db_session, ReplayPayload(id="gen9vgc2024regg-307", log="  \n"), OPERATOR
        )
    assert exc.value.details["field"] == "log"
    assert exc.value.details["replay_id"] == "gen9vgc2024regg-307"

    assert await _count(db_session, models.Battle) == 0


@pytest.mark.asyncio
async def test_played_at_prefers_first_time_marker(ingest):
    battle = await ingest("gen9vgc2024regg-308")
    expected = datetime.fromtimestamp(1718000000, tz=timezone.utc)
    assert battle.played_at.replace(tzinfo=timezone.utc) == expected


@pytest.mark.asyncio
async def test_played_at_falls_back_to_upload_time(ingest):
    battle = await ingest("gen9vgc2024regg-309", log="|player|p1|Ash Ketchum||")
    expected = datetime.fromtimestamp(1718000500, tz=timezone.utc)
    assert battle.played_at.replace(tzinfo=timezone.utc) == expected
    assert battle.winner_status == "none"


@pytest.mark.asyncio
async def test_played_at_defaults_to_now(ingest):
    before = datetime.now(timezone.utc)
    battle = await ingest(
        "gen9vgc2024regg-310", log="|player|p1|Ash Ketchum||", uploadtime=None
    )
    assert battle.upload_time is None
    assert battle.played_at.replace(tzinfo=timezone.utc) >= before.replace(
        microsecond=0
    )


@pytest.mark.asyncio
async def test_out_of_range_numbers_are_stored_as_null(db_session, ingest):
    battle = await ingest(
        "gen9vgc2024regg-312",
        log=VGC_LOG.replace("|t:|1718000060", "|t:|1e30"),
        rating=99999999999999999999,
        uploadtime=10**20,
    )

    assert battle.rating is None
    assert battle.upload_time is None
    expected = datetime.fromtimestamp(1718000000, tz=timezone.utc)
    assert battle.played_at.replace(tzinfo=timezone.utc) == expected

    events = await db_session.scalars(
        select(models.BattleEvent)
        .where(
            models.BattleEvent.battle_id == battle.id,
            models.BattleEvent.raw_line.in_(["|t:|1e30", "|faint|p1b: Flutter Mane"]),
        )
        .order_by(models.BattleEvent.event_index)
    )
    assert [(e.turn_num, e.t_unix) for e in events.all()] == [(1, None), (1, None)]

    brought = await _count(db_session, models.BattleBroughtPokemon)
    assert brought == 6


@pytest.mark.asyncio
async def test_rederive_and_relink(db_session, ingest, make_team):
    battle = await ingest("gen9vgc2024regg-311")
    team = await make_team("Full roster", USER_ROSTER)

    summary = await battle_ingest_service.rederive_battle(db_session, battle.id)
    assert summary.total == 6

    decision = await battle_ingest_service.relink_battle(db_session, battle.id)
    assert decision.linked is True
    assert decision.team_version_id == team.id

    with pytest.raises(BattleNotFoundError):
        await battle_ingest_service.rederive_battle(db_session, 999)
    with pytest.raises(BattleNotFoundError):
        await battle_ingest_service.relink_battle(db_session, 999)


def test_set_key_ignores_order():
    key = battle_ingest_service.compute_set_key(["b-2", "a-1", "c-3"])
    assert key == battle_ingest_service.compute_set_key(["c-3", "b-2", "a-1"])
    assert key.startswith("batch:")
    assert key != battle_ingest_service.compute_set_key(["a-1", "b-2"])
