# tests/test_api_battles.py

"""Tests for the battle, battle-set and team-version endpoints."""

import pytest
from httpx import AsyncClient

from samples import (
    FORMAT_ID,
    OPERATOR,
    USER_ROSTER,
    preview_only_log,
    replay_payload,
)

GAME_1 = "gen9vgc2024regg-2100000001"
GAME_2 = "gen9vgc2024regg-2100000002"


# =============================================================================
# Root and middleware
# =============================================================================


@pytest.mark.asyncio
async def test_read_root(async_client: AsyncClient):
    response = await async_client.get("/")
    assert response.status_code == 200
    assert response.json() == {"message": "Welcome to the ReplayLink API"}


@pytest.mark.asyncio
async def test_health_and_request_id(async_client: AsyncClient):
    response = await async_client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}
    assert len(response.headers["X-Request-ID"]) == 8

    echoed = await async_client.get("/health", headers={"X-Request-ID": "abc-123"})
    assert echoed.headers["X-Request-ID"] == "abc-123"


# =============================================================================
# Ingest and import
# =============================================================================


@pytest.mark.asyncio
async def test_ingest_battle(async_client: AsyncClient, make_team):
    team = await make_team("Full roster", USER_ROSTER)

    response = await async_client.post(
        "/battles/ingest",
        json={
            "payload": replay_payload(GAME_1),
            "replay_url": f"https://replays.test/{GAME_1}",
        },
    )

    assert response.status_code == 201
    data = response.json()
    assert data["battle"]["replay_id"] == GAME_1
    assert data["battle"]["replay_url"] == f"https://replays.test/{GAME_1}"
    assert data["battle"]["winner_status"] == "resolved"
    assert data["brought"] == {"p1": 4, "p2": 2, "total": 6}
    assert data["link"]["linked"] is True
    assert data["link"]["team_version_id"] == team.id
    assert data["link"]["source"] == "brought"


@pytest.mark.asyncio
async def test_ingest_battle_without_autolink(async_client: AsyncClient, make_team):
    await make_team("Full roster", USER_ROSTER)

    response = await async_client.post(
        "/battles/ingest",
        json={"payload": replay_payload(GAME_1), "autolink": False},
    )

    assert response.status_code == 201
    assert response.json()["link"] is None


@pytest.mark.asyncio
async def test_import_battles(async_client: AsyncClient, replay_source):
    replay_source[GAME_1] = replay_payload(GAME_1)
    replay_source[GAME_2] = replay_payload(GAME_2)

    response = await async_client.post(
        "/battles/import",
        json={
            "replays": [GAME_1],
            "text": f"https://replays.test/{GAME_2}\n\n{GAME_1}\nnope",
        },
    )

    assert response.status_code == 200
    data = response.json()
    assert data["ok_count"] == 2
    assert data["fail_count"] == 1
    assert data["set_id"] is not None
    assert [row["ok"] for row in data["rows"]] == [True, True, False]
    assert data["rows"][2]["input"] == "nope"


# =============================================================================
# Listing and detail
# =============================================================================


@pytest.mark.asyncio
async def test_list_battles_from_user_side(async_client: AsyncClient, ingest):
    vgc = await ingest(GAME_1)
    preview = await ingest(GAME_2, log=preview_only_log(USER_ROSTER))

    response = await async_client.get("/battles/")

    assert response.status_code == 200
    data = response.json()
    assert data["total"] == 2
    assert data["has_more"] is False
    # Newest played first: the preview-only log starts later
    assert [item["id"] for item in data["items"]] == [preview.id, vgc.id]

    newest, oldest = data["items"]
    assert oldest["user_side"] == "p1"
    assert oldest["user_player_name"] == OPERATOR
    assert oldest["opponent_name"] == "Gary Oak"
    assert oldest["result"] == "win"
    assert oldest["user_species"] == [
        "Incineroar",
        "Flutter Mane",
        "Rillaboom",
        "Amoonguss",
    ]
    assert oldest["opponent_species"] == ["Calyrex-Shadow", "Pelipper"]
    assert oldest["user_link"] is None

    assert newest["opponent_name"] == "Misty"
    assert newest["result"] is None
    assert newest["user_species"] == USER_ROSTER
    assert newest["opponent_species"] == []


@pytest.mark.asyncio
async def test_list_battles_sort_and_paginate(async_client: AsyncClient, ingest):
    first = await ingest(GAME_1)
    second = await ingest(GAME_2, log=preview_only_log(USER_ROSTER))

    response = await async_client.get(
        "/battles/", params={"sort_by": "played_at", "sort_order": "asc", "limit": 1}
    )
    data = response.json()
    assert [item["id"] for item in data["items"]] == [first.id]
    assert data["has_more"] is True

    response = await async_client.get(
        "/battles/", params={"sort_order": "asc", "skip": 1, "limit": 1}
    )
    data = response.json()
    assert [item["id"] for item in data["items"]] == [second.id]
    assert data["has_more"] is False


@pytest.mark.asyncio
async def test_list_battles_filters(async_client: AsyncClient, ingest, make_team):
    vgc = await ingest(GAME_1)
    ou = await ingest(
        GAME_2, log=preview_only_log(USER_ROSTER), formatid=None, format="gen9ou"
    )
    await make_team("Full roster", USER_ROSTER)
    await async_client.post(f"/battles/{vgc.id}/relink")

    by_format = await async_client.get("/battles/", params={"format_id": FORMAT_ID})
    assert [item["id"] for item in by_format.json()["items"]] == [vgc.id]

    by_name = await async_client.get("/battles/", params={"format_id": "gen9ou"})
    assert [item["id"] for item in by_name.json()["items"]] == [ou.id]

    linked = await async_client.get("/battles/", params={"linked": True})
    linked_items = linked.json()["items"]
    assert [item["id"] for item in linked_items] == [vgc.id]
    assert linked_items[0]["user_link"]["matched_by"] == "auto"

    unlinked = await async_client.get("/battles/", params={"linked": False})
    assert [item["id"] for item in unlinked.json()["items"]] == [ou.id]


@pytest.mark.asyncio
async def test_list_battles_invalid_params(async_client: AsyncClient):
    assert (await async_client.get("/battles/", params={"limit": 0})).status_code == 422
    assert (
        await async_client.get("/battles/", params={"sort_by": "views"})
    ).status_code == 422


@pytest.mark.asyncio
async def test_read_battle_detail(async_client: AsyncClient, ingest):
    battle = await ingest(GAME_1)

    response = await async_client.get(f"/battles/{battle.id}")

    assert response.status_code == 200
    data = response.json()
    assert data["battle"]["replay_id"] == GAME_1
    assert data["user_side"] == "p1"
    assert data["user_link"] is None
    assert [s["side"] for s in data["sides"]] == ["p1", "p2"]
    assert len(data["preview"]) == 12
    assert [r["species_name"] for r in data["revealed"]] == [
        "Incineroar",
        "Flutter Mane",
        "Rillaboom",
        "Amoonguss",
    ]
    assert data["revealed"][0]["tera_type"] == "Ghost"

    brought = {b["species_name"]: b for b in data["brought"]}
    assert len(brought) == 6
    assert brought["Flutter Mane"]["is_lead"] is True
    assert brought["Flutter Mane"]["fainted"] is True
    assert brought["Rillaboom"]["is_lead"] is False
    assert brought["Amoonguss"]["fainted"] is False

    events = data["events"]
    assert [e["event_index"] for e in events] == list(range(len(events)))
    assert events[-1]["raw_line"] == "|win|Ash Ketchum"


# =============================================================================
# Linking
# =============================================================================


@pytest.mark.asyncio
async def test_relink_and_rederive(async_client: AsyncClient, ingest, make_team):
    battle = await ingest(GAME_1)
    team = await make_team("Full roster", USER_ROSTER)

    relink = await async_client.post(f"/battles/{battle.id}/relink")
    assert relink.status_code == 200
    data = relink.json()
    assert data["linked"] is True
    assert data["team_version_id"] == team.id
    assert data["overlap"] == 4
    assert data["team_size"] == 6

    rederive = await async_client.post(f"/battles/{battle.id}/rederive")
    assert rederive.status_code == 200
    assert rederive.json() == {"p1": 4, "p2": 2, "total": 6}


@pytest.mark.asyncio
async def test_score_battle(async_client: AsyncClient, ingest, make_team):
    battle = await ingest(GAME_1)
    team = await make_team("Full roster", USER_ROSTER)

    response = await async_client.get(
        f"/battles/{battle.id}/score", params={"team_version_id": team.id}
    )
    assert response.status_code == 200
    assert response.json()["linked"] is True

    strict = await async_client.get(
        f"/battles/{battle.id}/score",
        params={"team_version_id": team.id, "min_confidence": 0.9},
    )
    assert strict.json()["linked"] is False

    detail = await async_client.get(f"/battles/{battle.id}")
    assert detail.json()["user_link"] is None


@pytest.mark.asyncio
async def test_set_user_link(async_client: AsyncClient, ingest, make_team):
    battle = await ingest(GAME_1)
    team = await make_team("Chosen", ["Mew"])

    response = await async_client.put(
        f"/battles/{battle.id}/link", json={"team_version_id": team.id}
    )

    assert response.status_code == 200
    data = response.json()
    assert data["side"] == "p1"
    assert data["team_version_id"] == team.id
    assert data["matched_by"] == "user"
    assert data["match_confidence"] == 1.0

    # Auto-linking reports the user's choice back
    relink = await async_client.post(f"/battles/{battle.id}/relink")
    assert relink.json()["method"] == "user"
    assert relink.json()["team_version_id"] == team.id

    cleared = await async_client.put(
        f"/battles/{battle.id}/link", json={"team_version_id": None}
    )
    assert cleared.json()["team_version_id"] is None
    assert cleared.json()["match_confidence"] is None


@pytest.mark.asyncio
async def test_backfill_team_version(async_client: AsyncClient, ingest, make_team):
    await ingest(GAME_1)
    await ingest(GAME_2, log=preview_only_log(["Mew"]))
    team = await make_team("Full roster", USER_ROSTER)

    response = await async_client.post(f"/team-versions/{team.id}/backfill")

    assert response.status_code == 200
    assert response.json() == {"team_version_id": team.id, "scanned": 2, "linked": 1}


# =============================================================================
# Battle sets
# =============================================================================


@pytest.mark.asyncio
async def test_battle_set_endpoints(async_client: AsyncClient, replay_source):
    replay_source[GAME_1] = replay_payload(GAME_1)
    replay_source[GAME_2] = replay_payload(GAME_2)
    imported = await async_client.post(
        "/battles/import", json={"replays": [GAME_2, GAME_1]}
    )
    set_id = imported.json()["set_id"]

    listing = await async_client.get("/battle-sets/")
    assert listing.status_code == 200
    data = listing.json()
    assert data["total"] == 1
    assert data["items"][0]["id"] == set_id

    response = await async_client.get(f"/battle-sets/{set_id}")
    assert response.status_code == 200
    games = response.json()["games"]
    assert [(g["replay_id"], g["game_number"]) for g in games] == [
        (GAME_2, 1),
        (GAME_1, 2),
    ]
    assert all(g["winner_side"] == "p1" for g in games)
