from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest
from httpx import ASGITransport, AsyncClient

from liveauction.api import create_app
from liveauction.config import AuctionSettings
from liveauction.forms import FieldSpec, FormSchema

T1 = {"x-tenant-id": "t1"}
T2 = {"x-tenant-id": "t2"}


def _settings(tmp_path) -> AuctionSettings:
    return AuctionSettings(
        db_path=str(tmp_path / "api.sqlite"),
        media_dir=tmp_path / "media",
        registration_tokens={"join-t1": "t1"},
    )


@pytest.fixture
async def client(tmp_path):
    app = create_app(_settings(tmp_path))
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as async_client:
        yield async_client


async def _team(client: AsyncClient, name: str = "Falcons", slots: int = 2, budget: str | None = "1000") -> dict:
    data = {"name": name, "total_slots": str(slots)}
    if budget is not None:
        data["budget"] = budget
    resp = await client.post("/api/teams", data=data, headers=T1)
    assert resp.status_code == 201, resp.text
    return resp.json()


async def _player(client: AsyncClient, name: str = "Asha", **extra) -> dict:
    resp = await client.post("/api/players", data={"name": name, **extra}, headers=T1)
    assert resp.status_code == 201, resp.text
    return resp.json()


@pytest.mark.anyio
async def test_health(client: AsyncClient):
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


@pytest.mark.anyio
async def test_missing_principal_is_unauthorized(client: AsyncClient):
    resp = await client.get("/api/teams")
    assert resp.status_code == 401


@pytest.mark.anyio
async def test_assign_flow(client: AsyncClient):
    team = await _team(client)
    player = await _player(client, reg_no="R1", position="Bowler")

    resp = await client.post(
        f"/api/players/{player['player_id']}/assign",
        json={"teamId": team["team_id"], "amount": 300},
        headers=T1,
    )

    assert resp.status_code == 200
    body = resp.json()
    assert body["player"]["status"] == "sold"
    assert body["team"]["remaining_budget"] == 700
    assert body["team"]["filled_slots"] == 1

    resp = await client.post(f"/api/players/{player['player_id']}/unsold", headers=T1)
    assert resp.json()["previous_team"]["remaining_budget"] == 1000

    unsold = await client.get("/api/players/unsold", headers=T1)
    assert [p["player_id"] for p in unsold.json()] == [player["player_id"]]


@pytest.mark.anyio
async def test_assign_validation_errors(client: AsyncClient):
    team = await _team(client, budget="100")
    player = await _player(client)
    url = f"/api/players/{player['player_id']}/assign"

    missing = await client.post(url, json={"teamId": team["team_id"]}, headers=T1)
    assert missing.status_code == 400
    assert missing.json()["detail"] == "Sold amount is required"

    too_much = await client.post(url, json={"teamId": team["team_id"], "amount": 150}, headers=T1)
    assert too_much.status_code == 400
    assert "budget" in too_much.json()["detail"]

    no_team = await client.post(url, json={"amount": 10}, headers=T1)
    assert no_team.status_code == 400


@pytest.mark.anyio
async def test_cross_tenant_access_is_not_found(client: AsyncClient):
    player = await _player(client)
    team = await _team(client)

    assert (await client.get(f"/api/players/{player['player_id']}", headers=T2)).status_code == 404
    assert (await client.get(f"/api/teams/{team['team_id']}", headers=T2)).status_code == 404
    resp = await client.post(
        f"/api/players/{player['player_id']}/assign",
        json={"teamId": team["team_id"], "amount": 1},
        headers=T2,
    )
    assert resp.status_code == 404
    assert (await client.get("/api/players", headers=T2)).json() == []


@pytest.mark.anyio
async def test_duplicate_team_name_conflicts(client: AsyncClient):
    await _team(client, name="Lions")
    resp = await client.post("/api/teams", data={"name": "Lions", "total_slots": "3"}, headers=T1)
    assert resp.status_code == 409
    assert resp.json()["detail"] == "Team name already exists in your auction"


@pytest.mark.anyio
async def test_delete_team_with_members_conflicts(client: AsyncClient):
    team = await _team(client)
    player = await _player(client)
    await client.post(
        f"/api/players/{player['player_id']}/assign",
        json={"teamId": team["team_id"], "amount": 5},
        headers=T1,
    )

    resp = await client.delete(f"/api/teams/{team['team_id']}", headers=T1)
    assert resp.status_code == 409

    await client.delete(f"/api/players/{player['player_id']}/remove-from-team", headers=T1)
    resp = await client.delete(f"/api/teams/{team['team_id']}", headers=T1)
    assert resp.status_code == 200


@pytest.mark.anyio
async def test_photo_upload_replaces_placeholder_in_background(client: AsyncClient):
    resp = await client.post(
        "/api/players",
        data={"name": "Pic"},
        files={"photo": ("face.png", b"\x89PNG fake", "image/png")},
        headers=T1,
    )
    created = resp.json()
    assert created["photo_url"].startswith("https://via.placeholder.com/")

    stored = (await client.get(f"/api/players/{created['player_id']}", headers=T1)).json()
    assert stored["photo_url"].startswith("/media/auction-players/")
    image = await client.get(stored["photo_url"])
    assert image.status_code == 200
    assert image.content == b"\x89PNG fake"


@pytest.mark.anyio
async def test_public_registration(client: AsyncClient):
    resp = await client.post(
        "/api/players/register",
        data={"token": "join-t1", "name": "Walk-in", "custom_fields": '{"nickname": "Ace"}'},
    )
    assert resp.status_code == 201
    assert resp.json()["custom_fields"] == {"nickname": "Ace"}

    bad = await client.post("/api/players/register", data={"token": "nope", "name": "X"})
    assert bad.status_code == 400

    malformed = await client.post(
        "/api/players/register", data={"token": "join-t1", "name": "Y", "custom_fields": "[1]"}
    )
    assert malformed.status_code == 400


@pytest.mark.anyio
async def test_update_player_and_team(client: AsyncClient):
    team_a = await _team(client, name="A")
    team_b = await _team(client, name="B")
    player = await _player(client)

    resp = await client.patch(
        f"/api/players/{player['player_id']}",
        json={"status": "sold", "teamId": team_a["team_id"], "soldAmount": 200},
        headers=T1,
    )
    assert resp.status_code == 200
    resp = await client.put(
        f"/api/players/{player['player_id']}",
        json={"status": "sold", "teamId": team_b["team_id"], "soldAmount": 100},
        headers=T1,
    )
    assert resp.json()["team_id"] == team_b["team_id"]

    resp = await client.patch(f"/api/teams/{team_b['team_id']}", json={"budget": 500}, headers=T1)
    assert resp.json()["remaining_budget"] == 400

    resp = await client.put(f"/api/teams/{team_a['team_id']}", data={"name": "Renamed"}, headers=T1)
    assert resp.json()["name"] == "Renamed"
    assert resp.json()["remaining_budget"] == 1000

    audit = await client.get("/api/auction/audit", headers=T1)
    assert audit.json() == {"consistent": True, "violations": []}


@pytest.mark.anyio
async def test_random_and_results_and_reset(client: AsyncClient):
    assert (await client.get("/api/players/random", headers=T1)).status_code == 404
    team = await _team(client, name="Zebras")
    player = await _player(client, name="Spin me")

    picked = await client.get("/api/players/random", headers=T1)
    assert picked.json()["player_id"] == player["player_id"]

    await client.post(
        f"/api/players/{player['player_id']}/assign",
        json={"teamId": team["team_id"], "amount": 75},
        headers=T1,
    )
    results = (await client.get("/api/teams/results/final", headers=T1)).json()
    assert results[0]["team_name"] == "Zebras"
    assert results[0]["total_players"] == 1
    assert results[0]["players"][0]["sold_amount"] == 75

    reset = await client.post("/api/auction/reset", headers=T1)
    assert reset.json() == {"players_deleted": 1, "teams_deleted": 1}
    assert (await client.get("/api/teams", headers=T1)).json() == []


@pytest.mark.anyio
async def test_expired_principal_can_read_but_not_write(client: AsyncClient):
    expired = {
        "x-tenant-id": "t1",
        "x-access-expiry": (datetime.now(timezone.utc) - timedelta(hours=1)).isoformat(),
    }
    inactive = {"x-tenant-id": "t1", "x-active": "false"}

    assert (await client.get("/api/teams", headers=expired)).status_code == 200
    resp = await client.post("/api/teams", data={"name": "X", "total_slots": "1"}, headers=expired)
    assert resp.status_code == 401
    assert "expired" in resp.json()["detail"]
    resp = await client.post("/api/auction/reset", headers=inactive)
    assert resp.status_code == 401

    garbage = await client.get("/api/teams", headers={"x-tenant-id": "t1", "x-access-expiry": "soon"})
    assert garbage.status_code == 401


@pytest.mark.anyio
async def test_unexpected_errors_are_generic(tmp_path, caplog):
    app = create_app(_settings(tmp_path))

    def explode(scope):
        raise RuntimeError("database on fire")

    app.state.engine.list_teams = explode
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        with caplog.at_level("ERROR"):
            resp = await client.get("/api/teams", headers=T1)

    assert resp.status_code == 500
    assert resp.json() == {"detail": "Internal server error"}
    assert "database on fire" not in resp.text


@pytest.mark.anyio
async def test_malformed_body_is_a_bad_request(client: AsyncClient):
    team = await _team(client)
    player = await _player(client)

    resp = await client.post(
        f"/api/players/{player['player_id']}/assign",
        json={"teamId": team["team_id"], "amount": "abc"},
        headers=T1,
    )

    assert resp.status_code == 400
    assert isinstance(resp.json()["detail"], str)
    assert resp.json()["detail"].startswith("amount:")

    missing = await client.post("/api/teams", data={"name": "NoSlots"}, headers=T1)
    assert missing.status_code == 400


@pytest.mark.anyio
async def test_form_schemas_load_from_settings_directory(tmp_path):
    schema_dir = tmp_path / "forms"
    schema_dir.mkdir()
    FormSchema([FieldSpec(name="jersey", label="Jersey", field_type="number", required=True)]).save(
        schema_dir / "t1.json"
    )
    settings = replace(_settings(tmp_path), form_schema_dir=schema_dir)
    transport = ASGITransport(app=create_app(settings))

    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        missing = await client.post("/api/players/register", data={"token": "join-t1", "name": "A"})
        ok = await client.post(
            "/api/players/register",
            data={"token": "join-t1", "name": "B", "custom_fields": '{"jersey": "7"}'},
        )

    assert missing.status_code == 400
    assert missing.json()["detail"] == "Jersey is required"
    assert ok.status_code == 201
    assert ok.json()["custom_fields"] == {"jersey": 7}
