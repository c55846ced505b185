import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from liveauction.api import create_app
from liveauction.config import AuctionSettings

T1 = {"x-tenant-id": "t1"}


@pytest.fixture
def client(tmp_path):
    settings = AuctionSettings(db_path=str(tmp_path / "ws.sqlite"), media_dir=tmp_path / "media")
    with TestClient(create_app(settings)) as test_client:
        yield test_client


def _join(ws, tenant_id: str = "t1") -> dict:
    ws.send_json({"event": "joinAuctioneer", "data": tenant_id})
    return ws.receive_json()


def test_join_acknowledges_room(client):
    with client.websocket_connect("/ws?tenant=t1") as ws:
        reply = _join(ws)
    assert reply == {"event": "joinedAuctioneer", "data": {"room": "auctioneer_t1"}}


def test_joining_another_tenant_is_refused(client):
    with client.websocket_connect("/ws", headers=T1) as ws:
        reply = _join(ws, "t2")
    assert reply["event"] == "error"
    assert reply["data"]["message"] == "Not allowed to join this auction"


def test_socket_without_principal_is_closed(client):
    with pytest.raises(WebSocketDisconnect):
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()


def test_heartbeat_and_ping(client):
    with client.websocket_connect("/ws?tenant=t1") as ws:
        ws.send_json({"event": "heartbeat", "data": {"timestamp": 1}})
        ack = ws.receive_json()
        ws.send_json({"event": "ping"})
        pong = ws.receive_json()
        ws.send_text("not json")
        malformed = ws.receive_json()

    assert ack["event"] == "heartbeat_ack"
    assert ack["data"]["timestamp"] == 1
    assert ack["data"]["latency"] >= 0
    assert pong["event"] == "pong"
    assert malformed["event"] == "error"


def test_joined_socket_receives_sale_events(client):
    team = client.post("/api/teams", data={"name": "Hawks", "total_slots": "2"}, headers=T1).json()
    player = client.post("/api/players", data={"name": "Ravi"}, headers=T1).json()

    with client.websocket_connect("/ws?tenant=t1") as ws:
        assert _join(ws)["event"] == "joinedAuctioneer"
        resp = client.post(
            f"/api/players/{player['player_id']}/assign",
            json={"teamId": team["team_id"], "amount": 40},
            headers=T1,
        )
        assert resp.status_code == 200
        first = ws.receive_json()
        second = ws.receive_json()

    assert first["event"] == "playerSold"
    assert first["data"]["player_id"] == player["player_id"]
    assert second["event"] == "teamUpdated"
    assert second["data"]["filled_slots"] == 1


def test_left_room_gets_nothing_more(client):
    with client.websocket_connect("/ws?tenant=t1") as ws:
        _join(ws)
        ws.send_json({"event": "leaveAuctioneer", "data": "t1"})
        ws.send_json({"event": "ping"})
        assert ws.receive_json()["event"] == "pong"
        client.post("/api/players", data={"name": "Quiet"}, headers=T1)
        ws.send_json({"event": "ping"})
        reply = ws.receive_json()

    assert reply["event"] == "pong"
