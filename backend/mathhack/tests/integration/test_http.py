"""Integration tests for the REST endpoints that create, join and inspect sessions."""

import pytest
from starlette.testclient import TestClient

from mathhack.server.app import create_app
from mathhack.server.settings import ContestServerSettings
from mathhack.tests.helpers.websocket import create_session, join_session


@pytest.fixture
def client():
    app = create_app(settings=ContestServerSettings(max_sessions=2))
    with TestClient(app) as client:
        yield client


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_status_counts_sessions(self, client):
        create_session(client)
        body = client.get("/status").json()
        assert body["waiting_sessions"] == 1
        assert body["active_sessions"] == 0
        assert body["max_sessions"] == 2


class TestCreateSession:
    def test_create_returns_session_and_host(self, client):
        body = create_session(client, maxPlayers=3, gameDuration=5)
        session, player = body["session"], body["player"]
        assert len(session["code"]) == 6
        assert session["code"] == session["code"].upper()
        assert session["status"] == "waiting"
        assert session["maxPlayers"] == 3
        assert session["gameDuration"] == 5
        assert session["gameLog"][0]["type"] == "player_join"
        assert player["playerId"] == "alice"
        assert player["isHost"] is True

    @pytest.mark.parametrize(
        "payload",
        [
            {"hostId": "alice"},
            {"hostId": "alice", "hostName": "Alice", "maxPlayers": 1},
            {"hostId": "alice", "hostName": "Alice", "gameDuration": 120},
            {"hostId": "alice", "hostName": "Alice", "maxPlayers": "4"},
            {"hostId": "alice", "hostName": "Alice", "isAdmin": True},
        ],
    )
    def test_invalid_body(self, client, payload):
        response = client.post("/api/game/create", json=payload)
        assert response.status_code == 400

    def test_non_json_body(self, client):
        response = client.post("/api/game/create", content=b"not json")
        assert response.status_code == 400

    def test_capacity(self, client):
        create_session(client, host_id="a")
        create_session(client, host_id="b")
        response = client.post("/api/game/create", json={"hostId": "c", "hostName": "C"})
        assert response.status_code == 503
        assert response.json()["code"] == "server_at_capacity"


class TestJoinSession:
    def test_join_with_lowercase_code(self, client):
        code = create_session(client)["session"]["code"]
        body = join_session(client, code.lower())
        assert body["player"]["playerId"] == "bob"
        assert body["player"]["isHost"] is False
        assert body["session"]["gameLog"][-1]["playerId"] == "bob"

    def test_unknown_code(self, client):
        response = client.post("/api/game/join", json={"code": "ZZZZZZ", "playerId": "bob", "name": "Bob"})
        assert response.status_code == 404
        assert response.json()["code"] == "session_not_found"

    def test_duplicate_player(self, client):
        code = create_session(client)["session"]["code"]
        response = client.post("/api/game/join", json={"code": code, "playerId": "alice", "name": "Alice"})
        assert response.status_code == 409
        assert response.json()["code"] == "already_joined"

    def test_full_session(self, client):
        code = create_session(client, maxPlayers=2)["session"]["code"]
        join_session(client, code)
        response = client.post("/api/game/join", json={"code": code, "playerId": "carol", "name": "Carol"})
        assert response.status_code == 409
        assert response.json()["code"] == "session_full"


class TestSessionState:
    def test_state(self, client):
        body = create_session(client)
        session_id = body["session"]["id"]
        join_session(client, body["session"]["code"])

        response = client.get(f"/api/game/{session_id}/state", params={"playerId": "bob"})
        assert response.status_code == 200
        state = response.json()
        assert [p["name"] for p in state["players"]] == ["Alice", "Bob"]
        assert state["currentQuestion"] is None
        assert state["activeEffects"] == {}
        assert state["duels"] == []

    def test_unknown_session(self, client):
        assert client.get("/api/game/999/state").status_code == 404

    def test_power_up_catalog(self, client):
        catalog = {p["type"]: p for p in client.get("/api/powerups").json()}
        assert catalog["freeze"]["cost"] == 100
        assert catalog["shield"]["selfOnly"] is True
        assert catalog["hack"]["durationSeconds"] is None
