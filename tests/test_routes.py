"""Tests for the HTTP API and the WebSocket channel."""

import pytest
from fastapi.testclient import TestClient

from agentdesk.config import AppConfig
from agentdesk.server import create_app


@pytest.fixture
def registry(make_registry):
    return make_registry()


@pytest.fixture
def client(registry, tmp_path):
    config = AppConfig()
    config.storage.data_dir = str(tmp_path)
    app = create_app(config, registry=registry)
    with TestClient(app) as test_client:
        yield test_client


def test_health(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_agent_types(client):
    types = {t["id"] for t in client.get("/api/agents/types").json()["types"]}
    assert types == {"default", "gmail", "airtable"}


def test_create_list_and_delete(client):
    response = client.post("/api/agents", json={"type": "airtable", "id": "airtable-1"})
    assert response.status_code == 201
    assert response.json()["agent"]["active"] is True

    agents = client.get("/api/agents").json()["agents"]
    assert agents == [{"id": "airtable-1", "name": "Airtable Assistant", "type": "airtable", "status": "active"}]

    snapshot = client.get("/api/agents/airtable-1").json()
    assert snapshot["type"] == "airtable"
    assert "lastActivity" in snapshot

    assert client.delete("/api/agents/airtable-1").status_code == 200
    assert client.get("/api/agents/airtable-1").status_code == 404
    assert client.delete("/api/agents/airtable-1").status_code == 404


def test_create_errors(client):
    assert client.post("/api/agents", json={"type": "default", "id": "x"}).status_code == 201
    assert client.post("/api/agents", json={"type": "default", "id": "x"}).status_code == 409
    assert client.post("/api/agents", json={"type": "calendar"}).status_code == 400
    assert client.post("/api/agents", json={"type": "default", "id": "../x"}).status_code == 400


def test_message_to_default_agent(client):
    response = client.post("/api/agents/default/message", json={"message": "hello"})

    assert response.status_code == 200
    assert "hello" in response.json()["response"]


def test_message_errors(client):
    assert client.post("/api/agents/gmail-1/message", json={"message": "hi"}).status_code == 404
    assert client.post("/api/agents/default/message", json={}).status_code == 400
    assert client.post("/api/agents/message", json={}).status_code == 400


def test_routed_message(client):
    response = client.post("/api/agents/message", json={"message": "hello"})

    assert response.status_code == 200
    assert response.json()["agentId"] == "default"


def test_command(client):
    client.post("/api/agents/default/message", json={"message": "hello"})
    response = client.post("/api/agents/default/command", json={"command": "get_status"})

    result = response.json()["result"]
    assert result["success"] is True
    assert result["data"]["memorySize"] == 2

    unknown = client.post("/api/agents/default/command", json={"command": "fly"}).json()["result"]
    assert unknown == {"success": False, "message": "Unknown command: fly"}

    assert client.post("/api/agents/default/command", json={}).status_code == 400
    assert client.post("/api/agents/nope/command", json={"command": "get_status"}).status_code == 404


def test_gmail_create_and_callback(client, registry, credential_store):
    response = client.post("/api/gmail", json={"credentials": {"client_id": "cid", "client_secret": "s"}})
    assert response.status_code == 201
    agent_id = response.json()["agent"]["id"]
    assert agent_id.startswith("gmail-")
    assert credential_store.load(agent_id)["client_id"] == "cid"

    page = client.get("/api/gmail/auth/callback", params={"code": "abc", "state": agent_id})
    assert page.status_code == 200
    assert "successfully connected" in page.text
    assert registry.get(agent_id).connected is True

    failed = client.get("/api/gmail/auth/callback", params={"code": "bad", "state": agent_id})
    assert failed.status_code == 500


def test_gmail_validation(client):
    assert client.post("/api/gmail", json={"credentials": {"client_id": "cid"}}).status_code == 400
    assert client.get("/api/gmail/auth/callback", params={"state": "gmail-1"}).status_code == 400
    assert client.get("/api/gmail/auth/callback", params={"code": "c", "state": "gmail-1"}).status_code == 404


def test_shutdown_persists_agents(registry, storage, tmp_path):
    config = AppConfig()
    config.storage.data_dir = str(tmp_path)
    with TestClient(create_app(config, registry=registry)) as client:
        client.post("/api/agents/default/message", json={"message": "keep me"})

    state = storage.load("default")
    assert state.memory[0].content == "keep me"
    assert state.active is False


def test_websocket_message_flow(client):
    with client.websocket_connect("/ws") as ws:
        assert ws.receive_json()["event"] == "availableAgents"
        assert ws.receive_json() == {"event": "activeAgents", "data": []}

        ws.send_json({"event": "message", "data": {"message": "hello"}})
        reply = ws.receive_json()
        assert reply["event"] == "message"
        assert reply["data"]["agentId"] == "default"
        assert reply["data"]["sender"] == "agent"

        ws.send_json({"event": "agentCommand", "data": {"agentId": "default", "command": "get_status"}})
        result = ws.receive_json()
        assert result["event"] == "commandResult"
        assert result["data"]["result"]["success"] is True


def test_websocket_errors(client):
    with client.websocket_connect("/ws") as ws:
        ws.receive_json()
        ws.receive_json()

        ws.send_text("not json")
        assert ws.receive_json()["event"] == "error"

        ws.send_json({"event": "teleport", "data": {}})
        assert "Unknown event" in ws.receive_json()["data"]["message"]

        ws.send_json({"event": "agentCommand", "data": {"agentId": "ghost", "command": "get_status"}})
        assert ws.receive_json() == {"event": "error", "data": {"message": "Agent ghost not found"}}


def test_websocket_upload_credentials(client):
    with client.websocket_connect("/ws") as ws:
        ws.receive_json()
        ws.receive_json()

        ws.send_json({"event": "uploadCredentials", "data": {"type": "airtable", "credentials": {"apiKey": "k"}}})
        active = ws.receive_json()
        assert active["event"] == "activeAgents"
        assert active["data"][0]["type"] == "airtable"
        notice = ws.receive_json()
        assert notice["data"]["sender"] == "system"
