"""
Tests for leadcapture/api/chat.py - chat session endpoints.
"""
import pytest
from unittest.mock import patch
from fastapi import FastAPI
from fastapi.testclient import TestClient

from leadcapture.api.router import api_router
from leadcapture.services.session_store import SessionStore
from leadcapture.utils.locks import LockTimeoutError


class _TimedOutLock:
    async def __aenter__(self):
        raise LockTimeoutError("Could not acquire lock")

    async def __aexit__(self, *exc):
        return False


@pytest.fixture
def store():
    return SessionStore()


@pytest.fixture
def client(store, test_settings, mock_ai):
    app = FastAPI()
    app.include_router(api_router)
    app.state.sessions = store
    with TestClient(app) as test_client:
        yield test_client


class TestCreateSession:
    def test_returns_greeting(self, client, store):
        resp = client.post("/api/v1/chat/sessions")

        assert resp.status_code == 201
        body = resp.json()
        assert body["status"] == "started"
        assert body["phase"] == "collecting"
        assert body["quick_replies"]
        assert body["session_id"] in store


class TestPostMessage:
    def test_reply(self, client, mock_ai):
        session_id = client.post("/api/v1/chat/sessions").json()["session_id"]

        resp = client.post(
            f"/api/v1/chat/sessions/{session_id}/messages",
            json={"text": "Hi, I'm Adrian from OnCore Services"},
        )

        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "collecting"
        assert body["messages"] == ["Thanks for reaching out! What's the best email to reach you on?"]
        mock_ai.assert_awaited_once()

    def test_unknown_session(self, client):
        resp = client.post("/api/v1/chat/sessions/nope/messages", json={"text": "hello there"})
        assert resp.status_code == 404

    def test_missing_text(self, client):
        session_id = client.post("/api/v1/chat/sessions").json()["session_id"]
        resp = client.post(f"/api/v1/chat/sessions/{session_id}/messages", json={})
        assert resp.status_code == 422

    def test_busy_session(self, client):
        session_id = client.post("/api/v1/chat/sessions").json()["session_id"]

        with patch("leadcapture.api.chat.session_lock", return_value=_TimedOutLock()):
            resp = client.post(f"/api/v1/chat/sessions/{session_id}/messages", json={"text": "hello there"})

        assert resp.status_code == 409


class TestSnapshotAndDelete:
    def test_snapshot_reflects_captured_fields(self, client):
        session_id = client.post("/api/v1/chat/sessions").json()["session_id"]
        client.post(
            f"/api/v1/chat/sessions/{session_id}/messages",
            json={"text": "Hi, I'm Adrian from OnCore Services"},
        )

        resp = client.get(f"/api/v1/chat/sessions/{session_id}")

        assert resp.status_code == 200
        body = resp.json()
        assert body["phase"] == "collecting"
        assert body["lead"]["name"] == "Adrian"
        assert body["collected"]["name"] is True
        assert "email" in body["missing_fields"]
        assert body["message_count"] == 1

    def test_delete(self, client, store):
        session_id = client.post("/api/v1/chat/sessions").json()["session_id"]

        assert client.delete(f"/api/v1/chat/sessions/{session_id}").status_code == 204
        assert session_id not in store
        assert client.get(f"/api/v1/chat/sessions/{session_id}").status_code == 404
        assert client.delete(f"/api/v1/chat/sessions/{session_id}").status_code == 404
