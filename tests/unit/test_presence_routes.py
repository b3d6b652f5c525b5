"""
Tests for the HTTP presence lookups.
"""

from datetime import UTC, datetime

import pytest
from fastapi.testclient import TestClient

from signal_hub.db.helpers import DatabaseError
from signal_hub.main import app

client = TestClient(app)


@pytest.fixture
def live_hub(hub, monkeypatch):
    monkeypatch.setattr(app.state, "hub", hub)
    return hub


def test_online_users(live_hub, make_connection):
    live_hub.registry.join("bob", make_connection())
    live_hub.registry.join("alice", make_connection())

    response = client.get("/presence")

    assert response.status_code == 200
    assert response.json() == {"online": ["alice", "bob"], "count": 2}


def test_live_presence(live_hub, make_connection):
    live_hub.registry.join("alice", make_connection())

    response = client.get("/presence/alice")

    assert response.status_code == 200
    data = response.json()
    assert data["user_id"] == "alice"
    assert data["status"] == "online"
    assert data["source"] == "live"


def test_live_presence_after_leave(live_hub, make_connection):
    connection = make_connection()
    live_hub.registry.join("alice", connection)
    live_hub.registry.leave(connection)

    data = client.get("/presence/alice").json()

    assert data["status"] == "offline"
    assert data["source"] == "live"


def test_stored_user_reported_offline(live_hub, fake_users):
    last_seen = datetime(2026, 1, 5, 12, 0, tzinfo=UTC)
    fake_users.users["carol"] = {
        "id": "carol",
        "username": "carol",
        "status": "online",
        "last_seen": last_seen,
    }

    response = client.get("/presence/carol")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "offline"
    assert data["source"] == "store"
    assert data["last_seen"].startswith("2026-01-05T12:00:00")


def test_unknown_user(live_hub):
    response = client.get("/presence/nobody")

    assert response.status_code == 404


def test_store_unavailable(live_hub, fake_users):
    fake_users.fail_with = DatabaseError("down", "get_user")

    response = client.get("/presence/carol")

    assert response.status_code == 503
