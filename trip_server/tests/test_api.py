# tests/test_api.py
from __future__ import annotations

import logging

import pytest
from fastapi.testclient import TestClient

from fakes import FakeModelClient
from tripplanner.main import create_app
from tripplanner.runtime_state import MemoryTripStore, SessionRegistry


@pytest.fixture
def model():
    return FakeModelClient()


@pytest.fixture
def client(cfg, policy, model):
    registry = SessionRegistry(MemoryTripStore(), model, cfg=cfg, policy=policy)
    with TestClient(create_app(cfg, registry=registry)) as c:
        yield c


def create(client, destination="Kyoto", days=3, **extra):
    return client.post("/trips", json={"destination": destination, "days": days, **extra})


def test_root_and_health(client):
    assert client.get("/").status_code == 200

    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"
    assert resp.json()["active_sessions"] == 0


def test_create_returns_ready_trip(client):
    resp = create(client)
    assert resp.status_code == 201

    body = resp.json()
    assert body["status"] == "ready"
    assert body["destination"] == "Kyoto"
    assert [d["day_number"] for d in body["itinerary"]] == [1, 2, 3]
    assert body["transcript"] == []
    assert client.get("/health").json()["active_sessions"] == 1


def test_get_returns_same_trip(client):
    trip_id = create(client).json()["id"]
    resp = client.get(f"/trips/{trip_id}")
    assert resp.status_code == 200
    assert resp.json()["id"] == trip_id


def test_create_with_client_id_is_idempotent(client, model):
    first = create(client, trip_id="lisbon-trip")
    second = create(client, destination="Elsewhere", trip_id="lisbon-trip")
    assert first.json() == second.json()
    assert model.itinerary_calls == 1


def test_chat_and_messages(client):
    trip_id = create(client).json()["id"]

    resp = client.post(f"/trips/{trip_id}/chat", json={"message": "What should I pack?"})
    assert resp.status_code == 200
    turns = resp.json()["transcript"]
    assert [t["role"] for t in turns] == ["user", "agent"]
    assert turns[1]["text"] == "Reply to: What should I pack?"

    messages = client.get(f"/trips/{trip_id}/messages").json()
    assert messages["trip_id"] == trip_id
    assert [m["text"] for m in messages["messages"]] == [t["text"] for t in turns]


@pytest.mark.parametrize(
    "body",
    [
        {"destination": "", "days": 3},
        {"destination": "Kyoto", "days": 0},
        {"destination": "Kyoto", "days": 15},
        {"destination": "x" * 500, "days": 3},
    ],
)
def test_invalid_create_is_422_with_error_code(client, body):
    resp = client.post("/trips", json=body)
    assert resp.status_code == 422
    assert resp.json()["detail"]["code"] == "validation_error"


def test_malformed_body_is_422(client):
    assert client.post("/trips", json={"destination": "Kyoto"}).status_code == 422
    assert client.post("/trips", json={"destination": "Kyoto", "days": "many"}).status_code == 422


def test_unknown_trip_is_404(client):
    resp = client.get("/trips/does-not-exist")
    assert resp.status_code == 404
    assert resp.json()["detail"] == {
        "code": "not_found",
        "message": "Trip not found.",
        "trip_id": "does-not-exist",
    }
    assert client.post("/trips/does-not-exist/chat", json={"message": "hi"}).status_code == 404
    assert client.get("/trips/does-not-exist/messages").status_code == 404


def test_chat_on_failed_trip_is_409(cfg, policy):
    registry = SessionRegistry(
        MemoryTripStore(), FakeModelClient(itinerary_failures=3), cfg=cfg, policy=policy
    )
    with TestClient(create_app(cfg, registry=registry)) as client:
        trip = create(client).json()
        assert trip["status"] == "failed"
        assert trip["failure_reason"]

        resp = client.post(f"/trips/{trip['id']}/chat", json={"message": "hi"})
        assert resp.status_code == 409
        assert resp.json()["detail"]["code"] == "state_conflict"
        assert client.get(f"/trips/{trip['id']}").json()["transcript"] == []


def test_failed_reply_is_200_with_error_turn(cfg, policy):
    registry = SessionRegistry(
        MemoryTripStore(), FakeModelClient(reply_failures=3), cfg=cfg, policy=policy
    )
    with TestClient(create_app(cfg, registry=registry)) as client:
        trip_id = create(client).json()["id"]
        resp = client.post(f"/trips/{trip_id}/chat", json={"message": "hi"})

    assert resp.status_code == 200
    last = resp.json()["transcript"][-1]
    assert last["role"] == "agent"
    assert last["error"] == "model_error"


def test_chat_text_is_not_logged_at_info(client, caplog):
    trip_id = create(client).json()["id"]
    secret = "my passport number is X1234567"

    with caplog.at_level(logging.INFO, logger="tripplanner"):
        resp = client.post(f"/trips/{trip_id}/chat", json={"message": secret})
    assert resp.status_code == 200

    info = [r.getMessage() for r in caplog.records if r.levelno >= logging.INFO]
    assert f"message ({len(secret)} chars)" in " ".join(info)
    assert not any(secret in line for line in info)
