from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from trivia_run.app.main import create_app

from conftest import build_harness


@pytest.fixture
def client():
    h = build_harness()
    app = create_app(settings=h.settings, engine=h.engine)
    with TestClient(app) as c:
        yield c


def test_health(client) -> None:
    r = client.get("/api/health")
    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "ok"
    assert body["question_status"] == "ready"


def test_state_and_intent_roundtrip(client) -> None:
    assert client.get("/api/state").json()["screen"] == "home"

    r = client.post("/api/intents/start_run")
    assert r.status_code == 200
    body = r.json()
    assert body["intent"] == "start_run"
    assert body["state"]["screen"] == "wheel"
    offer = body["state"]["run"]["current_offer"]

    client.post("/api/intents/confirm_offer")
    r = client.post("/api/intents/choose_category", json={"argument": offer["options"][0]})
    assert r.json()["state"]["screen"] == "question"

    r = client.post("/api/intents/submit_answer", json={"argument": 0})
    assert r.json()["state"]["run"]["current_step"] == "answer"


def test_lists_intents(client) -> None:
    intents = client.get("/api/intents").json()["intents"]
    assert "start_run" in intents
    assert "retry_load" in intents


def test_unknown_intent(client) -> None:
    assert client.post("/api/intents/cheat").status_code == 404


def test_argument_validation(client) -> None:
    assert client.post("/api/intents/choose_category").status_code == 422
    assert client.post("/api/intents/submit_answer", json={"argument": "zero"}).status_code == 422
    assert client.post("/api/intents/submit_answer", json={"argument": True}).status_code == 422
