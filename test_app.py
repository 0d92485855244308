import os
import sys

import pytest
from fastapi.testclient import TestClient

# Add the backend to the path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "newscast_backend"))

from conftest import FakeSearch
from newscast.app import app, get_orchestrator, status_code_for
from newscast.errors import (
    ConcurrencyLimitError,
    EmptyArtifactError,
    ExternalServiceError,
    NotFoundError,
    PreflightError,
    SessionStateError,
    TimeoutExhaustedError,
    ValidationError,
)


@pytest.fixture
def orchestrator(make_orchestrator):
    return make_orchestrator(search=FakeSearch(snippets=[]))


@pytest.fixture
def client(orchestrator):
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_status_mapping():
    assert status_code_for(ValidationError("x")) == 400
    assert status_code_for(NotFoundError("s")) == 404
    assert status_code_for(SessionStateError("s", "Approved")) == 409
    assert status_code_for(ConcurrencyLimitError(["full"])) == 429
    assert status_code_for(PreflightError(["down"])) == 503
    assert status_code_for(ExternalServiceError("audio", "x")) == 502
    assert status_code_for(TimeoutExhaustedError("j", 15)) == 504
    assert status_code_for(EmptyArtifactError("u")) == 502


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json()["ok"] is True


def test_start_with_command_and_cancel(client, orchestrator):
    r = client.post("/v1/pipelines", json={"owner_id": "o1", "command": "presenter2@Obscure FC"})
    assert r.status_code == 201
    body = r.json()
    assert body["state"] == "AwaitingApproval"
    assert body["script"]["kind"] == "no_results"
    sid = body["session_id"]

    r = client.get(f"/v1/sessions/{sid}")
    assert r.status_code == 200
    assert r.json()["keyword"] == "Obscure FC"

    r = client.post(f"/v1/sessions/{sid}/decision", json={"decision": "cancel", "owner_id": "o1"})
    assert r.status_code == 200
    assert r.json()["state"] == "Cancelled"

    r = client.post(f"/v1/sessions/{sid}/decision", json={"decision": "cancel"})
    assert r.status_code == 404
    assert r.json()["error"] == "NotFoundError"

    inbox = client.get("/v1/inbox/o1").json()["messages"]
    assert any("GENERATION CANCELLED" in m for m in inbox)


def test_bad_command_is_400(client):
    r = client.post("/v1/pipelines", json={"owner_id": "o1", "command": "hello"})
    assert r.status_code == 400
    assert "presenter[1-9]@keyword" in r.json()["message"]


def test_missing_fields_is_400(client):
    r = client.post("/v1/pipelines", json={"owner_id": "o1", "presenter_id": 1})
    assert r.status_code == 400


def test_unknown_presenter_is_503_with_errors(client):
    r = client.post("/v1/pipelines", json={"owner_id": "o1", "presenter_id": 8, "keyword": "City"})
    assert r.status_code == 503
    assert r.json()["errors"]


def test_stats(client):
    client.post("/v1/pipelines", json={"owner_id": "o1", "presenter_id": 1, "keyword": "City"})
    r = client.get("/v1/stats")
    assert r.json() == {"total": 1, "active": 1, "expiring_soon": 0, "expired": 0}
