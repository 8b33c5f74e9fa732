import pytest
from fastapi.testclient import TestClient

from mindflow.application.config import AppConfig
from mindflow.application.factory import build_services
from mindflow.consts import VERSION
from mindflow.domain.errors import ServerError
from mindflow.server import create_app


@pytest.fixture
def make_client(monkeypatch, tmp_path, fake_client, signed_in):
    monkeypatch.setenv("HOME", str(tmp_path))
    built = []

    def _make(auth=None) -> TestClient:
        services = build_services(
            AppConfig(database_path=":memory:"), client=fake_client, auth=auth or signed_in
        )
        built.append(services)
        return TestClient(create_app(services, background_sync=False))

    yield _make
    for services in built:
        services.engine.dispose()


@pytest.fixture
def client(make_client):
    with make_client() as test_client:
        yield test_client


def test_health_check(client):
    response = client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"
    assert data["version"] == VERSION


def test_get_version(client):
    response = client.get("/version")
    assert response.status_code == 200
    assert response.json() == {"version": VERSION}


def test_create_interaction_syncs_long_capture(client, fake_client):
    response = client.post(
        "/interactions",
        json={"original_text": "hello there", "audio_duration_seconds": 42},
    )

    assert response.status_code == 201
    data = response.json()
    assert data["id"].startswith("int_")
    assert data["sync"]["state"] == "synced"
    assert data["sync"]["backend_id"] == "interaction-remote-1"
    assert fake_client.calls[0][1]["original_transcription"] == "hello there"


def test_short_capture_then_manual_sync(client, fake_client):
    created = client.post(
        "/interactions", json={"original_text": "note", "audio_duration_seconds": 5}
    ).json()
    assert created["sync"]["skipped_reason"] == "below auto-sync threshold"

    response = client.post(f"/records/interaction/{created['id']}/sync")

    assert response.status_code == 200
    assert response.json()["state"] == "synced"
    assert len(fake_client.calls) == 1


def test_create_interaction_rejects_blank_text(client):
    assert client.post("/interactions", json={"original_text": "   "}).status_code == 400
    assert client.post("/interactions", json={"original_text": ""}).status_code == 422


def test_manual_sync_errors(client, fake_client):
    assert client.post("/records/interaction/int_missing/sync").status_code == 404

    created = client.post(
        "/interactions", json={"original_text": "note", "audio_duration_seconds": 5}
    ).json()
    fake_client.errors = [ServerError(503)]

    response = client.post(f"/records/interaction/{created['id']}/sync")

    assert response.status_code == 502
    assert "HTTP 503" in response.json()["detail"]


def test_manual_sync_signed_out(make_client, signed_out):
    with make_client(auth=signed_out) as client:
        created = client.post("/interactions", json={"original_text": "note"}).json()
        assert created["sync"]["skipped_reason"] == "not authenticated"

        response = client.post(f"/records/interaction/{created['id']}/sync")

    assert response.status_code == 401


def test_vocabulary_flow(client):
    response = client.post(
        "/vocabulary",
        json={"word": "serendipity", "definitions": {"EN": "a happy accident"}, "tags": ["nouns"]},
    )
    assert response.status_code == 201
    assert response.json()["sync"]["skipped_reason"] == "vocabulary sync disabled"

    due = client.get("/vocabulary/due").json()
    assert [w["word"] for w in due] == ["serendipity"]
    assert due[0]["mastery"] == "New"
    assert due[0]["definitions"] == {"EN": "a happy accident"}

    today = client.get("/stats/today").json()
    assert today["words_added"] == 1
    assert today["streak_days"] == 1


def test_sweep_endpoint(client, fake_client):
    client.post("/interactions", json={"original_text": "a", "audio_duration_seconds": 5})
    client.post("/interactions", json={"original_text": "b", "audio_duration_seconds": 5})

    response = client.post("/sync")

    assert response.status_code == 200
    data = response.json()
    assert data["skipped"] == 2
    assert data["synced"] == 0
    assert data["success"] is True
    assert fake_client.calls == []


def test_records_show_sync_labels(client, fake_client):
    short = client.post(
        "/interactions", json={"original_text": "note", "audio_duration_seconds": 5}
    ).json()
    long = client.post(
        "/interactions", json={"original_text": "story", "audio_duration_seconds": 50}
    ).json()
    client.post("/vocabulary", json={"word": "serendipity"})

    interactions = {r["id"]: r for r in client.get("/records/interaction").json()}
    vocabulary = client.get("/records/vocabulary").json()

    assert interactions[short["id"]]["label"] == "local only"
    assert interactions[short["id"]]["state"] == "pending"
    assert interactions[long["id"]]["label"] == "synced"
    assert [r["label"] for r in vocabulary] == ["local only"]
    assert client.get("/records/interaction?limit=0").status_code == 422
