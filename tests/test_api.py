"""Tests for the HTTP and WebSocket endpoints."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Iterator

import pytest
from fakes import FakeAnnotationClient, ScriptedEngine, event, scripted_source
from fastapi.testclient import TestClient

from callcoach.main import create_app
from callcoach.persistence.store import LocalAnalysisStore

CALL = [
    event("guest-1", "Thanks for calling, how can I help you today?", 0.0, 3.0),
    event("guest-2", "We need pricing for twenty seats.", 3.5, 6.0),
]


@pytest.fixture
def client(monkeypatch: pytest.MonkeyPatch) -> Iterator[TestClient]:
    monkeypatch.setattr("callcoach.session.controller.LiveTranscriptionSource", scripted_source(CALL))
    monkeypatch.setattr("callcoach.session.controller.FileReplaySource", scripted_source(CALL, progress=[50.0, 100.0]))
    app = create_app(engine_factory=ScriptedEngine, client=FakeAnnotationClient(), store=LocalAnalysisStore())
    with TestClient(app) as test_client:
        yield test_client


def _upload(client: TestClient, name: str = "call.wav", data: bytes = b"RIFFdata", content_type: str = "audio/wav"):
    return client.post("/api/sessions/upload", files={"file": (name, data, content_type)})


def test_health(client: TestClient) -> None:
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "asr_backend": "local"}


def test_current_session_missing(client: TestClient) -> None:
    assert client.get("/api/sessions/current").status_code == 404


def test_upload_rejects_unsupported_type(client: TestClient) -> None:
    response = _upload(client, name="notes.txt", data=b"hello", content_type="text/plain")

    assert response.status_code == 415


def test_upload_rejects_oversized_file(client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("UPLOAD_MAX_BYTES", "4")

    assert _upload(client).status_code == 413


def test_upload_rejects_empty_file(client: TestClient) -> None:
    assert _upload(client, data=b"").status_code == 400


def test_upload_produces_stored_analysis(client: TestClient, isolated_settings: Path) -> None:
    response = _upload(client)

    assert response.status_code == 200
    body = response.json()
    assert body["state"] == "done"
    summary = body["analysis"]
    assert summary["source"] == "upload"
    assert summary["title"].endswith("(Uploaded)")

    listing = client.get("/api/analyses").json()
    assert [row["id"] for row in listing] == [summary["id"]]

    record = client.get(f"/api/analyses/{summary['id']}").json()
    assert record["uploaded_file_name"] == "call.wav"
    assert record["transcript"][0] == "[Salesperson] Thanks for calling, how can I help you today?"

    current = client.get("/api/sessions/current").json()
    assert current["state"] == "done"
    assert current["record_id"] == summary["id"]

    uploads_dir = isolated_settings / "recordings" / "tmp" / "uploads"
    assert os.listdir(uploads_dir) == []


def test_unknown_analysis_is_404(client: TestClient) -> None:
    assert client.get("/api/analyses/doesnotexist").status_code == 404


def test_stop_after_done_is_conflict(client: TestClient) -> None:
    _upload(client)

    response = client.post("/api/sessions/current/stop")

    assert response.status_code == 409
    assert response.json()["detail"]["kind"] == "invalid_transition"


def test_reset_returns_idle_snapshot(client: TestClient) -> None:
    _upload(client)

    response = client.post("/api/sessions/current/reset")

    assert response.status_code == 200
    assert response.json()["state"] == "idle"
    assert response.json()["segments"] == []


def test_websocket_session_streams_until_done(client: TestClient) -> None:
    with client.websocket_connect("/ws/session") as ws:
        first = ws.receive_json()
        assert first["type"] == "session"

        ws.send_json({"action": "stop"})
        messages = []
        while True:
            message = ws.receive_json()
            messages.append(message)
            if message["type"] == "state" and message["state"] == "done":
                break

    kinds = {m["type"] for m in messages}
    assert {"state", "transcript", "progress"} <= kinds
    transcripts = [m for m in messages if m["type"] == "transcript"]
    assert transcripts[-1]["segments"][-1]["text"] == "We need pricing for twenty seats."

    analyses = client.get("/api/analyses").json()
    assert len(analyses) == 1
    assert analyses[0]["source"] == "live"
