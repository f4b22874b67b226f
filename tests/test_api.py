"""HTTP surface: session and maintenance endpoints."""

from __future__ import annotations

from pathlib import Path
from uuid import UUID, uuid4

import pytest
from fastapi.testclient import TestClient

from fakes import run

from app.main import create_app


@pytest.fixture
def client(container):
    with TestClient(create_app(container)) as test_client:
        yield test_client


def _create(client: TestClient, folder: Path) -> dict:
    response = client.post("/sessions", json={"folderPath": str(folder)})
    assert response.status_code == 201, response.text
    return response.json()


def test_health_and_metrics(client):
    assert client.get("/health").json()["status"] == "healthy"
    metrics = client.get("/metrics")
    assert metrics.status_code == 200
    assert "http_requests_total" in metrics.text


def test_create_session_from_folder(client, session_folder):
    body = _create(client, session_folder)

    assert body["title"] == "Dune Part Two"
    assert body["fileCount"] == 3
    assert body["state"] == "pending"
    assert body["micAssignments"] == {"0": "Alice", "1": "Bob"}
    masters = [item["fileName"] for item in body["audioFiles"] if item["isMasterRecording"]]
    assert masters == ["MASTER_MIX.wav"]


def test_create_session_accepts_overrides(client, session_folder):
    response = client.post(
        "/sessions",
        json={"folder_path": str(session_folder), "title": "Custom", "mic_assignments": {"0": "Carol"}},
    )

    assert response.status_code == 201
    assert response.json()["title"] == "Custom"
    assert response.json()["participantsPresent"] == ["Carol", "Mic 2"]


def test_create_session_rejects_missing_folder(client, tmp_path):
    response = client.post("/sessions", json={"folderPath": str(tmp_path / "missing")})

    assert response.status_code == 400
    assert "not found" in response.json()["detail"]


def test_list_and_get_sessions(client, session_folder):
    created = _create(client, session_folder)

    listed = client.get("/sessions").json()
    assert [item["id"] for item in listed] == [created["id"]]

    detail = client.get(f"/sessions/{created['id']}")
    assert detail.status_code == 200
    assert detail.json()["isProcessing"] is False

    assert client.get(f"/sessions/{uuid4()}").status_code == 404


def test_pipeline_description(client):
    stages = client.get("/sessions/pipeline").json()

    assert stages[0]["name"] == "Session Metadata"
    assert [stage["order"] for stage in stages] == sorted(stage["order"] for stage in stages)
    assert any(stage["perFile"] for stage in stages)


def test_process_session_runs_in_background(client, session_folder, analysis):
    created = _create(client, session_folder)

    response = client.post(f"/sessions/{created['id']}/process")
    assert response.status_code == 202
    assert response.json() == {"sessionId": created["id"], "status": "accepted"}

    detail = client.get(f"/sessions/{created['id']}").json()
    assert detail["state"] == "complete"
    assert detail["mergedTranscript"].startswith("Alice:")
    assert detail["highlights"]["best_joke"]["speaker"] == "Alice"
    assert detail["stats"]["most_talkative"] in {"Alice", "Bob"}
    assert len(analysis.calls) == 1

    progress = client.get(f"/sessions/{created['id']}/progress").json()
    assert progress["running"] is False
    assert progress["percent"] == 100
    assert progress["message"] == "Processing complete"


def test_process_rejects_concurrent_runs(client, container, session_folder):
    created = _create(client, session_folder)
    session_id = created["id"]

    container.runs.begin(UUID(session_id))

    assert client.post(f"/sessions/{session_id}/process").status_code == 409
    assert client.delete(f"/sessions/{session_id}").status_code == 409
    assert client.post(f"/maintenance/sessions/{session_id}/recover").status_code == 409
    assert client.post(f"/maintenance/sessions/{session_id}/redownload").status_code == 409
    assert client.post(f"/maintenance/sessions/{session_id}/files/MIC1.wav/retry").status_code == 409
    assert client.post(f"/sessions/{session_id}/cancel").status_code == 202


def test_cancel_requires_running_session(client, session_folder):
    created = _create(client, session_folder)

    assert client.post(f"/sessions/{created['id']}/cancel").status_code == 409


def test_failed_run_reports_error_on_session(client, session_folder, transcription):
    transcription.fail_stems.add("MIC1")
    created = _create(client, session_folder)

    assert client.post(f"/sessions/{created['id']}/process").status_code == 202

    detail = client.get(f"/sessions/{created['id']}").json()
    assert detail["state"] == "failed"
    assert detail["errorMessage"] == "Cannot proceed: 1 file failed: MIC1.mp3"
    failed = [item for item in detail["audioFiles"] if item["state"] == "failed"]
    assert [item["canRetry"] for item in failed] == [True]

    diagnostics = client.get(f"/maintenance/sessions/{created['id']}/diagnose").json()
    assert diagnostics["health_score"] < 100

    recovered = client.post(f"/maintenance/sessions/{created['id']}/recover").json()
    assert recovered["count"] == 1

    transcription.fail_stems.clear()
    assert client.post(f"/sessions/{created['id']}/process").status_code == 202
    assert client.get(f"/sessions/{created['id']}").json()["state"] == "complete"


def test_reanalyze(client, session_folder, analysis):
    created = _create(client, session_folder)

    assert client.post(f"/sessions/{created['id']}/reanalyze").status_code == 400

    client.post(f"/sessions/{created['id']}/process")
    response = client.post(f"/sessions/{created['id']}/reanalyze")
    assert response.status_code == 200
    assert response.json()["state"] == "complete"
    assert len(analysis.calls) == 2

    assert client.post(f"/sessions/{uuid4()}/reanalyze").status_code == 404


def test_delete_session(client, session_folder):
    created = _create(client, session_folder)

    assert client.delete(f"/sessions/{created['id']}").status_code == 204
    assert client.delete(f"/sessions/{created['id']}").status_code == 404


def test_maintenance_endpoints(client, session_folder):
    created = _create(client, session_folder)

    assert client.post("/maintenance/fix-analyzing").json()["count"] == 0
    assert client.post("/maintenance/stuck-processing", json={"thresholdMinutes": 5}).json()["count"] == 0
    cleanup = client.post("/maintenance/cleanup").json()
    assert cleanup == {"processed": 0, "recovered": 0, "failed": 0, "errors": 0}
    assert client.post("/maintenance/stuck").json()["count"] == 0

    missing = client.post(f"/maintenance/sessions/{created['id']}/files/MIC9.mp3/retry")
    assert missing.status_code == 404
    retried = client.post(
        f"/maintenance/sessions/{created['id']}/files/MIC1.wav/retry",
        json={"state": "converting"},
    )
    assert retried.status_code == 200
    assert retried.json()["currentStep"] == "Ready for conversion"
    invalid = client.post(
        f"/maintenance/sessions/{created['id']}/files/MIC1.wav/retry",
        json={"state": "complete"},
    )
    assert invalid.status_code == 400

    assert client.post(f"/maintenance/sessions/{uuid4()}/redownload").status_code == 404
    assert client.post(f"/maintenance/sessions/{created['id']}/redownload").json()["count"] == 0


def test_reanalyze_reports_unreadable_transcripts_as_bad_gateway(client, container, session_folder):
    created = _create(client, session_folder)
    client.post(f"/sessions/{created['id']}/process")
    master = run(container.repository.get(UUID(created["id"]))).master_file
    Path(master.json_file_path).unlink()

    response = client.post(f"/sessions/{created['id']}/reanalyze")

    assert response.status_code == 502
    assert "Unreadable transcript document" in response.json()["detail"]
    detail = client.get(f"/sessions/{created['id']}").json()
    assert detail["state"] == "complete"
    assert detail["highlights"]["best_joke"]["speaker"] == "Alice"


def test_deleting_a_session_forgets_its_run_status(client, container, session_folder):
    created = _create(client, session_folder)
    client.post(f"/sessions/{created['id']}/process")
    assert container.runs.status(UUID(created["id"])) is not None

    assert client.delete(f"/sessions/{created['id']}").status_code == 204
    assert container.runs.status(UUID(created["id"])) is None
