"""Tests for the automated ingest endpoint and run inspection routes."""

from unittest.mock import AsyncMock, MagicMock

import asyncpg
import pytest
from fastapi.testclient import TestClient

from src.api.app import create_app
from src.api.dependencies import get_ingest_service, get_log_repository, get_run_repository
from src.runs.schemas import RunProgress, ScrapeRun
from src.services.ingest_service import BatchResult, PostOutcome

TOKEN = "test-token"
AUTH = {"Authorization": f"Bearer {TOKEN}"}


def _batch_result() -> BatchResult:
    return BatchResult(
        run_id="run-1",
        batch_index=2,
        total_batches=3,
        status="completed",
        run_status="running",
        progress=RunProgress(posts_added=1, posts_rejected=1, accounts_found=2),
        outcomes=[
            PostOutcome(post_id="3301234567890", status="added", review_tier="ready", venue_source="database"),
            PostOutcome(post_id="3301234567999", status="rejected", review_tier="rejected", reason="vendor_post"),
        ],
    )


def _make_client(service=None, runs=None, logs=None):
    """Create a test client with mocked service and repositories."""
    app = create_app()

    if service is None:
        service = MagicMock()
        service.process_batch = AsyncMock(return_value=_batch_result())
    app.dependency_overrides[get_ingest_service] = lambda: service
    app.dependency_overrides[get_run_repository] = lambda: runs or MagicMock()
    app.dependency_overrides[get_log_repository] = lambda: logs or MagicMock()

    with TestClient(app) as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
def token_env(monkeypatch):
    monkeypatch.setenv("INGEST_TOKEN", TOKEN)


class TestIngestAuth:
    """Authentication rules for POST /ingest."""

    def test_ping_needs_no_token(self, monkeypatch):
        monkeypatch.setenv("INGEST_TOKEN", "")
        for client in _make_client():
            resp = client.post("/ingest", json={"mode": "ping"})
            assert resp.status_code == 200
            assert resp.json()["message"] == "pong"
            assert resp.json()["success"] is True

    def test_unconfigured_token_is_server_error(self, monkeypatch):
        monkeypatch.setenv("INGEST_TOKEN", "")
        for client in _make_client():
            resp = client.post("/ingest", json={"posts": []}, headers=AUTH)
            assert resp.status_code == 500
            assert resp.json()["detail"] == "INGEST_TOKEN not configured"

    def test_missing_token(self, token_env):
        for client in _make_client():
            resp = client.post("/ingest", json={"posts": []})
            assert resp.status_code == 401
            assert resp.json()["detail"] == "Missing bearer token"

    def test_invalid_token(self, token_env):
        service = MagicMock()
        service.process_batch = AsyncMock()
        for client in _make_client(service=service):
            resp = client.post("/ingest", json={"posts": []}, headers={"Authorization": "Bearer wrong"})
            assert resp.status_code == 401
            assert resp.json()["detail"] == "Invalid token"
        service.process_batch.assert_not_called()


class TestIngestPayload:
    """Payload validation for POST /ingest."""

    def test_body_must_be_json(self, token_env):
        for client in _make_client():
            resp = client.post(
                "/ingest",
                content=b"not json",
                headers={**AUTH, "Content-Type": "application/json"},
            )
            assert resp.status_code == 400
            assert resp.json()["detail"] == "Request body must be valid JSON"

    def test_body_must_be_object(self, token_env):
        for client in _make_client():
            resp = client.post("/ingest", json=[1, 2], headers=AUTH)
            assert resp.status_code == 400

    def test_too_many_posts(self, token_env):
        for client in _make_client():
            resp = client.post("/ingest", json={"posts": [{"id": str(i)} for i in range(501)]}, headers=AUTH)
            assert resp.status_code == 400
            assert resp.json()["detail"][0]["loc"] == ["posts"]

    def test_post_without_id_is_rejected(self, token_env):
        service = MagicMock()
        service.process_batch = AsyncMock()
        for client in _make_client(service=service):
            resp = client.post("/ingest", json={"posts": [{"caption": "Gig on Friday"}]}, headers=AUTH)
            assert resp.status_code == 400
        service.process_batch.assert_not_called()


class TestIngestBatch:
    """Successful batches."""

    def test_batch_is_processed(self, token_env, dataset_item):
        service = MagicMock()
        service.process_batch = AsyncMock(return_value=_batch_result())

        for client in _make_client(service=service):
            resp = client.post(
                "/ingest",
                json={
                    "runId": "run-1",
                    "batchNumber": 2,
                    "totalBatches": 3,
                    "datasetId": "ds-9",
                    "forceImport": True,
                    "posts": [dataset_item],
                },
                headers=AUTH,
            )

            assert resp.status_code == 200
            data = resp.json()
            assert data["run_id"] == "run-1"
            assert data["batch_status"] == "completed"
            assert data["run_status"] == "running"
            assert data["stats"]["posts_added"] == 1
            assert data["stats"]["accounts_found"] == 2
            assert data["message"].startswith("Batch 2/3 completed: 1 added")
            assert [o["status"] for o in data["outcomes"]] == ["added", "rejected"]
            assert data["outcomes"][1]["reason"] == "vendor_post"

        batch = service.process_batch.call_args[0][0]
        assert batch.run_id == "run-1"
        assert batch.batch_index == 2
        assert batch.total_batches == 3
        assert batch.dataset_id == "ds-9"
        assert batch.posts[0].post_id == "3301234567890"
        assert batch.posts[0].owner_handle == "thevictorartprojects"
        assert batch.posts[0].engagement.likes == 120
        assert service.process_batch.call_args[1] == {"force_import": True}


class TestRunRoutes:
    """Tests for the /runs endpoints."""

    def test_get_run(self, token_env):
        runs = MagicMock()
        runs.get = AsyncMock(return_value=ScrapeRun(run_id="run-1", posts_added=4))

        for client in _make_client(runs=runs):
            resp = client.get("/runs/run-1", headers=AUTH)
            assert resp.status_code == 200
            assert resp.json()["run_id"] == "run-1"
            assert resp.json()["posts_added"] == 4

    def test_get_run_requires_token(self, token_env):
        for client in _make_client():
            resp = client.get("/runs/run-1")
            assert resp.status_code == 401

    def test_unknown_run(self, token_env):
        runs = MagicMock()
        runs.get = AsyncMock(return_value=None)

        for client in _make_client(runs=runs):
            resp = client.get("/runs/missing", headers=AUTH)
            assert resp.status_code == 404

    def test_cancel_running_run(self, token_env):
        runs = MagicMock()
        runs.get = AsyncMock(
            side_effect=[ScrapeRun(run_id="run-1"), ScrapeRun(run_id="run-1", status="cancelled")]
        )
        runs.mark_cancelled = AsyncMock(return_value=True)

        for client in _make_client(runs=runs):
            resp = client.post("/runs/run-1/cancel", headers=AUTH)
            assert resp.status_code == 200
            assert resp.json()["status"] == "cancelled"
        runs.mark_cancelled.assert_awaited_once_with("run-1")

    def test_cancel_finished_run_conflicts(self, token_env):
        runs = MagicMock()
        runs.get = AsyncMock(return_value=ScrapeRun(run_id="run-1", status="completed"))
        runs.mark_cancelled = AsyncMock()

        for client in _make_client(runs=runs):
            resp = client.post("/runs/run-1/cancel", headers=AUTH)
            assert resp.status_code == 409
        runs.mark_cancelled.assert_not_called()

    def test_run_logs(self, token_env):
        logs = MagicMock()
        logs.list_for_run = AsyncMock(
            return_value=[{"level": "info", "message": "Batch started", "post_id": None}]
        )

        for client in _make_client(logs=logs):
            resp = client.get("/runs/run-1/logs?limit=10", headers=AUTH)
            assert resp.status_code == 200
            assert resp.json()["count"] == 1
            assert resp.json()["entries"][0]["message"] == "Batch started"
        logs.list_for_run.assert_awaited_once_with("run-1", limit=10)


class TestErrorHandling:
    """Errors raised while processing a batch."""

    def test_database_error_is_service_unavailable(self, token_env):
        service = MagicMock()
        service.process_batch = AsyncMock(side_effect=asyncpg.PostgresError("connection lost"))

        for client in _make_client(service=service):
            resp = client.post("/ingest", json={"posts": []}, headers=AUTH)
            assert resp.status_code == 503
            assert resp.json() == {"detail": "Database unavailable", "error_type": "database"}
