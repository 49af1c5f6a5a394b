"""Tests for RunRepository and LogRepository SQL construction."""

import json
from datetime import datetime, timezone
from unittest.mock import AsyncMock

import asyncpg
import pytest

from src.runs.repository import LogRepository, RunNotFoundError, RunRepository
from src.runs.schemas import LogEntry, RunProgress, ScrapeRun

STARTED = datetime(2025, 3, 10, 4, 0, tzinfo=timezone.utc)


def _run_row(run_id: str = "run-1", **overrides) -> dict:
    row = {"id": run_id, "status": "running", "run_type": "automated", "started_at": STARTED}
    row.update(overrides)
    return row


@pytest.fixture
def mock_db():
    db = AsyncMock()
    db.execute = AsyncMock(return_value="UPDATE 1")
    db.executemany = AsyncMock(return_value=None)
    db.fetch = AsyncMock(return_value=[])
    db.fetchrow = AsyncMock(return_value=None)
    db.fetchval = AsyncMock(return_value=None)
    return db


@pytest.fixture
def runs(mock_db):
    return RunRepository(mock_db)


class TestRunLifecycle:
    """Tests for run creation and terminal transitions."""

    @pytest.mark.asyncio
    async def test_create(self, runs, mock_db):
        mock_db.fetchrow.return_value = _run_row(dataset_id="ds-1")

        run = await runs.create("run-1", dataset_id="ds-1")

        assert mock_db.fetchrow.call_args[0][1:] == ("run-1", "automated", "ds-1")
        assert run.run_id == "run-1"
        assert run.status == "running"

    @pytest.mark.asyncio
    async def test_taken_id_starts_fresh_run(self, runs, mock_db):
        mock_db.fetchrow.side_effect = [
            asyncpg.UniqueViolationError("duplicate key"),
            _run_row("fresh"),
        ]

        run = await runs.create("run-1")

        second_id = mock_db.fetchrow.call_args_list[1][0][1]
        assert second_id != "run-1"
        assert run.run_id == "fresh"

    @pytest.mark.asyncio
    async def test_add_progress_uses_increments(self, runs, mock_db):
        mock_db.fetchrow.return_value = _run_row(posts_added=3)

        run = await runs.add_progress("run-1", RunProgress(posts_added=3, posts_rejected=1))

        sql = mock_db.fetchrow.call_args[0][0]
        assert "posts_added = posts_added + $2" in sql
        assert mock_db.fetchrow.call_args[0][1:] == ("run-1", 3, 0, 0, 0, 1, 0)
        assert run.posts_added == 3

    @pytest.mark.asyncio
    async def test_add_progress_unknown_run(self, runs, mock_db):
        with pytest.raises(RunNotFoundError, match="missing"):
            await runs.add_progress("missing", RunProgress())

    @pytest.mark.asyncio
    async def test_terminal_transition_only_from_running(self, runs, mock_db):
        assert await runs.mark_completed("run-1") is True
        assert "AND status = 'running'" in mock_db.execute.call_args[0][0]

        mock_db.execute.return_value = "UPDATE 0"
        assert await runs.mark_failed("run-1", "boom") is False
        assert mock_db.execute.call_args[0][1:] == ("run-1", "failed", "boom")

    @pytest.mark.asyncio
    async def test_heartbeat(self, runs, mock_db):
        assert await runs.heartbeat("run-1") is True

        mock_db.execute.return_value = "UPDATE 0"
        assert await runs.heartbeat("run-1") is False

    @pytest.mark.asyncio
    async def test_is_cancelled(self, runs, mock_db):
        mock_db.fetchval.return_value = "cancelled"
        assert await runs.is_cancelled("run-1")

    @pytest.mark.asyncio
    async def test_reclaim_stuck_runs(self, runs, mock_db):
        mock_db.fetch.return_value = [{"id": "run-7"}, {"id": "run-9"}]

        reclaimed = await runs.reclaim_stuck_runs(600)

        assert reclaimed == ["run-7", "run-9"]
        assert mock_db.fetch.call_args[0][1:] == (600.0, "No heartbeat for 600 seconds")


class TestScrapeRun:
    """Tests for the ScrapeRun schema."""

    def test_invalid_status(self):
        with pytest.raises(ValueError, match="Invalid run status"):
            ScrapeRun(status="paused")

    def test_terminal(self):
        assert ScrapeRun(status="cancelled").is_terminal
        assert not ScrapeRun().is_terminal

    def test_progress_total(self):
        assert RunProgress(posts_added=2, posts_failed=1, accounts_found=5).total == 3


class TestLogRepository:
    """Tests for LogRepository."""

    @pytest.mark.asyncio
    async def test_insert_many_serializes_json(self, mock_db):
        entry = LogEntry(
            run_id="run-1",
            stage="ai",
            level="error",
            message="failed",
            data={"attempt": 2},
            error_details={"type": "TimeoutError", "message": "slow"},
        )

        await LogRepository(mock_db).insert_many([entry])

        rows = mock_db.executemany.call_args[0][1]
        assert rows[0][:6] == ("run-1", None, "ai", "error", "failed", None)
        assert json.loads(rows[0][6]) == {"attempt": 2}
        assert json.loads(rows[0][7])["type"] == "TimeoutError"

    @pytest.mark.asyncio
    async def test_insert_nothing(self, mock_db):
        await LogRepository(mock_db).insert_many([])
        mock_db.executemany.assert_not_awaited()
