"""Tests for PatternRepository SQL construction against a mocked database."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from src.extraction.repository import PatternRepository
from src.extraction.schemas import Pattern


def _row(**overrides) -> dict:
    row = {
        "id": "default_date_month_first",
        "pattern_type": "date",
        "pattern_regex": r"\d+",
        "pattern_description": "digits",
        "priority": 130,
        "confidence_score": 0.9,
        "success_count": 4,
        "failure_count": 1,
        "is_active": True,
        "is_valid": True,
        "source": "default",
        "last_used_at": None,
        "created_at": datetime(2025, 1, 1, tzinfo=timezone.utc),
    }
    row.update(overrides)
    return row


@pytest.fixture
def mock_db():
    """Mock Database with asyncpg-like interface."""
    db = AsyncMock()
    db.fetch = AsyncMock(return_value=[])
    db.fetchrow = AsyncMock(return_value=None)
    db.execute = AsyncMock(return_value="UPDATE 0")
    return db


@pytest.fixture
def repo(mock_db):
    return PatternRepository(mock_db)


class TestPatternQueries:
    """Listing and upsert."""

    @pytest.mark.asyncio
    async def test_list_active_maps_rows(self, repo, mock_db):
        mock_db.fetch.return_value = [_row(), _row(id="manual_1", source="manual", confidence_score=None)]

        patterns = await repo.list_active()

        sql = mock_db.fetch.call_args[0][0]
        assert "is_active = TRUE AND is_valid = TRUE" in sql
        assert patterns[0].pattern_id == "default_date_month_first"
        assert patterns[0].success_rate == 0.8
        assert patterns[1].source == "manual"
        assert patterns[1].confidence_score == 0.5

    @pytest.mark.asyncio
    async def test_list_all_filters_by_type(self, repo, mock_db):
        await repo.list_all("venue")

        assert mock_db.fetch.call_args[0][1] == "venue"

    @pytest.mark.asyncio
    async def test_upsert_conflicts_on_type_and_regex(self, repo, mock_db):
        mock_db.fetchrow.return_value = _row(id="p1")
        pattern = Pattern(pattern_id="p1", pattern_type="date", pattern_regex=r"\d+")

        saved = await repo.upsert(pattern)

        sql = mock_db.fetchrow.call_args[0][0]
        assert "ON CONFLICT (pattern_type, pattern_regex)" in sql
        assert "success_count = " not in sql.split("DO UPDATE")[1]
        assert saved.pattern_id == "p1"

    @pytest.mark.asyncio
    async def test_seed_counts_written(self, repo, mock_db):
        mock_db.fetchrow.return_value = _row()
        patterns = [Pattern(pattern_type="date", pattern_regex=f"x{i}") for i in range(3)]

        assert await repo.seed(patterns) == 3
        assert mock_db.fetchrow.await_count == 3


class TestPatternCounters:
    """Atomic counter and flag updates."""

    @pytest.mark.asyncio
    async def test_increment_success(self, repo, mock_db):
        mock_db.fetch.return_value = [{"id": "a"}, {"id": "b"}]

        assert await repo.increment_success(["a", "b"]) == 2

        sql, ids = mock_db.fetch.call_args[0]
        assert "success_count = success_count + 1" in sql
        assert ids == ["a", "b"]

    @pytest.mark.asyncio
    async def test_increment_failure_reports_deactivated(self, repo, mock_db):
        mock_db.fetch.return_value = [{"id": "a", "is_active": True}, {"id": "b", "is_active": False}]

        deactivated = await repo.increment_failure(["a", "b"], min_samples=5, min_success_rate=0.25)

        args = mock_db.fetch.call_args[0]
        assert "failure_count = failure_count + 1" in args[0]
        assert "THEN FALSE" in args[0]
        assert args[2:] == (5, 0.25)
        assert deactivated == ["b"]

    @pytest.mark.asyncio
    async def test_empty_ids_skip_database(self, repo, mock_db):
        assert await repo.increment_success([]) == 0
        assert await repo.increment_failure([]) == []
        await repo.mark_invalid([])

        mock_db.fetch.assert_not_called()
        mock_db.execute.assert_not_called()

    @pytest.mark.asyncio
    async def test_mark_invalid(self, repo, mock_db):
        await repo.mark_invalid(["broken"])

        sql, ids = mock_db.execute.call_args[0]
        assert "is_valid = FALSE" in sql
        assert ids == ["broken"]

    @pytest.mark.asyncio
    async def test_set_active_reports_match(self, repo, mock_db):
        mock_db.execute.return_value = "UPDATE 1"
        assert await repo.set_active("p1", False) is True

        mock_db.execute.return_value = "UPDATE 0"
        assert await repo.set_active("missing", False) is False
