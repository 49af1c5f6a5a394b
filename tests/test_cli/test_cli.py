"""Tests for the event-scout CLI."""

import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from click.testing import CliRunner

from src.cli import main
from src.extraction.store import PatternCompileError
from src.extraction.schemas import Pattern
from src.runs.schemas import RunProgress, ScrapeRun
from src.services.ingest_service import BatchResult
from src.training.schemas import PatternSuggestion


@pytest.fixture
def runner():
    return CliRunner()


def _mock_db():
    """Create a mock Database."""
    db = AsyncMock()
    db.connect = AsyncMock()
    db.close = AsyncMock()
    db.health_check = AsyncMock(return_value=True)
    return db


class TestInitAndSeed:
    """Tests for `init-db` and `seed-patterns`."""

    def test_init_db(self, runner):
        mock_db = _mock_db()
        mock_repo = AsyncMock()

        with patch("src.storage.database.Database", return_value=mock_db), \
             patch("src.storage.repository.PostRepository", return_value=mock_repo):
            result = runner.invoke(main, ["init-db"])

        assert result.exit_code == 0
        assert "Database initialized successfully" in result.output
        mock_repo.create_tables.assert_awaited_once()
        mock_db.close.assert_awaited_once()

    def test_seed_patterns(self, runner):
        mock_db = _mock_db()
        mock_repo = AsyncMock()
        mock_repo.seed = AsyncMock(return_value=3)

        with patch("src.storage.database.Database", return_value=mock_db), \
             patch("src.extraction.repository.PatternRepository", return_value=mock_repo):
            result = runner.invoke(main, ["seed-patterns"])

        assert result.exit_code == 0
        assert "Seeded 3 of" in result.output


class TestIngest:
    """Tests for `ingest`."""

    def test_ingest_batches_share_a_run(self, runner, tmp_path, dataset_item):
        items = [dataset_item, {"caption": "no id"}, {**dataset_item, "id": "3301234567891"}]
        path = tmp_path / "posts.json"
        path.write_text(json.dumps({"items": items}), encoding="utf-8")

        service = MagicMock()
        service.process_batch = AsyncMock(
            side_effect=[
                BatchResult(run_id="run-1", batch_index=1, total_batches=2,
                            progress=RunProgress(posts_added=1)),
                BatchResult(run_id="run-1", batch_index=2, total_batches=2,
                            progress=RunProgress(posts_rejected=1)),
            ]
        )

        with patch("src.storage.database.Database", return_value=_mock_db()), \
             patch("src.services.ingest_service.IngestService", return_value=service):
            result = runner.invoke(main, ["ingest", str(path), "--batch-size", "1"])

        assert result.exit_code == 0
        assert "Skipping item 1" in result.output
        assert "Batch 2/2 completed: 0 added" in result.output
        assert "Run run-1" in result.output

        first, second = [c[0][0] for c in service.process_batch.call_args_list]
        assert first.run_id is None
        assert second.run_id == "run-1"
        assert second.batch_index == 2
        assert first.dataset_id == "posts.json"

    def test_ingest_stops_on_cancelled_batch(self, runner, tmp_path, dataset_item):
        items = [dataset_item, {**dataset_item, "id": "3301234567891"}]
        path = tmp_path / "posts.json"
        path.write_text(json.dumps(items), encoding="utf-8")

        service = MagicMock()
        service.process_batch = AsyncMock(
            return_value=BatchResult(run_id="run-1", batch_index=1, total_batches=2,
                                     status="cancelled", run_status="cancelled")
        )

        with patch("src.storage.database.Database", return_value=_mock_db()), \
             patch("src.services.ingest_service.IngestService", return_value=service):
            result = runner.invoke(main, ["ingest", str(path), "--batch-size", "1", "--force-import"])

        assert result.exit_code == 0
        assert "Run run-1 stopped: cancelled" in result.output
        service.process_batch.assert_awaited_once()
        assert service.process_batch.call_args[1] == {"force_import": True}

    def test_ingest_without_valid_posts(self, runner, tmp_path):
        path = tmp_path / "posts.json"
        path.write_text(json.dumps([{"caption": "no id"}, "junk"]), encoding="utf-8")

        result = runner.invoke(main, ["ingest", str(path)])

        assert result.exit_code == 0
        assert "No valid posts found." in result.output

    def test_ingest_rejects_non_list_file(self, runner, tmp_path):
        path = tmp_path / "posts.json"
        path.write_text(json.dumps({"items": "nope"}), encoding="utf-8")

        result = runner.invoke(main, ["ingest", str(path)])

        assert result.exit_code != 0
        assert "does not contain a list of posts" in result.output


class TestRuns:
    """Tests for `runs` and `reclaim-stuck`."""

    def test_reclaim_stuck(self, runner):
        mock_repo = AsyncMock()
        mock_repo.reclaim_stuck_runs = AsyncMock(return_value=["run-1", "run-2"])

        with patch("src.storage.database.Database", return_value=_mock_db()), \
             patch("src.runs.repository.RunRepository", return_value=mock_repo):
            result = runner.invoke(main, ["reclaim-stuck", "--timeout", "300"])

        assert result.exit_code == 0
        assert "Reclaimed 2 stuck runs" in result.output
        mock_repo.reclaim_stuck_runs.assert_awaited_once_with(300.0)

    def test_reclaim_nothing(self, runner):
        mock_repo = AsyncMock()
        mock_repo.reclaim_stuck_runs = AsyncMock(return_value=[])

        with patch("src.storage.database.Database", return_value=_mock_db()), \
             patch("src.runs.repository.RunRepository", return_value=mock_repo):
            result = runner.invoke(main, ["reclaim-stuck"])

        assert "No stuck runs found." in result.output

    def test_list_runs(self, runner):
        mock_repo = AsyncMock()
        mock_repo.list_recent = AsyncMock(
            return_value=[ScrapeRun(run_id="run-1", status="completed", posts_added=7)]
        )

        with patch("src.storage.database.Database", return_value=_mock_db()), \
             patch("src.runs.repository.RunRepository", return_value=mock_repo):
            result = runner.invoke(main, ["runs", "--limit", "5"])

        assert result.exit_code == 0
        assert "run-1" in result.output
        assert "completed" in result.output
        mock_repo.list_recent.assert_awaited_once_with(limit=5)


class TestSuggestions:
    """Tests for the `suggestions` command group."""

    def test_list(self, runner):
        mock_repo = AsyncMock()
        mock_repo.list_suggestions = AsyncMock(
            return_value=[
                PatternSuggestion(
                    pattern_type="date",
                    suggested_regex=r"\d{2}\.\d{2}\.\d{4}",
                    sample_text="Album launch on 22.03.2025",
                    correct_value="2025-03-22",
                    suggestion_id="sug_1",
                    occurrence_count=4,
                )
            ]
        )

        with patch("src.storage.database.Database", return_value=_mock_db()), \
             patch("src.training.repository.TrainingRepository", return_value=mock_repo):
            result = runner.invoke(main, ["suggestions", "list", "--min-occurrences", "2"])

        assert result.exit_code == 0
        assert "sug_1  [date]  seen 4x" in result.output
        mock_repo.list_suggestions.assert_awaited_once_with(status="pending", min_occurrences=2, limit=50)

    def test_list_empty(self, runner):
        mock_repo = AsyncMock()
        mock_repo.list_suggestions = AsyncMock(return_value=[])

        with patch("src.storage.database.Database", return_value=_mock_db()), \
             patch("src.training.repository.TrainingRepository", return_value=mock_repo):
            result = runner.invoke(main, ["suggestions", "list", "--status", "approved"])

        assert "No approved suggestions found." in result.output

    def test_approve(self, runner):
        trainer = MagicMock()
        trainer.approve_suggestion = AsyncMock(
            return_value=Pattern(pattern_id="learned_1", pattern_type="date", pattern_regex=r"\d+")
        )

        with patch("src.storage.database.Database", return_value=_mock_db()), \
             patch("src.cli._build_trainer", new=AsyncMock(return_value=trainer)):
            result = runner.invoke(main, ["suggestions", "approve", "sug_1"])

        assert result.exit_code == 0
        assert "Created pattern learned_1 (date)" in result.output

    def test_approve_unknown(self, runner):
        trainer = MagicMock()
        trainer.approve_suggestion = AsyncMock(return_value=None)

        with patch("src.storage.database.Database", return_value=_mock_db()), \
             patch("src.cli._build_trainer", new=AsyncMock(return_value=trainer)):
            result = runner.invoke(main, ["suggestions", "approve", "sug_404"])

        assert result.exit_code == 1
        assert "No pending suggestion sug_404" in result.output

    def test_approve_bad_regex(self, runner):
        trainer = MagicMock()
        trainer.approve_suggestion = AsyncMock(side_effect=PatternCompileError("learned_1", "unbalanced parenthesis"))

        with patch("src.storage.database.Database", return_value=_mock_db()), \
             patch("src.cli._build_trainer", new=AsyncMock(return_value=trainer)):
            result = runner.invoke(main, ["suggestions", "approve", "sug_1"])

        assert result.exit_code == 1
        assert "does not compile" in result.output

    def test_reject(self, runner):
        trainer = MagicMock()
        trainer.reject_suggestion = AsyncMock(return_value=True)

        with patch("src.storage.database.Database", return_value=_mock_db()), \
             patch("src.cli._build_trainer", new=AsyncMock(return_value=trainer)):
            result = runner.invoke(main, ["suggestions", "reject", "sug_1"])

        assert result.exit_code == 0
        assert "Rejected suggestion sug_1" in result.output


class TestHealth:
    """Tests for `health`."""

    def test_healthy(self, runner):
        with patch("src.storage.database.Database", return_value=_mock_db()):
            result = runner.invoke(main, ["health"])

        assert result.exit_code == 0
        assert "postgres: True" in result.output

    def test_postgres_down(self, runner):
        db = _mock_db()
        db.connect = AsyncMock(side_effect=OSError("refused"))

        with patch("src.storage.database.Database", return_value=db):
            result = runner.invoke(main, ["health"])

        assert result.exit_code == 1
        assert "Some services unhealthy!" in result.output
