"""
Run and run-log repositories.

Run counters are running totals shared by every batch of a run. They
are only ever changed with single-statement increments so batches
reporting at the same time cannot lose each other's updates.
"""

import json
import logging
from typing import Any

import asyncpg

from src.runs.schemas import LogEntry, RunProgress, ScrapeRun, new_run_id
from src.storage.database import Database

logger = logging.getLogger(__name__)


class RunNotFoundError(Exception):
    """Raised when a run id does not exist."""

    def __init__(self, run_id: str):
        self.run_id = run_id
        super().__init__(f"Scrape run not found: {run_id}")


class RunRepository:
    """Repository for scrape_runs."""

    def __init__(self, database: Database) -> None:
        self._db = database

    async def create(
        self,
        run_id: str | None = None,
        run_type: str = "automated",
        dataset_id: str | None = None,
    ) -> ScrapeRun:
        """
        Start a new run.

        If the requested id is already taken by an earlier run, a fresh
        id is generated instead of failing the batch.
        """
        requested = run_id or new_run_id()
        try:
            row = await self._insert(requested, run_type, dataset_id)
        except asyncpg.UniqueViolationError:
            fresh = new_run_id()
            logger.warning(f"Run id {requested} already exists, starting run {fresh} instead")
            row = await self._insert(fresh, run_type, dataset_id)
        return _row_to_run(row)

    async def _insert(self, run_id: str, run_type: str, dataset_id: str | None) -> Any:
        return await self._db.fetchrow(
            """
            INSERT INTO scrape_runs (id, status, run_type, dataset_id, started_at, last_heartbeat)
            VALUES ($1, 'running', $2, $3, NOW(), NOW())
            RETURNING *
            """,
            run_id,
            run_type,
            dataset_id,
        )

    async def get(self, run_id: str) -> ScrapeRun | None:
        row = await self._db.fetchrow("SELECT * FROM scrape_runs WHERE id = $1", run_id)
        return _row_to_run(row) if row else None

    async def list_recent(self, limit: int = 20) -> list[ScrapeRun]:
        rows = await self._db.fetch(
            "SELECT * FROM scrape_runs ORDER BY started_at DESC LIMIT $1",
            limit,
        )
        return [_row_to_run(row) for row in rows]

    async def add_progress(self, run_id: str, progress: RunProgress) -> ScrapeRun:
        """
        Add one batch's counters to the run totals.

        Raises:
            RunNotFoundError: If the run does not exist.
        """
        row = await self._db.fetchrow(
            """
            UPDATE scrape_runs SET
                posts_added = posts_added + $2,
                posts_updated = posts_updated + $3,
                posts_skipped = posts_skipped + $4,
                posts_failed = posts_failed + $5,
                posts_rejected = posts_rejected + $6,
                accounts_found = accounts_found + $7,
                last_heartbeat = NOW()
            WHERE id = $1
            RETURNING *
            """,
            run_id,
            progress.posts_added,
            progress.posts_updated,
            progress.posts_skipped,
            progress.posts_failed,
            progress.posts_rejected,
            progress.accounts_found,
        )
        if row is None:
            raise RunNotFoundError(run_id)
        return _row_to_run(row)

    async def heartbeat(self, run_id: str) -> bool:
        """Touch the heartbeat of a running run. False if it is no longer running."""
        result = await self._db.execute(
            """
            UPDATE scrape_runs SET last_heartbeat = NOW()
            WHERE id = $1 AND status = 'running'
            """,
            run_id,
        )
        return _rows_affected(result) > 0

    async def is_cancelled(self, run_id: str) -> bool:
        status = await self._db.fetchval("SELECT status FROM scrape_runs WHERE id = $1", run_id)
        return status == "cancelled"

    async def mark_completed(self, run_id: str) -> bool:
        return await self._finish(run_id, "completed", None)

    async def mark_failed(self, run_id: str, error_message: str) -> bool:
        return await self._finish(run_id, "failed", error_message)

    async def mark_cancelled(self, run_id: str) -> bool:
        return await self._finish(run_id, "cancelled", None)

    async def _finish(self, run_id: str, status: str, error_message: str | None) -> bool:
        """Move a running run to a terminal status. Terminal runs are left alone."""
        result = await self._db.execute(
            """
            UPDATE scrape_runs
            SET status = $2, error_message = COALESCE($3, error_message), completed_at = NOW()
            WHERE id = $1 AND status = 'running'
            """,
            run_id,
            status,
            error_message,
        )
        updated = _rows_affected(result) > 0
        if updated:
            logger.info(f"Run {run_id} marked {status}")
        return updated

    async def reclaim_stuck_runs(self, timeout_seconds: float) -> list[str]:
        """
        Fail runs whose heartbeat is older than the timeout.

        Returns:
            Ids of the reclaimed runs.
        """
        rows = await self._db.fetch(
            """
            UPDATE scrape_runs
            SET status = 'failed',
                error_message = $2,
                completed_at = NOW()
            WHERE status = 'running'
              AND COALESCE(last_heartbeat, started_at) < NOW() - make_interval(secs => $1)
            RETURNING id
            """,
            float(timeout_seconds),
            f"No heartbeat for {timeout_seconds:g} seconds",
        )
        reclaimed = [row["id"] for row in rows]
        if reclaimed:
            logger.warning(f"Reclaimed {len(reclaimed)} stuck runs: {reclaimed}")
        return reclaimed


class LogRepository:
    """Repository for the append-only scraper_logs table."""

    def __init__(self, database: Database) -> None:
        self._db = database

    async def insert_many(self, entries: list[LogEntry]) -> None:
        if not entries:
            return
        await self._db.executemany(
            """
            INSERT INTO scraper_logs (
                run_id, post_id, stage, log_level, message,
                duration_ms, data, error_details, created_at
            ) VALUES ($1, $2, $3, $4, $5, $6, $7::jsonb, $8::jsonb, $9)
            """,
            [
                (
                    e.run_id,
                    e.post_id,
                    e.stage,
                    e.level,
                    e.message,
                    e.duration_ms,
                    json.dumps(e.data, default=str) if e.data is not None else None,
                    json.dumps(e.error_details, default=str) if e.error_details is not None else None,
                    e.created_at,
                )
                for e in entries
            ],
        )

    async def list_for_run(self, run_id: str, limit: int = 500) -> list[dict[str, Any]]:
        rows = await self._db.fetch(
            """
            SELECT * FROM scraper_logs WHERE run_id = $1
            ORDER BY created_at, id
            LIMIT $2
            """,
            run_id,
            limit,
        )
        return [dict(row) for row in rows]


def _rows_affected(status: str) -> int:
    """Row count from a command status such as 'UPDATE 1'."""
    try:
        return int(status.rsplit(" ", 1)[-1])
    except (ValueError, AttributeError):
        return 0


def _row_to_run(row: Any) -> ScrapeRun:
    return ScrapeRun(
        run_id=row["id"],
        status=row.get("status") or "running",
        run_type=row.get("run_type") or "automated",
        dataset_id=row.get("dataset_id"),
        posts_added=row.get("posts_added") or 0,
        posts_updated=row.get("posts_updated") or 0,
        posts_skipped=row.get("posts_skipped") or 0,
        posts_failed=row.get("posts_failed") or 0,
        posts_rejected=row.get("posts_rejected") or 0,
        accounts_found=row.get("accounts_found") or 0,
        error_message=row.get("error_message"),
        started_at=row["started_at"],
        completed_at=row.get("completed_at"),
        last_heartbeat=row.get("last_heartbeat"),
    )
