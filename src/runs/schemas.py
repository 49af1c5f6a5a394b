"""Schema definitions for scrape runs and the per-run log."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal

RunStatus = Literal["running", "completed", "failed", "cancelled"]
LogLevel = Literal["info", "success", "warn", "error"]

RUN_STATUSES: tuple[str, ...] = ("running", "completed", "failed", "cancelled")
TERMINAL_STATUSES: frozenset[str] = frozenset({"completed", "failed", "cancelled"})
LOG_LEVELS: tuple[str, ...] = ("info", "success", "warn", "error")

# Pipeline stages that write to the run log
LOG_STAGES: tuple[str, ...] = (
    "fetch",
    "pre_filter",
    "extraction",
    "ai",
    "rejection",
    "geocache",
    "validation",
    "image",
    "dedup",
    "save",
    "training",
    "skip",
)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_run_id() -> str:
    return str(uuid.uuid4())


@dataclass
class RunProgress:
    """Per-batch counter deltas added to a run's running totals."""

    posts_added: int = 0
    posts_updated: int = 0
    posts_skipped: int = 0
    posts_failed: int = 0
    posts_rejected: int = 0
    accounts_found: int = 0

    @property
    def total(self) -> int:
        return (
            self.posts_added
            + self.posts_updated
            + self.posts_skipped
            + self.posts_failed
            + self.posts_rejected
        )

    def to_dict(self) -> dict[str, int]:
        return {
            "posts_added": self.posts_added,
            "posts_updated": self.posts_updated,
            "posts_skipped": self.posts_skipped,
            "posts_failed": self.posts_failed,
            "posts_rejected": self.posts_rejected,
            "accounts_found": self.accounts_found,
        }


@dataclass
class ScrapeRun:
    """
    One logical ingestion run, possibly spanning several batches.

    Counters are running totals maintained by atomic increments, so
    batches of the same run can report concurrently.
    """

    run_id: str = field(default_factory=new_run_id)
    status: str = "running"
    run_type: str = "automated"
    dataset_id: str | None = None
    posts_added: int = 0
    posts_updated: int = 0
    posts_skipped: int = 0
    posts_failed: int = 0
    posts_rejected: int = 0
    accounts_found: int = 0
    error_message: str | None = None
    started_at: datetime = field(default_factory=_utc_now)
    completed_at: datetime | None = None
    last_heartbeat: datetime | None = None

    def __post_init__(self) -> None:
        if self.status not in RUN_STATUSES:
            raise ValueError(f"Invalid run status: {self.status}")

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "status": self.status,
            "run_type": self.run_type,
            "dataset_id": self.dataset_id,
            "posts_added": self.posts_added,
            "posts_updated": self.posts_updated,
            "posts_skipped": self.posts_skipped,
            "posts_failed": self.posts_failed,
            "posts_rejected": self.posts_rejected,
            "accounts_found": self.accounts_found,
            "error_message": self.error_message,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "last_heartbeat": self.last_heartbeat.isoformat() if self.last_heartbeat else None,
        }


@dataclass(frozen=True)
class LogEntry:
    """One row of the append-only run log."""

    run_id: str | None
    stage: str
    level: str
    message: str
    post_id: str | None = None
    duration_ms: int | None = None
    data: dict[str, Any] | None = None
    error_details: dict[str, Any] | None = None
    created_at: datetime = field(default_factory=_utc_now)
