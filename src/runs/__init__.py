"""
Scrape run lifecycle, per-run log and heartbeat.

Components:
- RunRepository: run rows with atomic counters and terminal transitions
- LogRepository / RunLogger: non-blocking queue-backed run log
- Heartbeat: periodic liveness touch for stuck-run reclaim
"""

from src.runs.heartbeat import Heartbeat
from src.runs.logger import RunLogger
from src.runs.repository import LogRepository, RunNotFoundError, RunRepository
from src.runs.schemas import LOG_LEVELS, LOG_STAGES, LogEntry, RunProgress, ScrapeRun

__all__ = [
    "Heartbeat",
    "LOG_LEVELS",
    "LOG_STAGES",
    "LogEntry",
    "LogRepository",
    "RunLogger",
    "RunNotFoundError",
    "RunProgress",
    "RunRepository",
    "ScrapeRun",
]
