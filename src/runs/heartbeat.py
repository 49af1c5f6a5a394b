"""Periodic run heartbeat for stuck-run detection."""

import asyncio
import logging
from datetime import datetime, timezone

from src.runs.repository import RunRepository

logger = logging.getLogger(__name__)


class Heartbeat:
    """
    Touches ``scrape_runs.last_heartbeat`` every ``interval`` seconds
    while a batch is being processed.

    Best effort: a failed beat is logged and the next one is tried on
    schedule. A monitor reclaims runs whose heartbeat goes stale (see
    ``RunRepository.reclaim_stuck_runs``).

    Usage:
        async with Heartbeat(runs, run_id, interval=30):
            await process(...)
    """

    def __init__(self, repository: RunRepository, run_id: str, interval: float = 30.0) -> None:
        self._repository = repository
        self._run_id = run_id
        self._interval = interval
        self._task: asyncio.Task | None = None
        self.beats = 0
        self.last_beat: datetime | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._run(), name=f"heartbeat_{self._run_id}")

    async def stop(self) -> None:
        if self._task is None:
            return
        task, self._task = self._task, None
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.warning(f"Heartbeat task for run {self._run_id} stopped: {e}")

    async def __aenter__(self) -> "Heartbeat":
        self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.stop()

    async def beat(self) -> bool:
        try:
            alive = await self._repository.heartbeat(self._run_id)
        except Exception as e:
            logger.warning(f"Heartbeat failed for run {self._run_id}: {e}")
            return False
        self.beats += 1
        self.last_beat = datetime.now(timezone.utc)
        if not alive:
            logger.info(f"Run {self._run_id} is no longer running, heartbeat ignored")
        return alive

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            await self.beat()
