"""
Non-blocking per-run log sink.

Pipeline stages call ``RunLogger.log`` (or one of the level helpers),
which only enqueues. A background task drains the queue into the
scraper_logs table in batches. A full queue drops the entry and counts
it; a failed write is logged locally and the batch discarded. Neither
case ever reaches the pipeline.
"""

import asyncio
import logging
from typing import Any

from src.observability.metrics import get_metrics
from src.runs.repository import LogRepository
from src.runs.schemas import LOG_LEVELS, LogEntry

logger = logging.getLogger(__name__)

_STOP = object()


class RunLogger:
    """
    Append-only structured log for one run.

    Usage:
        async with RunLogger(repo, run_id) as run_log:
            run_log.info("extraction", "Extracted 3 fields", post_id="abc")

    Args:
        repository: Destination for log batches.
        run_id: Run the entries belong to.
        queue_size: Entries buffered before new ones are dropped.
        batch_size: Maximum entries written per round trip.
    """

    def __init__(
        self,
        repository: LogRepository,
        run_id: str | None,
        queue_size: int = 1000,
        batch_size: int = 50,
    ) -> None:
        self._repository = repository
        self._run_id = run_id
        self._queue: asyncio.Queue[Any] = asyncio.Queue(maxsize=queue_size)
        self._batch_size = batch_size
        self._task: asyncio.Task | None = None
        self._dropped = 0
        self._written = 0

    @property
    def run_id(self) -> str | None:
        return self._run_id

    @property
    def dropped(self) -> int:
        return self._dropped

    @property
    def written(self) -> int:
        return self._written

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._drain(), name=f"run_logger_{self._run_id}")

    async def close(self, timeout: float = 10.0) -> None:
        """Flush queued entries and stop the drain task."""
        if self._task is None:
            return
        task, self._task = self._task, None
        if not task.done():
            try:
                self._queue.put_nowait(_STOP)
            except asyncio.QueueFull:
                # The drain task frees a slot unless it is stuck; give up after the timeout
                try:
                    await asyncio.wait_for(self._queue.put(_STOP), timeout=timeout)
                except asyncio.TimeoutError:
                    task.cancel()
        try:
            await asyncio.wait_for(task, timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Run log for {self._run_id} did not flush within {timeout}s")
        except asyncio.CancelledError:
            if not task.cancelled():
                raise
        except Exception as e:
            logger.error(f"Run log drain for {self._run_id} stopped: {e}")

    async def __aenter__(self) -> "RunLogger":
        self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def log(
        self,
        stage: str,
        level: str,
        message: str,
        post_id: str | None = None,
        duration_ms: int | None = None,
        data: dict[str, Any] | None = None,
        error: BaseException | None = None,
    ) -> bool:
        """
        Enqueue one entry. Never blocks and never raises.

        Returns:
            False if the entry was dropped.
        """
        if level not in LOG_LEVELS:
            level = "info"
        entry = LogEntry(
            run_id=self._run_id,
            stage=stage,
            level=level,
            message=message,
            post_id=post_id,
            duration_ms=duration_ms,
            data=data,
            error_details=(
                {"type": type(error).__name__, "message": str(error)} if error is not None else None
            ),
        )
        try:
            self._queue.put_nowait(entry)
        except asyncio.QueueFull:
            self._dropped += 1
            get_metrics().record_log_dropped()
            return False
        return True

    def info(self, stage: str, message: str, **kwargs: Any) -> bool:
        return self.log(stage, "info", message, **kwargs)

    def success(self, stage: str, message: str, **kwargs: Any) -> bool:
        return self.log(stage, "success", message, **kwargs)

    def warn(self, stage: str, message: str, **kwargs: Any) -> bool:
        return self.log(stage, "warn", message, **kwargs)

    def error(self, stage: str, message: str, **kwargs: Any) -> bool:
        return self.log(stage, "error", message, **kwargs)

    async def _drain(self) -> None:
        stopping = False
        while not stopping:
            item = await self._queue.get()
            batch: list[LogEntry] = []
            if item is _STOP:
                stopping = True
            else:
                batch.append(item)
            while len(batch) < self._batch_size and not self._queue.empty():
                item = self._queue.get_nowait()
                if item is _STOP:
                    stopping = True
                    continue
                batch.append(item)
            if stopping:
                while not self._queue.empty():
                    item = self._queue.get_nowait()
                    if item is not _STOP:
                        batch.append(item)
            await self._write(batch)

    async def _write(self, batch: list[LogEntry]) -> None:
        if not batch:
            return
        try:
            await self._repository.insert_many(batch)
        except Exception as e:
            logger.error(f"Failed to write {len(batch)} run log entries for {self._run_id}: {e}")
            return
        self._written += len(batch)
