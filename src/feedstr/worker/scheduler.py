"""Periodic batch scheduler.

Two timers drive the work: a metadata batch and a scrape batch. Both run
once at startup (metadata first), then on their own intervals. Batches
share a run-lock, so at most one batch touches the feeds at any time.
"""

import asyncio
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Optional

from feedstr.main.log_context import log_context
from feedstr.main.logging import get_logger
from feedstr.worker.worker_pool import PoolStats, run_pool

if TYPE_CHECKING:
    from feedstr.feeds.domain.feed_repo import FeedRepository
    from feedstr.worker.feed_tasks import FeedTasks

logger = get_logger(__name__)


class BatchKind(str, Enum):
    METADATA = "metadata"
    SCRAPE = "scrape"


class FeedScheduler:
    def __init__(
        self,
        feed_repo: "FeedRepository",
        feed_tasks: "FeedTasks",
        max_workers: int,
        fetch_interval: float,
        metadata_interval: float,
        shutdown_grace: float,
    ):
        self.feed_repo = feed_repo
        self.feed_tasks = feed_tasks
        self.max_workers = max_workers
        self.intervals = {
            BatchKind.METADATA: metadata_interval,
            BatchKind.SCRAPE: fetch_interval,
        }
        self.shutdown_grace = shutdown_grace

        self._run_lock = asyncio.Lock()
        self._stop_event = asyncio.Event()
        self._tasks: list[asyncio.Task] = []
        self.last_runs: dict[BatchKind, datetime] = {}

    @property
    def is_running(self) -> bool:
        return any(not task.done() for task in self._tasks)

    @property
    def batch_in_progress(self) -> bool:
        return self._run_lock.locked()

    async def run_batch(self, kind: BatchKind) -> PoolStats:
        async with self._run_lock:
            with log_context(batch=kind.value):
                feeds = await self.feed_repo.get_all()
                now = datetime.now(timezone.utc)
                logger.info(f"Starting {kind.value} batch for {len(feeds)} feeds")

                if kind is BatchKind.METADATA:
                    task = self.feed_tasks.refresh_metadata
                else:
                    task = self.feed_tasks.scrape_feed

                async def handler(feed):
                    return await task(feed, now)

                stats = await run_pool(feeds, handler, self.max_workers)
                self.last_runs[kind] = now
                logger.info(
                    f"Finished {kind.value} batch",
                    extra={"processed": stats.processed, "failed": stats.failed},
                )
                return stats

    async def _run_logged(self, kind: BatchKind):
        try:
            await self.run_batch(kind)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception(f"{kind.value} batch failed")

    async def _timer(self, kind: BatchKind):
        interval = self.intervals[kind]
        while not self._stop_event.is_set():
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                await self._run_logged(kind)

    async def _main(self):
        for kind in (BatchKind.METADATA, BatchKind.SCRAPE):
            if self._stop_event.is_set():
                return
            await self._run_logged(kind)

        await asyncio.gather(self._timer(BatchKind.METADATA), self._timer(BatchKind.SCRAPE))

    def start(self):
        if self.is_running:
            return
        self._stop_event.clear()
        self._tasks = [asyncio.create_task(self._main(), name="feed-scheduler")]
        logger.info(
            "Scheduler started",
            extra={
                "fetch_interval": self.intervals[BatchKind.SCRAPE],
                "metadata_interval": self.intervals[BatchKind.METADATA],
                "max_workers": self.max_workers,
            },
        )

    async def stop(self, grace: Optional[float] = None):
        """Stop the timers and give an in-flight batch ``grace`` seconds to drain."""
        grace = self.shutdown_grace if grace is None else grace
        self._stop_event.set()

        pending = [task for task in self._tasks if not task.done()]
        if pending:
            _, still_running = await asyncio.wait(pending, timeout=grace)
            for task in still_running:
                logger.warning("Batch did not finish within the grace period, cancelling")
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

        self._tasks = []
        logger.info("Scheduler stopped")
