import asyncio
import secrets
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from feedstr.feeds.application.feed_service import AddFeedStage
from feedstr.jobs.job_models import AsyncJob
from feedstr.jobs.job_table import JobTable
from feedstr.main.exceptions import (
    BadRequestException,
    FeedAlreadyExistsException,
    InvalidFeedException,
    NotFoundException,
    PersistenceException,
)
from feedstr.main.log_context import log_context
from feedstr.main.logging import get_logger
from feedstr.main.models import JobStatus

if TYPE_CHECKING:
    from feedstr.feeds.application.feed_service import FeedService

logger = get_logger(__name__)

WAITING_MESSAGE = "Waiting for a free worker"

# Failures a caller can act on; anything else is reported as "Internal error"
_JOB_ERRORS = {
    InvalidFeedException: "No valid feed found at URL",
    FeedAlreadyExistsException: "Feed already exists",
    PersistenceException: "Failed to save feed to database",
}


def generate_job_id() -> str:
    return secrets.token_hex(16)


def _error_for(exc: Exception) -> str:
    for exc_type, message in _JOB_ERRORS.items():
        if isinstance(exc, exc_type):
            return message
    return "Internal error"


class JobManager:
    """Runs feed registrations in the background and tracks their progress."""

    def __init__(
        self,
        feed_service: "FeedService",
        job_table: JobTable,
        max_concurrent: int,
        shutdown_grace: float,
    ):
        self.feed_service = feed_service
        self.job_table = job_table
        self.shutdown_grace = shutdown_grace
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._tasks: dict[str, asyncio.Task] = {}

    def submit(self, url: str) -> str:
        url = (url or "").strip()
        if not url:
            raise BadRequestException("Feed URL is required")

        job_id = generate_job_id()
        self.job_table.put(
            AsyncJob(
                id=job_id,
                url=url,
                status=JobStatus.PROCESSING,
                message=AddFeedStage.VALIDATING,
                created_at=datetime.now(timezone.utc),
            )
        )

        task = asyncio.create_task(self._run(job_id, url), name=f"add-feed-{job_id}")
        self._tasks[job_id] = task
        task.add_done_callback(lambda _: self._tasks.pop(job_id, None))

        logger.info(f"Created async job {job_id} for URL: {url}", extra={"job_id": job_id})
        return job_id

    def query(self, job_id: str) -> AsyncJob:
        job = self.job_table.get(job_id)
        if job is None:
            raise NotFoundException("Job not found")
        return job

    @property
    def running(self) -> int:
        return len(self._tasks)

    def _progress(self, job_id: str):
        def report(message: str) -> None:
            self.job_table.update(job_id, message=message)

        return report

    async def _run(self, job_id: str, url: str):
        with log_context(job_id=job_id, feed_url=url):
            if self._semaphore.locked():
                self.job_table.update(job_id, message=WAITING_MESSAGE)

            async with self._semaphore:
                try:
                    feed = await self.feed_service.add_feed(url, progress=self._progress(job_id))
                except asyncio.CancelledError:
                    self.job_table.update(
                        job_id,
                        status=JobStatus.FAILED,
                        error="Internal error",
                        finished_at=datetime.now(timezone.utc),
                    )
                    raise
                except Exception as exc:
                    error = _error_for(exc)
                    if error == "Internal error":
                        logger.exception("Feed registration failed unexpectedly")
                    else:
                        logger.info(f"Feed registration failed: {error}")
                    self.job_table.update(
                        job_id,
                        status=JobStatus.FAILED,
                        error=error,
                        finished_at=datetime.now(timezone.utc),
                    )
                    return

            self.job_table.update(
                job_id,
                status=JobStatus.COMPLETED,
                message=AddFeedStage.DONE,
                feed_url=feed.url,
                npub=feed.npub,
                finished_at=datetime.now(timezone.utc),
            )
            logger.info(f"Job {job_id} completed with npub: {feed.npub}")

    async def shutdown(self, grace: float | None = None):
        grace = self.shutdown_grace if grace is None else grace
        pending = list(self._tasks.values())
        if pending:
            _, still_running = await asyncio.wait(pending, timeout=grace)
            for task in still_running:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
        self.job_table.clear()
