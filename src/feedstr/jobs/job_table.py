import asyncio
from types import MappingProxyType
from typing import Mapping, Optional

from feedstr.jobs.job_models import AsyncJob
from feedstr.main.logging import get_logger

logger = get_logger(__name__)


class JobTable:
    """In-memory job snapshots keyed by job id.

    Writers build a new mapping and swap it in; readers take the current
    mapping without locking and always see a complete snapshot.
    """

    def __init__(self, retention_seconds: float):
        self.retention_seconds = retention_seconds
        self._jobs: Mapping[str, AsyncJob] = MappingProxyType({})
        self._purge_handles: dict[str, asyncio.TimerHandle] = {}

    def __len__(self) -> int:
        return len(self._jobs)

    def get(self, job_id: str) -> Optional[AsyncJob]:
        return self._jobs.get(job_id)

    def put(self, job: AsyncJob) -> AsyncJob:
        self._jobs = MappingProxyType({**self._jobs, job.id: job})
        if job.is_terminal:
            self._schedule_purge(job.id)
        return job

    def update(self, job_id: str, **changes) -> AsyncJob:
        current = self._jobs[job_id]
        return self.put(current.model_copy(update=changes))

    def remove(self, job_id: str) -> None:
        if job_id not in self._jobs:
            return
        jobs = dict(self._jobs)
        del jobs[job_id]
        self._jobs = MappingProxyType(jobs)

        handle = self._purge_handles.pop(job_id, None)
        if handle is not None:
            handle.cancel()

    def _schedule_purge(self, job_id: str) -> None:
        if job_id in self._purge_handles:
            return
        loop = asyncio.get_running_loop()
        self._purge_handles[job_id] = loop.call_later(
            self.retention_seconds, self._purge, job_id
        )

    def _purge(self, job_id: str) -> None:
        self._purge_handles.pop(job_id, None)
        self.remove(job_id)
        logger.debug("Purged finished job", extra={"job_id": job_id})

    def clear(self) -> None:
        for handle in self._purge_handles.values():
            handle.cancel()
        self._purge_handles = {}
        self._jobs = MappingProxyType({})
