from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict

from feedstr.main.models import JobStatus


class AsyncJob(BaseModel):
    """Snapshot of one feed registration job. Updates replace the snapshot."""

    model_config = ConfigDict(frozen=True)

    id: str
    url: str
    status: JobStatus = JobStatus.PROCESSING
    message: str = ""
    error: Optional[str] = None
    feed_url: Optional[str] = None
    npub: Optional[str] = None
    created_at: datetime
    finished_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal


class AddAsyncResponse(BaseModel):
    job_id: str


class AddAsyncError(BaseModel):
    error: str


class JobStatusPublic(BaseModel):
    status: JobStatus
    message: Optional[str] = None
    error: Optional[str] = None
    url: Optional[str] = None
    npub: Optional[str] = None

    @classmethod
    def from_job(cls, job: AsyncJob) -> "JobStatusPublic":
        return cls(
            status=job.status,
            message=job.message,
            error=job.error,
            url=job.feed_url,
            npub=job.npub,
        )
