from enum import Enum
from typing import Optional

from pydantic import BaseModel


class GeneralError(BaseModel):
    message: str
    error_code: Optional[int] = None


class FeedState(str, Enum):
    ACTIVE = "active"
    BROKEN = "broken"


class JobStatus(str, Enum):
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not JobStatus.PROCESSING
