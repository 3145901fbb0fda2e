# crawler/models/job_models.py
"""
Job state machine vocabulary and the per-job context object.
"""
import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Any


class JobStatus(Enum):
    """Persisted job status vocabulary."""
    NEW = "new"
    IN_PROGRESS = "in-progress"
    SUCCESSFUL = "successful"
    PARTIAL = "partial"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.SUCCESSFUL, JobStatus.PARTIAL, JobStatus.FAILED)


TERMINAL_STATUSES = frozenset(s.value for s in JobStatus if s.is_terminal)


class LogLevel(Enum):
    """Persisted log level vocabulary."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


@dataclass
class JobContext:
    """State threaded explicitly through every pipeline call of one job.

    Attributes:
        job_id: Identifier of the running job
        articles_per_source: Item quota for each source pipeline
        log: JobLogger writing structured entries for this job
        limiter: AdmissionLimiter shared by the job's pipelines
    """
    job_id: str
    articles_per_source: int
    log: Any
    limiter: Any = None
    cancel_event: asyncio.Event = field(default_factory=asyncio.Event)
    cancel_reason: Optional[str] = None

    @property
    def is_cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def cancel(self, reason: str = "cancelled by request") -> None:
        """Raise the cancellation flag; checked at feed and article boundaries."""
        if not self.cancel_event.is_set():
            self.cancel_reason = reason
            self.cancel_event.set()
