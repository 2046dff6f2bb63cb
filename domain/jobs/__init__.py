"""Job queue domain exports."""
from .entity import (
    CLAIMABLE_STATUSES,
    REQUEUEABLE_STATUSES,
    Job,
    JobAttempt,
    JobAttemptOutcome,
    JobStatus,
    compute_backoff,
)
from .repository import JobRepository

__all__ = [
    "CLAIMABLE_STATUSES",
    "REQUEUEABLE_STATUSES",
    "Job",
    "JobAttempt",
    "JobAttemptOutcome",
    "JobStatus",
    "compute_backoff",
    "JobRepository",
]
