"""
Job admin DTOs
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel

from domain.jobs.entity import Job, JobAttempt


class JobDTO(BaseModel):
    id: int
    job_type: str
    status: str
    attempts: int
    max_attempts: int
    payload: dict[str, Any]
    next_run_at: Optional[datetime] = None
    last_error: Optional[str] = None
    locked_by: Optional[str] = None
    lease_expires_at: Optional[datetime] = None
    dedupe_key: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    @classmethod
    def from_entity(cls, job: Job) -> "JobDTO":
        return cls(
            id=job.id,
            job_type=job.job_type,
            status=job.status.value,
            attempts=job.attempts,
            max_attempts=job.max_attempts,
            payload=job.payload,
            next_run_at=job.next_run_at,
            last_error=job.last_error,
            locked_by=job.locked_by,
            lease_expires_at=job.lease_expires_at,
            dedupe_key=job.dedupe_key,
            created_at=job.created_at,
            updated_at=job.updated_at,
            finished_at=job.finished_at,
        )


class JobAttemptDTO(BaseModel):
    attempt: int
    outcome: str
    worker_id: Optional[str] = None
    started_at: Optional[datetime] = None
    finished_at: datetime
    error: Optional[str] = None

    @classmethod
    def from_entity(cls, attempt: JobAttempt) -> "JobAttemptDTO":
        return cls(
            attempt=attempt.attempt,
            outcome=attempt.outcome.value,
            worker_id=attempt.worker_id,
            started_at=attempt.started_at,
            finished_at=attempt.finished_at,
            error=attempt.error,
        )


class JobDetailDTO(JobDTO):
    history: list[JobAttemptDTO] = []
