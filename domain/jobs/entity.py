"""
Job entity - a durable unit of deferred work
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Optional

from domain.common.clock import ensure_utc


class JobStatus(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"               # will retry at next_run_at
    DEAD_LETTERED = "dead_lettered"  # out of attempts; operator action needed


CLAIMABLE_STATUSES = frozenset({JobStatus.QUEUED, JobStatus.FAILED})
REQUEUEABLE_STATUSES = frozenset({JobStatus.FAILED, JobStatus.DEAD_LETTERED})


def compute_backoff(attempts: int, base_seconds: float, max_seconds: float) -> timedelta:
    """Exponential backoff, capped: min(base * 2^attempts, max)."""
    exponent = max(attempts, 0)
    # cap the exponent so very large attempt counts cannot overflow floats
    delay = base_seconds * (2 ** min(exponent, 62))
    return timedelta(seconds=min(delay, max_seconds))


@dataclass
class Job:
    """
    Business rules:
    1. a job is claimed by at most one worker at a time (lease)
    2. every failure is recorded and counts as an attempt
    3. after `max_attempts` failures the job is dead-lettered, never silently dropped
    4. succeeded and dead-lettered jobs are never scheduled again on their own
    """

    id: Optional[int]
    job_type: str
    payload: dict[str, Any]
    status: JobStatus = JobStatus.QUEUED
    attempts: int = 0
    max_attempts: int = 8
    next_run_at: Optional[datetime] = None
    lease_expires_at: Optional[datetime] = None
    locked_by: Optional[str] = None
    last_error: Optional[str] = None
    dedupe_key: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    def __post_init__(self):
        for name in ("next_run_at", "lease_expires_at", "created_at", "updated_at", "finished_at"):
            setattr(self, name, ensure_utc(getattr(self, name)))
        if self.payload is None:
            self.payload = {}

    def succeed(self, now: datetime) -> None:
        self.status = JobStatus.SUCCEEDED
        self.locked_by = None
        self.lease_expires_at = None
        self.next_run_at = None
        self.last_error = None
        self.finished_at = now
        self.updated_at = now

    def fail(self, error: str, now: datetime, *, base_backoff: float, max_backoff: float) -> None:
        """Count an attempt and either schedule a retry or dead-letter."""
        self.attempts += 1
        self.last_error = error
        self.locked_by = None
        self.lease_expires_at = None
        self.updated_at = now
        if self.attempts >= self.max_attempts:
            self.status = JobStatus.DEAD_LETTERED
            self.next_run_at = None
            self.finished_at = now
        else:
            self.status = JobStatus.FAILED
            self.next_run_at = now + compute_backoff(self.attempts, base_backoff, max_backoff)

    def requeue(self, now: datetime) -> None:
        self.status = JobStatus.QUEUED
        self.attempts = 0
        self.next_run_at = now
        self.locked_by = None
        self.lease_expires_at = None
        self.finished_at = None
        self.updated_at = now


class JobAttemptOutcome(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    LEASE_EXPIRED = "lease_expired"


@dataclass
class JobAttempt:
    """One execution try of a job, kept for the admin view."""

    job_id: int
    attempt: int
    started_at: Optional[datetime]
    finished_at: datetime
    outcome: JobAttemptOutcome
    error: Optional[str] = None
    worker_id: Optional[str] = None
    id: Optional[int] = field(default=None, compare=False)

    def __post_init__(self):
        self.started_at = ensure_utc(self.started_at)
        self.finished_at = ensure_utc(self.finished_at)
