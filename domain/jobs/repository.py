"""
Job repository interface
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional

from .entity import Job, JobAttempt, JobStatus


class JobRepository(ABC):

    @abstractmethod
    async def add(self, job: Job) -> Job:
        """
        Insert a job and assign `id`. When a job with the same `dedupe_key`
        exists, return that one instead.
        """

    @abstractmethod
    async def get(self, job_id: int) -> Optional[Job]:
        """Load one job"""

    @abstractmethod
    async def get_by_dedupe_key(self, dedupe_key: str) -> Optional[Job]:
        """Find the job enqueued under a dedupe key"""

    @abstractmethod
    async def list_due_ids(self, now: datetime, limit: int) -> List[int]:
        """Ids of claimable jobs, oldest `next_run_at` first"""

    @abstractmethod
    async def try_claim(
        self, job_id: int, *, worker_id: str, now: datetime, lease_expires_at: datetime
    ) -> bool:
        """
        Atomically move a due job to RUNNING. Returns False when another
        worker already claimed it or it is no longer due.
        """

    @abstractmethod
    async def update(self, job: Job, *, expected_worker: Optional[str] = None) -> bool:
        """
        Persist job state. With `expected_worker`, only writes while the job is
        still RUNNING under that worker's lease; returns False otherwise.
        """

    @abstractmethod
    async def list_expired_leases(self, now: datetime, limit: int = 100) -> List[Job]:
        """RUNNING jobs whose lease ran out"""

    @abstractmethod
    async def list_jobs(
        self, status: Optional[JobStatus] = None, *, limit: int = 50, offset: int = 0
    ) -> List[Job]:
        """Admin listing, newest first"""

    @abstractmethod
    async def count_jobs(self, status: Optional[JobStatus] = None) -> int:
        """Admin listing total"""

    @abstractmethod
    async def add_attempt(self, attempt: JobAttempt) -> JobAttempt:
        """Record one execution try"""

    @abstractmethod
    async def list_attempts(self, job_id: int) -> List[JobAttempt]:
        """Attempt history, oldest first"""
