"""
Durable job queue service.

The queue knows nothing about orders: a job is a type, a JSON payload and a
schedule. Claims are conditional updates so two workers can never run the
same job at once; a crashed worker's claim runs out with its lease and is
reaped as a failed attempt.
"""
from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import Any, Callable, List, Optional, Tuple

from core.logging_config import get_logger
from domain.common.clock import utcnow
from domain.common.exceptions import InvalidJobStateError, JobNotFoundError
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.jobs.entity import (
    REQUEUEABLE_STATUSES,
    Job,
    JobAttempt,
    JobAttemptOutcome,
    JobStatus,
)


logger = get_logger(__name__)

MAX_ERROR_LENGTH = 2000
LEASE_EXPIRED_ERROR = "lease expired"


class JobQueue:
    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        *,
        base_backoff_seconds: float = 5.0,
        max_backoff_seconds: float = 3600.0,
        max_attempts: int = 8,
        lease_seconds: int = 300,
        claim_scan_size: int = 20,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._uow_factory = uow_factory
        self.base_backoff_seconds = base_backoff_seconds
        self.max_backoff_seconds = max_backoff_seconds
        self.max_attempts = max_attempts
        self.lease = timedelta(seconds=lease_seconds)
        self._claim_scan_size = claim_scan_size
        self._clock = clock

    @classmethod
    def from_settings(cls, uow_factory, job_settings, **kwargs) -> "JobQueue":
        return cls(
            uow_factory,
            base_backoff_seconds=job_settings.base_backoff_seconds,
            max_backoff_seconds=job_settings.max_backoff_seconds,
            max_attempts=job_settings.max_attempts,
            lease_seconds=job_settings.lease_seconds,
            claim_scan_size=job_settings.drain_batch_size,
            **kwargs,
        )

    @asynccontextmanager
    async def _scope(self, uow: Optional[AbstractUnitOfWork]):
        if uow is not None:
            yield uow
            return
        async with self._uow_factory() as own:
            yield own

    # ------------------------------------------------------------------
    # Producer side
    # ------------------------------------------------------------------
    async def enqueue(
        self,
        job_type: str,
        payload: dict[str, Any],
        not_before: Optional[datetime] = None,
        dedupe_key: Optional[str] = None,
        uow: Optional[AbstractUnitOfWork] = None,
        *,
        max_attempts: Optional[int] = None,
    ) -> int:
        """Add a job; with `uow` it commits or rolls back with the caller's transaction."""
        now = self._clock()
        job = Job(
            id=None,
            job_type=job_type,
            payload=dict(payload),
            status=JobStatus.QUEUED,
            attempts=0,
            max_attempts=max_attempts or self.max_attempts,
            next_run_at=not_before or now,
            dedupe_key=dedupe_key,
            created_at=now,
            updated_at=now,
        )
        async with self._scope(uow) as scope:
            stored = await scope.job_repository.add(job)
        if stored is not job:
            logger.info("job_enqueue_deduplicated", job_id=stored.id, job_type=job_type, dedupe_key=dedupe_key)
        else:
            logger.info("job_enqueued", job_id=stored.id, job_type=job_type, next_run_at=job.next_run_at.isoformat())
        return stored.id

    # ------------------------------------------------------------------
    # Worker side
    # ------------------------------------------------------------------
    async def claim(self, job_id: int, worker_id: str) -> Optional[Job]:
        """Claim one specific job if it is due. None when someone else has it."""
        now = self._clock()
        async with self._uow_factory() as uow:
            claimed = await uow.job_repository.try_claim(
                job_id, worker_id=worker_id, now=now, lease_expires_at=now + self.lease
            )
            if not claimed:
                return None
            job = await uow.job_repository.get(job_id)
        logger.info("job_claimed", job_id=job_id, job_type=job.job_type, worker_id=worker_id, attempt=job.attempts + 1)
        return job

    async def due_job_ids(self, limit: Optional[int] = None) -> List[int]:
        """Ids of jobs that are due now, oldest schedule first. Nothing is claimed."""
        async with self._uow_factory(readonly=True) as uow:
            return await uow.job_repository.list_due_ids(self._clock(), limit or self._claim_scan_size)

    async def dequeue_next(self, worker_id: str) -> Optional[Job]:
        """Claim the next due job. Losing a claim race moves on to the next candidate."""
        for job_id in await self.due_job_ids():
            job = await self.claim(job_id, worker_id)
            if job is not None:
                return job
        return None

    async def _load_running(self, uow: AbstractUnitOfWork, job_id: int, action: str) -> Job:
        job = await uow.job_repository.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        if job.status != JobStatus.RUNNING:
            raise InvalidJobStateError(job_id, job.status.value, action)
        return job

    async def complete(self, job_id: int, *, worker_id: Optional[str] = None) -> Job:
        now = self._clock()
        async with self._uow_factory() as uow:
            job = await self._load_running(uow, job_id, "complete")
            holder = job.locked_by
            if worker_id is not None and holder != worker_id:
                raise InvalidJobStateError(job_id, f"{job.status.value} by {holder}", "complete")
            started_at = job.updated_at
            job.succeed(now)
            if not await uow.job_repository.update(job, expected_worker=holder):
                raise InvalidJobStateError(job_id, "reclaimed", "complete")
            await uow.job_repository.add_attempt(
                JobAttempt(
                    job_id=job_id,
                    attempt=job.attempts + 1,
                    started_at=started_at,
                    finished_at=now,
                    outcome=JobAttemptOutcome.SUCCEEDED,
                    worker_id=holder,
                )
            )
        logger.info("job_succeeded", job_id=job_id, job_type=job.job_type, attempts=job.attempts + 1)
        return job

    async def fail(self, job_id: int, error: str, *, worker_id: Optional[str] = None) -> Job:
        """Record a failed attempt; schedules a retry with backoff or dead-letters."""
        now = self._clock()
        async with self._uow_factory() as uow:
            job = await self._load_running(uow, job_id, "fail")
            holder = job.locked_by
            if worker_id is not None and holder != worker_id:
                raise InvalidJobStateError(job_id, f"{job.status.value} by {holder}", "fail")
            await self._record_failure(uow, job, error, now, JobAttemptOutcome.FAILED)
        return job

    async def _record_failure(
        self,
        uow: AbstractUnitOfWork,
        job: Job,
        error: str,
        now: datetime,
        outcome: JobAttemptOutcome,
    ) -> None:
        holder = job.locked_by
        started_at = job.updated_at
        job.fail(
            (error or "")[:MAX_ERROR_LENGTH],
            now,
            base_backoff=self.base_backoff_seconds,
            max_backoff=self.max_backoff_seconds,
        )
        if not await uow.job_repository.update(job, expected_worker=holder):
            raise InvalidJobStateError(job.id, "reclaimed", "fail")
        await uow.job_repository.add_attempt(
            JobAttempt(
                job_id=job.id,
                attempt=job.attempts,
                started_at=started_at,
                finished_at=now,
                outcome=outcome,
                error=job.last_error,
                worker_id=holder,
            )
        )
        if job.status == JobStatus.DEAD_LETTERED:
            logger.error(
                "job_dead_lettered",
                job_id=job.id,
                job_type=job.job_type,
                attempts=job.attempts,
                error=job.last_error,
            )
        else:
            logger.warning(
                "job_retry_scheduled",
                job_id=job.id,
                job_type=job.job_type,
                attempts=job.attempts,
                next_run_at=job.next_run_at.isoformat(),
                error=job.last_error,
            )

    async def reap_expired_leases(self, limit: int = 100) -> List[Job]:
        """Fail RUNNING jobs whose lease ran out; each counts as an attempt."""
        now = self._clock()
        reaped: List[Job] = []
        async with self._uow_factory() as uow:
            for job in await uow.job_repository.list_expired_leases(now, limit):
                try:
                    await self._record_failure(uow, job, LEASE_EXPIRED_ERROR, now, JobAttemptOutcome.LEASE_EXPIRED)
                except InvalidJobStateError:
                    # the holder finished it in the meantime
                    continue
                reaped.append(job)
        if reaped:
            logger.warning("job_leases_reaped", count=len(reaped), job_ids=[j.id for j in reaped])
        return reaped

    # ------------------------------------------------------------------
    # Admin
    # ------------------------------------------------------------------
    async def list_jobs(
        self, status: Optional[JobStatus] = None, *, limit: int = 50, offset: int = 0
    ) -> Tuple[List[Job], int]:
        async with self._uow_factory(readonly=True) as uow:
            jobs = await uow.job_repository.list_jobs(status, limit=limit, offset=offset)
            total = await uow.job_repository.count_jobs(status)
        return jobs, total

    async def get_job(self, job_id: int) -> Tuple[Job, List[JobAttempt]]:
        async with self._uow_factory(readonly=True) as uow:
            job = await uow.job_repository.get(job_id)
            if job is None:
                raise JobNotFoundError(job_id)
            attempts = await uow.job_repository.list_attempts(job_id)
        return job, attempts

    async def requeue(self, job_id: int) -> Job:
        """Put a failed or dead-lettered job back in line with a fresh attempt budget."""
        now = self._clock()
        async with self._uow_factory() as uow:
            job = await uow.job_repository.get(job_id)
            if job is None:
                raise JobNotFoundError(job_id)
            if job.status not in REQUEUEABLE_STATUSES:
                raise InvalidJobStateError(job_id, job.status.value, "requeue")
            previous = job.status
            job.requeue(now)
            await uow.job_repository.update(job)
        logger.info("job_requeued", job_id=job_id, job_type=job.job_type, previous_status=previous.value)
        return job
