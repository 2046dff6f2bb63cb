"""
Job repository - SQLAlchemy implementation
"""
from datetime import datetime
from typing import List, Optional

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from domain.common.clock import utcnow
from domain.jobs.entity import CLAIMABLE_STATUSES, Job, JobAttempt, JobAttemptOutcome, JobStatus
from domain.jobs.repository import JobRepository
from infrastructure.models.job import JobAttemptModel, JobModel
from .sql import insert_if_absent


_CLAIMABLE = [s.value for s in CLAIMABLE_STATUSES]


class SQLAlchemyJobRepository(JobRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: JobModel) -> Job:
        return Job(
            id=model.id,
            job_type=model.job_type,
            payload=model.payload or {},
            status=JobStatus(model.status),
            attempts=model.attempts,
            max_attempts=model.max_attempts,
            next_run_at=model.next_run_at,
            lease_expires_at=model.lease_expires_at,
            locked_by=model.locked_by,
            last_error=model.last_error,
            dedupe_key=model.dedupe_key,
            created_at=model.created_at,
            updated_at=model.updated_at,
            finished_at=model.finished_at,
        )

    @staticmethod
    def _values(job: Job) -> dict:
        return {
            "job_type": job.job_type,
            "payload": job.payload,
            "status": job.status.value,
            "attempts": job.attempts,
            "max_attempts": job.max_attempts,
            "next_run_at": job.next_run_at,
            "lease_expires_at": job.lease_expires_at,
            "locked_by": job.locked_by,
            "last_error": job.last_error,
            "updated_at": job.updated_at,
            "finished_at": job.finished_at,
        }

    async def _select_one(self, *criteria) -> Optional[Job]:
        result = await self.session.execute(
            select(JobModel).where(*criteria).execution_options(populate_existing=True)
        )
        model = result.scalar_one_or_none()
        return self._to_entity(model) if model else None

    async def add(self, job: Job) -> Job:
        values = self._values(job)
        values["dedupe_key"] = job.dedupe_key
        values["created_at"] = job.created_at or utcnow()
        # NULL dedupe keys never conflict
        new_id = await insert_if_absent(
            self.session, JobModel, values, conflict_on=["dedupe_key"], returning=JobModel.id
        )
        if new_id is None:
            existing = await self.get_by_dedupe_key(job.dedupe_key)
            if existing is None:
                raise RuntimeError(f"job dedupe conflict without a row: {job.dedupe_key}")
            return existing
        job.id = new_id
        return job

    async def get(self, job_id: int) -> Optional[Job]:
        return await self._select_one(JobModel.id == job_id)

    async def get_by_dedupe_key(self, dedupe_key: str) -> Optional[Job]:
        return await self._select_one(JobModel.dedupe_key == dedupe_key)

    async def list_due_ids(self, now: datetime, limit: int) -> List[int]:
        result = await self.session.execute(
            select(JobModel.id)
            .where(
                JobModel.status.in_(_CLAIMABLE),
                or_(JobModel.next_run_at.is_(None), JobModel.next_run_at <= now),
            )
            .order_by(JobModel.next_run_at, JobModel.id)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def try_claim(
        self, job_id: int, *, worker_id: str, now: datetime, lease_expires_at: datetime
    ) -> bool:
        result = await self.session.execute(
            update(JobModel)
            .where(
                JobModel.id == job_id,
                JobModel.status.in_(_CLAIMABLE),
                or_(JobModel.next_run_at.is_(None), JobModel.next_run_at <= now),
            )
            .values(
                status=JobStatus.RUNNING.value,
                locked_by=worker_id,
                lease_expires_at=lease_expires_at,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def update(self, job: Job, *, expected_worker: Optional[str] = None) -> bool:
        stmt = update(JobModel).where(JobModel.id == job.id)
        if expected_worker is not None:
            stmt = stmt.where(
                JobModel.status == JobStatus.RUNNING.value,
                JobModel.locked_by == expected_worker,
            )
        result = await self.session.execute(
            stmt.values(**self._values(job)).execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def list_expired_leases(self, now: datetime, limit: int = 100) -> List[Job]:
        result = await self.session.execute(
            select(JobModel)
            .where(JobModel.status == JobStatus.RUNNING.value, JobModel.lease_expires_at <= now)
            .order_by(JobModel.lease_expires_at)
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        return [self._to_entity(m) for m in result.scalars().all()]

    async def list_jobs(
        self, status: Optional[JobStatus] = None, *, limit: int = 50, offset: int = 0
    ) -> List[Job]:
        query = select(JobModel)
        if status:
            query = query.where(JobModel.status == status.value)
        query = query.order_by(JobModel.created_at.desc(), JobModel.id.desc()).offset(offset).limit(limit)
        result = await self.session.execute(query.execution_options(populate_existing=True))
        return [self._to_entity(m) for m in result.scalars().all()]

    async def count_jobs(self, status: Optional[JobStatus] = None) -> int:
        query = select(func.count(JobModel.id))
        if status:
            query = query.where(JobModel.status == status.value)
        result = await self.session.execute(query)
        return result.scalar_one()

    async def add_attempt(self, attempt: JobAttempt) -> JobAttempt:
        model = JobAttemptModel(
            job_id=attempt.job_id,
            attempt=attempt.attempt,
            worker_id=attempt.worker_id,
            started_at=attempt.started_at,
            finished_at=attempt.finished_at,
            outcome=attempt.outcome.value,
            error=attempt.error,
        )
        self.session.add(model)
        await self.session.flush()
        attempt.id = model.id
        return attempt

    async def list_attempts(self, job_id: int) -> List[JobAttempt]:
        result = await self.session.execute(
            select(JobAttemptModel)
            .where(JobAttemptModel.job_id == job_id)
            .order_by(JobAttemptModel.attempt, JobAttemptModel.id)
        )
        return [
            JobAttempt(
                id=m.id,
                job_id=m.job_id,
                attempt=m.attempt,
                worker_id=m.worker_id,
                started_at=m.started_at,
                finished_at=m.finished_at,
                outcome=JobAttemptOutcome(m.outcome),
                error=m.error,
            )
            for m in result.scalars().all()
        ]
