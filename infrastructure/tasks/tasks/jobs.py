"""Job queue tasks: drain due jobs and execute them one by one."""
from __future__ import annotations

from typing import Optional

from celery import shared_task

from core.logging_config import get_logger
from core.settings import settlement_settings
from domain.common.exceptions import JobDeadLetteredError
from domain.jobs.entity import JobStatus
from ..utils.base_task import BaseTask


logger = get_logger(__name__)


@shared_task(name="jobs.drain", bind=True, base=BaseTask, ignore_result=True)
def drain(self, limit: Optional[int] = None) -> int:
    """Fan due jobs out to `jobs.execute`. Claiming happens in the executing task."""
    job_ids = self.run_in_runtime(
        lambda runtime: runtime.queue.due_job_ids(limit or settlement_settings.jobs.drain_batch_size)
    )
    for job_id in job_ids:
        execute.delay(job_id)
    if job_ids:
        logger.info("jobs_drained", count=len(job_ids))
    return len(job_ids)


@shared_task(name="jobs.execute", bind=True, base=BaseTask)
def execute(self, job_id: int) -> dict:
    """Claim and run one job. Losing the claim is not an error."""
    job = self.run_in_runtime(
        lambda runtime: runtime.worker.run_job(job_id),
        worker_id=self.worker_id,
    )
    if job is None:
        return {"job_id": job_id, "claimed": False}
    if job.status == JobStatus.DEAD_LETTERED:
        raise JobDeadLetteredError(job.id, job.job_type, job.attempts, job.last_error)
    return {"job_id": job.id, "claimed": True, "status": job.status.value, "attempts": job.attempts}


@shared_task(name="jobs.reap_expired_leases", bind=True, base=BaseTask, ignore_result=True)
def reap_expired_leases(self, limit: int = 100) -> int:
    reaped = self.run_in_runtime(lambda runtime: runtime.queue.reap_expired_leases(limit))
    return len(reaped)
