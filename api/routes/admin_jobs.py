"""
Job queue admin routes: inspect jobs and requeue failed or dead-lettered ones.
"""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from api.dependencies import get_job_queue
from application.dtos.jobs import JobAttemptDTO, JobDetailDTO, JobDTO
from application.services.job_queue import JobQueue
from core.config import settings
from core.response import PaginatedData, Response as ApiResponse, paginated_response, success_response
from domain.jobs.entity import JobStatus


router = APIRouter(prefix="/admin/jobs", tags=["Admin: Jobs"])


@router.get("", summary="List jobs", response_model=ApiResponse[PaginatedData[JobDTO]])
async def list_jobs(
    status: Optional[JobStatus] = Query(default=None),
    page: int = Query(default=1, ge=1),
    size: int = Query(default=settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    queue: JobQueue = Depends(get_job_queue),
):
    jobs, total = await queue.list_jobs(status=status, limit=size, offset=(page - 1) * size)
    return paginated_response(items=[JobDTO.from_entity(j) for j in jobs], total=total, page=page, size=size)


@router.get("/{job_id}", summary="Get job with attempt history", response_model=ApiResponse[JobDetailDTO])
async def get_job(job_id: int, queue: JobQueue = Depends(get_job_queue)):
    job, attempts = await queue.get_job(job_id)
    detail = JobDetailDTO(
        **JobDTO.from_entity(job).model_dump(),
        history=[JobAttemptDTO.from_entity(a) for a in attempts],
    )
    return success_response(data=detail)


@router.post("/{job_id}/requeue", summary="Requeue job", response_model=ApiResponse[JobDTO])
async def requeue_job(job_id: int, queue: JobQueue = Depends(get_job_queue)):
    """Put a failed or dead-lettered job back in the queue with a fresh attempt budget."""
    job = await queue.requeue(job_id)
    return success_response(data=JobDTO.from_entity(job), message="Job requeued")
