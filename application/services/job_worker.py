"""
Job worker - claims jobs from the durable queue and runs their handlers.

Delivery is at-least-once: a worker can die after the effect but before
`complete`. Handlers therefore guard external effects with
`run_idempotent`, keyed deterministically from the job payload.
"""
from __future__ import annotations

import socket
import os
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional

import structlog

from core.logging_config import get_logger
from domain.jobs.entity import Job
from application.services.idempotency import IdempotencyStore
from application.services.job_queue import JobQueue


logger = get_logger(__name__)

JobHandler = Callable[[Job], Awaitable[Any]]


class EffectInProgressError(RuntimeError):
    """Another run of the same effect holds its idempotency key."""


async def run_idempotent(
    store: IdempotencyStore,
    key: str,
    effect: Callable[[], Awaitable[Optional[dict]]],
) -> dict:
    """
    Perform `effect` once per key. A completed key returns its stored result;
    a failed effect releases the key so the job retry can run it again.
    """
    begin = await store.begin_or_fetch(key, owner="worker")
    if begin.stored_result is not None:
        logger.info("effect_already_done", key=key)
        return begin.stored_result
    if begin.in_progress:
        raise EffectInProgressError(f"effect {key} is running elsewhere")
    try:
        result = await effect() or {}
    except BaseException:
        await store.release(key)
        raise
    await store.complete(key, result)
    return result


def default_worker_id() -> str:
    return f"{socket.gethostname()}:{os.getpid()}"


class JobWorker:
    def __init__(
        self,
        queue: JobQueue,
        handlers: Optional[Mapping[str, JobHandler]] = None,
        *,
        worker_id: Optional[str] = None,
    ) -> None:
        self._queue = queue
        self._handlers: Dict[str, JobHandler] = dict(handlers or {})
        self.worker_id = worker_id or default_worker_id()

    def register(self, job_type: str, handler: JobHandler) -> None:
        self._handlers[job_type] = handler

    @property
    def job_types(self) -> List[str]:
        return sorted(self._handlers)

    async def execute(self, job: Job) -> Job:
        """Run one claimed job and record the outcome. Returns the updated job."""
        handler = self._handlers.get(job.job_type)
        with structlog.contextvars.bound_contextvars(job_id=job.id, job_type=job.job_type, worker_id=self.worker_id):
            if handler is None:
                return await self._queue.fail(
                    job.id, f"no handler registered for {job.job_type}", worker_id=self.worker_id
                )
            try:
                await handler(job)
            except Exception as exc:
                logger.warning("job_handler_failed", error=str(exc), error_type=type(exc).__name__)
                return await self._queue.fail(
                    job.id, f"{type(exc).__name__}: {exc}", worker_id=self.worker_id
                )
            return await self._queue.complete(job.id, worker_id=self.worker_id)

    async def run_once(self, batch: int = 1) -> List[Job]:
        """Claim and execute up to `batch` due jobs."""
        finished: List[Job] = []
        for _ in range(max(batch, 0)):
            job = await self._queue.dequeue_next(self.worker_id)
            if job is None:
                break
            finished.append(await self.execute(job))
        return finished

    async def run_job(self, job_id: int) -> Optional[Job]:
        """Claim and execute one specific job; None when it is not claimable."""
        job = await self._queue.claim(job_id, self.worker_id)
        if job is None:
            return None
        return await self.execute(job)
