"""Common base task for the settlement Celery tasks"""
from __future__ import annotations

import asyncio
import os
import socket
from typing import Any, Awaitable, Callable, Optional, TypeVar

import structlog
from celery import Task

from core.logging_config import get_logger
from domain.common.exceptions import JobDeadLetteredError
from ..runtime import WorkerRuntime, worker_runtime

logger = get_logger(__name__)

T = TypeVar("T")


def process_worker_id(hostname: Optional[str] = None) -> str:
    """Prefork children share the Celery hostname; the pid tells their claims apart."""
    return f"{hostname or socket.gethostname()}:{os.getpid()}"


class BaseTask(Task):
    """Runs task bodies on a fresh event loop and worker runtime, with structured outcome logs."""

    @property
    def worker_id(self) -> str:
        return process_worker_id(self.request.hostname)

    def run_in_runtime(
        self,
        fn: Callable[[WorkerRuntime], Awaitable[T]],
        *,
        worker_id: Optional[str] = None,
    ) -> T:
        """
        Each task invocation gets its own loop (`asyncio.run`) and therefore
        its own engine and HTTP clients; nothing async outlives the call.
        """

        async def _main() -> T:
            with structlog.contextvars.bound_contextvars(task_id=self.request.id, task_name=self.name):
                async with worker_runtime(worker_id=worker_id) as runtime:
                    return await fn(runtime)

        return asyncio.run(_main())

    def on_failure(self, exc, task_id, args, kwargs, einfo):  # type: ignore[override]
        if isinstance(exc, JobDeadLetteredError):
            # already recorded on the job row
            logger.warning("celery_task_dead_lettered", task_id=task_id, task_name=self.name, **(exc.details or {}))
        else:
            logger.error(
                "celery_task_failure",
                task_id=task_id,
                task_name=self.name,
                args=args,
                kwargs=kwargs,
                exc=str(exc),
            )
        super().on_failure(exc, task_id, args, kwargs, einfo)

    def on_success(self, retval: Any, task_id, args, kwargs):  # type: ignore[override]
        logger.info("celery_task_success", task_id=task_id, task_name=self.name)
        super().on_success(retval, task_id, args, kwargs)
