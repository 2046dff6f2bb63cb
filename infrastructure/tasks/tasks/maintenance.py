"""Housekeeping tasks."""
from __future__ import annotations

from celery import shared_task

from ..utils.base_task import BaseTask


@shared_task(name="idempotency.purge_expired", bind=True, base=BaseTask, ignore_result=True)
def purge_expired_idempotency_keys(self) -> int:
    """Drop idempotency records past their retention window."""
    return self.run_in_runtime(lambda runtime: runtime.idempotency.purge_expired())
