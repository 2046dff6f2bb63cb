"""Small dispatching helpers to decouple Celery from callers."""
from __future__ import annotations

from core.logging_config import get_logger
from ..config.celery import celery_app


logger = get_logger(__name__)


class TaskDispatcher:
    """Internal facade used by the application layer to schedule tasks."""

    def kick_drain(self) -> None:
        """Ask workers to drain due jobs now instead of waiting for the next beat tick."""
        celery_app.send_task("jobs.drain", retry=False, ignore_result=True)
        logger.debug("jobs_drain_kicked")
