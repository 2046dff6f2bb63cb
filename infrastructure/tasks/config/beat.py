"""Periodic schedule for the job queue and idempotency maintenance."""
from __future__ import annotations

from datetime import timedelta

from core.settings import settlement_settings


CELERY_BEAT_SCHEDULE = {
    # Fallback polling; commits also kick a drain right away.
    "jobs-drain": {
        "task": "jobs.drain",
        "schedule": timedelta(seconds=settlement_settings.jobs.poll_interval_seconds),
    },
    "jobs-reap-expired-leases": {
        "task": "jobs.reap_expired_leases",
        "schedule": timedelta(seconds=60),
    },
    "idempotency-purge-expired": {
        "task": "idempotency.purge_expired",
        "schedule": timedelta(hours=1),
    },
}
