"""Worker entry points.

`main` runs a Celery worker for the job queue tasks. `run_local` polls the
queue in-process without a broker, which is handy for development and for
Procfile-style runners.
"""
from __future__ import annotations

import argparse
import asyncio

from core.logging_config import configure_logging, get_logger
from core.settings import settlement_settings
from .config.celery import celery_app
from .runtime import worker_runtime


logger = get_logger(__name__)


def main() -> None:
    celery_app.worker_main(argv=["worker", "--hostname=worker@%h", "--loglevel=INFO", "-Q", "high,default,low"])


async def run_local(poll_interval: float | None = None, batch: int | None = None) -> None:
    interval = poll_interval or settlement_settings.jobs.poll_interval_seconds
    size = batch or settlement_settings.jobs.drain_batch_size
    async with worker_runtime() as runtime:
        logger.info("local_worker_started", worker_id=runtime.worker.worker_id, job_types=runtime.worker.job_types)
        while True:
            await runtime.queue.reap_expired_leases()
            finished = await runtime.worker.run_once(size)
            if not finished:
                await asyncio.sleep(interval)


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Settlement job worker")
    parser.add_argument("--local", action="store_true", help="poll the job table in-process instead of using Celery")
    args = parser.parse_args()
    if args.local:
        configure_logging()
        asyncio.run(run_local())
    else:
        main()
