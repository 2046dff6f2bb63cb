"""
Composition root for worker processes.

Builds the queue, idempotency store, outbound clients and handler registry
on top of a per-loop database engine, and tears them down afterwards.
"""
from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import dataclass
from functools import partial
from typing import AsyncIterator, Optional

from application.services.idempotency import IdempotencyStore
from application.services.job_queue import JobQueue
from application.services.job_worker import JobWorker
from core.settings import settlement_settings
from infrastructure.database import create_worker_session_factory
from infrastructure.external.clients import InventoryClient, NotificationClient
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork
from .handlers import build_handlers


@dataclass
class WorkerRuntime:
    queue: JobQueue
    idempotency: IdempotencyStore
    worker: JobWorker


@asynccontextmanager
async def worker_runtime(worker_id: Optional[str] = None) -> AsyncIterator[WorkerRuntime]:
    engine, session_factory = create_worker_session_factory()
    uow_factory = partial(SQLAlchemyUnitOfWork, session_factory)
    notifications = NotificationClient.from_settings(settlement_settings.notifications)
    inventory = InventoryClient.from_settings(settlement_settings.inventory)
    try:
        store = IdempotencyStore.from_settings(uow_factory, settlement_settings.idempotency)
        queue = JobQueue.from_settings(uow_factory, settlement_settings.jobs)
        handlers = build_handlers(
            uow_factory=uow_factory,
            idempotency=store,
            notifications=notifications,
            inventory=inventory,
            invoice_settings=settlement_settings.invoice,
        )
        yield WorkerRuntime(queue=queue, idempotency=store, worker=JobWorker(queue, handlers, worker_id=worker_id))
    finally:
        await notifications.aclose()
        await inventory.aclose()
        await engine.dispose()
