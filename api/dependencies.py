"""
API dependencies - service wiring for the request path
"""
from __future__ import annotations

import asyncio

from fastapi import Depends

from application.services.effect_dispatcher import EffectDispatcher
from application.services.idempotency import IdempotencyStore
from application.services.job_queue import JobQueue
from application.services.order_engine import OrderEngine
from application.services.webhook_ingestor import WebhookIngestor
from core.config import settings
from core.settings import settlement_settings
from infrastructure.external.webhooks import get_webhook_verifier
from infrastructure.unit_of_work import uow_factory


async def _kick_workers() -> None:
    # imported lazily so the web process only touches Celery when a broker is configured
    from infrastructure.tasks import TaskDispatcher

    await asyncio.to_thread(TaskDispatcher().kick_drain)


async def get_idempotency_store() -> IdempotencyStore:
    return IdempotencyStore.from_settings(uow_factory, settlement_settings.idempotency)


async def get_job_queue() -> JobQueue:
    return JobQueue.from_settings(uow_factory, settlement_settings.jobs)


async def get_effect_dispatcher(queue: JobQueue = Depends(get_job_queue)) -> EffectDispatcher:
    return EffectDispatcher(queue, wakeup=_kick_workers if settings.redis.url else None)


async def get_order_engine(
    idempotency: IdempotencyStore = Depends(get_idempotency_store),
    dispatcher: EffectDispatcher = Depends(get_effect_dispatcher),
) -> OrderEngine:
    return OrderEngine(
        uow_factory,
        idempotency=idempotency,
        subscribers=[dispatcher],
        pricing_max_age_seconds=settings.order.pricing_max_age_seconds,
        allow_cancel_after_payment=settings.order.allow_cancel_after_payment,
    )


async def get_webhook_ingestor(
    engine: OrderEngine = Depends(get_order_engine),
    idempotency: IdempotencyStore = Depends(get_idempotency_store),
) -> WebhookIngestor:
    webhook = settlement_settings.webhook
    return WebhookIngestor(
        uow_factory,
        engine,
        idempotency,
        get_webhook_verifier,
        processing_budget_seconds=webhook.processing_budget_seconds,
        concurrency_retries=webhook.concurrency_retries,
    )
