"""
inventory.adjust - decrements stock for the lines of a paid order.
"""
from __future__ import annotations

from typing import Callable

from application.services.idempotency import IdempotencyStore
from application.services.job_worker import run_idempotent
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.jobs.entity import Job
from infrastructure.external.clients import InventoryClient
from .base import load_order, order_ref


class InventoryAdjustHandler:
    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        client: InventoryClient,
        idempotency: IdempotencyStore,
    ) -> None:
        self._uow_factory = uow_factory
        self._client = client
        self._idempotency = idempotency

    async def __call__(self, job: Job) -> dict:
        order_id, version = order_ref(job)
        key = f"inventory:{order_id}:v{version}"

        async def _adjust() -> dict:
            order = await load_order(self._uow_factory, order_id)
            response = await self._client.decrement(
                order_id=order.id,
                shop_id=order.shop_id,
                lines=[(item.product_ref, item.quantity) for item in order.items],
                idempotency_key=key,
            )
            return {"adjustment_id": response.get("id")}

        return await run_idempotent(self._idempotency, key, _adjust)
