"""
notification.* - buyer notifications for order milestones.
"""
from __future__ import annotations

from application.services.effect_dispatcher import JobType
from application.services.idempotency import IdempotencyStore
from application.services.job_worker import run_idempotent
from domain.common.exceptions import DomainValidationException
from domain.jobs.entity import Job
from infrastructure.external.clients import NotificationClient
from .base import order_ref


TEMPLATES = {
    JobType.NOTIFY_PAYMENT_CONFIRMED: "payment_confirmed",
    JobType.NOTIFY_ORDER_SHIPPED: "order_shipped",
    JobType.NOTIFY_ORDER_REFUNDED: "order_refunded",
    JobType.NOTIFY_ORDER_CANCELLED: "order_cancelled",
}

# event payload keys forwarded to the template
CONTEXT_KEYS = ("amount", "currency", "tracking_ref", "refund_id", "refunded_total", "full", "reason", "provider_payment_id")


class NotificationHandler:
    def __init__(self, client: NotificationClient, idempotency: IdempotencyStore) -> None:
        self._client = client
        self._idempotency = idempotency

    async def __call__(self, job: Job) -> dict:
        template = TEMPLATES.get(job.job_type)
        if template is None:
            raise DomainValidationException(f"no template for {job.job_type}", field="job_type")
        order_id, version = order_ref(job)
        buyer_id = job.payload.get("buyer_id")
        if not buyer_id:
            raise DomainValidationException(f"job {job.id} payload lacks buyer_id", field="payload")

        key = f"{job.job_type}:{order_id}:v{version}"
        context = {"order_id": order_id, **{k: job.payload[k] for k in CONTEXT_KEYS if k in job.payload}}

        async def _send() -> dict:
            response = await self._client.send(
                template=template,
                recipient_ref=buyer_id,
                context=context,
                idempotency_key=key,
            )
            return {"notification_id": response.get("id")}

        return await run_idempotent(self._idempotency, key, _send)
