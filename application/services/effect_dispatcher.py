"""
Effect dispatcher - turns committed order transitions into jobs.

Runs as a domain event subscriber inside the order command's unit of work,
so a transition and the jobs it implies commit together. Jobs are keyed by
(job type, order, version); replaying an event never enqueues twice.
"""
from __future__ import annotations

from typing import Any, Awaitable, Callable, Optional, Sequence

from core.logging_config import get_logger
from domain.common.exceptions import BusinessException, DispatchUnavailableError
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.order.events import OrderEvent
from application.services.job_queue import JobQueue


logger = get_logger(__name__)


class JobType:
    INVOICE_GENERATE = "invoice.generate"
    INVENTORY_ADJUST = "inventory.adjust"
    NOTIFY_PAYMENT_CONFIRMED = "notification.payment_confirmed"
    NOTIFY_ORDER_SHIPPED = "notification.order_shipped"
    NOTIFY_ORDER_REFUNDED = "notification.order_refunded"
    NOTIFY_ORDER_CANCELLED = "notification.order_cancelled"


EVENT_EFFECTS: dict[str, tuple[str, ...]] = {
    "OrderPaid": (
        JobType.INVOICE_GENERATE,
        JobType.NOTIFY_PAYMENT_CONFIRMED,
        JobType.INVENTORY_ADJUST,
    ),
    "OrderShipped": (JobType.NOTIFY_ORDER_SHIPPED,),
    "OrderRefunded": (JobType.NOTIFY_ORDER_REFUNDED,),
    "OrderCancelled": (JobType.NOTIFY_ORDER_CANCELLED,),
}


def dedupe_key_for(job_type: str, event: OrderEvent) -> str:
    return f"{job_type}:{event.order_id}:v{event.version}"


class EffectDispatcher:
    def __init__(
        self,
        job_queue: JobQueue,
        *,
        wakeup: Optional[Callable[[], Awaitable[Any] | Any]] = None,
        effects: Optional[dict[str, tuple[str, ...]]] = None,
    ) -> None:
        self._queue = job_queue
        self._wakeup = wakeup
        self._effects = effects if effects is not None else EVENT_EFFECTS

    def job_types_for(self, event: OrderEvent) -> tuple[str, ...]:
        return self._effects.get(event.event_type, ())

    async def handle(self, event: OrderEvent, uow: AbstractUnitOfWork) -> None:
        job_types = self.job_types_for(event)
        if not job_types:
            return
        payload = {
            "order_id": event.order_id,
            "version": event.version,
            "event_id": event.event_id,
            "event_type": event.event_type,
            "occurred_at": event.occurred_at.isoformat(),
            **event.payload(),
        }
        for job_type in job_types:
            try:
                await self._queue.enqueue(
                    job_type,
                    payload,
                    dedupe_key=dedupe_key_for(job_type, event),
                    uow=uow,
                )
            except BusinessException:
                raise
            except Exception as exc:
                logger.error(
                    "effect_dispatch_failed",
                    order_id=event.order_id,
                    event_type=event.event_type,
                    job_type=job_type,
                    error=str(exc),
                )
                raise DispatchUnavailableError(f"{job_type}: {exc.__class__.__name__}") from exc
        logger.info(
            "effects_dispatched",
            order_id=event.order_id,
            event_type=event.event_type,
            version=event.version,
            job_types=list(job_types),
        )

    async def after_commit(self, events: Sequence[OrderEvent]) -> None:
        """Nudge workers once the jobs are durable; beat polling covers a missed nudge."""
        if self._wakeup is None or not any(self.job_types_for(e) for e in events):
            return
        try:
            result = self._wakeup()
            if hasattr(result, "__await__"):
                await result
        except Exception as exc:
            logger.warning("job_wakeup_failed", error=str(exc))
