"""
Order engine - application service owning every order state change.

Each command loads the order, checks `expected_version`, applies the domain
transition, persists with compare-and-set and appends the resulting event to
the order event log, all in one unit of work. Subscribers (the effect
dispatcher) see the event inside that same transaction. The engine never
retries a lost race; callers reload and decide.
"""
from __future__ import annotations

from datetime import datetime, timedelta
from decimal import Decimal
from typing import Callable, Iterable, List, Optional, Sequence

from core.logging_config import get_logger
from domain.common.clock import utcnow
from domain.common.exceptions import ConcurrentModificationError, OrderNotFoundError
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.order.entity import Order, PricingSnapshot
from domain.order.events import OrderEvent
from domain.order.repository import StoredOrderEvent
from application.ports.events import DomainEventSubscriber
from application.services.idempotency import IdempotencyStore


logger = get_logger(__name__)


def mark_paid_key(provider_payment_id: str) -> str:
    return f"order:mark_paid:{provider_payment_id}"


def refund_key(idempotency_key: str) -> str:
    return f"order:refund:{idempotency_key}"


class OrderEngine:
    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        *,
        idempotency: IdempotencyStore,
        subscribers: Sequence[DomainEventSubscriber] = (),
        pricing_max_age_seconds: int = 900,
        allow_cancel_after_payment: bool = False,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._uow_factory = uow_factory
        self._idempotency = idempotency
        self._subscribers = list(subscribers)
        self._pricing_max_age = timedelta(seconds=pricing_max_age_seconds)
        self._allow_cancel_after_payment = allow_cancel_after_payment
        self._clock = clock

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    async def _load(self, uow: AbstractUnitOfWork, order_id: str) -> Order:
        order = await uow.order_repository.get(order_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        return order

    async def _publish(self, uow: AbstractUnitOfWork, events: List[OrderEvent]) -> None:
        await uow.order_repository.append_events(events)
        for event in events:
            for subscriber in self._subscribers:
                await subscriber.handle(event, uow)

    async def _after_commit(self, events: List[OrderEvent]) -> None:
        for subscriber in self._subscribers:
            await subscriber.after_commit(events)

    async def _apply(
        self,
        order_id: str,
        expected_version: int,
        action: Callable[[Order, datetime], OrderEvent],
    ) -> Order:
        now = self._clock()
        async with self._uow_factory() as uow:
            order = await self._load(uow, order_id)
            order.ensure_version(expected_version)
            event = action(order, now)
            await uow.order_repository.save(order, expected_version)
            await self._publish(uow, [event])
        self._log_transition(order, event)
        await self._after_commit([event])
        return order

    @staticmethod
    def _log_transition(order: Order, event: OrderEvent) -> None:
        logger.info(
            "order_transitioned",
            order_id=order.id,
            event_type=event.event_type,
            status=order.status.value,
            version=order.version,
        )

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------
    async def create_order(
        self,
        buyer_id: str,
        shop_id: str,
        items: Iterable[tuple[str, int]],
        pricing: PricingSnapshot,
    ) -> Order:
        now = self._clock()
        order, event = Order.create(
            buyer_id=buyer_id,
            shop_id=shop_id,
            items=items,
            pricing=pricing,
            now=now,
            pricing_max_age=self._pricing_max_age,
        )
        async with self._uow_factory() as uow:
            await uow.order_repository.add(order)
            await self._publish(uow, [event])
        self._log_transition(order, event)
        await self._after_commit([event])
        return order

    async def get_order(self, order_id: str) -> Order:
        async with self._uow_factory(readonly=True) as uow:
            return await self._load(uow, order_id)

    async def record_payment_intent(self, order_id: str, provider_ref: str, expected_version: int) -> Order:
        return await self._apply(
            order_id,
            expected_version,
            lambda order, now: order.record_payment_intent(provider_ref, now),
        )

    async def mark_paid(
        self,
        order_id: str,
        provider_payment_id: str,
        amount: Decimal,
        expected_version: int,
    ) -> Order:
        """
        Settle the order. A repeat with the same provider payment id returns
        the current state without a second transition or event, even when
        `expected_version` is stale by then.
        """
        key = mark_paid_key(provider_payment_id)
        now = self._clock()
        async with self._uow_factory() as uow:
            begin = await self._idempotency.begin_or_fetch(key, uow=uow)
            if not begin.is_new:
                if begin.in_progress:
                    raise ConcurrentModificationError(order_id, expected_version)
                paid_order_id = (begin.stored_result or {}).get("order_id", order_id)
                order = await self._load(uow, paid_order_id)
                logger.info(
                    "order_mark_paid_replayed",
                    order_id=order.id,
                    provider_payment_id=provider_payment_id,
                    version=order.version,
                )
                return order

            order = await self._load(uow, order_id)
            order.ensure_version(expected_version)
            event = order.mark_paid(provider_payment_id, amount, now)
            await uow.order_repository.save(order, expected_version)
            await self._publish(uow, [event])
            await self._idempotency.complete(
                key,
                {"order_id": order.id, "version": order.version, "status": order.status.value},
                uow=uow,
            )
        self._log_transition(order, event)
        await self._after_commit([event])
        return order

    async def ship_order(self, order_id: str, expected_version: int, tracking_ref: Optional[str] = None) -> Order:
        return await self._apply(
            order_id,
            expected_version,
            lambda order, now: order.ship(now, tracking_ref=tracking_ref),
        )

    async def complete_order(self, order_id: str, expected_version: int) -> Order:
        return await self._apply(order_id, expected_version, lambda order, now: order.complete(now))

    async def cancel_order(self, order_id: str, reason: Optional[str], expected_version: int) -> Order:
        return await self._apply(
            order_id,
            expected_version,
            lambda order, now: order.cancel(
                reason, now, allow_after_payment=self._allow_cancel_after_payment
            ),
        )

    async def refund(
        self,
        order_id: str,
        amount: Decimal,
        expected_version: int,
        reason: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> Order:
        """
        Record a refund. With `idempotency_key`, a repeat returns the current
        state without recording the refund twice.
        """
        if idempotency_key is None:
            return await self._apply(
                order_id,
                expected_version,
                lambda order, now: order.refund(amount, now, reason=reason),
            )

        key = refund_key(idempotency_key)
        now = self._clock()
        async with self._uow_factory() as uow:
            begin = await self._idempotency.begin_or_fetch(key, uow=uow)
            if not begin.is_new:
                if begin.in_progress:
                    raise ConcurrentModificationError(order_id, expected_version)
                order = await self._load(uow, order_id)
                logger.info("order_refund_replayed", order_id=order_id, idempotency_key=idempotency_key)
                return order

            order = await self._load(uow, order_id)
            if order.find_refund(idempotency_key) is not None:
                # recorded before the key was purged
                await self._idempotency.complete(key, {"order_id": order.id, "version": order.version}, uow=uow)
                return order
            order.ensure_version(expected_version)
            event = order.refund(amount, now, reason=reason, idempotency_key=idempotency_key)
            await uow.order_repository.save(order, expected_version)
            await self._publish(uow, [event])
            await self._idempotency.complete(
                key,
                {"order_id": order.id, "version": order.version, "refund_id": event.refund_id},
                uow=uow,
            )
        self._log_transition(order, event)
        await self._after_commit([event])
        return order

    # ------------------------------------------------------------------
    # Event stream
    # ------------------------------------------------------------------
    async def list_events(self, after_seq: int = 0, limit: int = 100) -> List[StoredOrderEvent]:
        async with self._uow_factory(readonly=True) as uow:
            return await uow.order_repository.list_events(after_seq=after_seq, limit=limit)

    async def list_order_events(self, order_id: str) -> List[StoredOrderEvent]:
        async with self._uow_factory(readonly=True) as uow:
            await self._load(uow, order_id)
            return await uow.order_repository.list_events_for_order(order_id)
