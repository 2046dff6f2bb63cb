"""
Webhook ingestor - authenticated, deduplicated intake of payment provider
events.

A delivery is acknowledged only once its PaymentEvent row and idempotency
result are durable. Anything short of that gets a retry-eligible answer so
the provider redelivers; the idempotency key keeps redeliveries from
applying twice.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Mapping, Optional

from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from core.logging_config import get_logger
from domain.common.clock import utcnow
from domain.common.exceptions import (
    ConcurrentModificationError,
    DomainValidationException,
    UnauthenticatedWebhookError,
)
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.order.entity import Order, OrderStatus
from domain.payment.entity import PaymentEvent, PaymentEventOutcome
from application.ports.webhooks import VerifiedWebhook, WebhookVerifier
from application.services.idempotency import IdempotencyStore
from application.services.order_engine import OrderEngine
from shared.codes.payment_codes import OrderCommand, command_for_event, from_minor_units


logger = get_logger(__name__)


@dataclass
class WebhookResult:
    accepted: bool
    duplicate: bool = False
    retry: bool = False
    event_id: Optional[str] = None
    outcome: Optional[str] = None
    detail: dict[str, Any] = field(default_factory=dict)


def webhook_key(provider: str, event_id: str) -> str:
    return f"webhook:{provider}:{event_id}"


def resolve_order_id(obj: Mapping[str, Any]) -> Optional[str]:
    """`metadata.order_id` first, then a top-level `order_id`."""
    metadata = obj.get("metadata") or {}
    order_id = metadata.get("order_id") if isinstance(metadata, dict) else None
    return order_id or obj.get("order_id")


class WebhookIngestor:
    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        engine: OrderEngine,
        idempotency: IdempotencyStore,
        verifier_for: Callable[[str], WebhookVerifier],
        *,
        processing_budget_seconds: float = 10.0,
        concurrency_retries: int = 3,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._uow_factory = uow_factory
        self._engine = engine
        self._idempotency = idempotency
        self._verifier_for = verifier_for
        self._budget = processing_budget_seconds
        self._concurrency_retries = max(int(concurrency_retries), 1)
        self._clock = clock

    # ------------------------------------------------------------------
    # Intake
    # ------------------------------------------------------------------
    def verify(self, provider: str, headers: Mapping[str, str], body: bytes) -> VerifiedWebhook:
        try:
            verifier = self._verifier_for(provider)
            return verifier.verify(headers, body)
        except UnauthenticatedWebhookError as exc:
            logger.warning(
                "security_event",
                kind="webhook_unauthenticated",
                provider=provider,
                reason=exc.message,
            )
            raise

    async def ingest(self, provider: str, headers: Mapping[str, str], body: bytes) -> WebhookResult:
        webhook = self.verify(provider, headers, body)
        key = webhook_key(provider, webhook.event_id)

        begin = await self._idempotency.begin_or_fetch(key, owner="webhook")
        if begin.stored_result is not None:
            logger.info("webhook_duplicate", provider=provider, event_id=webhook.event_id)
            return WebhookResult(
                accepted=True,
                duplicate=True,
                event_id=webhook.event_id,
                outcome=begin.stored_result.get("outcome"),
                detail=begin.stored_result,
            )
        if begin.in_progress:
            logger.info("webhook_in_progress", provider=provider, event_id=webhook.event_id)
            return WebhookResult(accepted=False, duplicate=True, retry=True, event_id=webhook.event_id)

        try:
            event = await self._record(webhook)
        except Exception:
            await self._idempotency.release(key)
            raise

        if event.is_settled:
            # the key outlived its retention; the audit row still holds the answer
            return await self._replay_settled(key, event)

        command = command_for_event(webhook.event_type)
        if command is None:
            return await self._finish(key, event, PaymentEventOutcome.IGNORED, {"outcome": "ignored"})

        try:
            result = await asyncio.wait_for(
                self._run_command(command, webhook, event.order_id), timeout=self._budget
            )
        except Exception as exc:
            error = "processing budget exceeded" if isinstance(exc, asyncio.TimeoutError) else str(exc)
            return await self._fail(key, event, error, exc)

        result = {"outcome": "applied", "command": command, **result}
        return await self._finish(key, event, PaymentEventOutcome.APPLIED, result)

    async def _record(self, webhook: VerifiedWebhook) -> PaymentEvent:
        order_id = resolve_order_id(webhook.data_object)
        async with self._uow_factory() as uow:
            repo = uow.payment_event_repository
            existing = await repo.get(webhook.provider, webhook.event_id)
            if existing is not None:
                if existing.is_settled:
                    return existing
                existing.register_attempt()
                existing.order_id = existing.order_id or order_id
                return await repo.update(existing)
            return await repo.add(
                PaymentEvent(
                    id=None,
                    provider=webhook.provider,
                    event_id=webhook.event_id,
                    event_type=webhook.event_type,
                    payload=webhook.payload,
                    order_id=order_id,
                    received_at=self._clock(),
                    attempts=1,
                )
            )

    async def _finish(
        self, key: str, event: PaymentEvent, outcome: PaymentEventOutcome, result: dict[str, Any]
    ) -> WebhookResult:
        now = self._clock()
        if outcome == PaymentEventOutcome.IGNORED:
            event.mark_ignored(now)
        else:
            event.mark_applied(result, now)
        async with self._uow_factory() as uow:
            await uow.payment_event_repository.update(event)
            await self._idempotency.complete(key, result, uow=uow)
        logger.info(
            "webhook_processed",
            provider=event.provider,
            event_id=event.event_id,
            event_type=event.event_type,
            order_id=event.order_id,
            outcome=outcome.value,
        )
        return WebhookResult(accepted=True, event_id=event.event_id, outcome=outcome.value, detail=result)

    async def _replay_settled(self, key: str, event: PaymentEvent) -> WebhookResult:
        result = event.settled_result()
        await self._idempotency.complete(key, result)
        logger.info(
            "webhook_duplicate",
            provider=event.provider,
            event_id=event.event_id,
            outcome=event.outcome.value,
            source="payment_event",
        )
        return WebhookResult(
            accepted=True,
            duplicate=True,
            event_id=event.event_id,
            outcome=event.outcome.value,
            detail=result,
        )

    async def _fail(self, key: str, event: PaymentEvent, error: str, exc: BaseException) -> WebhookResult:
        event.mark_failed(error, self._clock())
        async with self._uow_factory() as uow:
            await uow.payment_event_repository.update(event)
            await self._idempotency.release(key, uow=uow)
        logger.warning(
            "webhook_processing_failed",
            provider=event.provider,
            event_id=event.event_id,
            event_type=event.event_type,
            order_id=event.order_id,
            error=error,
            error_type=type(exc).__name__,
        )
        return WebhookResult(
            accepted=False,
            retry=True,
            event_id=event.event_id,
            outcome=PaymentEventOutcome.FAILED.value,
            detail={"error": error},
        )

    # ------------------------------------------------------------------
    # Event -> command
    # ------------------------------------------------------------------
    async def _run_command(self, command: str, webhook: VerifiedWebhook, order_id: Optional[str]) -> dict:
        if not order_id:
            raise DomainValidationException("webhook payload carries no order reference", field="order_id")

        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self._concurrency_retries),
            wait=wait_exponential(multiplier=0.05, min=0.01, max=0.5),
            retry=retry_if_exception_type(ConcurrentModificationError),
            reraise=True,
        ):
            with attempt:
                order = await self._engine.get_order(order_id)
                order = await self._dispatch(command, order, webhook.data_object)
                return {"order_id": order.id, "status": order.status.value, "version": order.version}

    async def _dispatch(self, command: str, order: Order, obj: Mapping[str, Any]) -> Order:
        engine = self._engine
        if command == OrderCommand.RECORD_PAYMENT_INTENT:
            provider_ref = obj.get("id")
            if order.status == OrderStatus.AWAITING_PAYMENT and order.payment_intent_ref == provider_ref:
                return order
            return await engine.record_payment_intent(order.id, provider_ref, order.version)

        if command == OrderCommand.MARK_PAID:
            # charge events point at their intent; both share one settlement key
            provider_payment_id = obj.get("payment_intent") or obj.get("id")
            amount = self._amount(obj, order, "amount_received", "amount")
            return await engine.mark_paid(order.id, provider_payment_id, amount, order.version)

        if command == OrderCommand.CANCEL:
            if order.status == OrderStatus.CANCELLED:
                return order
            reason = obj.get("cancellation_reason") or "payment canceled by provider"
            return await engine.cancel_order(order.id, reason, order.version)

        if command == OrderCommand.REFUND:
            refund_id, amount = self._refund_details(obj, order)
            return await engine.refund(
                order.id,
                amount,
                order.version,
                reason=obj.get("reason"),
                idempotency_key=refund_id,
            )

        raise DomainValidationException(f"unsupported command {command}", field="event_type")

    @staticmethod
    def _amount(obj: Mapping[str, Any], order: Order, *fields: str) -> Decimal:
        for name in fields:
            if obj.get(name) is not None:
                return from_minor_units(obj[name], obj.get("currency") or order.currency)
        raise DomainValidationException("webhook payload carries no amount", field="amount")

    def _refund_details(self, obj: Mapping[str, Any], order: Order) -> tuple[str, Decimal]:
        """Refund id and amount from a refund object or a charge.refunded charge."""
        if "amount_refunded" not in obj:
            return obj.get("id"), self._amount(obj, order, "amount")
        refunds = (obj.get("refunds") or {}).get("data") or []
        if refunds:
            latest = refunds[0]
            return latest.get("id"), self._amount(latest, order, "amount")
        # only the cumulative figure is present
        cumulative = self._amount(obj, order, "amount_refunded")
        return f"{obj.get('id')}:{obj.get('amount_refunded')}", cumulative - order.refunded_amount
