"""
Order domain entity - the order aggregate root
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Iterable, Optional
import uuid

from domain.common.clock import ensure_utc
from domain.common.exceptions import (
    AmountMismatchError,
    ConcurrentModificationError,
    DomainValidationException,
    InvalidItemsError,
    InvalidTransitionError,
    RefundExceedsPaidError,
)
from .events import (
    OrderCancelled,
    OrderCompleted,
    OrderCreated,
    OrderPaid,
    OrderPaymentPending,
    OrderRefunded,
    OrderShipped,
)


CENT = Decimal("0.01")


def money(value) -> Decimal:
    """Normalize any numeric input to a 2-place Decimal."""
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


class OrderStatus(str, Enum):
    """Order status enum"""
    PENDING = "pending"
    AWAITING_PAYMENT = "awaiting_payment"
    PAID = "paid"
    SHIPPED = "shipped"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


# Forward path plus the two side branches. Cancellation from PAID is gated by
# policy in Order.cancel.
ALLOWED_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.AWAITING_PAYMENT, OrderStatus.CANCELLED}),
    OrderStatus.AWAITING_PAYMENT: frozenset({OrderStatus.PAID, OrderStatus.CANCELLED}),
    OrderStatus.PAID: frozenset({OrderStatus.SHIPPED, OrderStatus.CANCELLED, OrderStatus.REFUNDED}),
    OrderStatus.SHIPPED: frozenset({OrderStatus.COMPLETED, OrderStatus.REFUNDED}),
    OrderStatus.COMPLETED: frozenset({OrderStatus.REFUNDED}),
    OrderStatus.CANCELLED: frozenset(),
    OrderStatus.REFUNDED: frozenset(),
}

REFUNDABLE_STATUSES = frozenset({OrderStatus.PAID, OrderStatus.SHIPPED, OrderStatus.COMPLETED})


@dataclass(frozen=True)
class LineItem:
    product_ref: str
    quantity: int
    unit_price: Decimal

    @property
    def line_total(self) -> Decimal:
        return money(self.unit_price * self.quantity)


@dataclass(frozen=True)
class PricingSnapshot:
    """Prices captured at checkout; never recomputed from the live catalog."""

    currency: str
    unit_prices: dict[str, Decimal]
    tax: Decimal = Decimal("0")
    shipping: Decimal = Decimal("0")
    captured_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None

    def price_for(self, product_ref: str) -> Optional[Decimal]:
        price = self.unit_prices.get(product_ref)
        return money(price) if price is not None else None

    def is_stale(self, now: datetime, max_age: timedelta) -> bool:
        captured = ensure_utc(self.captured_at)
        if captured is None:
            return True
        expires = ensure_utc(self.expires_at)
        if expires is not None and now >= expires:
            return True
        return now - captured > max_age


@dataclass(frozen=True)
class RefundRecord:
    refund_id: str
    amount: Decimal
    created_at: datetime
    reason: Optional[str] = None
    idempotency_key: Optional[str] = None


@dataclass
class Order:
    """
    Order aggregate root - the only writer of order status.

    Business rules:
    1. total == subtotal + tax + shipping, fixed at creation
    2. every successful mutation bumps `version` by exactly one and yields
       exactly one domain event
    3. payment must settle the full total; partial payments are rejected
    4. refunds never exceed the captured total; only the refund that reaches
       the total changes status
    """

    id: str
    buyer_id: str
    shop_id: str
    items: list[LineItem]
    subtotal: Decimal
    tax: Decimal
    shipping: Decimal
    total: Decimal
    currency: str
    status: OrderStatus
    version: int = 1
    payment_intent_ref: Optional[str] = None
    payment_ref: Optional[str] = None
    refunded_amount: Decimal = field(default_factory=lambda: Decimal("0.00"))
    refunds: list[RefundRecord] = field(default_factory=list)
    cancel_reason: Optional[str] = None
    tracking_ref: Optional[str] = None
    transitions: dict[str, datetime] = field(default_factory=dict)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        if self.total != self.subtotal + self.tax + self.shipping:
            raise DomainValidationException(
                f"Order total {self.total} != subtotal {self.subtotal} + tax {self.tax} + shipping {self.shipping}",
                field="total",
            )
        self.created_at = ensure_utc(self.created_at)
        self.updated_at = ensure_utc(self.updated_at)
        self.transitions = {k: ensure_utc(v) for k, v in (self.transitions or {}).items()}

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------
    @classmethod
    def create(
        cls,
        *,
        buyer_id: str,
        shop_id: str,
        items: Iterable[tuple[str, int]],
        pricing: PricingSnapshot,
        now: datetime,
        pricing_max_age: timedelta,
        order_id: Optional[str] = None,
    ) -> tuple["Order", OrderCreated]:
        """Build a pending order from (product_ref, quantity) pairs priced by the snapshot."""
        requested = list(items)
        if not requested:
            raise InvalidItemsError("order must contain at least one line item")
        if pricing.is_stale(now, pricing_max_age):
            raise InvalidItemsError("pricing snapshot is stale or missing its capture time")
        currency = (pricing.currency or "").upper()
        if len(currency) != 3 or not currency.isalpha():
            raise InvalidItemsError(f"invalid currency {pricing.currency!r}")

        lines: list[LineItem] = []
        for product_ref, quantity in requested:
            if quantity is None or int(quantity) <= 0:
                raise InvalidItemsError(f"quantity must be positive, got {quantity}", product_ref=product_ref)
            price = pricing.price_for(product_ref)
            if price is None:
                raise InvalidItemsError("no price snapshot for product", product_ref=product_ref)
            if price <= 0:
                raise InvalidItemsError(f"unit price must be positive, got {price}", product_ref=product_ref)
            lines.append(LineItem(product_ref=product_ref, quantity=int(quantity), unit_price=price))

        tax = money(pricing.tax)
        shipping = money(pricing.shipping)
        if tax < 0 or shipping < 0:
            raise InvalidItemsError("tax and shipping must not be negative")
        subtotal = money(sum((line.line_total for line in lines), Decimal("0")))

        order = cls(
            id=order_id or uuid.uuid4().hex,
            buyer_id=buyer_id,
            shop_id=shop_id,
            items=lines,
            subtotal=subtotal,
            tax=tax,
            shipping=shipping,
            total=subtotal + tax + shipping,
            currency=currency,
            status=OrderStatus.PENDING,
            version=1,
            transitions={OrderStatus.PENDING.value: now},
            created_at=now,
            updated_at=now,
        )
        event = OrderCreated(
            order_id=order.id,
            version=order.version,
            occurred_at=now,
            buyer_id=buyer_id,
            shop_id=shop_id,
            total=str(order.total),
            currency=currency,
        )
        return order, event

    # ------------------------------------------------------------------
    # Guards
    # ------------------------------------------------------------------
    def ensure_version(self, expected_version: int) -> None:
        if expected_version != self.version:
            raise ConcurrentModificationError(self.id, expected_version, self.version)

    def can_transition(self, target: OrderStatus) -> bool:
        return target in ALLOWED_TRANSITIONS[self.status]

    def _require_transition(self, target: OrderStatus) -> None:
        if not self.can_transition(target):
            raise InvalidTransitionError(self.id, self.status.value, target.value)

    def _apply_transition(self, target: OrderStatus, now: datetime) -> None:
        self.status = target
        self.transitions[target.value] = now
        self._touch(now)

    def _touch(self, now: datetime) -> None:
        self.version += 1
        self.updated_at = now

    @property
    def is_terminal(self) -> bool:
        return not ALLOWED_TRANSITIONS[self.status]

    @property
    def refundable_amount(self) -> Decimal:
        return self.total - self.refunded_amount

    def find_refund(self, idempotency_key: str) -> Optional[RefundRecord]:
        return next((r for r in self.refunds if r.idempotency_key == idempotency_key), None)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------
    def record_payment_intent(self, provider_ref: str, now: datetime) -> OrderPaymentPending:
        if self.status != OrderStatus.PENDING:
            raise InvalidTransitionError(self.id, self.status.value, OrderStatus.AWAITING_PAYMENT.value)
        self.payment_intent_ref = provider_ref
        self._apply_transition(OrderStatus.AWAITING_PAYMENT, now)
        return OrderPaymentPending(
            order_id=self.id, version=self.version, occurred_at=now, provider_ref=provider_ref
        )

    def mark_paid(self, provider_payment_id: str, amount: Decimal, now: datetime) -> OrderPaid:
        """Settle the order. A partial payment is never accepted as full settlement."""
        if self.status != OrderStatus.AWAITING_PAYMENT:
            raise InvalidTransitionError(self.id, self.status.value, OrderStatus.PAID.value)
        received = money(amount)
        if received != self.total:
            raise AmountMismatchError(self.id, self.total, received)
        self.payment_ref = provider_payment_id
        self._apply_transition(OrderStatus.PAID, now)
        return OrderPaid(
            order_id=self.id,
            version=self.version,
            occurred_at=now,
            buyer_id=self.buyer_id,
            provider_payment_id=provider_payment_id,
            amount=str(received),
            currency=self.currency,
        )

    def ship(self, now: datetime, tracking_ref: Optional[str] = None) -> OrderShipped:
        self._require_transition(OrderStatus.SHIPPED)
        self.tracking_ref = tracking_ref
        self._apply_transition(OrderStatus.SHIPPED, now)
        return OrderShipped(
            order_id=self.id, version=self.version, occurred_at=now,
            buyer_id=self.buyer_id, tracking_ref=tracking_ref,
        )

    def complete(self, now: datetime) -> OrderCompleted:
        self._require_transition(OrderStatus.COMPLETED)
        self._apply_transition(OrderStatus.COMPLETED, now)
        return OrderCompleted(order_id=self.id, version=self.version, occurred_at=now)

    def cancel(self, reason: Optional[str], now: datetime, *, allow_after_payment: bool = False) -> OrderCancelled:
        """Cancel a pre-terminal order; once paid, only when policy allows it."""
        if self.status == OrderStatus.PAID and not allow_after_payment:
            raise InvalidTransitionError(self.id, self.status.value, OrderStatus.CANCELLED.value)
        self._require_transition(OrderStatus.CANCELLED)
        self.cancel_reason = reason
        self._apply_transition(OrderStatus.CANCELLED, now)
        return OrderCancelled(
            order_id=self.id, version=self.version, occurred_at=now,
            buyer_id=self.buyer_id, reason=reason,
        )

    def refund(
        self,
        amount: Decimal,
        now: datetime,
        *,
        reason: Optional[str] = None,
        idempotency_key: Optional[str] = None,
        refund_id: Optional[str] = None,
    ) -> OrderRefunded:
        """
        Record a refund.

        Partial refunds are kept as records and bump the version only; the
        refund that brings the refunded total up to the order total moves the
        order to REFUNDED.
        """
        if self.status not in REFUNDABLE_STATUSES:
            raise InvalidTransitionError(self.id, self.status.value, OrderStatus.REFUNDED.value)
        requested = money(amount)
        if requested <= 0:
            raise DomainValidationException(f"Refund amount must be positive: {requested}", field="amount")
        if requested > self.refundable_amount:
            raise RefundExceedsPaidError(self.id, requested, self.refundable_amount)

        record = RefundRecord(
            refund_id=refund_id or uuid.uuid4().hex,
            amount=requested,
            created_at=now,
            reason=reason,
            idempotency_key=idempotency_key,
        )
        self.refunds.append(record)
        self.refunded_amount = self.refunded_amount + requested
        full = self.refunded_amount == self.total
        if full:
            self._apply_transition(OrderStatus.REFUNDED, now)
        else:
            self._touch(now)
        return OrderRefunded(
            order_id=self.id,
            version=self.version,
            occurred_at=now,
            buyer_id=self.buyer_id,
            refund_id=record.refund_id,
            amount=str(requested),
            refunded_total=str(self.refunded_amount),
            currency=self.currency,
            full=full,
        )
