"""
Order domain events.

Each successful Order Engine command yields exactly one of these. They are
appended to the durable order event log and fanned out to subscribers (the
effect dispatcher) inside the same unit of work. Domain stays free of
infrastructure imports.
"""
from __future__ import annotations

from dataclasses import dataclass, field, fields
from datetime import datetime
from typing import Any, ClassVar, Optional
import uuid


_BASE_FIELDS = {"order_id", "version", "occurred_at", "event_id"}


@dataclass
class OrderEvent:
    order_id: str
    version: int
    occurred_at: datetime
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))

    event_type: ClassVar[str] = "OrderEvent"

    def payload(self) -> dict[str, Any]:
        """Event specific attributes (JSON safe)."""
        return {f.name: getattr(self, f.name) for f in fields(self) if f.name not in _BASE_FIELDS}


@dataclass
class OrderCreated(OrderEvent):
    event_type: ClassVar[str] = "OrderCreated"
    buyer_id: str = ""
    shop_id: str = ""
    total: str = ""
    currency: str = ""


@dataclass
class OrderPaymentPending(OrderEvent):
    event_type: ClassVar[str] = "OrderPaymentPending"
    provider_ref: str = ""


@dataclass
class OrderPaid(OrderEvent):
    event_type: ClassVar[str] = "OrderPaid"
    buyer_id: str = ""
    provider_payment_id: str = ""
    amount: str = ""
    currency: str = ""


@dataclass
class OrderShipped(OrderEvent):
    event_type: ClassVar[str] = "OrderShipped"
    buyer_id: str = ""
    tracking_ref: Optional[str] = None


@dataclass
class OrderCompleted(OrderEvent):
    event_type: ClassVar[str] = "OrderCompleted"


@dataclass
class OrderCancelled(OrderEvent):
    event_type: ClassVar[str] = "OrderCancelled"
    buyer_id: str = ""
    reason: Optional[str] = None


@dataclass
class OrderRefunded(OrderEvent):
    event_type: ClassVar[str] = "OrderRefunded"
    buyer_id: str = ""
    refund_id: str = ""
    amount: str = ""
    refunded_total: str = ""
    currency: str = ""
    full: bool = False


EVENT_TYPES: dict[str, type[OrderEvent]] = {
    cls.event_type: cls
    for cls in (
        OrderCreated,
        OrderPaymentPending,
        OrderPaid,
        OrderShipped,
        OrderCompleted,
        OrderCancelled,
        OrderRefunded,
    )
}
