"""
Order DTOs (Pydantic v2) used at the API boundary.
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator
from pydantic.types import condecimal

from domain.order.entity import Order, PricingSnapshot
from domain.order.repository import StoredOrderEvent


def _upper_currency(v: str) -> str:
    u = (v or "").upper()
    if len(u) != 3 or not u.isalpha():
        raise ValueError("currency must be ISO-4217 alpha-3")
    return u


class OrderItemIn(BaseModel):
    product_ref: str = Field(min_length=1, max_length=200)
    # range checks belong to the order itself so they surface as InvalidItemsError
    quantity: int


class PricingSnapshotIn(BaseModel):
    currency: str
    unit_prices: dict[str, Decimal]
    tax: Decimal = Decimal("0")
    shipping: Decimal = Decimal("0")
    captured_at: datetime
    expires_at: Optional[datetime] = None

    @field_validator("currency")
    @classmethod
    def _validate_currency(cls, v: str) -> str:
        return _upper_currency(v)

    def to_domain(self) -> PricingSnapshot:
        return PricingSnapshot(
            currency=self.currency,
            unit_prices=dict(self.unit_prices),
            tax=self.tax,
            shipping=self.shipping,
            captured_at=self.captured_at,
            expires_at=self.expires_at,
        )


class CreateOrderRequest(BaseModel):
    buyer_id: str = Field(min_length=1, max_length=100)
    shop_id: str = Field(min_length=1, max_length=100)
    items: list[OrderItemIn]
    pricing: PricingSnapshotIn

    def item_pairs(self) -> list[tuple[str, int]]:
        return [(i.product_ref, i.quantity) for i in self.items]


class VersionedCommand(BaseModel):
    expected_version: int = Field(ge=1)


class PaymentIntentRequest(VersionedCommand):
    provider_ref: str = Field(min_length=1, max_length=200)


class ShipOrderRequest(VersionedCommand):
    tracking_ref: Optional[str] = Field(default=None, max_length=200)


class CancelOrderRequest(VersionedCommand):
    reason: Optional[str] = Field(default=None, max_length=500)


class RefundOrderRequest(VersionedCommand):
    amount: condecimal(gt=0, decimal_places=2)  # type: ignore[valid-type]
    reason: Optional[str] = Field(default=None, max_length=500)
    idempotency_key: Optional[str] = Field(default=None, max_length=200)


class LineItemDTO(BaseModel):
    product_ref: str
    quantity: int
    unit_price: str
    line_total: str


class RefundDTO(BaseModel):
    refund_id: str
    amount: str
    reason: Optional[str] = None
    created_at: datetime


class OrderDTO(BaseModel):
    id: str
    buyer_id: str
    shop_id: str
    status: str
    version: int
    currency: str
    items: list[LineItemDTO]
    subtotal: str
    tax: str
    shipping: str
    total: str
    refunded_amount: str
    refunds: list[RefundDTO]
    payment_intent_ref: Optional[str] = None
    payment_ref: Optional[str] = None
    tracking_ref: Optional[str] = None
    cancel_reason: Optional[str] = None
    transitions: dict[str, datetime]
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_entity(cls, order: Order) -> "OrderDTO":
        return cls(
            id=order.id,
            buyer_id=order.buyer_id,
            shop_id=order.shop_id,
            status=order.status.value,
            version=order.version,
            currency=order.currency,
            items=[
                LineItemDTO(
                    product_ref=i.product_ref,
                    quantity=i.quantity,
                    unit_price=str(i.unit_price),
                    line_total=str(i.line_total),
                )
                for i in order.items
            ],
            subtotal=str(order.subtotal),
            tax=str(order.tax),
            shipping=str(order.shipping),
            total=str(order.total),
            refunded_amount=str(order.refunded_amount),
            refunds=[
                RefundDTO(refund_id=r.refund_id, amount=str(r.amount), reason=r.reason, created_at=r.created_at)
                for r in order.refunds
            ],
            payment_intent_ref=order.payment_intent_ref,
            payment_ref=order.payment_ref,
            tracking_ref=order.tracking_ref,
            cancel_reason=order.cancel_reason,
            transitions=dict(order.transitions),
            created_at=order.created_at,
            updated_at=order.updated_at,
        )


class OrderEventDTO(BaseModel):
    seq: int
    event_id: str
    order_id: str
    event_type: str
    version: int
    occurred_at: datetime
    payload: dict[str, Any]

    @classmethod
    def from_stored(cls, event: StoredOrderEvent) -> "OrderEventDTO":
        return cls(
            seq=event.seq,
            event_id=event.event_id,
            order_id=event.order_id,
            event_type=event.event_type,
            version=event.version,
            occurred_at=event.occurred_at,
            payload=event.payload,
        )


class OrderEventPage(BaseModel):
    items: list[OrderEventDTO]
    next_after_seq: int
