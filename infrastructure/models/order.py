"""
Order database models - SQLAlchemy ORM mapping
Note: infrastructure detail; business rules live in domain.order.entity.Order
"""
from sqlalchemy import (
    Column, Integer, String, Numeric, DateTime, Text, JSON,
    Index, ForeignKey, UniqueConstraint
)
from sqlalchemy.orm import relationship
from datetime import datetime, timezone

from .base import Base


class OrderModel(Base):
    """Order aggregate row. `version` is the compare-and-set token."""
    __tablename__ = "orders"

    id = Column(String(64), primary_key=True, comment="Order ID")
    buyer_id = Column(String(100), nullable=False, index=True, comment="Buyer reference")
    shop_id = Column(String(100), nullable=False, index=True, comment="Shop reference")

    # Amounts fixed at creation
    subtotal = Column(Numeric(precision=15, scale=2), nullable=False)
    tax = Column(Numeric(precision=15, scale=2), nullable=False)
    shipping = Column(Numeric(precision=15, scale=2), nullable=False)
    total = Column(Numeric(precision=15, scale=2), nullable=False)
    currency = Column(String(3), nullable=False, comment="ISO-4217")

    status = Column(
        String(32),
        nullable=False,
        index=True,
        comment="pending/awaiting_payment/paid/shipped/completed/cancelled/refunded"
    )
    version = Column(Integer, nullable=False, default=1)

    payment_intent_ref = Column(String(200), nullable=True, index=True)
    payment_ref = Column(String(200), nullable=True, index=True)
    refunded_amount = Column(Numeric(precision=15, scale=2), nullable=False, default=0)
    cancel_reason = Column(Text, nullable=True)
    tracking_ref = Column(String(200), nullable=True)

    # status -> ISO timestamp of the transition into it
    transitions = Column(JSON, nullable=False, default=dict)

    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        index=True,
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    items = relationship(
        "OrderItemModel",
        back_populates="order",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by="OrderItemModel.position",
    )
    refunds = relationship(
        "OrderRefundModel",
        back_populates="order",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by="OrderRefundModel.id",
    )

    __table_args__ = (
        Index("ix_orders_shop_status", "shop_id", "status"),
    )

    def __repr__(self):
        return f"<OrderModel(id='{self.id}', status='{self.status}', version={self.version})>"


class OrderItemModel(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(String(64), ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)
    product_ref = Column(String(200), nullable=False)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(precision=15, scale=2), nullable=False, comment="Snapshot price")

    order = relationship("OrderModel", back_populates="items")


class OrderRefundModel(Base):
    """Refund records; append-only."""
    __tablename__ = "order_refunds"

    id = Column(Integer, primary_key=True, autoincrement=True)
    refund_id = Column(String(64), nullable=False, unique=True)
    order_id = Column(String(64), ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    amount = Column(Numeric(precision=15, scale=2), nullable=False)
    reason = Column(Text, nullable=True)
    idempotency_key = Column(String(200), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)

    order = relationship("OrderModel", back_populates="refunds")

    __table_args__ = (
        UniqueConstraint("order_id", "idempotency_key", name="uq_order_refunds_order_key"),
    )


class OrderEventModel(Base):
    """
    Durable order event log. `seq` gives commit order to consumers;
    (order_id, version) is unique so an order never logs two events per version.
    """
    __tablename__ = "order_events"

    seq = Column(Integer, primary_key=True, autoincrement=True)
    event_id = Column(String(64), nullable=False, unique=True)
    order_id = Column(String(64), nullable=False, index=True)
    event_type = Column(String(64), nullable=False, index=True)
    version = Column(Integer, nullable=False)
    occurred_at = Column(DateTime(timezone=True), nullable=False)
    payload = Column(JSON, nullable=False, default=dict)

    __table_args__ = (
        UniqueConstraint("order_id", "version", name="uq_order_events_order_version"),
    )
