"""
Payment event database model - inbound webhook deliveries
"""
from sqlalchemy import (
    Column, Integer, String, DateTime, Text, JSON,
    Index, UniqueConstraint
)
from datetime import datetime, timezone

from .base import Base


class PaymentEventModel(Base):
    """Row per (provider, provider event id); redeliveries update the same row"""
    __tablename__ = "payment_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    provider = Column(String(50), nullable=False, comment="Payment provider: stripe/generic/...")
    event_id = Column(String(200), nullable=False, comment="Provider event id")
    event_type = Column(String(100), nullable=False, index=True)
    order_id = Column(String(64), nullable=True, index=True)

    # Raw payload as received
    payload = Column(JSON, nullable=False)

    outcome = Column(String(20), nullable=False, default="received", index=True,
                     comment="received/applied/failed/ignored")
    error = Column(Text, nullable=True)
    result = Column(JSON, nullable=True)
    attempts = Column(Integer, nullable=False, default=0)

    received_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        index=True,
    )
    processed_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("provider", "event_id", name="uq_payment_events_provider_event"),
        Index("ix_payment_events_outcome_received", "outcome", "received_at"),
    )

    def __repr__(self):
        return (
            f"<PaymentEventModel(id={self.id}, provider='{self.provider}', "
            f"event_id='{self.event_id}', outcome='{self.outcome}')>"
        )
