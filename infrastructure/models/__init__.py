"""Infrastructure models package exports."""
from .base import Base, metadata
from .order import OrderModel, OrderItemModel, OrderRefundModel, OrderEventModel
from .payment import PaymentEventModel
from .idempotency import IdempotencyRecordModel
from .job import JobModel, JobAttemptModel

__all__ = [
    "Base",
    "metadata",
    "OrderModel",
    "OrderItemModel",
    "OrderRefundModel",
    "OrderEventModel",
    "PaymentEventModel",
    "IdempotencyRecordModel",
    "JobModel",
    "JobAttemptModel",
]
