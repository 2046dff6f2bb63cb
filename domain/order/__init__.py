"""Order domain exports."""
from .entity import (
    LineItem,
    Order,
    OrderStatus,
    PricingSnapshot,
    RefundRecord,
    money,
)
from .events import (
    OrderCancelled,
    OrderCompleted,
    OrderCreated,
    OrderEvent,
    OrderPaid,
    OrderPaymentPending,
    OrderRefunded,
    OrderShipped,
)
from .repository import OrderRepository, StoredOrderEvent

__all__ = [
    "LineItem",
    "Order",
    "OrderStatus",
    "PricingSnapshot",
    "RefundRecord",
    "money",
    "OrderEvent",
    "OrderCreated",
    "OrderPaymentPending",
    "OrderPaid",
    "OrderShipped",
    "OrderCompleted",
    "OrderCancelled",
    "OrderRefunded",
    "OrderRepository",
    "StoredOrderEvent",
]
