"""
Order repository interfaces
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, List, Optional

from .entity import Order
from .events import OrderEvent


@dataclass(frozen=True)
class StoredOrderEvent:
    """A domain event as read back from the durable event log."""

    seq: int
    event_id: str
    order_id: str
    event_type: str
    version: int
    occurred_at: datetime
    payload: dict[str, Any]


class OrderRepository(ABC):
    """Order persistence. Status changes are only written through `save`."""

    @abstractmethod
    async def add(self, order: Order) -> Order:
        """Insert a new order"""

    @abstractmethod
    async def get(self, order_id: str) -> Optional[Order]:
        """Load an order with items and refund records"""

    @abstractmethod
    async def save(self, order: Order, expected_version: int) -> Order:
        """
        Persist a mutated order with compare-and-set on `version`.

        Raises ConcurrentModificationError when the stored version is no
        longer `expected_version`; nothing is written in that case.
        """

    @abstractmethod
    async def append_events(self, events: List[OrderEvent]) -> None:
        """Append events to the durable order event log"""

    @abstractmethod
    async def list_events(self, after_seq: int = 0, limit: int = 100) -> List[StoredOrderEvent]:
        """Read the event log in commit order"""

    @abstractmethod
    async def list_events_for_order(self, order_id: str) -> List[StoredOrderEvent]:
        """Read one order's events by version"""
