"""
Payment event repository interface
"""
from abc import ABC, abstractmethod
from typing import Optional

from .entity import PaymentEvent


class PaymentEventRepository(ABC):
    """Webhook delivery audit log"""

    @abstractmethod
    async def add(self, event: PaymentEvent) -> PaymentEvent:
        """Record a newly received event"""

    @abstractmethod
    async def get(self, provider: str, event_id: str) -> Optional[PaymentEvent]:
        """Look up by provider event id"""

    @abstractmethod
    async def update(self, event: PaymentEvent) -> PaymentEvent:
        """Persist outcome fields"""

