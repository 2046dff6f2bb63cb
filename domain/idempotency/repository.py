"""
Idempotency repository interface
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Optional

from .entity import IdempotencyRecord


class IdempotencyRepository(ABC):
    """All mutations are single-statement check-and-set operations."""

    @abstractmethod
    async def get(self, key: str) -> Optional[IdempotencyRecord]:
        """Read a record regardless of expiry"""

    @abstractmethod
    async def try_insert(self, record: IdempotencyRecord) -> bool:
        """Insert if absent. Returns False when the key already exists."""

    @abstractmethod
    async def try_take_over(
        self,
        key: str,
        *,
        now: datetime,
        lease_expires_at: datetime,
        expires_at: datetime,
        owner: Optional[str] = None,
    ) -> bool:
        """
        Re-reserve a key whose reservation lease expired, or whose retention
        window passed. Returns False if someone else got there first.
        """

    @abstractmethod
    async def mark_completed(self, key: str, result: dict[str, Any], now: datetime) -> bool:
        """Store the result snapshot. Returns False if the key is missing."""

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Drop a record (used to release a failed reservation)"""

    @abstractmethod
    async def purge_expired(self, now: datetime) -> int:
        """Delete records past retention. Returns the number removed."""
