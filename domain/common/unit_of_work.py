"""Unit of Work abstraction"""
from __future__ import annotations

from abc import ABC, abstractmethod

from domain.idempotency.repository import IdempotencyRepository
from domain.jobs.repository import JobRepository
from domain.order.repository import OrderRepository
from domain.payment.repository import PaymentEventRepository


class AbstractUnitOfWork(ABC):
    """Transaction boundary used by the application layer"""

    order_repository: OrderRepository
    payment_event_repository: PaymentEventRepository
    idempotency_repository: IdempotencyRepository
    job_repository: JobRepository

    def __init__(self, *, readonly: bool = False) -> None:
        self._committed = False
        self._readonly = readonly
        self.order_repository = None  # type: ignore[assignment]
        self.payment_event_repository = None  # type: ignore[assignment]
        self.idempotency_repository = None  # type: ignore[assignment]
        self.job_repository = None  # type: ignore[assignment]

    async def __aenter__(self) -> "AbstractUnitOfWork":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if exc:
            await self.rollback()
        else:
            # commit only when writable and not committed explicitly
            if not self._readonly and not self._committed:
                await self.commit()

    @abstractmethod
    async def commit(self) -> None:
        """Commit the transaction"""
        ...

    @abstractmethod
    async def rollback(self) -> None:
        """Roll back the transaction"""
