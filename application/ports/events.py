"""
Domain event subscriber port.

The order engine hands each event to its subscribers inside the command's
unit of work, then calls `after_commit` once the transaction is durable.
"""
from __future__ import annotations

from typing import Protocol, Sequence, runtime_checkable

from domain.common.unit_of_work import AbstractUnitOfWork
from domain.order.events import OrderEvent


@runtime_checkable
class DomainEventSubscriber(Protocol):

    async def handle(self, event: OrderEvent, uow: AbstractUnitOfWork) -> None: ...

    async def after_commit(self, events: Sequence[OrderEvent]) -> None: ...
