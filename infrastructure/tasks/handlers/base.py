"""Shared pieces for job handlers."""
from __future__ import annotations

from typing import Any, Callable

from domain.common.exceptions import DomainValidationException, OrderNotFoundError
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.jobs.entity import Job
from domain.order.entity import Order


def order_ref(job: Job) -> tuple[str, int]:
    """(order_id, version) carried by every order-driven job."""
    order_id = job.payload.get("order_id")
    version = job.payload.get("version")
    if not order_id or version is None:
        raise DomainValidationException(f"job {job.id} payload lacks order_id/version", field="payload")
    return str(order_id), int(version)


async def load_order(uow_factory: Callable[..., AbstractUnitOfWork], order_id: str) -> Order:
    async with uow_factory(readonly=True) as uow:
        order = await uow.order_repository.get(order_id)
    if order is None:
        raise OrderNotFoundError(order_id)
    return order


def money_str(value: Any) -> str:
    return f"{value:.2f}"
