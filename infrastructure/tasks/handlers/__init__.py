"""Job handler registry."""
from __future__ import annotations

from typing import Callable, Dict

from application.services.effect_dispatcher import JobType
from application.services.idempotency import IdempotencyStore
from application.services.job_worker import JobHandler
from core.settings import InvoiceSettings
from domain.common.unit_of_work import AbstractUnitOfWork
from infrastructure.external.clients import InventoryClient, NotificationClient
from .invoice import InvoiceHandler
from .inventory import InventoryAdjustHandler
from .notifications import TEMPLATES, NotificationHandler


def build_handlers(
    *,
    uow_factory: Callable[..., AbstractUnitOfWork],
    idempotency: IdempotencyStore,
    notifications: NotificationClient,
    inventory: InventoryClient,
    invoice_settings: InvoiceSettings,
) -> Dict[str, JobHandler]:
    notify = NotificationHandler(notifications, idempotency)
    handlers: Dict[str, JobHandler] = {
        JobType.INVOICE_GENERATE: InvoiceHandler(uow_factory, idempotency, invoice_settings),
        JobType.INVENTORY_ADJUST: InventoryAdjustHandler(uow_factory, inventory, idempotency),
    }
    for job_type in TEMPLATES:
        handlers[job_type] = notify
    return handlers


__all__ = ["build_handlers", "InvoiceHandler", "InventoryAdjustHandler", "NotificationHandler"]
