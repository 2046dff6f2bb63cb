"""
invoice.generate - renders the invoice for a paid order to disk.
"""
from __future__ import annotations

import asyncio
import html
import os
import tempfile
from typing import Callable

from application.services.idempotency import IdempotencyStore
from application.services.job_worker import run_idempotent
from core.logging_config import get_logger
from core.settings import InvoiceSettings
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.jobs.entity import Job
from domain.order.entity import Order
from .base import load_order, money_str, order_ref


logger = get_logger(__name__)


def render_invoice(order: Order, *, issuer_name: str, version: int) -> str:
    rows = "\n".join(
        "<tr><td>{ref}</td><td>{qty}</td><td>{unit}</td><td>{line}</td></tr>".format(
            ref=html.escape(item.product_ref),
            qty=item.quantity,
            unit=money_str(item.unit_price),
            line=money_str(item.line_total),
        )
        for item in order.items
    )
    paid_at = order.transitions.get("paid")
    return f"""<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>Invoice {html.escape(order.id)}</title></head>
<body>
<h1>{html.escape(issuer_name)}</h1>
<p>Invoice for order <strong>{html.escape(order.id)}</strong> (v{version})</p>
<p>Buyer: {html.escape(order.buyer_id)}<br>Shop: {html.escape(order.shop_id)}<br>
Paid: {paid_at.isoformat() if paid_at else "-"}<br>Payment ref: {html.escape(order.payment_ref or "-")}</p>
<table>
<thead><tr><th>Product</th><th>Qty</th><th>Unit price</th><th>Line total</th></tr></thead>
<tbody>
{rows}
</tbody>
</table>
<p>Subtotal: {money_str(order.subtotal)} {order.currency}<br>
Tax: {money_str(order.tax)} {order.currency}<br>
Shipping: {money_str(order.shipping)} {order.currency}<br>
<strong>Total: {money_str(order.total)} {order.currency}</strong></p>
</body>
</html>
"""


def _write_atomically(path: str, content: str) -> None:
    directory = os.path.dirname(path)
    os.makedirs(directory, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".invoice-", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(content)
        os.replace(tmp_path, path)
    except BaseException:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise


class InvoiceHandler:
    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        idempotency: IdempotencyStore,
        settings: InvoiceSettings,
    ) -> None:
        self._uow_factory = uow_factory
        self._idempotency = idempotency
        self._settings = settings

    def path_for(self, order_id: str, version: int) -> str:
        return os.path.join(self._settings.output_dir, f"invoice-{order_id}-v{version}.html")

    async def __call__(self, job: Job) -> dict:
        order_id, version = order_ref(job)

        async def _generate() -> dict:
            order = await load_order(self._uow_factory, order_id)
            path = self.path_for(order_id, version)
            content = render_invoice(order, issuer_name=self._settings.issuer_name, version=version)
            await asyncio.to_thread(_write_atomically, path, content)
            logger.info("invoice_generated", order_id=order_id, version=version, path=path)
            return {"path": path}

        return await run_idempotent(self._idempotency, f"invoice:{order_id}:v{version}", _generate)
