import json
import os
from datetime import timedelta

import httpx
import pytest

from application.services.effect_dispatcher import EffectDispatcher, JobType
from application.services.idempotency import IdempotencyStore
from application.services.job_queue import JobQueue
from application.services.order_engine import OrderEngine
from core.settings import InvoiceSettings
from domain.common.exceptions import DomainValidationException
from domain.order.entity import Order
from infrastructure.external.clients import InventoryClient, NotificationClient
from infrastructure.external.clients.exceptions import ExternalServiceError
from infrastructure.tasks.handlers.invoice import InvoiceHandler, render_invoice
from infrastructure.tasks.handlers.inventory import InventoryAdjustHandler
from infrastructure.tasks.handlers.notifications import NotificationHandler


@pytest.fixture
def store(uow_factory, clock):
    return IdempotencyStore(uow_factory, clock=clock)


@pytest.fixture
def engine(uow_factory, clock, store):
    return OrderEngine(
        uow_factory,
        idempotency=store,
        subscribers=[EffectDispatcher(JobQueue(uow_factory, clock=clock))],
        clock=clock,
    )


async def _paid_jobs(engine, pricing, state):
    order = await engine.create_order("buyer-1", "shop-1", [("sku-1", 2)], pricing)
    order = await engine.record_payment_intent(order.id, "pi_1", order.version)
    order = await engine.mark_paid(order.id, "pi_1", order.total, order.version)
    return order, {job.job_type: job for job in state.jobs.values()}


class Recorder:
    def __init__(self, status_code=200, body=None):
        self.requests = []
        self.status_code = status_code
        self.body = body or {"id": "ext-1"}

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code, json=self.body)


def _notification_client(recorder):
    return NotificationClient(
        base_url="http://notifications.test",
        sender="orders@example.com",
        retry={"max": 0, "base_backoff": 0.1},
        transport=httpx.MockTransport(recorder),
    )


@pytest.mark.asyncio
async def test_invoice_is_written_once_per_order_version(engine, pricing, state, uow_factory, store, tmp_path):
    order, jobs = await _paid_jobs(engine, pricing, state)
    handler = InvoiceHandler(uow_factory, store, InvoiceSettings(output_dir=str(tmp_path), issuer_name="Acme Market"))
    job = jobs[JobType.INVOICE_GENERATE]

    result = await handler(job)
    path = result["path"]
    assert path == os.path.join(str(tmp_path), f"invoice-{order.id}-v{order.version}.html")
    content = open(path, encoding="utf-8").read()
    assert "Acme Market" in content
    assert "113.00" in content

    os.remove(path)
    assert await handler(job) == {"path": path}
    # the stored result short-circuits the second run
    assert not os.path.exists(path)


def test_render_invoice_escapes_refs(pricing, clock):
    order, _ = Order.create(
        buyer_id="<script>",
        shop_id="shop-1",
        items=[("sku-1", 1)],
        pricing=pricing,
        now=clock(),
        pricing_max_age=timedelta(minutes=15),
    )
    rendered = render_invoice(order, issuer_name="Acme", version=order.version)
    assert "<script>" not in rendered
    assert "&lt;script&gt;" in rendered


@pytest.mark.asyncio
async def test_payment_confirmation_is_sent_with_idempotency_key(engine, pricing, state, store):
    order, jobs = await _paid_jobs(engine, pricing, state)
    recorder = Recorder(body={"id": "ntf-1"})
    handler = NotificationHandler(_notification_client(recorder), store)
    job = jobs[JobType.NOTIFY_PAYMENT_CONFIRMED]

    assert await handler(job) == {"notification_id": "ntf-1"}
    assert await handler(job) == {"notification_id": "ntf-1"}
    assert len(recorder.requests) == 1

    request = recorder.requests[0]
    assert request.url.path == "/v1/notifications"
    assert request.headers["Idempotency-Key"] == f"{JobType.NOTIFY_PAYMENT_CONFIRMED}:{order.id}:v{order.version}"
    body = json.loads(request.content)
    assert body["template"] == "payment_confirmed"
    assert body["recipient_ref"] == "buyer-1"
    assert body["context"]["order_id"] == order.id


@pytest.mark.asyncio
async def test_rejected_notification_releases_the_key(engine, pricing, state, store):
    _, jobs = await _paid_jobs(engine, pricing, state)
    recorder = Recorder(status_code=400, body={"error": "bad template"})
    handler = NotificationHandler(_notification_client(recorder), store)
    job = jobs[JobType.NOTIFY_PAYMENT_CONFIRMED]

    with pytest.raises(ExternalServiceError):
        await handler(job)
    recorder.status_code = 200
    recorder.body = {"id": "ntf-2"}
    assert await handler(job) == {"notification_id": "ntf-2"}


@pytest.mark.asyncio
async def test_notification_without_buyer_is_rejected(engine, pricing, state, store):
    _, jobs = await _paid_jobs(engine, pricing, state)
    job = jobs[JobType.NOTIFY_PAYMENT_CONFIRMED]
    job.payload.pop("buyer_id")
    handler = NotificationHandler(_notification_client(Recorder()), store)
    with pytest.raises(DomainValidationException):
        await handler(job)


@pytest.mark.asyncio
async def test_inventory_decrement_lists_order_lines(engine, pricing, state, uow_factory, store):
    order, jobs = await _paid_jobs(engine, pricing, state)
    recorder = Recorder(body={"id": "adj-1"})
    client = InventoryClient(
        base_url="http://inventory.test",
        retry={"max": 0, "base_backoff": 0.1},
        transport=httpx.MockTransport(recorder),
    )
    handler = InventoryAdjustHandler(uow_factory, client, store)

    assert await handler(jobs[JobType.INVENTORY_ADJUST]) == {"adjustment_id": "adj-1"}
    body = json.loads(recorder.requests[0].content)
    assert body["order_id"] == order.id
    assert body["shop_id"] == "shop-1"
    assert recorder.requests[0].headers["Idempotency-Key"] == f"inventory:{order.id}:v{order.version}"
