from datetime import datetime, timezone

import pytest

from application.services.effect_dispatcher import EffectDispatcher, JobType, dedupe_key_for
from application.services.job_queue import JobQueue
from domain.order.events import OrderCompleted, OrderPaid, OrderShipped


NOW = datetime(2026, 3, 1, tzinfo=timezone.utc)


def _paid_event():
    return OrderPaid(
        order_id="o1",
        version=3,
        occurred_at=NOW,
        buyer_id="b1",
        provider_payment_id="pi_1",
        amount="113.00",
        currency="USD",
    )


@pytest.mark.asyncio
async def test_replayed_event_enqueues_nothing_new(uow_factory, clock, state):
    dispatcher = EffectDispatcher(JobQueue(uow_factory, clock=clock))
    event = _paid_event()
    for _ in range(2):
        async with uow_factory() as uow:
            await dispatcher.handle(event, uow)
    assert len(state.jobs) == 3
    keys = {j.dedupe_key for j in state.jobs.values()}
    assert dedupe_key_for(JobType.INVOICE_GENERATE, event) in keys


@pytest.mark.asyncio
async def test_events_without_effects_are_skipped(uow_factory, clock, state):
    dispatcher = EffectDispatcher(JobQueue(uow_factory, clock=clock))
    async with uow_factory() as uow:
        await dispatcher.handle(OrderCompleted(order_id="o1", version=5, occurred_at=NOW), uow)
    assert state.jobs == {}


@pytest.mark.asyncio
async def test_payload_carries_event_fields(uow_factory, clock, state):
    dispatcher = EffectDispatcher(JobQueue(uow_factory, clock=clock))
    event = OrderShipped(order_id="o1", version=4, occurred_at=NOW, buyer_id="b1", tracking_ref="T-1")
    async with uow_factory() as uow:
        await dispatcher.handle(event, uow)
    (job,) = state.jobs.values()
    assert job.job_type == JobType.NOTIFY_ORDER_SHIPPED
    assert job.payload["tracking_ref"] == "T-1"
    assert job.payload["version"] == 4
    assert job.payload["event_id"] == event.event_id


@pytest.mark.asyncio
async def test_wakeup_after_commit_is_best_effort(uow_factory, clock):
    calls = []

    async def wakeup():
        calls.append(1)
        raise ConnectionError("broker down")

    dispatcher = EffectDispatcher(JobQueue(uow_factory, clock=clock), wakeup=wakeup)
    await dispatcher.after_commit([_paid_event()])
    assert calls == [1]

    await dispatcher.after_commit([OrderCompleted(order_id="o1", version=5, occurred_at=NOW)])
    assert calls == [1]
