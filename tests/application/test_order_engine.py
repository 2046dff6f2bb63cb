import asyncio
from decimal import Decimal

import pytest

from application.services.effect_dispatcher import EffectDispatcher, JobType
from application.services.idempotency import IdempotencyStore
from application.services.job_queue import JobQueue
from application.services.order_engine import OrderEngine, mark_paid_key
from domain.common.exceptions import (
    AmountMismatchError,
    ConcurrentModificationError,
    DispatchUnavailableError,
    InvalidTransitionError,
    OrderNotFoundError,
    RefundExceedsPaidError,
)
from domain.jobs.entity import JobStatus
from domain.order.entity import OrderStatus


class BrokenQueue(JobQueue):
    async def enqueue(self, *args, **kwargs):
        raise RuntimeError("jobs table unavailable")


def _engine(uow_factory, clock, *, queue=None, **kwargs):
    store = IdempotencyStore(uow_factory, clock=clock)
    queue = queue or JobQueue(uow_factory, clock=clock)
    return OrderEngine(
        uow_factory,
        idempotency=store,
        subscribers=[EffectDispatcher(queue)],
        clock=clock,
        **kwargs,
    )


@pytest.fixture
def engine(uow_factory, clock):
    return _engine(uow_factory, clock)


async def _awaiting(engine, pricing):
    order = await engine.create_order("buyer-1", "shop-1", [("sku-1", 2)], pricing)
    return await engine.record_payment_intent(order.id, "pi_1", order.version)


async def _paid(engine, pricing):
    order = await _awaiting(engine, pricing)
    return await engine.mark_paid(order.id, "pi_1", Decimal("113.00"), order.version)


@pytest.mark.asyncio
async def test_create_order_logs_event(engine, pricing, state):
    order = await engine.create_order("buyer-1", "shop-1", [("sku-1", 2)], pricing)
    assert order.total == Decimal("113.00")
    stored = await engine.get_order(order.id)
    assert stored.status == OrderStatus.PENDING
    events = await engine.list_events()
    assert [e.event_type for e in events] == ["OrderCreated"]
    # creation has no side effects to run
    assert state.jobs == {}


@pytest.mark.asyncio
async def test_amount_mismatch_leaves_order_untouched(engine, pricing):
    order = await _awaiting(engine, pricing)
    with pytest.raises(AmountMismatchError):
        await engine.mark_paid(order.id, "pi_1", Decimal("100.00"), order.version)

    current = await engine.get_order(order.id)
    assert current.status == OrderStatus.AWAITING_PAYMENT
    assert current.version == 2
    assert "OrderPaid" not in [e.event_type for e in await engine.list_order_events(order.id)]


@pytest.mark.asyncio
async def test_correct_amount_settles_after_a_mismatch(engine, pricing, state):
    order = await _awaiting(engine, pricing)
    with pytest.raises(AmountMismatchError):
        await engine.mark_paid(order.id, "pi_1", Decimal("100.00"), order.version)
    # the failed attempt leaves no reservation behind
    assert mark_paid_key("pi_1") not in state.idempotency

    paid = await engine.mark_paid(order.id, "pi_1", Decimal("113.00"), order.version)
    assert paid.status == OrderStatus.PAID
    assert paid.version == 3
    assert state.idempotency[mark_paid_key("pi_1")].result["status"] == "paid"


@pytest.mark.asyncio
async def test_mark_paid_enqueues_effects_once(engine, pricing, state):
    order = await _paid(engine, pricing)
    assert order.status == OrderStatus.PAID
    assert order.version == 3

    job_types = sorted(j.job_type for j in state.jobs.values())
    assert job_types == sorted(
        [JobType.INVOICE_GENERATE, JobType.NOTIFY_PAYMENT_CONFIRMED, JobType.INVENTORY_ADJUST]
    )
    invoice = next(j for j in state.jobs.values() if j.job_type == JobType.INVOICE_GENERATE)
    assert invoice.dedupe_key == f"invoice.generate:{order.id}:v3"
    assert invoice.payload["buyer_id"] == "buyer-1"
    assert invoice.status == JobStatus.QUEUED


@pytest.mark.asyncio
async def test_mark_paid_replay_returns_current_state(engine, pricing, state):
    order = await _paid(engine, pricing)
    # same provider payment id, stale version: no second transition
    replay = await engine.mark_paid(order.id, "pi_1", Decimal("113.00"), 2)
    assert replay.version == 3
    assert replay.status == OrderStatus.PAID
    events = [e.event_type for e in await engine.list_order_events(order.id)]
    assert events.count("OrderPaid") == 1
    assert len(state.jobs) == 3


@pytest.mark.asyncio
async def test_stale_version_is_rejected(engine, pricing):
    order = await _paid(engine, pricing)
    with pytest.raises(ConcurrentModificationError):
        await engine.ship_order(order.id, 2)
    shipped = await engine.ship_order(order.id, 3, tracking_ref="TRACK-1")
    assert shipped.status == OrderStatus.SHIPPED
    assert shipped.tracking_ref == "TRACK-1"


@pytest.mark.asyncio
async def test_concurrent_cancel_has_one_winner(engine, pricing):
    order = await engine.create_order("buyer-1", "shop-1", [("sku-1", 2)], pricing)
    results = await asyncio.gather(
        engine.cancel_order(order.id, "first", order.version),
        engine.cancel_order(order.id, "second", order.version),
        return_exceptions=True,
    )
    winners = [r for r in results if not isinstance(r, Exception)]
    losers = [r for r in results if isinstance(r, Exception)]
    assert len(winners) == 1
    assert len(losers) == 1
    assert isinstance(losers[0], ConcurrentModificationError)

    events = [e.event_type for e in await engine.list_order_events(order.id)]
    assert events == ["OrderCreated", "OrderCancelled"]


@pytest.mark.asyncio
async def test_cancel_after_payment_follows_policy(uow_factory, clock, pricing):
    strict = _engine(uow_factory, clock)
    order = await _paid(strict, pricing)
    with pytest.raises(InvalidTransitionError):
        await strict.cancel_order(order.id, "too late", order.version)

    lenient = _engine(uow_factory, clock, allow_cancel_after_payment=True)
    cancelled = await lenient.cancel_order(order.id, "too late", order.version)
    assert cancelled.status == OrderStatus.CANCELLED


@pytest.mark.asyncio
async def test_partial_and_full_refunds(engine, pricing):
    order = await _paid(engine, pricing)
    order = await engine.refund(order.id, Decimal("13.00"), order.version)
    assert order.status == OrderStatus.PAID
    assert order.refunded_amount == Decimal("13.00")

    with pytest.raises(RefundExceedsPaidError):
        await engine.refund(order.id, Decimal("150.00"), order.version)

    order = await engine.refund(order.id, Decimal("100.00"), order.version)
    assert order.status == OrderStatus.REFUNDED
    assert len(order.refunds) == 2


@pytest.mark.asyncio
async def test_refund_with_idempotency_key_applies_once(engine, pricing):
    order = await _paid(engine, pricing)
    first = await engine.refund(order.id, Decimal("10.00"), order.version, idempotency_key="re_1")
    again = await engine.refund(order.id, Decimal("10.00"), order.version, idempotency_key="re_1")
    assert again.version == first.version
    assert len(again.refunds) == 1
    assert again.refunded_amount == Decimal("10.00")


@pytest.mark.asyncio
async def test_dispatch_failure_rolls_back_the_transition(uow_factory, clock, pricing, state):
    engine = _engine(uow_factory, clock)
    order = await _awaiting(engine, pricing)

    broken = _engine(uow_factory, clock, queue=BrokenQueue(uow_factory, clock=clock))
    with pytest.raises(DispatchUnavailableError) as exc:
        await broken.mark_paid(order.id, "pi_1", Decimal("113.00"), order.version)
    assert exc.value.retryable

    current = await engine.get_order(order.id)
    assert current.status == OrderStatus.AWAITING_PAYMENT
    assert current.version == 2
    assert mark_paid_key("pi_1") not in state.idempotency
    assert state.jobs == {}

    # the retry goes through once dispatch works again
    paid = await engine.mark_paid(order.id, "pi_1", Decimal("113.00"), 2)
    assert paid.status == OrderStatus.PAID


@pytest.mark.asyncio
async def test_event_stream_is_ordered_and_pages(engine, pricing):
    await _paid(engine, pricing)
    page = await engine.list_events(after_seq=0, limit=2)
    assert [e.event_type for e in page] == ["OrderCreated", "OrderPaymentPending"]
    rest = await engine.list_events(after_seq=page[-1].seq)
    assert [e.event_type for e in rest] == ["OrderPaid"]


@pytest.mark.asyncio
async def test_unknown_order(engine):
    with pytest.raises(OrderNotFoundError):
        await engine.get_order("missing")
