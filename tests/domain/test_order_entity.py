from datetime import timedelta
from decimal import Decimal

import pytest

from domain.common.exceptions import (
    AmountMismatchError,
    ConcurrentModificationError,
    InvalidItemsError,
    InvalidTransitionError,
    RefundExceedsPaidError,
)
from domain.order.entity import Order, OrderStatus, PricingSnapshot


MAX_AGE = timedelta(minutes=15)


def _order(pricing, clock, items=(("sku-1", 2),)):
    return Order.create(
        buyer_id="buyer-1",
        shop_id="shop-1",
        items=list(items),
        pricing=pricing,
        now=clock(),
        pricing_max_age=MAX_AGE,
    )


def _paid(pricing, clock):
    order, _ = _order(pricing, clock)
    order.record_payment_intent("pi_1", clock())
    order.mark_paid("pi_1", Decimal("113.00"), clock())
    return order


def test_create_computes_total_from_snapshot(pricing, clock):
    order, event = _order(pricing, clock)
    assert order.status == OrderStatus.PENDING
    assert order.version == 1
    assert order.subtotal == Decimal("100.00")
    assert order.total == Decimal("113.00")
    assert event.event_type == "OrderCreated"
    assert event.total == "113.00"
    assert order.transitions["pending"] == clock()


@pytest.mark.parametrize("items", [(), (("sku-1", 0),), (("sku-unknown", 1),)])
def test_create_rejects_bad_items(pricing, clock, items):
    with pytest.raises(InvalidItemsError):
        _order(pricing, clock, items=items)


def test_create_rejects_stale_pricing(clock):
    stale = PricingSnapshot(
        currency="USD",
        unit_prices={"sku-1": Decimal("10")},
        captured_at=clock() - timedelta(hours=1),
    )
    with pytest.raises(InvalidItemsError):
        _order(stale, clock, items=[("sku-1", 1)])


def test_mark_paid_requires_exact_total(pricing, clock):
    order, _ = _order(pricing, clock)
    order.record_payment_intent("pi_1", clock())
    with pytest.raises(AmountMismatchError):
        order.mark_paid("pi_1", Decimal("100"), clock())
    assert order.status == OrderStatus.AWAITING_PAYMENT
    assert order.version == 2

    event = order.mark_paid("pi_1", Decimal("113"), clock())
    assert order.status == OrderStatus.PAID
    assert order.version == 3
    assert event.amount == "113.00"


def test_cannot_skip_payment(pricing, clock):
    order, _ = _order(pricing, clock)
    with pytest.raises(InvalidTransitionError):
        order.ship(clock())
    with pytest.raises(InvalidTransitionError):
        order.mark_paid("pi_1", Decimal("113"), clock())


def test_cancel_after_payment_is_policy_gated(pricing, clock):
    order = _paid(pricing, clock)
    with pytest.raises(InvalidTransitionError):
        order.cancel("changed mind", clock())
    order.cancel("changed mind", clock(), allow_after_payment=True)
    assert order.status == OrderStatus.CANCELLED
    assert order.is_terminal


def test_partial_then_full_refund(pricing, clock):
    order = _paid(pricing, clock)
    first = order.refund(Decimal("13.00"), clock())
    assert not first.full
    assert order.status == OrderStatus.PAID
    assert order.version == 4

    with pytest.raises(RefundExceedsPaidError):
        order.refund(Decimal("100.01"), clock())

    second = order.refund(Decimal("100.00"), clock())
    assert second.full
    assert order.status == OrderStatus.REFUNDED
    assert order.refunded_amount == Decimal("113.00")
    assert len(order.refunds) == 2


def test_refund_needs_payment(pricing, clock):
    order, _ = _order(pricing, clock)
    with pytest.raises(InvalidTransitionError):
        order.refund(Decimal("1"), clock())


def test_ensure_version(pricing, clock):
    order, _ = _order(pricing, clock)
    order.ensure_version(1)
    with pytest.raises(ConcurrentModificationError) as exc:
        order.ensure_version(2)
    assert exc.value.retryable
