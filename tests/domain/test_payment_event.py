from datetime import datetime, timezone

import pytest

from domain.common.exceptions import DomainValidationException
from domain.payment.entity import PaymentEvent, PaymentEventOutcome


NOW = datetime(2026, 3, 1, tzinfo=timezone.utc)


def _event():
    return PaymentEvent(
        id=1,
        provider="acme",
        event_id="evt_1",
        event_type="payment_intent.succeeded",
        payload={},
        order_id="o1",
        received_at=NOW,
        attempts=1,
    )


def test_failed_event_is_retried_on_redelivery():
    event = _event()
    event.mark_failed("order busy", NOW)
    event.register_attempt()
    assert event.outcome == PaymentEventOutcome.RECEIVED
    assert event.attempts == 2


@pytest.mark.parametrize("settle", ["applied", "ignored"])
def test_settled_event_is_final(settle):
    event = _event()
    if settle == "applied":
        event.mark_applied({"outcome": "applied", "version": 3}, NOW)
    else:
        event.mark_ignored(NOW)

    assert event.is_settled
    with pytest.raises(DomainValidationException):
        event.register_attempt()
    assert event.attempts == 1
    assert event.settled_result()["outcome"] == settle
