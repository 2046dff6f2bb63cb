"""
Provider event-type -> order command mapping and provider amount helpers.
"""
from __future__ import annotations

from decimal import Decimal


class OrderCommand:
    RECORD_PAYMENT_INTENT = "record_payment_intent"
    MARK_PAID = "mark_paid"
    CANCEL = "cancel_order"
    REFUND = "refund"


# Provider event type -> Order Engine command. Unlisted types are acknowledged
# and recorded as ignored.
PROVIDER_EVENT_TO_COMMAND: dict[str, str] = {
    "payment_intent.created": OrderCommand.RECORD_PAYMENT_INTENT,
    "payment_intent.requires_action": OrderCommand.RECORD_PAYMENT_INTENT,
    "payment_intent.succeeded": OrderCommand.MARK_PAID,
    "charge.succeeded": OrderCommand.MARK_PAID,
    "payment_intent.canceled": OrderCommand.CANCEL,
    "charge.refunded": OrderCommand.REFUND,
    "refund.succeeded": OrderCommand.REFUND,
}


def command_for_event(event_type: str) -> str | None:
    return PROVIDER_EVENT_TO_COMMAND.get((event_type or "").lower())


# Providers send amounts in minor units; these currencies have none.
ZERO_DECIMAL_CURRENCIES = frozenset({"JPY", "KRW", "VND", "CLP", "ISK", "UGX", "XAF", "XOF"})


def from_minor_units(amount: int | str, currency: str | None) -> Decimal:
    value = Decimal(str(amount))
    if (currency or "").upper() in ZERO_DECIMAL_CURRENCIES:
        return value
    return value / 100
