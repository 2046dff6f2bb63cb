"""
Payment event entity - an inbound provider webhook delivery, kept for audit
and replay safety.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from domain.common.clock import ensure_utc
from domain.common.exceptions import DomainValidationException


class PaymentEventOutcome(str, Enum):
    """Processing outcome of a webhook delivery"""
    RECEIVED = "received"     # recorded, command not finished yet
    APPLIED = "applied"       # mapped command succeeded (or was already applied)
    FAILED = "failed"         # command failed; provider will redeliver
    IGNORED = "ignored"       # event type has no order command


@dataclass
class PaymentEvent:
    """
    Business rules:
    1. (provider, event_id) is unique; the provider event id is the dedup key
    2. the raw payload never changes after receipt
    3. only the outcome fields move: RECEIVED goes to APPLIED, IGNORED or FAILED
    4. APPLIED and IGNORED are final; a redelivered FAILED event goes back to RECEIVED
    """

    id: Optional[int]
    provider: str
    event_id: str
    event_type: str
    payload: dict[str, Any]
    order_id: Optional[str]
    received_at: datetime
    outcome: PaymentEventOutcome = PaymentEventOutcome.RECEIVED
    error: Optional[str] = None
    processed_at: Optional[datetime] = None
    attempts: int = 0
    result: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        self.received_at = ensure_utc(self.received_at)
        self.processed_at = ensure_utc(self.processed_at)
        if self.result is None:
            self.result = {}

    def mark_applied(self, result: dict[str, Any], now: datetime) -> None:
        self.outcome = PaymentEventOutcome.APPLIED
        self.result = result
        self.error = None
        self.processed_at = now

    @property
    def is_settled(self) -> bool:
        return self.outcome in (PaymentEventOutcome.APPLIED, PaymentEventOutcome.IGNORED)

    def settled_result(self) -> dict[str, Any]:
        """What a duplicate delivery is answered with."""
        return self.result or {"outcome": self.outcome.value}

    def mark_ignored(self, now: datetime) -> None:
        self.outcome = PaymentEventOutcome.IGNORED
        self.error = None
        self.processed_at = now

    def mark_failed(self, error: str, now: datetime) -> None:
        self.outcome = PaymentEventOutcome.FAILED
        self.error = error
        self.processed_at = now

    def register_attempt(self) -> None:
        """A redelivery of a previously failed event starts another attempt."""
        if self.is_settled:
            raise DomainValidationException(
                f"payment event {self.event_id} is already {self.outcome.value}", field="outcome"
            )
        self.attempts += 1
        self.outcome = PaymentEventOutcome.RECEIVED
