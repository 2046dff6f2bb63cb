"""
Idempotency record entity
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from domain.common.clock import ensure_utc


class IdempotencyStatus(str, Enum):
    RESERVED = "reserved"     # a caller is doing the work; result not visible yet
    COMPLETED = "completed"   # result snapshot stored; replays return it


@dataclass
class IdempotencyRecord:
    """
    Business rules:
    1. a key is written at most once (first writer wins)
    2. a reservation whose lease has expired may be taken over
    3. records past `expires_at` are treated as absent
    """

    key: str
    status: IdempotencyStatus
    created_at: datetime
    lease_expires_at: Optional[datetime]
    expires_at: datetime
    result: Optional[dict[str, Any]] = None
    completed_at: Optional[datetime] = None
    owner: Optional[str] = None

    def __post_init__(self):
        self.created_at = ensure_utc(self.created_at)
        self.lease_expires_at = ensure_utc(self.lease_expires_at)
        self.expires_at = ensure_utc(self.expires_at)
        self.completed_at = ensure_utc(self.completed_at)

    @property
    def is_completed(self) -> bool:
        return self.status == IdempotencyStatus.COMPLETED

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at

    def lease_expired(self, now: datetime) -> bool:
        return (
            self.status == IdempotencyStatus.RESERVED
            and self.lease_expires_at is not None
            and now >= self.lease_expires_at
        )


@dataclass(frozen=True)
class BeginResult:
    """Outcome of `begin_or_fetch`.

    is_new: the caller owns the key and must `complete` (or `release`) it.
    stored_result: the completed result snapshot, when the work was already done.
    in_progress: another caller holds a live reservation.
    """

    is_new: bool
    stored_result: Optional[dict[str, Any]] = None
    in_progress: bool = False
    record: Optional[IdempotencyRecord] = field(default=None, compare=False)
