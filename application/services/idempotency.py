"""
Idempotency store.

Keys are reserved first-writer-wins. The reservation carries a lease so a
caller that dies mid-flight does not block the key forever; a completed key
keeps its result snapshot until retention expires.
"""
from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import Any, Callable, Optional

from core.logging_config import get_logger
from domain.common.clock import utcnow
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.idempotency.entity import BeginResult, IdempotencyRecord, IdempotencyStatus


logger = get_logger(__name__)


class IdempotencyStore:
    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        *,
        lease_seconds: int = 60,
        retention_hours: int = 72,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._uow_factory = uow_factory
        self._lease = timedelta(seconds=lease_seconds)
        self._retention = timedelta(hours=retention_hours)
        self._clock = clock

    @classmethod
    def from_settings(cls, uow_factory, idempotency_settings, **kwargs) -> "IdempotencyStore":
        return cls(
            uow_factory,
            lease_seconds=idempotency_settings.lease_seconds,
            retention_hours=idempotency_settings.retention_hours,
            **kwargs,
        )

    @asynccontextmanager
    async def _scope(self, uow: Optional[AbstractUnitOfWork]):
        """Join the caller's unit of work, or run in a fresh one."""
        if uow is not None:
            yield uow
            return
        async with self._uow_factory() as own:
            yield own

    async def begin_or_fetch(
        self, key: str, uow: Optional[AbstractUnitOfWork] = None, *, owner: Optional[str] = None
    ) -> BeginResult:
        """
        Reserve `key` or report what already happened under it.

        - is_new=True: the caller owns the key and must `complete` or `release` it
        - stored_result set: the work already completed; reuse the snapshot
        - in_progress=True: another caller holds a live reservation
        """
        now = self._clock()
        lease_expires_at = now + self._lease
        expires_at = now + self._retention
        record = IdempotencyRecord(
            key=key,
            status=IdempotencyStatus.RESERVED,
            created_at=now,
            lease_expires_at=lease_expires_at,
            expires_at=expires_at,
            owner=owner,
        )

        async with self._scope(uow) as scope:
            repo = scope.idempotency_repository
            if await repo.try_insert(record):
                logger.debug("idempotency_reserved", key=key)
                return BeginResult(is_new=True, record=record)

            existing = await repo.get(key)
            if existing is None:
                # purged between the insert and the read
                if await repo.try_insert(record):
                    return BeginResult(is_new=True, record=record)
                existing = await repo.get(key)
                if existing is None:
                    return BeginResult(is_new=False, in_progress=True)

            if existing.is_expired(now) or existing.lease_expired(now):
                taken = await repo.try_take_over(
                    key, now=now, lease_expires_at=lease_expires_at, expires_at=expires_at, owner=owner
                )
                if taken:
                    logger.info(
                        "idempotency_reservation_taken_over",
                        key=key,
                        previous_status=existing.status.value,
                        previous_owner=existing.owner,
                    )
                    return BeginResult(is_new=True, record=record)
                existing = await repo.get(key) or existing

            if existing.is_completed:
                return BeginResult(is_new=False, stored_result=existing.result or {}, record=existing)
            return BeginResult(is_new=False, in_progress=True, record=existing)

    async def complete(
        self, key: str, result: dict[str, Any], uow: Optional[AbstractUnitOfWork] = None
    ) -> None:
        now = self._clock()
        async with self._scope(uow) as scope:
            repo = scope.idempotency_repository
            if await repo.mark_completed(key, result, now):
                return
            # reservation purged while the work ran; store the result anyway
            await repo.try_insert(
                IdempotencyRecord(
                    key=key,
                    status=IdempotencyStatus.COMPLETED,
                    created_at=now,
                    lease_expires_at=None,
                    expires_at=now + self._retention,
                    result=result,
                    completed_at=now,
                )
            )
            logger.warning("idempotency_complete_without_reservation", key=key)

    async def release(self, key: str, uow: Optional[AbstractUnitOfWork] = None) -> None:
        async with self._scope(uow) as scope:
            released = await scope.idempotency_repository.delete(key)
        logger.debug("idempotency_released", key=key, released=released)

    async def purge_expired(self, now: Optional[datetime] = None) -> int:
        now = now or self._clock()
        async with self._uow_factory() as uow:
            removed = await uow.idempotency_repository.purge_expired(now)
        logger.info("idempotency_purged", removed=removed)
        return removed
