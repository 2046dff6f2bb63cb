"""
Idempotency repository - SQLAlchemy implementation

Every write is a single conditional statement so concurrent callers on
separate sessions agree on exactly one winner.
"""
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import and_, delete, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from domain.idempotency.entity import IdempotencyRecord, IdempotencyStatus
from domain.idempotency.repository import IdempotencyRepository
from infrastructure.models.idempotency import IdempotencyRecordModel
from .sql import insert_if_absent


class SQLAlchemyIdempotencyRepository(IdempotencyRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: IdempotencyRecordModel) -> IdempotencyRecord:
        return IdempotencyRecord(
            key=model.key,
            status=IdempotencyStatus(model.status),
            created_at=model.created_at,
            lease_expires_at=model.lease_expires_at,
            expires_at=model.expires_at,
            result=model.result,
            completed_at=model.completed_at,
            owner=model.owner,
        )

    async def get(self, key: str) -> Optional[IdempotencyRecord]:
        result = await self.session.execute(
            select(IdempotencyRecordModel)
            .where(IdempotencyRecordModel.key == key)
            .execution_options(populate_existing=True)
        )
        model = result.scalar_one_or_none()
        return self._to_entity(model) if model else None

    async def try_insert(self, record: IdempotencyRecord) -> bool:
        inserted = await insert_if_absent(
            self.session,
            IdempotencyRecordModel,
            {
                "key": record.key,
                "status": record.status.value,
                "result": record.result,
                "owner": record.owner,
                "created_at": record.created_at,
                "lease_expires_at": record.lease_expires_at,
                "completed_at": record.completed_at,
                "expires_at": record.expires_at,
            },
            conflict_on=["key"],
            returning=IdempotencyRecordModel.key,
        )
        return inserted is not None

    async def try_take_over(
        self,
        key: str,
        *,
        now: datetime,
        lease_expires_at: datetime,
        expires_at: datetime,
        owner: Optional[str] = None,
    ) -> bool:
        result = await self.session.execute(
            update(IdempotencyRecordModel)
            .where(
                IdempotencyRecordModel.key == key,
                or_(
                    IdempotencyRecordModel.expires_at <= now,
                    and_(
                        IdempotencyRecordModel.status == IdempotencyStatus.RESERVED.value,
                        IdempotencyRecordModel.lease_expires_at <= now,
                    ),
                ),
            )
            .values(
                status=IdempotencyStatus.RESERVED.value,
                result=None,
                owner=owner,
                created_at=now,
                lease_expires_at=lease_expires_at,
                completed_at=None,
                expires_at=expires_at,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def mark_completed(self, key: str, result: dict[str, Any], now: datetime) -> bool:
        res = await self.session.execute(
            update(IdempotencyRecordModel)
            .where(IdempotencyRecordModel.key == key)
            .values(
                status=IdempotencyStatus.COMPLETED.value,
                result=result,
                completed_at=now,
                lease_expires_at=None,
            )
            .execution_options(synchronize_session=False)
        )
        return res.rowcount == 1

    async def delete(self, key: str) -> bool:
        # completed results are never released, only purged on expiry
        res = await self.session.execute(
            delete(IdempotencyRecordModel)
            .where(
                IdempotencyRecordModel.key == key,
                IdempotencyRecordModel.status == IdempotencyStatus.RESERVED.value,
            )
            .execution_options(synchronize_session=False)
        )
        return res.rowcount == 1

    async def purge_expired(self, now: datetime) -> int:
        res = await self.session.execute(
            delete(IdempotencyRecordModel)
            .where(IdempotencyRecordModel.expires_at <= now)
            .execution_options(synchronize_session=False)
        )
        return res.rowcount or 0
