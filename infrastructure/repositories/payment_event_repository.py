"""
Payment event repository - SQLAlchemy implementation
"""
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.logging_config import get_logger
from domain.payment.entity import PaymentEvent, PaymentEventOutcome
from domain.payment.repository import PaymentEventRepository
from infrastructure.models.payment import PaymentEventModel


logger = get_logger(__name__)


class SQLAlchemyPaymentEventRepository(PaymentEventRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: PaymentEventModel) -> PaymentEvent:
        return PaymentEvent(
            id=model.id,
            provider=model.provider,
            event_id=model.event_id,
            event_type=model.event_type,
            payload=model.payload or {},
            order_id=model.order_id,
            received_at=model.received_at,
            outcome=PaymentEventOutcome(model.outcome),
            error=model.error,
            processed_at=model.processed_at,
            attempts=model.attempts,
            result=model.result or {},
        )

    def _to_model(self, entity: PaymentEvent) -> PaymentEventModel:
        return PaymentEventModel(
            id=entity.id,
            provider=entity.provider,
            event_id=entity.event_id,
            event_type=entity.event_type,
            payload=entity.payload,
            order_id=entity.order_id,
            received_at=entity.received_at,
            outcome=entity.outcome.value,
            error=entity.error,
            processed_at=entity.processed_at,
            attempts=entity.attempts,
            result=entity.result,
        )

    async def _get_model(self, provider: str, event_id: str) -> Optional[PaymentEventModel]:
        result = await self.session.execute(
            select(PaymentEventModel).where(
                PaymentEventModel.provider == provider,
                PaymentEventModel.event_id == event_id,
            )
        )
        return result.scalar_one_or_none()

    async def add(self, event: PaymentEvent) -> PaymentEvent:
        db_event = self._to_model(event)
        self.session.add(db_event)
        await self.session.flush()
        logger.info(
            "payment_event_recorded",
            provider=event.provider,
            event_id=event.event_id,
            event_type=event.event_type,
            order_id=event.order_id,
        )
        return self._to_entity(db_event)

    async def get(self, provider: str, event_id: str) -> Optional[PaymentEvent]:
        db_event = await self._get_model(provider, event_id)
        return self._to_entity(db_event) if db_event else None

    async def update(self, event: PaymentEvent) -> PaymentEvent:
        db_event = await self._get_model(event.provider, event.event_id)
        if not db_event:
            raise ValueError(f"Payment event {event.provider}/{event.event_id} not found")

        db_event.order_id = event.order_id
        db_event.outcome = event.outcome.value
        db_event.error = event.error
        db_event.result = event.result
        db_event.attempts = event.attempts
        db_event.processed_at = event.processed_at

        await self.session.flush()
        return self._to_entity(db_event)

