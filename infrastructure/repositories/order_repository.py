"""
Order repository - SQLAlchemy implementation
"""
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from core.logging_config import get_logger
from domain.common.clock import ensure_utc
from domain.common.exceptions import ConcurrentModificationError, OrderNotFoundError
from domain.order.entity import LineItem, Order, OrderStatus, RefundRecord, money
from domain.order.events import OrderEvent
from domain.order.repository import OrderRepository, StoredOrderEvent
from infrastructure.models.order import (
    OrderEventModel,
    OrderItemModel,
    OrderModel,
    OrderRefundModel,
)


logger = get_logger(__name__)


def _dec(value) -> Decimal:
    return money(value if value is not None else 0)


class SQLAlchemyOrderRepository(OrderRepository):
    """Order aggregate persistence with optimistic concurrency on `version`"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: OrderModel) -> Order:
        return Order(
            id=model.id,
            buyer_id=model.buyer_id,
            shop_id=model.shop_id,
            items=[
                LineItem(product_ref=i.product_ref, quantity=i.quantity, unit_price=_dec(i.unit_price))
                for i in model.items
            ],
            subtotal=_dec(model.subtotal),
            tax=_dec(model.tax),
            shipping=_dec(model.shipping),
            total=_dec(model.total),
            currency=model.currency,
            status=OrderStatus(model.status),
            version=model.version,
            payment_intent_ref=model.payment_intent_ref,
            payment_ref=model.payment_ref,
            refunded_amount=_dec(model.refunded_amount),
            refunds=[
                RefundRecord(
                    refund_id=r.refund_id,
                    amount=_dec(r.amount),
                    created_at=ensure_utc(r.created_at),
                    reason=r.reason,
                    idempotency_key=r.idempotency_key,
                )
                for r in model.refunds
            ],
            cancel_reason=model.cancel_reason,
            tracking_ref=model.tracking_ref,
            transitions={k: datetime.fromisoformat(v) for k, v in (model.transitions or {}).items()},
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    def _to_model(self, entity: Order) -> OrderModel:
        return OrderModel(
            id=entity.id,
            buyer_id=entity.buyer_id,
            shop_id=entity.shop_id,
            subtotal=entity.subtotal,
            tax=entity.tax,
            shipping=entity.shipping,
            total=entity.total,
            currency=entity.currency,
            status=entity.status.value,
            version=entity.version,
            payment_intent_ref=entity.payment_intent_ref,
            payment_ref=entity.payment_ref,
            refunded_amount=entity.refunded_amount,
            cancel_reason=entity.cancel_reason,
            tracking_ref=entity.tracking_ref,
            transitions=self._transitions(entity),
            created_at=entity.created_at,
            updated_at=entity.updated_at,
            items=[
                OrderItemModel(
                    position=pos,
                    product_ref=item.product_ref,
                    quantity=item.quantity,
                    unit_price=item.unit_price,
                )
                for pos, item in enumerate(entity.items)
            ],
            refunds=[self._refund_model(entity.id, r) for r in entity.refunds],
        )

    @staticmethod
    def _transitions(entity: Order) -> dict[str, str]:
        return {k: v.isoformat() for k, v in entity.transitions.items()}

    @staticmethod
    def _refund_model(order_id: str, record: RefundRecord) -> OrderRefundModel:
        return OrderRefundModel(
            refund_id=record.refund_id,
            order_id=order_id,
            amount=record.amount,
            reason=record.reason,
            idempotency_key=record.idempotency_key,
            created_at=record.created_at,
        )

    async def add(self, order: Order) -> Order:
        db_order = self._to_model(order)
        self.session.add(db_order)
        await self.session.flush()
        logger.info("order_created", order_id=order.id, total=str(order.total), currency=order.currency)
        return order

    async def get(self, order_id: str) -> Optional[Order]:
        result = await self.session.execute(
            select(OrderModel)
            .where(OrderModel.id == order_id)
            .execution_options(populate_existing=True)
        )
        db_order = result.scalar_one_or_none()
        return self._to_entity(db_order) if db_order else None

    async def save(self, order: Order, expected_version: int) -> Order:
        result = await self.session.execute(
            update(OrderModel)
            .where(OrderModel.id == order.id, OrderModel.version == expected_version)
            .values(
                status=order.status.value,
                version=order.version,
                payment_intent_ref=order.payment_intent_ref,
                payment_ref=order.payment_ref,
                refunded_amount=order.refunded_amount,
                cancel_reason=order.cancel_reason,
                tracking_ref=order.tracking_ref,
                transitions=self._transitions(order),
                updated_at=order.updated_at,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            actual = await self.session.scalar(select(OrderModel.version).where(OrderModel.id == order.id))
            if actual is None:
                raise OrderNotFoundError(order.id)
            logger.warning(
                "order_version_conflict",
                order_id=order.id,
                expected_version=expected_version,
                actual_version=actual,
            )
            raise ConcurrentModificationError(order.id, expected_version, actual)

        known = set(
            (await self.session.scalars(
                select(OrderRefundModel.refund_id).where(OrderRefundModel.order_id == order.id)
            )).all()
        )
        for record in order.refunds:
            if record.refund_id not in known:
                self.session.add(self._refund_model(order.id, record))
        await self.session.flush()

        logger.info("order_saved", order_id=order.id, status=order.status.value, version=order.version)
        return order

    async def append_events(self, events: List[OrderEvent]) -> None:
        for event in events:
            self.session.add(
                OrderEventModel(
                    event_id=event.event_id,
                    order_id=event.order_id,
                    event_type=event.event_type,
                    version=event.version,
                    occurred_at=event.occurred_at,
                    payload=event.payload(),
                )
            )
        await self.session.flush()

    @staticmethod
    def _to_stored(model: OrderEventModel) -> StoredOrderEvent:
        return StoredOrderEvent(
            seq=model.seq,
            event_id=model.event_id,
            order_id=model.order_id,
            event_type=model.event_type,
            version=model.version,
            occurred_at=ensure_utc(model.occurred_at),
            payload=model.payload or {},
        )

    async def list_events(self, after_seq: int = 0, limit: int = 100) -> List[StoredOrderEvent]:
        result = await self.session.execute(
            select(OrderEventModel)
            .where(OrderEventModel.seq > after_seq)
            .order_by(OrderEventModel.seq)
            .limit(limit)
        )
        return [self._to_stored(m) for m in result.scalars().all()]

    async def list_events_for_order(self, order_id: str) -> List[StoredOrderEvent]:
        result = await self.session.execute(
            select(OrderEventModel)
            .where(OrderEventModel.order_id == order_id)
            .order_by(OrderEventModel.version)
        )
        return [self._to_stored(m) for m in result.scalars().all()]
