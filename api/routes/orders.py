"""
Order API routes - thin layer over the order engine
"""
from __future__ import annotations

from fastapi import APIRouter, Depends, Query, status

from api.dependencies import get_order_engine
from application.dtos.orders import (
    CancelOrderRequest,
    CreateOrderRequest,
    OrderDTO,
    OrderEventDTO,
    OrderEventPage,
    PaymentIntentRequest,
    RefundOrderRequest,
    ShipOrderRequest,
    VersionedCommand,
)
from application.services.order_engine import OrderEngine
from core.response import Response as ApiResponse, success_response


router = APIRouter(prefix="/orders", tags=["Orders"])


@router.post(
    "",
    summary="Create order",
    status_code=status.HTTP_201_CREATED,
    response_model=ApiResponse[OrderDTO],
)
async def create_order(payload: CreateOrderRequest, engine: OrderEngine = Depends(get_order_engine)):
    """
    Create an order from items and a pricing snapshot captured at checkout.

    - **items**: 1-100 lines, quantity 1-999 each
    - **pricing**: unit prices per product, tax and shipping in the order currency
    """
    order = await engine.create_order(
        buyer_id=payload.buyer_id,
        shop_id=payload.shop_id,
        items=payload.item_pairs(),
        pricing=payload.pricing.to_domain(),
    )
    return success_response(data=OrderDTO.from_entity(order), message="Order created")


# declared before /{order_id} so "events" is not taken for an id
@router.get("/events", summary="Order event stream", response_model=ApiResponse[OrderEventPage])
async def list_events(
    after_seq: int = Query(default=0, ge=0),
    limit: int = Query(default=100, ge=1, le=500),
    engine: OrderEngine = Depends(get_order_engine),
):
    """Committed order events in commit order. Pass the returned `next_after_seq` to continue."""
    events = await engine.list_events(after_seq=after_seq, limit=limit)
    next_after_seq = events[-1].seq if events else after_seq
    page = OrderEventPage(items=[OrderEventDTO.from_stored(e) for e in events], next_after_seq=next_after_seq)
    return success_response(data=page)


@router.get("/{order_id}", summary="Get order", response_model=ApiResponse[OrderDTO])
async def get_order(order_id: str, engine: OrderEngine = Depends(get_order_engine)):
    order = await engine.get_order(order_id)
    return success_response(data=OrderDTO.from_entity(order))


@router.get("/{order_id}/events", summary="Order history", response_model=ApiResponse[list[OrderEventDTO]])
async def get_order_events(order_id: str, engine: OrderEngine = Depends(get_order_engine)):
    events = await engine.list_order_events(order_id)
    return success_response(data=[OrderEventDTO.from_stored(e) for e in events])


@router.post("/{order_id}/payment-intent", summary="Record payment intent", response_model=ApiResponse[OrderDTO])
async def record_payment_intent(
    order_id: str,
    payload: PaymentIntentRequest,
    engine: OrderEngine = Depends(get_order_engine),
):
    order = await engine.record_payment_intent(order_id, payload.provider_ref, payload.expected_version)
    return success_response(data=OrderDTO.from_entity(order), message="Payment pending")


@router.post("/{order_id}/ship", summary="Ship order", response_model=ApiResponse[OrderDTO])
async def ship_order(order_id: str, payload: ShipOrderRequest, engine: OrderEngine = Depends(get_order_engine)):
    order = await engine.ship_order(order_id, payload.expected_version, tracking_ref=payload.tracking_ref)
    return success_response(data=OrderDTO.from_entity(order), message="Order shipped")


@router.post("/{order_id}/complete", summary="Complete order", response_model=ApiResponse[OrderDTO])
async def complete_order(order_id: str, payload: VersionedCommand, engine: OrderEngine = Depends(get_order_engine)):
    order = await engine.complete_order(order_id, payload.expected_version)
    return success_response(data=OrderDTO.from_entity(order), message="Order completed")


@router.post("/{order_id}/cancel", summary="Cancel order", response_model=ApiResponse[OrderDTO])
async def cancel_order(order_id: str, payload: CancelOrderRequest, engine: OrderEngine = Depends(get_order_engine)):
    order = await engine.cancel_order(order_id, payload.reason, payload.expected_version)
    return success_response(data=OrderDTO.from_entity(order), message="Order cancelled")


@router.post("/{order_id}/refunds", summary="Refund order", response_model=ApiResponse[OrderDTO])
async def refund_order(order_id: str, payload: RefundOrderRequest, engine: OrderEngine = Depends(get_order_engine)):
    """
    Record a partial or full refund. Repeating a request with the same
    `idempotency_key` returns the order without refunding twice.
    """
    order = await engine.refund(
        order_id,
        payload.amount,
        payload.expected_version,
        reason=payload.reason,
        idempotency_key=payload.idempotency_key,
    )
    return success_response(data=OrderDTO.from_entity(order), message="Refund recorded")
