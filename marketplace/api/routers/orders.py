from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Header, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.api.deps import get_current_buyer
from marketplace.core.metrics import record_cancellation, record_checkout
from marketplace.db.operations import commit_async, rollback_async
from marketplace.db.session_async import get_async_db
from marketplace.models.account import Account
from marketplace.models.order import Order
from marketplace.schemas.base import MessageResponse
from marketplace.schemas.order import (
    CheckoutLineRead,
    CheckoutRead,
    CheckoutRequest,
    OrderRead,
    OrderSummaryRead,
)
from marketplace.services import checkout_service, order_service
from marketplace.services.exceptions import ServiceError

router = APIRouter(prefix="/orders", tags=["orders"])


def _checkout_body(order: Order) -> CheckoutRead:
    return CheckoutRead(
        order_id=order.id,
        total_amount=float(order.total_amount),
        status=order.status,
        lines=[
            CheckoutLineRead(name=line.name, quantity=line.quantity, price=float(line.price))
            for line in order.lines
        ],
    )


@router.post("/checkout", response_model=CheckoutRead, status_code=status.HTTP_201_CREATED)
async def checkout(
    payload: CheckoutRequest,
    response: Response,
    idempotency_key: Optional[str] = Header(default=None, alias="Idempotency-Key", max_length=120),
    db: AsyncSession = Depends(get_async_db),
    buyer: Account = Depends(get_current_buyer),
):
    try:
        order, created = await checkout_service.checkout(
            db,
            buyer_id=buyer.id,
            shipping_address=payload.shipping_address.model_dump(by_alias=True),
            idempotency_key=idempotency_key,
        )
        await commit_async(db)
    except ServiceError as exc:
        await rollback_async(db)
        record_checkout(exc.code.lower())
        raise
    except Exception:
        await rollback_async(db)
        raise

    if not created:
        response.status_code = status.HTTP_200_OK
    record_checkout("created" if created else "replayed")
    return _checkout_body(order)


@router.get("", response_model=List[OrderSummaryRead])
async def list_orders(
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: AsyncSession = Depends(get_async_db),
    buyer: Account = Depends(get_current_buyer),
):
    orders = await order_service.list_orders_for_buyer(db, buyer.id, limit=limit, offset=offset)
    return [
        OrderSummaryRead(id=o.id, total_amount=float(o.total_amount), status=o.status, date=o.created_at)
        for o in orders
    ]


@router.get("/{order_id}", response_model=OrderRead)
async def get_order(
    order_id: str,
    db: AsyncSession = Depends(get_async_db),
    buyer: Account = Depends(get_current_buyer),
):
    return await order_service.get_order_for_buyer(db, order_id, buyer.id)


@router.put("/{order_id}/cancel", response_model=MessageResponse)
async def cancel_order(
    order_id: str,
    db: AsyncSession = Depends(get_async_db),
    buyer: Account = Depends(get_current_buyer),
):
    try:
        await order_service.cancel_order(db, order_id=order_id, buyer_id=buyer.id)
        await commit_async(db)
    except ServiceError:
        await rollback_async(db)
        raise
    record_cancellation()
    return MessageResponse(message="Order cancelled")
