from __future__ import annotations

from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.api.deps import get_current_seller
from marketplace.core.metrics import record_line_transition
from marketplace.db.operations import commit_async, rollback_async
from marketplace.db.session_async import get_async_db
from marketplace.models.account import Account
from marketplace.schemas.base import MessageResponse
from marketplace.schemas.order import LineStatusUpdate, SellerOrderRead
from marketplace.schemas.product import ProductCreate, ProductRead, ProductUpdate, StockAdjustment
from marketplace.services import fulfillment_service, product_service
from marketplace.services.exceptions import ServiceError

router = APIRouter(prefix="/seller", tags=["seller"])


@router.get("/products", response_model=List[ProductRead])
async def list_my_products(
    status_filter: Optional[Literal["active", "inactive"]] = Query(default=None, alias="status"),
    db: AsyncSession = Depends(get_async_db),
    seller: Account = Depends(get_current_seller),
):
    is_active = None if status_filter is None else status_filter == "active"
    return await product_service.list_seller_products(db, seller.id, is_active=is_active)


@router.post("/products", response_model=ProductRead, status_code=status.HTTP_201_CREATED)
async def create_product(
    payload: ProductCreate,
    db: AsyncSession = Depends(get_async_db),
    seller: Account = Depends(get_current_seller),
):
    try:
        product = await product_service.create_product(db, seller.id, payload)
        await commit_async(db)
    except ServiceError:
        await rollback_async(db)
        raise
    return product


@router.patch("/products/{product_id}", response_model=ProductRead)
async def update_product(
    product_id: str,
    payload: ProductUpdate,
    db: AsyncSession = Depends(get_async_db),
    seller: Account = Depends(get_current_seller),
):
    try:
        product = await product_service.update_product(db, seller.id, product_id, payload)
        await commit_async(db)
    except ServiceError:
        await rollback_async(db)
        raise
    return product


@router.post("/products/{product_id}/stock", response_model=ProductRead)
async def adjust_stock(
    product_id: str,
    payload: StockAdjustment,
    db: AsyncSession = Depends(get_async_db),
    seller: Account = Depends(get_current_seller),
):
    try:
        product = await product_service.adjust_product_stock(db, seller.id, product_id, payload.delta)
        await commit_async(db)
    except ServiceError:
        await rollback_async(db)
        raise
    return product


@router.delete("/products/{product_id}", response_model=MessageResponse)
async def deactivate_product(
    product_id: str,
    db: AsyncSession = Depends(get_async_db),
    seller: Account = Depends(get_current_seller),
):
    await product_service.deactivate_product(db, seller.id, product_id)
    await commit_async(db)
    return MessageResponse(message="Product deactivated")


@router.get("/orders", response_model=List[SellerOrderRead])
async def list_my_orders(
    db: AsyncSession = Depends(get_async_db),
    seller: Account = Depends(get_current_seller),
):
    return await fulfillment_service.list_seller_orders(db, seller.id)


@router.patch("/orders/{order_id}/items/{item_id}", response_model=MessageResponse)
async def update_line_status(
    order_id: str,
    item_id: str,
    payload: LineStatusUpdate,
    db: AsyncSession = Depends(get_async_db),
    seller: Account = Depends(get_current_seller),
):
    try:
        line = await fulfillment_service.transition_line(
            db,
            order_id=order_id,
            line_id=item_id,
            seller_id=seller.id,
            new_status=payload.status,
        )
        await commit_async(db)
    except ServiceError:
        await rollback_async(db)
        raise
    record_line_transition(line.status.value)
    return MessageResponse(message=f"Item marked as {line.status.value}")
