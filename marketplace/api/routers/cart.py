from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.api.deps import get_current_buyer
from marketplace.db.operations import commit_async, rollback_async
from marketplace.db.session_async import get_async_db
from marketplace.models.account import Account
from marketplace.schemas.base import MessageResponse
from marketplace.schemas.cart import CartItemAdded, CartItemCreate, CartItemUpdate, CartView
from marketplace.services import cart_service
from marketplace.services.exceptions import ServiceError

router = APIRouter(prefix="/cart", tags=["cart"])


@router.get("", response_model=CartView)
async def get_cart(
    db: AsyncSession = Depends(get_async_db),
    buyer: Account = Depends(get_current_buyer),
):
    return await cart_service.view_cart(db, buyer.id)


@router.post("/items", response_model=CartItemAdded, status_code=status.HTTP_201_CREATED)
async def add_cart_item(
    payload: CartItemCreate,
    db: AsyncSession = Depends(get_async_db),
    buyer: Account = Depends(get_current_buyer),
):
    try:
        added = await cart_service.add_item(
            db, buyer_id=buyer.id, product_id=payload.product_id, quantity=payload.quantity
        )
        await commit_async(db)
    except ServiceError:
        await rollback_async(db)
        raise
    return added


@router.patch("/items/{item_id}", response_model=MessageResponse)
async def update_cart_item(
    item_id: str,
    payload: CartItemUpdate,
    db: AsyncSession = Depends(get_async_db),
    buyer: Account = Depends(get_current_buyer),
):
    try:
        await cart_service.update_item(db, buyer_id=buyer.id, item_id=item_id, quantity=payload.quantity)
        await commit_async(db)
    except ServiceError:
        await rollback_async(db)
        raise
    return MessageResponse(message="Cart updated")


@router.delete("/items/{item_id}", response_model=MessageResponse)
async def remove_cart_item(
    item_id: str,
    db: AsyncSession = Depends(get_async_db),
    buyer: Account = Depends(get_current_buyer),
):
    await cart_service.remove_item(db, buyer_id=buyer.id, item_id=item_id)
    await commit_async(db)
    return MessageResponse(message="Item removed from cart")


@router.delete("", response_model=MessageResponse)
async def clear_cart(
    db: AsyncSession = Depends(get_async_db),
    buyer: Account = Depends(get_current_buyer),
):
    await cart_service.clear_cart(db, buyer_id=buyer.id)
    await commit_async(db)
    return MessageResponse(message="Cart cleared")
