from __future__ import annotations

import uuid

from sqlalchemy import func, update
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.core.logging import inventory_audit
from marketplace.models.product import Product
from marketplace.services.exceptions import InsufficientStockError, InvalidInputError


def _check_quantity(quantity: int) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise InvalidInputError("Quantity must be a positive integer")
    return quantity


async def decrement_stock(
    db: AsyncSession,
    product_id: uuid.UUID,
    quantity: int,
    reason: str | None = None,
) -> bool:
    """Take ``quantity`` units from a product if, and only if, enough are left.

    A single conditional UPDATE; the row lock makes the check and the write
    one step. Returns ``False`` when no row matched (insufficient stock or
    unknown product), leaving the row untouched.
    """
    _check_quantity(quantity)
    stmt = (
        update(Product)
        .where(Product.id == product_id, Product.stock >= quantity)
        .values(stock=Product.stock - quantity, updated_at=func.now())
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    if result.rowcount != 1:
        return False
    inventory_audit("decrement", product_id, quantity, reason=reason)
    return True


async def increment_stock(
    db: AsyncSession,
    product_id: uuid.UUID,
    quantity: int,
    reason: str | None = None,
) -> bool:
    """Return units to a product. ``False`` if the product no longer exists."""
    _check_quantity(quantity)
    stmt = (
        update(Product)
        .where(Product.id == product_id)
        .values(stock=Product.stock + quantity, updated_at=func.now())
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    if result.rowcount != 1:
        return False
    inventory_audit("increment", product_id, quantity, reason=reason)
    return True


async def adjust_stock(
    db: AsyncSession,
    product_id: uuid.UUID,
    delta: int,
    reason: str | None = None,
) -> bool:
    """Seller restock or correction by a signed ``delta``.

    Negative deltas go through :func:`decrement_stock` so the result can never
    drop below zero.
    """
    if isinstance(delta, bool) or not isinstance(delta, int) or delta == 0:
        raise InvalidInputError("Delta must be a non-zero integer")
    if delta > 0:
        return await increment_stock(db, product_id, delta, reason=reason)
    if not await decrement_stock(db, product_id, -delta, reason=reason):
        raise InsufficientStockError("Stock cannot go below zero")
    return True
