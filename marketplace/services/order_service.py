from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from marketplace.core.logging import get_logger
from marketplace.domain.enums import LineStatus, OrderStatus
from marketplace.models.order import Order, OrderLine
from marketplace.services import inventory_service
from marketplace.services.exceptions import InvalidInputError, NotCancellableError, NotFoundError

logger = get_logger("marketplace.orders")


def _as_uuid(value: str | uuid.UUID, field: str) -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError) as exc:
        raise InvalidInputError(f"Invalid identifier for {field}") from exc


async def list_orders_for_buyer(
    db: AsyncSession,
    buyer_id: uuid.UUID,
    *,
    limit: int = 50,
    offset: int = 0,
) -> list[Order]:
    stmt = (
        select(Order)
        .where(Order.buyer_id == buyer_id)
        .order_by(Order.created_at.desc())
        .offset(int(offset))
        .limit(int(limit))
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def get_order_for_buyer(db: AsyncSession, order_id: str | uuid.UUID, buyer_id: uuid.UUID) -> Order:
    """Orders of other buyers are reported as missing."""
    oid = _as_uuid(order_id, "order_id")
    stmt = (
        select(Order)
        .options(selectinload(Order.lines))
        .where(Order.id == oid, Order.buyer_id == buyer_id)
        .execution_options(populate_existing=True)
    )
    order = (await db.execute(stmt)).scalars().first()
    if order is None:
        raise NotFoundError("Order not found")
    return order


async def cancel_order(db: AsyncSession, *, order_id: str | uuid.UUID, buyer_id: uuid.UUID) -> Order:
    """Cancel a pending order and put its units back on the shelf.

    Runs in the caller's transaction. A line that has already left ``pending`` makes
    the whole order non-cancellable. Lines whose product has since been
    removed are skipped with a warning.
    """
    order = await get_order_for_buyer(db, order_id, buyer_id)

    if order.status != OrderStatus.pending:
        raise NotCancellableError("Order cannot be cancelled at this stage")
    if any(line.status != LineStatus.pending for line in order.lines):
        raise NotCancellableError("Order has items that are already being fulfilled")

    now = datetime.now(timezone.utc)
    claimed = await db.execute(
        update(Order)
        .where(Order.id == order.id, Order.status == OrderStatus.pending)
        .values(status=OrderStatus.cancelled, cancelled_at=now, updated_at=func.now())
        .execution_options(synchronize_session=False)
    )
    if claimed.rowcount != 1:
        raise NotCancellableError("Order cannot be cancelled at this stage")

    cascaded = await db.execute(
        update(OrderLine)
        .where(OrderLine.order_id == order.id, OrderLine.status == LineStatus.pending)
        .values(status=LineStatus.cancelled, updated_at=func.now())
        .execution_options(synchronize_session=False)
    )
    if cascaded.rowcount != len(order.lines):
        # A seller moved a line between our read and the cascade.
        raise NotCancellableError("Order has items that are already being fulfilled")

    for line in order.lines:
        if line.product_id is None:
            logger.warning(
                "Product removed, skipping restock",
                extra={"order_id": str(order.id), "line_id": str(line.id)},
            )
            continue
        restocked = await inventory_service.increment_stock(
            db, line.product_id, line.quantity, reason=f"cancel:{order.id}"
        )
        if not restocked:
            logger.warning(
                "Product removed, skipping restock",
                extra={"order_id": str(order.id), "product_id": str(line.product_id)},
            )

    # Bulk updates bypassed the identity map.
    order = await get_order_for_buyer(db, order.id, buyer_id)
    logger.info("Order cancelled", extra={"order_id": str(order.id), "buyer_id": str(buyer_id)})
    return order
