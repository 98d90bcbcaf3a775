"""Seller-owned lifecycle of individual order lines."""

from __future__ import annotations

import uuid

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import contains_eager
from sqlalchemy.orm.attributes import set_committed_value

from marketplace.core.logging import get_logger
from marketplace.domain.enums import LineStatus
from marketplace.models.order import Order, OrderLine
from marketplace.services.exceptions import (
    ConflictError,
    InvalidInputError,
    InvalidTransitionError,
    NotFoundError,
)

logger = get_logger("marketplace.fulfillment")

# Cancellation is not reachable from here; it belongs to the buyer's order cancel.
ALLOWED_TRANSITIONS: dict[LineStatus, frozenset[LineStatus]] = {
    LineStatus.pending: frozenset({LineStatus.shipped}),
    LineStatus.shipped: frozenset({LineStatus.delivered}),
    LineStatus.delivered: frozenset(),
    LineStatus.cancelled: frozenset(),
}


def _as_uuid(value: str | uuid.UUID, field: str) -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError) as exc:
        raise InvalidInputError(f"Invalid identifier for {field}") from exc


def can_transition(current: LineStatus, requested: str) -> bool:
    try:
        target = LineStatus(requested)
    except ValueError:
        return False
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


async def transition_line(
    db: AsyncSession,
    *,
    order_id: str | uuid.UUID,
    line_id: str | uuid.UUID,
    seller_id: uuid.UUID,
    new_status: str,
) -> OrderLine:
    oid = _as_uuid(order_id, "order_id")
    lid = _as_uuid(line_id, "item_id")

    stmt = select(OrderLine).where(
        OrderLine.id == lid,
        OrderLine.order_id == oid,
        OrderLine.seller_id == seller_id,
    ).execution_options(populate_existing=True)
    line = (await db.execute(stmt)).scalars().first()
    if line is None:
        raise NotFoundError("Order item not found")

    current = line.status
    if not can_transition(current, new_status):
        raise InvalidTransitionError(
            f"Invalid status transition from {current.value} to {new_status}",
            details={"current": current.value, "requested": new_status},
        )
    target = LineStatus(new_status)

    result = await db.execute(
        update(OrderLine)
        .where(OrderLine.id == line.id, OrderLine.status == current)
        .values(status=target, updated_at=func.now())
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise ConflictError("Order item was updated concurrently; please retry")

    set_committed_value(line, "status", target)
    logger.info(
        "Order line status changed",
        extra={
            "order_id": str(oid),
            "line_id": str(lid),
            "seller_id": str(seller_id),
            "from_status": current.value,
            "to_status": target.value,
        },
    )
    return line


async def list_seller_orders(db: AsyncSession, seller_id: uuid.UUID) -> list[Order]:
    """Orders holding at least one of the seller's lines.

    ``Order.lines`` is populated with that seller's lines only.
    """
    stmt = (
        select(Order)
        .join(Order.lines)
        .where(OrderLine.seller_id == seller_id)
        .options(contains_eager(Order.lines))
        .order_by(Order.created_at.desc(), OrderLine.position)
        .execution_options(populate_existing=True)
    )
    result = await db.execute(stmt)
    return list(result.unique().scalars().all())
