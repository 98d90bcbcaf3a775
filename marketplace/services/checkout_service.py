from __future__ import annotations

import uuid
from decimal import Decimal

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from marketplace.core.config import settings
from marketplace.core.logging import get_logger
from marketplace.domain.enums import LineStatus, OrderStatus
from marketplace.models.cart import Cart
from marketplace.models.order import Order, OrderLine
from marketplace.services import cart_service, inventory_service
from marketplace.services.exceptions import ConflictError, EmptyCartError, OutOfStockError

logger = get_logger("marketplace.checkout")


async def _find_by_idempotency_key(db: AsyncSession, buyer_id: uuid.UUID, key: str) -> Order | None:
    stmt = (
        select(Order)
        .options(selectinload(Order.lines))
        .where(Order.buyer_id == buyer_id, Order.idempotency_key == key)
    )
    return (await db.execute(stmt)).scalars().first()


async def _claim_cart(db: AsyncSession, cart: Cart) -> None:
    """Compare-and-set on ``cart.version``; only one concurrent checkout wins."""
    result = await db.execute(
        update(Cart)
        .where(Cart.id == cart.id, Cart.version == cart.version)
        .values(version=Cart.version + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise ConflictError("Cart was modified by another request; please retry")


async def checkout(
    db: AsyncSession,
    *,
    buyer_id: uuid.UUID,
    shipping_address: dict,
    idempotency_key: str | None = None,
) -> tuple[Order, bool]:
    """Turn the buyer's cart into a pending order.

    Everything happens inside the caller's transaction, so the new order and
    its stock decrements are committed together with the emptied cart, or
    not at all. Returns ``(order, created)``; ``created`` is
    ``False`` when ``idempotency_key`` matched an earlier order, which is
    returned unchanged.
    """
    if idempotency_key:
        existing = await _find_by_idempotency_key(db, buyer_id, idempotency_key)
        if existing:
            logger.info(
                "Checkout replayed",
                extra={"buyer_id": str(buyer_id), "order_id": str(existing.id)},
            )
            return existing, False

    cart = await cart_service.get_cart(db, buyer_id)
    # Entries whose product has been deactivated are dropped silently.
    entries = [item for item in cart.items if item.product.is_active] if cart else []
    if not entries:
        raise EmptyCartError("Your cart is empty")

    for item in entries:
        if item.product.stock < item.quantity:
            raise OutOfStockError(f"{item.product.name} is out of stock")

    await _claim_cart(db, cart)

    total = Decimal("0")
    order = Order(
        buyer_id=buyer_id,
        status=OrderStatus.pending,
        payment_method=settings.PAYMENT_METHOD,
        currency=settings.CURRENCY,
        shipping_address=shipping_address,
        idempotency_key=idempotency_key,
        total_amount=Decimal("0"),
    )
    for position, item in enumerate(entries):
        product = item.product
        price = Decimal(str(product.price))
        total += price * item.quantity
        order.lines.append(
            OrderLine(
                position=position,
                product_id=product.id,
                seller_id=product.seller_id,
                name=product.name,
                price=price,
                quantity=item.quantity,
                image=product.primary_image,
                status=LineStatus.pending,
            )
        )
    order.total_amount = total
    db.add(order)
    try:
        await db.flush()
    except IntegrityError as exc:
        raise ConflictError("An order with this idempotency key already exists") from exc

    # Ascending product id keeps row-lock acquisition ordered across checkouts.
    quantities: dict[uuid.UUID, int] = {}
    for item in entries:
        quantities[item.product_id] = quantities.get(item.product_id, 0) + item.quantity
    names = {item.product_id: item.product.name for item in entries}
    for product_id in sorted(quantities, key=str):
        ok = await inventory_service.decrement_stock(
            db, product_id, quantities[product_id], reason=f"order:{order.id}"
        )
        if not ok:
            raise OutOfStockError(f"{names[product_id]} is out of stock")

    await cart_service.empty_cart(db, cart)

    logger.info(
        "Order placed",
        extra={
            "buyer_id": str(buyer_id),
            "order_id": str(order.id),
            "lines": len(order.lines),
            "total_amount": str(total),
        },
    )
    return order, True
