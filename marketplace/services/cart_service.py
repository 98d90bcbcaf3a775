from __future__ import annotations

import uuid
from decimal import Decimal

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from marketplace.core.config import settings
from marketplace.core.logging import get_logger
from marketplace.db.operations import rollback_async
from marketplace.domain.enums import StockStatus
from marketplace.models.cart import Cart, CartItem
from marketplace.models.product import Product
from marketplace.schemas.cart import (
    CartItemAdded,
    CartLineRead,
    CartMeta,
    CartProductRead,
    CartView,
)
from marketplace.services.exceptions import (
    ConflictError,
    InsufficientStockError,
    InvalidInputError,
    NotFoundError,
    ProductUnavailableError,
)

logger = get_logger("marketplace.cart")


def _as_uuid(value: str | uuid.UUID, field: str) -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError) as exc:
        raise InvalidInputError(f"Invalid identifier for {field}") from exc


def _check_quantity(quantity: int) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
        raise InvalidInputError("Quantity must be a positive integer")
    return quantity


def stock_status(stock: int) -> StockStatus:
    if stock > settings.LOW_STOCK_THRESHOLD:
        return StockStatus.in_stock
    if stock > 0:
        return StockStatus.low_stock
    return StockStatus.out_of_stock


async def get_cart(db: AsyncSession, buyer_id: uuid.UUID) -> Cart | None:
    stmt = (
        select(Cart)
        .options(selectinload(Cart.items))
        .where(Cart.buyer_id == buyer_id)
        .execution_options(populate_existing=True)
    )
    result = await db.execute(stmt)
    return result.scalars().first()


async def _get_or_create_cart(db: AsyncSession, buyer_id: uuid.UUID) -> Cart:
    cart = await get_cart(db, buyer_id)
    if cart:
        return cart
    cart = Cart(buyer_id=buyer_id, version=0)
    db.add(cart)
    await db.flush()
    await db.refresh(cart, attribute_names=["items"])
    return cart


async def _touch(db: AsyncSession, cart: Cart) -> None:
    # Any mutation invalidates a checkout that read the previous version.
    await db.execute(
        update(Cart)
        .where(Cart.id == cart.id)
        .values(version=Cart.version + 1)
        .execution_options(synchronize_session=False)
    )


async def _get_product(db: AsyncSession, product_id: uuid.UUID) -> Product | None:
    stmt = select(Product).where(Product.id == product_id).execution_options(populate_existing=True)
    return (await db.execute(stmt)).scalars().first()


def _find_item(cart: Cart, *, item_id: uuid.UUID | None = None, product_id: uuid.UUID | None = None) -> CartItem | None:
    for item in cart.items:
        if item_id is not None and item.id == item_id:
            return item
        if product_id is not None and item.product_id == product_id:
            return item
    return None


def _view_line(item: CartItem) -> tuple[CartLineRead, Decimal]:
    product = item.product
    requested = int(item.quantity)
    available = min(requested, int(product.stock)) if product.is_active else 0
    line_total = Decimal(str(product.price)) * available

    warnings: list[str] = []
    if available < requested:
        warnings.append(f"Only {available} items available (requested {requested})")

    line = CartLineRead(
        id=item.id,
        product=CartProductRead(
            id=product.id,
            name=product.name,
            price=float(product.price),
            images=list(product.images or []),
            category=product.category,
            stock_status=stock_status(int(product.stock)),
        ),
        requested_quantity=requested,
        available_quantity=available,
        line_total=float(line_total),
        warnings=warnings,
    )
    return line, line_total


async def view_cart(db: AsyncSession, buyer_id: uuid.UUID) -> CartView:
    """Cart enriched against live inventory.

    Nothing is written: entries that cannot be honoured anymore are reported
    through ``warnings`` and count with their available quantity only.
    """
    cart = await get_cart(db, buyer_id)
    if cart is None:
        return CartView(items=[], meta=CartMeta(currency=settings.CURRENCY))

    lines: list[CartLineRead] = []
    total_amount = Decimal("0")
    for item in cart.items:
        line, line_total = _view_line(item)
        lines.append(line)
        total_amount += line_total

    warnings = [warning for line in lines for warning in line.warnings]
    meta = CartMeta(
        total_items=sum(line.available_quantity for line in lines),
        total_amount=float(total_amount),
        currency=settings.CURRENCY,
        warnings=warnings,
        has_issues=bool(warnings),
    )
    return CartView(items=lines, meta=meta)


async def _add_item_once(db: AsyncSession, buyer_id: uuid.UUID, pid: uuid.UUID, quantity: int) -> CartItemAdded:
    product = await _get_product(db, pid)
    if product is None or not product.is_active:
        raise ProductUnavailableError("Product not found or inactive")

    cart = await _get_or_create_cart(db, buyer_id)
    existing = _find_item(cart, product_id=pid)
    already = existing.quantity if existing else 0

    if already + quantity > product.stock:
        allowed = max(int(product.stock) - already, 0)
        raise InsufficientStockError(
            "Cannot add requested quantity",
            details={"available": allowed, "maximumAllowed": allowed},
        )

    if existing:
        existing.quantity = already + quantity
        item = existing
    else:
        item = CartItem(cart_id=cart.id, product_id=pid, quantity=quantity)
        db.add(item)

    await db.flush()
    await _touch(db, cart)
    return CartItemAdded(cart_item_id=item.id, product_id=pid, quantity=item.quantity)


async def add_item(
    db: AsyncSession,
    *,
    buyer_id: uuid.UUID,
    product_id: str | uuid.UUID,
    quantity: int,
) -> CartItemAdded:
    """Merge ``quantity`` units of a product into the buyer's cart.

    A concurrent request may create the cart or the entry between our read
    and our insert. The unique constraints reject the second insert; the
    add is then replayed once against the committed rows so it merges
    instead of failing.
    """
    pid = _as_uuid(product_id, "product_id")
    _check_quantity(quantity)

    try:
        added = await _add_item_once(db, buyer_id, pid, quantity)
    except IntegrityError:
        await rollback_async(db)
        logger.info("Concurrent cart add detected, retrying", extra={"buyer_id": str(buyer_id), "product_id": str(pid)})
        try:
            added = await _add_item_once(db, buyer_id, pid, quantity)
        except IntegrityError as exc:
            await rollback_async(db)
            raise ConflictError("Cart was modified by another request; please retry") from exc

    logger.info(
        "Cart item added",
        extra={"buyer_id": str(buyer_id), "product_id": str(pid), "quantity": added.quantity},
    )
    return added


async def update_item(
    db: AsyncSession,
    *,
    buyer_id: uuid.UUID,
    item_id: str | uuid.UUID,
    quantity: int,
) -> CartItem:
    iid = _as_uuid(item_id, "item_id")
    _check_quantity(quantity)

    cart = await get_cart(db, buyer_id)
    item = _find_item(cart, item_id=iid) if cart else None
    if item is None:
        raise NotFoundError("Cart item not found")

    product = await _get_product(db, item.product_id)
    if product is None or not product.is_active:
        raise ProductUnavailableError("Product not found or inactive")
    if quantity > product.stock:
        raise InsufficientStockError(
            "Requested quantity not available",
            details={"available": int(product.stock), "maximumAllowed": int(product.stock)},
        )

    item.quantity = quantity
    await db.flush()
    await _touch(db, cart)
    return item


async def remove_item(db: AsyncSession, *, buyer_id: uuid.UUID, item_id: str | uuid.UUID) -> None:
    """Removing an entry that is not there is not an error."""
    iid = _as_uuid(item_id, "item_id")
    cart = await get_cart(db, buyer_id)
    if cart is None:
        return
    item = _find_item(cart, item_id=iid)
    if item is None:
        return
    cart.items.remove(item)
    await db.flush()
    await _touch(db, cart)


async def clear_cart(db: AsyncSession, *, buyer_id: uuid.UUID) -> None:
    cart = await get_cart(db, buyer_id)
    if cart is None:
        return
    await empty_cart(db, cart)
    await _touch(db, cart)


async def empty_cart(db: AsyncSession, cart: Cart) -> None:
    """Drop every entry; the cart row itself survives."""
    await db.execute(
        delete(CartItem).where(CartItem.cart_id == cart.id).execution_options(synchronize_session=False)
    )
    # Keep the loaded collection in step with the rows just deleted.
    for item in list(cart.items):
        db.expunge(item)
    await db.refresh(cart, attribute_names=["items"])
