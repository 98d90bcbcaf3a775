from __future__ import annotations

import uuid

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.core.logging import get_logger
from marketplace.db.operations import flush_async, refresh_async
from marketplace.models.product import Product
from marketplace.schemas.product import ProductCreate, ProductUpdate
from marketplace.services import inventory_service
from marketplace.services.exceptions import ConflictError, InvalidInputError, NotFoundError

logger = get_logger("marketplace.catalog")


def _as_uuid(value: str | uuid.UUID, field: str) -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError) as exc:
        raise InvalidInputError(f"Invalid identifier for {field}") from exc


async def _duplicate_exists(
    db: AsyncSession,
    seller_id: uuid.UUID,
    name: str,
    category: str | None,
    exclude_id: uuid.UUID | None = None,
) -> bool:
    stmt = select(Product.id).where(
        Product.seller_id == seller_id,
        func.lower(Product.name) == name.lower(),
        Product.category.is_(None) if category is None else Product.category == category,
    )
    if exclude_id is not None:
        stmt = stmt.where(Product.id != exclude_id)
    return (await db.execute(stmt.limit(1))).first() is not None


async def _flush_product(db: AsyncSession, product: Product) -> Product:
    try:
        await flush_async(db)
    except IntegrityError as exc:
        raise ConflictError(f"Product '{product.name}' already exists in this category") from exc
    await refresh_async(db, product)
    return product


async def create_product(db: AsyncSession, seller_id: uuid.UUID, data: ProductCreate) -> Product:
    if await _duplicate_exists(db, seller_id, data.name, data.category):
        raise ConflictError(f"Product '{data.name}' already exists in this category")

    product = Product(
        seller_id=seller_id,
        name=data.name,
        description=data.description,
        category=data.category,
        price=data.price,
        stock=data.stock,
        images=list(data.images),
        is_active=True,
    )
    db.add(product)
    product = await _flush_product(db, product)
    logger.info(
        "Product created",
        extra={"product_id": str(product.id), "seller_id": str(seller_id), "stock": data.stock},
    )
    return product


async def get_seller_product(db: AsyncSession, seller_id: uuid.UUID, product_id: str | uuid.UUID) -> Product:
    pid = _as_uuid(product_id, "product_id")
    stmt = (
        select(Product)
        .where(Product.id == pid, Product.seller_id == seller_id)
        .execution_options(populate_existing=True)
    )
    product = (await db.execute(stmt)).scalars().first()
    if product is None:
        raise NotFoundError("Product not found")
    return product


async def list_seller_products(
    db: AsyncSession,
    seller_id: uuid.UUID,
    *,
    is_active: bool | None = None,
) -> list[Product]:
    stmt = select(Product).where(Product.seller_id == seller_id).order_by(Product.created_at.desc())
    if is_active is not None:
        stmt = stmt.where(Product.is_active.is_(is_active))
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def update_product(
    db: AsyncSession,
    seller_id: uuid.UUID,
    product_id: str | uuid.UUID,
    changes: ProductUpdate,
) -> Product:
    product = await get_seller_product(db, seller_id, product_id)
    data = changes.model_dump(exclude_unset=True)

    name = data.get("name", product.name)
    category = data.get("category", product.category)
    if ("name" in data or "category" in data) and await _duplicate_exists(
        db, seller_id, name, category, exclude_id=product.id
    ):
        raise ConflictError(f"Product '{name}' already exists in this category")

    for field, value in data.items():
        setattr(product, field, value)
    db.add(product)
    return await _flush_product(db, product)


async def adjust_product_stock(
    db: AsyncSession,
    seller_id: uuid.UUID,
    product_id: str | uuid.UUID,
    delta: int,
) -> Product:
    product = await get_seller_product(db, seller_id, product_id)
    await inventory_service.adjust_stock(db, product.id, delta, reason=f"seller:{seller_id}")
    return await get_seller_product(db, seller_id, product.id)


async def deactivate_product(db: AsyncSession, seller_id: uuid.UUID, product_id: str | uuid.UUID) -> Product:
    """Products are never deleted; order lines keep pointing at them."""
    product = await get_seller_product(db, seller_id, product_id)
    product.is_active = False
    db.add(product)
    await flush_async(db)
    logger.info("Product deactivated", extra={"product_id": str(product.id), "seller_id": str(seller_id)})
    return product


async def list_public_products(
    db: AsyncSession,
    *,
    category: str | None = None,
    min_price: float | None = None,
    max_price: float | None = None,
    search: str | None = None,
    limit: int = 20,
    offset: int = 0,
) -> tuple[list[Product], int]:
    conditions = [Product.is_active.is_(True)]
    if category:
        conditions.append(Product.category == category)
    if min_price is not None:
        conditions.append(Product.price >= min_price)
    if max_price is not None:
        conditions.append(Product.price <= max_price)
    if search:
        pattern = f"%{search.lower()}%"
        conditions.append(
            or_(func.lower(Product.name).like(pattern), func.lower(Product.description).like(pattern))
        )

    total = (await db.execute(select(func.count(Product.id)).where(*conditions))).scalar_one()
    stmt = (
        select(Product)
        .where(*conditions)
        .order_by(Product.created_at.desc(), Product.name)
        .offset(int(offset))
        .limit(int(limit))
    )
    result = await db.execute(stmt)
    return list(result.scalars().all()), int(total)


async def get_public_product(db: AsyncSession, product_id: str | uuid.UUID) -> Product:
    pid = _as_uuid(product_id, "product_id")
    stmt = (
        select(Product)
        .where(Product.id == pid, Product.is_active.is_(True))
        .execution_options(populate_existing=True)
    )
    product = (await db.execute(stmt)).scalars().first()
    if product is None:
        raise NotFoundError("Product not found")
    return product
