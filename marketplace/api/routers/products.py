from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.db.session_async import get_async_db
from marketplace.schemas.product import ProductPublicRead
from marketplace.services import product_service

router = APIRouter(prefix="/products", tags=["products"])


@router.get("", response_model=List[ProductPublicRead])
async def list_products(
    response: Response,
    category: Optional[str] = Query(default=None),
    min_price: Optional[float] = Query(default=None, ge=0),
    max_price: Optional[float] = Query(default=None, ge=0),
    search: Optional[str] = Query(default=None, min_length=1, max_length=100),
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    db: AsyncSession = Depends(get_async_db),
):
    products, total = await product_service.list_public_products(
        db,
        category=category,
        min_price=min_price,
        max_price=max_price,
        search=search,
        limit=limit,
        offset=offset,
    )
    response.headers["X-Total-Count"] = str(total)
    return products


@router.get("/{product_id}", response_model=ProductPublicRead)
async def get_product(product_id: str, db: AsyncSession = Depends(get_async_db)):
    return await product_service.get_public_product(db, product_id)
