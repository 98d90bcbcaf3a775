from __future__ import annotations
from pydantic import AfterValidator, Field
from typing import Annotated, List
from uuid import UUID
from datetime import datetime

from marketplace.core.config import settings
from marketplace.schemas.base import CamelModel


def _check_images(images: List[str]) -> List[str]:
    if len(images) > settings.MAX_PRODUCT_IMAGES:
        raise ValueError(f"Exceeds maximum of {settings.MAX_PRODUCT_IMAGES} images")
    return images


ImageList = Annotated[List[str], AfterValidator(_check_images)]


class ProductCreate(CamelModel):
    name: str = Field(..., min_length=3, max_length=200)
    description: str | None = Field(default=None, max_length=2000)
    category: str | None = Field(default=None, max_length=120)
    price: float = Field(..., ge=0)
    stock: int = Field(..., ge=0)
    images: ImageList = Field(default_factory=list)


class ProductUpdate(CamelModel):
    """Stock is not editable here; use the stock adjustment endpoint."""

    name: str | None = Field(default=None, min_length=3, max_length=200)
    description: str | None = Field(default=None, max_length=2000)
    category: str | None = Field(default=None, max_length=120)
    price: float | None = Field(default=None, ge=0)
    images: ImageList | None = None


class StockAdjustment(CamelModel):
    delta: int = Field(..., strict=True)


class SellerRef(CamelModel):
    id: UUID
    name: str
    license_id: int | None = None


class ProductRead(CamelModel):
    id: UUID
    seller_id: UUID
    name: str
    description: str | None
    category: str | None
    price: float
    stock: int
    images: List[str] = Field(default_factory=list)
    is_active: bool
    created_at: datetime
    updated_at: datetime | None = None


class ProductPublicRead(ProductRead):
    seller: SellerRef
