# marketplace/schemas/cart.py
from __future__ import annotations
from pydantic import Field
from typing import Any, List
from uuid import UUID

from marketplace.domain.enums import StockStatus
from marketplace.schemas.base import CamelModel


class CartItemCreate(CamelModel):
    # Kept as str so a malformed id reaches the service and becomes INVALID_INPUT.
    product_id: str
    # Checked by the cart service so any non-integer becomes INVALID_INPUT.
    quantity: Any = Field(...)


class CartItemUpdate(CamelModel):
    quantity: Any = Field(...)


class CartItemAdded(CamelModel):
    cart_item_id: UUID
    product_id: UUID
    quantity: int


class CartProductRead(CamelModel):
    id: UUID
    name: str
    price: float
    images: List[str] = Field(default_factory=list)
    category: str | None = None
    stock_status: StockStatus


class CartLineRead(CamelModel):
    id: UUID
    product: CartProductRead
    requested_quantity: int
    available_quantity: int
    line_total: float
    warnings: List[str] = Field(default_factory=list)


class CartMeta(CamelModel):
    total_items: int = 0
    total_amount: float = 0
    currency: str
    warnings: List[str] = Field(default_factory=list)
    has_issues: bool = False


class CartView(CamelModel):
    items: List[CartLineRead] = Field(default_factory=list)
    meta: CartMeta
