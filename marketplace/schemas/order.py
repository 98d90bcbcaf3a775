from __future__ import annotations
from pydantic import Field
from typing import List
from uuid import UUID
from datetime import datetime

from marketplace.domain.enums import LineStatus, OrderStatus
from marketplace.schemas.base import CamelModel


class ShippingAddress(CamelModel):
    street: str = Field(..., min_length=1, max_length=200)
    city: str = Field(..., min_length=1, max_length=120)
    state: str = Field(..., min_length=1, max_length=120)
    postal_code: str = Field(..., pattern=r"^\d{6}$")


class CheckoutRequest(CamelModel):
    shipping_address: ShippingAddress


class CheckoutLineRead(CamelModel):
    name: str
    quantity: int
    price: float


class CheckoutRead(CamelModel):
    order_id: UUID
    total_amount: float
    status: OrderStatus
    lines: List[CheckoutLineRead] = Field(default_factory=list)


class OrderSummaryRead(CamelModel):
    id: UUID
    total_amount: float
    status: OrderStatus
    date: datetime


class OrderLineRead(CamelModel):
    id: UUID
    product_id: UUID | None
    seller_id: UUID
    name: str
    price: float
    quantity: int
    image: str | None = None
    status: LineStatus


class OrderRead(CamelModel):
    id: UUID
    buyer_id: UUID
    status: OrderStatus
    payment_method: str
    currency: str
    total_amount: float
    shipping_address: dict
    created_at: datetime
    cancelled_at: datetime | None = None
    lines: List[OrderLineRead] = Field(default_factory=list)


class BuyerRead(CamelModel):
    id: UUID
    name: str
    email: str


class SellerOrderRead(CamelModel):
    id: UUID
    status: OrderStatus
    created_at: datetime
    shipping_address: dict
    buyer: BuyerRead
    lines: List[OrderLineRead] = Field(default_factory=list)


class LineStatusUpdate(CamelModel):
    # Unknown values are rejected by the state machine, not by the schema.
    status: str
