"""Pydantic schemas for platform orders."""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from kuralis_sync.enums import Platform


class RemoteOrderItem(BaseModel):
    platform_item_id: str
    title: str | None = None
    quantity: int = 0


class RemoteOrder(BaseModel):
    """An order as reported by a platform, normalized across platforms.

    ``fulfillment_status`` is ``cancelled`` for cancelled orders on every platform.
    """

    platform: Platform
    platform_order_id: str
    fulfillment_status: str | None = None
    payment_status: str | None = None
    subtotal: Decimal | None = None
    total_price: Decimal | None = None
    shipping_cost: Decimal | None = None
    customer_name: str | None = None
    placed_at: datetime | None = None
    paid_at: datetime | None = None
    cancelled_at: datetime | None = None
    items: list[RemoteOrderItem] = Field(default_factory=list)


class OrderItemRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    platform_item_id: str
    title: str | None = None
    quantity: int
    allocated_quantity: int
    kuralis_product_id: UUID | None = None


class OrderRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    platform: str
    platform_order_id: str
    fulfillment_status: str | None = None
    payment_status: str | None = None
    subtotal: Decimal | None = None
    total_price: Decimal | None = None
    shipping_cost: Decimal | None = None
    customer_name: str | None = None
    order_placed_at: datetime | None = None
    paid_at: datetime | None = None
    cancelled_at: datetime | None = None
    items: list[OrderItemRead] = Field(default_factory=list)
