"""Order history and order sync endpoints."""

from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from kuralis_sync.enums import Platform
from kuralis_sync.models.base import get_db
from kuralis_sync.models.order import Order
from kuralis_sync.schemas.listing import ActionResponse
from kuralis_sync.schemas.order import OrderRead
from kuralis_sync.services import orders

router = APIRouter(prefix="/accounts/{account_id}/orders", tags=["orders"])


@router.get("", response_model=list[OrderRead])
async def list_orders(
    account_id: UUID,
    db: AsyncSession = Depends(get_db),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    platform: Platform | None = Query(None),
    fulfillment_status: str | None = Query(None),
):
    """List an account's orders, most recently placed first."""
    query = select(Order).options(selectinload(Order.items)).where(Order.shop_id == account_id)
    if platform:
        query = query.where(Order.platform == platform.value)
    if fulfillment_status:
        query = query.where(Order.fulfillment_status == fulfillment_status)

    query = query.order_by(Order.order_placed_at.desc()).offset(skip).limit(limit)
    result = await db.execute(query)
    return [OrderRead.model_validate(order) for order in result.scalars().all()]


@router.post("/sync/{platform}", response_model=ActionResponse, status_code=202)
async def trigger_order_sync(
    account_id: UUID,
    platform: Platform,
    db: AsyncSession = Depends(get_db),
):
    """Queue an order sync for one platform."""
    return await db.run_sync(orders.trigger_order_sync, account_id, platform)
