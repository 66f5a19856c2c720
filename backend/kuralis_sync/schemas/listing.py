"""Pydantic schemas for listings and listing operations."""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from kuralis_sync.enums import Platform, ListingStatus


class RemoteListing(BaseModel):
    """A listing as reported by a platform, normalized across platforms."""

    platform: Platform
    platform_item_id: str
    title: str | None = None
    sku: str | None = None
    price: Decimal | None = None
    quantity: int | None = None
    status: ListingStatus = ListingStatus.ACTIVE
    updated_at: datetime | None = None

    listing_format: str | None = None
    end_time: datetime | None = None
    quantity_sold: int | None = None
    handle: str | None = None
    description: str | None = None
    extra_data: dict = Field(default_factory=dict)


class ListingFilters(BaseModel):
    """Search filters. Explicit filters are ANDed, ``q`` matches any text field."""

    q: str | None = None
    item_id: str | None = None
    sku: str | None = None
    status: str | None = None
    platform: Platform | None = None


class ListingSummary(BaseModel):
    """Minimal listing info for list views."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    platform: str
    platform_item_id: str
    title: str | None = None
    sku: str | None = None
    price: Decimal | None = None
    quantity: int | None = None
    status: str
    kuralis_product_id: UUID | None = None


class ListingRead(ListingSummary):
    """Full listing output."""

    shop_id: UUID
    remote_updated_at: datetime | None = None
    last_synced_at: datetime | None = None
    listing_format: str | None = None
    end_time: datetime | None = None
    quantity_sold: int | None = None
    handle: str | None = None
    migrated: bool = False


class EndListingRequest(BaseModel):
    reason: str | None = None


class LinkListingRequest(BaseModel):
    product_id: UUID | None = None


class MigrateRequest(BaseModel):
    listing_ids: list[UUID] = Field(min_length=1)


class UnmigratedCount(BaseModel):
    platform: Platform | None = None
    count: int


class ActionResponse(BaseModel):
    """Acknowledgment for operator actions that enqueue background work."""

    status: str
    message: str
    job_id: str | None = None
