"""Listing search query composition."""

import uuid

from sqlalchemy import Select, or_, select

from kuralis_sync.enums import MigrationState
from kuralis_sync.models.listing import Listing
from kuralis_sync.schemas.listing import ListingFilters


def build_listing_query(account_id: uuid.UUID, filters: ListingFilters) -> Select:
    """Compose a listing query for one account.

    Explicit filters are ANDed together. The free-text ``q`` term matches
    title, item id or SKU. A ``status`` of ``migrated`` / ``not_migrated``
    selects on the product link instead of the listing status.
    """
    query = select(Listing).where(Listing.shop_id == account_id)

    if filters.platform:
        query = query.where(Listing.platform == filters.platform.value)
    if filters.item_id:
        query = query.where(Listing.platform_item_id == filters.item_id)
    if filters.sku:
        query = query.where(Listing.sku == filters.sku)

    if filters.status == MigrationState.MIGRATED.value:
        query = query.where(Listing.kuralis_product_id.is_not(None))
    elif filters.status == MigrationState.NOT_MIGRATED.value:
        query = query.where(Listing.kuralis_product_id.is_(None))
    elif filters.status:
        query = query.where(Listing.status == filters.status)

    if filters.q:
        pattern = f"%{filters.q}%"
        query = query.where(or_(
            Listing.title.ilike(pattern),
            Listing.platform_item_id.ilike(pattern),
            Listing.sku.ilike(pattern),
        ))

    return query.order_by(Listing.created_at.desc(), Listing.platform_item_id)
