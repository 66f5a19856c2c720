"""Listing, sync and product operator endpoints."""

from uuid import UUID

from fastapi import APIRouter, Body, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from kuralis_sync.enums import Platform
from kuralis_sync.models.base import get_db
from kuralis_sync.models.kuralis_product import KuralisProduct
from kuralis_sync.schemas.listing import (
    ActionResponse,
    EndListingRequest,
    LinkListingRequest,
    ListingFilters,
    ListingRead,
    ListingSummary,
    MigrateRequest,
    UnmigratedCount,
)
from kuralis_sync.services import listing_actions, migration, sync_scheduler
from kuralis_sync.services.job_tracker import JobContext
from kuralis_sync.services.listing_search import build_listing_query

router = APIRouter(prefix="/accounts/{account_id}", tags=["listings"])


@router.post("/sync/{platform}", response_model=ActionResponse, status_code=202)
async def trigger_quick_sync(
    account_id: UUID,
    platform: Platform,
    db: AsyncSession = Depends(get_db),
):
    """Queue a listing import, incremental when a previous sync completed."""
    return await db.run_sync(sync_scheduler.trigger_quick_sync, account_id, platform)


@router.get("/listings", response_model=list[ListingSummary])
async def search_listings(
    account_id: UUID,
    db: AsyncSession = Depends(get_db),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    q: str | None = Query(None, description="Matches title, item id or SKU"),
    item_id: str | None = Query(None),
    sku: str | None = Query(None),
    status: str | None = Query(None, description="Listing status, or migrated / not_migrated"),
    platform: Platform | None = Query(None),
):
    """Search an account's listings."""
    filters = ListingFilters(q=q, item_id=item_id, sku=sku, status=status, platform=platform)
    query = build_listing_query(account_id, filters).offset(skip).limit(limit)
    result = await db.execute(query)
    return [ListingSummary.model_validate(listing) for listing in result.scalars().all()]


@router.get("/listings/unmigrated_count", response_model=UnmigratedCount)
async def get_unmigrated_count(
    account_id: UUID,
    platform: Platform | None = Query(None),
    db: AsyncSession = Depends(get_db),
):
    count = await db.run_sync(migration.unmigrated_count, account_id, platform)
    return UnmigratedCount(platform=platform, count=count)


@router.post("/listings/migrate", response_model=ActionResponse, status_code=202)
async def migrate_listings(
    account_id: UUID,
    payload: MigrateRequest,
    db: AsyncSession = Depends(get_db),
):
    """Queue bulk migration of listings into local products."""
    await db.run_sync(sync_scheduler.get_shop, account_id)

    from kuralis_sync.tasks.listing_tasks import migrate_listings as migrate_task

    task = migrate_task.delay(
        JobContext(account_id=account_id).to_payload(),
        [str(listing_id) for listing_id in payload.listing_ids],
    )
    return ActionResponse(
        status="queued",
        message=f"Migration of {len(payload.listing_ids)} listings queued.",
        job_id=task.id,
    )


@router.get("/listings/{listing_id}", response_model=ListingRead)
async def get_listing(
    account_id: UUID,
    listing_id: UUID,
    db: AsyncSession = Depends(get_db),
):
    listing = await db.run_sync(migration.get_listing, account_id, listing_id)
    return ListingRead.model_validate(listing)


@router.post("/listings/{listing_id}/end", response_model=ActionResponse, status_code=202)
async def end_listing(
    account_id: UUID,
    listing_id: UUID,
    payload: EndListingRequest | None = Body(None),
    db: AsyncSession = Depends(get_db),
):
    """Queue the end of a listing on its platform."""
    reason = payload.reason if payload else None
    return await db.run_sync(listing_actions.end_listing, account_id, listing_id, reason)


@router.post("/listings/{listing_id}/migrate", response_model=ListingRead)
async def migrate_listing(
    account_id: UUID,
    listing_id: UUID,
    payload: LinkListingRequest | None = Body(None),
    db: AsyncSession = Depends(get_db),
):
    """Link a listing to an existing product, or create a product from it."""
    product_id = payload.product_id if payload else None
    await db.run_sync(migration.link_listing, account_id, listing_id, product_id)
    listing = await db.run_sync(migration.get_listing, account_id, listing_id)
    return ListingRead.model_validate(listing)


@router.post("/products/{product_id}/push_inventory", response_model=ActionResponse, status_code=202)
async def push_inventory(
    account_id: UUID,
    product_id: UUID,
    db: AsyncSession = Depends(get_db),
):
    """Queue a push of the product's quantity and price to its listings."""
    product = await db.get(KuralisProduct, product_id)
    if not product or product.shop_id != account_id:
        raise HTTPException(status_code=404, detail="Product not found")

    from kuralis_sync.tasks.listing_tasks import push_inventory as push_task

    task = push_task.delay(JobContext(account_id=account_id).to_payload(), str(product_id))
    return ActionResponse(status="queued", message="Inventory push queued.", job_id=task.id)
