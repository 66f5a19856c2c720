"""Single-listing and product tasks: end, notification apply, migration, inventory push."""

import logging
import uuid
from functools import partial

import httpx

from kuralis_sync.enums import ListingStatus, Platform
from kuralis_sync.errors import PartialSyncError, PlatformRequestError, RecordNotFoundError, SyncError
from kuralis_sync.models.base import SyncSessionLocal
from kuralis_sync.models.job_run import JobRun  # noqa: F401
from kuralis_sync.models.kuralis_product import KuralisProduct
from kuralis_sync.models.listing import Listing  # noqa: F401
from kuralis_sync.models.shop import Shop  # noqa: F401
from kuralis_sync.platforms.registry import build_client
from kuralis_sync.schemas.listing import RemoteListing
from kuralis_sync.services import migration, sync_lock
from kuralis_sync.services.job_tracker import JobContext, tracker
from kuralis_sync.services.reconciliation import ListingReconciler
from kuralis_sync.services.sync_scheduler import get_shop
from kuralis_sync.tasks.base import TrackedTask
from kuralis_sync.tasks.celery_app import celery_app
from kuralis_sync.tasks.retry_policy import is_transient
from kuralis_sync.utils import utcnow

logger = logging.getLogger(__name__)


@celery_app.task(
    base=TrackedTask,
    bind=True,
    name="kuralis_sync.tasks.listing_tasks.end_remote_listing",
    job_kind="EndListing",
)
def end_remote_listing(self, context: dict, listing_id: str, reason: str):
    """End a listing on its platform, then refresh it from the platform."""
    ctx = JobContext.from_payload(context)
    db = SyncSessionLocal()
    try:
        listing = migration.get_listing(db, ctx.account_id, uuid.UUID(listing_id))
        shop = listing.shop
        platform = Platform(listing.platform)

        with build_client(shop, platform) as client:
            client.end_item(listing.platform_item_id, reason)
            remote = client.get_item(listing.platform_item_id)

        if remote is None:
            listing.status = ListingStatus.ENDED.value
            listing.last_synced_at = utcnow()
        else:
            ListingReconciler(db, shop, platform).apply(remote)
        db.commit()

        logger.info(f"Successfully ended {platform.value} listing {listing.platform_item_id}")
        return {"listing_id": listing_id, "status": listing.status}

    finally:
        db.close()


@celery_app.task(
    base=TrackedTask,
    bind=True,
    name="kuralis_sync.tasks.listing_tasks.apply_listing_notification",
    job_kind="ApplyListingNotification",
)
def apply_listing_notification(self, context: dict, listing: dict):
    """Apply a webhook's listing snapshot, last write wins."""
    ctx = JobContext.from_payload(context)
    remote = RemoteListing.model_validate(listing)
    db = SyncSessionLocal()
    try:
        shop = get_shop(db, ctx.account_id)
        result = ListingReconciler(db, shop, remote.platform).apply(remote)
        db.commit()
        logger.info(f"Applied {remote.platform.value} notification for {remote.platform_item_id}: {result}")
        return {"platform_item_id": remote.platform_item_id, "result": result}

    finally:
        db.close()


@celery_app.task(
    base=TrackedTask,
    bind=True,
    name="kuralis_sync.tasks.listing_tasks.migrate_listings",
    job_kind="MigrateListings",
)
def migrate_listings(self, context: dict, listing_ids: list[str]):
    """Create local products for the given listings, skipping migrated ones."""
    ctx = JobContext.from_payload(context)
    db = SyncSessionLocal()
    try:
        get_shop(db, ctx.account_id)
        if not listing_ids:
            tracker.update_progress(self.request.id, message="No listings to process")
            return {"migrated": 0, "skipped": 0, "failed": 0, "failures": []}

        return migration.migrate_listings(
            db, ctx.account_id, listing_ids,
            on_progress=partial(tracker.update_progress, self.request.id),
        )

    finally:
        db.close()


@celery_app.task(
    base=TrackedTask,
    bind=True,
    name="kuralis_sync.tasks.listing_tasks.push_inventory",
    job_kind=sync_lock.PUSH_INVENTORY_KIND,
    exclusive=True,
    requeue_when_locked=True,
)
def push_inventory(self, context: dict, product_id: str, platforms: list[str] | None = None):
    """Push a product's quantity and price to every linked active listing.

    Platforms that succeed are not rolled back when another fails. The job
    raises so the retry policy re-runs it, and the retry only pushes to the
    platforms that failed. ``platforms`` limits the push when given.

    Pushes for one account share a lock, so a push that finds it taken is
    re-enqueued rather than dropped.
    """
    ctx = JobContext.from_payload(context)
    db = SyncSessionLocal()
    try:
        product = db.get(KuralisProduct, uuid.UUID(product_id))
        if product is None or product.shop_id != ctx.account_id:
            raise RecordNotFoundError(f"Product {product_id} not found")
        shop = product.shop

        fields = {"quantity": product.quantity, "price": product.price}
        pushed = []
        failures: dict[str, Exception] = {}

        for listing in product.listings:
            if listing.status != ListingStatus.ACTIVE.value:
                continue
            if platforms and listing.platform not in platforms:
                continue
            try:
                with build_client(shop, Platform(listing.platform)) as client:
                    client.update_item(listing.platform_item_id, fields)
            except (SyncError, httpx.HTTPError) as e:
                logger.error(f"Failed to push inventory to {listing.platform} item {listing.platform_item_id}: {e}")
                failures[listing.platform] = e
                continue
            listing.quantity = product.quantity
            listing.price = product.price
            listing.last_synced_at = utcnow()
            pushed.append(listing.platform)

        product.last_inventory_update = utcnow()
        db.commit()

        if failures:
            message = "; ".join(f"{platform}: {exc}" for platform, exc in failures.items())
            if any(is_transient(exc) for exc in failures.values()):
                raise PartialSyncError(f"Inventory push incomplete ({message})", failed_platforms=list(failures))
            raise PlatformRequestError(f"Inventory push rejected ({message})")

        logger.info(f"Pushed inventory for product {product_id} to {pushed}")
        return {"product_id": product_id, "pushed": pushed}

    finally:
        db.close()
