"""Listing import tasks and the periodic quick sync dispatcher."""

import logging

from kuralis_sync.config import get_settings
from kuralis_sync.enums import PLATFORM_IMPORT_KINDS, Platform, check_exhaustive
from kuralis_sync.models.base import SyncSessionLocal
from kuralis_sync.models.job_run import JobRun  # noqa: F401
from kuralis_sync.models.kuralis_product import KuralisProduct  # noqa: F401
from kuralis_sync.models.listing import Listing  # noqa: F401
from kuralis_sync.models.shop import Shop
from kuralis_sync.platforms.registry import build_client
from kuralis_sync.services import sync_lock
from kuralis_sync.services.job_tracker import JobContext, tracker
from kuralis_sync.services.reconciliation import ListingReconciler
from kuralis_sync.services.sync_scheduler import determine_sync_window, get_shop
from kuralis_sync.tasks.base import TrackedTask
from kuralis_sync.tasks.celery_app import celery_app
from kuralis_sync.utils import utcnow

logger = logging.getLogger(__name__)


def run_listing_import(task, payload: dict, platform: Platform) -> dict:
    """Import one platform's listings for a shop.

    Runs inside the task's (shop, kind) lock, so the sync window computed
    here can never be shared by two overlapping imports.
    """
    context = JobContext.from_payload(payload)
    kind = PLATFORM_IMPORT_KINDS[platform]
    job_id = task.request.id
    settings = get_settings()

    db = SyncSessionLocal()
    try:
        shop = get_shop(db, context.account_id)

        window = determine_sync_window(db, context.account_id, kind)
        if window.is_full:
            tracker.update_progress(job_id, processed=0, message="Starting full import...")
        else:
            tracker.update_progress(job_id, processed=0, message=f"Starting import of changes since {window.since}")

        def report(processed: int, message: str):
            tracker.update_progress(job_id, processed=processed, message=message)

        with build_client(shop, platform) as client:
            reconciler = ListingReconciler(
                db, shop, platform,
                deadline_seconds=settings.sync_deadline_seconds,
                on_progress=report,
            )
            counts = reconciler.run(client, window.since)

        if platform == Platform.EBAY:
            shop.last_listing_import_at = utcnow()
            db.commit()

        tracker.update_progress(
            job_id,
            total=counts["found"],
            processed=counts["found"],
            message=f"Import completed: {counts['found']} listings processed",
        )
        logger.info(f"Imported {platform.value} listings for shop {shop.id}: {counts}")
        return {**counts, "full_sync": window.is_full}

    finally:
        db.close()


@celery_app.task(
    base=TrackedTask,
    bind=True,
    name="kuralis_sync.tasks.sync_tasks.import_ebay_listings",
    job_kind=PLATFORM_IMPORT_KINDS[Platform.EBAY],
    exclusive=True,
)
def import_ebay_listings(self, context: dict):
    """Import eBay listings, incrementally from the last completed run when there is one."""
    return run_listing_import(self, context, Platform.EBAY)


@celery_app.task(
    base=TrackedTask,
    bind=True,
    name="kuralis_sync.tasks.sync_tasks.import_shopify_listings",
    job_kind=PLATFORM_IMPORT_KINDS[Platform.SHOPIFY],
    exclusive=True,
)
def import_shopify_listings(self, context: dict):
    """Import Shopify products, incrementally from the last completed run when there is one."""
    return run_listing_import(self, context, Platform.SHOPIFY)


IMPORT_TASKS = {
    Platform.EBAY: import_ebay_listings,
    Platform.SHOPIFY: import_shopify_listings,
}
check_exhaustive(IMPORT_TASKS)


@celery_app.task(name="kuralis_sync.tasks.sync_tasks.dispatch_quick_syncs")
def dispatch_quick_syncs():
    """Enqueue a quick sync per active shop and connected platform."""
    db = SyncSessionLocal()
    try:
        shops = db.query(Shop).filter(
            Shop.is_active == True,  # noqa: E712
            Shop.sync_enabled == True,  # noqa: E712
        ).all()

        dispatched = 0
        skipped = 0
        for shop in shops:
            for platform in shop.connected_platforms():
                # A sync of this kind is still running; the next tick picks it up
                if sync_lock.is_locked(shop.id, PLATFORM_IMPORT_KINDS[platform]):
                    skipped += 1
                    continue
                IMPORT_TASKS[platform].delay(JobContext(account_id=shop.id).to_payload())
                dispatched += 1

        logger.info(f"Dispatched {dispatched} quick syncs ({skipped} skipped, already running)")
        return {"dispatched": dispatched, "skipped": skipped}

    finally:
        db.close()
