"""Order sync tasks and their periodic dispatcher."""

import logging

from kuralis_sync.config import get_settings
from kuralis_sync.enums import PLATFORM_LABELS, PLATFORM_ORDER_KINDS, Platform, check_exhaustive
from kuralis_sync.models.base import SyncSessionLocal
from kuralis_sync.models.job_run import JobRun  # noqa: F401
from kuralis_sync.models.kuralis_product import KuralisProduct  # noqa: F401
from kuralis_sync.models.listing import Listing  # noqa: F401
from kuralis_sync.models.order import Order  # noqa: F401
from kuralis_sync.models.shop import Shop
from kuralis_sync.platforms.registry import build_client
from kuralis_sync.services import sync_lock
from kuralis_sync.services.job_tracker import JobContext, tracker
from kuralis_sync.services.orders import OrderReconciler, determine_order_window, mark_extended_check
from kuralis_sync.services.sync_scheduler import get_shop
from kuralis_sync.tasks.base import TrackedTask
from kuralis_sync.tasks.celery_app import celery_app
from kuralis_sync.tasks.listing_tasks import push_inventory

logger = logging.getLogger(__name__)

# Pushes wait for the order sync to release its lock
PUSH_DELAY_SECONDS = 30


def run_order_sync(task, payload: dict, platform: Platform) -> dict:
    """Sync one platform's orders for a shop, then push changed stock everywhere."""
    context = JobContext.from_payload(payload)
    job_id = task.request.id
    settings = get_settings()

    db = SyncSessionLocal()
    try:
        shop = get_shop(db, context.account_id)
        window = determine_order_window(db, context.account_id, platform)
        tracker.update_progress(
            job_id, processed=0, message=f"Fetching {PLATFORM_LABELS[platform]} orders since {window.since}",
        )

        def report(processed: int, message: str):
            tracker.update_progress(job_id, processed=processed, message=message)

        with build_client(shop, platform) as client:
            reconciler = OrderReconciler(
                db, shop, platform,
                deadline_seconds=settings.sync_deadline_seconds,
                on_progress=report,
            )
            counts = reconciler.run(client, window.since)

        if window.extended:
            mark_extended_check(context.account_id, platform)

        for product_id in sorted(reconciler.changed_products, key=str):
            push_inventory.apply_async(
                args=[JobContext(account_id=context.account_id).to_payload(), str(product_id)],
                countdown=PUSH_DELAY_SECONDS,
            )

        tracker.update_progress(
            job_id,
            total=counts["found"],
            processed=counts["found"],
            message=f"Order sync completed: {counts['found']} orders processed",
        )
        logger.info(f"Synced {platform.value} orders for shop {shop.id}: {counts}")
        return {**counts, "extended": window.extended, "pushed_products": len(reconciler.changed_products)}

    finally:
        db.close()


@celery_app.task(
    base=TrackedTask,
    bind=True,
    name="kuralis_sync.tasks.order_tasks.sync_ebay_orders",
    job_kind=PLATFORM_ORDER_KINDS[Platform.EBAY],
    exclusive=True,
)
def sync_ebay_orders(self, context: dict):
    """Pull recent eBay orders and allocate the stock they sold."""
    return run_order_sync(self, context, Platform.EBAY)


@celery_app.task(
    base=TrackedTask,
    bind=True,
    name="kuralis_sync.tasks.order_tasks.sync_shopify_orders",
    job_kind=PLATFORM_ORDER_KINDS[Platform.SHOPIFY],
    exclusive=True,
)
def sync_shopify_orders(self, context: dict):
    """Pull recent Shopify orders and allocate the stock they sold."""
    return run_order_sync(self, context, Platform.SHOPIFY)


ORDER_TASKS = {
    Platform.EBAY: sync_ebay_orders,
    Platform.SHOPIFY: sync_shopify_orders,
}
check_exhaustive(ORDER_TASKS)


@celery_app.task(name="kuralis_sync.tasks.order_tasks.dispatch_order_syncs")
def dispatch_order_syncs():
    """Enqueue an order sync per active shop and connected platform."""
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
                if sync_lock.is_locked(shop.id, PLATFORM_ORDER_KINDS[platform]):
                    skipped += 1
                    continue
                ORDER_TASKS[platform].delay(JobContext(account_id=shop.id).to_payload())
                dispatched += 1

        logger.info(f"Dispatched {dispatched} order syncs ({skipped} skipped, already running)")
        return {"dispatched": dispatched, "skipped": skipped}

    finally:
        db.close()
