"""Order sync: pull platform orders and hold back the stock they sold.

Recent orders are re-read on every run so status changes (payment,
cancellation) land quickly. Every six hours the run reaches back over the
whole extended window to pick up late changes to older orders.
"""

import logging
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable

import redis
from sqlalchemy import select
from sqlalchemy.orm import Session

from kuralis_sync.enums import PLATFORM_LABELS, PLATFORM_ORDER_KINDS, Platform
from kuralis_sync.errors import PermanentSyncError, PlatformNotConfiguredError, SyncTimeoutError
from kuralis_sync.models.kuralis_product import KuralisProduct
from kuralis_sync.models.listing import Listing
from kuralis_sync.models.order import Order, OrderItem
from kuralis_sync.models.shop import Shop
from kuralis_sync.schemas.order import RemoteOrder, RemoteOrderItem
from kuralis_sync.services import sync_lock
from kuralis_sync.services.sync_scheduler import determine_sync_window, get_shop
from kuralis_sync.utils import ensure_aware, utcnow

logger = logging.getLogger(__name__)

RECENT_WINDOW = timedelta(hours=72)
EXTENDED_WINDOW = timedelta(days=30)
EXTENDED_CHECK_INTERVAL = timedelta(hours=6)
EXTENDED_CHECK_PREFIX = "orders_extended_check"

BATCH_SIZE = 50

ORDER_FIELDS = (
    "fulfillment_status", "payment_status", "subtotal", "total_price",
    "shipping_cost", "customer_name", "paid_at", "cancelled_at",
)


@dataclass(frozen=True)
class OrderWindow:
    """Orders placed at or after ``since``. ``extended`` covers the whole extended window."""

    since: datetime
    extended: bool = False


def extended_check_key(account_id, platform: Platform) -> str:
    return f"{EXTENDED_CHECK_PREFIX}:{account_id}:{platform.value}"


def extended_check_due(account_id, platform: Platform, client: redis.Redis | None = None) -> bool:
    client = client or sync_lock.get_redis()
    return not client.exists(extended_check_key(account_id, platform))


def mark_extended_check(account_id, platform: Platform, client: redis.Redis | None = None) -> None:
    client = client or sync_lock.get_redis()
    client.set(
        extended_check_key(account_id, platform),
        utcnow().isoformat(),
        ex=int(EXTENDED_CHECK_INTERVAL.total_seconds()),
    )


def determine_order_window(
    db: Session,
    account_id: uuid.UUID,
    platform: Platform,
    now: datetime | None = None,
    client: redis.Redis | None = None,
) -> OrderWindow:
    """Pick the order window from the last completed order sync.

    Never starts later than the recent window, never earlier than the
    extended one. No history, or a due extended check, reads the full
    extended window.
    """
    now = now or utcnow()
    oldest = now - EXTENDED_WINDOW

    checkpoint = determine_sync_window(db, account_id, PLATFORM_ORDER_KINDS[platform]).since
    if checkpoint is None or extended_check_due(account_id, platform, client=client):
        return OrderWindow(since=oldest, extended=True)

    since = min(checkpoint, now - RECENT_WINDOW)
    return OrderWindow(since=max(since, oldest))


class OrderReconciler:
    """Applies remote orders to one shop's order records for one platform.

    Each line item remembers how much stock it holds back in
    ``allocated_quantity``; applying an order moves product stock only by the
    difference, and a cancelled order gives all of it back.
    """

    def __init__(
        self,
        db: Session,
        shop: Shop,
        platform: Platform,
        deadline_seconds: float | None = None,
        on_progress: Callable[[int, str], None] | None = None,
    ):
        self.db = db
        self.shop = shop
        self.platform = platform
        self.deadline = time.monotonic() + deadline_seconds if deadline_seconds else None
        self.on_progress = on_progress
        self.counts = {"found": 0, "new": 0, "updated": 0, "allocated": 0, "released": 0, "insufficient": 0, "failed": 0}
        self.changed_products: set[uuid.UUID] = set()

    def run(self, client, since: datetime) -> dict[str, int]:
        for remote in client.list_orders_since(since):
            self._check_deadline()
            self.counts["found"] += 1
            try:
                self.counts[self.apply(remote)] += 1
            except PermanentSyncError as e:
                self.counts["failed"] += 1
                logger.warning(f"[{self.platform.value}/{self.shop.id}] Failed to apply order {remote.platform_order_id}: {e}")

            if self.counts["found"] % BATCH_SIZE == 0:
                self.db.commit()
                self._report()

        self.db.commit()
        self._report()
        logger.info(f"[{self.platform.value}/{self.shop.id}] Reconciled orders: {self.counts}")
        return dict(self.counts)

    def apply(self, remote: RemoteOrder) -> str:
        """Upsert one order and its items. Returns 'new' or 'updated'. Does not commit."""
        if remote.platform != self.platform:
            raise PermanentSyncError(f"Cannot apply {remote.platform.value} order to {self.platform.value}")

        order = self.db.execute(
            select(Order).where(
                Order.platform == self.platform.value,
                Order.platform_order_id == remote.platform_order_id,
            )
        ).scalar_one_or_none()

        result = "updated"
        if order is None:
            order = Order(shop_id=self.shop.id, platform=self.platform.value, platform_order_id=remote.platform_order_id)
            self.db.add(order)
            result = "new"
        elif order.shop_id != self.shop.id:
            raise PermanentSyncError(f"{self.platform.value} order {remote.platform_order_id} belongs to another shop")

        for field in ORDER_FIELDS:
            setattr(order, field, getattr(remote, field))
        order.order_placed_at = remote.placed_at
        order.last_synced_at = utcnow()

        items = {item.platform_item_id: item for item in order.items}
        for remote_item in remote.items:
            item = items.get(remote_item.platform_item_id)
            if item is None:
                item = OrderItem(platform_item_id=remote_item.platform_item_id, allocated_quantity=0)
                order.items.append(item)
                items[remote_item.platform_item_id] = item
            self._apply_item(order, item, remote_item)

        self.db.flush()
        return result

    def _apply_item(self, order: Order, item: OrderItem, remote_item: RemoteOrderItem) -> None:
        item.title = remote_item.title
        item.quantity = remote_item.quantity

        product = self._product_for(remote_item.platform_item_id)
        if item.kuralis_product is not None and item.kuralis_product is not product and item.allocated_quantity:
            # Listing was relinked: give the old product its stock back
            self._move_stock(item.kuralis_product, item.allocated_quantity)
            item.allocated_quantity = 0
        item.kuralis_product = product

        if product is None or not self.shop.inventory_sync:
            return
        if not self._placed_after_import(order, product):
            logger.debug(
                f"Skipping stock adjustment for historical order {order.platform_order_id} "
                f"(placed {order.order_placed_at}, product imported {product.imported_at})"
            )
            return

        target = 0 if order.cancelled else item.quantity
        delta = target - item.allocated_quantity
        if delta > 0 and product.quantity < delta:
            self.counts["insufficient"] += 1
            logger.warning(
                f"Insufficient stock for {product.title} on order {order.platform_order_id}: "
                f"need {delta}, have {product.quantity}"
            )
            return
        if delta:
            self._move_stock(product, -delta)
            self.counts["allocated" if delta > 0 else "released"] += 1
        item.allocated_quantity = target

    def _product_for(self, platform_item_id: str) -> KuralisProduct | None:
        listing = self.db.execute(
            select(Listing).where(
                Listing.platform == self.platform.value,
                Listing.platform_item_id == platform_item_id,
                Listing.shop_id == self.shop.id,
            )
        ).scalar_one_or_none()
        return listing.kuralis_product if listing is not None else None

    def _move_stock(self, product: KuralisProduct, amount: int) -> None:
        product.quantity = product.quantity + amount
        product.last_inventory_update = utcnow()
        self.changed_products.add(product.id)

    @staticmethod
    def _placed_after_import(order: Order, product: KuralisProduct) -> bool:
        placed_at = ensure_aware(order.order_placed_at)
        imported_at = ensure_aware(product.imported_at)
        return placed_at is not None and imported_at is not None and placed_at > imported_at

    def _check_deadline(self) -> None:
        if self.deadline is not None and time.monotonic() > self.deadline:
            self.db.commit()
            raise SyncTimeoutError(
                f"{self.platform.value} order sync for shop {self.shop.id} exceeded its deadline "
                f"after {self.counts['found']} orders"
            )

    def _report(self) -> None:
        if self.on_progress:
            self.on_progress(self.counts["found"], f"Processed {self.counts['found']} orders")


def trigger_order_sync(db: Session, account_id: uuid.UUID, platform: Platform) -> dict:
    """Enqueue an order sync for one platform and return immediately."""
    from kuralis_sync.services.job_tracker import JobContext
    from kuralis_sync.tasks.order_tasks import ORDER_TASKS

    shop = get_shop(db, account_id)
    if platform not in shop.connected_platforms():
        raise PlatformNotConfiguredError(f"{PLATFORM_LABELS[platform]} is not connected for shop {account_id}")

    result = ORDER_TASKS[platform].delay(JobContext(account_id=account_id).to_payload())
    logger.info(f"Triggered {PLATFORM_ORDER_KINDS[platform]} for shop {account_id}")
    return {
        "status": "queued",
        "message": f"Syncing {PLATFORM_LABELS[platform]} orders.",
        "job_id": result.id,
    }
