"""Listing reconciliation: merge remote listing state into local listing records."""

import logging
import time
from typing import Any, Callable

from sqlalchemy import select
from sqlalchemy.orm import Session

from kuralis_sync.enums import Platform
from kuralis_sync.errors import PermanentSyncError, SyncTimeoutError
from kuralis_sync.models.listing import LISTING_CLASSES, Listing
from kuralis_sync.models.shop import Shop
from kuralis_sync.schemas.listing import RemoteListing
from kuralis_sync.utils import ensure_aware, utcnow

logger = logging.getLogger(__name__)

BATCH_SIZE = 100

# Platform-native fields: the remote value always wins
SYNCED_FIELDS = ("title", "sku", "price", "quantity", "status")
EXTRA_FIELDS = ("listing_format", "end_time", "quantity_sold", "handle", "description")


def _remote_value(remote: RemoteListing, field: str) -> Any:
    value = getattr(remote, field)
    if field == "status":
        return value.value
    return value


class ListingReconciler:
    """Applies remote listings to one shop's listing records for one platform.

    ``run`` streams a platform client's changes; ``apply`` handles a single
    record and is also used for webhooks and post-action refreshes.
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

    def run(self, client, since=None) -> dict[str, int]:
        """Fetch everything changed since ``since`` (all when None) and apply it."""
        counts = {"found": 0, "new": 0, "updated": 0, "unchanged": 0, "stale": 0, "failed": 0}

        for remote in client.list_changed_since(since):
            self._check_deadline(counts["found"])
            counts["found"] += 1
            try:
                counts[self.apply(remote)] += 1
            except PermanentSyncError as e:
                counts["failed"] += 1
                logger.warning(f"[{self.platform.value}/{self.shop.id}] Failed to apply {remote.platform_item_id}: {e}")

            if counts["found"] % BATCH_SIZE == 0:
                self.db.commit()
                self._report(counts)

        self.db.commit()
        self._report(counts)
        logger.info(f"[{self.platform.value}/{self.shop.id}] Reconciled listings: {counts}")
        return counts

    def apply(self, remote: RemoteListing) -> str:
        """Merge one remote listing. Returns 'new', 'updated', 'unchanged' or 'stale'.

        Does not commit.
        """
        if remote.platform != self.platform:
            raise PermanentSyncError(f"Cannot apply {remote.platform.value} listing to {self.platform.value}")

        now = utcnow()
        existing = self.db.execute(
            select(Listing).where(
                Listing.platform == self.platform.value,
                Listing.platform_item_id == remote.platform_item_id,
            )
        ).scalar_one_or_none()

        if existing is None:
            listing = LISTING_CLASSES[self.platform](
                shop_id=self.shop.id,
                platform_item_id=remote.platform_item_id,
                remote_updated_at=remote.updated_at,
                last_synced_at=now,
                extra_data=remote.extra_data,
            )
            for field in SYNCED_FIELDS + EXTRA_FIELDS:
                setattr(listing, field, _remote_value(remote, field))
            self.db.add(listing)
            self.db.flush()
            return "new"

        if existing.shop_id != self.shop.id:
            raise PermanentSyncError(
                f"{self.platform.value} item {remote.platform_item_id} belongs to another shop"
            )

        stored_at = ensure_aware(existing.remote_updated_at)
        if stored_at and remote.updated_at and remote.updated_at < stored_at:
            logger.debug(f"Skipping stale update for {remote.platform_item_id} ({remote.updated_at} < {stored_at})")
            return "stale"

        changed = {}
        for field in SYNCED_FIELDS:
            value = _remote_value(remote, field)
            if getattr(existing, field) != value:
                changed[field] = (getattr(existing, field), value)
                setattr(existing, field, value)

        for field in EXTRA_FIELDS:
            value = _remote_value(remote, field)
            if value is not None:
                setattr(existing, field, value)
        if remote.extra_data:
            existing.extra_data = {**(existing.extra_data or {}), **remote.extra_data}

        if remote.updated_at:
            existing.remote_updated_at = remote.updated_at
        existing.last_synced_at = now

        if changed:
            logger.info(f"Changes detected for {remote.platform_item_id}: {changed}")
            return "updated"
        return "unchanged"

    def _check_deadline(self, processed: int) -> None:
        if self.deadline is not None and time.monotonic() > self.deadline:
            self.db.commit()
            raise SyncTimeoutError(
                f"{self.platform.value} sync for shop {self.shop.id} exceeded its deadline after {processed} listings"
            )

    def _report(self, counts: dict[str, int]) -> None:
        if self.on_progress:
            self.on_progress(counts["found"], f"Processed {counts['found']} listings")
