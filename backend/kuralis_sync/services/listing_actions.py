"""Operator actions on individual listings."""

import logging
import uuid

from sqlalchemy.orm import Session

from kuralis_sync.enums import (
    PLATFORM_DEFAULT_END_REASONS, PLATFORM_LABELS, PLATFORM_QUEUES, ListingStatus, Platform,
)
from kuralis_sync.services.migration import get_listing

logger = logging.getLogger(__name__)


def end_listing(db: Session, account_id: uuid.UUID, listing_id: uuid.UUID, reason: str | None = None) -> dict:
    """Mark a listing as ending and enqueue the remote end call.

    Raises RecordNotFoundError for a listing the account does not own, before
    anything is enqueued. The final status arrives with the next sync or
    webhook.
    """
    from kuralis_sync.services.job_tracker import JobContext
    from kuralis_sync.tasks.listing_tasks import end_remote_listing

    listing = get_listing(db, account_id, listing_id)
    platform = Platform(listing.platform)
    label = PLATFORM_LABELS[platform]

    if listing.status == ListingStatus.ENDED.value:
        return {"status": "ended", "message": f"{label} listing has already ended.", "job_id": None}

    reason = reason or PLATFORM_DEFAULT_END_REASONS[platform]
    listing.status = ListingStatus.ENDING.value
    db.commit()

    result = end_remote_listing.apply_async(
        args=[JobContext(account_id=account_id).to_payload(), str(listing.id), reason],
        queue=PLATFORM_QUEUES[platform],
    )
    logger.info(f"Queued end of {platform.value} listing {listing.platform_item_id} ({reason})")
    return {
        "status": "queued",
        "message": f"{label} listing will be ended. This may take a moment.",
        "job_id": result.id,
    }
