"""Inbound platform notification endpoints.

Both endpoints acknowledge anything they can authenticate, including events
they ignore, so platforms do not disable the subscription.
"""

import json
import logging

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from kuralis_sync.enums import PLATFORM_QUEUES
from kuralis_sync.models.base import get_db
from kuralis_sync.services import notifications
from kuralis_sync.services.job_tracker import JobContext

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


async def _enqueue(db: AsyncSession, notification: notifications.ListingNotification | None) -> dict:
    if notification is None:
        return {"status": "ignored"}

    shop = await db.run_sync(notifications.find_shop, notification)
    if shop is None:
        logger.warning(f"No shop for {notification.platform.value} notification recipient {notification.recipient}")
        return {"status": "ignored"}

    from kuralis_sync.tasks.listing_tasks import apply_listing_notification

    task = apply_listing_notification.apply_async(
        args=[JobContext(account_id=shop.id).to_payload(), notification.listing.model_dump(mode="json")],
        queue=PLATFORM_QUEUES[notification.platform],
    )
    logger.info(
        f"Queued {notification.platform.value} {notification.event} for item "
        f"{notification.listing.platform_item_id} ({task.id})"
    )
    return {"status": "queued", "job_id": task.id}


@router.post("/ebay")
async def ebay_notification(request: Request, db: AsyncSession = Depends(get_db)):
    """eBay Platform Notification (SOAP)."""
    body = await request.body()
    if not notifications.verify_ebay_signature(body):
        raise HTTPException(status_code=401, detail="Invalid notification signature")
    return await _enqueue(db, notifications.parse_ebay_notification(body))


@router.post("/shopify")
async def shopify_webhook(
    request: Request,
    db: AsyncSession = Depends(get_db),
    x_shopify_topic: str | None = Header(None),
    x_shopify_shop_domain: str | None = Header(None),
    x_shopify_hmac_sha256: str | None = Header(None),
):
    """Shopify products/create and products/update webhooks."""
    body = await request.body()
    if not notifications.verify_shopify_hmac(body, x_shopify_hmac_sha256):
        raise HTTPException(status_code=401, detail="Invalid webhook signature")
    try:
        payload = json.loads(body)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid JSON body")
    return await _enqueue(db, notifications.parse_shopify_webhook(payload, x_shopify_shop_domain, x_shopify_topic))
