"""Parsing and verification of inbound platform notifications.

eBay Platform Notifications arrive as SOAP envelopes whose body is a
GetItem-style response; Shopify sends ``products/update`` webhooks as JSON
signed with the app secret.
"""

import base64
import hashlib
import hmac
import logging
from dataclasses import dataclass

from bs4 import BeautifulSoup
from sqlalchemy import select
from sqlalchemy.orm import Session

from kuralis_sync.config import get_settings
from kuralis_sync.enums import Platform
from kuralis_sync.models.shop import Shop
from kuralis_sync.platforms.ebay import child_text, parse_item
from kuralis_sync.platforms.shopify import parse_product
from kuralis_sync.schemas.listing import RemoteListing
from kuralis_sync.utils import parse_datetime

logger = logging.getLogger(__name__)

# Events that carry a full Item we can apply
EBAY_LISTING_EVENTS = {"ItemListed", "ItemRevised", "ItemSold", "ItemClosed", "FixedPriceTransaction",
                       "AuctionCheckoutComplete", "ItemSuspended"}
SHOPIFY_LISTING_TOPICS = {"products/create", "products/update"}


@dataclass(frozen=True)
class ListingNotification:
    platform: Platform
    event: str | None
    recipient: str | None  # eBay user id or Shopify shop domain
    listing: RemoteListing


def parse_ebay_notification(body: bytes | str) -> ListingNotification | None:
    """Extract the listing from an eBay SOAP notification. None if it carries no item."""
    doc = BeautifulSoup(body, "xml")
    response = doc.find("Body")
    response = response.find(True, recursive=False) if response is not None else None
    if response is None:
        return None

    event = child_text(response, "NotificationEventName")
    item = response.find("Item", recursive=False)
    if item is None or child_text(item, "ItemID") is None:
        logger.info(f"eBay notification {event} carries no item, ignoring")
        return None
    if event and event not in EBAY_LISTING_EVENTS:
        logger.info(f"Ignoring eBay notification event {event}")
        return None

    observed_at = parse_datetime(child_text(response, "Timestamp"))
    return ListingNotification(
        platform=Platform.EBAY,
        event=event,
        recipient=child_text(response, "RecipientUserID"),
        listing=parse_item(item, observed_at),
    )


def verify_ebay_signature(body: bytes | str) -> bool:
    """Check NotificationSignature = base64(md5(Timestamp + DevID + AppID + CertID))."""
    settings = get_settings()
    if not settings.ebay_dev_id:
        return True

    doc = BeautifulSoup(body, "xml")
    signature = doc.find("NotificationSignature")
    timestamp = doc.find("Timestamp")
    if signature is None or timestamp is None:
        return False

    raw = f"{timestamp.get_text(strip=True)}{settings.ebay_dev_id}{settings.ebay_client_id}{settings.ebay_client_secret}"
    expected = base64.b64encode(hashlib.md5(raw.encode()).digest()).decode()
    return hmac.compare_digest(expected, signature.get_text(strip=True))


def parse_shopify_webhook(payload: dict, shop_domain: str | None, topic: str | None) -> ListingNotification | None:
    if topic and topic not in SHOPIFY_LISTING_TOPICS:
        logger.info(f"Ignoring Shopify webhook topic {topic}")
        return None
    if not isinstance(payload, dict) or "id" not in payload:
        return None
    return ListingNotification(
        platform=Platform.SHOPIFY,
        event=topic,
        recipient=shop_domain,
        listing=parse_product(payload),
    )


def verify_shopify_hmac(body: bytes, header_hmac: str | None) -> bool:
    secret = get_settings().shopify_webhook_secret
    if not secret:
        return True
    if not header_hmac:
        return False
    digest = hmac.new(secret.encode(), body, hashlib.sha256).digest()
    return hmac.compare_digest(base64.b64encode(digest).decode(), header_hmac)


def find_shop(db: Session, notification: ListingNotification) -> Shop | None:
    if not notification.recipient:
        return None
    if notification.platform == Platform.EBAY:
        column = Shop.ebay_user_id
    else:
        column = Shop.shopify_domain
    return db.execute(select(Shop).where(column == notification.recipient)).scalar_one_or_none()
