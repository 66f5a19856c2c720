"""eBay Trading API client.

The Trading API is XML over HTTP POST; the call name travels in a header.
Responses carry an ``Ack`` of Success, Warning, Failure or PartialFailure.
Orders come from the JSON Fulfillment API instead.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Iterator
from xml.sax.saxutils import escape

from bs4 import BeautifulSoup

from kuralis_sync.enums import ListingStatus, Platform
from kuralis_sync.errors import PlatformRateLimitError, PlatformRequestError
from kuralis_sync.platforms.base import PlatformClient
from kuralis_sync.platforms.registry import register_platform
from kuralis_sync.schemas.listing import RemoteListing
from kuralis_sync.schemas.order import RemoteOrder, RemoteOrderItem
from kuralis_sync.utils import dig, parse_datetime, to_decimal, to_int, utcnow

logger = logging.getLogger(__name__)

EBAY_NS = "urn:ebay:apis:eBLBaseComponents"
ENTRIES_PER_PAGE = 200
MAX_TIME_RANGE_DAYS = 120  # GetSellerList rejects wider StartTime windows
FULL_SYNC_FALLBACK_DAYS = 3 * 365
ORDERS_PER_PAGE = 100

CALL_LIMIT_ERROR = "518"
ITEM_NOT_FOUND_ERRORS = {"17", "21919301"}
ALREADY_ENDED_ERRORS = {"1047"}

STATUS_MAP = {
    "active": ListingStatus.ACTIVE,
    "completed": ListingStatus.ENDED,
    "ended": ListingStatus.ENDED,
}


def child_text(tag, path: str) -> str | None:
    """Text of a nested child, e.g. ``child_text(item, "SellingStatus/CurrentPrice")``."""
    node = tag
    for name in path.split("/"):
        node = node.find(name, recursive=False) if node is not None else None
    if node is None:
        return None
    text = node.get_text(strip=True)
    return text or None


def parse_item(item, observed_at: datetime | None = None) -> RemoteListing:
    """Normalize an ``<Item>`` element from GetSellerList, GetItem or a notification."""
    listed = to_int(child_text(item, "Quantity")) or 0
    sold = to_int(child_text(item, "SellingStatus/QuantitySold")) or 0
    raw_status = (child_text(item, "SellingStatus/ListingStatus") or "active").lower()

    return RemoteListing(
        platform=Platform.EBAY,
        platform_item_id=child_text(item, "ItemID"),
        title=child_text(item, "Title"),
        sku=child_text(item, "SKU"),
        price=to_decimal(child_text(item, "SellingStatus/CurrentPrice") or child_text(item, "StartPrice")),
        quantity=max(listed - sold, 0),
        quantity_sold=sold,
        status=STATUS_MAP.get(raw_status, ListingStatus.ACTIVE),
        updated_at=observed_at,
        listing_format=child_text(item, "ListingType"),
        end_time=parse_datetime(child_text(item, "ListingDetails/EndTime")),
        description=child_text(item, "Description"),
        extra_data={
            "category_id": child_text(item, "PrimaryCategory/CategoryID"),
            "condition": child_text(item, "ConditionDisplayName"),
            "shipping_profile_id": child_text(item, "SellerProfiles/SellerShippingProfile/ShippingProfileID"),
            "ebay_status": raw_status,
        },
    )


def parse_order(order: dict) -> RemoteOrder:
    """Normalize a Fulfillment API order."""
    status = (order.get("orderFulfillmentStatus") or "").lower() or None
    if dig(order, "cancelStatus", "cancelState") == "CANCELED":
        status = "cancelled"

    shipping = to_decimal(dig(order, "pricingSummary", "deliveryCost", "value"))
    # Discounts are negative amounts
    discount = to_decimal(dig(order, "pricingSummary", "deliveryDiscount", "value"))
    if shipping is not None and discount is not None:
        shipping += discount

    return RemoteOrder(
        platform=Platform.EBAY,
        platform_order_id=order["orderId"],
        fulfillment_status=status,
        payment_status=(order.get("orderPaymentStatus") or "").lower() or None,
        subtotal=to_decimal(dig(order, "pricingSummary", "priceSubtotal", "value")),
        total_price=to_decimal(dig(order, "pricingSummary", "total", "value")),
        shipping_cost=shipping,
        customer_name=dig(order, "buyer", "username"),
        placed_at=parse_datetime(order.get("creationDate")),
        paid_at=parse_datetime(dig(order, "paymentSummary", "payments", 0, "paymentDate")),
        cancelled_at=parse_datetime(dig(order, "cancelStatus", "cancelledDate")) if status == "cancelled" else None,
        items=[
            RemoteOrderItem(
                platform_item_id=str(line["legacyItemId"]),
                title=line.get("title"),
                quantity=to_int(line.get("quantity")) or 0,
            )
            for line in order.get("lineItems") or []
            if line.get("legacyItemId")
        ],
    )


def _iso(value: datetime) -> str:
    return value.strftime("%Y-%m-%dT%H:%M:%S.000Z")


@register_platform(Platform.EBAY)
class EbayClient(PlatformClient):

    def _call(self, call_name: str, body: str) -> BeautifulSoup:
        """POST a Trading API call and return the parsed response document."""
        xml_request = (
            '<?xml version="1.0" encoding="utf-8"?>'
            f'<{call_name}Request xmlns="{EBAY_NS}">{body}</{call_name}Request>'
        )
        headers = {
            "X-EBAY-API-COMPATIBILITY-LEVEL": self.settings.ebay_compatibility_level,
            "X-EBAY-API-IAF-TOKEN": self.shop.ebay_token or "",
            "X-EBAY-API-DEV-NAME": self.settings.ebay_dev_id,
            "X-EBAY-API-APP-NAME": self.settings.ebay_client_id,
            "X-EBAY-API-CERT-NAME": self.settings.ebay_client_secret,
            "X-EBAY-API-CALL-NAME": call_name,
            "X-EBAY-API-SITEID": self.settings.ebay_site_id,
            "Content-Type": "text/xml",
        }
        resp = self._send("POST", self.settings.ebay_api_url, content=xml_request.encode(), headers=headers)
        doc = BeautifulSoup(resp.content, "xml")

        ack = doc.find("Ack")
        if ack is None or ack.get_text(strip=True) not in ("Success", "Warning"):
            self._raise_for_errors(call_name, doc)
        return doc

    def _raise_for_errors(self, call_name: str, doc: BeautifulSoup) -> None:
        errors = doc.find_all("Errors")
        codes = [child_text(err, "ErrorCode") for err in errors]
        message = "; ".join(
            child_text(err, "LongMessage") or child_text(err, "ShortMessage") or "Unknown error"
            for err in errors
        ) or "Unknown error"

        if CALL_LIMIT_ERROR in codes:
            raise PlatformRateLimitError(f"eBay {call_name} call limit reached: {message}")
        raise PlatformRequestError(f"eBay {call_name} failed: {message}", codes=codes)

    # --- Listing import ---

    def list_changed_since(self, since: datetime | None) -> Iterator[RemoteListing]:
        now = utcnow()
        if since is not None:
            logger.info(f"[ebay/{self.shop.id}] Fetching listings modified since {since}")
            yield from self._seller_list("ModTime", since, now)
            return

        oldest = self._oldest_listing_date()
        logger.info(f"[ebay/{self.shop.id}] Full sync back to {oldest}")
        end_time = now
        while end_time > oldest:
            start_time = max(end_time - timedelta(days=MAX_TIME_RANGE_DAYS), oldest)
            yield from self._seller_list("StartTime", start_time, end_time)
            end_time = start_time

    def _seller_list(self, window_field: str, start: datetime, end: datetime) -> Iterator[RemoteListing]:
        page = 1
        while True:
            doc = self._call("GetSellerList", (
                "<DetailLevel>ReturnAll</DetailLevel>"
                f"<{window_field}From>{_iso(start)}</{window_field}From>"
                f"<{window_field}To>{_iso(end)}</{window_field}To>"
                "<Pagination>"
                f"<EntriesPerPage>{ENTRIES_PER_PAGE}</EntriesPerPage>"
                f"<PageNumber>{page}</PageNumber>"
                "</Pagination>"
            ))
            observed_at = parse_datetime(child_text(doc.find("GetSellerListResponse"), "Timestamp")) or utcnow()
            items = doc.find_all("Item")
            if not items:
                return

            for item in items:
                yield parse_item(item, observed_at)

            total_pages = to_int(child_text(doc.find("PaginationResult"), "TotalNumberOfPages")) or 0
            logger.info(f"[ebay/{self.shop.id}] Processed page {page} of {total_pages} ({len(items)} listings)")
            if page >= total_pages:
                return
            page += 1

    def _oldest_listing_date(self) -> datetime:
        fallback = utcnow() - timedelta(days=FULL_SYNC_FALLBACK_DAYS)
        doc = self._call("GetMyeBaySelling", (
            "<ActiveList>"
            "<Sort>StartTime</Sort>"
            "<Pagination><EntriesPerPage>1</EntriesPerPage><PageNumber>1</PageNumber></Pagination>"
            "</ActiveList>"
        ))
        start_time = doc.find("StartTime")
        oldest = parse_datetime(start_time.get_text(strip=True)) if start_time else None
        if oldest is None:
            logger.info(f"[ebay/{self.shop.id}] Could not determine oldest listing date, falling back to 3 years")
            return fallback
        return oldest

    # --- Single item operations ---

    def get_item(self, item_id: str) -> RemoteListing | None:
        try:
            doc = self._call("GetItem", f"<ItemID>{escape(item_id)}</ItemID><DetailLevel>ReturnAll</DetailLevel>")
        except PlatformRequestError as e:
            if ITEM_NOT_FOUND_ERRORS & set(e.codes):
                return None
            raise
        item = doc.find("Item")
        if item is None:
            return None
        observed_at = parse_datetime(child_text(doc.find("GetItemResponse"), "Timestamp")) or utcnow()
        return parse_item(item, observed_at)

    def end_item(self, item_id: str, reason: str) -> None:
        try:
            self._call("EndFixedPriceItem", (
                f"<ItemID>{escape(item_id)}</ItemID>"
                f"<EndingReason>{escape(reason)}</EndingReason>"
            ))
        except PlatformRequestError as e:
            if ALREADY_ENDED_ERRORS & set(e.codes):
                logger.info(f"[ebay/{self.shop.id}] Item {item_id} already ended")
                return
            raise
        logger.info(f"[ebay/{self.shop.id}] Ended item {item_id} ({reason})")

    def update_item(self, item_id: str, fields: dict[str, Any]) -> None:
        status = f"<ItemID>{escape(item_id)}</ItemID>"
        if fields.get("quantity") is not None:
            status += f"<Quantity>{int(fields['quantity'])}</Quantity>"
        if fields.get("price") is not None:
            status += f"<StartPrice>{fields['price']}</StartPrice>"
        self._call("ReviseInventoryStatus", f"<InventoryStatus>{status}</InventoryStatus>")
        logger.info(f"[ebay/{self.shop.id}] Revised inventory for {item_id}: {fields}")

    # --- Orders ---

    def list_orders_since(self, since: datetime) -> Iterator[RemoteOrder]:
        """Orders created at or after ``since``, from the Fulfillment REST API."""
        headers = {
            "Authorization": f"Bearer {self.shop.ebay_token or ''}",
            "Content-Type": "application/json",
            "X-EBAY-C-MARKETPLACE-ID": self.settings.ebay_marketplace_id,
        }
        offset = 0
        while True:
            resp = self._send(
                "GET",
                self.settings.ebay_fulfillment_api_url,
                params={"filter": f"creationdate:[{_iso(since)}..]", "limit": ORDERS_PER_PAGE, "offset": offset},
                headers=headers,
            )
            data = resp.json()
            orders = data.get("orders") or []
            for order in orders:
                yield parse_order(order)

            offset += len(orders)
            total = to_int(data.get("total")) or 0
            logger.info(f"[ebay/{self.shop.id}] Fetched {offset} of {total} orders since {since}")
            if not orders or offset >= total:
                return
