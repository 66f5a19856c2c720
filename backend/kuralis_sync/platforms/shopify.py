"""Shopify Admin REST API client.

Products are paged with cursor links in the ``Link`` header; the query
parameters of the first request must not be repeated on later pages.
"""

import logging
from datetime import datetime
from typing import Any, Iterator

from kuralis_sync.enums import ListingStatus, Platform
from kuralis_sync.errors import PlatformRequestError
from kuralis_sync.platforms.base import PlatformClient
from kuralis_sync.platforms.registry import register_platform
from kuralis_sync.schemas.listing import RemoteListing
from kuralis_sync.schemas.order import RemoteOrder, RemoteOrderItem
from kuralis_sync.utils import dig, parse_datetime, to_decimal, to_int

logger = logging.getLogger(__name__)

PAGE_LIMIT = 250

STATUS_MAP = {
    "active": ListingStatus.ACTIVE,
    "archived": ListingStatus.ENDED,
    "draft": ListingStatus.DRAFT,
}


def parse_product(product: dict) -> RemoteListing:
    """Normalize a REST product payload (API response or products/update webhook)."""
    variants = product.get("variants") or [{}]
    variant = variants[0]
    return RemoteListing(
        platform=Platform.SHOPIFY,
        platform_item_id=str(product["id"]),
        title=product.get("title"),
        sku=variant.get("sku") or None,
        price=to_decimal(variant.get("price")),
        quantity=to_int(variant.get("inventory_quantity")),
        status=STATUS_MAP.get(product.get("status") or "active", ListingStatus.ACTIVE),
        updated_at=parse_datetime(product.get("updated_at")),
        handle=product.get("handle"),
        description=product.get("body_html"),
        extra_data={
            "variant_id": variant.get("id"),
            "inventory_item_id": variant.get("inventory_item_id"),
            "vendor": product.get("vendor"),
            "product_type": product.get("product_type"),
        },
    )


def parse_order(order: dict) -> RemoteOrder:
    """Normalize a REST order payload. Line items of deleted products are dropped."""
    cancelled_at = parse_datetime(order.get("cancelled_at"))
    status = "cancelled" if cancelled_at else (order.get("fulfillment_status") or "unfulfilled")
    customer = order.get("customer") or {}
    name = " ".join(part for part in (customer.get("first_name"), customer.get("last_name")) if part)

    return RemoteOrder(
        platform=Platform.SHOPIFY,
        platform_order_id=str(order["id"]),
        fulfillment_status=status,
        payment_status=order.get("financial_status"),
        subtotal=to_decimal(order.get("subtotal_price")),
        total_price=to_decimal(order.get("total_price")),
        shipping_cost=to_decimal(dig(order, "total_shipping_price_set", "shop_money", "amount")),
        customer_name=name or None,
        placed_at=parse_datetime(order.get("created_at")),
        paid_at=parse_datetime(order.get("processed_at")),
        cancelled_at=cancelled_at,
        items=[
            RemoteOrderItem(
                platform_item_id=str(line["product_id"]),
                title=line.get("title"),
                quantity=to_int(line.get("quantity")) or 0,
            )
            for line in order.get("line_items") or []
            if line.get("product_id")
        ],
    )


@register_platform(Platform.SHOPIFY)
class ShopifyClient(PlatformClient):

    @property
    def base_url(self) -> str:
        return f"https://{self.shop.shopify_domain}/admin/api/{self.settings.shopify_api_version}"

    @property
    def headers(self) -> dict[str, str]:
        return {
            "X-Shopify-Access-Token": self.shop.shopify_token or "",
            "Content-Type": "application/json",
        }

    def list_changed_since(self, since: datetime | None) -> Iterator[RemoteListing]:
        params: dict[str, Any] | None = {"limit": PAGE_LIMIT}
        if since is not None:
            params["updated_at_min"] = since.isoformat()
        url = f"{self.base_url}/products.json"

        page = 1
        while url:
            resp = self._send("GET", url, params=params, headers=self.headers)
            products = resp.json().get("products", [])
            logger.info(f"[shopify/{self.shop.shopify_domain}] Page {page}: {len(products)} products")
            for product in products:
                yield parse_product(product)

            url = resp.links.get("next", {}).get("url")
            params = None
            page += 1

    def list_orders_since(self, since: datetime) -> Iterator[RemoteOrder]:
        params: dict[str, Any] | None = {"limit": PAGE_LIMIT, "status": "any", "created_at_min": since.isoformat()}
        url = f"{self.base_url}/orders.json"

        while url:
            resp = self._send("GET", url, params=params, headers=self.headers)
            orders = resp.json().get("orders", [])
            logger.info(f"[shopify/{self.shop.shopify_domain}] Fetched {len(orders)} orders since {since}")
            for order in orders:
                yield parse_order(order)

            url = resp.links.get("next", {}).get("url")
            params = None

    def _get_product(self, item_id: str) -> dict | None:
        try:
            resp = self._send("GET", f"{self.base_url}/products/{item_id}.json", headers=self.headers)
        except PlatformRequestError as e:
            if "404" in e.codes:
                return None
            raise
        return resp.json().get("product")

    def get_item(self, item_id: str) -> RemoteListing | None:
        product = self._get_product(item_id)
        return parse_product(product) if product else None

    def end_item(self, item_id: str, reason: str) -> None:
        # Shopify has no end reason; archiving hides the product from every channel
        self._send(
            "PUT",
            f"{self.base_url}/products/{item_id}.json",
            json={"product": {"id": int(item_id), "status": "archived"}},
            headers=self.headers,
        )
        logger.info(f"[shopify/{self.shop.shopify_domain}] Archived product {item_id} ({reason})")

    def update_item(self, item_id: str, fields: dict[str, Any]) -> None:
        product = self._get_product(item_id)
        if not product or not product.get("variants"):
            raise PlatformRequestError(f"Shopify product {item_id} has no variants to update", codes=["404"])
        variant = product["variants"][0]

        if fields.get("price") is not None:
            self._send(
                "PUT",
                f"{self.base_url}/variants/{variant['id']}.json",
                json={"variant": {"id": variant["id"], "price": str(fields["price"])}},
                headers=self.headers,
            )

        if fields.get("quantity") is not None:
            self._send(
                "POST",
                f"{self.base_url}/inventory_levels/set.json",
                json={
                    "location_id": self._primary_location_id(),
                    "inventory_item_id": variant["inventory_item_id"],
                    "available": int(fields["quantity"]),
                },
                headers=self.headers,
            )
        logger.info(f"[shopify/{self.shop.shopify_domain}] Updated product {item_id}: {fields}")

    def _primary_location_id(self) -> int:
        resp = self._send("GET", f"{self.base_url}/locations.json", headers=self.headers)
        locations = [loc for loc in resp.json().get("locations", []) if loc.get("active", True)]
        if not locations:
            raise PlatformRequestError(f"Shopify store {self.shop.shopify_domain} has no active location")
        return locations[0]["id"]
