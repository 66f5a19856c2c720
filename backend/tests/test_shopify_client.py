import json
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from types import SimpleNamespace

import httpx
import pytest

from kuralis_sync.enums import ListingStatus, Platform
from kuralis_sync.errors import PlatformRateLimitError, PlatformRequestError
from kuralis_sync.platforms.shopify import ShopifyClient, parse_order, parse_product

DOMAIN = "vintage-finds.myshopify.com"
BASE = f"https://{DOMAIN}/admin/api/2024-10"


def product(product_id=8001, status="active", **fields):
    data = {
        "id": product_id,
        "title": "Vox AC30",
        "handle": "vox-ac30",
        "status": status,
        "vendor": "Vox",
        "product_type": "Amplifier",
        "body_html": "<p>1964 copper panel</p>",
        "updated_at": "2026-10-19T08:00:00-04:00",
        "variants": [{
            "id": 4401,
            "sku": "AC30-64",
            "price": "3200.00",
            "inventory_quantity": 1,
            "inventory_item_id": 9901,
        }],
    }
    data.update(fields)
    return data


@pytest.fixture
def shop():
    return SimpleNamespace(id=uuid.uuid4(), shopify_domain=DOMAIN, shopify_token="shpat_test")


def make_client(shop, handler):
    requests = []

    def recording_handler(request):
        requests.append(request)
        return handler(request)

    client = ShopifyClient(shop, http_client=httpx.Client(transport=httpx.MockTransport(recording_handler)))
    return client, requests


class TestParseProduct:
    def test_first_variant_fields(self):
        remote = parse_product(product())

        assert remote.platform == Platform.SHOPIFY
        assert remote.platform_item_id == "8001"
        assert remote.sku == "AC30-64"
        assert remote.price == Decimal("3200.00")
        assert remote.quantity == 1
        assert remote.status == ListingStatus.ACTIVE
        assert remote.handle == "vox-ac30"
        assert remote.updated_at == datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)
        assert remote.extra_data["inventory_item_id"] == 9901

    @pytest.mark.parametrize("status,expected", [
        ("archived", ListingStatus.ENDED),
        ("draft", ListingStatus.DRAFT),
        (None, ListingStatus.ACTIVE),
    ])
    def test_status_mapping(self, status, expected):
        assert parse_product(product(status=status)).status == expected

    def test_product_without_variants(self):
        remote = parse_product(product(variants=[]))
        assert remote.sku is None
        assert remote.price is None


class TestListChangedSince:
    def test_follows_link_header_pages(self, shop):
        def handler(request):
            if "page_info" in request.url.params:
                return httpx.Response(200, json={"products": [product(8002)]})
            return httpx.Response(
                200,
                json={"products": [product(8001)]},
                headers={"Link": f'<{BASE}/products.json?limit=250&page_info=abc123>; rel="next"'},
            )

        client, requests = make_client(shop, handler)
        since = datetime(2026, 10, 19, 8, 0, tzinfo=timezone.utc)

        listings = list(client.list_changed_since(since))

        assert [listing.platform_item_id for listing in listings] == ["8001", "8002"]
        assert requests[0].url.params["updated_at_min"] == since.isoformat()
        assert requests[0].url.params["limit"] == "250"
        assert requests[0].headers["X-Shopify-Access-Token"] == "shpat_test"
        # Cursor pages reject the original filters
        assert "updated_at_min" not in requests[1].url.params
        assert requests[1].url.params["page_info"] == "abc123"

    def test_full_sync_has_no_time_filter(self, shop):
        client, requests = make_client(shop, lambda request: httpx.Response(200, json={"products": []}))

        assert list(client.list_changed_since(None)) == []
        assert "updated_at_min" not in requests[0].url.params


class TestItemOperations:
    def test_get_item_not_found(self, shop):
        client, _ = make_client(shop, lambda request: httpx.Response(404, json={"errors": "Not Found"}))
        assert client.get_item("8001") is None

    def test_client_errors_are_permanent(self, shop):
        client, _ = make_client(shop, lambda request: httpx.Response(422, json={"errors": "invalid"}))
        with pytest.raises(PlatformRequestError) as exc_info:
            client.end_item("8001", "archived")
        assert exc_info.value.codes == ["422"]

    def test_end_item_archives_product(self, shop):
        client, requests = make_client(shop, lambda request: httpx.Response(200, json={"product": product()}))

        client.end_item("8001", "archived")

        assert requests[0].method == "PUT"
        assert requests[0].url.path == "/admin/api/2024-10/products/8001.json"
        assert json.loads(requests[0].content) == {"product": {"id": 8001, "status": "archived"}}

    def test_update_item_sets_price_and_inventory(self, shop):
        def handler(request):
            path = request.url.path
            if path.endswith("/products/8001.json"):
                return httpx.Response(200, json={"product": product()})
            if path.endswith("/locations.json"):
                return httpx.Response(200, json={"locations": [
                    {"id": 1, "active": False},
                    {"id": 2, "active": True},
                ]})
            return httpx.Response(200, json={})

        client, requests = make_client(shop, handler)

        client.update_item("8001", {"quantity": 4, "price": Decimal("2999.00")})

        by_path = {request.url.path.rsplit("/", 1)[-1]: request for request in requests}
        assert json.loads(by_path["4401.json"].content) == {"variant": {"id": 4401, "price": "2999.00"}}
        assert json.loads(by_path["set.json"].content) == {
            "location_id": 2,
            "inventory_item_id": 9901,
            "available": 4,
        }

    def test_update_missing_product_fails(self, shop):
        client, _ = make_client(shop, lambda request: httpx.Response(404))
        with pytest.raises(PlatformRequestError):
            client.update_item("8001", {"quantity": 1})


def order(order_id=5501, **fields):
    data = {
        "id": order_id,
        "created_at": "2026-10-19T08:00:00-04:00",
        "processed_at": "2026-10-19T08:00:05-04:00",
        "cancelled_at": None,
        "fulfillment_status": None,
        "financial_status": "paid",
        "subtotal_price": "3200.00",
        "total_price": "3275.00",
        "total_shipping_price_set": {"shop_money": {"amount": "75.00", "currency_code": "USD"}},
        "customer": {"first_name": "Ada", "last_name": "Byron"},
        "line_items": [
            {"product_id": 8001, "title": "Vox AC30", "quantity": 1},
            {"product_id": None, "title": "Deleted product", "quantity": 1},
        ],
    }
    data.update(fields)
    return data


class TestOrders:
    def test_parse_order(self):
        remote = parse_order(order())

        assert remote.platform == Platform.SHOPIFY
        assert remote.platform_order_id == "5501"
        assert remote.fulfillment_status == "unfulfilled"
        assert remote.payment_status == "paid"
        assert remote.total_price == Decimal("3275.00")
        assert remote.shipping_cost == Decimal("75.00")
        assert remote.customer_name == "Ada Byron"
        assert remote.placed_at == datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)
        # Items of deleted products have no product id
        assert [(item.platform_item_id, item.quantity) for item in remote.items] == [("8001", 1)]

    def test_cancelled_order(self):
        remote = parse_order(order(cancelled_at="2026-10-19T09:00:00-04:00", fulfillment_status="fulfilled", customer=None))

        assert remote.fulfillment_status == "cancelled"
        assert remote.cancelled_at == datetime(2026, 10, 19, 13, 0, tzinfo=timezone.utc)
        assert remote.customer_name is None

    def test_list_orders_follows_link_pages(self, shop):
        def handler(request):
            if "page_info" in request.url.params:
                return httpx.Response(200, json={"orders": [order(5502)]})
            return httpx.Response(
                200,
                json={"orders": [order(5501)]},
                headers={"Link": f'<{BASE}/orders.json?limit=250&page_info=def456>; rel="next"'},
            )

        client, requests = make_client(shop, handler)
        since = datetime(2026, 10, 16, 12, 0, tzinfo=timezone.utc)

        orders = list(client.list_orders_since(since))

        assert [remote.platform_order_id for remote in orders] == ["5501", "5502"]
        assert requests[0].url.path.endswith("/orders.json")
        assert requests[0].url.params["status"] == "any"
        assert requests[0].url.params["created_at_min"] == since.isoformat()
        assert "created_at_min" not in requests[1].url.params


def test_rate_limit_with_http_date_is_transient(shop):
    client, _ = make_client(shop, lambda request: httpx.Response(
        429, headers={"Retry-After": "Wed, 21 Oct 2015 07:28:00 GMT"},
    ))
    with pytest.raises(PlatformRateLimitError) as exc_info:
        client.get_item("8001")
    # A date already passed means retry now
    assert exc_info.value.retry_after == 0.0
