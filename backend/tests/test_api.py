import base64
import hashlib
import hmac
import json
import uuid

import pytest
from fastapi.testclient import TestClient

from kuralis_sync.config import Settings
from kuralis_sync.enums import Platform
from kuralis_sync.main import app
from kuralis_sync.models.base import get_db
from kuralis_sync.services import sync_lock
from kuralis_sync.services.job_tracker import JobContext, tracker
from kuralis_sync.services.orders import OrderReconciler
from tests.conftest import remote_order
from tests.test_notifications import ebay_notification


class FakeAsyncSession:
    """The slice of AsyncSession the routes use, backed by a sync test session."""

    def __init__(self, session):
        self.sync_session = session

    async def execute(self, statement):
        return self.sync_session.execute(statement)

    async def get(self, entity, ident):
        return self.sync_session.get(entity, ident)

    async def run_sync(self, fn, *args, **kwargs):
        return fn(self.sync_session, *args, **kwargs)

    async def commit(self):
        self.sync_session.commit()

    async def rollback(self):
        self.sync_session.rollback()

    async def close(self):
        self.sync_session.close()


@pytest.fixture
def client(session_factory):
    async def override_get_db():
        session = FakeAsyncSession(session_factory())
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


class TestSync:
    def test_trigger_quick_sync(self, client, shop, enqueued):
        response = client.post(f"/api/v1/accounts/{shop.id}/sync/ebay")

        assert response.status_code == 202
        data = response.json()
        assert data["status"] == "queued"
        assert data["message"] == "No previous sync found. Running a full sync of eBay listings."
        assert data["job_id"] == enqueued[0].task_id

    def test_unconnected_platform_conflicts(self, client, db, shop, enqueued):
        shop.shopify_domain = None
        db.commit()

        response = client.post(f"/api/v1/accounts/{shop.id}/sync/shopify")

        assert response.status_code == 409
        assert enqueued == []

    def test_unknown_account(self, client, enqueued):
        assert client.post(f"/api/v1/accounts/{uuid.uuid4()}/sync/ebay").status_code == 404

    def test_unknown_platform(self, client, shop):
        assert client.post(f"/api/v1/accounts/{shop.id}/sync/etsy").status_code == 422


class TestListings:
    def test_search(self, client, shop, other_shop, make_listing):
        make_listing(shop, item_id="1", title="Gibson ES-335")
        make_listing(shop, Platform.SHOPIFY, item_id="2", title="Fender Jazzmaster")
        make_listing(other_shop, item_id="3", title="Gibson SG")

        response = client.get(f"/api/v1/accounts/{shop.id}/listings", params={"q": "gibson"})

        assert response.status_code == 200
        assert [listing["platform_item_id"] for listing in response.json()] == ["1"]

    def test_search_by_platform_and_migration_state(self, client, shop, make_listing):
        make_listing(shop, item_id="1")
        make_listing(shop, Platform.SHOPIFY, item_id="2")

        response = client.get(
            f"/api/v1/accounts/{shop.id}/listings",
            params={"platform": "shopify", "status": "not_migrated"},
        )
        assert [listing["platform_item_id"] for listing in response.json()] == ["2"]

    def test_get_listing_is_scoped_to_account(self, client, shop, other_shop, make_listing):
        mine = make_listing(shop, item_id="1")
        theirs = make_listing(other_shop, item_id="2")

        response = client.get(f"/api/v1/accounts/{shop.id}/listings/{mine.id}")
        assert response.status_code == 200
        assert response.json()["migrated"] is False

        response = client.get(f"/api/v1/accounts/{shop.id}/listings/{theirs.id}")
        assert response.status_code == 404
        assert response.json()["detail"] == "Listing not found"

    def test_unmigrated_count(self, client, shop, make_listing):
        make_listing(shop, item_id="1")
        make_listing(shop, Platform.SHOPIFY, item_id="2")

        assert client.get(f"/api/v1/accounts/{shop.id}/listings/unmigrated_count").json() == {
            "platform": None, "count": 2,
        }
        response = client.get(f"/api/v1/accounts/{shop.id}/listings/unmigrated_count", params={"platform": "ebay"})
        assert response.json() == {"platform": "ebay", "count": 1}

    def test_end_listing(self, client, shop, make_listing, enqueued):
        listing = make_listing(shop, item_id="1")

        response = client.post(f"/api/v1/accounts/{shop.id}/listings/{listing.id}/end", json={"reason": "Incorrect"})

        assert response.status_code == 202
        assert response.json()["message"] == "eBay listing will be ended. This may take a moment."
        assert enqueued[0].args[2] == "Incorrect"

    def test_end_listing_of_another_account(self, client, shop, other_shop, make_listing, enqueued):
        listing = make_listing(other_shop, item_id="1")

        response = client.post(f"/api/v1/accounts/{shop.id}/listings/{listing.id}/end")

        assert response.status_code == 404
        assert enqueued == []

    def test_link_listing_creates_product(self, client, shop, make_listing):
        listing = make_listing(shop, item_id="1")

        response = client.post(f"/api/v1/accounts/{shop.id}/listings/{listing.id}/migrate")

        assert response.status_code == 200
        assert response.json()["migrated"] is True
        assert response.json()["kuralis_product_id"] is not None

    def test_link_to_product_of_another_account(self, client, shop, other_shop, make_listing, make_product):
        listing = make_listing(shop, item_id="1")
        product = make_product(other_shop)

        response = client.post(
            f"/api/v1/accounts/{shop.id}/listings/{listing.id}/migrate",
            json={"product_id": str(product.id)},
        )
        assert response.status_code == 404

    def test_bulk_migrate_is_queued(self, client, shop, make_listing, enqueued):
        listing = make_listing(shop, item_id="1")

        response = client.post(
            f"/api/v1/accounts/{shop.id}/listings/migrate",
            json={"listing_ids": [str(listing.id)]},
        )

        assert response.status_code == 202
        assert enqueued[0].name == "kuralis_sync.tasks.listing_tasks.migrate_listings"
        assert enqueued[0].args[1] == [str(listing.id)]

    def test_bulk_migrate_requires_ids(self, client, shop):
        response = client.post(f"/api/v1/accounts/{shop.id}/listings/migrate", json={"listing_ids": []})
        assert response.status_code == 422

    def test_push_inventory_is_queued(self, client, shop, other_shop, make_product, enqueued):
        product = make_product(shop)
        foreign = make_product(other_shop)

        response = client.post(f"/api/v1/accounts/{shop.id}/products/{product.id}/push_inventory")
        assert response.status_code == 202
        assert enqueued[0].args[1] == str(product.id)

        response = client.post(f"/api/v1/accounts/{shop.id}/products/{foreign.id}/push_inventory")
        assert response.status_code == 404


class TestRuns:
    def test_list_and_get_runs(self, client, shop, other_shop):
        tracker.record_enqueued("ImportEbayListings", "job-1", JobContext(account_id=shop.id), queue="ebay")
        tracker.record_enqueued("ImportEbayListings", "job-2", JobContext(account_id=other_shop.id))
        tracker.record_started("job-1")
        tracker.update_progress("job-1", total=10, processed=5, message="Halfway")

        response = client.get(f"/api/v1/accounts/{shop.id}/runs")
        assert [run["job_id"] for run in response.json()] == ["job-1"]

        response = client.get(f"/api/v1/accounts/{shop.id}/runs/job-1")
        data = response.json()
        assert data["status"] == "running"
        assert data["progress_data"]["percent"] == 50.0

    def test_filter_by_status(self, client, shop):
        tracker.record_enqueued("ImportEbayListings", "job-1", JobContext(account_id=shop.id))
        tracker.record_enqueued("EndListing", "job-2", JobContext(account_id=shop.id))
        tracker.record_started("job-2")

        response = client.get(f"/api/v1/accounts/{shop.id}/runs", params={"status": "running"})
        assert [run["job_id"] for run in response.json()] == ["job-2"]

        response = client.get(f"/api/v1/accounts/{shop.id}/runs", params={"job_class": "ImportEbayListings"})
        assert [run["job_id"] for run in response.json()] == ["job-1"]

    def test_run_of_another_account_is_not_found(self, client, shop, other_shop):
        tracker.record_enqueued("ImportEbayListings", "job-1", JobContext(account_id=other_shop.id))
        assert client.get(f"/api/v1/accounts/{shop.id}/runs/job-1").status_code == 404

    def test_active_locks(self, client, shop, other_shop):
        sync_lock.acquire(shop.id, "ImportEbayListings", job_id="job-1")
        sync_lock.acquire(other_shop.id, "SyncEbayOrders", job_id="job-2")

        response = client.get(f"/api/v1/accounts/{shop.id}/runs/locks")

        assert response.status_code == 200
        [lock] = response.json()
        assert lock["job_kind"] == "ImportEbayListings"
        assert lock["job_id"] == "job-1"
        assert lock["started_at"] is not None


class TestOrders:
    def test_list_orders(self, client, db, shop, other_shop):
        OrderReconciler(db, shop, Platform.EBAY).apply(remote_order("A"))
        OrderReconciler(db, shop, Platform.SHOPIFY).apply(remote_order("B", platform=Platform.SHOPIFY))
        OrderReconciler(db, other_shop, Platform.EBAY).apply(remote_order("C"))
        db.commit()

        response = client.get(f"/api/v1/accounts/{shop.id}/orders")
        assert sorted(order["platform_order_id"] for order in response.json()) == ["A", "B"]

        response = client.get(f"/api/v1/accounts/{shop.id}/orders", params={"platform": "ebay"})
        [order] = response.json()
        assert order["platform_order_id"] == "A"
        assert order["items"][0]["platform_item_id"] == "110011"

    def test_trigger_order_sync(self, client, shop, enqueued):
        response = client.post(f"/api/v1/accounts/{shop.id}/orders/sync/ebay")

        assert response.status_code == 202
        assert response.json()["job_id"] == enqueued[0].task_id
        assert enqueued[0].name == "kuralis_sync.tasks.order_tasks.sync_ebay_orders"

    def test_trigger_for_unknown_account(self, client, enqueued):
        assert client.post(f"/api/v1/accounts/{uuid.uuid4()}/orders/sync/ebay").status_code == 404


class TestWebhooks:
    def test_shopify_update_is_queued(self, client, shop, enqueued):
        body = json.dumps({"id": 8001, "title": "Vox AC30", "updated_at": "2026-10-19T08:00:00-04:00"})

        response = client.post(
            "/api/v1/webhooks/shopify",
            content=body,
            headers={
                "X-Shopify-Topic": "products/update",
                "X-Shopify-Shop-Domain": "vintage-finds.myshopify.com",
            },
        )

        assert response.json() == {"status": "queued", "job_id": enqueued[0].task_id}
        assert enqueued[0].options["queue"] == "shopify"
        assert enqueued[0].args[0] == {"account_id": str(shop.id), "attempt": 0}
        assert enqueued[0].args[1]["platform_item_id"] == "8001"

    def test_shopify_unknown_shop_is_acknowledged(self, client, shop, enqueued):
        response = client.post(
            "/api/v1/webhooks/shopify",
            content=json.dumps({"id": 8001}),
            headers={"X-Shopify-Topic": "products/update", "X-Shopify-Shop-Domain": "unknown.myshopify.com"},
        )
        assert response.status_code == 200
        assert response.json() == {"status": "ignored"}
        assert enqueued == []

    def test_shopify_bad_hmac_is_rejected(self, client, shop, mocker, enqueued):
        mocker.patch(
            "kuralis_sync.services.notifications.get_settings",
            return_value=Settings(shopify_webhook_secret="shopify-secret"),
        )
        body = json.dumps({"id": 8001}).encode()
        good = base64.b64encode(hmac.new(b"shopify-secret", body, hashlib.sha256).digest()).decode()
        headers = {"X-Shopify-Topic": "products/update", "X-Shopify-Shop-Domain": "vintage-finds.myshopify.com"}

        response = client.post("/api/v1/webhooks/shopify", content=body,
                               headers={**headers, "X-Shopify-Hmac-Sha256": "forged"})
        assert response.status_code == 401

        response = client.post("/api/v1/webhooks/shopify", content=body,
                               headers={**headers, "X-Shopify-Hmac-Sha256": good})
        assert response.json()["status"] == "queued"

    def test_shopify_invalid_json(self, client):
        response = client.post("/api/v1/webhooks/shopify", content=b"{not json",
                               headers={"X-Shopify-Topic": "products/update"})
        assert response.status_code == 400

    def test_ebay_notification_is_queued(self, client, shop, enqueued):
        response = client.post(
            "/api/v1/webhooks/ebay",
            content=ebay_notification(),
            headers={"Content-Type": "text/xml"},
        )

        assert response.json()["status"] == "queued"
        assert enqueued[0].name == "kuralis_sync.tasks.listing_tasks.apply_listing_notification"
        assert enqueued[0].options["queue"] == "ebay"

    def test_ebay_unrelated_event_is_ignored(self, client, shop, enqueued):
        response = client.post("/api/v1/webhooks/ebay", content=ebay_notification(event="FeedbackLeft"))
        assert response.json() == {"status": "ignored"}
        assert enqueued == []
