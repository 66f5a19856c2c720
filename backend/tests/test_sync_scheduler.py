import uuid

import pytest
from sqlalchemy import select

from kuralis_sync.enums import Platform
from kuralis_sync.errors import PlatformNotConfiguredError, RecordNotFoundError
from kuralis_sync.models.job_run import JobRun
from kuralis_sync.services.sync_scheduler import determine_sync_window, trigger_quick_sync
from kuralis_sync.utils import ensure_aware

EBAY_KIND = "ImportEbayListings"


class TestDetermineSyncWindow:
    def test_full_sync_without_history(self, db, shop):
        window = determine_sync_window(db, shop.id, EBAY_KIND)
        assert window.is_full
        assert window.since is None

    def test_checkpoint_is_start_of_latest_completed_run(self, db, shop, make_run, earlier):
        make_run(shop, EBAY_KIND, started_at=earlier(hours=5), completed_at=earlier(hours=4))
        make_run(shop, EBAY_KIND, started_at=earlier(hours=2), completed_at=earlier(hours=1))

        window = determine_sync_window(db, shop.id, EBAY_KIND)
        assert not window.is_full
        assert ensure_aware(window.since) == earlier(hours=2)

    def test_failed_runs_do_not_advance_checkpoint(self, db, shop, make_run, earlier):
        make_run(shop, EBAY_KIND, started_at=earlier(hours=5), completed_at=earlier(hours=4))
        make_run(shop, EBAY_KIND, status="failed", started_at=earlier(hours=2), completed_at=earlier(hours=1))
        make_run(shop, EBAY_KIND, status="running", started_at=earlier(minutes=10))

        assert ensure_aware(determine_sync_window(db, shop.id, EBAY_KIND).since) == earlier(hours=5)

    def test_only_failed_history_means_full_sync(self, db, shop, make_run, earlier):
        make_run(shop, EBAY_KIND, status="failed", started_at=earlier(hours=2), completed_at=earlier(hours=1))
        assert determine_sync_window(db, shop.id, EBAY_KIND).is_full

    def test_checkpoint_is_scoped_to_kind_and_account(self, db, shop, other_shop, make_run, earlier):
        make_run(shop, "ImportShopifyListings", started_at=earlier(hours=2), completed_at=earlier(hours=1))
        make_run(other_shop, EBAY_KIND, started_at=earlier(hours=2), completed_at=earlier(hours=1))

        assert determine_sync_window(db, shop.id, EBAY_KIND).is_full

    def test_latest_completion_wins_over_latest_start(self, db, shop, make_run, earlier):
        # A long run that started first but finished last is the newest checkpoint
        make_run(shop, EBAY_KIND, started_at=earlier(hours=6), completed_at=earlier(hours=1))
        make_run(shop, EBAY_KIND, started_at=earlier(hours=4), completed_at=earlier(hours=3))

        assert ensure_aware(determine_sync_window(db, shop.id, EBAY_KIND).since) == earlier(hours=6)


class TestTriggerQuickSync:
    def test_first_sync_is_full(self, db, shop, enqueued):
        result = trigger_quick_sync(db, shop.id, Platform.EBAY)

        assert result["status"] == "queued"
        assert result["message"] == "No previous sync found. Running a full sync of eBay listings."
        assert len(enqueued) == 1
        assert enqueued[0].name == "kuralis_sync.tasks.sync_tasks.import_ebay_listings"
        assert enqueued[0].task_id == result["job_id"]
        assert enqueued[0].args == [{"account_id": str(shop.id), "attempt": 0}]

        db.expire_all()
        run = db.execute(select(JobRun).where(JobRun.job_id == result["job_id"])).scalar_one()
        assert run.status == "queued"
        assert run.job_class == EBAY_KIND
        assert run.queue == "ebay"

    def test_quick_sync_after_completed_run(self, db, shop, make_run, earlier, enqueued):
        make_run(shop, "ImportShopifyListings", started_at=earlier(hours=2), completed_at=earlier(hours=1))

        result = trigger_quick_sync(db, shop.id, Platform.SHOPIFY)

        assert result["message"] == "Quick syncing Shopify listings since last successful sync."
        assert enqueued[0].name == "kuralis_sync.tasks.sync_tasks.import_shopify_listings"

    def test_unconnected_platform_is_rejected(self, db, shop, enqueued):
        shop.ebay_token = None
        db.commit()

        with pytest.raises(PlatformNotConfiguredError):
            trigger_quick_sync(db, shop.id, Platform.EBAY)
        assert enqueued == []

    def test_unknown_shop(self, db, enqueued):
        with pytest.raises(RecordNotFoundError):
            trigger_quick_sync(db, uuid.uuid4(), Platform.EBAY)
        assert enqueued == []
