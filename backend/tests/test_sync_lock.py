import json
import uuid
from unittest.mock import ANY

import pytest
import redis

from kuralis_sync.errors import SyncLockUnavailable
from kuralis_sync.services import sync_lock


@pytest.fixture
def account_id():
    return uuid.uuid4()


def test_acquire_sets_key_with_ttl_and_owner(fake_redis, account_id):
    lock = sync_lock.acquire(account_id, "ImportEbayListings", job_id="job-1", ttl=600)

    key = f"sync:{account_id}:ImportEbayListings"
    assert lock.key == key
    assert fake_redis.ttls[key] == 600
    payload = json.loads(fake_redis.get(key))
    assert payload["owner"] == lock.owner
    assert payload["job_id"] == "job-1"


def test_second_acquire_of_same_kind_fails(fake_redis, account_id):
    sync_lock.acquire(account_id, "ImportEbayListings")
    with pytest.raises(SyncLockUnavailable):
        sync_lock.acquire(account_id, "ImportEbayListings")


def test_different_kinds_and_accounts_do_not_block(fake_redis, account_id):
    sync_lock.acquire(account_id, "ImportEbayListings")
    sync_lock.acquire(account_id, "ImportShopifyListings")
    sync_lock.acquire(uuid.uuid4(), "ImportEbayListings")


def test_import_and_inventory_push_conflict(fake_redis, account_id):
    sync_lock.acquire(account_id, "ImportShopifyListings")
    with pytest.raises(SyncLockUnavailable, match="ImportShopifyListings"):
        sync_lock.acquire(account_id, sync_lock.PUSH_INVENTORY_KIND)


def test_inventory_push_blocks_imports(fake_redis, account_id):
    sync_lock.acquire(account_id, sync_lock.PUSH_INVENTORY_KIND)
    with pytest.raises(SyncLockUnavailable):
        sync_lock.acquire(account_id, "ImportEbayListings")


def test_order_sync_conflicts_with_imports_and_pushes(fake_redis, account_id):
    sync_lock.acquire(account_id, "SyncEbayOrders")
    with pytest.raises(SyncLockUnavailable, match="Cannot start ImportShopifyListings while SyncEbayOrders"):
        sync_lock.acquire(account_id, "ImportShopifyListings")
    with pytest.raises(SyncLockUnavailable, match="SyncEbayOrders"):
        sync_lock.acquire(account_id, sync_lock.PUSH_INVENTORY_KIND)
    # Order syncs of different platforms run side by side
    sync_lock.acquire(account_id, "SyncShopifyOrders")


def test_imports_block_order_sync(fake_redis, account_id):
    sync_lock.acquire(account_id, "ImportEbayListings")
    with pytest.raises(SyncLockUnavailable, match="ImportEbayListings"):
        sync_lock.acquire(account_id, "SyncShopifyOrders")


def test_acquire_checks_conflicts_and_sets_in_one_script(fake_redis, account_id):
    fake_redis.commands.clear()
    sync_lock.acquire(account_id, sync_lock.PUSH_INVENTORY_KIND)
    assert fake_redis.commands == ["script:acquire"]


def test_acquire_sends_lock_and_conflict_keys_to_script(mocker, account_id):
    client = mocker.MagicMock(spec=redis.Redis)
    script = client.register_script.return_value
    script.return_value = None

    sync_lock.acquire(account_id, "ImportEbayListings", ttl=600, client=client)

    client.register_script.assert_called_once_with(sync_lock.ACQUIRE_SCRIPT)
    script.assert_called_once_with(
        keys=[
            f"sync:{account_id}:ImportEbayListings",
            f"sync:{account_id}:PushInventory",
            f"sync:{account_id}:SyncEbayOrders",
            f"sync:{account_id}:SyncShopifyOrders",
        ],
        args=[ANY, 600],
    )
    client.set.assert_not_called()
    client.exists.assert_not_called()


def test_release_is_a_single_owner_checked_script(fake_redis, account_id):
    lock = sync_lock.acquire(account_id, "ImportEbayListings")
    fake_redis.commands.clear()

    assert lock.release() is True
    assert fake_redis.commands == ["script:release"]


def test_release_only_by_owner(fake_redis, account_id):
    lock = sync_lock.acquire(account_id, "ImportEbayListings")
    fake_redis.delete(lock.key)
    # Expired, then taken by another worker
    other = sync_lock.acquire(account_id, "ImportEbayListings")

    assert lock.release() is False
    assert sync_lock.is_locked(account_id, "ImportEbayListings")
    assert other.release() is True
    assert not sync_lock.is_locked(account_id, "ImportEbayListings")


def test_context_manager_releases_on_error(fake_redis, account_id):
    with pytest.raises(RuntimeError):
        with sync_lock.sync_lock(account_id, "ImportEbayListings"):
            assert sync_lock.is_locked(account_id, "ImportEbayListings")
            raise RuntimeError("platform down")
    assert not sync_lock.is_locked(account_id, "ImportEbayListings")


def test_active_locks_lists_only_the_account(fake_redis, account_id):
    sync_lock.acquire(account_id, "ImportEbayListings", job_id="a")
    sync_lock.acquire(account_id, "ImportShopifyListings", job_id="b")
    sync_lock.acquire(uuid.uuid4(), "ImportEbayListings", job_id="c")
    fake_redis.set(f"sync:{account_id}:Broken", "not json")

    locks = sync_lock.active_locks(account_id)
    assert {lock["job_kind"] for lock in locks} == {"ImportEbayListings", "ImportShopifyListings"}
    assert {lock["job_id"] for lock in locks} == {"a", "b"}


def test_release_survives_redis_errors(mocker, account_id):
    client = mocker.MagicMock(spec=redis.Redis)
    client.register_script.return_value.side_effect = redis.ConnectionError("connection reset")
    lock = sync_lock.SyncLock(client, f"sync:{account_id}:ImportEbayListings", "owner", "{}")

    assert lock.release() is False
