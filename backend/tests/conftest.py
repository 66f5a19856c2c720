# tests/conftest.py
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from types import SimpleNamespace

import pytest
from celery.app.task import Task
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from kuralis_sync.enums import Platform
from kuralis_sync.models.base import Base
from kuralis_sync.models.job_run import JobRun
from kuralis_sync.models.kuralis_product import KuralisProduct
from kuralis_sync.models.listing import LISTING_CLASSES
from kuralis_sync.models.order import Order  # noqa: F401
from kuralis_sync.models.shop import Shop
from kuralis_sync.schemas.listing import RemoteListing
from kuralis_sync.schemas.order import RemoteOrder, RemoteOrderItem
from kuralis_sync.tasks.celery_app import celery_app
from tests.mocks.fake_redis import FakeRedis

celery_app.conf.update(task_always_eager=False, task_eager_propagates=True)

# Modules that open their own sync sessions
SESSION_MODULES = (
    "kuralis_sync.services.job_tracker",
    "kuralis_sync.tasks.sync_tasks",
    "kuralis_sync.tasks.listing_tasks",
    "kuralis_sync.tasks.order_tasks",
    "kuralis_sync.tasks.maintenance_tasks",
)

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def engine():
    """One in-memory SQLite database shared by every session in the test."""
    engine = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture(autouse=True)
def patch_sessions(monkeypatch, session_factory):
    for module in SESSION_MODULES:
        monkeypatch.setattr(f"{module}.SyncSessionLocal", session_factory)


@pytest.fixture(autouse=True)
def fake_redis(monkeypatch):
    client = FakeRedis()
    monkeypatch.setattr("kuralis_sync.services.sync_lock.get_redis", lambda: client)
    return client


@pytest.fixture
def enqueued(mocker):
    """Capture messages instead of sending them to the broker. JobRun tracking still happens."""
    calls = []

    def fake_apply_async(task, args=None, kwargs=None, task_id=None, **options):
        calls.append(SimpleNamespace(name=task.name, args=args, kwargs=kwargs, task_id=task_id, options=options))
        return SimpleNamespace(id=task_id)

    mocker.patch.object(Task, "apply_async", autospec=True, side_effect=fake_apply_async)
    return calls


@pytest.fixture
def run_task(enqueued):
    """Deliver a captured message in-process, the way a worker on its queue would."""
    def _run(call):
        task = celery_app.tasks[call.name]
        result = task.apply(
            args=call.args,
            kwargs=call.kwargs,
            task_id=call.task_id,
            routing_key=call.options.get("queue"),
        )
        return result.get()
    return _run


@pytest.fixture
def shop(db):
    shop = Shop(
        id=uuid.uuid4(),
        name="Vintage Finds",
        shopify_domain="vintage-finds.myshopify.com",
        shopify_token="shpat_test",
        ebay_user_id="vintagefinds",
        ebay_token="ebay-test-token",
    )
    db.add(shop)
    db.commit()
    return shop


@pytest.fixture
def other_shop(db):
    shop = Shop(
        id=uuid.uuid4(),
        name="Other Store",
        shopify_domain="other-store.myshopify.com",
        shopify_token="shpat_other",
        ebay_user_id="otherstore",
        ebay_token="ebay-other-token",
    )
    db.add(shop)
    db.commit()
    return shop


@pytest.fixture
def make_listing(db):
    def _make(shop, platform=Platform.EBAY, item_id=None, **fields):
        values = {
            "title": "Fender Stratocaster 1965",
            "sku": "STRAT-65",
            "price": Decimal("2499.00"),
            "quantity": 1,
            "status": "active",
        }
        values.update(fields)
        listing = LISTING_CLASSES[platform](
            id=uuid.uuid4(),
            shop_id=shop.id,
            platform_item_id=item_id or str(uuid.uuid4().int)[:12],
            **values,
        )
        db.add(listing)
        db.commit()
        return listing
    return _make


@pytest.fixture
def make_product(db):
    def _make(shop, **fields):
        values = {"title": "Gibson Les Paul", "sku": "LP-59", "price": Decimal("4999.00"), "quantity": 2}
        values.update(fields)
        product = KuralisProduct(id=uuid.uuid4(), shop_id=shop.id, **values)
        db.add(product)
        db.commit()
        return product
    return _make


@pytest.fixture
def make_run(db):
    def _make(shop, job_class, status="completed", started_at=None, completed_at=None, created_at=None, **fields):
        run = JobRun(
            id=uuid.uuid4(),
            job_id=fields.pop("job_id", str(uuid.uuid4())),
            job_class=job_class,
            shop_id=shop.id,
            status=status,
            created_at=created_at or started_at or NOW,
            started_at=started_at,
            completed_at=completed_at,
            **fields,
        )
        db.add(run)
        db.commit()
        return run
    return _make


def remote_listing(item_id="110011", platform=Platform.EBAY, updated_at=NOW, **fields) -> RemoteListing:
    values = {
        "title": "Fender Stratocaster 1965",
        "sku": "STRAT-65",
        "price": Decimal("2499.00"),
        "quantity": 1,
    }
    values.update(fields)
    return RemoteListing(platform=platform, platform_item_id=item_id, updated_at=updated_at, **values)


@pytest.fixture
def make_remote():
    return remote_listing


@pytest.fixture
def earlier():
    return lambda **delta: NOW - timedelta(**delta)


def remote_order(order_id="27-11111-22222", platform=Platform.EBAY, placed_at=NOW, items=None, **fields) -> RemoteOrder:
    values = {
        "fulfillment_status": "not_started",
        "payment_status": "paid",
        "subtotal": Decimal("2499.00"),
        "total_price": Decimal("2549.00"),
        "shipping_cost": Decimal("50.00"),
        "customer_name": "guitarfan42",
    }
    values.update(fields)
    if items is None:
        items = [RemoteOrderItem(platform_item_id="110011", title="Fender Stratocaster 1965", quantity=1)]
    return RemoteOrder(platform=platform, platform_order_id=order_id, placed_at=placed_at, items=items, **values)
