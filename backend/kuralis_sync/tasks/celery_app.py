"""Celery application configuration, queue routing and beat schedule."""

from celery import Celery
from celery.schedules import crontab
from kombu import Queue

from kuralis_sync.config import get_settings

settings = get_settings()

QUEUES = ("default", "images", "ebay", "shopify")

celery_app = Celery(
    "kuralis_sync",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=[
        "kuralis_sync.tasks.sync_tasks",
        "kuralis_sync.tasks.listing_tasks",
        "kuralis_sync.tasks.order_tasks",
        "kuralis_sync.tasks.maintenance_tasks",
    ],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone=settings.timezone,
    task_track_started=True,
    task_time_limit=settings.task_time_limit,
    task_soft_time_limit=settings.task_soft_time_limit,
    worker_prefetch_multiplier=1,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_queues=[Queue(name) for name in QUEUES],
    task_default_queue="default",
    task_routes={
        "kuralis_sync.tasks.sync_tasks.import_ebay_listings": {"queue": "ebay"},
        "kuralis_sync.tasks.sync_tasks.import_shopify_listings": {"queue": "shopify"},
        "kuralis_sync.tasks.order_tasks.sync_ebay_orders": {"queue": "ebay"},
        "kuralis_sync.tasks.order_tasks.sync_shopify_orders": {"queue": "shopify"},
        "kuralis_sync.tasks.listing_tasks.migrate_listings": {"queue": "default"},
        "kuralis_sync.tasks.listing_tasks.push_inventory": {"queue": "default"},
    },
)

celery_app.conf.beat_schedule = {
    "dispatch-quick-syncs": {
        "task": "kuralis_sync.tasks.sync_tasks.dispatch_quick_syncs",
        "schedule": crontab(minute=f"*/{settings.quick_sync_interval_minutes}"),
    },
    "dispatch-order-syncs": {
        "task": "kuralis_sync.tasks.order_tasks.dispatch_order_syncs",
        "schedule": crontab(minute=f"*/{settings.order_sync_interval_minutes}"),
    },
    "report-stuck-runs": {
        "task": "kuralis_sync.tasks.maintenance_tasks.report_stuck_runs",
        "schedule": crontab(minute="*/30"),
    },
}
