"""
Shared enums and per-platform lookup tables.

Every table keyed by ``Platform`` must cover every member; this is checked
when the module is imported so a new platform cannot be half-wired.
"""

from enum import Enum


class Platform(str, Enum):
    SHOPIFY = "shopify"
    EBAY = "ebay"


class JobStatus(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class ListingStatus(str, Enum):
    ACTIVE = "active"
    ENDING = "ending"
    ENDED = "ended"
    DRAFT = "draft"


class MigrationState(str, Enum):
    MIGRATED = "migrated"
    NOT_MIGRATED = "not_migrated"


# Allowed lifecycle moves: queued -> running -> {completed, failed}.
# A job refused before it starts (lock held elsewhere) goes queued -> failed.
JOB_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.QUEUED: frozenset({JobStatus.RUNNING, JobStatus.FAILED}),
    JobStatus.RUNNING: frozenset({JobStatus.COMPLETED, JobStatus.FAILED}),
    JobStatus.COMPLETED: frozenset(),
    JobStatus.FAILED: frozenset(),
}

PLATFORM_LABELS: dict[Platform, str] = {
    Platform.SHOPIFY: "Shopify",
    Platform.EBAY: "eBay",
}

PLATFORM_QUEUES: dict[Platform, str] = {
    Platform.SHOPIFY: "shopify",
    Platform.EBAY: "ebay",
}

# Job kind used for the import task and therefore for the sync checkpoint
PLATFORM_IMPORT_KINDS: dict[Platform, str] = {
    Platform.SHOPIFY: "ImportShopifyListings",
    Platform.EBAY: "ImportEbayListings",
}

# Job kind of the order sync task, also its checkpoint key
PLATFORM_ORDER_KINDS: dict[Platform, str] = {
    Platform.SHOPIFY: "SyncShopifyOrders",
    Platform.EBAY: "SyncEbayOrders",
}

PLATFORM_DEFAULT_END_REASONS: dict[Platform, str] = {
    Platform.SHOPIFY: "archived",
    Platform.EBAY: "NotAvailable",
}


def check_exhaustive(*tables: dict) -> None:
    members = set(Platform)
    for table in tables:
        missing = members - set(table)
        if missing:
            raise RuntimeError(f"Platform table missing entries for: {sorted(m.value for m in missing)}")


check_exhaustive(
    PLATFORM_LABELS, PLATFORM_QUEUES, PLATFORM_IMPORT_KINDS, PLATFORM_ORDER_KINDS, PLATFORM_DEFAULT_END_REASONS,
)
