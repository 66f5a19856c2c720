"""Pydantic schemas package."""

from kuralis_sync.schemas.job_run import (
    JobProgress,
    JobRunRead,
    JobRunSummary,
    SyncLockInfo,
)
from kuralis_sync.schemas.listing import (
    ActionResponse,
    EndListingRequest,
    LinkListingRequest,
    ListingFilters,
    ListingRead,
    ListingSummary,
    MigrateRequest,
    RemoteListing,
    UnmigratedCount,
)
from kuralis_sync.schemas.order import (
    OrderItemRead,
    OrderRead,
    RemoteOrder,
    RemoteOrderItem,
)

__all__ = [
    # JobRun
    "JobProgress",
    "JobRunRead",
    "JobRunSummary",
    "SyncLockInfo",
    # Listing
    "ActionResponse",
    "EndListingRequest",
    "LinkListingRequest",
    "ListingFilters",
    "ListingRead",
    "ListingSummary",
    "MigrateRequest",
    "RemoteListing",
    "UnmigratedCount",
    # Order
    "OrderItemRead",
    "OrderRead",
    "RemoteOrder",
    "RemoteOrderItem",
]
