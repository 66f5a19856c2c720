"""Sync scheduling: decides between full and incremental sync and enqueues imports."""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from kuralis_sync.enums import PLATFORM_IMPORT_KINDS, PLATFORM_LABELS, JobStatus, Platform
from kuralis_sync.errors import PlatformNotConfiguredError, RecordNotFoundError
from kuralis_sync.models.job_run import JobRun
from kuralis_sync.models.shop import Shop
from kuralis_sync.utils import ensure_aware

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SyncWindow:
    """Remote changes to fetch. ``since=None`` means a full sync."""

    since: datetime | None = None

    @property
    def is_full(self) -> bool:
        return self.since is None


def last_completed_run(db: Session, account_id: uuid.UUID, job_kind: str) -> JobRun | None:
    return db.execute(
        select(JobRun)
        .where(
            JobRun.shop_id == account_id,
            JobRun.job_class == job_kind,
            JobRun.status == JobStatus.COMPLETED.value,
        )
        .order_by(JobRun.completed_at.desc(), JobRun.started_at.desc())
        .limit(1)
    ).scalar_one_or_none()


def determine_sync_window(db: Session, account_id: uuid.UUID, job_kind: str) -> SyncWindow:
    """Checkpoint is the start time of the latest completed run of this kind.

    Using the start rather than the end time re-fetches anything that changed
    while that run was in flight. Failed runs never move the checkpoint.
    """
    last_run = last_completed_run(db, account_id, job_kind)
    if last_run is None or last_run.started_at is None:
        return SyncWindow(since=None)
    return SyncWindow(since=ensure_aware(last_run.started_at))


def get_shop(db: Session, account_id: uuid.UUID) -> Shop:
    shop = db.get(Shop, account_id)
    if shop is None:
        raise RecordNotFoundError(f"Shop {account_id} not found")
    return shop


def trigger_quick_sync(db: Session, account_id: uuid.UUID, platform: Platform) -> dict:
    """Enqueue a listing import for one platform and return immediately.

    The worker recomputes the window under its lock; the one computed here
    only picks the operator message.
    """
    from kuralis_sync.services.job_tracker import JobContext
    from kuralis_sync.tasks.sync_tasks import IMPORT_TASKS

    shop = get_shop(db, account_id)
    if platform not in shop.connected_platforms():
        raise PlatformNotConfiguredError(f"{PLATFORM_LABELS[platform]} is not connected for shop {account_id}")

    window = determine_sync_window(db, account_id, PLATFORM_IMPORT_KINDS[platform])
    result = IMPORT_TASKS[platform].delay(JobContext(account_id=account_id).to_payload())

    label = PLATFORM_LABELS[platform]
    if window.is_full:
        message = f"No previous sync found. Running a full sync of {label} listings."
    else:
        message = f"Quick syncing {label} listings since last successful sync."

    logger.info(f"Triggered {PLATFORM_IMPORT_KINDS[platform]} for shop {account_id} (since={window.since})")
    return {"status": "queued", "message": message, "job_id": result.id}
