"""Maintenance tasks: stuck run reporting."""

import logging

from kuralis_sync.config import get_settings
from kuralis_sync.models.base import SyncSessionLocal
from kuralis_sync.models.job_run import JobRun  # noqa: F401
from kuralis_sync.models.kuralis_product import KuralisProduct  # noqa: F401
from kuralis_sync.models.listing import Listing  # noqa: F401
from kuralis_sync.models.shop import Shop  # noqa: F401
from kuralis_sync.services.job_tracker import find_stuck_runs, stuck_cutoff
from kuralis_sync.tasks.celery_app import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(name="kuralis_sync.tasks.maintenance_tasks.report_stuck_runs")
def report_stuck_runs():
    """Log runs that stayed queued past the threshold. Their worker likely died before starting them."""
    threshold = get_settings().stuck_run_threshold_minutes
    db = SyncSessionLocal()
    try:
        stuck = find_stuck_runs(db, stuck_cutoff(threshold))
        for run in stuck:
            logger.warning(
                f"Job {run.job_class} ({run.job_id}) for shop {run.shop_id} "
                f"queued since {run.created_at} on {run.queue}"
            )
        if stuck:
            logger.warning(f"Found {len(stuck)} runs queued longer than {threshold} minutes")
        return {"stuck": len(stuck), "job_ids": [run.job_id for run in stuck]}
    finally:
        db.close()
