"""Job run history API endpoints."""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from kuralis_sync.config import get_settings
from kuralis_sync.enums import JobStatus
from kuralis_sync.models.base import get_db
from kuralis_sync.models.job_run import JobRun
from kuralis_sync.schemas.job_run import JobRunRead, JobRunSummary, SyncLockInfo
from kuralis_sync.services import sync_lock
from kuralis_sync.services.job_tracker import stuck_cutoff

router = APIRouter(prefix="/accounts/{account_id}/runs", tags=["runs"])


@router.get("", response_model=list[JobRunSummary])
async def list_runs(
    account_id: UUID,
    db: AsyncSession = Depends(get_db),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=100),
    status: JobStatus | None = Query(None, description="Filter by status"),
    job_class: str | None = Query(None, description="Filter by job kind"),
    stuck: bool = Query(False, description="Only runs queued longer than the stuck threshold"),
):
    """List recent job runs for an account, newest first."""
    query = select(JobRun).where(JobRun.shop_id == account_id)

    if status:
        query = query.where(JobRun.status == status.value)
    if job_class:
        query = query.where(JobRun.job_class == job_class)
    if stuck:
        cutoff = stuck_cutoff(get_settings().stuck_run_threshold_minutes)
        query = query.where(JobRun.status == JobStatus.QUEUED.value, JobRun.created_at < cutoff)

    query = query.order_by(JobRun.created_at.desc()).offset(skip).limit(limit)
    result = await db.execute(query)
    return [JobRunSummary.model_validate(run) for run in result.scalars().all()]


@router.get("/locks", response_model=list[SyncLockInfo])
async def list_active_locks(account_id: UUID):
    """Syncs currently holding a lock for the account, oldest first."""
    return sync_lock.active_locks(account_id)


@router.get("/{job_id}", response_model=JobRunRead)
async def get_run(
    account_id: UUID,
    job_id: str,
    db: AsyncSession = Depends(get_db),
):
    """Get a single job run with progress and timings."""
    query = select(JobRun).where(JobRun.shop_id == account_id, JobRun.job_id == job_id)
    result = await db.execute(query)
    run = result.scalar_one_or_none()

    if not run:
        raise HTTPException(status_code=404, detail="Run not found")

    return JobRunRead.model_validate(run)
