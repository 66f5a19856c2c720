"""Pydantic schemas for JobRun model."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class JobProgress(BaseModel):
    """Progress snapshot written by long-running jobs."""

    total: int | None = None
    processed: int | None = None
    message: str | None = None
    percent: float | None = None


class JobRunSummary(BaseModel):
    """Minimal run info for list views."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    job_id: str
    job_class: str
    queue: str | None = None
    status: str
    attempt: int = 0
    created_at: datetime
    started_at: datetime | None = None
    completed_at: datetime | None = None


class JobRunRead(JobRunSummary):
    """Full job run output."""

    shop_id: UUID | None = None
    arguments: list | dict | None = None
    progress_data: JobProgress | None = None
    error_message: str | None = None
    duration: float | None = None
    queue_time: float | None = None


class SyncLockInfo(BaseModel):
    """A sync lock currently held for an account."""

    job_kind: str
    job_id: str | None = None
    started_at: datetime | None = None
    hostname: str | None = None
