"""Job lifecycle tracking.

Every tracked background task gets one JobRun row that moves
queued -> running -> completed | failed. Each move is a single conditional
UPDATE on the allowed source states, committed on its own session, so a
late or duplicate callback can never move a run backwards.

Tracking is observability: storage errors are logged and swallowed so
they never stop the job itself.
"""

import logging
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Iterator

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from kuralis_sync.enums import JOB_TRANSITIONS, JobStatus
from kuralis_sync.models.base import SyncSessionLocal
from kuralis_sync.models.job_run import JobRun
from kuralis_sync.utils import utcnow

logger = logging.getLogger(__name__)

ERROR_MESSAGE_LIMIT = 2000


@dataclass(frozen=True)
class JobContext:
    """Typed context passed as the first argument of every tracked task."""

    account_id: uuid.UUID
    attempt: int = 0

    def to_payload(self) -> dict[str, Any]:
        return {"account_id": str(self.account_id), "attempt": self.attempt}

    def next_attempt(self) -> "JobContext":
        return JobContext(account_id=self.account_id, attempt=self.attempt + 1)

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "JobContext":
        return cls(account_id=uuid.UUID(str(payload["account_id"])), attempt=int(payload.get("attempt", 0)))

    @classmethod
    def from_arguments(cls, args: tuple | list) -> "JobContext | None":
        """Derive the context from task arguments.

        Accepts a context payload dict, a dict carrying ``shop_id``, or a bare
        account id as first argument. Returns None when no account can be
        derived.
        """
        if not args:
            return None
        first = args[0]
        if isinstance(first, JobContext):
            return first
        try:
            if isinstance(first, dict):
                account = first.get("account_id") or first.get("shop_id")
                if account is None:
                    return None
                return cls(account_id=uuid.UUID(str(account)), attempt=int(first.get("attempt", 0)))
            if isinstance(first, uuid.UUID):
                return cls(account_id=first)
            if isinstance(first, str):
                return cls(account_id=uuid.UUID(first))
        except (TypeError, ValueError):
            return None
        return None


def _allowed_sources(target: JobStatus) -> list[str]:
    return [status.value for status, targets in JOB_TRANSITIONS.items() if target in targets]


class JobTracker:
    """Records JobRun lifecycle transitions on short-lived sessions."""

    def __init__(self, session_factory=None):
        self.session_factory = session_factory

    def _session(self) -> Session:
        factory = self.session_factory or SyncSessionLocal
        return factory()

    def record_enqueued(
        self,
        job_class: str,
        job_id: str,
        context: JobContext | None,
        arguments: list | None = None,
        queue: str | None = None,
    ) -> JobRun | None:
        if context is None:
            logger.warning(f"No account derivable for {job_class} ({job_id}), skipping job tracking")
            return None

        db = self._session()
        try:
            run = JobRun(
                id=uuid.uuid4(),
                job_id=job_id,
                job_class=job_class,
                shop_id=context.account_id,
                queue=queue,
                status=JobStatus.QUEUED.value,
                arguments=arguments or [],
                progress_data={},
                attempt=context.attempt,
                created_at=utcnow(),
            )
            db.add(run)
            db.commit()
            return run
        except SQLAlchemyError:
            db.rollback()
            logger.exception(f"Failed to record enqueue of {job_class} ({job_id})")
            return None
        finally:
            db.close()

    def record_started(self, job_id: str) -> bool:
        return self._transition(job_id, JobStatus.RUNNING, started_at=utcnow())

    def record_completed(self, job_id: str) -> bool:
        return self._transition(job_id, JobStatus.COMPLETED, completed_at=utcnow())

    def record_failed(self, job_id: str, exc: BaseException) -> bool:
        message = f"{type(exc).__name__}: {exc}"
        return self._transition(
            job_id,
            JobStatus.FAILED,
            completed_at=utcnow(),
            error_message=message[:ERROR_MESSAGE_LIMIT],
        )

    def _transition(self, job_id: str, target: JobStatus, **values) -> bool:
        """Compare-and-set the run's status. Returns False when nothing moved."""
        db = self._session()
        try:
            result = db.execute(
                update(JobRun)
                .where(JobRun.job_id == job_id, JobRun.status.in_(_allowed_sources(target)))
                .values(status=target.value, **values)
                .execution_options(synchronize_session=False)
            )
            db.commit()
            if result.rowcount == 0:
                logger.debug(f"No trackable run {job_id} for transition to {target.value}")
                return False
            return True
        except SQLAlchemyError:
            db.rollback()
            logger.exception(f"Failed to record {target.value} for job {job_id}")
            return False
        finally:
            db.close()

    def update_progress(
        self,
        job_id: str | None,
        total: int | None = None,
        processed: int | None = None,
        message: str | None = None,
    ) -> None:
        """Merge a progress snapshot into the run's ``progress_data``."""
        if not job_id:
            return
        db = self._session()
        try:
            run = db.execute(select(JobRun).where(JobRun.job_id == job_id)).scalar_one_or_none()
            if run is None:
                return
            progress = dict(run.progress_data or {})
            if total is not None:
                progress["total"] = total
            if processed is not None:
                progress["processed"] = processed
            if message is not None:
                progress["message"] = message
            if progress.get("total"):
                progress["percent"] = round(progress.get("processed", 0) / progress["total"] * 100, 2)
            run.progress_data = progress
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            logger.exception(f"Failed to update progress for job {job_id}")
        finally:
            db.close()

    @contextmanager
    def tracked_run(self, job_id: str) -> Iterator[None]:
        """Mark the run started, then completed or failed on every exit path.

        The original exception always propagates to the caller.
        """
        self.record_started(job_id)
        try:
            yield
        except Exception as exc:
            self.record_failed(job_id, exc)
            raise
        self.record_completed(job_id)


tracker = JobTracker()


def find_stuck_runs(db: Session, older_than: datetime, account_id: uuid.UUID | None = None) -> list[JobRun]:
    """Runs still queued since before ``older_than``. Their worker never picked them up."""
    query = select(JobRun).where(
        JobRun.status == JobStatus.QUEUED.value,
        JobRun.created_at < older_than,
    )
    if account_id:
        query = query.where(JobRun.shop_id == account_id)
    return list(db.execute(query.order_by(JobRun.created_at)).scalars().all())


def stuck_cutoff(threshold_minutes: int) -> datetime:
    return utcnow() - timedelta(minutes=threshold_minutes)
