"""Celery task base class with job lifecycle tracking and retry scheduling."""

import logging
import uuid
from contextlib import nullcontext

from celery import Task

from kuralis_sync.errors import PartialSyncError, SyncLockUnavailable
from kuralis_sync.services import sync_lock
from kuralis_sync.services.job_tracker import JobContext, tracker
from kuralis_sync.tasks.retry_policy import policy_for

logger = logging.getLogger(__name__)


class TrackedTask(Task):
    """Records queued/running/completed/failed for every execution.

    Tasks take a ``JobContext`` payload as their first argument. A transient
    failure is re-enqueued under a fresh task id with ``attempt + 1``, so
    every attempt gets its own JobRun and history is never rewritten.

    ``exclusive`` tasks hold the ``sync:{account}:{kind}`` lock for the whole
    run. The lock is taken before the run is marked running, so a refused
    job goes from queued straight to failed. It is only re-enqueued when
    ``requeue_when_locked`` is set.
    """

    job_kind: str | None = None
    exclusive: bool = False
    requeue_when_locked: bool = False
    tracker = tracker

    @property
    def kind(self) -> str:
        return self.job_kind or self.name.rsplit(".", 1)[-1]

    def routed_queue(self, options: dict | None = None) -> str:
        options = options or {}
        if options.get("queue"):
            return options["queue"]
        route = (self.app.conf.task_routes or {}).get(self.name) or {}
        return route.get("queue") or self.app.conf.task_default_queue or "default"

    def apply_async(self, args=None, kwargs=None, task_id=None, **options):
        task_id = task_id or str(uuid.uuid4())
        args = list(args or [])
        self.tracker.record_enqueued(
            self.kind,
            task_id,
            JobContext.from_arguments(args),
            arguments=args,
            queue=self.routed_queue(options),
        )
        return super().apply_async(args, kwargs, task_id=task_id, **options)

    def exclusive_lock(self, job_id: str, args):
        context = JobContext.from_arguments(args)
        if not self.exclusive or context is None:
            return nullcontext()
        return sync_lock.sync_lock(context.account_id, self.kind, job_id=job_id)

    def __call__(self, *args, **kwargs):
        job_id = self.request.id
        if not job_id:
            return super().__call__(*args, **kwargs)

        # The worker has already pushed the request; Task.__call__ would push
        # a second one without the task id.
        try:
            with self.exclusive_lock(job_id, args):
                with self.tracker.tracked_run(job_id):
                    return self.run(*args, **kwargs)
        except SyncLockUnavailable as exc:
            self.tracker.record_failed(job_id, exc)
            if self.requeue_when_locked:
                self.schedule_retry(exc, args, kwargs)
            raise
        except Exception as exc:
            self.schedule_retry(exc, args, kwargs)
            raise

    def current_queue(self) -> str:
        delivery_info = self.request.delivery_info or {}
        return delivery_info.get("routing_key") or self.routed_queue()

    def retry_countdown(self, exc: BaseException, attempt: int, queue: str | None = None) -> float | None:
        """Seconds until the next attempt, or None when the failure is not retried."""
        policy = policy_for(queue or self.routed_queue())
        if isinstance(exc, SyncLockUnavailable):
            if not self.requeue_when_locked or attempt >= policy.max_retries:
                return None
            return policy.countdown(attempt)
        if not policy.should_retry(exc, attempt):
            return None
        return policy.countdown(attempt, exc)

    def retry_arguments(self, exc: BaseException, args, kwargs) -> tuple[list, dict | None]:
        """Arguments after the context for the next attempt.

        A partial failure narrows the retry to the platforms that failed.
        """
        kwargs = dict(kwargs or {})
        if isinstance(exc, PartialSyncError) and exc.failed_platforms:
            kwargs["platforms"] = list(exc.failed_platforms)
        return list(args)[1:], kwargs or None

    def schedule_retry(self, exc: BaseException, args, kwargs) -> str | None:
        """Re-enqueue the job if the queue's policy allows. Returns the new task id."""
        context = JobContext.from_arguments(args)
        if context is None:
            return None

        queue = self.current_queue()
        countdown = self.retry_countdown(exc, context.attempt, queue)
        if countdown is None:
            logger.info(f"Not retrying {self.kind} (attempt {context.attempt}): {type(exc).__name__}: {exc}")
            return None

        rest, kwargs = self.retry_arguments(exc, args, kwargs)
        retry_args = [context.next_attempt().to_payload(), *rest]
        result = self.apply_async(args=retry_args, kwargs=kwargs, countdown=countdown, queue=queue)
        logger.warning(
            f"Retrying {self.kind} for shop {context.account_id} in {countdown}s "
            f"(attempt {context.attempt + 1}) as {result.id}: {type(exc).__name__}: {exc}"
        )
        return result.id
