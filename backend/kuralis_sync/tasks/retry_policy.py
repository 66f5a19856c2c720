"""Per-queue retry policies and failure classification."""

import random
from dataclasses import dataclass

import httpx
from celery.exceptions import SoftTimeLimitExceeded

from kuralis_sync.errors import PlatformRateLimitError, TransientSyncError

TRANSIENT_ERRORS = (TransientSyncError, httpx.TransportError, SoftTimeLimitExceeded)


def is_transient(exc: BaseException) -> bool:
    """Transient failures may succeed on a later attempt. Everything else is permanent."""
    return isinstance(exc, TRANSIENT_ERRORS)


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = 3
    base_delay: float = 60.0  # seconds
    max_delay: float = 3600.0
    jitter: float = 0.1  # fraction of the delay added at random

    def should_retry(self, exc: BaseException, attempt: int) -> bool:
        return is_transient(exc) and attempt < self.max_retries

    def countdown(self, attempt: int, exc: BaseException | None = None, rand=random.random) -> float:
        """Seconds to wait before retry number ``attempt + 1``."""
        delay = min(self.base_delay * (2 ** attempt), self.max_delay)
        if isinstance(exc, PlatformRateLimitError) and exc.retry_after:
            delay = max(delay, exc.retry_after)
        if self.jitter:
            delay += delay * self.jitter * rand()
        return round(delay, 2)


QUEUE_POLICIES: dict[str, RetryPolicy] = {
    "default": RetryPolicy(max_retries=3, base_delay=60, max_delay=900),
    "images": RetryPolicy(max_retries=2, base_delay=30, max_delay=300),
    # Trading API call limits reset slowly
    "ebay": RetryPolicy(max_retries=4, base_delay=300, max_delay=4 * 3600),
    "shopify": RetryPolicy(max_retries=4, base_delay=60, max_delay=3600),
}


def policy_for(queue: str | None) -> RetryPolicy:
    return QUEUE_POLICIES.get(queue or "default", QUEUE_POLICIES["default"])
