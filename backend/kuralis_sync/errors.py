"""Exception hierarchy for the sync engine.

Transient errors are eligible for automatic retry by the queue's retry
policy. Permanent errors surface as ``failed`` and are never retried.
"""


class SyncError(Exception):
    """Base exception for all sync engine errors."""


class TransientSyncError(SyncError):
    """A failure that may succeed if the same work is attempted again later."""


class PlatformRateLimitError(TransientSyncError):
    """Raised when a platform API throttles us."""

    def __init__(self, message: str, retry_after: float | None = None):
        super().__init__(message)
        self.retry_after = retry_after


class PlatformUnavailableError(TransientSyncError):
    """Raised on network failures and 5xx responses from a platform API."""


class SyncTimeoutError(TransientSyncError):
    """Raised when a reconciliation exceeds its wall-clock deadline."""


class PartialSyncError(TransientSyncError):
    """Raised when a push succeeded on some platforms but not on others."""

    def __init__(self, message: str, failed_platforms: list[str] | None = None):
        super().__init__(message)
        self.failed_platforms = failed_platforms or []


class PermanentSyncError(SyncError):
    """A failure that retrying cannot fix."""


class ListingValidationError(PermanentSyncError):
    """Raised when local data fails validation."""


class RecordNotFoundError(PermanentSyncError):
    """Raised when a referenced shop, listing or product does not exist."""


class PlatformRequestError(PermanentSyncError):
    """Raised when a platform rejects a request (Ack=Failure, 4xx)."""

    def __init__(self, message: str, codes: list[str] | None = None):
        super().__init__(message)
        self.codes = [code for code in (codes or []) if code]


class PlatformNotConfiguredError(PermanentSyncError):
    """Raised when a shop has no credentials for the requested platform."""


class SyncLockUnavailable(SyncError):
    """Raised when another sync already holds the (account, kind) lock."""
