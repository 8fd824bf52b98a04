"""
Error taxonomy

Every failure the pipeline can surface to a caller. Per-item failures are
collected into result lists by the fetcher and the extraction service; the
classes below are what ends up in those lists or propagates to the sync
orchestrator.
"""

from datetime import datetime
from typing import Optional


class ArchlogError(Exception):
    """Base class for all archlog errors."""

    kind = "error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(ArchlogError):
    """Malformed input. Never retried."""

    kind = "validation"


class CursorMismatchError(ValidationError):
    """Two cursors of different types were compared."""


class HostError(ArchlogError):
    """Base class for code-host API failures."""

    kind = "host"

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class AccessRevokedError(HostError):
    """
    The host token is invalid or no longer grants access.
    Terminal until the user re-authorizes.
    """

    kind = "access_revoked"


class NotFoundError(HostError):
    """Repository (or record) does not exist or is not visible."""

    kind = "not_found"


class RateLimitedError(HostError):
    """Quota exhausted. Carries the number of seconds until it resets."""

    kind = "rate_limited"

    def __init__(self, message: str, retry_after: float, status: Optional[int] = None):
        super().__init__(message, status)
        self.retry_after = retry_after


class BudgetExceededError(ArchlogError):
    """Daily extraction budget exhausted for a repository."""

    kind = "budget_exceeded"

    def __init__(self, message: str, reset_at: datetime):
        super().__init__(message)
        self.reset_at = reset_at


class ProviderError(ArchlogError):
    """One text-generation provider failed to produce a valid response."""

    kind = "provider"

    TIMEOUT = "timeout"
    TRANSPORT = "transport"
    MALFORMED = "malformed"
    SCHEMA = "schema"

    def __init__(self, provider: str, failure: str, message: str):
        super().__init__(f"{provider} provider {failure}: {message}")
        self.provider = provider
        self.failure = failure


class ExtractionError(ArchlogError):
    """Both the primary and the fallback provider failed."""

    kind = "extraction"

    def __init__(self, primary_error: Exception, fallback_error: Exception):
        super().__init__(
            f"Primary and fallback extraction failed. "
            f"primary: {primary_error}; fallback: {fallback_error}"
        )
        self.primary_error = primary_error
        self.fallback_error = fallback_error


class StorageError(ArchlogError):
    """The store could not complete an operation."""

    kind = "storage"


class SyncInProgressError(ArchlogError):
    """The repository lock is held by another run."""

    kind = "already_running"


class RecordNotFoundError(StorageError):
    """A row the caller named does not exist in the store."""

    kind = "not_found"
