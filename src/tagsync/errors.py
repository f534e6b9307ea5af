"""Exception taxonomy for upstream calls, tag input and segment syncs."""

from __future__ import annotations

from typing import Optional, TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover
    from .resources.segments_types import SyncResult


class TagSyncError(Exception):
    """Base class for every error raised by the client."""


class TransientNetworkError(TagSyncError):
    """Timeout or connection reset while talking to the upstream."""


class RateLimitedError(TagSyncError):
    """The upstream asked us to slow down.

    Raised both for an explicit ``429`` status and for a ``THROTTLED`` error
    embedded in an otherwise successful GraphQL response.
    """

    def __init__(self, message: str, *, retry_after: Optional[float] = None) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class UpstreamServerError(TagSyncError):
    """5xx-class response."""

    def __init__(self, message: str, *, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.status = status


class NotFoundError(TagSyncError):
    """The identifier is unknown upstream. Retrying will never help."""


class UpstreamRequestError(TagSyncError):
    """Hard 4xx response or a GraphQL error that is not a throttling signal."""

    def __init__(self, message: str, *, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.status = status


class ValidationError(TagSyncError, ValueError):
    """Malformed tag, action or identifier input, raised before any upstream call."""


class RetriesExhaustedError(TagSyncError):
    """A retryable failure kept happening until the retry budget ran out."""

    def __init__(self, last_error: Exception, attempts: int) -> None:
        self.last_error = last_error
        self.attempts = attempts
        super().__init__(f"Gave up after {attempts} attempts. Last error: {last_error}")


class OperationCancelled(TagSyncError):
    """The caller's cancellation signal was set before the next request."""


class SegmentResolutionError(TagSyncError):
    """A known segment has no filter expression configured."""


class SyncFailedError(TagSyncError):
    """A segment walk aborted on a fatal error.

    ``partial`` holds whatever was retrieved before the failure so callers
    never lose progress.
    """

    def __init__(self, message: str, *, cause: Exception, partial: "SyncResult") -> None:
        super().__init__(message)
        self.cause = cause
        self.partial = partial

    @property
    def records_retrieved(self) -> int:
        return self.partial.actual_count


class RuleInactiveError(TagSyncError):
    """Inactive rules are refused before any upstream traffic."""


__all__ = [
    "NotFoundError",
    "OperationCancelled",
    "RateLimitedError",
    "RetriesExhaustedError",
    "RuleInactiveError",
    "SegmentResolutionError",
    "SyncFailedError",
    "TagSyncError",
    "TransientNetworkError",
    "UpstreamRequestError",
    "UpstreamServerError",
    "ValidationError",
]
