"""Retry classification and backoff for upstream calls.

Each outstanding request carries a :class:`RetryState`. The policy only looks
at that state and the failure to decide what happens next, so it can be
exercised without any real waiting; the actual waiting goes through the
shared :class:`~tagsync.throttle.Throttler` and its injectable clock.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, TypeVar

from .errors import (
    NotFoundError,
    OperationCancelled,
    RateLimitedError,
    RetriesExhaustedError,
    TagSyncError,
    TransientNetworkError,
    UpstreamRequestError,
    UpstreamServerError,
    ValidationError,
)
from .throttle import Throttler

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_RETRIES = 5
DEFAULT_INITIAL_BACKOFF = 3.0
DEFAULT_BACKOFF_FACTOR = 2.0
DEFAULT_MAX_BACKOFF = 60.0


class FailureKind(str, Enum):
    NETWORK = "network"
    THROTTLED = "throttled"
    SERVER = "server"
    NOT_FOUND = "not_found"
    CLIENT = "client"
    VALIDATION = "validation"
    UNKNOWN = "unknown"


RETRYABLE_KINDS = frozenset({FailureKind.NETWORK, FailureKind.THROTTLED, FailureKind.SERVER})


@dataclass(frozen=True)
class RetryDecision:
    retry: bool
    delay: float
    kind: FailureKind


@dataclass
class RetryState:
    """Book-keeping for one outstanding request."""

    attempts: int = 0
    network_retries: int = 0
    backoff_hits: int = 0
    next_allowed_at: float = 0.0
    last_error: Optional[Exception] = None

    def record(self, error: Exception, decision: RetryDecision, now: float) -> None:
        self.attempts += 1
        self.last_error = error
        if not decision.retry:
            return
        if decision.kind is FailureKind.NETWORK and decision.delay == 0:
            self.network_retries += 1
        else:
            self.backoff_hits += 1
        self.next_allowed_at = now + decision.delay


class RetryPolicy:
    """Decide between retry-with-delay and fatal for a failed attempt."""

    def __init__(
        self,
        *,
        max_retries: int = DEFAULT_MAX_RETRIES,
        initial_backoff: float = DEFAULT_INITIAL_BACKOFF,
        backoff_factor: float = DEFAULT_BACKOFF_FACTOR,
        max_backoff: float = DEFAULT_MAX_BACKOFF,
    ) -> None:
        self.max_retries = max_retries
        self.initial_backoff = initial_backoff
        self.backoff_factor = backoff_factor
        self.max_backoff = max_backoff

    def classify(self, error: BaseException) -> FailureKind:
        if isinstance(error, TransientNetworkError):
            return FailureKind.NETWORK
        if isinstance(error, RateLimitedError):
            return FailureKind.THROTTLED
        if isinstance(error, UpstreamServerError):
            return FailureKind.SERVER
        if isinstance(error, NotFoundError):
            return FailureKind.NOT_FOUND
        if isinstance(error, UpstreamRequestError):
            return FailureKind.CLIENT
        if isinstance(error, ValidationError):
            return FailureKind.VALIDATION
        return FailureKind.UNKNOWN

    def backoff(self, hits: int) -> float:
        """Delay before the ``hits``-th backoff retry (1-based)."""
        delay = self.initial_backoff * (self.backoff_factor ** max(hits - 1, 0))
        return min(delay, self.max_backoff)

    def decide(self, error: BaseException, state: RetryState) -> RetryDecision:
        """Classify ``error`` given what already happened to this request.

        Network resets get one immediate retry, then join the normal backoff.
        Throttling and server errors back off with an increasing delay. Once
        ``max_retries`` retries have been spent the failure becomes fatal.
        Everything else is fatal straight away.
        """
        kind = self.classify(error)
        if kind not in RETRYABLE_KINDS or state.attempts >= self.max_retries:
            return RetryDecision(False, 0.0, kind)
        if kind is FailureKind.NETWORK and state.network_retries == 0:
            return RetryDecision(True, 0.0, kind)

        delay = self.backoff(state.backoff_hits + 1)
        retry_after = getattr(error, "retry_after", None)
        if kind is FailureKind.THROTTLED and isinstance(retry_after, (int, float)):
            delay = max(delay, float(retry_after))
        return RetryDecision(True, delay, kind)


def call_with_retry(
    func: Callable[[], T],
    *,
    throttler: Throttler,
    policy: RetryPolicy,
    cost: float = 1.0,
    min_interval: Optional[float] = None,
    cancel: Optional[threading.Event] = None,
    label: str = "request",
) -> T:
    """Run one upstream call under throttling and the retry policy.

    Raises
    ------
    OperationCancelled
        If ``cancel`` is set before the call (or a retry of it) goes out.
    RetriesExhaustedError
        If a retryable failure persisted past ``policy.max_retries``.
    TagSyncError
        Any fatal classified error, unchanged.
    """
    state = RetryState()
    while True:
        if not throttler.acquire(cost, min_interval=min_interval, cancel=cancel):
            raise OperationCancelled(f"{label} cancelled before it was sent")
        try:
            return func()
        except TagSyncError as exc:
            decision = policy.decide(exc, state)
            state.record(exc, decision, throttler.now())
            if not decision.retry:
                if decision.kind in RETRYABLE_KINDS:
                    logger.warning("%s failed %s times; giving up: %s", label, state.attempts, exc)
                    raise RetriesExhaustedError(exc, state.attempts) from exc
                raise
            logger.warning(
                "%s failed (%s, attempt %s); retrying in %.1fs",
                label,
                decision.kind.value,
                state.attempts,
                decision.delay,
            )
            if decision.kind is FailureKind.THROTTLED:
                throttler.penalize(decision.delay)
            elif not throttler.pause(decision.delay, cancel):
                raise OperationCancelled(f"{label} cancelled while waiting to retry") from exc


__all__ = [
    "FailureKind",
    "RetryDecision",
    "RetryPolicy",
    "RetryState",
    "call_with_retry",
]
