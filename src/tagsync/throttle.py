"""Cost-budget throttling shared by every request to one upstream store.

The upstream meters work in cost points: a bucket of ``max_available`` points
refills at ``restore_rate`` points per second and each request drains what it
costs. On top of that every request keeps a minimum gap from the previous one.
A single :class:`Throttler` instance is handed to every component that talks
to the same store, so pagination and tag writes share one budget.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Optional

logger = logging.getLogger(__name__)

DEFAULT_PAGE_INTERVAL = 1.2
DEFAULT_MAX_AVAILABLE = 1000.0
DEFAULT_RESTORE_RATE = 50.0

Clock = Callable[[], float]
Sleeper = Callable[[float, Optional[threading.Event]], bool]


def interruptible_sleep(seconds: float, cancel: Optional[threading.Event] = None) -> bool:
    """Sleep for ``seconds``; return True if ``cancel`` was set meanwhile."""
    if seconds <= 0:
        return bool(cancel is not None and cancel.is_set())
    if cancel is None:
        time.sleep(seconds)
        return False
    return cancel.wait(seconds)


class Throttler:
    """Rolling cost budget plus a minimum inter-request delay."""

    def __init__(
        self,
        *,
        min_interval: float = DEFAULT_PAGE_INTERVAL,
        max_available: float = DEFAULT_MAX_AVAILABLE,
        restore_rate: float = DEFAULT_RESTORE_RATE,
        clock: Clock = time.monotonic,
        sleep: Sleeper = interruptible_sleep,
    ) -> None:
        """Create a throttler.

        Parameters
        ----------
        min_interval
            Default minimum seconds between two consecutive requests.
        max_available
            Size of the cost bucket.
        restore_rate
            Cost points restored per second.
        clock
            Monotonic time source, injectable for tests.
        sleep
            ``sleep(seconds, cancel) -> cancelled`` callable, injectable for tests.
        """
        self.min_interval = float(min_interval)
        self.max_available = float(max_available)
        self.restore_rate = float(restore_rate)
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self._available = self.max_available
        self._updated_at = clock()
        self._last_slot: Optional[float] = None
        self._blocked_until = 0.0

    @property
    def available(self) -> float:
        with self._lock:
            self._restore(self._clock())
            return self._available

    def now(self) -> float:
        return self._clock()

    def _restore(self, now: float) -> None:
        elapsed = now - self._updated_at
        if elapsed > 0:
            self._available = min(self.max_available, self._available + elapsed * self.restore_rate)
            self._updated_at = now

    def acquire(
        self,
        cost: float = 1.0,
        *,
        min_interval: Optional[float] = None,
        cancel: Optional[threading.Event] = None,
    ) -> bool:
        """Block until the next request may go out.

        Parameters
        ----------
        cost
            Estimated cost points of the request about to be issued.
        min_interval
            Override of the default inter-request gap for this request.
        cancel
            Cancellation signal; checked before reserving and while waiting.

        Returns
        -------
        bool
            True when the caller may proceed, False when cancelled.
        """
        if cancel is not None and cancel.is_set():
            return False

        interval = self.min_interval if min_interval is None else float(min_interval)
        cost = min(max(float(cost), 0.0), self.max_available)

        with self._lock:
            now = self._clock()
            self._restore(now)
            slot = max(now, self._blocked_until)
            if self._last_slot is not None:
                slot = max(slot, self._last_slot + interval)
            deficit = cost - self._available
            if deficit > 0 and self.restore_rate > 0:
                slot = max(slot, now + deficit / self.restore_rate)
            # Reserve before releasing the lock so concurrent callers queue behind us.
            previous_slot = self._last_slot
            self._last_slot = slot
            self._available -= cost
            wait = slot - now

        if wait <= 0:
            return True
        logger.debug("Throttling request for %.2fs (cost %.0f)", wait, cost)
        if not self._sleep(wait, cancel):
            return True

        # Cancelled while waiting: the request never goes out, so give the reservation back.
        with self._lock:
            self._restore(self._clock())
            self._available = min(self.max_available, self._available + cost)
            if self._last_slot == slot:
                self._last_slot = previous_slot
        logger.debug("Throttled request cancelled; released %.0f cost points", cost)
        return False

    def pause(self, seconds: float, cancel: Optional[threading.Event] = None) -> bool:
        """Wait ``seconds`` on the throttler's clock; return False if cancelled."""
        if cancel is not None and cancel.is_set():
            return False
        if seconds <= 0:
            return True
        return not self._sleep(seconds, cancel)

    def penalize(self, seconds: float) -> None:
        """Hold back every caller for ``seconds`` after an upstream throttling signal."""
        with self._lock:
            self._blocked_until = max(self._blocked_until, self._clock() + max(float(seconds), 0.0))

    def record_cost(
        self,
        *,
        currently_available: Optional[float] = None,
        maximum_available: Optional[float] = None,
        restore_rate: Optional[float] = None,
    ) -> None:
        """Reconcile the local budget with the throttle status the upstream reported."""
        with self._lock:
            self._restore(self._clock())
            if maximum_available is not None and maximum_available > 0:
                self.max_available = float(maximum_available)
            if restore_rate is not None and restore_rate > 0:
                self.restore_rate = float(restore_rate)
            if currently_available is not None:
                self._available = min(float(currently_available), self.max_available)


__all__ = [
    "DEFAULT_MAX_AVAILABLE",
    "DEFAULT_PAGE_INTERVAL",
    "DEFAULT_RESTORE_RATE",
    "Throttler",
    "interruptible_sleep",
]
