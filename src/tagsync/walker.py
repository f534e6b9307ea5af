"""Forward-only cursor pagination over a segment's customers."""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from typing import Callable, Iterator, Optional, TYPE_CHECKING

from .errors import OperationCancelled, SyncFailedError, TagSyncError
from .resources.customers_types import CustomerPage, CustomerRecord, PageCursor
from .resources.segments_types import SyncResult

if TYPE_CHECKING:  # pragma: no cover
    from .resources.customers import Customers

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 50
DEFAULT_MAX_PAGES = 1000


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CursorWalker:
    """Lazy, single-use walk over one customer listing.

    Pages are requested strictly one after another because each request needs
    the previous page's cursor. Records are folded into an aggregate as pages
    arrive and any identifier already seen in this walk is dropped, which
    guards against an unstable upstream cursor returning overlapping pages.
    """

    def __init__(
        self,
        customers: "Customers",
        *,
        segment: str = "",
        page_size: int = DEFAULT_PAGE_SIZE,
        max_pages: int = DEFAULT_MAX_PAGES,
        cancel: Optional[threading.Event] = None,
        now: Callable[[], datetime] = _utcnow,
    ) -> None:
        if page_size < 1:
            raise ValueError(f"page_size must be positive: {page_size}")
        if max_pages < 1:
            raise ValueError(f"max_pages must be positive: {max_pages}")
        self._customers = customers
        self.segment = segment
        self.page_size = page_size
        self.max_pages = max_pages
        self._cancel = cancel
        self._now = now
        self._started = False
        self._seen: set[str] = set()
        self.records: list[CustomerRecord] = []
        self.pages = 0
        self.duplicates = 0
        self.truncated = False
        self.cancelled = False
        self.finished = False

    def walk(self, query: Optional[str]) -> Iterator[CustomerPage]:
        """Yield deduplicated pages for ``query`` until the listing is exhausted.

        Stops without error at end of data, at ``max_pages`` or on a page that
        reports more data without a cursor (``truncated`` is set in both), and
        when the cancellation signal is seen (``cancelled`` is set).

        Raises
        ------
        SyncFailedError
            On a fatal page failure; ``partial`` carries the records so far.
        """
        if self._started:
            raise RuntimeError("CursorWalker instances are single-use; create a new one per walk")
        self._started = True

        cursor = PageCursor(token=None, index=0)
        while True:
            if self._cancel is not None and self._cancel.is_set():
                self.cancelled = True
                logger.info("Walk of %s cancelled after %s pages", self.segment or "customers", self.pages)
                return
            try:
                page = self._customers.page(query, cursor=cursor, first=self.page_size, cancel=self._cancel)
            except OperationCancelled:
                self.cancelled = True
                logger.info("Walk of %s cancelled after %s pages", self.segment or "customers", self.pages)
                return
            except TagSyncError as exc:
                logger.warning(
                    "Walk of %s failed on page %s after %s records: %s",
                    self.segment or "customers",
                    cursor.index + 1,
                    len(self.records),
                    exc,
                )
                raise SyncFailedError(
                    f"Sync of {self.segment or 'customers'} failed on page {cursor.index + 1} "
                    f"after {len(self.records)} records: {exc}",
                    cause=exc,
                    partial=self.result(),
                ) from exc

            fresh = self._fold(page.records)
            self.pages += 1
            logger.debug(
                "Page %s of %s: %s records (%s duplicates)",
                self.pages,
                self.segment or "customers",
                len(fresh),
                len(page.records) - len(fresh),
            )
            yield CustomerPage(
                cursor=page.cursor,
                records=tuple(fresh),
                next_cursor=page.next_cursor,
                has_next=page.has_next,
                duplicates=len(page.records) - len(fresh),
                raw_count=page.raw_count,
            )

            if page.has_next and not page.next_cursor:
                self.truncated = True
                logger.warning(
                    "Walk of %s stopped after page %s: more data reported but no cursor given; result is partial",
                    self.segment or "customers",
                    self.pages,
                )
                return
            if page.is_last:
                self.finished = True
                return
            if self.pages >= self.max_pages:
                self.truncated = True
                logger.warning(
                    "Walk of %s stopped at the %s page ceiling with %s records; result is partial",
                    self.segment or "customers",
                    self.max_pages,
                    len(self.records),
                )
                return
            cursor = PageCursor(token=page.next_cursor, index=cursor.index + 1)

    def result(self, expected_count: Optional[int] = None) -> SyncResult:
        """Snapshot of everything folded so far."""
        return SyncResult(
            segment=self.segment,
            expected_count=expected_count,
            actual_count=len(self.records),
            records=tuple(self.records),
            completed_at=self._now(),
            partial=self.truncated,
            cancelled=self.cancelled,
            pages=self.pages,
        )

    def _fold(self, records: tuple[CustomerRecord, ...]) -> list[CustomerRecord]:
        fresh: list[CustomerRecord] = []
        for record in records:
            if record.id in self._seen:
                self.duplicates += 1
                continue
            self._seen.add(record.id)
            fresh.append(record)
        self.records.extend(fresh)
        return fresh


__all__ = ["CursorWalker", "DEFAULT_MAX_PAGES", "DEFAULT_PAGE_SIZE"]
