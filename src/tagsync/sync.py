"""Segment syncs: resolve, walk, report progress and cache the result."""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from typing import Callable, Optional, TYPE_CHECKING

from .errors import SegmentResolutionError, SyncFailedError
from .resources.customers_types import CustomerRecord
from .resources.segments_types import ProgressObserver, SyncProgress, SyncResult, SyncState
from .segments import SegmentCatalog
from .store import MemoryStore, SyncStore
from .walker import DEFAULT_MAX_PAGES, DEFAULT_PAGE_SIZE, CursorWalker

if TYPE_CHECKING:  # pragma: no cover
    from .resources.customers import Customers

logger = logging.getLogger(__name__)

DEFAULT_CACHE_TTL = 300.0
CACHE_KEY_PREFIX = "segment_sync:"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def cache_key(segment: str) -> str:
    return f"{CACHE_KEY_PREFIX}{segment}"


class SyncOrchestrator:
    """Produce complete, deduplicated customer lists for named segments.

    Per segment the orchestrator moves through ``IDLE -> FETCHING`` and ends in
    ``COMPLETE``, ``PARTIAL`` (page ceiling or cancellation) or ``FAILED``
    (fatal page error or unresolvable segment). A cache hit leaves the segment
    ``IDLE``.
    """

    def __init__(
        self,
        customers: "Customers",
        catalog: Optional[SegmentCatalog] = None,
        *,
        store: Optional[SyncStore] = None,
        cache_ttl: float = DEFAULT_CACHE_TTL,
        page_size: int = DEFAULT_PAGE_SIZE,
        max_pages: int = DEFAULT_MAX_PAGES,
        now: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._customers = customers
        self.catalog = catalog or SegmentCatalog()
        self.store: SyncStore = store if store is not None else MemoryStore()
        self.cache_ttl = cache_ttl
        self.page_size = page_size
        self.max_pages = max_pages
        self._now = now
        self._states: dict[str, SyncState] = {}
        self._lock = threading.Lock()

    def state(self, segment: str) -> SyncState:
        with self._lock:
            return self._states.get(segment, SyncState.IDLE)

    def _set_state(self, segment: str, state: SyncState) -> None:
        with self._lock:
            self._states[segment] = state

    def sync(
        self,
        segment: str,
        *,
        force: bool = False,
        observer: Optional[ProgressObserver] = None,
        cancel: Optional[threading.Event] = None,
    ) -> SyncResult:
        """Retrieve every customer in ``segment``.

        Parameters
        ----------
        segment
            Segment name as listed by the catalog.
        force
            Bypass the cached result and walk the upstream again.
        observer
            Called with a :class:`SyncProgress` after every page.
        cancel
            When set, no new page is requested and the partial result is returned.

        Returns
        -------
        SyncResult
            Empty (not an error) for segment names the catalog does not know.

        Raises
        ------
        SegmentResolutionError
            If the segment is known but has no configured filter.
        SyncFailedError
            If a page failed fatally; ``partial`` holds the records retrieved.
        """
        try:
            definition = self.catalog.resolve(segment)
        except SegmentResolutionError:
            self._set_state(segment, SyncState.FAILED)
            raise
        if definition is None:
            logger.warning("Unknown segment %r; returning an empty result", segment)
            return SyncResult(
                segment=segment,
                expected_count=None,
                actual_count=0,
                records=(),
                completed_at=self._now(),
            )

        key = cache_key(definition.name)
        if not force:
            cached = self.store.get_cached_sync(key)
            if cached is not None:
                logger.info("Using cached sync of %s (%s records)", definition.name, cached.actual_count)
                self._set_state(definition.name, SyncState.IDLE)
                return cached

        self._set_state(definition.name, SyncState.FETCHING)
        logger.info("Starting sync of %s", definition.name)
        expected = self._customers.count(definition.query, cancel=cancel)

        walker = CursorWalker(
            self._customers,
            segment=definition.name,
            page_size=self.page_size,
            max_pages=self.max_pages,
            cancel=cancel,
            now=self._now,
        )
        try:
            for _page in walker.walk(definition.query):
                self._emit(observer, SyncProgress(definition.name, walker.pages, len(walker.records), expected))
        except SyncFailedError as exc:
            self._set_state(definition.name, SyncState.FAILED)
            raise SyncFailedError(str(exc), cause=exc.cause, partial=walker.result(expected)) from exc.cause

        result = walker.result(expected)
        self._emit(observer, SyncProgress(definition.name, result.pages, result.actual_count, expected, done=True))
        if result.complete:
            self._set_state(definition.name, SyncState.COMPLETE)
        else:
            self._set_state(definition.name, SyncState.PARTIAL)

        if result.cancelled:
            logger.info("Sync of %s cancelled with %s records; not cached", definition.name, result.actual_count)
        else:
            self.store.put_cached_sync(key, result, self.cache_ttl)

        if expected is not None and not result.partial and expected != result.actual_count:
            logger.info(
                "Sync of %s retrieved %s records; upstream count said %s",
                definition.name,
                result.actual_count,
                expected,
            )
        logger.info("Finished sync of %s: %s records in %s pages", definition.name, result.actual_count, result.pages)
        return result

    def preview(
        self,
        segment: str,
        *,
        limit: Optional[int] = None,
        cancel: Optional[threading.Event] = None,
    ) -> list[CustomerRecord]:
        """Return up to one page of the segment without walking or caching."""
        definition = self.catalog.resolve(segment)
        if definition is None:
            logger.warning("Unknown segment %r; nothing to preview", segment)
            return []
        page = self._customers.page(definition.query, first=limit or self.page_size, cancel=cancel)
        seen: set[str] = set()
        records: list[CustomerRecord] = []
        for record in page.records:
            if record.id not in seen:
                seen.add(record.id)
                records.append(record)
        return records

    def _emit(self, observer: Optional[ProgressObserver], progress: SyncProgress) -> None:
        if observer is None:
            return
        try:
            observer(progress)
        except Exception as exc:  # noqa: BLE001 - a broken observer must not abort the sync
            logger.warning("Progress observer failed for %s: %s", progress.segment, exc)


__all__ = ["DEFAULT_CACHE_TTL", "SyncOrchestrator", "cache_key"]
