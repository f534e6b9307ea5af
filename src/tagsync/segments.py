"""Mapping from segment names to upstream filter expressions."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable, Mapping, Optional

from .errors import SegmentResolutionError
from .resources.segments_types import SegmentDefinition

logger = logging.getLogger(__name__)

ALL_CUSTOMERS = "All Customers"
VIP_CUSTOMERS = "VIP Customers"
VVIP_CUSTOMERS = "VVIP Customers"
NEW_CUSTOMERS = "New Customers"
REPEAT_BUYERS = "Repeat Buyers"

NEW_CUSTOMER_WINDOW_DAYS = 30

BUILTIN_SEGMENTS: tuple[SegmentDefinition, ...] = (
    SegmentDefinition(ALL_CUSTOMERS, "Complete customer base", match_all=True),
    SegmentDefinition(VIP_CUSTOMERS, "Customers tagged VIP", query="tag:VIP"),
    SegmentDefinition(VVIP_CUSTOMERS, "Customers tagged VVIP", query="tag:VVIP"),
    SegmentDefinition(NEW_CUSTOMERS, f"Created in the last {NEW_CUSTOMER_WINDOW_DAYS} days"),
    # No threshold is defined upstream for repeat buyers; the filter must come from configuration.
    SegmentDefinition(REPEAT_BUYERS, "Customers with multiple orders"),
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SegmentCatalog:
    """Segment names known ahead of time, configured extras and the store's own segments."""

    def __init__(
        self,
        filters: Optional[Mapping[str, str]] = None,
        *,
        now: Callable[[], datetime] = _utcnow,
    ) -> None:
        """Create a catalog.

        Parameters
        ----------
        filters
            Segment name to filter expression. Overrides the built-in filter of
            a segment with the same name, or adds a new segment.
        now
            Time source for relative-date segments.
        """
        self._now = now
        self._segments: dict[str, SegmentDefinition] = {segment.name: segment for segment in BUILTIN_SEGMENTS}
        self._configured: set[str] = set()
        self._upstream: dict[str, SegmentDefinition] = {}
        for name, query in (filters or {}).items():
            if not isinstance(name, str) or not name.strip():
                logger.warning("Ignoring segment filter with invalid name: %r", name)
                continue
            if not isinstance(query, str) or not query.strip():
                logger.warning("Ignoring empty filter for segment %s", name)
                continue
            existing = self._segments.get(name.strip())
            description = existing.description if existing else f"Configured filter: {query.strip()}"
            self._segments[name.strip()] = SegmentDefinition(name.strip(), description, query=query.strip())
            self._configured.add(name.strip())

    def set_upstream(self, definitions: Iterable[SegmentDefinition]) -> int:
        """Replace the segments the store itself defines.

        Upstream segments are listed after the built-ins. A configured filter
        always wins over an upstream segment of the same name, and
        ``All Customers`` is never replaced. An upstream segment replaces a
        built-in of the same name unless it has no filter and the built-in has one.

        Returns
        -------
        int
            Number of upstream segments accepted.
        """
        upstream: dict[str, SegmentDefinition] = {}
        for definition in definitions:
            name = definition.name.strip() if isinstance(definition.name, str) else ""
            if not name:
                logger.warning("Ignoring upstream segment without a name: %r", definition)
                continue
            if name == ALL_CUSTOMERS or name in self._configured:
                logger.debug("Keeping local definition of segment %s over the upstream one", name)
                continue
            upstream[name] = definition
        self._upstream = upstream
        logger.info("Catalog holds %s upstream segments", len(upstream))
        return len(upstream)

    def clear_upstream(self) -> None:
        self._upstream = {}

    def list(self) -> list[SegmentDefinition]:
        """Return every segment with its filter as it would resolve right now."""
        return [self._materialize(segment) for segment in self._merged().values()]

    def get(self, name: str) -> SegmentDefinition | None:
        """Look a segment up by name, or by upstream global id."""
        if not isinstance(name, str) or not name.strip():
            return None
        key = name.strip()
        merged = self._merged()
        segment = merged.get(key)
        if segment is None:
            segment = next((candidate for candidate in merged.values() if candidate.id == key), None)
        return self._materialize(segment) if segment else None

    def resolve(self, name: str) -> SegmentDefinition | None:
        """Resolve ``name`` to a usable definition.

        Returns
        -------
        SegmentDefinition | None
            None for names the catalog does not know.

        Raises
        ------
        SegmentResolutionError
            If the segment is known but no filter has been configured for it.
        """
        segment = self.get(name)
        if segment is None:
            return None
        if not segment.resolved:
            raise SegmentResolutionError(f"No filter configured for segment {segment.name!r}")
        return segment

    def _merged(self) -> dict[str, SegmentDefinition]:
        merged = dict(self._segments)
        for name, segment in self._upstream.items():
            existing = merged.get(name)
            if existing is not None and existing.resolved and not segment.resolved:
                continue
            merged[name] = segment
        return merged

    def _materialize(self, segment: SegmentDefinition) -> SegmentDefinition:
        if segment.name == NEW_CUSTOMERS and not segment.query:
            since = (self._now() - timedelta(days=NEW_CUSTOMER_WINDOW_DAYS)).date()
            return SegmentDefinition(
                segment.name, segment.description, query=f"created_at:>={since.isoformat()}", id=segment.id
            )
        return segment


__all__ = [
    "ALL_CUSTOMERS",
    "BUILTIN_SEGMENTS",
    "NEW_CUSTOMERS",
    "REPEAT_BUYERS",
    "SegmentCatalog",
    "VIP_CUSTOMERS",
    "VVIP_CUSTOMERS",
]
