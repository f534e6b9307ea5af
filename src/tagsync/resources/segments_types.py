"""Types for segment definitions, sync results and progress events."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, Optional

from .customers_types import CustomerRecord


@dataclass(frozen=True)
class SegmentDefinition:
    """A named segment and the upstream filter expression that selects it.

    ``query`` is None for segments whose filter has not been configured;
    ``match_all`` marks the segment that deliberately uses no filter. ``id``
    is the upstream global id of segments defined in the store itself.
    """
    name: str
    description: str = ""
    query: Optional[str] = None
    match_all: bool = False
    id: Optional[str] = None

    @property
    def resolved(self) -> bool:
        return self.match_all or bool(self.query)


@dataclass(frozen=True)
class SyncResult:
    segment: str
    expected_count: Optional[int]
    actual_count: int
    records: tuple[CustomerRecord, ...]
    completed_at: datetime
    partial: bool = False
    cancelled: bool = False
    pages: int = 0

    @property
    def identifiers(self) -> list[str]:
        return [record.id for record in self.records]

    @property
    def complete(self) -> bool:
        return not self.partial and not self.cancelled


class SyncState(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    COMPLETE = "complete"
    PARTIAL = "partial"
    FAILED = "failed"


@dataclass(frozen=True)
class SyncProgress:
    """Emitted after every page folded into a running sync."""
    segment: str
    pages: int
    records: int
    expected_count: Optional[int] = None
    done: bool = False


ProgressObserver = Callable[[SyncProgress], None]


def _normalize_segment(node: object) -> SegmentDefinition | None:
    """Build a definition from an upstream segment node; None if it has no name."""
    if not isinstance(node, dict):
        return None
    name = node.get("name")
    if not isinstance(name, str) or not name.strip():
        return None
    query = node.get("query")
    segment_id = node.get("id")
    return SegmentDefinition(
        name.strip(),
        f"Segment: {name.strip()}",
        query=query.strip() if isinstance(query, str) and query.strip() else None,
        id=segment_id if isinstance(segment_id, str) and segment_id else None,
    )


__all__ = [
    "ProgressObserver",
    "SegmentDefinition",
    "SyncProgress",
    "SyncResult",
    "SyncState",
]
