"""Segment resource wrapper."""

from __future__ import annotations

import threading
from typing import Any, Optional

from ..errors import UpstreamRequestError
from .base import Resource
from .customers import page_cost
from .segments_types import SegmentDefinition, _normalize_segment

LIST_SEGMENTS_QUERY = """
query ListSegments($first: Int!, $after: String) {
  segments(first: $first, after: $after) {
    edges {
      node {
        id
        name
        query
      }
    }
    pageInfo {
      hasNextPage
      endCursor
    }
  }
}
"""

# Largest page the upstream accepts for this connection.
SEGMENT_PAGE_SIZE = 250
DEFAULT_MAX_SEGMENT_PAGES = 20


class Segments(Resource):
    """Segments defined in the store itself."""

    def list(
        self,
        *,
        max_pages: int = DEFAULT_MAX_SEGMENT_PAGES,
        cancel: Optional[threading.Event] = None,
        timeout: Optional[int] = None,
    ) -> list[SegmentDefinition]:
        """List the store's own segments with their filter expressions.

        Parameters
        ----------
        max_pages
            Ceiling on listing pages followed; a warning is logged when hit.
        cancel
            Cancellation signal checked before each attempt.
        timeout
            Timeout in seconds for each attempt.

        Returns
        -------
        list[SegmentDefinition]
            Segments in upstream order; nodes without a name are skipped.

        Raises
        ------
        UpstreamRequestError
            If the response lacks the segments connection.
        """
        segments: list[SegmentDefinition] = []
        after: Optional[str] = None
        for page_index in range(max_pages):
            variables: dict[str, Any] = {"first": SEGMENT_PAGE_SIZE, "after": after}

            def fetch() -> dict[str, Any]:
                data = self._graphql(LIST_SEGMENTS_QUERY, variables, timeout=timeout)
                connection = data.get("segments") if isinstance(data, dict) else None
                if not isinstance(connection, dict) or not isinstance(connection.get("edges"), list):
                    raise UpstreamRequestError(f"Segment listing missing expected connection; Response was {data}")
                return connection

            connection = self._call(
                fetch,
                cost=page_cost(SEGMENT_PAGE_SIZE),
                cancel=cancel,
                label=f"segment page {page_index + 1}",
            )
            for edge in connection["edges"]:
                node = edge.get("node") if isinstance(edge, dict) else None
                segment = _normalize_segment(node)
                if segment is None:
                    self._logger.warning("Skipping malformed segment node: %s", node)
                    continue
                segments.append(segment)

            page_info = connection.get("pageInfo") if isinstance(connection.get("pageInfo"), dict) else {}
            end_cursor = page_info.get("endCursor")
            if not page_info.get("hasNextPage") or not isinstance(end_cursor, str) or not end_cursor:
                return segments
            after = end_cursor

        self._logger.warning("Segment listing stopped at %s pages with %s segments", max_pages, len(segments))
        return segments
