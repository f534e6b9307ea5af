"""Segment helper tools."""

from __future__ import annotations

from typing import Any, Sequence

from tagsync.resources.segments_types import SegmentDefinition


def format_segment(segment: SegmentDefinition) -> str:
    """One-line label for a segment, showing its filter or why it has none."""
    if segment.match_all:
        detail = "all customers"
    elif segment.query:
        detail = segment.query
    else:
        detail = "not configured"
    return f"{segment.name} ({detail})"


def choose_segment(segments: Sequence[SegmentDefinition], *, include_unresolved: bool = False) -> SegmentDefinition | None:
    """Interactively choose a segment using InquirerPy.

    Parameters
    ----------
    segments
        Segments to offer, usually ``TagSync.list_segments()``.
    include_unresolved
        Also offer segments that have no filter configured.

    Returns
    -------
    SegmentDefinition | None
        Selected segment, or None if the user cancels.
    """
    try:
        from InquirerPy.resolver import prompt
    except ImportError as exc:  # pragma: no cover - optional dependency
        raise RuntimeError("InquirerPy is required for choose_segment.") from exc

    offered = [segment for segment in segments if include_unresolved or segment.resolved]
    if not offered:
        return None

    choices: list[dict[str, Any]] = [{"name": " X Cancel", "value": ("cancel", None)}]
    for segment in offered:
        choices.append({"name": format_segment(segment), "value": ("select", segment)})

    result = prompt(
        [
            {
                "type": "fuzzy",
                "name": "selection",
                "message": "Select a segment",
                "choices": choices,
            }
        ],
    )
    if not isinstance(result, dict):
        return None
    selection = result.get("selection")
    if not isinstance(selection, tuple) or len(selection) != 2:
        return None
    action, payload = selection
    if action == "select" and isinstance(payload, SegmentDefinition):
        return payload
    return None


__all__ = ["choose_segment", "format_segment"]
