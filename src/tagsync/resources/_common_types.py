"""Shared types and validation helpers for resources.

This module contains:
- Validation mode type (shared across all resources)
- Tag list normalization (raw upstream tag strings and lists)
- Identifier normalization
"""

from __future__ import annotations

import logging
from typing import Iterable, Literal, Sequence

from ..utils import short_id, unique_in_order

_logger = logging.getLogger(__name__)

# --- Shared Validation Mode --- #
ValidationMode = Literal["off", "warn", "strict"]

TAG_SEPARATOR = ","


# --- Tag Lists --- #
def _normalize_tag_list(value: object) -> list[str]:
    """Normalize an upstream tag value to distinct, trimmed, non-blank tags.

    Parameters
    ----------
    value
        Either the comma-joined tag string returned by the REST endpoints, a
        list of tags as returned by GraphQL, or ``None``.

    Returns
    -------
    list[str]
        Tags in upstream order with blanks and repeats removed.
    """
    if value is None:
        return []
    if isinstance(value, str):
        parts: Iterable[object] = value.split(TAG_SEPARATOR)
    elif isinstance(value, Sequence):
        parts = value
    else:
        _logger.warning("Ignoring tags of unexpected type %s", type(value).__name__)
        return []
    cleaned = [part.strip() for part in parts if isinstance(part, str)]
    return unique_in_order(tag for tag in cleaned if tag)


def _join_tags(tags: Iterable[str]) -> str:
    """Render tags the way the record-write endpoint expects them."""
    return ", ".join(tags)


# --- Identifiers --- #
def _normalize_identifier(value: object) -> str | None:
    """Normalize a customer identifier, or return None if it is unusable.

    Accepts plain ids (``"123"`` or ``123``) and GraphQL global ids
    (``"gid://shopify/Customer/123"``).
    """
    if isinstance(value, bool) or not isinstance(value, (str, int)):
        return None
    text = short_id(value)
    return text or None
