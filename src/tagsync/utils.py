"""Shared helpers for the tagsync client."""

from __future__ import annotations

from typing import Hashable, Iterable, TypeVar

T = TypeVar("T", bound=Hashable)


def unique_in_order(values: Iterable[T]) -> list[T]:
    """Return unique values preserving the original order."""
    seen: set[T] = set()
    output: list[T] = []
    for value in values:
        if value in seen:
            continue
        seen.add(value)
        output.append(value)
    return output


def short_id(identifier: object) -> str:
    """Strip a ``gid://shop/Type/123`` prefix down to ``123``."""
    text = str(identifier).strip()
    if text.startswith("gid://"):
        return text.rsplit("/", 1)[-1]
    return text
