"""Types and validation helpers for tag actions.

A list of :class:`TagAction` is a transformation over a customer's tag set:
``add`` inserts a tag if absent, ``remove`` deletes it, and actions apply in
list order so later actions see the effect of earlier ones.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Literal, Mapping, Sequence, TypedDict, get_args

from typing_extensions import ReadOnly

from ._common_types import _normalize_tag_list

TagActionKind = Literal["add", "remove"]
TAG_ACTION_KINDS: tuple[TagActionKind, ...] = get_args(TagActionKind)


class TagActionInput(TypedDict, total=False):
    """Tag action as produced by rule forms and stored rule definitions."""
    type: ReadOnly[TagActionKind]
    kind: ReadOnly[TagActionKind]
    tag: ReadOnly[str]


@dataclass(frozen=True)
class TagAction:
    kind: TagActionKind
    tag: str

    def __post_init__(self) -> None:
        if self.kind not in TAG_ACTION_KINDS:
            raise ValueError(f"Unknown tag action kind: {self.kind!r}")
        if not isinstance(self.tag, str) or not self.tag.strip():
            raise ValueError(f"Tag must be a non-empty string: {self.tag!r}")
        if "," in self.tag:
            raise ValueError(f"Tag may not contain a comma: {self.tag!r}")
        object.__setattr__(self, "tag", self.tag.strip())

    @classmethod
    def add(cls, tag: str) -> "TagAction":
        return cls("add", tag)

    @classmethod
    def remove(cls, tag: str) -> "TagAction":
        return cls("remove", tag)

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> "TagAction":
        """Build an action from ``{"type": "add", "tag": "VIP"}`` (``kind`` also accepted)."""
        if not isinstance(data, Mapping):
            raise ValueError(f"Tag action must be a dict: {type(data)}")
        kind = data.get("type", data.get("kind"))
        tag = data.get("tag")
        if isinstance(kind, str):
            kind = kind.strip().lower()
        return cls(kind, tag)  # type: ignore[arg-type]

    def to_dict(self) -> dict[str, str]:
        return {"type": self.kind, "tag": self.tag}


def _normalize_actions(
    actions: Sequence[TagAction | Mapping[str, object]] | object,
) -> tuple[list[TagAction], list[str] | None]:
    """Normalize action inputs and return errors."""
    if isinstance(actions, (str, bytes, Mapping)) or not isinstance(actions, Sequence):
        return ([], [f"Actions must be a list: {type(actions).__name__}"])

    valid: list[TagAction] = []
    errors: list[str] | None = []
    for index, action in enumerate(actions):
        if isinstance(action, TagAction):
            valid.append(action)
            continue
        try:
            valid.append(TagAction.from_dict(action))  # type: ignore[arg-type]
        except ValueError as exc:
            errors.append(f"action {index}: {exc}")

    errors = errors if errors else None
    return (valid, errors)


def apply_actions(tags: Iterable[str], actions: Iterable[TagAction]) -> list[str]:
    """Fold ``actions`` over ``tags`` and return the resulting tag list."""
    result = _normalize_tag_list(list(tags))
    for action in actions:
        if action.kind == "add":
            if action.tag not in result:
                result.append(action.tag)
        else:
            result = [tag for tag in result if tag != action.tag]
    return result


__all__ = [
    "TAG_ACTION_KINDS",
    "TagAction",
    "TagActionInput",
    "TagActionKind",
    "apply_actions",
]
