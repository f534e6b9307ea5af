'''Types, structures, and validation for customers'''

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping, Optional, TypedDict

from typing_extensions import ReadOnly

from ._common_types import _join_tags, _normalize_identifier, _normalize_tag_list

__all__ = [
    "CustomerNode",
    "CustomerPage",
    "CustomerRecord",
    "CustomerResponse",
    "PageCursor",
]

#region --- RAW UPSTREAM SHAPES ---

class CustomerResponse(TypedDict, total=False):
    """Readonly customer dict returned by the REST record endpoints."""
    id: ReadOnly[int | str]
    first_name: ReadOnly[Optional[str]]
    last_name: ReadOnly[Optional[str]]
    email: ReadOnly[Optional[str]]
    tags: ReadOnly[str]
    orders_count: ReadOnly[int]
    total_spent: ReadOnly[str]
    created_at: ReadOnly[str]
    updated_at: ReadOnly[str]


class MoneyResponse(TypedDict, total=False):
    amount: ReadOnly[str]
    currencyCode: ReadOnly[str]


class CustomerNode(TypedDict, total=False):
    """Readonly customer node returned by the GraphQL listing."""
    id: ReadOnly[str]
    firstName: ReadOnly[Optional[str]]
    lastName: ReadOnly[Optional[str]]
    email: ReadOnly[Optional[str]]
    tags: ReadOnly[list[str]]
    numberOfOrders: ReadOnly[int | str]
    amountSpent: ReadOnly[MoneyResponse]
    createdAt: ReadOnly[str]
    updatedAt: ReadOnly[str]

#endregion

#region --- NORMALIZED RECORDS ---

@dataclass(frozen=True)
class CustomerRecord:
    """Immutable snapshot of one customer as retrieved."""
    id: str
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    tags: tuple[str, ...] = ()
    orders_count: int = 0
    total_spent: str = "0.00"
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def tag_string(self) -> str:
        return _join_tags(self.tags)

    def with_tags(self, tags: list[str] | tuple[str, ...]) -> "CustomerRecord":
        """Return an optimistic copy carrying ``tags``."""
        return CustomerRecord(
            id=self.id,
            first_name=self.first_name,
            last_name=self.last_name,
            email=self.email,
            tags=tuple(_normalize_tag_list(list(tags))),
            orders_count=self.orders_count,
            total_spent=self.total_spent,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )


@dataclass(frozen=True)
class PageCursor:
    """Position of one page request within a single walk."""
    token: Optional[str]
    index: int


@dataclass(frozen=True)
class CustomerPage:
    cursor: PageCursor
    records: tuple[CustomerRecord, ...]
    next_cursor: Optional[str]
    has_next: bool
    duplicates: int = 0
    raw_count: int = field(default=0, compare=False)

    @property
    def is_last(self) -> bool:
        return not self.has_next or not self.next_cursor

#endregion

#region --- NORMALIZERS ---

def _text(value: object) -> str:
    return value.strip() if isinstance(value, str) else ""


def _int(value: object) -> int:
    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return 0
    return 0


def _money(value: object) -> str:
    if isinstance(value, Mapping):
        value = value.get("amount")
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return f"{value:.2f}"
    if isinstance(value, str) and value.strip():
        return value.strip()
    return "0.00"


def _normalize_customer(raw: object) -> CustomerRecord | None:
    """Build a :class:`CustomerRecord` from a REST or GraphQL customer payload.

    Returns None when the payload is not a dict or has no usable identifier.
    """
    if not isinstance(raw, Mapping):
        return None
    identifier = _normalize_identifier(raw.get("id"))
    if identifier is None:
        return None

    def pick(snake: str, camel: str) -> object:
        value = raw.get(snake)
        return raw.get(camel) if value is None else value

    return CustomerRecord(
        id=identifier,
        first_name=_text(pick("first_name", "firstName")),
        last_name=_text(pick("last_name", "lastName")),
        email=_text(raw.get("email")),
        tags=tuple(_normalize_tag_list(raw.get("tags"))),
        orders_count=_int(pick("orders_count", "numberOfOrders")),
        total_spent=_money(pick("total_spent", "amountSpent")),
        created_at=pick("created_at", "createdAt") or None,  # type: ignore[arg-type]
        updated_at=pick("updated_at", "updatedAt") or None,  # type: ignore[arg-type]
    )

#endregion
