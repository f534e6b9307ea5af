"""Persistence collaborator interface and an in-memory implementation.

Rule definitions and cached segment snapshots live in an external store. The
core only needs key-based reads and upserts, described by :class:`SyncStore`.
:class:`MemoryStore` is the default used when no store is supplied.
"""

from __future__ import annotations

import threading
import time
from typing import Callable, Optional, Protocol, TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover
    from .resources.segments_types import SyncResult
    from .rules import TaggingRule


class SyncStore(Protocol):
    def get_cached_sync(self, key: str) -> Optional["SyncResult"]:
        ...

    def put_cached_sync(self, key: str, result: "SyncResult", ttl: float) -> None:
        ...

    def get_rule(self, rule_id: str) -> Optional["TaggingRule"]:
        ...

    def list_active_rules(self) -> list["TaggingRule"]:
        ...


class MemoryStore:
    """Thread-safe in-process store with TTL expiry for cached syncs."""

    def __init__(self, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._cache: dict[str, tuple[float, "SyncResult"]] = {}
        self._rules: dict[str, "TaggingRule"] = {}

    # ------------------------------------------------------------------
    # Cached syncs
    # ------------------------------------------------------------------
    def get_cached_sync(self, key: str) -> Optional["SyncResult"]:
        with self._lock:
            entry = self._cache.get(key)
            if entry is None:
                return None
            expires_at, result = entry
            if self._clock() >= expires_at:
                del self._cache[key]
                return None
            return result

    def put_cached_sync(self, key: str, result: "SyncResult", ttl: float) -> None:
        with self._lock:
            if ttl <= 0:
                self._cache.pop(key, None)
                return
            self._cache[key] = (self._clock() + ttl, result)

    def invalidate(self, key: Optional[str] = None) -> None:
        """Drop one cached sync, or all of them when ``key`` is None."""
        with self._lock:
            if key is None:
                self._cache.clear()
            else:
                self._cache.pop(key, None)

    def purge_expired(self) -> int:
        """Remove expired cache entries and return how many were dropped."""
        with self._lock:
            now = self._clock()
            expired = [key for key, (expires_at, _) in self._cache.items() if now >= expires_at]
            for key in expired:
                del self._cache[key]
            return len(expired)

    # ------------------------------------------------------------------
    # Rules
    # ------------------------------------------------------------------
    def get_rule(self, rule_id: str) -> Optional["TaggingRule"]:
        with self._lock:
            return self._rules.get(rule_id)

    def list_rules(self) -> list["TaggingRule"]:
        with self._lock:
            return sorted(self._rules.values(), key=lambda rule: rule.created_at or "", reverse=True)

    def list_active_rules(self) -> list["TaggingRule"]:
        return [rule for rule in self.list_rules() if rule.is_active]

    def save_rule(self, rule: "TaggingRule") -> "TaggingRule":
        """Upsert ``rule`` by id."""
        with self._lock:
            self._rules[rule.id] = rule
        return rule

    def delete_rule(self, rule_id: str) -> bool:
        with self._lock:
            return self._rules.pop(rule_id, None) is not None


__all__ = ["MemoryStore", "SyncStore"]
