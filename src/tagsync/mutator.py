"""Apply tag actions across many customers with per-record fault isolation."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Callable, Mapping, Optional, Sequence, TYPE_CHECKING

from .errors import NotFoundError, OperationCancelled, TagSyncError, ValidationError
from .resources._common_types import ValidationMode, _normalize_identifier
from .resources.tags_types import TagAction, _normalize_actions, apply_actions

if TYPE_CHECKING:  # pragma: no cover
    from .resources.customers import Customers

logger = logging.getLogger(__name__)

DEFAULT_MAX_WORKERS = 4


@dataclass(frozen=True)
class TagResult:
    """What happened to one input identifier."""
    identifier: str
    ok: bool
    changed: bool = False
    tags: tuple[str, ...] = ()
    error: Optional[str] = None


@dataclass(frozen=True)
class BulkTagOutcome:
    success: int
    failed: int
    errors: tuple[str, ...]
    results: tuple[TagResult, ...] = ()

    @property
    def total(self) -> int:
        return self.success + self.failed

    @classmethod
    def from_results(cls, results: Sequence[TagResult]) -> "BulkTagOutcome":
        errors = tuple(result.error or f"Failed to process customer {result.identifier}" for result in results if not result.ok)
        return cls(
            success=sum(1 for result in results if result.ok),
            failed=len(errors),
            errors=errors,
            results=tuple(results),
        )

    def to_dict(self) -> dict[str, object]:
        return {"success": self.success, "failed": self.failed, "errors": list(self.errors)}


TagObserver = Callable[[TagResult], None]


class BulkMutator:
    """Read, transform and write back the tags of a batch of customers.

    Every identifier gets its own slot in the outcome: a failure is recorded
    with a message naming the identifier and processing moves on. Up to
    ``max_workers`` identifiers are in flight at once; ``0`` or ``1`` runs them
    one by one. All traffic goes through the client's shared throttler, so the
    degree of concurrency never changes the overall request rate.
    """

    def __init__(
        self,
        customers: "Customers",
        *,
        max_workers: int = DEFAULT_MAX_WORKERS,
        skip_unchanged: bool = True,
    ) -> None:
        self._customers = customers
        self.max_workers = max_workers
        self.skip_unchanged = skip_unchanged

    def apply(
        self,
        identifiers: Sequence[str | int],
        actions: Sequence[TagAction | Mapping[str, object]],
        *,
        validation: ValidationMode = "strict",
        cancel: Optional[threading.Event] = None,
        observer: Optional[TagObserver] = None,
    ) -> BulkTagOutcome:
        """Apply ``actions`` to every customer in ``identifiers``.

        Parameters
        ----------
        identifiers
            Customer identifiers; each one is reported on, even if invalid.
        actions
            Tag actions applied in order to each customer's current tags.
        validation
            Validation mode for ``actions``: ``"strict"`` raises before any
            upstream call, ``"warn"`` drops invalid actions with warnings and
            ``"off"`` drops them silently.
        cancel
            When set, identifiers not yet started are skipped and reported as failed.
        observer
            Called with each :class:`TagResult` as it completes.

        Returns
        -------
        BulkTagOutcome
            ``success + failed == len(identifiers)``; errors follow input order.
        """
        if isinstance(identifiers, (str, bytes)) or not isinstance(identifiers, Sequence):
            raise ValidationError(f"identifiers must be a list: {type(identifiers).__name__}")
        tag_actions = self._checked_actions(actions, validation)

        ids = list(identifiers)
        slots: list[Optional[TagResult]] = [None] * len(ids)
        if not ids:
            return BulkTagOutcome.from_results([])

        logger.info("Applying %s tag actions to %s customers", len(tag_actions), len(ids))
        if self.max_workers <= 1 or len(ids) == 1:
            for index, raw_id in enumerate(ids):
                slots[index] = self._safe_process(raw_id, tag_actions, cancel)
                self._notify(observer, slots[index])
        else:
            with ThreadPoolExecutor(max_workers=min(self.max_workers, len(ids))) as executor:
                futures = {
                    executor.submit(self._safe_process, raw_id, tag_actions, cancel): index
                    for index, raw_id in enumerate(ids)
                }
                for future in as_completed(futures):
                    index = futures[future]
                    slots[index] = future.result()
                    self._notify(observer, slots[index])

        outcome = BulkTagOutcome.from_results([slot for slot in slots if slot is not None])
        logger.info("Tagging finished: %s succeeded, %s failed", outcome.success, outcome.failed)
        return outcome

    def _checked_actions(
        self,
        actions: Sequence[TagAction | Mapping[str, object]],
        validation: ValidationMode,
    ) -> list[TagAction]:
        tag_actions, errors = _normalize_actions(actions)
        if errors:
            if validation == "strict":
                raise ValidationError(f"Invalid tag actions: {errors}")
            if validation == "warn":
                logger.warning("Dropping invalid tag actions: %s", errors)
        if not tag_actions and validation == "strict":
            raise ValidationError("At least one tag action is required")
        return tag_actions

    def _safe_process(
        self,
        raw_id: str | int,
        actions: list[TagAction],
        cancel: Optional[threading.Event],
    ) -> TagResult:
        try:
            return self._process(raw_id, actions, cancel)
        except Exception as exc:  # noqa: BLE001 - handle worker failures gracefully
            logger.warning("Customer %s failed during tagging: %s", raw_id, exc)
            return TagResult(str(raw_id), False, error=f"Error processing customer {raw_id}: {exc}")

    def _process(
        self,
        raw_id: str | int,
        actions: list[TagAction],
        cancel: Optional[threading.Event],
    ) -> TagResult:
        identifier = _normalize_identifier(raw_id)
        if identifier is None:
            return TagResult(str(raw_id), False, error=f"Invalid customer identifier: {raw_id!r}")
        if cancel is not None and cancel.is_set():
            return TagResult(identifier, False, error=f"Skipped customer {identifier}: operation cancelled")
        if not actions:
            return TagResult(identifier, True)

        try:
            record = self._customers.get(identifier, cancel=cancel)
        except OperationCancelled:
            return TagResult(identifier, False, error=f"Skipped customer {identifier}: operation cancelled")
        except NotFoundError as exc:
            return TagResult(identifier, False, error=f"Customer {identifier} not found: {exc}")
        except TagSyncError as exc:
            return TagResult(identifier, False, error=f"Failed to fetch customer {identifier}: {exc}")
        if record is None:
            return TagResult(identifier, False, error=f"Failed to fetch customer {identifier}")

        new_tags = apply_actions(record.tags, actions)
        if self.skip_unchanged and tuple(new_tags) == record.tags:
            logger.debug("Customer %s already has the requested tags", identifier)
            return TagResult(identifier, True, changed=False, tags=record.tags)

        try:
            self._customers.update_tags(identifier, new_tags, cancel=cancel)
        except OperationCancelled:
            return TagResult(identifier, False, error=f"Skipped update of customer {identifier}: operation cancelled")
        except TagSyncError as exc:
            return TagResult(identifier, False, error=f"Failed to update customer {identifier}: {exc}")
        return TagResult(identifier, True, changed=True, tags=tuple(new_tags))

    def _notify(self, observer: Optional[TagObserver], result: Optional[TagResult]) -> None:
        if observer is None or result is None:
            return
        try:
            observer(result)
        except Exception as exc:  # noqa: BLE001 - a broken observer must not abort tagging
            logger.warning("Tag observer failed for %s: %s", result.identifier, exc)


__all__ = ["BulkMutator", "BulkTagOutcome", "DEFAULT_MAX_WORKERS", "TagResult"]
