"""Tagging rules and their execution against a trigger segment."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Mapping, Optional, TYPE_CHECKING

from .errors import RuleInactiveError, SegmentResolutionError, SyncFailedError, TagSyncError, ValidationError
from .mutator import BulkTagOutcome, TagObserver
from .resources.segments_types import ProgressObserver
from .resources.tags_types import TagAction, _normalize_actions

if TYPE_CHECKING:  # pragma: no cover
    from .mutator import BulkMutator
    from .store import SyncStore
    from .sync import SyncOrchestrator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TaggingRule:
    """A stored trigger segment plus the tag actions to apply to its members."""
    id: str
    name: str
    trigger_segment: str
    actions: tuple[TagAction, ...]
    is_active: bool = True
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> "TaggingRule":
        """Build a rule from its persisted shape (camelCase or snake_case keys).

        Raises
        ------
        ValidationError
            If required fields are missing or any action is malformed.
        """
        if not isinstance(data, Mapping):
            raise ValidationError(f"Rule must be a dict: {type(data)}")

        def pick(snake: str, camel: str) -> object:
            value = data.get(snake)
            return data.get(camel) if value is None else value

        rule_id = data.get("id")
        name = data.get("name")
        segment = pick("trigger_segment", "triggerSegment")
        for label, value in (("id", rule_id), ("name", name), ("triggerSegment", segment)):
            if not isinstance(value, str) or not value.strip():
                raise ValidationError(f"Rule {label} must be a non-empty string: {value!r}")

        actions, errors = _normalize_actions(data.get("actions"))
        if errors:
            raise ValidationError(f"Rule {rule_id} has invalid actions: {errors}")

        active = pick("is_active", "isActive")
        return cls(
            id=rule_id.strip(),  # type: ignore[union-attr]
            name=name.strip(),  # type: ignore[union-attr]
            trigger_segment=segment.strip(),  # type: ignore[union-attr]
            actions=tuple(actions),
            is_active=True if active is None else bool(active),
            created_at=pick("created_at", "createdAt"),  # type: ignore[arg-type]
            updated_at=pick("updated_at", "updatedAt"),  # type: ignore[arg-type]
        )

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "name": self.name,
            "isActive": self.is_active,
            "triggerSegment": self.trigger_segment,
            "actions": [action.to_dict() for action in self.actions],
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }


@dataclass(frozen=True)
class RuleExecutionResult:
    rule: str
    customers_processed: int
    success: int
    failed: int
    errors: tuple[str, ...] = ()
    partial: bool = False
    sync_error: Optional[str] = None
    outcome: Optional[BulkTagOutcome] = field(default=None, compare=False, repr=False)

    def to_dict(self) -> dict[str, object]:
        return {
            "rule": self.rule,
            "customersProcessed": self.customers_processed,
            "success": self.success,
            "failed": self.failed,
            "errors": list(self.errors),
            "partial": self.partial,
            "syncError": self.sync_error,
        }


class RuleExecutor:
    """Resolve a rule's trigger segment and tag every member."""

    def __init__(self, orchestrator: "SyncOrchestrator", mutator: "BulkMutator") -> None:
        self._orchestrator = orchestrator
        self._mutator = mutator

    def execute(
        self,
        rule: TaggingRule,
        *,
        force_sync: bool = False,
        cancel: Optional[threading.Event] = None,
        observer: Optional[ProgressObserver] = None,
        tag_observer: Optional[TagObserver] = None,
    ) -> RuleExecutionResult:
        """Run ``rule`` once.

        A partial or failed segment sync does not fail the run: whatever
        customers were retrieved are tagged and the result is flagged partial.

        Raises
        ------
        RuleInactiveError
            If the rule is inactive; no upstream call is made.
        ValidationError
            If the rule carries no valid tag action; no upstream call is made.
        """
        if not rule.is_active:
            raise RuleInactiveError(f"Rule {rule.name!r} is not active")
        actions, errors = _normalize_actions(list(rule.actions))
        if errors:
            raise ValidationError(f"Rule {rule.name!r} has invalid tag actions: {errors}")
        if not actions:
            raise ValidationError(f"Rule {rule.name!r} has no tag actions")

        logger.info("Executing rule %s on segment %s", rule.name, rule.trigger_segment)
        partial = False
        sync_error: Optional[str] = None
        try:
            result = self._orchestrator.sync(rule.trigger_segment, force=force_sync, observer=observer, cancel=cancel)
            identifiers = result.identifiers
            partial = not result.complete
        except SyncFailedError as exc:
            logger.warning("Rule %s continues with %s customers after a failed sync", rule.name, exc.records_retrieved)
            identifiers = exc.partial.identifiers
            partial = True
            sync_error = str(exc)
        except SegmentResolutionError as exc:
            logger.warning("Rule %s cannot resolve its segment: %s", rule.name, exc)
            identifiers = []
            partial = True
            sync_error = str(exc)

        outcome = self._mutator.apply(identifiers, actions, cancel=cancel, observer=tag_observer)
        return RuleExecutionResult(
            rule=rule.name,
            customers_processed=len(identifiers),
            success=outcome.success,
            failed=outcome.failed,
            errors=outcome.errors,
            partial=partial,
            sync_error=sync_error,
            outcome=outcome,
        )

    def execute_active(
        self,
        store: "SyncStore",
        *,
        force_sync: bool = False,
        cancel: Optional[threading.Event] = None,
    ) -> list[RuleExecutionResult]:
        """Run every active rule from ``store``; one rule failing does not stop the others."""
        results: list[RuleExecutionResult] = []
        for rule in store.list_active_rules():
            if cancel is not None and cancel.is_set():
                logger.info("Rule run cancelled before %s", rule.name)
                break
            try:
                results.append(self.execute(rule, force_sync=force_sync, cancel=cancel))
            except TagSyncError as exc:
                logger.warning("Rule %s failed: %s", rule.name, exc)
                results.append(
                    RuleExecutionResult(
                        rule=rule.name,
                        customers_processed=0,
                        success=0,
                        failed=0,
                        errors=(f"Rule {rule.name} failed: {exc}",),
                        partial=True,
                        sync_error=str(exc),
                    )
                )
        return results


__all__ = ["RuleExecutionResult", "RuleExecutor", "TaggingRule"]
