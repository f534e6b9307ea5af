"""Public package surface for the tagsync client."""

from .client import DEFAULT_API_VERSION, DEFAULT_STORE_URL, TagSync
from .errors import *
from .mutator import BulkTagOutcome, TagResult
from .resources.customers_types import CustomerRecord
from .resources.segments_types import SegmentDefinition, SyncProgress, SyncResult, SyncState
from .resources.tags_types import TagAction, apply_actions
from .retry import RetryPolicy
from .rules import RuleExecutionResult, TaggingRule
from .store import MemoryStore, SyncStore
from .throttle import Throttler



__all__ = [
    "BulkTagOutcome",
    "CustomerRecord",
    "DEFAULT_API_VERSION",
    "DEFAULT_STORE_URL",
    "MemoryStore",
    "RetryPolicy",
    "RuleExecutionResult",
    "SegmentDefinition",
    "SyncProgress",
    "SyncResult",
    "SyncState",
    "SyncStore",
    "TagAction",
    "TagResult",
    "TagSync",
    "TaggingRule",
    "Throttler",
    "apply_actions",
]
