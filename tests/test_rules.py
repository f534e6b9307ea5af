import logging
import sys
import unittest
from datetime import datetime, timezone
from pathlib import Path

# Ensure src/ is on sys.path so we can import the package without installation
PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from tagsync.errors import NotFoundError, RuleInactiveError, UpstreamServerError, ValidationError  # noqa: E402
from tagsync.mutator import BulkMutator  # noqa: E402
from tagsync.resources.customers_types import CustomerPage, CustomerRecord  # noqa: E402
from tagsync.resources.tags_types import TagAction  # noqa: E402
from tagsync.rules import RuleExecutor, TaggingRule  # noqa: E402
from tagsync.segments import SegmentCatalog  # noqa: E402
from tagsync.store import MemoryStore  # noqa: E402
from tagsync.sync import SyncOrchestrator  # noqa: E402


logging.basicConfig(
    level=logging.WARNING,
    format="%(levelname)s:%(name)s:%(message)s",
    stream=sys.stdout,
    force=True,
)

NOW = datetime(2024, 3, 31, tzinfo=timezone.utc)


class FakeCustomers:
    """In-memory shop: listing pages by query plus per-record reads and writes."""

    def __init__(self, tags_by_id, pages_by_query) -> None:
        self.tags = {key: list(value) for key, value in tags_by_id.items()}
        self.pages_by_query = pages_by_query
        self.page_calls: list[object] = []
        self.update_calls: list[tuple[str, list[str]]] = []

    def page(self, query, *, cursor=None, first=50, cancel=None, timeout=None):
        self.page_calls.append(query)
        pages = self.pages_by_query.get(query, [[]])
        index = cursor.index if cursor is not None else 0
        scripted = pages[index]
        if isinstance(scripted, Exception):
            raise scripted
        has_next = index + 1 < len(pages)
        return CustomerPage(
            cursor=cursor,
            records=tuple(CustomerRecord(id=identifier, tags=tuple(self.tags.get(identifier, ()))) for identifier in scripted),
            next_cursor=f"cursor-{index + 1}" if has_next else None,
            has_next=has_next,
        )

    def count(self, query, *, cancel=None, timeout=None):
        return None

    def get(self, customer_id, *, validation="strict", cancel=None, timeout=None):
        if customer_id not in self.tags:
            raise NotFoundError(customer_id)
        return CustomerRecord(id=customer_id, tags=tuple(self.tags[customer_id]))

    def update_tags(self, customer_id, tags, *, validation="strict", cancel=None, timeout=None):
        self.update_calls.append((customer_id, list(tags)))
        self.tags[customer_id] = list(tags)
        return None


NEW_QUERY = "created_at:>=2024-03-01"


def make_rule(**overrides):
    data = {
        "id": "rule-1",
        "name": "Tag new customers",
        "isActive": True,
        "triggerSegment": "New Customers",
        "actions": [{"type": "add", "tag": "New"}],
        "createdAt": "2024-03-01T00:00:00Z",
        "updatedAt": "2024-03-02T00:00:00Z",
    }
    data.update(overrides)
    return TaggingRule.from_dict(data)


class TaggingRuleTests(unittest.TestCase):
    def test_from_dict_camel_case(self):
        rule = make_rule()
        self.assertEqual(rule.id, "rule-1")
        self.assertEqual(rule.trigger_segment, "New Customers")
        self.assertEqual(rule.actions, (TagAction.add("New"),))
        self.assertTrue(rule.is_active)
        self.assertEqual(rule.created_at, "2024-03-01T00:00:00Z")

    def test_from_dict_snake_case(self):
        rule = TaggingRule.from_dict(
            {"id": "r", "name": "n", "is_active": False, "trigger_segment": "VIP Customers", "actions": []}
        )
        self.assertFalse(rule.is_active)
        self.assertEqual(rule.actions, ())

    def test_from_dict_invalid(self):
        with self.assertRaises(ValidationError):
            make_rule(name="")
        with self.assertRaises(ValidationError):
            make_rule(actions=[{"type": "add", "tag": "a,b"}])
        with self.assertRaises(ValidationError):
            TaggingRule.from_dict(["not", "a", "dict"])  # type: ignore[arg-type]

    def test_to_dict(self):
        data = make_rule().to_dict()
        self.assertEqual(data["triggerSegment"], "New Customers")
        self.assertEqual(data["actions"], [{"type": "add", "tag": "New"}])
        self.assertTrue(data["isActive"])


class RuleExecutorTests(unittest.TestCase):
    def make(self, tags_by_id, pages_by_query, filters=None):
        self.customers = FakeCustomers(tags_by_id, pages_by_query)
        self.store = MemoryStore()
        orchestrator = SyncOrchestrator(
            self.customers,  # type: ignore[arg-type]
            SegmentCatalog(filters, now=lambda: NOW),
            store=self.store,
            now=lambda: NOW,
        )
        return RuleExecutor(orchestrator, BulkMutator(self.customers, max_workers=0))  # type: ignore[arg-type]

    def test_new_customers_rule(self):
        executor = self.make({"1": [], "2": ["New"]}, {NEW_QUERY: [["1", "2"]]})
        result = executor.execute(make_rule())
        self.assertEqual(result.rule, "Tag new customers")
        self.assertEqual(result.customers_processed, 2)
        self.assertEqual((result.success, result.failed), (2, 0))
        self.assertFalse(result.partial)
        for identifier in ("1", "2"):
            self.assertEqual(self.customers.tags[identifier].count("New"), 1)
        self.assertEqual(self.customers.update_calls, [("1", ["New"])])

    def test_inactive_rule_makes_no_calls(self):
        executor = self.make({"1": []}, {NEW_QUERY: [["1"]]})
        with self.assertRaises(RuleInactiveError):
            executor.execute(make_rule(isActive=False))
        self.assertEqual(self.customers.page_calls, [])

    def test_rule_without_actions_makes_no_calls(self):
        executor = self.make({"1": []}, {NEW_QUERY: [["1"]]})
        with self.assertRaises(ValidationError):
            executor.execute(make_rule(actions=[]))
        self.assertEqual(self.customers.page_calls, [])
        self.assertEqual(self.customers.update_calls, [])

    def test_failed_sync_tags_partial_records(self):
        executor = self.make(
            {"1": [], "2": [], "3": []},
            {NEW_QUERY: [["1", "2"], UpstreamServerError("boom", status=500)]},
        )
        result = executor.execute(make_rule())
        self.assertTrue(result.partial)
        self.assertIn("failed on page 2", result.sync_error)
        self.assertEqual(result.customers_processed, 2)
        self.assertEqual(result.success, 2)
        self.assertEqual(self.customers.tags["3"], [])

    def test_unresolvable_segment(self):
        executor = self.make({}, {})
        result = executor.execute(make_rule(triggerSegment="Repeat Buyers"))
        self.assertTrue(result.partial)
        self.assertEqual(result.customers_processed, 0)
        self.assertIn("Repeat Buyers", result.sync_error)

    def test_failures_reported_per_customer(self):
        executor = self.make({"1": []}, {NEW_QUERY: [["1", "404"]]})
        result = executor.execute(make_rule())
        self.assertEqual((result.success, result.failed), (1, 1))
        self.assertIn("404", result.errors[0])
        self.assertEqual(result.to_dict()["customersProcessed"], 2)

    def test_execute_active_isolates_rules(self):
        executor = self.make({"1": [], "2": []}, {NEW_QUERY: [["1"]], "tag:VIP": [["2"]]})
        self.store.save_rule(make_rule(id="a", createdAt="2024-03-03"))
        self.store.save_rule(make_rule(id="b", name="Broken", actions=[], createdAt="2024-03-02"))
        self.store.save_rule(make_rule(id="c", name="Off", isActive=False, createdAt="2024-03-04"))
        self.store.save_rule(
            make_rule(
                id="d",
                name="VIP gold",
                triggerSegment="VIP Customers",
                actions=[{"type": "add", "tag": "Gold"}],
                createdAt="2024-03-01",
            )
        )
        results = executor.execute_active(self.store)
        self.assertEqual([result.rule for result in results], ["Tag new customers", "Broken", "VIP gold"])
        self.assertEqual(results[0].success, 1)
        self.assertTrue(results[1].partial)
        self.assertIn("Broken", results[1].errors[0])
        self.assertEqual(self.customers.tags["2"], ["Gold"])
        self.assertEqual(self.customers.page_calls, [NEW_QUERY, "tag:VIP"])


if __name__ == "__main__":
    unittest.main()
