import logging
import sys
import threading
import unittest
from pathlib import Path

# Ensure src/ is on sys.path so we can import the package without installation
PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from tagsync.errors import OperationCancelled, SyncFailedError, UpstreamServerError  # noqa: E402
from tagsync.resources.customers_types import CustomerPage, CustomerRecord, PageCursor  # noqa: E402
from tagsync.walker import CursorWalker  # noqa: E402


logging.basicConfig(
    level=logging.WARNING,
    format="%(levelname)s:%(name)s:%(message)s",
    stream=sys.stdout,
    force=True,
)


def records(*ids):
    return tuple(CustomerRecord(id=str(identifier)) for identifier in ids)


class FakeCustomers:
    """Serves scripted pages; an exception in the script is raised for that page."""

    def __init__(self, pages) -> None:
        self.pages = list(pages)
        self.calls: list[tuple[object, PageCursor, int]] = []

    def page(self, query, *, cursor=None, first=50, cancel=None, timeout=None):
        self.calls.append((query, cursor, first))
        scripted = self.pages[cursor.index]
        if isinstance(scripted, Exception):
            raise scripted
        has_next = cursor.index + 1 < len(self.pages)
        return CustomerPage(
            cursor=cursor,
            records=scripted,
            next_cursor=f"cursor-{cursor.index + 1}" if has_next else None,
            has_next=has_next,
            raw_count=len(scripted),
        )


class CursorWalkerTests(unittest.TestCase):
    def test_walks_to_end_of_data(self):
        customers = FakeCustomers([records(1, 2), records(3, 4), records(5)])
        walker = CursorWalker(customers, segment="VIP Customers", page_size=2)  # type: ignore[arg-type]
        pages = list(walker.walk("tag:VIP"))
        self.assertEqual(len(pages), 3)
        self.assertEqual(sum(len(page.records) for page in pages), 5)
        self.assertTrue(walker.finished)
        result = walker.result(expected_count=5)
        self.assertEqual(result.actual_count, 5)
        self.assertEqual(result.identifiers, ["1", "2", "3", "4", "5"])
        self.assertFalse(result.partial)
        self.assertTrue(result.complete)
        self.assertEqual(result.pages, 3)
        self.assertEqual(result.segment, "VIP Customers")

    def test_passes_cursor_forward(self):
        customers = FakeCustomers([records(1), records(2)])
        walker = CursorWalker(customers, page_size=1)  # type: ignore[arg-type]
        list(walker.walk("tag:VIP"))
        self.assertEqual([call[1].token for call in customers.calls], [None, "cursor-1"])
        self.assertEqual([call[1].index for call in customers.calls], [0, 1])
        self.assertEqual({call[2] for call in customers.calls}, {1})

    def test_deduplicates_overlapping_pages(self):
        customers = FakeCustomers([records(1, 2, 3), records(3, 4), records(4, 1, 5)])
        walker = CursorWalker(customers)  # type: ignore[arg-type]
        pages = list(walker.walk(None))
        self.assertEqual(walker.result().identifiers, ["1", "2", "3", "4", "5"])
        self.assertEqual(walker.duplicates, 3)
        self.assertEqual([page.duplicates for page in pages], [0, 1, 2])

    def test_empty_listing(self):
        walker = CursorWalker(FakeCustomers([records()]))  # type: ignore[arg-type]
        self.assertEqual(len(list(walker.walk(None))), 1)
        self.assertEqual(walker.result().actual_count, 0)
        self.assertTrue(walker.finished)

    def test_stops_at_page_ceiling(self):
        customers = FakeCustomers([records(1), records(2), records(3), records(4)])
        walker = CursorWalker(customers, max_pages=2)  # type: ignore[arg-type]
        list(walker.walk(None))
        self.assertEqual(len(customers.calls), 2)
        self.assertTrue(walker.truncated)
        result = walker.result()
        self.assertTrue(result.partial)
        self.assertEqual(result.identifiers, ["1", "2"])

    def test_ceiling_on_last_page_is_not_partial(self):
        walker = CursorWalker(FakeCustomers([records(1), records(2)]), max_pages=2)  # type: ignore[arg-type]
        list(walker.walk(None))
        self.assertFalse(walker.truncated)
        self.assertFalse(walker.result().partial)

    def test_more_data_without_cursor_is_partial(self):
        customers = FakeCustomers([records(1, 2), records(3)])
        served = customers.page

        def page_without_cursor(query, *, cursor=None, first=50, cancel=None, timeout=None):
            page = served(query, cursor=cursor, first=first, cancel=cancel, timeout=timeout)
            return CustomerPage(cursor=page.cursor, records=page.records, next_cursor=None, has_next=page.has_next)

        customers.page = page_without_cursor  # type: ignore[method-assign]
        walker = CursorWalker(customers, segment="VIP Customers")  # type: ignore[arg-type]
        with self.assertLogs("tagsync.walker", level="WARNING"):
            pages = list(walker.walk("tag:VIP"))
        self.assertEqual(len(pages), 1)
        self.assertEqual(len(customers.calls), 1)
        self.assertTrue(walker.truncated)
        self.assertFalse(walker.finished)
        result = walker.result()
        self.assertTrue(result.partial)
        self.assertFalse(result.complete)
        self.assertEqual(result.identifiers, ["1", "2"])

    def test_failure_keeps_records_so_far(self):
        customers = FakeCustomers([records(1, 2), UpstreamServerError("boom", status=500)])
        walker = CursorWalker(customers, segment="All Customers")  # type: ignore[arg-type]
        with self.assertRaises(SyncFailedError) as ctx:
            list(walker.walk(None))
        self.assertEqual(ctx.exception.records_retrieved, 2)
        self.assertEqual(ctx.exception.partial.identifiers, ["1", "2"])
        self.assertIsInstance(ctx.exception.cause, UpstreamServerError)
        self.assertIn("page 2", str(ctx.exception))

    def test_cancel_between_pages(self):
        cancel = threading.Event()
        customers = FakeCustomers([records(1), records(2), records(3)])
        walker = CursorWalker(customers, cancel=cancel)  # type: ignore[arg-type]
        for _page in walker.walk(None):
            cancel.set()
        self.assertTrue(walker.cancelled)
        self.assertEqual(len(customers.calls), 1)
        result = walker.result()
        self.assertTrue(result.cancelled)
        self.assertFalse(result.complete)
        self.assertEqual(result.identifiers, ["1"])

    def test_cancel_during_request(self):
        walker = CursorWalker(FakeCustomers([records(1), OperationCancelled("stop")]))  # type: ignore[arg-type]
        list(walker.walk(None))
        self.assertTrue(walker.cancelled)
        self.assertEqual(walker.result().identifiers, ["1"])

    def test_single_use(self):
        walker = CursorWalker(FakeCustomers([records(1)]))  # type: ignore[arg-type]
        list(walker.walk(None))
        with self.assertRaises(RuntimeError):
            list(walker.walk(None))

    def test_rejects_bad_limits(self):
        with self.assertRaises(ValueError):
            CursorWalker(FakeCustomers([]), page_size=0)  # type: ignore[arg-type]
        with self.assertRaises(ValueError):
            CursorWalker(FakeCustomers([]), max_pages=0)  # type: ignore[arg-type]


if __name__ == "__main__":
    unittest.main()
