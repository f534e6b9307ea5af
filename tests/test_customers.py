import logging
import sys
import unittest
from pathlib import Path
from unittest.mock import patch

# Ensure src/ is on sys.path so we can import the package without installation
PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from tagsync.errors import NotFoundError, RateLimitedError, UpstreamRequestError, UpstreamServerError, ValidationError  # noqa: E402
from tagsync.resources.customers import COUNT_CUSTOMERS_QUERY, LIST_CUSTOMERS_QUERY, Customers, page_cost  # noqa: E402
from tagsync.resources.customers_types import CustomerRecord, PageCursor, _normalize_customer  # noqa: E402
from tagsync.retry import RetryPolicy  # noqa: E402
from tagsync.throttle import Throttler  # noqa: E402


logging.basicConfig(
    level=logging.WARNING,
    format="%(levelname)s:%(name)s:%(message)s",
    stream=sys.stdout,
    force=True,
)


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds, cancel=None):
        self.sleeps.append(seconds)
        self.now += seconds
        return False


class DummyClient:
    def __init__(self) -> None:
        self._logger = logging.getLogger("tagsync.tests")
        self.clock = FakeClock()
        self.throttler = Throttler(min_interval=0, clock=self.clock, sleep=self.clock.sleep)
        self.retry_policy = RetryPolicy()
        self.record_interval = 0.5
        self.request_calls: list[tuple[str, str, object, object, object]] = []
        self.graphql_calls: list[tuple[str, object]] = []

    def request(self, method, path, params=None, json=None, timeout=None):
        self.request_calls.append((method, path, params, json, timeout))
        return {}

    def graphql(self, query, variables=None, timeout=None):
        self.graphql_calls.append((query, variables))
        return {}


REST_CUSTOMER = {
    "id": 101,
    "first_name": "Ada",
    "last_name": "Lovelace",
    "email": "ada@example.com",
    "tags": "VIP, Newsletter",
    "orders_count": 3,
    "total_spent": "120.50",
    "created_at": "2024-01-02T00:00:00Z",
}

GRAPHQL_NODE = {
    "id": "gid://shopify/Customer/202",
    "firstName": "Grace",
    "lastName": "Hopper",
    "email": "grace@example.com",
    "tags": ["VVIP"],
    "numberOfOrders": "7",
    "amountSpent": {"amount": "999.00", "currencyCode": "USD"},
    "createdAt": "2024-02-03T00:00:00Z",
}


def listing(nodes, *, has_next=False, end_cursor=None):
    return {
        "customers": {
            "edges": [{"node": node} for node in nodes],
            "pageInfo": {"hasNextPage": has_next, "endCursor": end_cursor},
        }
    }


class NormalizeCustomerTests(unittest.TestCase):
    def test_rest_shape(self):
        record = _normalize_customer(REST_CUSTOMER)
        self.assertEqual(record.id, "101")
        self.assertEqual(record.tags, ("VIP", "Newsletter"))
        self.assertEqual(record.orders_count, 3)
        self.assertEqual(record.total_spent, "120.50")
        self.assertEqual(record.display_name, "Ada Lovelace")
        self.assertEqual(record.tag_string, "VIP, Newsletter")

    def test_graphql_shape(self):
        record = _normalize_customer(GRAPHQL_NODE)
        self.assertEqual(record.id, "202")
        self.assertEqual(record.tags, ("VVIP",))
        self.assertEqual(record.orders_count, 7)
        self.assertEqual(record.total_spent, "999.00")
        self.assertEqual(record.created_at, "2024-02-03T00:00:00Z")

    def test_rejects_missing_id(self):
        self.assertIsNone(_normalize_customer({"email": "x@example.com"}))
        self.assertIsNone(_normalize_customer(None))

    def test_with_tags(self):
        record = _normalize_customer(REST_CUSTOMER).with_tags(["A", "A", "B"])
        self.assertEqual(record.tags, ("A", "B"))
        self.assertEqual(record.email, "ada@example.com")


class CustomersTests(unittest.TestCase):
    def setUp(self) -> None:
        self.client = DummyClient()
        self.customers = Customers(self.client)  # type: ignore[arg-type]

    def test_get_success(self):
        with patch.object(self.customers, "_get", return_value={"customer": REST_CUSTOMER}) as mock_get:
            record = self.customers.get("gid://shopify/Customer/101")
        mock_get.assert_called_once_with("/customers/101.json", timeout=None)
        self.assertEqual(record.id, "101")

    def test_get_missing_customer(self):
        with patch.object(self.customers, "_get", return_value={}) as mock_get:
            with self.assertRaises(NotFoundError):
                self.customers.get(101)
        self.assertEqual(mock_get.call_count, 1)

    def test_get_invalid_id_strict(self):
        with self.assertRaises(ValidationError):
            self.customers.get("")

    def test_get_invalid_id_warn(self):
        with patch.object(self.customers, "_get") as mock_get:
            self.assertIsNone(self.customers.get("", validation="warn"))
        mock_get.assert_not_called()

    def test_get_uses_record_interval(self):
        with patch.object(self.customers, "_get", return_value={"customer": REST_CUSTOMER}):
            self.customers.get(101)
            self.customers.get(101)
        self.assertEqual(self.client.clock.sleeps, [0.5])

    def test_update_tags_payload(self):
        with patch.object(self.customers, "_put", return_value={"customer": REST_CUSTOMER}) as mock_put:
            record = self.customers.update_tags(101, ["VIP", " New", "VIP", ""])
        mock_put.assert_called_once_with(
            "/customers/101.json",
            json={"customer": {"id": "101", "tags": "VIP, New"}},
            timeout=None,
        )
        self.assertIsInstance(record, CustomerRecord)

    def test_update_tags_empty_response(self):
        with patch.object(self.customers, "_put", return_value=None):
            self.assertIsNone(self.customers.update_tags(101, []))

    def test_page_parses_connection(self):
        data = listing([GRAPHQL_NODE, {"id": None}], has_next=True, end_cursor="abc")
        with patch.object(self.customers, "_graphql", return_value=data) as mock_graphql:
            page = self.customers.page("tag:VIP", first=25)
        query, variables = mock_graphql.call_args[0]
        self.assertEqual(query, LIST_CUSTOMERS_QUERY)
        self.assertEqual(variables, {"first": 25, "after": None, "query": "tag:VIP"})
        self.assertEqual([record.id for record in page.records], ["202"])
        self.assertEqual(page.raw_count, 2)
        self.assertEqual(page.next_cursor, "abc")
        self.assertTrue(page.has_next)
        self.assertFalse(page.is_last)

    def test_page_passes_cursor(self):
        with patch.object(self.customers, "_graphql", return_value=listing([])) as mock_graphql:
            page = self.customers.page(None, cursor=PageCursor(token="abc", index=3))
        variables = mock_graphql.call_args[0][1]
        self.assertEqual(variables["after"], "abc")
        self.assertIsNone(variables["query"])
        self.assertEqual(page.cursor.index, 3)
        self.assertTrue(page.is_last)

    def test_page_malformed_connection(self):
        with patch.object(self.customers, "_graphql", return_value={"customers": None}):
            with self.assertRaises(UpstreamRequestError):
                self.customers.page(None)

    def test_page_retries_when_throttled(self):
        outcomes = [RateLimitedError("throttled"), listing([GRAPHQL_NODE])]

        def graphql(*_args, **_kwargs):
            outcome = outcomes.pop(0)
            if isinstance(outcome, Exception):
                raise outcome
            return outcome

        with patch.object(self.customers, "_graphql", side_effect=graphql):
            page = self.customers.page(None)
        self.assertEqual(len(page.records), 1)
        self.assertEqual(self.client.clock.sleeps, [3])

    def test_page_cost(self):
        self.assertEqual(page_cost(50), 52)
        self.assertEqual(page_cost(0), 2)

    def test_count(self):
        with patch.object(self.customers, "_graphql", return_value={"customersCount": {"count": 12}}) as mock_graphql:
            self.assertEqual(self.customers.count("tag:VIP"), 12)
        self.assertEqual(mock_graphql.call_args[0], (COUNT_CUSTOMERS_QUERY, {"query": "tag:VIP"}))

    def test_count_unavailable(self):
        with patch.object(self.customers, "_graphql", side_effect=UpstreamRequestError("no")):
            self.assertIsNone(self.customers.count(None))
        with patch.object(self.customers, "_graphql", return_value={"customersCount": {"count": "12"}}):
            self.assertIsNone(self.customers.count(None))

    def test_count_is_not_retried(self):
        with patch.object(self.customers, "_graphql", side_effect=UpstreamServerError("boom", status=503)) as mock_graphql:
            self.assertIsNone(self.customers.count("tag:VIP"))
        self.assertEqual(mock_graphql.call_count, 1)
        self.assertEqual(self.client.clock.sleeps, [])
        self.assertEqual(self.client.retry_policy.max_retries, 5)


if __name__ == "__main__":
    unittest.main()
