"""Customer resource wrapper."""

from __future__ import annotations

import threading
from typing import Any, Optional, Sequence

from ..errors import NotFoundError, UpstreamRequestError, ValidationError
from ..retry import RetryPolicy
from ._common_types import ValidationMode, _join_tags, _normalize_identifier, _normalize_tag_list
from .base import Resource
from .customers_types import CustomerPage, CustomerRecord, PageCursor, _normalize_customer

CUSTOMER_FIELDS = """
        id
        firstName
        lastName
        email
        tags
        numberOfOrders
        amountSpent { amount currencyCode }
        createdAt
        updatedAt
"""

LIST_CUSTOMERS_QUERY = """
query listCustomers($first: Int!, $after: String, $query: String) {
  customers(first: $first, after: $after, query: $query) {
    edges {
      node {%s      }
    }
    pageInfo {
      hasNextPage
      endCursor
    }
  }
}
""" % CUSTOMER_FIELDS

COUNT_CUSTOMERS_QUERY = """
query countCustomers($query: String) {
  customersCount(query: $query) {
    count
  }
}
"""

# Fixed overhead of a connection query on top of one point per requested node.
PAGE_BASE_COST = 2
SINGLE_ATTEMPT = RetryPolicy(max_retries=0)


def page_cost(page_size: int) -> float:
    """Estimated cost points of one listing page."""
    return float(PAGE_BASE_COST + max(page_size, 0))


class Customers(Resource):
    """Customer record and listing operations."""

    def get(
        self,
        customer_id: str | int,
        *,
        validation: ValidationMode = "strict",
        cancel: Optional[threading.Event] = None,
        timeout: Optional[int] = None,
    ) -> CustomerRecord | None:
        """Fetch a single customer by ID.

        Parameters
        ----------
        customer_id
            Customer identifier, plain or GraphQL global id.
        validation
            Validation mode: ``"off"`` sends inputs as-is, ``"warn"`` drops invalid
            inputs with warnings, and ``"strict"`` raises on invalid inputs.
        cancel
            Cancellation signal checked before each attempt.
        timeout
            Timeout in seconds for each attempt.

        Returns
        -------
        CustomerRecord | None
            The customer, or None when the input was dropped in ``"warn"`` mode.

        Raises
        ------
        NotFoundError
            If the upstream does not know the customer.
        """
        identifier = self._checked_id(customer_id, "get", validation)
        if identifier is None:
            return None

        def fetch() -> CustomerRecord:
            response = self._get(f"/customers/{identifier}.json", timeout=timeout)
            data = response.get("customer") if isinstance(response, dict) else None
            record = _normalize_customer(data)
            if record is None:
                raise NotFoundError(f"Customer {identifier} missing from response")
            return record

        return self._call(
            fetch,
            min_interval=self._client.record_interval,
            cancel=cancel,
            label=f"read customer {identifier}",
        )

    def update_tags(
        self,
        customer_id: str | int,
        tags: Sequence[str],
        *,
        validation: ValidationMode = "strict",
        cancel: Optional[threading.Event] = None,
        timeout: Optional[int] = None,
    ) -> CustomerRecord | None:
        """Replace a customer's full tag set.

        Parameters
        ----------
        customer_id
            Customer identifier.
        tags
            Complete new tag list; blanks and repeats are dropped before sending.
        validation
            Validation mode for ``customer_id``.
        cancel
            Cancellation signal checked before each attempt.
        timeout
            Timeout in seconds for each attempt.

        Returns
        -------
        CustomerRecord | None
            The updated record when the upstream echoes it back, else None.
        """
        identifier = self._checked_id(customer_id, "update_tags", validation)
        if identifier is None:
            return None
        payload = {"customer": {"id": identifier, "tags": _join_tags(_normalize_tag_list(list(tags)))}}

        def write() -> CustomerRecord | None:
            response = self._put(f"/customers/{identifier}.json", json=payload, timeout=timeout)
            data = response.get("customer") if isinstance(response, dict) else None
            return _normalize_customer(data)

        return self._call(
            write,
            min_interval=self._client.record_interval,
            cancel=cancel,
            label=f"write customer {identifier}",
        )

    def page(
        self,
        query: Optional[str],
        *,
        cursor: Optional[PageCursor] = None,
        first: int = 50,
        cancel: Optional[threading.Event] = None,
        timeout: Optional[int] = None,
    ) -> CustomerPage:
        """Fetch one page of the customer listing.

        Parameters
        ----------
        query
            Upstream search expression, or None for every customer.
        cursor
            Where to resume; None starts from the beginning.
        first
            Page size.
        cancel
            Cancellation signal checked before each attempt.
        timeout
            Timeout in seconds for each attempt.

        Returns
        -------
        CustomerPage
            Records in upstream order plus the continuation cursor.
        """
        cursor = cursor or PageCursor(token=None, index=0)
        variables: dict[str, Any] = {"first": first, "after": cursor.token, "query": query or None}

        def fetch() -> CustomerPage:
            data = self._graphql(LIST_CUSTOMERS_QUERY, variables, timeout=timeout)
            connection = data.get("customers") if isinstance(data, dict) else None
            if not isinstance(connection, dict) or not isinstance(connection.get("edges"), list):
                raise UpstreamRequestError(f"Customer listing missing expected connection; Response was {data}")
            records: list[CustomerRecord] = []
            for edge in connection["edges"]:
                node = edge.get("node") if isinstance(edge, dict) else None
                record = _normalize_customer(node)
                if record is None:
                    self._logger.warning("Skipping malformed customer node: %s", node)
                    continue
                records.append(record)
            page_info = connection.get("pageInfo") if isinstance(connection.get("pageInfo"), dict) else {}
            end_cursor = page_info.get("endCursor")
            return CustomerPage(
                cursor=cursor,
                records=tuple(records),
                next_cursor=end_cursor if isinstance(end_cursor, str) and end_cursor else None,
                has_next=bool(page_info.get("hasNextPage")),
                raw_count=len(connection["edges"]),
            )

        return self._call(
            fetch,
            cost=page_cost(first),
            cancel=cancel,
            label=f"customer page {cursor.index + 1}",
        )

    def count(
        self,
        query: Optional[str],
        *,
        cancel: Optional[threading.Event] = None,
        timeout: Optional[int] = None,
    ) -> int | None:
        """Return the upstream's count for ``query``, or None if it is unavailable.

        The count is advisory only: it is tried once, without retries, and any
        failure is logged and swallowed so it never delays the listing.
        """
        def fetch() -> int | None:
            data = self._graphql(COUNT_CUSTOMERS_QUERY, {"query": query or None}, timeout=timeout)
            counted = data.get("customersCount") if isinstance(data, dict) else None
            value = counted.get("count") if isinstance(counted, dict) else None
            return value if isinstance(value, int) and not isinstance(value, bool) else None

        try:
            return self._call(
                fetch, cost=PAGE_BASE_COST, cancel=cancel, label="customer count", policy=SINGLE_ATTEMPT
            )
        except Exception as exc:  # noqa: BLE001 - the count is advisory
            self._logger.warning("Could not fetch customer count for %r: %s", query, exc)
            return None

    def _checked_id(self, customer_id: object, action: str, validation: ValidationMode) -> str | None:
        if validation == "off":
            return str(customer_id)
        identifier = _normalize_identifier(customer_id)
        if identifier is None:
            if validation == "strict":
                raise ValidationError(f"Invalid customer_id for {action}: {customer_id!r}")
            self._logger.warning("Invalid customer_id for %s: %s", action, customer_id)
        return identifier
