"""Core tagsync client with a raw-request escape hatch."""

from __future__ import annotations

import logging
import os
import threading
from typing import Any, Mapping, Optional, Sequence

import requests

from .errors import (
    NotFoundError,
    RateLimitedError,
    SegmentResolutionError,
    TagSyncError,
    TransientNetworkError,
    UpstreamRequestError,
    UpstreamServerError,
    ValidationError,
)
from .mutator import DEFAULT_MAX_WORKERS, BulkMutator, BulkTagOutcome, TagObserver
from .resources._common_types import ValidationMode
from .resources.customers import Customers
from .resources.customers_types import CustomerRecord
from .resources.segments import Segments
from .resources.segments_types import ProgressObserver, SegmentDefinition, SyncResult
from .resources.tags_types import TagAction
from .retry import RetryPolicy
from .rules import RuleExecutionResult, RuleExecutor, TaggingRule
from .segments import REPEAT_BUYERS, SegmentCatalog
from .store import MemoryStore, SyncStore
from .sync import DEFAULT_CACHE_TTL, SyncOrchestrator
from .throttle import Throttler
from .walker import DEFAULT_MAX_PAGES, DEFAULT_PAGE_SIZE

DEFAULT_STORE_URL = os.environ.get("TAGSYNC_STORE_URL", "")
DEFAULT_ACCESS_TOKEN = os.environ.get("TAGSYNC_ACCESS_TOKEN", "")
DEFAULT_API_VERSION = os.environ.get("TAGSYNC_API_VERSION", "2024-01")
REPEAT_BUYERS_FILTER = os.environ.get("TAGSYNC_REPEAT_BUYERS_FILTER")

DEFAULT_RECORD_INTERVAL = 0.5
ACCESS_TOKEN_HEADER = "X-Shopify-Access-Token"


def _retry_after(response: Any) -> float | None:
    headers = getattr(response, "headers", None) or {}
    value = headers.get("Retry-After")
    try:
        return float(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def _server_message(response: Any) -> str | None:
    try:
        body = response.json()
    except ValueError:
        return None
    if not isinstance(body, dict):
        return None
    # Try common error message fields
    for key in ("errors", "error", "message", "detail"):
        if key in body:
            return str(body[key])
    return None


class TagSync:
    """Segment sync and bulk tagging client for one upstream store."""

    customers: Customers
    segments: Segments
    catalog: SegmentCatalog
    orchestrator: SyncOrchestrator
    mutator: BulkMutator
    rules: RuleExecutor

    def __init__(
        self,
        *,
        store_url: Optional[str] = None,
        access_token: Optional[str] = None,
        api_version: Optional[str] = None,
        default_timeout: int = 20,
        session: Optional[requests.Session] = None,
        throttler: Optional[Throttler] = None,
        retry_policy: Optional[RetryPolicy] = None,
        store: Optional[SyncStore] = None,
        segment_filters: Optional[Mapping[str, str]] = None,
        page_size: int = DEFAULT_PAGE_SIZE,
        max_pages: int = DEFAULT_MAX_PAGES,
        cache_ttl: float = DEFAULT_CACHE_TTL,
        max_workers: int = DEFAULT_MAX_WORKERS,
        record_interval: float = DEFAULT_RECORD_INTERVAL,
    ) -> None:
        """Create a client bound to one store.

        Parameters
        ----------
        store_url
            Base URL of the store, e.g. ``https://example.myshopify.com``.
        access_token
            Admin API access token sent with every request.
        api_version
            Admin API version segment of the request path.
        default_timeout
            Default request timeout in seconds.
        session
            Optional requests session to reuse connections.
        throttler
            Shared throttler; every component of this client draws from it.
        retry_policy
            Retry and backoff policy for every upstream call.
        store
            Persistence collaborator for cached syncs and rules.
        segment_filters
            Extra or overriding segment name to filter expression mappings.
            ``TAGSYNC_REPEAT_BUYERS_FILTER`` is used for Repeat Buyers unless
            given here.
        page_size
            Records requested per listing page.
        max_pages
            Safety ceiling on pages walked per sync.
        cache_ttl
            Seconds a completed sync is served from the store.
        max_workers
            Customers tagged concurrently; ``0`` or ``1`` is sequential.
        record_interval
            Minimum seconds between two per-record reads or writes.
        """
        self.store_url = (store_url or DEFAULT_STORE_URL).rstrip("/")
        self.access_token = access_token or DEFAULT_ACCESS_TOKEN
        self.api_version = api_version or DEFAULT_API_VERSION
        self.default_timeout = default_timeout
        self.record_interval = record_interval
        self._logger = logging.getLogger(__name__)
        self._session = session

        self.throttler = throttler or Throttler()
        self.retry_policy = retry_policy or RetryPolicy()
        self.store: SyncStore = store if store is not None else MemoryStore()

        filters: dict[str, str] = {}
        if REPEAT_BUYERS_FILTER:
            filters[REPEAT_BUYERS] = REPEAT_BUYERS_FILTER
        filters.update(segment_filters or {})

        self.customers = Customers(self)
        self.segments = Segments(self)
        self.catalog = SegmentCatalog(filters)
        self.orchestrator = SyncOrchestrator(
            self.customers,
            self.catalog,
            store=self.store,
            cache_ttl=cache_ttl,
            page_size=page_size,
            max_pages=max_pages,
        )
        self.mutator = BulkMutator(self.customers, max_workers=max_workers)
        self.rules = RuleExecutor(self.orchestrator, self.mutator)

    def request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[dict[str, Any]] = None,
        json: Optional[dict[str, Any]] = None,
        timeout: Optional[int] = None,
    ) -> Optional[dict[str, Any] | list[Any]]:
        """Send one raw request to the Admin API.

        Parameters
        ----------
        method
            HTTP method (GET, POST, PUT, DELETE).
        path
            Endpoint path below ``/admin/api/<version>``, e.g. ``/customers/1.json``.
        params
            Query parameters for the request.
        json
            JSON payload for the request.
        timeout
            Timeout in seconds for this request.

        Returns
        -------
        dict | list | None
            Parsed JSON payload, or None if the response is empty or non-JSON.

        Raises
        ------
        TransientNetworkError
            On timeouts and connection failures.
        RateLimitedError
            On ``429``; ``retry_after`` carries the ``Retry-After`` header.
        NotFoundError
            On ``404``.
        UpstreamServerError
            On ``5xx``.
        UpstreamRequestError
            On any other ``4xx`` or request failure.
        """
        if not self.store_url:
            raise ValidationError("No store URL configured; pass store_url or set TAGSYNC_STORE_URL")
        if not path.startswith("/"):
            path = "/" + path
        url = f"{self.store_url}/admin/api/{self.api_version}{path}"
        headers = {ACCESS_TOKEN_HEADER: self.access_token, "Accept": "application/json"}

        requester = self._session or requests
        try:
            response = requester.request(
                method,
                url,
                params=params,
                json=json,
                headers=headers,
                timeout=timeout or self.default_timeout,
            )
        except (requests.Timeout, requests.ConnectionError) as exc:
            raise TransientNetworkError(f"{method} {url} failed: {exc}") from exc
        except requests.RequestException as exc:
            raise UpstreamRequestError(f"{method} {url} failed: {exc}") from exc

        status = response.status_code
        if status >= 400:
            error_msg = f"{status} error for {method} {url}"
            server_message = _server_message(response)
            if server_message:
                error_msg = f"{error_msg}\nServer message: {server_message}"
            if status == 429:
                raise RateLimitedError(error_msg, retry_after=_retry_after(response))
            if status == 404:
                raise NotFoundError(error_msg)
            if status >= 500:
                raise UpstreamServerError(error_msg, status=status)
            raise UpstreamRequestError(error_msg, status=status)

        if not response.content:
            return None
        try:
            payload = response.json()
        except ValueError:  # noqa: PERF203 - only attempt JSON when present
            self._logger.warning("Response from %s %s was not JSON", method, url)
            return None
        if isinstance(payload, (dict, list)):
            return payload
        return None

    def graphql(
        self,
        query: str,
        variables: Optional[dict[str, Any]] = None,
        *,
        timeout: Optional[int] = None,
    ) -> dict[str, Any]:
        """Run one GraphQL query and return its ``data`` object.

        A ``THROTTLED`` error in the response body raises
        :class:`RateLimitedError` even though the HTTP status was 200; any
        other GraphQL error raises :class:`UpstreamRequestError`. The reported
        throttle status is fed back to the shared throttler.
        """
        response = self.request("POST", "/graphql.json", json={"query": query, "variables": variables or {}}, timeout=timeout)
        if not isinstance(response, dict):
            raise UpstreamRequestError(f"GraphQL response was not an object: {response!r}")

        extensions = response.get("extensions")
        cost = extensions.get("cost") if isinstance(extensions, dict) else None
        throttle_status = cost.get("throttleStatus") if isinstance(cost, dict) else None
        if isinstance(throttle_status, dict):
            self.throttler.record_cost(
                currently_available=throttle_status.get("currentlyAvailable"),
                maximum_available=throttle_status.get("maximumAvailable"),
                restore_rate=throttle_status.get("restoreRate"),
            )

        errors = response.get("errors")
        if errors:
            entries = errors if isinstance(errors, list) else [errors]
            codes = {
                entry.get("extensions", {}).get("code")
                for entry in entries
                if isinstance(entry, dict) and isinstance(entry.get("extensions"), dict)
            }
            messages = "; ".join(
                str(entry.get("message", entry)) if isinstance(entry, dict) else str(entry) for entry in entries
            )
            if "THROTTLED" in codes:
                raise RateLimitedError(f"GraphQL request throttled: {messages}")
            raise UpstreamRequestError(f"GraphQL request failed: {messages}")

        data = response.get("data")
        if not isinstance(data, dict):
            raise UpstreamRequestError(f"GraphQL response missing data; Response was {response}")
        return data

    # ------------------------------------------------------------------
    # Segments
    # ------------------------------------------------------------------
    def list_segments(self, *, refresh: bool = False) -> list[SegmentDefinition]:
        """Return the known segments with their filters as they would resolve now.

        With ``refresh`` the store's own segments are listed first and merged
        into the catalog; see :meth:`load_segments`.
        """
        if refresh:
            self.load_segments()
        return self.catalog.list()

    def load_segments(self, *, cancel: Optional[threading.Event] = None) -> int:
        """Merge the store's own segments into the catalog.

        When the listing fails the built-in and configured segments stay in
        use and the failure is logged.

        Returns
        -------
        int
            Number of upstream segments now in the catalog.
        """
        try:
            definitions = self.segments.list(cancel=cancel)
        except TagSyncError as exc:
            self._logger.warning("Could not list store segments; using built-in segments: %s", exc)
            return 0
        return self.catalog.set_upstream(definitions)

    def segment_count(self, name: str, *, cancel: Optional[threading.Event] = None) -> int | None:
        """Return the upstream's customer count for segment ``name``.

        Returns
        -------
        int | None
            None for unknown or unconfigured segments and when the count is unavailable.
        """
        try:
            definition = self.catalog.resolve(name)
        except SegmentResolutionError as exc:
            self._logger.warning("Cannot count segment %s: %s", name, exc)
            return None
        if definition is None:
            self._logger.warning("Cannot count unknown segment %s", name)
            return None
        return self.customers.count(definition.query, cancel=cancel)

    def sync_segment(
        self,
        name: str,
        force_refresh: bool = False,
        observer: Optional[ProgressObserver] = None,
        cancel: Optional[threading.Event] = None,
    ) -> SyncResult:
        """Retrieve every customer in segment ``name``. See :meth:`SyncOrchestrator.sync`."""
        return self.orchestrator.sync(name, force=force_refresh, observer=observer, cancel=cancel)

    def preview_segment(self, name: str, *, limit: Optional[int] = None) -> list[CustomerRecord]:
        """Return the first page of segment ``name`` without caching it."""
        return self.orchestrator.preview(name, limit=limit)

    # ------------------------------------------------------------------
    # Tagging
    # ------------------------------------------------------------------
    def apply_tags(
        self,
        identifiers: Sequence[str | int],
        actions: Sequence[TagAction | Mapping[str, object]],
        *,
        validation: ValidationMode = "strict",
        cancel: Optional[threading.Event] = None,
        observer: Optional[TagObserver] = None,
    ) -> BulkTagOutcome:
        """Apply tag ``actions`` to every customer in ``identifiers``."""
        return self.mutator.apply(identifiers, actions, validation=validation, cancel=cancel, observer=observer)

    def execute_rule(
        self,
        rule: TaggingRule | str,
        *,
        force_sync: bool = False,
        cancel: Optional[threading.Event] = None,
        observer: Optional[ProgressObserver] = None,
    ) -> RuleExecutionResult:
        """Execute a rule, given directly or by its id in the store.

        Raises
        ------
        NotFoundError
            If ``rule`` is an id the store does not know.
        RuleInactiveError
            If the rule is inactive.
        """
        if isinstance(rule, str):
            stored = self.store.get_rule(rule)
            if stored is None:
                raise NotFoundError(f"Rule {rule} not found")
            rule = stored
        return self.rules.execute(rule, force_sync=force_sync, cancel=cancel, observer=observer)

    def execute_active_rules(
        self,
        *,
        force_sync: bool = False,
        cancel: Optional[threading.Event] = None,
    ) -> list[RuleExecutionResult]:
        """Execute every active rule in the store."""
        return self.rules.execute_active(self.store, force_sync=force_sync, cancel=cancel)


__all__ = [
    "DEFAULT_ACCESS_TOKEN",
    "DEFAULT_API_VERSION",
    "DEFAULT_STORE_URL",
    "TagSync",
]
