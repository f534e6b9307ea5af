"""Base resource helpers."""

from __future__ import annotations

import threading
from typing import Any, Callable, Optional, TypeVar, TYPE_CHECKING

from ..retry import RetryPolicy, call_with_retry

if TYPE_CHECKING:  # pragma: no cover
    from ..client import TagSync

T = TypeVar("T")


class Resource:
    """Shared helpers for resource classes."""

    def __init__(self, client: "TagSync") -> None:
        self._client = client

    @property
    def _logger(self):
        return self._client._logger

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[dict[str, Any]] = None,
        json: Optional[dict[str, Any]] = None,
        timeout: Optional[int] = None,
    ) -> Optional[dict[str, Any] | list[Any]]:
        return self._client.request(method, path, params=params, json=json, timeout=timeout)

    def _get(
        self,
        path: str,
        *,
        params: Optional[dict[str, Any]] = None,
        timeout: Optional[int] = None,
    ) -> Optional[dict[str, Any] | list[Any]]:
        return self._request("GET", path, params=params, timeout=timeout)

    def _put(
        self,
        path: str,
        *,
        json: Optional[dict[str, Any]] = None,
        timeout: Optional[int] = None,
    ) -> Optional[dict[str, Any] | list[Any]]:
        return self._request("PUT", path, json=json, timeout=timeout)

    def _graphql(
        self,
        query: str,
        variables: Optional[dict[str, Any]] = None,
        *,
        timeout: Optional[int] = None,
    ) -> dict[str, Any]:
        return self._client.graphql(query, variables, timeout=timeout)

    def _call(
        self,
        func: Callable[[], T],
        *,
        cost: float = 1.0,
        min_interval: Optional[float] = None,
        cancel: Optional[threading.Event] = None,
        label: str = "request",
        policy: Optional[RetryPolicy] = None,
    ) -> T:
        """Run ``func`` through the client's shared throttler and retry policy.

        ``policy`` overrides the client's retry policy for this call only.
        """
        return call_with_retry(
            func,
            throttler=self._client.throttler,
            policy=self._client.retry_policy if policy is None else policy,
            cost=cost,
            min_interval=min_interval,
            cancel=cancel,
            label=label,
        )
