"""Inventory API Client - blocking JSON access to the inventory REST API with error mapping.

Invariants:
    - Every request is bounded by timeout_seconds
    - Transport failures (connect, 5xx) on GET are retried with exponential backoff + jitter;
      writes are never retried
    - Client errors (4xx): immediate failure, no retry
    - All failures mapped to NetworkError / RequestTimeoutError / ProtocolError (core/errors.py)

Design Decisions:
    - Sync httpx.Client: callers block on each request, matching the threading model of
      the cache (the socket worker and request threads never share an event loop)
    - ±25% jitter on backoff: many clients restart together after a server outage
"""

import logging
import random
import threading
import time

import httpx

from spoolsync.core.errors import (
    ErrorContext,
    NetworkError,
    ProtocolError,
    RequestTimeoutError,
)

logger = logging.getLogger(__name__)


class InventoryApi:
    """Wraps httpx.Client with timeouts, GET retries and error mapping."""

    def __init__(
        self,
        base_url: str,
        timeout_seconds: float = 5.0,
        max_retries: int = 2,
        base_delay_ms: int = 250,
        max_delay_ms: int = 2_000,
        transport: httpx.BaseTransport | None = None,
    ):
        self.timeout_seconds = timeout_seconds
        self.max_retries = max_retries
        self.base_delay_ms = base_delay_ms
        self.max_delay_ms = max_delay_ms
        self._transport = transport
        self._lock = threading.Lock()
        self._client = self._build_client(base_url)

    def _build_client(self, base_url: str) -> httpx.Client:
        return httpx.Client(
            base_url=base_url,
            timeout=self.timeout_seconds,
            transport=self._transport,
            headers={"Accept": "application/json"},
        )

    @property
    def base_url(self) -> str:
        return str(self._client.base_url)

    def retarget(self, base_url: str) -> None:
        """Point the client at another server; in-flight requests finish on the old one."""
        with self._lock:
            old, self._client = self._client, self._build_client(base_url)
        old.close()
        logger.info(f"Inventory API retargeted to {base_url}")

    def close(self) -> None:
        self._client.close()

    # ─── Requests ────────────────────────────────────────────────

    def get_json(self, path: str) -> object:
        """GET `path` relative to the API base and return the decoded body."""
        for attempt in range(self.max_retries + 1):
            try:
                response = self._send("GET", path)
            except RequestTimeoutError:
                raise
            except NetworkError as e:
                if not self._should_retry(e, attempt):
                    raise
                delay = self._backoff(attempt)
                logger.warning(
                    f"Transient error on GET {path}, retry after {delay}ms: {e.message}",
                    extra={"endpoint": path, "attempt": attempt + 1},
                )
                time.sleep(delay / 1000)
                continue
            return self._decode(response, path)
        raise NetworkError(f"GET {path} failed", endpoint=path)  # pragma: no cover

    def put_json(self, path: str, body: dict) -> object:
        response = self._send("PUT", path, json=body)
        return self._decode(response, path)

    def use_spool(self, spool_id: int, metric: str, amount: float) -> dict:
        """Record consumption on one spool; returns the updated spool record."""
        path = f"spool/{spool_id}/use"
        record = self.put_json(path, {f"use_{metric}": amount})
        if not isinstance(record, dict):
            raise ProtocolError(
                f"Expected a spool object from {path}", endpoint=path,
                context=ErrorContext(entity_kind="spool", entity_id=spool_id),
            )
        return record

    def is_server_valid(self) -> bool:
        """True iff GET info answers 200."""
        try:
            response = self._send("GET", "info")
        except NetworkError as e:
            logger.warning(f"Inventory server probe failed: {e.message}", extra={"endpoint": "info"})
            return False
        return response.status_code == 200

    # ─── Internals ───────────────────────────────────────────────

    def _send(self, method: str, path: str, **kwargs) -> httpx.Response:
        with self._lock:
            client = self._client
        try:
            response = client.request(method, path, **kwargs)
        except httpx.TimeoutException:
            raise RequestTimeoutError(path, self.timeout_seconds)
        except httpx.TransportError as e:
            raise NetworkError(f"{method} {path} failed: {e}", endpoint=path)
        if response.status_code >= 400:
            raise NetworkError(
                f"{method} {path} returned HTTP {response.status_code}",
                endpoint=path, status_code=response.status_code,
            )
        return response

    @staticmethod
    def _decode(response: httpx.Response, path: str) -> object:
        if not response.content:
            raise ProtocolError(f"Empty response body from {path}", endpoint=path)
        try:
            return response.json()
        except ValueError as e:
            raise ProtocolError(f"Invalid JSON from {path}: {e}", endpoint=path)

    def _should_retry(self, error: NetworkError, attempt: int) -> bool:
        if attempt >= self.max_retries:
            return False
        return error.status_code is None or error.status_code >= 500

    def _backoff(self, attempt: int) -> int:
        """Exponential backoff with ±25% jitter."""
        delay = min(self.max_delay_ms, (2 ** attempt) * self.base_delay_ms)
        return int(delay * random.uniform(0.75, 1.25))  # nosec B311
