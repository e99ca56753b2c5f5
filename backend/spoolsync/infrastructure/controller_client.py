"""Controller Client - status queries against the lane controller's object API.

Invariants:
    - query() never raises: every failure is logged and the next candidate URL is tried
    - Candidate URLs are tried in order; the first one that answers with a status
      object wins and is remembered for the next query
"""

import logging

import httpx

from spoolsync.core.status_tree import StatusNode, from_json

logger = logging.getLogger(__name__)

QUERY_PATH = "printer/objects/query"


class ControllerClient:
    def __init__(
        self,
        candidate_urls: list[str],
        timeout_seconds: float = 5.0,
        transport: httpx.BaseTransport | None = None,
    ):
        self.candidate_urls = list(candidate_urls)
        self._client = httpx.Client(timeout=timeout_seconds, transport=transport)
        self._preferred: str | None = None

    def retarget(self, candidate_urls: list[str]) -> None:
        self.candidate_urls = list(candidate_urls)
        self._preferred = None

    def close(self) -> None:
        self._client.close()

    def query(self, objects: dict[str, list[str]]) -> StatusNode | None:
        """POST {"objects": ...} and return result.status as a tree, or None."""
        if not objects:
            return None
        for base_url in self._ordered_urls():
            status = self._query_one(base_url, objects)
            if status is not None:
                self._preferred = base_url
                return status
        logger.warning(
            f"No controller endpoint answered a status query for {len(objects)} object(s)",
            extra={"endpoint": QUERY_PATH},
        )
        return None

    def _ordered_urls(self) -> list[str]:
        if self._preferred in self.candidate_urls:
            return [self._preferred] + [u for u in self.candidate_urls if u != self._preferred]
        return self.candidate_urls

    def _query_one(self, base_url: str, objects: dict[str, list[str]]) -> StatusNode | None:
        url = base_url + QUERY_PATH
        try:
            response = self._client.post(url, json={"objects": objects})
        except httpx.HTTPError as e:
            logger.debug(f"Controller query to {url} failed: {e}", extra={"endpoint": url})
            return None
        if response.status_code != 200:
            logger.debug(
                f"Controller query to {url} returned HTTP {response.status_code}",
                extra={"endpoint": url},
            )
            return None
        try:
            body = response.json()
        except ValueError as e:
            logger.warning(f"Invalid JSON from controller {url}: {e}", extra={"endpoint": url})
            return None
        result = body.get("result") if isinstance(body, dict) else None
        status = result.get("status") if isinstance(result, dict) else None
        if not isinstance(status, dict):
            logger.warning(f"Controller response from {url} has no result.status", extra={"endpoint": url})
            return None
        return from_json(status)
