"""Collaborator Protocols - contracts between the services and their IO edges.

Invariants:
    - Services depend on these Protocols, never on httpx directly
    - Implementations are injected by InventoryRuntime (or by tests)

Design Decisions:
    - Protocol over ABC: structural subtyping, fakes need no inheritance
    - Synchronous methods: callers block with a bounded per-request timeout
"""

from typing import Protocol

from spoolsync.core.status_tree import StatusNode


class InventoryEndpoint(Protocol):
    """Blocking JSON access to the inventory REST API."""
    def get_json(self, path: str) -> object: ...
    def use_spool(self, spool_id: int, metric: str, amount: float) -> dict: ...
    def is_server_valid(self) -> bool: ...
    def retarget(self, base_url: str) -> None: ...


class StatusSource(Protocol):
    """Controller status query; None when no candidate endpoint answered."""
    def query(self, objects: dict[str, list[str]]) -> StatusNode | None: ...


class StatisticsListener(Protocol):
    """Preset storage: refreshes its copy of spool counters after usage writes."""
    def update_spool_statistics(self, spool_ids: list[int]) -> None: ...
