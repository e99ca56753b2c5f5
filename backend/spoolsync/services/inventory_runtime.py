"""Inventory Runtime - composition root wiring cache, clients and services from Settings.

Invariants:
    - Exactly one EntityCache per runtime, shared by every service
    - Lifecycle is explicit: construct -> start() -> operate -> close()
    - Consumer reads never raise on network failure: a failed pull yields empty results

Design Decisions:
    - Collaborators are injectable so tests can swap in fakes without patching
"""

import logging

from spoolsync.config import Settings
from spoolsync.core.collaborator_protocols import (
    InventoryEndpoint,
    StatisticsListener,
    StatusSource,
)
from spoolsync.core.entities import Filament, Spool, Vendor
from spoolsync.core.entity_cache import EntityCache
from spoolsync.core.lane_heuristics import LaneInfo, LaneResolution
from spoolsync.core.operation_result import OperationResult
from spoolsync.core.server_address import controller_candidate_urls, inventory_api_url
from spoolsync.infrastructure.controller_client import ControllerClient
from spoolsync.infrastructure.inventory_api import InventoryApi
from spoolsync.infrastructure.socket_client import AsyncSocketClient
from spoolsync.services.lane_resolver import LaneResolver
from spoolsync.services.sync_engine import SyncEngine
from spoolsync.services.usage_ledger import UsageLedger

logger = logging.getLogger(__name__)


class InventoryRuntime:
    def __init__(
        self,
        settings: Settings,
        api: InventoryEndpoint | None = None,
        controller: StatusSource | None = None,
        socket: AsyncSocketClient | None = None,
        listener: StatisticsListener | None = None,
    ):
        self.settings = settings
        self.cache = EntityCache()
        self.api = api or InventoryApi(
            inventory_api_url(settings.inventory_address, settings.inventory_default_port),
            timeout_seconds=settings.request_timeout_seconds,
            max_retries=settings.request_max_retries,
            base_delay_ms=settings.request_retry_base_delay_ms,
        )
        if socket is None and settings.inventory_enabled and settings.push_enabled:
            socket = AsyncSocketClient(connect_timeout_seconds=settings.request_timeout_seconds)
        self.controller = controller or ControllerClient(
            controller_candidate_urls(
                settings.resolved_controller_address, settings.controller_default_port,
            ),
            timeout_seconds=settings.request_timeout_seconds,
        )

        self.sync = SyncEngine(
            self.cache,
            self.api,
            socket,
            address=settings.inventory_address,
            enabled=settings.inventory_enabled,
            default_port=settings.inventory_default_port,
            reconnect_base_delay_ms=settings.push_reconnect_base_delay_ms,
            reconnect_max_delay_ms=settings.push_reconnect_max_delay_ms,
            reconnect_max_attempts=settings.push_reconnect_max_attempts,
        )
        self.ledger = UsageLedger(self.cache, self.api, listener, settings.usage_write_workers)
        self.lanes = LaneResolver(self.cache, self.controller)

    # ─── Lifecycle ───────────────────────────────────────────────

    def start(self) -> None:
        if not self.settings.inventory_enabled:
            logger.info("Inventory sync disabled; runtime started idle")
            return
        if self.settings.pull_on_start:
            result = self.sync.pull()
            if result.has_failed:
                logger.warning(f"Initial pull failed: {result.build_single_line_message()}")
        self.sync.start()

    def close(self) -> None:
        self.sync.close()
        for client in (self.api, self.controller):
            close = getattr(client, "close", None)
            if close is not None:
                close()

    # ─── Consumer reads ──────────────────────────────────────────

    def list_vendors(self) -> list[Vendor]:
        return self.cache.vendors()

    def list_filaments(self) -> list[Filament]:
        return self.cache.filaments()

    def list_spools(self) -> list[Spool]:
        return self.cache.spools()

    def get_spool(self, spool_id: int) -> Spool | None:
        return self.cache.get_spool(spool_id)

    def get_filament(self, filament_id: int) -> Filament | None:
        return self.cache.get_filament(filament_id)

    def spool_preset_name(self, spool_id: int) -> str | None:
        return self.cache.spool_preset_name(spool_id)

    def filament_preset_name(self, filament_id: int) -> str | None:
        return self.cache.filament_preset_name(filament_id)

    def most_used_spool(self, filament_id: int) -> Spool | None:
        return self.cache.most_used_spool(filament_id)

    def lanes_by_spool(self, refresh: bool = False) -> dict[int, LaneInfo]:
        return self.lanes.lanes_by_spool(refresh)

    def spools_by_lane(self) -> tuple[LaneResolution, list[Spool]]:
        return self.lanes.spools_by_lane()

    # ─── Consumer writes ─────────────────────────────────────────

    def use_batch(self, deltas: dict[int, float], metric: str) -> OperationResult:
        return self.ledger.use_batch(deltas, metric)

    def undo(self) -> OperationResult:
        return self.ledger.undo()

    def invalidate(self) -> None:
        self.sync.invalidate()

    def is_server_valid(self) -> bool:
        return self.sync.is_server_valid()

    def server_changed(self, address: str) -> None:
        self.ledger.clear_undo()
        self.sync.server_changed(address)
        self.lanes.reset()
        if not self.settings.controller_address and isinstance(self.controller, ControllerClient):
            self.settings = self.settings.model_copy(update={"inventory_address": address})
            self.controller.retarget(controller_candidate_urls(
                self.settings.resolved_controller_address, self.settings.controller_default_port,
            ))

    def status(self) -> dict:
        return {
            "enabled": self.sync.enabled,
            "initialized": self.cache.initialized,
            "connection_state": self.sync.connection_state.value,
            "undo_available": self.ledger.undo_available,
            "last_usage_metric": (
                self.ledger.last_usage_metric.value if self.ledger.last_usage_metric else None
            ),
        }
