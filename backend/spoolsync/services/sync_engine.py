"""Sync Engine - keeps the EntityCache in step with the inventory server.

Invariants:
    - Cold pull fetches vendors, then filaments, then spools; any stage that errors or
      yields no usable record aborts the pull and the cache is left untouched
    - The cache is only replaced after all three stages succeeded, and only if it was
      not cleared while the stages ran
    - Push events only arrive while CONNECTED; each triggers one targeted refresh
      (or a removal for deleted events)
    - A close that the engine did not request invalidates the cache, then reconnects
      with exponential backoff + jitter, up to reconnect_max_attempts (0 = unlimited)

Design Decisions:
    - Push events are applied on a single "push-refresh" thread so blocking HTTP refreshes
      never stall the socket loop; the next receive is armed only after the current event
      is applied, so events are applied in arrival order
    - Malformed records inside a bulk list are skipped with a warning rather than
      failing the stage: the server is the source of truth for the rest of the list
"""

import logging
import random
import threading
from concurrent.futures import Future, ThreadPoolExecutor

from pydantic import BaseModel
from pydantic import ValidationError as SchemaValidationError

from spoolsync.core.collaborator_protocols import InventoryEndpoint
from spoolsync.core.domain_types import ChangeType, ConnectionState, EntityKind
from spoolsync.core.entity_cache import EntityCache
from spoolsync.core.errors import NetworkError, ProtocolError
from spoolsync.core.operation_result import OperationResult
from spoolsync.core.server_address import (
    INVENTORY_DEFAULT_PORT,
    inventory_api_url,
    push_endpoint,
)
from spoolsync.infrastructure.socket_client import (
    AsyncSocketClient,
    CloseReason,
    ConnectFailure,
)
from spoolsync.schemas.inventory import (
    RECORD_TYPES,
    ChangeEvent,
    FilamentRecord,
    SpoolRecord,
    VendorRecord,
)

logger = logging.getLogger(__name__)


class SyncEngine:
    """Cold pull, targeted refresh and push-channel handling for one inventory server."""

    def __init__(
        self,
        cache: EntityCache,
        api: InventoryEndpoint,
        socket: AsyncSocketClient | None = None,
        address: str = "",
        enabled: bool = True,
        default_port: int = INVENTORY_DEFAULT_PORT,
        reconnect_base_delay_ms: int = 1000,
        reconnect_max_delay_ms: int = 30_000,
        reconnect_max_attempts: int = 0,
    ):
        self.cache = cache
        self.api = api
        self.socket = socket
        self.address = address
        self.enabled = enabled
        self.default_port = default_port
        self.reconnect_base_delay_ms = reconnect_base_delay_ms
        self.reconnect_max_delay_ms = reconnect_max_delay_ms
        self.reconnect_max_attempts = reconnect_max_attempts

        self._state = ConnectionState.DISCONNECTED
        self._state_lock = threading.Lock()
        self._attempt = 0
        self._pending_reconnect = False
        self._closing = False
        self._reconnect_future: Future | None = None
        self._push_pool: ThreadPoolExecutor | None = None

        cache.bind_loader(self.pull)
        if socket is not None:
            self._push_pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="push-refresh")
            socket.on_connect = self._on_connect
            socket.on_receive = self._on_receive
            socket.on_close = self._on_close

    @property
    def connection_state(self) -> ConnectionState:
        return self._state

    def _set_state(self, state: ConnectionState) -> None:
        with self._state_lock:
            previous, self._state = self._state, state
        if previous is not state:
            logger.debug(f"Push channel {previous.value} -> {state.value}")

    # ─── Cold pull ───────────────────────────────────────────────

    def pull(self) -> OperationResult:
        """Fetch all vendors, filaments and spools and swap them into the cache."""
        result = OperationResult()
        if not self.enabled:
            result.add_error("Inventory sync is disabled")
            return result

        generation = self.cache.generation
        vendors = self._fetch_all(EntityKind.VENDOR, result)
        if vendors is None:
            return result
        filaments = self._fetch_all(EntityKind.FILAMENT, result)
        if filaments is None:
            return result
        spools = self._fetch_all(EntityKind.SPOOL, result)
        if spools is None:
            return result

        swapped = self.cache.replace_all(
            [v.to_entity() for v in vendors],
            [f.to_update() for f in filaments],
            [s.to_update() for s in spools],
            generation=generation,
        )
        if swapped is None:
            result.add_error("Inventory cache was cleared during the pull")
            return result
        logger.info(
            f"Pulled {len(vendors)} vendors, {len(filaments)} filaments, {len(spools)} spools",
        )
        return result

    def _fetch_all(self, kind: EntityKind, result: OperationResult) -> list | None:
        try:
            body = self.api.get_json(kind.value)
        except (NetworkError, ProtocolError) as e:
            logger.error(
                f"Failed to get {kind.value}s: {e.message}",
                extra={"entity_kind": kind.value, "error_code": e.code},
            )
            result.add_error(f"Failed to get {kind.value}s: {e.message}")
            return None
        if not isinstance(body, list):
            result.add_error(f"Failed to get {kind.value}s: expected a list")
            return None

        records = []
        for raw in body:
            record = self._parse(kind, raw)
            if record is not None:
                records.append(record)
        if not records:
            logger.error(f"Server returned no usable {kind.value}s", extra={"entity_kind": kind.value})
            result.add_error(f"Failed to get {kind.value}s: server returned no records")
            return None
        return records

    @staticmethod
    def _parse(kind: EntityKind, raw: object) -> BaseModel | None:
        try:
            return RECORD_TYPES[kind].model_validate(raw)
        except SchemaValidationError as e:
            entity_id = raw.get("id") if isinstance(raw, dict) else None
            logger.warning(
                f"Skipping malformed {kind.value} record: {e.error_count()} error(s)",
                extra={"entity_kind": kind.value, "entity_id": entity_id},
            )
            return None

    # ─── Targeted refresh ────────────────────────────────────────

    def refresh_vendor(self, vendor_id: int) -> OperationResult:
        result = OperationResult()
        record = self._fetch_one(EntityKind.VENDOR, vendor_id, result)
        if isinstance(record, VendorRecord):
            self.cache.upsert_vendor(record.to_entity())
            result.add_success(vendor_id)
        return result

    def refresh_filament(self, filament_id: int, recursive: bool = False) -> OperationResult:
        """Re-fetch one filament; recursive also refreshes its vendor from the embedded data."""
        result = OperationResult()
        record = self._fetch_one(EntityKind.FILAMENT, filament_id, result)
        if isinstance(record, FilamentRecord):
            self.cache.upsert_filament(record.to_update(), refresh_parent=recursive)
            result.add_success(filament_id)
        return result

    def refresh_spool(self, spool_id: int, recursive: bool = False) -> OperationResult:
        """Re-fetch one spool; recursive also refreshes filament and vendor from the embedded data."""
        result = OperationResult()
        record = self._fetch_one(EntityKind.SPOOL, spool_id, result)
        if isinstance(record, SpoolRecord):
            self.cache.upsert_spool(record.to_update(), refresh_parents=recursive)
            result.add_success(spool_id)
        return result

    def refresh_spools(self, spool_ids) -> OperationResult:
        result = OperationResult()
        for spool_id in spool_ids:
            result.merge(self.refresh_spool(spool_id))
        return result

    def refresh(self, kind: EntityKind, entity_id: int, recursive: bool = False) -> OperationResult:
        if kind is EntityKind.VENDOR:
            return self.refresh_vendor(entity_id)
        if kind is EntityKind.FILAMENT:
            return self.refresh_filament(entity_id, recursive)
        return self.refresh_spool(entity_id, recursive)

    def _fetch_one(self, kind: EntityKind, entity_id: int, result: OperationResult) -> BaseModel | None:
        try:
            raw = self.api.get_json(f"{kind.value}/{entity_id}")
        except (NetworkError, ProtocolError) as e:
            logger.error(
                f"Failed to refresh {kind.value} {entity_id}: {e.message}",
                extra={"entity_kind": kind.value, "entity_id": entity_id, "error_code": e.code},
            )
            result.add_error(f"Failed to refresh {kind.value} {entity_id}: {e.message}", entity_id)
            return None
        record = self._parse(kind, raw)
        if record is None:
            result.add_error(f"Server sent a malformed {kind.value} {entity_id}", entity_id)
        return record

    # ─── Push channel ────────────────────────────────────────────

    def start(self) -> None:
        """Open the push channel (no-op when disabled or without a socket)."""
        self._closing = False
        self._attempt = 0
        self._connect()

    def _connect(self) -> None:
        if not self.enabled or self.socket is None or self._closing:
            return
        if not self.socket.ready_to_connect:
            return
        host, port, path, secure = push_endpoint(self.address, self.default_port)
        if not host:
            logger.warning("No inventory address configured; push channel not started")
            return
        self._set_state(ConnectionState.CONNECTING)
        self.socket.async_connect(host, port, path, secure)

    def _on_connect(self, failure: ConnectFailure | None) -> None:
        if failure is not None:
            self._set_state(ConnectionState.DISCONNECTED)
            if self._pending_reconnect:
                self._pending_reconnect = False
                self._connect()
            else:
                self._schedule_reconnect()
            return

        self._set_state(ConnectionState.CONNECTED)
        if self._pending_reconnect:
            # connected to the previous server; the close handler reconnects
            self.socket.async_close()
            return
        self._attempt = 0
        logger.info(f"Push channel connected to {self.address}")
        self.socket.async_receive()

    def _on_receive(self, message: str, error: Exception | None, size: int) -> None:
        if error is not None:
            logger.warning(f"Push channel receive failed: {error}")
        elif message and self._push_pool is not None and not self._closing:
            future = self._push_pool.submit(self.handle_push_message, message)
            future.add_done_callback(self._push_applied)
            return
        self._arm_receive()

    def _push_applied(self, future: Future) -> None:
        if not future.cancelled() and future.exception() is not None:
            logger.error(
                f"Push event handling raised: {future.exception()}", exc_info=future.exception(),
            )
        self._arm_receive()

    def _arm_receive(self) -> None:
        if self._closing or not self.socket.is_connected:
            return
        try:
            self.socket.async_receive()
        except RuntimeError as e:
            logger.debug(f"Push channel receive not re-armed: {e}")

    def _on_close(self, reason: CloseReason, client_initiated: bool) -> None:
        self._set_state(ConnectionState.DISCONNECTED)
        if client_initiated:
            if self._pending_reconnect:
                self._pending_reconnect = False
                self._connect()
            return
        logger.warning(
            f"Push channel closed by server (code={reason.code}); invalidating cache",
        )
        self.cache.clear()
        self._schedule_reconnect()

    def _schedule_reconnect(self) -> None:
        if not self.enabled or self._closing or self.socket is None:
            return
        if self.reconnect_max_attempts and self._attempt >= self.reconnect_max_attempts:
            logger.error(
                f"Push channel gave up after {self._attempt} reconnect attempts",
                extra={"attempt": self._attempt},
            )
            return
        delay = self._backoff(self._attempt)
        self._attempt += 1
        logger.info(
            f"Push channel reconnect in {delay}ms",
            extra={"attempt": self._attempt},
        )
        self._reconnect_future = self.socket.call_later(delay / 1000, self._connect)

    def _backoff(self, attempt: int) -> int:
        """Exponential backoff with ±25% jitter."""
        delay = min(self.reconnect_max_delay_ms, (2 ** attempt) * self.reconnect_base_delay_ms)
        return int(delay * random.uniform(0.75, 1.25))  # nosec B311

    def handle_push_message(self, message: str) -> OperationResult | None:
        """Apply one change event. Returns None for events that were ignored."""
        try:
            event = ChangeEvent.model_validate_json(message)
        except SchemaValidationError:
            logger.warning(f"Ignoring malformed push message: {message[:200]!r}")
            return None

        kind = event.entity_kind
        if kind is None:
            logger.debug(f"Ignoring push event for resource '{event.resource}'")
            return None
        entity_id = event.entity_id
        if entity_id is None:
            logger.warning(
                f"Ignoring {event.type.value} {kind.value} event without an id",
                extra={"entity_kind": kind.value},
            )
            return None

        logger.debug(
            f"Push event {event.type.value} {kind.value} {entity_id}",
            extra={"entity_kind": kind.value, "entity_id": entity_id},
        )
        if event.type is ChangeType.DELETED:
            result = OperationResult()
            if self.cache.remove(kind, entity_id):
                result.add_success(entity_id)
            return result
        return self.refresh(kind, entity_id)

    # ─── Lifecycle ───────────────────────────────────────────────

    def invalidate(self) -> None:
        self.cache.clear()

    def is_server_valid(self) -> bool:
        return self.enabled and self.api.is_server_valid()

    def server_changed(self, address: str) -> None:
        """Retarget to a new server: new API base, empty cache, fresh push channel."""
        self.address = address
        self.api.retarget(inventory_api_url(address, self.default_port))
        self.cache.clear()
        self._attempt = 0
        if self._reconnect_future is not None:
            self._reconnect_future.cancel()
            self._reconnect_future = None
        logger.info(f"Inventory server changed to {address}")
        if self.socket is None or not self.enabled:
            return
        if self.socket.is_connected:
            self._pending_reconnect = True
            self.socket.async_close()
        elif self.socket.is_connecting:
            self._pending_reconnect = True
        else:
            self._connect()

    def close(self, timeout_seconds: float = 5.0) -> None:
        """Client-initiated close of the push channel and shutdown of its worker."""
        self._closing = True
        if self._reconnect_future is not None:
            self._reconnect_future.cancel()
        if self._push_pool is not None:
            self._push_pool.shutdown(wait=False, cancel_futures=True)
        if self.socket is None:
            return
        if self.socket.is_connected:
            try:
                self.socket.async_close().result(timeout_seconds)
            except TimeoutError:
                logger.warning("Push channel close handshake timed out")
        self.socket.shutdown(timeout_seconds)
        self._set_state(ConnectionState.DISCONNECTED)
