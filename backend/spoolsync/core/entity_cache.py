"""Entity Cache - in-memory mirror of the vendor/filament/spool graph.

Invariants:
    - Every non-null Filament.vendor_id and every Spool.filament_id resolves to a cached
      record: parents are inserted (from embedded data, else as id-only placeholders)
      before the dependent record is stored
    - A full pull swaps all three mappings at once; `initialized` only becomes True on a
      complete swap and only clear() resets it
    - clear() bumps the generation; a pull that started before it is discarded, so
      `initialized` stays False until a pull that began after the clear completes
    - Reads never return internal objects, only copies
    - At most one lazy pull runs at a time

Design Decisions:
    - Arena of dataclasses keyed by id with explicit parent ids, resolved at read time
    - One RLock guards the mappings; the loader runs outside it so network I/O never
      blocks readers of an already populated cache
"""

import logging
import threading
from dataclasses import dataclass, field, replace
from typing import Callable

from spoolsync.core.domain_types import EntityKind, FilamentId, SpoolId, VendorId
from spoolsync.core.entities import Filament, Spool, Vendor, build_preset_name
from spoolsync.core.errors import ConsistencyWarning, ErrorContext

logger = logging.getLogger(__name__)


@dataclass
class FilamentUpdate:
    """A filament plus the vendor data embedded in the same server record.

    vendor is None when the record carried no vendor or only its id.
    """
    filament: Filament
    vendor: Vendor | None = None


@dataclass
class SpoolUpdate:
    """A spool plus the filament (and vendor) data embedded in the same server record."""
    spool: Spool
    filament: FilamentUpdate | None = None


@dataclass
class _Graph:
    vendors: dict[int, Vendor] = field(default_factory=dict)
    filaments: dict[int, Filament] = field(default_factory=dict)
    spools: dict[int, Spool] = field(default_factory=dict)


def _missing_parent(kind: EntityKind, parent_id: int, child: str) -> ConsistencyWarning:
    return ConsistencyWarning(
        f"{child} references {kind.value} {parent_id} which is not cached; inserted placeholder",
        "MISSING_PARENT",
        ErrorContext(entity_kind=kind.value, entity_id=parent_id),
    )


def _ensure_vendor(
    graph: _Graph,
    vendor_id: int | None,
    embedded: Vendor | None,
    refresh: bool,
    warnings: list[ConsistencyWarning],
    child: str,
) -> None:
    if vendor_id is None:
        return
    if embedded is not None and embedded.id == vendor_id:
        if refresh or vendor_id not in graph.vendors:
            graph.vendors[vendor_id] = replace(embedded)
        return
    if vendor_id not in graph.vendors:
        graph.vendors[vendor_id] = Vendor(id=vendor_id)
        warnings.append(_missing_parent(EntityKind.VENDOR, vendor_id, child))


def _put_filament(
    graph: _Graph, update: FilamentUpdate, refresh_parent: bool,
    warnings: list[ConsistencyWarning],
) -> None:
    filament = update.filament
    _ensure_vendor(
        graph, filament.vendor_id, update.vendor, refresh_parent, warnings,
        f"Filament {filament.id}",
    )
    graph.filaments[filament.id] = replace(filament)


def _put_spool(
    graph: _Graph, update: SpoolUpdate, refresh_parents: bool,
    warnings: list[ConsistencyWarning],
) -> None:
    spool = update.spool
    embedded = update.filament
    if embedded is not None and embedded.filament.id == spool.filament_id:
        if refresh_parents or spool.filament_id not in graph.filaments:
            _put_filament(graph, embedded, refresh_parents, warnings)
    elif spool.filament_id not in graph.filaments:
        graph.filaments[spool.filament_id] = Filament(id=spool.filament_id)
        warnings.append(
            _missing_parent(EntityKind.FILAMENT, spool.filament_id, f"Spool {spool.id}"),
        )
    stored = replace(spool)
    stored.clear_lane()
    graph.spools[spool.id] = stored


def _log_warnings(warnings: list[ConsistencyWarning]) -> None:
    for warning in warnings:
        logger.warning(
            warning.message,
            extra={
                "error_code": warning.code,
                "entity_kind": warning.context.entity_kind,
                "entity_id": warning.context.entity_id,
            },
        )


class EntityCache:
    """Id-keyed mirror of the remote inventory with lazy cold pull."""

    def __init__(self, loader: Callable[[], object] | None = None):
        self._lock = threading.RLock()
        self._pull_lock = threading.Lock()
        self._graph = _Graph()
        self._initialized = False
        self._generation = 0
        self._loader = loader

    def bind_loader(self, loader: Callable[[], object] | None) -> None:
        """Set the cold-pull callable. It must populate the cache via replace_all()."""
        self._loader = loader

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def generation(self) -> int:
        """Bumped by every clear(); a pull captures it before fetching."""
        return self._generation

    def ensure_loaded(self) -> bool:
        """Run the cold pull if the cache is not initialized. Returns `initialized`."""
        if self._initialized:
            return True
        if self._loader is None:
            return False
        with self._pull_lock:
            if not self._initialized:
                self._loader()
        return self._initialized

    # ─── Bulk operations ─────────────────────────────────────────

    def replace_all(
        self,
        vendors: list[Vendor],
        filaments: list[FilamentUpdate],
        spools: list[SpoolUpdate],
        generation: int | None = None,
    ) -> list[ConsistencyWarning] | None:
        """Swap in a complete graph built from a full pull and mark the cache initialized.

        When `generation` is given and clear() ran since it was captured, the graph is
        stale: nothing is swapped and None is returned.
        """
        graph = _Graph()
        warnings: list[ConsistencyWarning] = []
        for vendor in vendors:
            graph.vendors[vendor.id] = replace(vendor)
        for update in filaments:
            _put_filament(graph, update, False, warnings)
        for update in spools:
            _put_spool(graph, update, False, warnings)
        with self._lock:
            if generation is not None and generation != self._generation:
                logger.warning(
                    f"Discarding pull from generation {generation}; "
                    f"cache was cleared (now {self._generation})",
                )
                return None
            self._graph = graph
            self._initialized = True
        _log_warnings(warnings)
        return warnings

    def clear(self) -> None:
        with self._lock:
            self._graph = _Graph()
            self._initialized = False
            self._generation += 1

    # ─── Targeted updates ────────────────────────────────────────

    def upsert_vendor(self, vendor: Vendor) -> None:
        with self._lock:
            self._graph.vendors[vendor.id] = replace(vendor)

    def upsert_filament(
        self, update: FilamentUpdate, refresh_parent: bool = False,
    ) -> list[ConsistencyWarning]:
        warnings: list[ConsistencyWarning] = []
        with self._lock:
            _put_filament(self._graph, update, refresh_parent, warnings)
        _log_warnings(warnings)
        return warnings

    def upsert_spool(
        self, update: SpoolUpdate, refresh_parents: bool = False,
    ) -> list[ConsistencyWarning]:
        warnings: list[ConsistencyWarning] = []
        with self._lock:
            _put_spool(self._graph, update, refresh_parents, warnings)
        _log_warnings(warnings)
        return warnings

    def remove(self, kind: EntityKind, entity_id: int) -> bool:
        """Drop a record. Vendors/filaments still referenced by a child are kept."""
        with self._lock:
            graph = self._graph
            if kind is EntityKind.SPOOL:
                return graph.spools.pop(entity_id, None) is not None
            if kind is EntityKind.FILAMENT:
                holders = [s.id for s in graph.spools.values() if s.filament_id == entity_id]
                table = graph.filaments
            else:
                holders = [f.id for f in graph.filaments.values() if f.vendor_id == entity_id]
                table = graph.vendors
            if holders:
                logger.warning(
                    f"Not removing {kind.value} {entity_id}: still referenced by {holders}",
                    extra={"entity_kind": kind.value, "entity_id": entity_id},
                )
                return False
            return table.pop(entity_id, None) is not None

    # ─── Lane annotations ────────────────────────────────────────

    def clear_lane_assignments(self) -> None:
        with self._lock:
            for spool in self._graph.spools.values():
                spool.clear_lane()

    def assign_lane(self, spool_id: SpoolId, lane_index: int, lane_label: str) -> bool:
        with self._lock:
            spool = self._graph.spools.get(spool_id)
            if spool is None:
                return False
            spool.loaded_lane_index = lane_index
            spool.loaded_lane_label = lane_label
            return True

    # ─── Reads ───────────────────────────────────────────────────

    def get_vendor(self, vendor_id: VendorId) -> Vendor | None:
        if vendor_id < 1:
            return None
        self.ensure_loaded()
        with self._lock:
            vendor = self._graph.vendors.get(vendor_id)
            return replace(vendor) if vendor else None

    def get_filament(self, filament_id: FilamentId) -> Filament | None:
        if filament_id < 1:
            return None
        self.ensure_loaded()
        with self._lock:
            filament = self._graph.filaments.get(filament_id)
            return replace(filament) if filament else None

    def get_spool(self, spool_id: SpoolId) -> Spool | None:
        if spool_id < 1:
            return None
        self.ensure_loaded()
        with self._lock:
            spool = self._graph.spools.get(spool_id)
            return replace(spool) if spool else None

    def vendors(self) -> list[Vendor]:
        self.ensure_loaded()
        with self._lock:
            return [replace(v) for _, v in sorted(self._graph.vendors.items())]

    def filaments(self) -> list[Filament]:
        self.ensure_loaded()
        with self._lock:
            return [replace(f) for _, f in sorted(self._graph.filaments.items())]

    def spools(self) -> list[Spool]:
        self.ensure_loaded()
        with self._lock:
            return [replace(s) for _, s in sorted(self._graph.spools.items())]

    def missing_spools(self, spool_ids) -> list[int]:
        """Ids from `spool_ids` that are not cached (after a lazy pull)."""
        self.ensure_loaded()
        with self._lock:
            return [i for i in spool_ids if i not in self._graph.spools]

    # ─── Relationships ───────────────────────────────────────────

    def vendor_of_filament(self, filament_id: FilamentId) -> Vendor | None:
        filament = self.get_filament(filament_id)
        if filament is None or filament.vendor_id is None:
            return None
        return self.get_vendor(filament.vendor_id)

    def filament_of_spool(self, spool_id: SpoolId) -> Filament | None:
        spool = self.get_spool(spool_id)
        return self.get_filament(spool.filament_id) if spool else None

    def vendor_of_spool(self, spool_id: SpoolId) -> Vendor | None:
        filament = self.filament_of_spool(spool_id)
        return self.vendor_of_filament(filament.id) if filament else None

    def spool_preset_name(self, spool_id: SpoolId) -> str | None:
        spool = self.get_spool(spool_id)
        if spool is None:
            return None
        filament = self.get_filament(spool.filament_id)
        vendor = self.vendor_of_filament(spool.filament_id)
        return build_preset_name(vendor, filament, spool.id)

    def filament_preset_name(self, filament_id: FilamentId) -> str | None:
        filament = self.get_filament(filament_id)
        if filament is None:
            return None
        return build_preset_name(self.vendor_of_filament(filament_id), filament)

    def most_used_spool(self, filament_id: FilamentId) -> Spool | None:
        """Non-archived spool of this filament with the highest used weight."""
        candidates = [
            s for s in self.spools()
            if s.filament_id == filament_id and not s.archived
        ]
        if not candidates:
            return None
        return max(candidates, key=lambda s: (s.used_weight, -s.id))
