"""Lane Resolver - which controller lane holds which spool.

Invariants:
    - lane_cache is rebuilt wholesale on every pass; a failed pass leaves it empty
    - Every pass clears the spool lane fields in the EntityCache and re-annotates them
      from the new lane cache, so lanes_by_spool() and the cached spools always agree
    - Never raises on controller failures or malformed status data
"""

import logging
import threading

from spoolsync.core.collaborator_protocols import StatusSource
from spoolsync.core.entities import Spool
from spoolsync.core.entity_cache import EntityCache
from spoolsync.core.lane_heuristics import (
    LANES_OBJECT,
    LaneInfo,
    LaneResolution,
    build_lane_query,
    resolve_lanes,
)
from spoolsync.core.status_tree import collect_names, find_path

logger = logging.getLogger(__name__)


class LaneResolver:
    def __init__(self, cache: EntityCache, controller: StatusSource):
        self.cache = cache
        self.controller = controller
        self._lock = threading.Lock()
        self._lane_cache: dict[int, LaneInfo] = {}
        self._resolved = False

    def lane_names(self) -> list[str] | None:
        """Candidate lane names, or None when the controller did not answer."""
        status = self.controller.query({LANES_OBJECT: ["lanes"]})
        if status is None:
            return None
        return collect_names(find_path(status, LANES_OBJECT, "lanes"))

    def resolve(self) -> LaneResolution:
        """Run one resolution pass, rebuild the lane cache and re-annotate cached spools."""
        cache_ready = self.cache.ensure_loaded()
        names = self.lane_names()
        if names is None:
            resolution = LaneResolution(ok=False)
        elif not names:
            resolution = LaneResolution()
        else:
            status = self.controller.query(build_lane_query(names))
            resolution = resolve_lanes(names, status)
            resolution.ok = status is not None

        for warning in resolution.collisions:
            logger.warning(
                warning.message,
                extra={"error_code": warning.code, "spool_id": warning.context.entity_id},
            )
        for lane_name in resolution.unresolved:
            logger.debug(f"No spool id found for lane '{lane_name}'", extra={"lane": lane_name})

        with self._lock:
            self._lane_cache = dict(resolution.lanes)
            self._resolved = True
            self._annotate(resolution.lanes, cache_ready)
        logger.info(f"Resolved {len(resolution.lanes)} loaded lane(s)")
        return resolution

    def _annotate(self, lanes: dict[int, LaneInfo], cache_ready: bool) -> None:
        self.cache.clear_lane_assignments()
        if not cache_ready:
            return

        by_index: dict[int, int] = {}
        for spool_id, info in lanes.items():
            if not self.cache.assign_lane(spool_id, info.lane_index, info.lane_label):
                logger.warning(
                    f"Lane '{info.lane_name}' holds spool {spool_id}, which is not in the inventory",
                    extra={"spool_id": spool_id, "lane": info.lane_name},
                )
                continue
            if info.lane_index in by_index:
                logger.warning(
                    f"Spools {by_index[info.lane_index]} and {spool_id} share lane {info.lane_index}",
                    extra={"lane": info.lane_name},
                )
            by_index[info.lane_index] = spool_id

    def reset(self) -> None:
        """Forget the last pass; the next lanes_by_spool() queries the controller again."""
        with self._lock:
            self._lane_cache = {}
            self._resolved = False
            self.cache.clear_lane_assignments()

    def lanes_by_spool(self, refresh: bool = False) -> dict[int, LaneInfo]:
        """spool id -> lane from the last pass; resolves first if there was none."""
        if refresh or not self._resolved:
            self.resolve()
        with self._lock:
            return dict(self._lane_cache)

    def spools_by_lane(self) -> tuple[LaneResolution, list[Spool]]:
        """Resolve, then return the cached spools that sit in a lane, ordered by lane index."""
        resolution = self.resolve()
        loaded = [s for s in self.cache.spools() if s.is_loaded]
        loaded.sort(key=lambda s: s.loaded_lane_index)
        return resolution, loaded
