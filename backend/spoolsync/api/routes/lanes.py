"""Lane Routes - controller lane placement of loaded spools."""

from fastapi import APIRouter, Depends

from spoolsync.api.dependencies import get_runtime
from spoolsync.schemas.api import LaneResponse, LanesResponse
from spoolsync.services.inventory_runtime import InventoryRuntime

router = APIRouter(prefix="/api/v1/lanes", tags=["lanes"])


@router.get("", response_model=LanesResponse)
def list_lanes(runtime: InventoryRuntime = Depends(get_runtime)):
    """Run a resolution pass and annotate cached spools with their lane."""
    resolution, _ = runtime.spools_by_lane()
    lanes = [
        LaneResponse(
            spool_id=spool_id,
            lane_index=info.lane_index,
            lane_label=info.lane_label,
            lane_name=info.lane_name,
        )
        for spool_id, info in sorted(resolution.lanes.items(), key=lambda kv: kv[1].lane_index)
    ]
    return LanesResponse(
        ok=resolution.ok,
        lanes=lanes,
        collisions=[w.message for w in resolution.collisions],
        unresolved=resolution.unresolved,
    )
