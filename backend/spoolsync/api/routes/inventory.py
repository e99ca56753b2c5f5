"""Inventory Routes - read-only views of the mirrored inventory plus cache control.

Invariants:
    - Reads go through the cache (lazy pull); a failed pull yields empty lists, not errors
    - Unknown ids -> 404 via ResourceNotFoundError
"""

from fastapi import APIRouter, Depends, status

from spoolsync.api.dependencies import get_runtime
from spoolsync.core.errors import ResourceNotFoundError
from spoolsync.schemas.api import (
    FilamentResponse,
    SpoolResponse,
    SyncStatusResponse,
    VendorResponse,
)
from spoolsync.services.inventory_runtime import InventoryRuntime

router = APIRouter(prefix="/api/v1", tags=["inventory"])


@router.get("/vendors", response_model=list[VendorResponse])
def list_vendors(runtime: InventoryRuntime = Depends(get_runtime)):
    return [VendorResponse.model_validate(v) for v in runtime.list_vendors()]


@router.get("/filaments", response_model=list[FilamentResponse])
def list_filaments(runtime: InventoryRuntime = Depends(get_runtime)):
    return [
        FilamentResponse.model_validate(f).model_copy(
            update={"preset_name": runtime.filament_preset_name(f.id)},
        )
        for f in runtime.list_filaments()
    ]


@router.get("/filaments/{filament_id}", response_model=FilamentResponse)
def get_filament(filament_id: int, runtime: InventoryRuntime = Depends(get_runtime)):
    filament = runtime.get_filament(filament_id)
    if filament is None:
        raise ResourceNotFoundError("filament", filament_id)
    return FilamentResponse.model_validate(filament).model_copy(
        update={"preset_name": runtime.filament_preset_name(filament_id)},
    )


@router.get("/spools", response_model=list[SpoolResponse])
def list_spools(runtime: InventoryRuntime = Depends(get_runtime)):
    return [
        SpoolResponse.model_validate(s).model_copy(
            update={"preset_name": runtime.spool_preset_name(s.id)},
        )
        for s in runtime.list_spools()
    ]


@router.get("/spools/{spool_id}", response_model=SpoolResponse)
def get_spool(spool_id: int, runtime: InventoryRuntime = Depends(get_runtime)):
    spool = runtime.get_spool(spool_id)
    if spool is None:
        raise ResourceNotFoundError("spool", spool_id)
    return SpoolResponse.model_validate(spool).model_copy(
        update={"preset_name": runtime.spool_preset_name(spool_id)},
    )


@router.post("/cache/invalidate", status_code=status.HTTP_202_ACCEPTED)
def invalidate_cache(runtime: InventoryRuntime = Depends(get_runtime)):
    """Drop the cache; the next read pulls everything again."""
    runtime.invalidate()
    return {"status": "invalidated"}


@router.get("/sync/status", response_model=SyncStatusResponse)
def sync_status(runtime: InventoryRuntime = Depends(get_runtime)):
    return SyncStatusResponse(**runtime.status())
