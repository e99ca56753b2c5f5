"""Health & Readiness Probes - liveness and readiness endpoints for container orchestration.

Invariants:
    - GET /health/ always returns 200 if process is up (liveness)
    - GET /health/ready returns 503 if the inventory server does not answer its probe
"""

import logging

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from spoolsync.api.dependencies import get_runtime
from spoolsync.services.inventory_runtime import InventoryRuntime

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/health", tags=["health"])


@router.get("/", status_code=status.HTTP_200_OK)
async def health_check():
    """Basic liveness probe. Returns 200 if the process is up."""
    return {
        "status": "healthy",
        "service": "spoolsync",
        "version": "1.0.0",
    }


@router.get("/ready")
def readiness_check(runtime: InventoryRuntime = Depends(get_runtime)):
    """Readiness probe: the inventory server answers GET info."""
    if not runtime.is_server_valid():
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                "status": "not_ready",
                "reason": "inventory_unavailable",
            },
        )
    return {
        "status": "ready",
        "checks": {
            "inventory": "healthy",
            "push_channel": runtime.sync.connection_state.value,
        },
    }
