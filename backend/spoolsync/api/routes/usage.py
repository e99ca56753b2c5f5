"""Usage Routes - consumption batches and their undo.

Invariants:
    - Invalid metric / unknown spool -> 400, nothing undo -> 409 (raised by the ledger)
    - A batch with failed writes -> 502 with per-spool failed_ids in the body
"""

from fastapi import APIRouter, Depends, Response, status

from spoolsync.api.dependencies import get_runtime
from spoolsync.core.operation_result import OperationResult
from spoolsync.schemas.api import OperationResultResponse, UsageRequest
from spoolsync.services.inventory_runtime import InventoryRuntime

router = APIRouter(prefix="/api/v1/usage", tags=["usage"])


def _to_response(result: OperationResult, response: Response) -> OperationResultResponse:
    if result.has_failed:
        response.status_code = status.HTTP_502_BAD_GATEWAY
    return OperationResultResponse(
        ok=not result.has_failed,
        message=result.build_single_line_message(),
        messages=result.messages,
        succeeded_ids=result.succeeded_ids,
        failed_ids=result.failed_ids,
    )


@router.post("", response_model=OperationResultResponse)
def use_batch(
    body: UsageRequest,
    response: Response,
    runtime: InventoryRuntime = Depends(get_runtime),
):
    return _to_response(runtime.use_batch(body.deltas, body.metric), response)


@router.post("/undo", response_model=OperationResultResponse)
def undo(response: Response, runtime: InventoryRuntime = Depends(get_runtime)):
    return _to_response(runtime.undo(), response)
