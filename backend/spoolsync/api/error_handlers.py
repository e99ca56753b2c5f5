"""Error Handlers - map exceptions escaping the routes onto the JSON error envelope.

Invariants:
    - Every error body has the shape {"error": {"code", "message", "category", "severity", ...}}
    - SpoolSyncError keeps its own http_status (400 validation, 404 lookup, 409 undo,
      502/503/504 upstream failures)
    - Malformed request bodies -> 400 VALIDATION_ERROR listing the offending fields
    - Anything else -> 500 INTERNAL_ERROR; the exception text is logged, never returned

Design Decisions:
    - Client mistakes (4xx) log at WARNING, upstream and internal failures at ERROR
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from spoolsync.core.errors import ErrorCategory, ErrorSeverity, SpoolSyncError

logger = logging.getLogger(__name__)


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(SpoolSyncError, _handle_spoolsync_error)
    app.add_exception_handler(RequestValidationError, _handle_request_validation)
    app.add_exception_handler(Exception, _handle_unexpected)


def _envelope(
    code: str, message: str, category: str, severity: ErrorSeverity, **fields,
) -> dict:
    return {
        "error": {
            "code": code,
            "message": message,
            "category": category,
            "severity": severity.value,
            **fields,
        },
    }


async def _handle_spoolsync_error(request: Request, exc: SpoolSyncError) -> JSONResponse:
    level = logging.WARNING if exc.http_status < 500 else logging.ERROR
    logger.log(
        level,
        f"{exc.code} on {request.method} {request.url.path}: {exc.message}",
        extra={"error_code": exc.code, "path": request.url.path},
    )
    return JSONResponse(status_code=exc.http_status, content=exc.to_response())


async def _handle_request_validation(
    request: Request, exc: RequestValidationError,
) -> JSONResponse:
    fields = [
        {
            "field": ".".join(str(part) for part in err["loc"]),
            "message": err["msg"],
            "type": err["type"],
        }
        for err in exc.errors()
    ]
    logger.warning(
        f"Rejected request body on {request.url.path}: {[f['field'] for f in fields]}",
        extra={"error_code": "VALIDATION_ERROR", "path": request.url.path},
    )
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=_envelope(
            "VALIDATION_ERROR", "Invalid request data",
            ErrorCategory.VALIDATION.value, ErrorSeverity.ERROR, details=fields,
        ),
    )


async def _handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        f"Unhandled {type(exc).__name__} on {request.url.path}: {exc}",
        exc_info=exc,
        extra={"path": request.url.path},
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=_envelope(
            "INTERNAL_ERROR", "An unexpected error occurred",
            ErrorCategory.INTERNAL.value, ErrorSeverity.CRITICAL,
        ),
    )
