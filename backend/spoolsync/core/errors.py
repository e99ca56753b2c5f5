"""Error Hierarchy - typed, categorized exceptions for every spoolsync failure mode.

Invariants:
    - Every error has a code (str), category (ErrorCategory), severity (ErrorSeverity)
    - NetworkError is always recoverable by retry at the call site, never fatal to the process
    - ProtocolError means a response body could not be used; callers treat it as an empty result
    - ValidationError subclasses are returned to the caller and never retried
    - ConsistencyWarning is logged and attached to results; the core never raises it

Design Decisions:
    - Single hierarchy with SpoolSyncError base: the HTTP surface maps all of it with one handler
    - ErrorContext as dataclass: observability fields without coupling to the logging setup
"""

from dataclasses import dataclass, field
from enum import Enum
from datetime import datetime, timezone


class ErrorSeverity(str, Enum):
    """Error severity for observability and client handling."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ErrorCategory(str, Enum):
    """High-level error categories for routing and handling."""
    VALIDATION = "validation"
    RESOURCE_NOT_FOUND = "resource_not_found"
    NETWORK = "network"
    PROTOCOL = "protocol"
    CONSISTENCY = "consistency"
    TIMEOUT = "timeout"
    INTERNAL = "internal"


@dataclass
class ErrorContext:
    """Where an error happened: which entity and which remote endpoint."""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    entity_kind: str | None = None
    entity_id: int | None = None
    endpoint: str | None = None


class SpoolSyncError(Exception):
    """Base exception for all spoolsync errors."""

    def __init__(
        self,
        message: str,
        code: str,
        category: ErrorCategory,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        context: ErrorContext | None = None,
        http_status: int = 500,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.category = category
        self.severity = severity
        self.context = context or ErrorContext()
        self.http_status = http_status

    @property
    def recoverable(self) -> bool:
        return self.category in (ErrorCategory.NETWORK, ErrorCategory.TIMEOUT)

    def to_response(self) -> dict:
        """Convert to standardized REST error response."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "category": self.category.value,
                "severity": self.severity.value,
                "recoverable": self.recoverable,
                "timestamp": self.context.timestamp.isoformat(),
                "context": {
                    "entity_kind": self.context.entity_kind,
                    "entity_id": self.context.entity_id,
                    "endpoint": self.context.endpoint,
                },
            }
        }


# ─── Remote Errors ──────────────────────────────────────────────

class NetworkError(SpoolSyncError):
    """Transport failure or HTTP error status from a remote service."""
    def __init__(
        self,
        message: str,
        endpoint: str | None = None,
        status_code: int | None = None,
        context: ErrorContext | None = None,
    ):
        ctx = context or ErrorContext()
        ctx.endpoint = ctx.endpoint or endpoint
        super().__init__(
            message, "NETWORK_ERROR", ErrorCategory.NETWORK,
            ErrorSeverity.ERROR, ctx, 503,
        )
        self.status_code = status_code


class RequestTimeoutError(NetworkError):
    """A blocking request exceeded the per-request timeout."""
    def __init__(self, endpoint: str, timeout_seconds: float, context: ErrorContext | None = None):
        super().__init__(
            f"Request to '{endpoint}' timed out after {timeout_seconds:g}s",
            endpoint=endpoint, context=context,
        )
        self.code = "REQUEST_TIMEOUT"
        self.category = ErrorCategory.TIMEOUT
        self.http_status = 504


class SocketConnectError(NetworkError):
    """A blocking push-channel connect failed at one of its stages."""
    def __init__(self, stage: str, message: str, context: ErrorContext | None = None):
        super().__init__(f"Socket {stage} failed: {message}", context=context)
        self.code = "SOCKET_CONNECT_FAILED"
        self.stage = stage


class ProtocolError(SpoolSyncError):
    """Response body was empty, not JSON, or not the expected shape."""
    def __init__(self, message: str, endpoint: str | None = None, context: ErrorContext | None = None):
        ctx = context or ErrorContext()
        ctx.endpoint = ctx.endpoint or endpoint
        super().__init__(
            message, "PROTOCOL_ERROR", ErrorCategory.PROTOCOL,
            ErrorSeverity.ERROR, ctx, 502,
        )


# ─── Validation Errors (400-level) ──────────────────────────────

class ValidationError(SpoolSyncError):
    """Caller supplied something the core refuses to act on."""
    def __init__(self, message: str, code: str = "VALIDATION_ERROR", context: ErrorContext | None = None):
        super().__init__(
            message, code, ErrorCategory.VALIDATION,
            ErrorSeverity.ERROR, context, 400,
        )


class InvalidUsageMetricError(ValidationError):
    """Usage metric is not one of the supported consumption metrics."""
    def __init__(self, metric: str, allowed: list[str], context: ErrorContext | None = None):
        super().__init__(
            f"Invalid usage metric '{metric}'. Expected one of: {', '.join(allowed)}",
            "INVALID_USAGE_METRIC", context,
        )
        self.metric = metric


class UnknownSpoolError(ValidationError):
    """Usage batch names spools the cache does not know."""
    def __init__(self, spool_ids: list[int], context: ErrorContext | None = None):
        ids = ", ".join(str(i) for i in spool_ids)
        super().__init__(f"Unknown spool id(s): {ids}", "UNKNOWN_SPOOL", context)
        self.spool_ids = spool_ids


class NothingToUndoError(ValidationError):
    """undo() called with an empty undo buffer."""
    def __init__(self, context: ErrorContext | None = None):
        super().__init__("There is no usage batch to undo", "NOTHING_TO_UNDO", context)
        self.http_status = 409


class ResourceNotFoundError(SpoolSyncError):
    """Requested entity does not exist in the cache."""
    def __init__(self, resource_type: str, resource_id: int, context: ErrorContext | None = None):
        ctx = context or ErrorContext()
        ctx.entity_kind = resource_type
        ctx.entity_id = resource_id
        super().__init__(
            f"{resource_type} '{resource_id}' not found",
            "RESOURCE_NOT_FOUND", ErrorCategory.RESOURCE_NOT_FOUND,
            ErrorSeverity.ERROR, ctx, 404,
        )


# ─── Warnings (logged, never raised) ────────────────────────────

class ConsistencyWarning(SpoolSyncError):
    """Remote data-quality problem: degraded result produced, operation still succeeds."""
    def __init__(self, message: str, code: str = "CONSISTENCY_WARNING", context: ErrorContext | None = None):
        super().__init__(
            message, code, ErrorCategory.CONSISTENCY,
            ErrorSeverity.WARNING, context, 200,
        )
