"""Domain Types - identity aliases and the enums shared across the codebase.

Invariants:
    - Remote ids are positive integers; ids below 1 are never valid
    - All valid states encoded as Enums, no raw string matching outside parse helpers
"""

from enum import Enum
from typing import NewType

from spoolsync.core.errors import InvalidUsageMetricError


# ─── Identity Types ──────────────────────────────────────────────

VendorId = NewType("VendorId", int)
FilamentId = NewType("FilamentId", int)
SpoolId = NewType("SpoolId", int)


# ─── Enums ───────────────────────────────────────────────────────

class EntityKind(str, Enum):
    """Remote resource names, as used in endpoints and change events."""
    VENDOR = "vendor"
    FILAMENT = "filament"
    SPOOL = "spool"


class ChangeType(str, Enum):
    """Push-channel change event types."""
    ADDED = "added"
    UPDATED = "updated"
    DELETED = "deleted"


class UsageMetric(str, Enum):
    """Consumption metrics accepted by the point write endpoint."""
    LENGTH = "length"
    WEIGHT = "weight"


class ConnectionState(str, Enum):
    """Push-channel lifecycle: DISCONNECTED -> CONNECTING -> CONNECTED -> DISCONNECTED."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


def parse_usage_metric(metric: "str | UsageMetric") -> UsageMetric:
    """Return the UsageMetric for `metric` or raise InvalidUsageMetricError."""
    if isinstance(metric, UsageMetric):
        return metric
    try:
        return UsageMetric(metric)
    except ValueError:
        raise InvalidUsageMetricError(
            str(metric), [m.value for m in UsageMetric],
        ) from None
