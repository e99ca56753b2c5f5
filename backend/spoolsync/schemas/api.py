"""API Schemas - request and response models for the HTTP surface.

Invariants:
    - Responses are built from core dataclasses via from_attributes, never by hand
    - UsageRequest.metric is left as str: the ledger owns metric validation so the
      HTTP surface and library callers get the same InvalidUsageMetricError
"""

from pydantic import BaseModel, ConfigDict, Field


class UsageRequest(BaseModel):
    """A usage batch: spool id -> signed amount, in one metric."""
    deltas: dict[int, float] = Field(default_factory=dict)
    metric: str = Field(min_length=1, max_length=32)


class VendorResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    comment: str


class FilamentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    vendor_id: int | None
    name: str
    material: str
    price: float
    density: float
    diameter: float
    weight: float
    article_number: str
    extruder_temp: int
    bed_temp: int
    color: str
    comment: str
    preset_name: str | None = None


class SpoolResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    filament_id: int
    remaining_weight: float
    used_weight: float
    remaining_length: float
    used_length: float
    archived: bool
    comment: str
    loaded_lane_index: int | None
    loaded_lane_label: str
    preset_name: str | None = None


class LaneResponse(BaseModel):
    spool_id: int
    lane_index: int
    lane_label: str
    lane_name: str


class LanesResponse(BaseModel):
    ok: bool
    lanes: list[LaneResponse]
    collisions: list[str]
    unresolved: list[str]


class OperationResultResponse(BaseModel):
    ok: bool
    message: str
    messages: list[str]
    succeeded_ids: list[int]
    failed_ids: list[int]


class SyncStatusResponse(BaseModel):
    enabled: bool
    initialized: bool
    connection_state: str
    undo_available: bool
    last_usage_metric: str | None
