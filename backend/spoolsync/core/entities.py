"""Entities - the mirrored vendor/filament/spool records.

Invariants:
    - Relationships are explicit parent ids (vendor_id, filament_id), resolved through
      EntityCache at read time; entities never hold references to each other
    - loaded_lane_index / loaded_lane_label are transient: only LaneResolver sets them,
      and any refresh of the spool from the server resets them
"""

import re
from dataclasses import dataclass


# Characters the preset store refuses in preset names
_ILLEGAL_NAME_CHARS = re.compile(r'[<>\[\]:/\\|?*"]')


@dataclass
class Vendor:
    id: int
    name: str = ""
    comment: str = ""


@dataclass
class Filament:
    """A type of filament. Several spools can share one filament."""
    id: int
    vendor_id: int | None = None
    name: str = ""
    material: str = ""
    price: float = 0.0
    density: float = 0.0
    diameter: float = 0.0
    weight: float = 0.0
    article_number: str = ""
    extruder_temp: int = 0
    bed_temp: int = 0
    color: str = ""
    comment: str = ""


@dataclass(frozen=True)
class SpoolStatistics:
    """Consumption counters handed to the preset store."""
    remaining_weight: float
    used_weight: float
    remaining_length: float
    used_length: float
    archived: bool


@dataclass
class Spool:
    """A physical spool and its consumption counters."""
    id: int
    filament_id: int
    remaining_weight: float = 0.0
    used_weight: float = 0.0
    remaining_length: float = 0.0
    used_length: float = 0.0
    archived: bool = False
    comment: str = ""
    loaded_lane_index: int | None = None
    loaded_lane_label: str = ""

    def statistics(self) -> SpoolStatistics:
        return SpoolStatistics(
            remaining_weight=self.remaining_weight,
            used_weight=self.used_weight,
            remaining_length=self.remaining_length,
            used_length=self.used_length,
            archived=self.archived,
        )

    def clear_lane(self) -> None:
        self.loaded_lane_index = None
        self.loaded_lane_label = ""

    @property
    def is_loaded(self) -> bool:
        return self.loaded_lane_index is not None


def build_preset_name(
    vendor: Vendor | None, filament: Filament | None, spool_id: int | None = None,
) -> str:
    """Preset name: '<vendor> <filament> <material>' plus ' (Spool #<id>)' for spools."""
    parts = []
    if vendor and vendor.name:
        parts.append(vendor.name)
    if filament:
        if filament.name:
            parts.append(filament.name)
        if filament.material:
            parts.append(filament.material)
    name = " ".join(parts)
    if spool_id and spool_id > 0:
        name += f" (Spool #{spool_id})"
    return _ILLEGAL_NAME_CHARS.sub("", name).strip()
