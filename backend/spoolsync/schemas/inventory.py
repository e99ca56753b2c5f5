"""Inventory Schemas - pydantic models for records and events sent by the inventory server.

Invariants:
    - Null fields are dropped before validation, so they fall back to defaults
    - Unknown fields are ignored; a record without a positive id fails validation
    - An embedded parent carrying only its id is a reference, never parent data

Design Decisions:
    - Validation at the system boundary; core entities stay plain dataclasses
    - ChangeEvent keeps resource as str: events for resources we do not mirror are
      ignored by the caller, not rejected here
"""

from pydantic import BaseModel, ConfigDict, Field, model_validator

from spoolsync.core.domain_types import ChangeType, EntityKind
from spoolsync.core.entities import Filament, Spool, Vendor
from spoolsync.core.entity_cache import FilamentUpdate, SpoolUpdate


class _Record(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int = Field(gt=0)

    @model_validator(mode="before")
    @classmethod
    def drop_nulls(cls, data):
        if isinstance(data, dict):
            return {k: v for k, v in data.items() if v is not None}
        return data

    @property
    def reference_only(self) -> bool:
        return self.model_fields_set <= {"id"}


class VendorRecord(_Record):
    name: str = ""
    comment: str = ""

    def to_entity(self) -> Vendor:
        return Vendor(id=self.id, name=self.name, comment=self.comment)


class FilamentRecord(_Record):
    name: str = ""
    material: str = ""
    price: float = 0.0
    density: float = 0.0
    diameter: float = 0.0
    weight: float = 0.0
    article_number: str = ""
    settings_extruder_temp: int = 0
    settings_bed_temp: int = 0
    color_hex: str = ""
    comment: str = ""
    vendor: VendorRecord | None = None

    def to_entity(self) -> Filament:
        return Filament(
            id=self.id,
            vendor_id=self.vendor.id if self.vendor else None,
            name=self.name,
            material=self.material,
            price=self.price,
            density=self.density,
            diameter=self.diameter,
            weight=self.weight,
            article_number=self.article_number,
            extruder_temp=self.settings_extruder_temp,
            bed_temp=self.settings_bed_temp,
            color=f"#{self.color_hex}" if self.color_hex else "",
            comment=self.comment,
        )

    def to_update(self) -> FilamentUpdate:
        vendor = None
        if self.vendor is not None and not self.vendor.reference_only:
            vendor = self.vendor.to_entity()
        return FilamentUpdate(filament=self.to_entity(), vendor=vendor)


class SpoolRecord(_Record):
    remaining_weight: float = 0.0
    used_weight: float = 0.0
    remaining_length: float = 0.0
    used_length: float = 0.0
    archived: bool = False
    comment: str = ""
    filament: FilamentRecord

    def to_entity(self) -> Spool:
        return Spool(
            id=self.id,
            filament_id=self.filament.id,
            remaining_weight=self.remaining_weight,
            used_weight=self.used_weight,
            remaining_length=self.remaining_length,
            used_length=self.used_length,
            archived=self.archived,
            comment=self.comment,
        )

    def to_update(self) -> SpoolUpdate:
        filament = None if self.filament.reference_only else self.filament.to_update()
        return SpoolUpdate(spool=self.to_entity(), filament=filament)


class ChangeEvent(BaseModel):
    """One push-channel frame: {"type", "resource", "payload": {"id", ...}}."""
    model_config = ConfigDict(extra="ignore")

    type: ChangeType
    resource: str
    payload: dict = Field(default_factory=dict)
    id: int | None = None

    @property
    def entity_kind(self) -> EntityKind | None:
        try:
            return EntityKind(self.resource)
        except ValueError:
            return None

    @property
    def entity_id(self) -> int | None:
        value = self.payload.get("id", self.id)
        if isinstance(value, bool) or not isinstance(value, int) or value < 1:
            return None
        return value


RECORD_TYPES: dict[EntityKind, type[_Record]] = {
    EntityKind.VENDOR: VendorRecord,
    EntityKind.FILAMENT: FilamentRecord,
    EntityKind.SPOOL: SpoolRecord,
}
