"""Entities - preset names and statistics snapshots."""

from spoolsync.core.entities import Filament, Spool, SpoolStatistics, Vendor, build_preset_name


def test_preset_name_strips_illegal_characters():
    name = build_preset_name(
        Vendor(1, "Foo/Bar"), Filament(2, name='PLA: "Pro"', material="PLA"), 3,
    )
    assert name == "FooBar PLA Pro PLA (Spool #3)"


def test_preset_name_without_vendor_or_spool():
    assert build_preset_name(None, Filament(2, name="Basic", material="PETG")) == "Basic PETG"


def test_statistics_snapshot():
    spool = Spool(5, 2, remaining_weight=750.0, used_weight=250.0, archived=True)
    assert spool.statistics() == SpoolStatistics(
        remaining_weight=750.0, used_weight=250.0,
        remaining_length=0.0, used_length=0.0, archived=True,
    )


def test_lane_fields_are_transient():
    spool = Spool(5, 2, loaded_lane_index=1, loaded_lane_label="Lane 1")
    assert spool.is_loaded
    spool.clear_lane()
    assert not spool.is_loaded
    assert spool.loaded_lane_label == ""
