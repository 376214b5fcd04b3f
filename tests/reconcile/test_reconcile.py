"""Tests for set reconciliation of harvested points against the catalog."""

import pytest

from bac_inventory.errors import ReconciliationInvariantError
from bac_inventory.reconcile.engine import (
    FieldChange,
    PointAddition,
    ReconciliationResult,
    diff_point,
    reconcile,
)
from bac_inventory.reconcile.statements import DESTRUCTIVE_WARNING, render_script
from bac_inventory.types.points import (
    CatalogIdentifiers,
    CatalogRow,
    HarvestedPoint,
    PointType,
    canonical_synthetic_id,
    parse_synthetic_id,
)
from bac_inventory.types.enums import ObjectType


def row(sid: str, name: str = "", device_key: str = "D1", **kwargs) -> CatalogRow:
    point_type = PointType[sid.split("-")[0]]
    kwargs.setdefault("decimal", point_type.is_analog)
    if point_type.is_multistate:
        kwargs.setdefault("state_texts", ("",) * 10)
    return CatalogRow(device_key, sid, point_type, name=name, **kwargs)


def point(sid: str, name: str = "", **kwargs) -> HarvestedPoint:
    prefix, instance = sid.split("-")
    return HarvestedPoint(PointType[prefix], int(instance), name=name, **kwargs)


class TestScenarios:
    def test_rename_and_new_point(self):
        result = reconcile(
            [row("AI-1", "Old Temp")],
            [point("AI-1", "New Temp"), point("BV-3", "Fan")],
            device_key="D1",
        )
        assert result.changes == [FieldChange("AI-1", "name", "Old Temp", "New Temp")]
        assert [a.synthetic_id for a in result.additions] == ["BV-3"]
        assert result.removals == []
        assert result.unchanged == []

    def test_removed_point_produces_one_guarded_delete(self):
        result = reconcile(
            [row("AI-1", "Temp"), row("AI-2", "Humidity")],
            [point("AI-1", "Temp")],
            device_key="D1",
        )
        assert result.additions == []
        assert result.changes == []
        assert [r.synthetic_id for r in result.removals] == ["AI-2"]
        assert result.unchanged == ["AI-1"]

        script = render_script(result)
        assert script.count("DELETE FROM") == 1
        lines = script.splitlines()
        delete_at = next(i for i, line in enumerate(lines) if line.startswith("DELETE FROM"))
        assert lines[delete_at - 1].startswith(DESTRUCTIVE_WARNING)
        assert "AI-2" in lines[delete_at - 1]


class TestPartition:
    def test_every_id_in_exactly_one_bucket(self):
        catalog = [row("AI-1", "A"), row("AI-2", "B"), row("BO-1", "C"), row("MSV-1", "D")]
        harvested = [
            point("AI-1", "A"),
            point("AI-2", "B2"),
            point("MSV-1", "D", state_texts=("On",)),
            point("AV-7", "E"),
        ]
        result = reconcile(catalog, harvested, device_key="D1")
        assert result.unchanged == ["AI-1", "MSV-1"]
        assert result.changed_ids == ["AI-2"]
        assert result.all_ids == {"AI-1", "AI-2", "BO-1", "MSV-1", "AV-7"}
        assert [r.synthetic_id for r in result.removals] == ["BO-1"]

    def test_empty_catalog_all_additions(self):
        result = reconcile([], [point("AI-1"), point("BI-2")], device_key="D1")
        assert [a.synthetic_id for a in result.additions] == ["AI-1", "BI-2"]
        assert result.has_mutations

    def test_empty_harvest_all_removals(self):
        result = reconcile([row("AI-1"), row("AI-2")], [], device_key="D1")
        assert len(result.removals) == 2

    def test_identical_sides_no_mutations(self):
        result = reconcile([row("BV-1", "Fan")], [point("BV-1", "Fan")], device_key="D1")
        assert not result.has_mutations
        assert result.unchanged == ["BV-1"]

    def test_overlapping_buckets_rejected(self):
        p = point("AI-1", "x")
        with pytest.raises(ReconciliationInvariantError):
            ReconciliationResult(
                "D1",
                additions=[PointAddition(p, CatalogIdentifiers())],
                unchanged=["AI-1"],
            )

    def test_duplicate_in_bucket_rejected(self):
        with pytest.raises(ReconciliationInvariantError):
            ReconciliationResult("D1", unchanged=["AI-1", "AI-1"])

    def test_several_changes_of_one_point_are_one_classification(self):
        result = ReconciliationResult(
            "D1",
            changes=[
                FieldChange("AI-1", "name", "a", "b"),
                FieldChange("AI-1", "unit", "", "°C"),
            ],
        )
        assert result.changed_ids == ["AI-1"]


class TestTrackedColumns:
    def test_description_unit_and_name(self):
        changes = diff_point(
            row("AI-1", "Temp", description="old", unit="%"),
            point("AI-1", "Temp", description="new", unit="°C"),
        )
        assert [(c.column, c.old_value, c.new_value) for c in changes] == [
            ("description", "old", "new"),
            ("unit", "%", "°C"),
        ]

    def test_decimal_flag(self):
        changes = diff_point(row("AI-1", "T", decimal=False), point("AI-1", "T"))
        assert changes == [FieldChange("AI-1", "decimal", False, True)]

    def test_type_code(self):
        stale = CatalogRow("D1", "AI-1", PointType.AV, name="T", decimal=True)
        changes = diff_point(stale, point("AI-1", "T"))
        assert changes == [FieldChange("AI-1", "type_code", 2, 0)]

    def test_state_texts_not_tracked(self):
        stale = row("MSI-1", "Mode", state_texts=("A",) + ("",) * 9)
        assert diff_point(stale, point("MSI-1", "Mode", state_texts=("B",))) == []


class TestIdentifiers:
    def test_additions_inherit_first_row(self):
        catalog = [
            row("AI-1", "A", server_id=3, system_id=4, order_id=5),
            row("AI-2", "B", server_id=9, system_id=9, order_id=9),
        ]
        result = reconcile(catalog, [point("AI-1", "A"), point("AI-3", "C")], device_key="D1")
        assert result.additions[0].identifiers == CatalogIdentifiers(3, 4, 5)

    def test_additions_use_defaults_without_catalog(self):
        result = reconcile(
            [], [point("AI-1")], device_key="D1", defaults=CatalogIdentifiers(1, 2, 3)
        )
        assert result.additions[0].identifiers == CatalogIdentifiers(1, 2, 3)

    def test_row_to_addition_round_trip(self):
        p = point("MSO-2", "Stage", description="d", state_texts=("Lo", "Hi"))
        new_row = CatalogRow.from_point("D1", p, CatalogIdentifiers(1, 2, 3))
        assert diff_point(new_row, p) == []
        assert new_row.identifiers == CatalogIdentifiers(1, 2, 3)


class TestInputHygiene:
    def test_rows_of_other_devices_ignored(self, caplog):
        result = reconcile(
            [row("AI-1", "A"), row("AI-9", "Z", device_key="D2")],
            [point("AI-1", "A")],
            device_key="D1",
        )
        assert result.removals == []
        assert "D2" in caplog.text

    def test_duplicate_harvested_points_first_wins(self):
        result = reconcile([], [point("AI-1", "first"), point("AI-1", "second")], device_key="D1")
        assert [a.point.name for a in result.additions] == ["first"]

    def test_duplicate_catalog_rows_first_wins(self):
        result = reconcile(
            [row("AI-1", "first"), row("AI-1", "second")], [point("AI-1", "first")], device_key="D1"
        )
        assert result.unchanged == ["AI-1"]
        assert result.removals == []


class TestPoints:
    def test_synthetic_id_maps_back(self):
        oid = parse_synthetic_id("MSV-3")
        assert oid.object_type == ObjectType.MULTI_STATE_VALUE
        assert oid.instance_number == 3

    @pytest.mark.parametrize(
        ("text", "canonical"),
        [("AI-1", "AI-1"), ("ai-1", "AI-1"), (" msv-03 ", "MSV-3"), ("Bo - 2", "BO-2")],
    )
    def test_canonical_synthetic_id(self, text, canonical):
        assert canonical_synthetic_id(text) == canonical

    @pytest.mark.parametrize("sid", ["", "AI", "XX-1", "AI-", "AI-x", "AI-4194304"])
    def test_malformed_synthetic_id(self, sid):
        with pytest.raises(ValueError):
            parse_synthetic_id(sid)

    def test_multistate_padded_to_ten(self):
        assert point("MSI-1", state_texts=("A",)).state_texts == ("A",) + ("",) * 9

    def test_state_texts_only_for_multistate(self):
        with pytest.raises(ValueError):
            point("AI-1", state_texts=("A",))

    def test_result_to_dict(self):
        result = reconcile([row("AI-1", "Old")], [point("AI-1", "New")], device_key="D1")
        data = result.to_dict()
        assert data["changes"] == [
            {"synthetic_id": "AI-1", "column": "name", "old_value": "Old", "new_value": "New"}
        ]
        assert data["unchanged"] == 0
