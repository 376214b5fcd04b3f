"""Tests for the per-device object-list walk."""

import pytest

from bac_inventory.cancel import CancelToken
from bac_inventory.errors import ScanCancelledError
from bac_inventory.harvest.enumerator import HarvestStatus, PointEnumerator
from bac_inventory.harvest.sanitize import sanitize_text
from bac_inventory.harvest.units import unit_symbol
from bac_inventory.services.errors import BACnetRejectError, BACnetTimeoutError
from bac_inventory.types.enums import ObjectType, PropertyIdentifier, RejectReason
from bac_inventory.types.points import PointType
from bac_inventory.types.primitives import ObjectIdentifier
from bac_inventory.types.values import NumberValue, TextValue

from tests.helpers import FakePoint, ScriptedReader, device_properties

IP = "10.0.0.21"
DEVICE = ObjectIdentifier(ObjectType.DEVICE, 2001)


def harvest_from(points):
    reader = ScriptedReader({IP: device_properties(2001, points)})
    return reader, PointEnumerator(reader)


class TestSanitize:
    def test_control_characters_and_whitespace(self):
        assert sanitize_text("  Zone\x00 Temp\x1f\n ") == "Zone Temp"

    def test_replacement_character_clears_field(self):
        assert sanitize_text("Zone \ufffd Temp") == ""

    def test_none(self):
        assert sanitize_text(None) == ""

    def test_non_ascii_kept(self):
        assert sanitize_text("Température") == "Température"


class TestUnits:
    @pytest.mark.parametrize(
        ("code", "symbol"),
        [(62, "°C"), (98, "%"), (19, "kWh"), (135, "m³/h"), (206, "mmAq"), (53, "Pa")],
    )
    def test_mapped(self, code, symbol):
        assert unit_symbol(code) == symbol

    def test_unmapped_shows_code(self):
        assert unit_symbol(64) == "64"

    def test_absent(self):
        assert unit_symbol(None) == ""


class TestHarvest:
    async def test_all_point_kinds(self):
        _, enumerator = harvest_from(
            [
                FakePoint(ObjectType.ANALOG_INPUT, 1, "SAT", "Supply air temp", units=62),
                FakePoint(ObjectType.BINARY_VALUE, 3, "Fan Enable"),
                FakePoint(
                    ObjectType.MULTI_STATE_VALUE, 4, "Mode", state_texts=("Off", "Heat", "Cool")
                ),
            ]
        )
        report = await enumerator.harvest_device(IP, 2001)
        assert report.status is HarvestStatus.OK
        assert report.object_count == 3
        ai, bv, msv = report.points
        assert (ai.synthetic_id, ai.name, ai.description, ai.unit, ai.decimal) == (
            "AI-1",
            "SAT",
            "Supply air temp",
            "°C",
            True,
        )
        assert (bv.synthetic_id, bv.unit, bv.decimal, bv.state_texts) == ("BV-3", "", False, ())
        assert msv.synthetic_id == "MSV-4"
        assert msv.state_texts == ("Off", "Heat", "Cool") + ("",) * 7
        assert report.object_index["MSV-4"] == ObjectIdentifier(ObjectType.MULTI_STATE_VALUE, 4)

    async def test_unsupported_types_skipped(self):
        _, enumerator = harvest_from(
            [
                FakePoint(ObjectType.DEVICE, 2001, "Controller"),
                FakePoint(ObjectType.SCHEDULE, 1, "Occupancy"),
                FakePoint(ObjectType.ANALOG_VALUE, 9, "Setpoint"),
            ]
        )
        report = await enumerator.harvest_device(IP, 2001)
        assert [p.synthetic_id for p in report.points] == ["AV-9"]
        assert report.skipped == 2
        assert report.failed == 0

    async def test_missing_optional_properties_are_blank(self):
        _, enumerator = harvest_from([FakePoint(ObjectType.ANALOG_OUTPUT, 2, "Valve")])
        [point] = await enumerator.harvest(IP, 2001)
        assert point.description == ""
        assert point.unit == ""

    async def test_unmapped_unit_code(self):
        _, enumerator = harvest_from([FakePoint(ObjectType.ANALOG_INPUT, 1, "Flow", units=87)])
        [point] = await enumerator.harvest(IP, 2001)
        assert point.unit == "87"

    async def test_units_not_read_for_binary(self):
        reader, enumerator = harvest_from([FakePoint(ObjectType.BINARY_INPUT, 1, "Status")])
        await enumerator.harvest(IP, 2001)
        assert all(key[1] != PropertyIdentifier.UNITS for _, key in reader.calls)

    async def test_text_sanitized(self):
        _, enumerator = harvest_from(
            [FakePoint(ObjectType.ANALOG_INPUT, 1, " OAT\x00 ", "bad \ufffd text")]
        )
        [point] = await enumerator.harvest(IP, 2001)
        assert point.name == "OAT"
        assert point.description == ""

    async def test_name_failure_drops_point_and_continues(self):
        _, enumerator = harvest_from(
            [
                FakePoint(ObjectType.ANALOG_INPUT, 1),
                FakePoint(ObjectType.ANALOG_INPUT, 2, "Second"),
            ]
        )
        report = await enumerator.harvest_device(IP, 2001)
        assert [p.synthetic_id for p in report.points] == ["AI-2"]
        assert report.failed == 1

    async def test_reject_on_entry_drops_object(self):
        points = [
            FakePoint(ObjectType.ANALOG_INPUT, 1, "First"),
            FakePoint(ObjectType.ANALOG_INPUT, 2, "Second"),
        ]
        reader, enumerator = harvest_from(points)
        reader.devices[IP][(DEVICE, PropertyIdentifier.OBJECT_LIST, 1)] = (
            BACnetRejectError(RejectReason.BUFFER_OVERFLOW)
        )
        report = await enumerator.harvest_device(IP, 2001)
        assert [p.synthetic_id for p in report.points] == ["AI-2"]
        assert report.failed == 1

    async def test_timeout_on_point_drops_point(self):
        reader, enumerator = harvest_from(
            [
                FakePoint(ObjectType.BINARY_OUTPUT, 1, "Pump"),
                FakePoint(ObjectType.BINARY_OUTPUT, 2, "Fan"),
            ]
        )
        oid = ObjectIdentifier(ObjectType.BINARY_OUTPUT, 1)
        reader.devices[IP][(oid, PropertyIdentifier.OBJECT_NAME, None)] = BACnetTimeoutError()
        [point] = await enumerator.harvest(IP, 2001)
        assert point.synthetic_id == "BO-2"

    async def test_state_text_read_once_as_array(self):
        reader, enumerator = harvest_from(
            [FakePoint(ObjectType.MULTI_STATE_INPUT, 1, "Status", state_texts=("A", "B"))]
        )
        await enumerator.harvest(IP, 2001)
        state_reads = [k for _, k in reader.calls if k[1] == PropertyIdentifier.STATE_TEXT]
        assert state_reads == [
            (ObjectIdentifier(ObjectType.MULTI_STATE_INPUT, 1), PropertyIdentifier.STATE_TEXT, None)
        ]

    async def test_more_than_ten_state_texts_truncated(self):
        texts = tuple(f"S{i}" for i in range(14))
        _, enumerator = harvest_from(
            [FakePoint(ObjectType.MULTI_STATE_OUTPUT, 1, "Stage", state_texts=texts)]
        )
        [point] = await enumerator.harvest(IP, 2001)
        assert point.point_type is PointType.MSO
        assert point.state_texts == texts[:10]


class TestDirectory:
    async def test_count_read_failure(self):
        reader = ScriptedReader({})
        report = await PointEnumerator(reader).harvest_device(IP, 2001)
        assert report.status is HarvestStatus.DIRECTORY_FAILED
        assert report.points == []
        assert len(reader.calls) == 1

    async def test_count_read_failure_harvest_is_empty(self):
        reader = ScriptedReader({IP: {(DEVICE, PropertyIdentifier.OBJECT_LIST, 0): BACnetTimeoutError()}})
        assert await PointEnumerator(reader).harvest(IP, 2001) == []

    async def test_malformed_count(self):
        reader = ScriptedReader(
            {IP: {(DEVICE, PropertyIdentifier.OBJECT_LIST, 0): [TextValue("twelve")]}}
        )
        report = await PointEnumerator(reader).harvest_device(IP, 2001)
        assert report.status is HarvestStatus.DIRECTORY_FAILED

    async def test_empty_device(self):
        reader = ScriptedReader({IP: {(DEVICE, PropertyIdentifier.OBJECT_LIST, 0): [NumberValue(0)]}})
        report = await PointEnumerator(reader).harvest_device(IP, 2001)
        assert report.status is HarvestStatus.EMPTY
        assert report.points == []

    async def test_entries_read_by_index_in_order(self):
        reader, enumerator = harvest_from(
            [FakePoint(ObjectType.BINARY_INPUT, i, f"BI {i}") for i in range(1, 4)]
        )
        await enumerator.harvest(IP, 2001)
        indexes = [k[2] for _, k in reader.calls if k[1] == PropertyIdentifier.OBJECT_LIST]
        assert indexes == [0, 1, 2, 3]

    async def test_cancel_stops_walk(self):
        token = CancelToken()
        token.cancel()
        _, enumerator = harvest_from([FakePoint(ObjectType.ANALOG_INPUT, 1, "A")])
        with pytest.raises(ScanCancelledError):
            await enumerator.harvest_device(IP, 2001, token)

    async def test_report_to_dict(self):
        _, enumerator = harvest_from([FakePoint(ObjectType.ANALOG_VALUE, 5, "SP", units=98)])
        data = (await enumerator.harvest_device(IP, 2001)).to_dict()
        assert data["status"] == "ok"
        assert data["harvested"] == 1
        assert data["points"][0]["unit"] == "%"
