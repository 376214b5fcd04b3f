"""Tests for catalog mutation statements and the daily merge."""

from datetime import date, datetime

import pytest

from bac_inventory.reconcile.engine import reconcile
from bac_inventory.reconcile.merge import (
    artifact_day,
    artifact_name,
    daily_name,
    is_daily_summary,
    merge_daily,
)
from bac_inventory.reconcile.statements import (
    CATALOG_TABLE,
    MutationKind,
    build_mutations,
    render_script,
    sql_literal,
)
from bac_inventory.types.points import CatalogIdentifiers, CatalogRow, HarvestedPoint, PointType

STAMP = datetime(2026, 3, 14, 9, 26, 53)


def mixed_result():
    catalog = [
        CatalogRow("D1", "AI-1", PointType.AI, name="Old Temp", decimal=True, server_id=7),
        CatalogRow("D1", "BO-2", PointType.BO, name="Pump"),
    ]
    harvested = [
        HarvestedPoint(PointType.AI, 1, name="New Temp"),
        HarvestedPoint(PointType.MSV, 4, name="Mode", state_texts=("Off", "On")),
    ]
    return reconcile(catalog, harvested, device_key="D1")


class TestSqlLiteral:
    @pytest.mark.parametrize(
        ("value", "literal"),
        [
            (None, "NULL"),
            (True, "1"),
            (False, "0"),
            (42, "42"),
            ("Temp", "'Temp'"),
            ("O'Brien's", "'O''Brien''s'"),
            ("", "''"),
        ],
    )
    def test_literals(self, value, literal):
        assert sql_literal(value) == literal


class TestMutations:
    def test_order_inserts_updates_deletes(self):
        kinds = [m.kind for m in build_mutations(mixed_result())]
        assert kinds == [MutationKind.INSERT, MutationKind.UPDATE, MutationKind.DELETE]

    def test_insert_carries_all_columns(self):
        insert = build_mutations(mixed_result())[0]
        columns = dict(insert.columns)
        assert columns["DEVICE_SEQ"] == "D1"
        assert columns["SYSTEM_PT_ID"] == "MSV-4"
        assert columns["OBJ_TYPE"] == 8
        assert columns["OBJ_DECIMAL"] is False
        assert columns["OBJ_STATUS1"] == "Off"
        assert columns["OBJ_STATUS10"] == ""
        assert columns["SERVER_ID"] == 7

    def test_insert_of_non_multistate_has_blank_status_columns(self):
        result = reconcile([], [HarvestedPoint(PointType.AI, 3, name="X")], device_key="D1")
        columns = dict(build_mutations(result)[0].columns)
        assert all(columns[f"OBJ_STATUS{i}"] == "" for i in range(1, 11))

    def test_update_sql(self):
        update = build_mutations(mixed_result())[1]
        assert update.to_sql() == (
            f"UPDATE {CATALOG_TABLE} SET OBJ_NAME = 'New Temp' "
            "WHERE DEVICE_SEQ = 'D1' AND SYSTEM_PT_ID = 'AI-1'; -- old: 'Old Temp'"
        )

    def test_insert_is_guarded(self):
        sql = build_mutations(mixed_result())[0].to_sql()
        assert sql.startswith(f"INSERT INTO {CATALOG_TABLE} (DEVICE_SEQ, SYSTEM_PT_ID,")
        assert "WHERE NOT EXISTS" in sql

    def test_parameterized_forms(self):
        insert, update, delete = build_mutations(mixed_result())
        sql, params = update.to_parameterized()
        assert sql == (
            f"UPDATE {CATALOG_TABLE} SET OBJ_NAME = ? WHERE DEVICE_SEQ = ? AND SYSTEM_PT_ID = ?"
        )
        assert params == ("New Temp", "D1", "AI-1")

        sql, params = delete.to_parameterized()
        assert sql.startswith(f"DELETE FROM {CATALOG_TABLE}")
        assert params == ("D1", "BO-2")

        sql, params = insert.to_parameterized()
        assert sql.count("?") == len(params)
        assert not any(isinstance(p, bool) for p in params)

    def test_stored_id_scopes_update_and_delete(self):
        catalog = [
            CatalogRow("D1", "AI-1", PointType.AI, name="Old", decimal=True, stored_id="ai-1"),
            CatalogRow("D1", "BO-2", PointType.BO, name="Pump", stored_id=" BO-2 "),
        ]
        result = reconcile(catalog, [HarvestedPoint(PointType.AI, 1, name="New")], device_key="D1")
        update, delete = build_mutations(result)
        assert update.synthetic_id == "AI-1"
        assert update.to_parameterized()[1] == ("New", "D1", "ai-1")
        assert "SYSTEM_PT_ID = ' BO-2 '" in delete.to_sql()
        assert delete.to_parameterized()[1] == ("D1", " BO-2 ")

    def test_hostile_text_stays_quoted(self):
        result = reconcile(
            [], [HarvestedPoint(PointType.BV, 1, name="x'); DROP TABLE P_OBJECT; --")], device_key="D1"
        )
        sql = build_mutations(result)[0].to_sql()
        assert "'x''); DROP TABLE P_OBJECT; --'" in sql


class TestRenderScript:
    def test_transaction_wrapper(self):
        script = render_script(mixed_result(), generated_at=STAMP)
        lines = script.splitlines()
        assert lines[0] == "-- Catalog reconciliation for device D1"
        assert lines[1] == "-- Generated 2026-03-14 09:26:53: 1 addition(s), 1 change(s), 1 removal(s)"
        assert lines[2] == "BEGIN TRANSACTION;"
        assert lines[-1] == "COMMIT;"
        assert script.endswith("\n")

    def test_delete_preceded_by_warning(self):
        script = render_script(mixed_result(), generated_at=STAMP)
        assert "-- WARNING: destructive: removes BO-2 (Pump) from device D1\nDELETE FROM" in script

    def test_no_mutations(self):
        result = reconcile(
            [CatalogRow("D1", "BI-1", PointType.BI, name="S")],
            [HarvestedPoint(PointType.BI, 1, name="S")],
            device_key="D1",
        )
        lines = render_script(result, generated_at=STAMP).splitlines()
        assert lines[2:] == ["BEGIN TRANSACTION;", "COMMIT;"]

    def test_identifiers_fall_back_to_defaults(self):
        result = reconcile(
            [],
            [HarvestedPoint(PointType.AV, 1, name="SP")],
            device_key="D9",
            defaults=CatalogIdentifiers(1, 2, 3),
        )
        sql = build_mutations(result)[0].to_sql()
        assert sql.split(" SELECT ", 1)[1].startswith("'D9', 'AV-1', 'SP', '', '', 2, 1,")
        assert ", 1, 2, 3 WHERE NOT EXISTS" in sql


class TestArtifactNames:
    def test_device_artifact_name(self):
        assert artifact_name("delta", "D1", STAMP, "csv") == "delta_D1_20260314_092653.csv"

    def test_daily_name(self):
        assert daily_name("history", date(2026, 3, 14), "sql") == "history_DAILY_20260314.sql"

    def test_day_parsing(self):
        assert artifact_day("snapshot_AHU-1_20260314_092653.csv") == date(2026, 3, 14)
        assert artifact_day("snapshot_AHU_1_20260314_092653_2.csv") == date(2026, 3, 14)
        assert artifact_day("snapshot_D1_20261399_092653.csv") is None
        assert artifact_day("notes.txt") is None

    def test_daily_summary_recognized(self):
        assert is_daily_summary("delta_DAILY_20260314.csv")
        assert is_daily_summary("delta_DAILY_20260314_1.csv")
        assert not is_daily_summary("delta_D1_20260314_092653.csv")


class TestMergeDaily:
    DAY = date(2026, 3, 14)

    def test_csv_header_once_and_bom_stripped(self):
        merged = merge_daily(
            [
                ("snapshot_D1_20260314_090000.csv", "\ufeffa,b\r\n1,2\r\n"),
                ("snapshot_D2_20260314_100000.csv", "\ufeffa,b\r\n3,4"),
            ],
            self.DAY,
        )
        assert merged == "a,b\r\n1,2\r\n3,4\n"

    def test_sql_sources_labelled(self):
        merged = merge_daily(
            [
                ("history_D1_20260314_090000.sql", "BEGIN;\nCOMMIT;\n"),
                ("history_D2_20260314_100000.sql", "BEGIN;\nCOMMIT;"),
            ],
            self.DAY,
        )
        assert merged == (
            "-- source: history_D1_20260314_090000.sql\nBEGIN;\nCOMMIT;\n"
            "-- source: history_D2_20260314_100000.sql\nBEGIN;\nCOMMIT;\n"
        )

    def test_other_days_and_summaries_skipped(self):
        merged = merge_daily(
            [
                ("delta_D1_20260313_235959.csv", "a\nold\n"),
                ("delta_DAILY_20260314.csv", "a\nsummary\n"),
                ("readme.csv", "a\nx\n"),
                ("delta_D2_20260314_000001.csv", "a\nnew\n"),
            ],
            self.DAY,
        )
        assert merged == "a\nnew\n"

    def test_nothing_to_merge(self):
        assert merge_daily([], self.DAY) == ""

    def test_mixed_extensions_rejected(self):
        with pytest.raises(ValueError):
            merge_daily(
                [
                    ("history_D1_20260314_090000.sql", "x"),
                    ("history_D2_20260314_090000.csv", "y"),
                ],
                self.DAY,
            )
