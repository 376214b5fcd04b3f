"""Catalog mutation statements generated from a reconciliation result.

Each :class:`Mutation` renders two ways: a literal SQL statement for the
audit script an operator reviews and runs, and a parameterized statement
for applying directly through a DB-API connection.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import TYPE_CHECKING

from bac_inventory.types.points import STATE_TEXT_SLOTS

if TYPE_CHECKING:
    from bac_inventory.reconcile.engine import ColumnValue, ReconciliationResult

CATALOG_TABLE = "P_OBJECT"

COLUMN_NAMES: dict[str, str] = {
    "name": "OBJ_NAME",
    "description": "OBJ_DESC",
    "unit": "OBJ_UNIT",
    "decimal": "OBJ_DECIMAL",
    "type_code": "OBJ_TYPE",
}
"""Tracked attribute to catalog column."""

STATUS_COLUMNS: tuple[str, ...] = tuple(f"OBJ_STATUS{i}" for i in range(1, STATE_TEXT_SLOTS + 1))

DESTRUCTIVE_WARNING = "-- WARNING: destructive"


class MutationKind(Enum):
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True, slots=True)
class Mutation:
    """One catalog statement, scoped to ``(DEVICE_SEQ, SYSTEM_PT_ID)``."""

    kind: MutationKind
    device_key: str
    synthetic_id: str
    columns: tuple[tuple[str, ColumnValue], ...] = ()
    """Catalog column/value pairs written (all columns for an insert, one for an update)."""
    old_value: ColumnValue | None = None
    """Previous value of an updated column."""
    label: str = ""
    """Point name shown in the warning of a delete."""
    catalog_id: str = ""
    """Stored ``SYSTEM_PT_ID`` of the targeted row, when it differs from *synthetic_id*."""

    @property
    def scope_id(self) -> str:
        """The ``SYSTEM_PT_ID`` value the statement matches."""
        return self.catalog_id or self.synthetic_id

    def to_sql(self) -> str:
        """Render as a literal SQL statement, with its audit comment."""
        scope = (
            f"DEVICE_SEQ = {sql_literal(self.device_key)} "
            f"AND SYSTEM_PT_ID = {sql_literal(self.scope_id)}"
        )
        match self.kind:
            case MutationKind.INSERT:
                names = ", ".join(name for name, _ in self.columns)
                values = ", ".join(sql_literal(value) for _, value in self.columns)
                return (
                    f"INSERT INTO {CATALOG_TABLE} ({names}) SELECT {values} "
                    f"WHERE NOT EXISTS (SELECT 1 FROM {CATALOG_TABLE} WHERE {scope});"
                )
            case MutationKind.UPDATE:
                assignments = ", ".join(f"{name} = {sql_literal(value)}" for name, value in self.columns)
                return (
                    f"UPDATE {CATALOG_TABLE} SET {assignments} WHERE {scope};"
                    f" -- old: {_comment_text(sql_literal(self.old_value))}"
                )
            case MutationKind.DELETE:
                label = f" ({_comment_text(self.label)})" if self.label else ""
                return (
                    f"{DESTRUCTIVE_WARNING}: removes {self.synthetic_id}{label} "
                    f"from device {_comment_text(self.device_key)}\n"
                    f"DELETE FROM {CATALOG_TABLE} WHERE {scope};"
                )

    def to_parameterized(self) -> tuple[str, tuple[ColumnValue, ...]]:
        """Render as a ``?``-placeholder statement and its parameters."""
        scope = "DEVICE_SEQ = ? AND SYSTEM_PT_ID = ?"
        key = (self.device_key, self.scope_id)
        values = tuple(_db_value(value) for _, value in self.columns)
        match self.kind:
            case MutationKind.INSERT:
                names = ", ".join(name for name, _ in self.columns)
                marks = ", ".join("?" for _ in self.columns)
                sql = (
                    f"INSERT INTO {CATALOG_TABLE} ({names}) SELECT {marks} "
                    f"WHERE NOT EXISTS (SELECT 1 FROM {CATALOG_TABLE} WHERE {scope})"
                )
                return sql, values + key
            case MutationKind.UPDATE:
                assignments = ", ".join(f"{name} = ?" for name, _ in self.columns)
                return f"UPDATE {CATALOG_TABLE} SET {assignments} WHERE {scope}", values + key
            case MutationKind.DELETE:
                return f"DELETE FROM {CATALOG_TABLE} WHERE {scope}", key


def sql_literal(value: ColumnValue | None) -> str:
    """Quote a value as a SQL literal; strings double their single quotes."""
    match value:
        case None:
            return "NULL"
        case bool():
            return "1" if value else "0"
        case int():
            return str(value)
        case _:
            escaped = str(value).replace("'", "''")
            return f"'{escaped}'"


def _db_value(value: ColumnValue) -> ColumnValue:
    return int(value) if isinstance(value, bool) else value


def _comment_text(text: str) -> str:
    return " ".join(text.splitlines())


def build_mutations(result: ReconciliationResult) -> list[Mutation]:
    """Build the catalog mutations for one device's reconciliation.

    Inserts come first, then updates, then deletes, each in result order.
    """
    key = result.device_key
    mutations: list[Mutation] = []

    for addition in result.additions:
        point = addition.point
        ids = addition.identifiers
        texts = point.state_texts or ("",) * STATE_TEXT_SLOTS
        columns: tuple[tuple[str, ColumnValue], ...] = (
            ("DEVICE_SEQ", key),
            ("SYSTEM_PT_ID", point.synthetic_id),
            ("OBJ_NAME", point.name),
            ("OBJ_DESC", point.description),
            ("OBJ_UNIT", point.unit),
            ("OBJ_TYPE", point.type_code),
            ("OBJ_DECIMAL", point.decimal),
            *zip(STATUS_COLUMNS, texts, strict=True),
            ("SERVER_ID", ids.server_id),
            ("SYSTEM_ID", ids.system_id),
            ("ORDER_ID", ids.order_id),
        )
        mutations.append(Mutation(MutationKind.INSERT, key, point.synthetic_id, columns))

    for change in result.changes:
        mutations.append(
            Mutation(
                MutationKind.UPDATE,
                key,
                change.synthetic_id,
                ((COLUMN_NAMES[change.column], change.new_value),),
                old_value=change.old_value,
                catalog_id=change.catalog_id,
            )
        )

    for row in result.removals:
        mutations.append(
            Mutation(
                MutationKind.DELETE, key, row.synthetic_id, label=row.name, catalog_id=row.stored_id
            )
        )

    return mutations


def render_script(result: ReconciliationResult, *, generated_at: datetime | None = None) -> str:
    """Render one device's mutations as a self-contained transaction script.

    The script can be re-run safely: inserts are guarded by ``NOT EXISTS``
    and updates and deletes are idempotent.
    """
    generated_at = generated_at or datetime.now(UTC)
    lines = [
        f"-- Catalog reconciliation for device {_comment_text(result.device_key)}",
        f"-- Generated {generated_at:%Y-%m-%d %H:%M:%S}: "
        f"{len(result.additions)} addition(s), {len(result.changes)} change(s), "
        f"{len(result.removals)} removal(s)",
        "BEGIN TRANSACTION;",
    ]
    lines.extend(m.to_sql() for m in build_mutations(result))
    lines.append("COMMIT;")
    return "\n".join(lines) + "\n"
