"""reconcile and merge commands -- compare harvests with the catalog."""

from __future__ import annotations

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING

import click

from bac_inventory.artifacts import ArtifactWriter
from bac_inventory.catalog import (
    MemoryCatalogStore,
    SqliteCatalogStore,
    points_from_rows,
    read_snapshot_csv,
)
from bac_inventory.cli.formatting import print_error, print_json, print_kv, print_table
from bac_inventory.errors import CatalogError, ReconciliationInvariantError
from bac_inventory.reconcile.engine import reconcile as reconcile_points
from bac_inventory.reconcile.statements import build_mutations
from bac_inventory.types.points import CatalogIdentifiers

if TYPE_CHECKING:
    from bac_inventory.catalog import CatalogStore
    from bac_inventory.reconcile.engine import ReconciliationResult
    from bac_inventory.types.points import CatalogRow, HarvestedPoint

logger = logging.getLogger(__name__)


def open_catalog(path: Path) -> CatalogStore:
    """Open a catalog: a snapshot CSV (read-only) or a SQLite database."""
    if path.suffix.lower() == ".csv":
        return MemoryCatalogStore(read_snapshot_csv(path))
    return SqliteCatalogStore(path)


def reconcile_device(
    store: CatalogStore,
    device_key: str,
    points: list[HarvestedPoint],
    *,
    defaults: CatalogIdentifiers,
    writer: ArtifactWriter | None = None,
    device_id: int | None = None,
    apply: bool = False,
) -> ReconciliationResult:
    """Reconcile one device, write its artifacts and optionally apply the mutations."""
    result = reconcile_points(
        store.rows_for(device_key), points, device_key=device_key, defaults=defaults
    )
    if writer is not None:
        writer.write_all(device_key, points, result, device_id=device_id)
    if apply and result.has_mutations:
        store.apply(device_key, build_mutations(result))
    return result


def print_results(
    results: list[ReconciliationResult],
    use_json: bool,
    failures: dict[str, str] | None = None,
) -> None:
    """Print reconciliation summaries and every change, then the failed devices."""
    failures = failures or {}
    if use_json:
        print_json({"devices": [r.to_dict() for r in results], "failed": failures})
        return
    for result in results:
        click.echo(f"Device {result.device_key}:")
        print_kv(
            [
                ("Additions", len(result.additions)),
                ("Changes", len(result.changes)),
                ("Removals", len(result.removals)),
                ("Unchanged", len(result.unchanged)),
            ]
        )
        rows = [[a.synthetic_id, "INSERT", "", "", a.point.name] for a in result.additions]
        rows += [[c.synthetic_id, "UPDATE", c.column, c.old_value, c.new_value] for c in result.changes]
        rows += [[r.synthetic_id, "DELETE", "", r.name, ""] for r in result.removals]
        if rows:
            click.echo("")
            print_table(["Point", "Action", "Column", "Old", "New"], rows)
        click.echo("")
    for key, reason in failures.items():
        click.echo(f"Device {key}: FAILED ({reason})")


@click.command()
@click.argument("snapshot", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--catalog",
    "catalog_path",
    required=True,
    type=click.Path(dir_okay=False, path_type=Path),
    help="Catalog: SQLite database, or a snapshot CSV of the previous run.",
)
@click.option("--device-key", default=None, help="Only reconcile this device.")
@click.option(
    "--output",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Directory for delta, history and script artifacts.",
)
@click.option("--apply", "apply_changes", is_flag=True, default=False, help="Apply to the catalog.")
@click.option("--server-id", type=int, default=0, show_default=True, help="Default SERVER_ID.")
@click.option("--system-id", type=int, default=0, show_default=True, help="Default SYSTEM_ID.")
@click.option("--order-id", type=int, default=0, show_default=True, help="Default ORDER_ID.")
@click.pass_context
def reconcile(
    ctx: click.Context,
    snapshot: Path,
    catalog_path: Path,
    device_key: str | None,
    output: Path | None,
    apply_changes: bool,
    server_id: int,
    system_id: int,
    order_id: int,
) -> None:
    """Reconcile a harvested SNAPSHOT CSV against the catalog."""
    use_json: bool = ctx.obj["use_json"]
    defaults = CatalogIdentifiers(server_id, system_id, order_id)
    results: list[ReconciliationResult] = []
    failures: dict[str, str] = {}

    try:
        if apply_changes and catalog_path.suffix.lower() == ".csv":
            msg = "--apply needs a SQLite catalog"
            raise click.UsageError(msg)
        by_device: dict[str, list[CatalogRow]] = {}
        for row in read_snapshot_csv(snapshot, device_key):
            by_device.setdefault(row.device_key, []).append(row)

        store = open_catalog(catalog_path)
        writer = ArtifactWriter(output) if output is not None else None
        try:
            for key, device_rows in by_device.items():
                try:
                    results.append(
                        reconcile_device(
                            store,
                            key,
                            points_from_rows(device_rows),
                            defaults=defaults,
                            writer=writer,
                            apply=apply_changes,
                        )
                    )
                except (CatalogError, ReconciliationInvariantError) as exc:
                    logger.warning("Device %s not reconciled: %s", key, exc)
                    failures[key] = str(exc)
        finally:
            if isinstance(store, SqliteCatalogStore):
                store.close()
    except click.UsageError:
        raise
    except Exception as e:
        print_error(str(e), use_json)
        sys.exit(1)

    print_results(results, use_json, failures)
    if failures:
        sys.exit(1)


@click.command()
@click.argument("day", type=click.DateTime(formats=["%Y-%m-%d", "%Y%m%d"]))
@click.option(
    "--output",
    type=click.Path(file_okay=False, exists=True, path_type=Path),
    default=".",
    show_default=True,
    help="Artifact directory.",
)
@click.pass_context
def merge(ctx: click.Context, day: datetime, output: Path) -> None:
    """Merge the history artifacts of DAY into daily summaries."""
    use_json: bool = ctx.obj["use_json"]
    paths = ArtifactWriter(output).merge_day(day.date())
    if use_json:
        print_json({"written": [str(p) for p in paths]})
    elif paths:
        for path in paths:
            click.echo(f"Wrote {path}")
    else:
        click.echo(f"No history artifacts for {day:%Y-%m-%d}.")
