"""harvest command -- read every point of one device or of a device list."""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Any

import click

from bac_inventory.artifacts import ArtifactWriter
from bac_inventory.catalog import SqliteCatalogStore, read_device_list
from bac_inventory.cli.commands.reconcile import open_catalog, print_results, reconcile_device
from bac_inventory.cli.connection import config_from_context, run_command
from bac_inventory.cli.formatting import print_error, print_json, print_kv, print_table
from bac_inventory.errors import CatalogError, ReconciliationInvariantError
from bac_inventory.scan.report import DeviceOutcome
from bac_inventory.scan.session import TargetDevice

if TYPE_CHECKING:
    from bac_inventory.catalog import CatalogStore
    from bac_inventory.config import InventoryConfig
    from bac_inventory.scan.orchestrator import ScanOrchestrator
    from bac_inventory.scan.report import HarvestBatch

logger = logging.getLogger(__name__)


def _print_harvest(key: str, ip: str, batch: HarvestBatch) -> None:
    report = batch.report.reports[key]
    print_kv(
        [
            ("Device key", key),
            ("Device", f"{report.device_id} ({ip})"),
            ("Objects", report.object_count),
            ("Harvested", report.harvested),
            ("Skipped", report.skipped),
            ("Failed", report.failed),
        ]
    )
    if batch.report.outcomes[key] is DeviceOutcome.EMPTY:
        click.echo("\nDevice has no configured points.")
        return
    click.echo("")
    print_table(
        ["Point", "Name", "Description", "Unit"],
        [[p.synthetic_id, p.name, p.description, p.unit] for p in batch[key]],
    )


def _finish_device(
    target: TargetDevice,
    batch: HarvestBatch,
    *,
    store: CatalogStore | None,
    writer: ArtifactWriter | None,
    config: InventoryConfig,
    apply_changes: bool,
    use_json: bool,
) -> dict[str, Any]:
    """Print, snapshot or reconcile one harvested device.

    Returns the device's JSON entry; it has an ``"error"`` key when the
    device failed.
    """
    key = target.device_key
    outcome = batch.report.outcomes.get(key, DeviceOutcome.ERROR)
    entry: dict[str, Any] = {"device_key": key, "ip": target.ip, "outcome": outcome.value}
    if key not in batch:
        entry["error"] = f"Harvest of {target.ip} failed: {outcome.value}"
        if not use_json:
            print_error(entry["error"])
        return entry

    points = batch[key]
    report = batch.report.reports[key]
    entry["harvest"] = report.to_dict()
    if not use_json:
        _print_harvest(key, target.ip, batch)

    if store is None:
        if writer is not None and writer.write_snapshot(key, points, device_id=report.device_id):
            click.echo(f"\nSnapshot of {key} written to {writer.directory}", err=True)
        return entry

    try:
        result = reconcile_device(
            store,
            key,
            points,
            defaults=config.defaults,
            writer=writer,
            device_id=report.device_id,
            apply=apply_changes,
        )
    except (CatalogError, ReconciliationInvariantError) as exc:
        logger.warning("Device %s not reconciled: %s", key, exc)
        entry["error"] = str(exc)
        if not use_json:
            print_error(f"Device {key} not reconciled: {exc}")
        return entry
    entry["reconciliation"] = result.to_dict()
    if not use_json:
        click.echo("")
        print_results([result], use_json)
    return entry


@click.command()
@click.argument("ip", required=False)
@click.option(
    "--devices",
    "device_list",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="CSV device list (DEVICE_SEQ, DEVICE_IP, ...) to harvest instead of IP.",
)
@click.option("--device-id", type=int, default=None, help="Device instance; resolved if omitted.")
@click.option("--device-key", default=None, help="Catalog device key (default: the instance).")
@click.option(
    "--parallel",
    type=click.IntRange(min=1),
    default=None,
    help="Devices harvested at once from a list (default: 6).",
)
@click.option(
    "--output",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Directory for the snapshot and reconciliation artifacts.",
)
@click.option(
    "--catalog",
    "catalog_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Reconcile against this catalog (SQLite database or snapshot CSV).",
)
@click.option("--apply", "apply_changes", is_flag=True, default=False, help="Apply to the catalog.")
@click.option(
    "--apdu-timeout", type=float, default=3.0, show_default=True, help="Seconds per request."
)
@click.pass_context
def harvest(
    ctx: click.Context,
    ip: str | None,
    device_list: Path | None,
    device_id: int | None,
    device_key: str | None,
    parallel: int | None,
    output: Path | None,
    catalog_path: Path | None,
    apply_changes: bool,
    apdu_timeout: float,
) -> None:
    """Harvest every inventoried point of the device at IP, or of every
    device in a --devices list."""
    use_json: bool = ctx.obj["use_json"]
    if (ip is None) == (device_list is None):
        msg = "Give either IP or --devices"
        raise click.UsageError(msg)
    if device_list is not None and (device_id is not None or device_key is not None):
        msg = "--device-id and --device-key apply to a single IP"
        raise click.UsageError(msg)
    if apply_changes and (catalog_path is None or catalog_path.suffix.lower() == ".csv"):
        msg = "--apply needs a SQLite --catalog"
        raise click.UsageError(msg)
    config = config_from_context(ctx, apdu_timeout=apdu_timeout, max_parallelism=parallel)

    async def _run_one(orchestrator: ScanOrchestrator) -> tuple[list[TargetDevice], HarvestBatch]:
        resolved_id = device_id
        if resolved_id is None:
            device = await orchestrator.config.make_transport().resolve(
                ip, timeout=config.resolve_timeout, poll_interval=config.poll_interval
            )
            if device is None:
                msg = f"No I-Am from {ip} within {config.resolve_timeout}s"
                raise RuntimeError(msg)
            resolved_id = device.device_id
        target = TargetDevice(device_key or str(resolved_id), ip, resolved_id, port=config.device_port)
        return [target], await orchestrator.harvest_many([target], 1)

    async def _run_list(orchestrator: ScanOrchestrator) -> tuple[list[TargetDevice], HarvestBatch]:
        return listed, await orchestrator.harvest_many(listed)

    try:
        if device_list is not None:
            listed = read_device_list(device_list)
            if not listed:
                msg = f"No devices listed in {device_list}"
                raise CatalogError(msg)
            targets, batch = run_command(config, _run_list)
        else:
            targets, batch = run_command(config, _run_one)
    except Exception as e:
        print_error(str(e), use_json)
        sys.exit(1)

    unique: dict[str, TargetDevice] = {}
    for target in targets:
        unique.setdefault(target.device_key, target)
    writer = ArtifactWriter(output) if output is not None else None
    entries: list[dict[str, Any]] = []
    try:
        store = open_catalog(catalog_path) if catalog_path is not None else None
        try:
            for target in unique.values():
                entries.append(
                    _finish_device(
                        target,
                        batch,
                        store=store,
                        writer=writer,
                        config=config,
                        apply_changes=apply_changes,
                        use_json=use_json,
                    )
                )
        finally:
            if isinstance(store, SqliteCatalogStore):
                store.close()
    except Exception as e:
        print_error(str(e), use_json)
        sys.exit(1)

    failed = [e for e in entries if "error" in e]
    if use_json:
        if device_list is not None:
            print_json({"devices": entries, "summary": batch.report.to_dict()})
        elif failed:
            print_error(failed[0]["error"], use_json)
        elif "reconciliation" in entries[0]:
            entry = entries[0]
            print_json({"harvest": entry["harvest"], "reconciliation": entry["reconciliation"]})
        else:
            print_json(entries[0]["harvest"])
    elif device_list is not None:
        click.echo(f"\n{len(entries) - len(failed)} of {len(entries)} device(s) succeeded.")
    if failed:
        sys.exit(1)
