"""discover, scan and resolve commands -- find devices on the network."""

from __future__ import annotations

import sys
from typing import TYPE_CHECKING

import click

from bac_inventory.cli.connection import config_from_context, run_command
from bac_inventory.cli.formatting import print_error, print_json, print_table
from bac_inventory.network.address import parse_scope

if TYPE_CHECKING:
    from bac_inventory.discovery.frames import DiscoveredDevice
    from bac_inventory.scan.orchestrator import ScanOrchestrator


def print_devices(devices: list[DiscoveredDevice], use_json: bool) -> None:
    """Print discovered devices as a table or JSON."""
    devices = sorted(devices, key=lambda d: d.device_id)
    if use_json:
        print_json({"devices": [d.to_dict() for d in devices]})
        return
    if not devices:
        click.echo("No devices responded.")
        return
    click.echo(f"Found {len(devices)} device(s):\n")
    print_table(
        ["Instance", "Address", "Vendor ID", "Max APDU", "Segmentation"],
        [
            [d.device_id, f"{d.ip}:{d.port}", d.vendor_id, d.max_apdu_length, d.segmentation.name]
            for d in devices
        ],
    )


@click.command()
@click.argument("scope")
@click.option(
    "--timeout", type=float, default=2.0, show_default=True, help="Seconds to collect replies."
)
@click.option("--no-broadcast", is_flag=True, default=False, help="Skip broadcast requests.")
@click.option("--no-sweep", is_flag=True, default=False, help="Skip the unicast sweep.")
@click.pass_context
def discover(
    ctx: click.Context,
    scope: str,
    timeout: float,
    no_broadcast: bool,
    no_sweep: bool,
) -> None:
    """Discover devices in SCOPE (CIDR, host or a.b.c) with one Who-Is round."""
    use_json: bool = ctx.obj["use_json"]

    async def _run(orchestrator: ScanOrchestrator) -> list[DiscoveredDevice]:
        target = parse_scope(scope, broadcast=not no_broadcast, sweep=not no_sweep)
        return await orchestrator.discover(target, timeout)

    try:
        devices = run_command(config_from_context(ctx, discovery_timeout=timeout), _run)
    except Exception as e:
        print_error(str(e), use_json)
        sys.exit(1)
    print_devices(devices, use_json)


@click.command()
@click.argument("scope")
@click.option(
    "--parallelism", type=int, default=None, help="Hosts queried at once (default 6)."
)
@click.option(
    "--per-host-timeout",
    type=float,
    default=1.5,
    show_default=True,
    help="Seconds to wait for each host.",
)
@click.option("--round-timeout", type=float, default=None, help="Overall budget in seconds.")
@click.pass_context
def scan(
    ctx: click.Context,
    scope: str,
    parallelism: int | None,
    per_host_timeout: float,
    round_timeout: float | None,
) -> None:
    """Query every host of SCOPE with its own unicast Who-Is."""
    use_json: bool = ctx.obj["use_json"]

    async def _run(orchestrator: ScanOrchestrator) -> list[DiscoveredDevice]:
        return await orchestrator.scan_range(
            parse_scope(scope),
            parallelism,
            per_host_timeout,
            round_timeout=round_timeout,
        )

    try:
        devices = run_command(config_from_context(ctx), _run)
    except Exception as e:
        print_error(str(e), use_json)
        sys.exit(1)
    print_devices(devices, use_json)


@click.command()
@click.argument("ip")
@click.option(
    "--timeout", type=float, default=1.5, show_default=True, help="Maximum seconds to wait."
)
@click.pass_context
def resolve(ctx: click.Context, ip: str, timeout: float) -> None:
    """Resolve the device instance of the device at IP."""
    use_json: bool = ctx.obj["use_json"]

    async def _run(orchestrator: ScanOrchestrator) -> DiscoveredDevice | None:
        config = orchestrator.config
        return await config.make_transport().resolve(
            ip, timeout=timeout, poll_interval=min(config.poll_interval, timeout)
        )

    try:
        device = run_command(config_from_context(ctx, resolve_timeout=timeout), _run)
    except Exception as e:
        print_error(str(e), use_json)
        sys.exit(1)

    if device is None:
        print_error(f"No I-Am from {ip} within {timeout}s", use_json)
        sys.exit(1)
    print_devices([device], use_json)
