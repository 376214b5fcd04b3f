"""Entry point of the ``bac-inventory`` command."""

from __future__ import annotations

import logging
import sys

import click

from bac_inventory import __version__
from bac_inventory.cli.commands.discover import discover, resolve, scan
from bac_inventory.cli.commands.harvest import harvest
from bac_inventory.cli.commands.reconcile import merge, reconcile
from bac_inventory.network.address import BACNET_PORT

_LOG_LEVELS = (logging.WARNING, logging.INFO, logging.DEBUG)


@click.group()
@click.version_option(__version__, prog_name="bac-inventory")
@click.option("--interface", default="0.0.0.0", show_default=True, help="Local bind address.")
@click.option(
    "--port",
    default=BACNET_PORT,
    type=click.IntRange(1, 0xFFFF),
    show_default=True,
    help="UDP port the devices listen on.",
)
@click.option("--json", "use_json", is_flag=True, help="Print JSON instead of tables.")
@click.option(
    "-v",
    "--verbose",
    count=True,
    help="Log progress; repeat for protocol-level debug output.",
)
@click.pass_context
def cli(ctx: click.Context, interface: str, port: int, use_json: bool, verbose: int) -> None:
    """BACnet/IP point inventory: discover devices, harvest their points
    and reconcile them against a catalog."""
    ctx.ensure_object(dict)
    ctx.obj.update(interface=interface, port=port, use_json=use_json)

    logging.basicConfig(
        level=_LOG_LEVELS[min(verbose, len(_LOG_LEVELS) - 1)],
        format="%(asctime)s  %(levelname)-8s  %(name)s  %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
    )


for _command in (discover, scan, resolve, harvest, reconcile, merge):
    cli.add_command(_command)
