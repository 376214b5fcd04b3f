"""Async bridge between Click (sync) and the scan orchestrator (async)."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Coroutine
from typing import Any, TypeVar

import click

from bac_inventory.config import InventoryConfig
from bac_inventory.scan.orchestrator import ScanOrchestrator

T = TypeVar("T")


def config_from_context(ctx: click.Context, **overrides: Any) -> InventoryConfig:
    """Build the scan configuration from the global CLI options.

    Args:
        ctx: Click context carrying the global options.
        **overrides: Extra :class:`InventoryConfig` fields set by the command.

    Returns:
        The validated configuration.
    """
    fields = {
        "interface": ctx.obj["interface"],
        "device_port": ctx.obj["port"],
        **{k: v for k, v in overrides.items() if v is not None},
    }
    return InventoryConfig(**fields)


def run_command(
    config: InventoryConfig,
    coro_factory: Callable[[ScanOrchestrator], Coroutine[Any, Any, T]],
) -> T:
    """Create an orchestrator and run a coroutine with it.

    Args:
        config: Scan configuration.
        coro_factory: Callable that receives a ScanOrchestrator and
            returns a coroutine to execute.

    Returns:
        The return value of the coroutine.
    """

    async def _run() -> T:
        return await coro_factory(ScanOrchestrator(config))

    return asyncio.run(_run())
