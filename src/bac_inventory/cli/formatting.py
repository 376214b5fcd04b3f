"""Table, key/value and JSON printers shared by the commands."""

from __future__ import annotations

import json
from typing import Any

import click


def print_table(headers: list[str], rows: list[list[Any]]) -> None:
    """Print *rows* left-aligned under *headers*; short rows are padded."""
    cells = [[str(v) for v in row][: len(headers)] for row in rows]
    cells = [row + [""] * (len(headers) - len(row)) for row in cells]
    widths = [max([len(h)] + [len(row[i]) for row in cells]) for i, h in enumerate(headers)]

    def line(values: list[str]) -> str:
        return "  ".join(v.ljust(w) for v, w in zip(values, widths)).rstrip()

    click.echo(line(headers))
    click.echo(line(["-" * w for w in widths]))
    for row in cells:
        click.echo(line(row))


def print_kv(pairs: list[tuple[str, Any]]) -> None:
    if not pairs:
        return
    width = max(len(key) for key, _ in pairs)
    for key, value in pairs:
        click.echo(f"  {key:<{width}}  {value}")


def print_json(data: Any) -> None:
    """Dump *data* as indented JSON; values JSON cannot express are stringified."""
    click.echo(json.dumps(data, indent=2, default=str, ensure_ascii=False))


def print_error(message: str, use_json: bool = False) -> None:
    """Report a failure on stderr, or as ``{"error": ...}`` in JSON mode."""
    if use_json:
        click.echo(json.dumps({"error": message}))
    else:
        click.echo(f"Error: {message}", err=True)
