"""
CLI utility helpers: consoles, app loading and output formatting.
"""

from __future__ import annotations

import json
from typing import Any

import typer
from rich.console import Console
from rich.table import Table

from spry.core.errors import SpryError
from spry.framework.app import Spry

console = Console()
err_console = Console(stderr=True)


def load_app(config: str | None) -> Spry:
    """Build and configure a :class:`Spry` app, exiting with a message on failure."""
    app = Spry(config)
    try:
        app.configure()
    except SpryError as e:
        err_console.print(f"[bold red]Error[/bold red] ({e.response_code}): {e.message}")
        raise typer.Exit(code=1) from e
    return app


def parse_json_option(value: str | None, option: str) -> Any:
    """Decode a JSON command-line option; exits on malformed input."""
    if value is None:
        return None
    try:
        return json.loads(value)
    except ValueError as e:
        err_console.print(f"[bold red]Error[/bold red]: {option} is not valid JSON")
        raise typer.Exit(code=2) from e


def render_table(title: str, columns: list[str], rows: list[list[Any]]) -> None:
    table = Table(title=title, show_lines=False)
    for column in columns:
        table.add_column(column)
    for row in rows:
        table.add_row(*[str(cell) for cell in row])
    console.print(table)


def print_json(payload: Any) -> None:
    console.print_json(json.dumps(payload, default=str))
