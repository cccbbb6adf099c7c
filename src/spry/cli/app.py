"""
Root Typer application for the Spry CLI.

Commands::

    spry run /greet/alice/ -c app.yaml          serve one request, print the envelope
    echo '{"name": "bob"}' | spry run /greet/ -c app.yaml
    spry routes -c app.yaml                     public route table
    spry codes -c app.yaml --group 0            response codes
    spry serve -c app.yaml --port 8000          HTTP server (uvicorn)
"""

from __future__ import annotations

import os
import sys
from collections.abc import Mapping
from typing import Any

import typer
from typer import Typer

from spry.cli.utils import console, err_console, load_app, parse_json_option, print_json, render_table
from spry.framework.context import Request
from spry.framework.responses import STATUSES

app = Typer(
    name="spry",
    help="Spry - run requests through a Spry application.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

ConfigOption = typer.Option(None, "--config", "-c", envvar="SPRY_CONFIG", help="Config file (YAML or JSON).")


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        from spry import __version__

        typer.echo(f"spry {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """Spry CLI - serve requests, inspect routes and response codes."""


# ── run ──────────────────────────────────────────────────────────────────


@app.command("run")
def run_command(
    path: str = typer.Argument(None, help="Request path, e.g. /greet/alice/"),
    config: str = ConfigOption,
    params: str = typer.Option(None, "--params", "-p", help="Params as JSON (default: read stdin)."),
    method: str = typer.Option("POST", "--method", "-m", help="Request method."),
    controller: str = typer.Option(None, "--controller", help="Call this controller instead of routing."),
    meta: str = typer.Option(None, "--meta", help="Meta as JSON."),
    cron: bool = typer.Option(False, "--cron", help="Mark the request as a cron task."),
) -> None:
    """Serve one request and print the JSON envelope."""
    spry = load_app(config)

    request = Request.from_cli(sys.stdin)
    request.method = method

    output = spry.run(
        controller=controller,
        params=parse_json_option(params, "--params"),
        path=path,
        meta=parse_json_option(meta, "--meta"),
        request=request,
        cron=cron,
    )
    typer.echo(output.body)

    envelope = output.json() or {}
    if envelope.get("status") == "error":
        raise typer.Exit(code=1)


# ── routes ───────────────────────────────────────────────────────────────


@app.command("routes")
def routes_command(
    config: str = ConfigOption,
    as_json: bool = typer.Option(False, "--json", help="Output as JSON."),
) -> None:
    """List the public routes."""
    spry = load_app(config)
    routes = spry.get_routes()

    if as_json:
        print_json(routes)
        return

    rows = [
        [path, ", ".join(route["methods"]), route["controller"], route["label"]]
        for path, route in routes.items()
    ]
    render_table("Routes", ["Path", "Methods", "Controller", "Label"], rows)


# ── codes ────────────────────────────────────────────────────────────────


def describe_entry(entry: Any, lang: str = "en") -> list[tuple[str, str]]:
    """``(status, message)`` pairs for one response-code entry."""
    if isinstance(entry, str):
        return [("", entry)]
    if not isinstance(entry, Mapping):
        return []

    found: list[tuple[str, str]] = []
    for status in STATUSES:
        value = entry.get(status)
        if isinstance(value, Mapping):
            value = value.get(lang) or next(iter(value.values()), "")
        if value:
            found.append((status, str(value)))
    if not found and isinstance(entry.get(lang), str):
        found.append(("", entry[lang]))
    return found


@app.command("codes")
def codes_command(
    config: str = ConfigOption,
    group: int = typer.Option(None, "--group", "-g", help="Only this group."),
    as_json: bool = typer.Option(False, "--json", help="Output as JSON."),
) -> None:
    """List registered response codes."""
    spry = load_app(config)
    table = spry.codes.to_dict()

    if group is not None:
        if group not in table:
            err_console.print(f"[bold red]Error[/bold red]: no response code group {group}")
            raise typer.Exit(code=1)
        table = {group: table[group]}

    if as_json:
        print_json(table)
        return

    rows = []
    for group_id, codes in sorted(table.items()):
        for code, entry in sorted(codes.items()):
            for status, message in describe_entry(entry):
                rows.append([group_id, code, status, message])
    render_table("Response Codes", ["Group", "Code", "Status", "Message"], rows)


# ── serve ────────────────────────────────────────────────────────────────


@app.command("serve")
def serve_command(
    config: str = ConfigOption,
    host: str = typer.Option("127.0.0.1", "--host", "-h", help="Bind address"),
    port: int = typer.Option(8000, "--port", "-p", help="Bind port"),
    reload: bool = typer.Option(False, "--reload", help="Auto-reload on changes"),
    log_level: str = typer.Option("info", "--log-level"),
) -> None:
    """Serve the application over HTTP."""
    import uvicorn

    load_app(config)
    if config:
        os.environ["SPRY_API_CONFIG"] = config

    console.print(f"[bold green]Starting Spry[/bold green] on {host}:{port}")
    uvicorn.run(
        "spry.api:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
        log_level=log_level,
    )
