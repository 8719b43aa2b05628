"""Operator CLI: run the relay, refresh credentials, inspect and push."""

from __future__ import annotations

import asyncio
import json
import logging
import sys

import typer
from aiohttp import web
from rich.console import Console
from rich.syntax import Syntax

from pushrelay.config import Settings
from pushrelay.relay import Relay
from pushrelay.store import StoreError

app = typer.Typer(help="Relay push notifications to APNs and FCM.", invoke_without_command=True)


@app.callback()
def main(
    ctx: typer.Context,
    log_level: str = typer.Option("INFO", "--log-level", "-l", help="Logging level"),
) -> None:
    """Relay push notifications to APNs and FCM."""
    logging.basicConfig(
        level=log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit(0)


def _print_json(obj: object) -> None:
    """Print JSON, syntax-highlighted when stdout is a TTY and compact otherwise."""
    if sys.stdout.isatty():
        Console().print(Syntax(json.dumps(obj, indent=2), "json"))
    else:
        typer.echo(json.dumps(obj))


def _relay() -> Relay:
    """Build the relay from the environment or exit with an error."""
    try:
        settings = Settings.from_env()
    except ValueError as e:
        typer.echo(str(e), err=True)
        raise typer.Exit(1) from None
    try:
        return Relay.from_settings(settings)
    except StoreError as e:
        typer.echo(str(e), err=True)
        raise typer.Exit(1) from None


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@app.command()
def serve(
    host: str = typer.Option("0.0.0.0", help="Interface to bind"),
    port: int = typer.Option(8787, help="Port to listen on"),
) -> None:
    """Serve the bridge-facing HTTP API and refresh credentials in the background."""
    relay = _relay()
    web.run_app(relay.web_app(), host=host, port=port)


@app.command()
def refresh() -> None:
    """Regenerate every configured publisher credential once."""
    relay = _relay()
    results = asyncio.run(relay.refresher.run_once())
    if not results:
        typer.echo("No publisher credentials configured.", err=True)
        raise typer.Exit(1)

    failed = False
    for upstream, error in results.items():
        if error is None:
            typer.echo(f"{upstream}: refreshed")
        else:
            typer.echo(f"{upstream}: FAILED ({error})", err=True)
            failed = True
    if failed:
        raise typer.Exit(1)


@app.command()
def devices(tenant: str = typer.Argument(..., help="Relay token")) -> None:
    """List the devices registered under a relay token."""
    relay = _relay()
    records = asyncio.run(relay.registry.list(tenant))
    if not records:
        typer.echo("No devices registered.")
        return
    _print_json([r.to_dict() for r in records])


@app.command()
def push(
    tenant: str = typer.Argument(..., help="Relay token"),
    title: str = typer.Argument(..., help="Notification title"),
    body: str = typer.Argument(..., help="Notification body"),
) -> None:
    """Send a notification to every device of a relay token."""
    relay = _relay()
    results = asyncio.run(relay.dispatcher.dispatch(tenant, title, body))
    if not results:
        typer.echo("No devices registered.")
        return
    _print_json([r.to_dict() for r in results])
