"""Command line entry points for running and inspecting the gateway."""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import asdict
from typing import List, Optional

import typer
from rich.console import Console
from rich.table import Table

from .gateway.aggregator import ModelListAggregator
from .gateway.config import GatewayConfig
from .gateway.config_loader import (
    list_env_overrides,
    load_file_config,
    update_config_file,
)
from .gateway.errors import GatewayError
from .gateway.models import ModelList
from .gateway.providers import ProviderRegistry
from .logging_utils import configure_logging

console = Console()
app = typer.Typer(help="chatgate: OpenAI-compatible gateway over multiple providers")


@app.command("serve")
def cmd_serve(
    host: Optional[str] = typer.Option(None, help="Bind address (overrides config)"),
    port: Optional[int] = typer.Option(None, help="Bind port (overrides config)"),
    log_level: str = typer.Option("info", help="Logging level"),
):
    """Run the HTTP gateway with uvicorn."""

    import uvicorn

    level = getattr(logging, log_level.upper(), logging.INFO)
    log_path = configure_logging("chatgate", level=level)
    cfg = GatewayConfig.load()
    typer.echo(f"Logging to {log_path}")
    uvicorn.run(
        "chatgate.gateway.app:app",
        host=host or cfg.host,
        port=port or cfg.port,
        log_level=log_level.lower(),
    )


async def _collect_models(cfg: GatewayConfig) -> ModelList:
    registry = ProviderRegistry.from_config(cfg)
    try:
        return await ModelListAggregator(registry).list_models()
    finally:
        await registry.aclose()


@app.command("models")
def cmd_models(
    json_output: bool = typer.Option(
        False, "--json", help="Emit the listing as JSON instead of a table"
    )
):
    """List every model the configured providers expose."""

    cfg = GatewayConfig.load()
    try:
        listing = asyncio.run(_collect_models(cfg))
    except GatewayError as exc:
        typer.echo(exc.message)
        raise typer.Exit(1)

    if json_output:
        typer.echo(json.dumps(listing.model_dump(), indent=2))
        return

    table = Table(title="Available models")
    table.add_column("Model", style="cyan")
    table.add_column("Owned by")
    table.add_column("Created", justify="right")
    for model in listing.data:
        table.add_row(model.id, model.owned_by, str(model.created))
    console.print(table)
    if not listing.data:
        console.print("[yellow]No models available.")


def _parse_assignments(assignments: List[str]) -> dict:
    updates = {}
    for item in assignments:
        key, sep, value = item.partition("=")
        if not sep or not key.strip():
            raise typer.BadParameter(f"Expected key=value, got '{item}'")
        updates[key.strip()] = value.strip()
    return updates


@app.command("config")
def cmd_config(
    assignments: Optional[List[str]] = typer.Argument(
        None, help="key=value pairs to persist in the config file"
    ),
):
    """Show the effective configuration, or update the config file."""

    if assignments:
        try:
            cfg = update_config_file(_parse_assignments(assignments))
        except KeyError as exc:
            typer.echo(str(exc.args[0] if exc.args else exc))
            raise typer.Exit(1)
        typer.echo(f"Updated {cfg.config_file_path}")
    else:
        cfg = GatewayConfig.load()

    runtime = asdict(cfg)
    for settings in runtime["providers"].values():
        if settings.get("api_key"):
            settings["api_key"] = "***"
    file_values = load_file_config()
    for settings in file_values["providers"].values():
        if settings.get("api_key"):
            settings["api_key"] = "***"
    typer.echo(
        json.dumps(
            {
                "runtime": runtime,
                "file": file_values,
                "env_overrides": list_env_overrides(),
            },
            indent=2,
        )
    )


if __name__ == "__main__":  # pragma: no cover
    app()
