"""CLI commands: codeseceval settings — view and change engine settings."""

from __future__ import annotations

import dataclasses

import click
import yaml
from rich.table import Table

from codeseceval.app import AppContext
from codeseceval.cli.common import console, run_with_context
from codeseceval.config import Settings

_SETTING_NAMES = [f.name for f in dataclasses.fields(Settings)]


@click.group()
def settings() -> None:
    """Show or change persisted settings."""


@settings.command()
@click.pass_context
def show(ctx: click.Context) -> None:
    """Print the current settings."""

    async def _show(app: AppContext) -> Settings:
        return app.settings

    current = run_with_context(ctx, _show)
    table = Table(title="Settings")
    table.add_column("Key", style="bold")
    table.add_column("Value")
    for key, value in current.to_dict().items():
        table.add_row(key, str(value))
    console.print(table)


@settings.command("set")
@click.argument("key", type=click.Choice(_SETTING_NAMES))
@click.argument("value")
@click.pass_context
def set_(ctx: click.Context, key: str, value: str) -> None:
    """Set KEY to VALUE (parsed as YAML, so lists and booleans work)."""
    try:
        parsed = yaml.safe_load(value)
    except yaml.YAMLError as e:
        console.print(f"[red]Invalid value:[/red] {e}")
        raise SystemExit(1)

    async def _set(app: AppContext) -> Settings:
        return await app.update_settings(**{key: parsed})

    updated = run_with_context(ctx, _set)
    console.print(f"{key} = {getattr(updated, key)!r}")
