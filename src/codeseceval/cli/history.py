"""CLI commands: codeseceval history — browse past scans."""

from __future__ import annotations

import time

import click
from rich.table import Table

from codeseceval.app import AppContext
from codeseceval.cli.common import console, run_with_context, severity_label, shorten_path
from codeseceval.errors import NotFound
from codeseceval.rules.models import Severity


@click.group()
def history() -> None:
    """Browse and prune the scan history."""


@history.command("list")
@click.option("--limit", "-n", type=int, default=20, show_default=True)
@click.pass_context
def list_history(ctx: click.Context, limit: int) -> None:
    """List recent scans, newest first."""

    async def _list(app: AppContext):
        return app.history.list_history()[:limit]

    records = run_with_context(ctx, _list)
    if not records:
        console.print("[dim]No scans recorded yet.[/dim]")
        return

    table = Table(title="Scan history")
    table.add_column("ID", style="bold")
    table.add_column("Project")
    table.add_column("Kind")
    table.add_column("Started")
    table.add_column("Duration", justify="right")
    table.add_column("Findings", justify="right")
    table.add_column("Critical", justify="right", style="red")
    for record in records:
        table.add_row(
            record.id,
            record.project_name,
            record.scan_kind,
            time.strftime("%Y-%m-%d %H:%M", time.localtime(record.start_time)),
            f"{record.duration:.1f}s",
            str(record.finding_count),
            str(record.by_severity.get(Severity.CRITICAL.value, 0)),
        )
    console.print(table)


@history.command()
@click.argument("scan_id")
@click.pass_context
def show(ctx: click.Context, scan_id: str) -> None:
    """Show the findings of one scan."""

    async def _show(app: AppContext):
        result = await app.history.load_result(scan_id)
        if result is None:
            raise NotFound(f"No stored result for scan '{scan_id}'")
        return result

    result = run_with_context(ctx, _show)
    console.print(
        f"[bold]{result.target_path}[/bold] ({result.config.kind.value}), "
        f"{result.statistics.finding_count} finding(s) in {result.duration:.2f}s\n"
    )
    if not result.findings:
        return

    table = Table()
    table.add_column("Severity", width=10)
    table.add_column("Rule")
    table.add_column("File", style="cyan")
    table.add_column("Line", justify="right")
    table.add_column("Confidence", justify="right")
    for finding in result.findings:
        table.add_row(
            severity_label(finding.severity),
            finding.rule_id,
            shorten_path(finding.file_path, result.target_path),
            str(finding.start_line),
            f"{finding.confidence}%",
        )
    console.print(table)


@history.command()
@click.argument("scan_id")
@click.pass_context
def remove(ctx: click.Context, scan_id: str) -> None:
    """Delete a scan and its stored result."""

    async def _remove(app: AppContext) -> None:
        if not await app.history.remove_history(scan_id):
            raise NotFound(f"Scan '{scan_id}' not in history")

    run_with_context(ctx, _remove)
    console.print(f"Removed scan {scan_id}")
