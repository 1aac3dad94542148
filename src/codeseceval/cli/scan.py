"""CLI command: codeseceval scan <directory> — run one scan session."""

from __future__ import annotations

import sys
from pathlib import Path

import click
from rich.progress import BarColumn, Progress, TextColumn, TimeRemainingColumn
from rich.table import Table

from codeseceval.app import AppContext
from codeseceval.cli.common import console, run_with_context, severity_label, shorten_path
from codeseceval.errors import NotFound
from codeseceval.rules.models import Severity
from codeseceval.scanner.matcher import ConfidenceHeuristic, MatchingPipeline
from codeseceval.scanner.models import ScanFailure, ScanKind, ScanResult, ScanSession


@click.command()
@click.argument("directory", type=click.Path(exists=True))
@click.option(
    "--kind",
    type=click.Choice([k.value for k in ScanKind]),
    default=ScanKind.QUICK.value,
    show_default=True,
    help="Scan kind recorded in history.",
)
@click.option("--include", "-i", multiple=True, help="Only scan paths matching these globs.")
@click.option("--exclude", "-e", multiple=True, help="Skip paths matching these globs.")
@click.option("--include-tests", is_flag=True, help="Also scan test files.")
@click.option("--max-depth", type=int, default=None, help="Maximum directory depth.")
@click.option("--rule", "-r", "rule_ids", multiple=True, help="Only apply these rule ids.")
@click.option("--rule-set", "rule_set", default=None, help="Only apply rules of this rule set.")
@click.option("--timeout", type=float, default=None, help="Give up after this many seconds.")
@click.option(
    "--seed",
    type=int,
    default=None,
    help="Enable confidence scoring with this random seed.",
)
@click.option(
    "--min-confidence",
    type=click.IntRange(70, 100),
    default=70,
    show_default=True,
    help="With --seed, drop findings scored below this confidence.",
)
@click.pass_context
def scan(
    ctx: click.Context,
    directory: str,
    kind: str,
    include: tuple[str, ...],
    exclude: tuple[str, ...],
    include_tests: bool,
    max_depth: int | None,
    rule_ids: tuple[str, ...],
    rule_set: str | None,
    timeout: float | None,
    seed: int | None,
    min_confidence: int,
) -> None:
    """Scan source code for security-relevant patterns."""
    pipeline = None
    if seed is not None:
        pipeline = MatchingPipeline(
            ConfidenceHeuristic(seed=seed, suppress_below=min_confidence)
        )

    async def _scan(app: AppContext) -> ScanResult | ScanFailure | ScanSession:
        selected = list(rule_ids) if rule_ids or rule_set else None
        if rule_set:
            if app.rules.get_rule_set(rule_set) is None:
                raise NotFound(f"Rule set '{rule_set}' not found")
            selected.extend(r.id for r in app.rules.rule_set_rules(rule_set))

        config = app.scan_config(
            directory,
            kind=ScanKind(kind),
            include_paths=include,
            exclude_paths=exclude,
            include_test_files=include_tests or None,
            max_depth=max_depth,
            rule_ids=tuple(selected) if selected is not None else None,
            timeout=timeout,
        )

        console.print(
            f"[bold]CodeSecEval[/bold] scanning [cyan]{directory}[/cyan] "
            f"([cyan]{kind}[/cyan])\n"
        )

        outcome: dict[str, ScanResult | ScanFailure | ScanSession] = {}
        events = app.orchestrator.events

        with Progress(
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TextColumn("{task.completed}/{task.total} files"),
            TimeRemainingColumn(),
            console=console,
            transient=True,
        ) as progress:
            task = progress.add_task("Discovering", total=None)

            def _on_progress(session: ScanSession) -> None:
                progress.update(
                    task,
                    description=session.current_file or "Scanning",
                    completed=session.processed_files,
                    total=session.total_files or None,
                )

            disconnects = [
                events.scan_progress.connect(_on_progress),
                events.scan_completed.connect(lambda r: outcome.setdefault("result", r)),
                events.scan_failed.connect(lambda f: outcome.setdefault("result", f)),
                events.scan_cancelled.connect(lambda s: outcome.setdefault("result", s)),
            ]
            try:
                session_id = app.orchestrator.start_scan(config)
                final = await app.orchestrator.wait(session_id)
            finally:
                for disconnect in disconnects:
                    disconnect()

        return outcome.get("result", final)

    outcome = run_with_context(ctx, _scan, pipeline=pipeline)

    if isinstance(outcome, ScanFailure):
        console.print(f"[red]Scan failed:[/red] {outcome.message}")
        sys.exit(1)
    if isinstance(outcome, ScanSession):
        console.print(f"[yellow]Scan cancelled:[/yellow] {outcome.error}")
        sys.exit(1)

    _print_result(outcome, directory)

    critical = outcome.statistics.by_severity.get(Severity.CRITICAL.value, 0)
    if critical > 0:
        console.print(f"\n[red]{critical} critical finding(s)[/red]")
        sys.exit(1)


def _print_result(result: ScanResult, directory: str) -> None:
    base = str(Path(directory).resolve())

    if not result.findings:
        console.print("[green]No findings.[/green]")
    else:
        # Sort by severity (critical first), then file, then line
        findings = sorted(
            result.findings,
            key=lambda f: (-f.severity.rank, f.file_path, f.start_line),
        )

        table = Table(title="Findings", show_lines=False)
        table.add_column("Severity", style="bold", width=10)
        table.add_column("Rule")
        table.add_column("File", style="cyan")
        table.add_column("Line", justify="right")
        table.add_column("Code", max_width=50)

        for finding in findings:
            table.add_row(
                severity_label(finding.severity),
                f"{finding.rule_id} {finding.rule_name}",
                shorten_path(finding.file_path, base),
                str(finding.start_line),
                finding.snippet[:50],
            )
        console.print(table)

    for warning in result.warnings:
        console.print(f"[yellow]warning:[/yellow] {warning}")

    stats = result.statistics
    console.print(
        f"\nScanned {stats.scanned_files} files "
        f"({stats.skipped_files} skipped) "
        f"in {result.duration:.2f}s"
    )
    console.print(f"Total findings: {stats.finding_count}")
    console.print(f"Scan id: {result.scan_id}")
