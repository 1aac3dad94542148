"""CLI commands: codeseceval rules — inspect and manage the rule catalogue."""

from __future__ import annotations

import json
from pathlib import Path

import click
import yaml
from rich.table import Table

from codeseceval.app import AppContext
from codeseceval.cli.common import console, run_with_context, severity_label
from codeseceval.errors import NotFound, Protected
from codeseceval.rules.loader import load_bundle, rule_to_dict
from codeseceval.rules.models import SearchCriteria, Severity
from codeseceval.scanner.languages import normalize_language


@click.group()
def rules() -> None:
    """List, tune, import and export detection rules."""


@rules.command("list")
@click.option("--keyword", "-k", default="", help="Match name, description or tag.")
@click.option(
    "--severity",
    "-s",
    multiple=True,
    type=click.Choice([s.value for s in Severity]),
    help="Only rules of this severity.",
)
@click.option("--category", "-c", multiple=True, help="Only rules in this category.")
@click.option("--language", "-l", multiple=True, help="Only rules for this language.")
@click.option("--enabled/--disabled", "enabled", default=None, help="Filter by state.")
@click.option("--custom", is_flag=True, help="Only custom rules.")
@click.pass_context
def list_rules(
    ctx: click.Context,
    keyword: str,
    severity: tuple[str, ...],
    category: tuple[str, ...],
    language: tuple[str, ...],
    enabled: bool | None,
    custom: bool,
) -> None:
    """List rules matching every given filter."""
    criteria = SearchCriteria(
        keyword=keyword,
        severities=frozenset(Severity(s) for s in severity),
        categories=frozenset(category),
        languages=frozenset(normalize_language(lang) for lang in language),
        enabled=enabled,
        builtin=False if custom else None,
    )

    async def _list(app: AppContext):
        return app.rules.search(criteria)

    found = run_with_context(ctx, _list)
    if not found:
        console.print("[dim]No rules match.[/dim]")
        return

    table = Table(title=f"Rules ({len(found)})")
    table.add_column("ID", style="bold")
    table.add_column("Name")
    table.add_column("Severity")
    table.add_column("Category")
    table.add_column("Languages")
    table.add_column("State")
    for rule in found:
        state = "[green]on[/green]" if rule.enabled else "[dim]off[/dim]"
        if not rule.builtin:
            state += " [cyan]custom[/cyan]"
        table.add_row(
            rule.id,
            rule.name,
            severity_label(rule.severity),
            rule.category,
            ", ".join(sorted(rule.languages)),
            state,
        )
    console.print(table)


@rules.command()
@click.argument("rule_id")
@click.pass_context
def show(ctx: click.Context, rule_id: str) -> None:
    """Show one rule as YAML."""

    async def _show(app: AppContext):
        rule = app.rules.get_rule(rule_id)
        if rule is None:
            raise NotFound(f"Rule '{rule_id}' not found")
        return rule

    rule = run_with_context(ctx, _show)
    click.echo(yaml.safe_dump(rule_to_dict(rule), sort_keys=False, allow_unicode=True))


def _set_enabled(ctx: click.Context, rule_ids: tuple[str, ...], enabled: bool) -> None:
    async def _toggle(app: AppContext) -> int:
        count = app.rules.batch_update(rule_ids, enabled=enabled)
        await app.save_rules()
        return count

    count = run_with_context(ctx, _toggle)
    verb = "Enabled" if enabled else "Disabled"
    console.print(f"{verb} {count} rule(s)")
    if count < len(rule_ids):
        console.print(f"[yellow]{len(rule_ids) - count} unknown id(s) skipped[/yellow]")


@rules.command()
@click.argument("rule_ids", nargs=-1, required=True)
@click.pass_context
def enable(ctx: click.Context, rule_ids: tuple[str, ...]) -> None:
    """Enable one or more rules."""
    _set_enabled(ctx, rule_ids, True)


@rules.command()
@click.argument("rule_ids", nargs=-1, required=True)
@click.pass_context
def disable(ctx: click.Context, rule_ids: tuple[str, ...]) -> None:
    """Disable one or more rules."""
    _set_enabled(ctx, rule_ids, False)


@rules.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def add(ctx: click.Context, path: str) -> None:
    """Add a custom rule defined in a YAML file."""
    with open(path) as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            console.print(f"[red]Invalid YAML:[/red] {e}")
            raise SystemExit(1)
    if not isinstance(data, dict):
        console.print("[red]A rule file must contain a mapping[/red]")
        raise SystemExit(1)

    async def _add(app: AppContext):
        if not app.settings.enable_custom_rules:
            raise Protected("Custom rules are disabled in settings")
        rule = app.rules.add_rule(data)
        await app.save_rules()
        return rule

    rule = run_with_context(ctx, _add)
    console.print(f"[green]Added rule {rule.id}[/green] ({rule.name})")


@rules.command()
@click.argument("rule_id")
@click.pass_context
def delete(ctx: click.Context, rule_id: str) -> None:
    """Delete a custom rule. Built-in rules can only be disabled."""

    async def _delete(app: AppContext) -> None:
        app.rules.delete_rule(rule_id)
        await app.save_rules()

    run_with_context(ctx, _delete)
    console.print(f"Deleted rule {rule_id}")


@rules.command()
@click.pass_context
def stats(ctx: click.Context) -> None:
    """Show counts by state, severity, category and language."""

    async def _stats(app: AppContext):
        return app.rules.statistics()

    s = run_with_context(ctx, _stats)
    console.print(
        f"[bold]{s.total}[/bold] rules: {s.enabled} enabled, {s.disabled} disabled, "
        f"{s.builtin} built-in, {s.custom} custom\n"
    )

    table = Table(show_header=True)
    table.add_column("Severity")
    table.add_column("Rules", justify="right")
    for sev in Severity:
        table.add_row(severity_label(sev), str(s.by_severity.get(sev.value, 0)))
    console.print(table)

    for title, counts in (("Category", s.by_category), ("Language", s.by_language)):
        table = Table(show_header=True)
        table.add_column(title)
        table.add_column("Rules", justify="right")
        for name, count in sorted(counts.items()):
            table.add_row(name, str(count))
        console.print(table)


@rules.command()
@click.option("--output", "-o", type=click.Path(dir_okay=False), help="Write to a file.")
@click.option("--rule", "-r", "rule_ids", multiple=True, help="Only export these rules.")
@click.option("--no-rule-sets", is_flag=True, help="Leave rule sets out of the bundle.")
@click.pass_context
def export(
    ctx: click.Context,
    output: str | None,
    rule_ids: tuple[str, ...],
    no_rule_sets: bool,
) -> None:
    """Export rules as a JSON bundle."""

    async def _export(app: AppContext) -> dict:
        return app.rules.export_rules(
            rule_ids or None, include_rule_sets=not no_rule_sets
        )

    bundle = run_with_context(ctx, _export)
    text = json.dumps(bundle, indent=2)
    if output:
        Path(output).write_text(text + "\n")
        console.print(f"Exported {len(bundle['rules'])} rule(s) to {output}")
    else:
        click.echo(text)


@rules.command("import")
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@click.option("--overwrite", is_flag=True, help="Replace rules that already exist.")
@click.pass_context
def import_(ctx: click.Context, path: str, overwrite: bool) -> None:
    """Import a JSON or YAML rule bundle."""
    try:
        bundle = load_bundle(Path(path))
    except (ValueError, yaml.YAMLError) as e:
        console.print(f"[red]Cannot read bundle:[/red] {e}")
        raise SystemExit(1)

    async def _import(app: AppContext):
        if not app.settings.enable_custom_rules:
            raise Protected("Custom rules are disabled in settings")
        report = app.rules.import_rules(bundle, overwrite=overwrite)
        await app.save_rules()
        return report

    report = run_with_context(ctx, _import)
    console.print(
        f"Imported [green]{report.imported}[/green], skipped {report.skipped}, "
        f"[red]{len(report.errors)}[/red] error(s)"
    )
    for error in report.errors:
        console.print(f"  [red]•[/red] {error}")


@rules.command()
@click.pass_context
def sets(ctx: click.Context) -> None:
    """List rule sets."""

    async def _sets(app: AppContext):
        return app.rules.list_rule_sets()

    rule_sets = run_with_context(ctx, _sets)
    table = Table(title="Rule sets")
    table.add_column("ID", style="bold")
    table.add_column("Name")
    table.add_column("Rules", justify="right")
    table.add_column("Description")
    for rule_set in rule_sets:
        table.add_row(rule_set.id, rule_set.name, str(len(rule_set.rules)), rule_set.description)
    console.print(table)


@rules.command()
@click.confirmation_option(prompt="Discard custom rules and restore the built-in catalogue?")
@click.pass_context
def reset(ctx: click.Context) -> None:
    """Restore the packaged rule catalogue."""

    async def _reset(app: AppContext) -> None:
        app.rules.reset()
        await app.save_rules()

    run_with_context(ctx, _reset)
    console.print("Rule catalogue reset")
