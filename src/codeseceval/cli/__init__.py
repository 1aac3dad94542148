"""CLI entry point — Click group with global options."""

from __future__ import annotations

import logging

import click

from codeseceval import __version__


@click.group()
@click.version_option(version=__version__, prog_name="codeseceval")
@click.option(
    "--ephemeral",
    is_flag=True,
    help="Keep rules and history in memory only (nothing is written to disk).",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.pass_context
def main(ctx: click.Context, ephemeral: bool, verbose: bool) -> None:
    """CodeSecEval — static security scanning of source trees."""
    ctx.ensure_object(dict)
    ctx.obj["in_memory"] = ephemeral
    ctx.obj["verbose"] = verbose

    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def _register_commands() -> None:
    from codeseceval.cli.history import history  # noqa: F811
    from codeseceval.cli.rules import rules  # noqa: F811
    from codeseceval.cli.scan import scan  # noqa: F811
    from codeseceval.cli.server import server  # noqa: F811
    from codeseceval.cli.settings import settings  # noqa: F811

    main.add_command(scan)
    main.add_command(rules)
    main.add_command(history)
    main.add_command(settings)
    main.add_command(server)


_register_commands()
