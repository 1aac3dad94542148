"""Helpers shared by CLI commands."""

from __future__ import annotations

import asyncio
import sys
from collections.abc import Awaitable, Callable
from typing import TypeVar

import click
from rich.console import Console

from codeseceval.app import AppContext
from codeseceval.errors import SecEvalError
from codeseceval.rules.models import Severity

console = Console(stderr=True)

SEVERITY_COLORS = {
    Severity.CRITICAL: "red",
    Severity.HIGH: "magenta",
    Severity.MEDIUM: "yellow",
    Severity.LOW: "cyan",
    Severity.INFO: "blue",
}

T = TypeVar("T")


def run_with_context(
    ctx: click.Context,
    fn: Callable[[AppContext], Awaitable[T]],
    **context_kwargs,
) -> T:
    """Build an AppContext, run ``fn`` with it and close it again.

    SecEvalError is reported in red and exits with status 1.
    """
    in_memory = bool(ctx.obj.get("in_memory")) if ctx.obj else False

    async def _run() -> T:
        app = await AppContext.create(in_memory=in_memory, **context_kwargs)
        try:
            return await fn(app)
        finally:
            await app.close()

    try:
        return asyncio.run(_run())
    except SecEvalError as e:
        console.print(f"[red]{type(e).__name__}:[/red] {e}")
        sys.exit(1)


def severity_label(severity: Severity) -> str:
    color = SEVERITY_COLORS.get(severity, "white")
    return f"[{color}]{severity.value}[/{color}]"


def shorten_path(file_path: str, base_dir: str) -> str:
    """Shorten file path relative to scan directory."""
    if file_path.startswith(base_dir):
        return file_path[len(base_dir) :].lstrip("/")
    return file_path
