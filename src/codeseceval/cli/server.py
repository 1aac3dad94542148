"""CLI command: codeseceval server — start the HTTP API."""

from __future__ import annotations

import click

from codeseceval.cli.common import console
from codeseceval.config import SecEvalConfig


@click.command()
@click.option(
    "--port",
    type=int,
    default=None,
    help="Port to listen on (default: 8471).",
)
@click.pass_context
def server(ctx: click.Context, port: int | None) -> None:
    """Start the CodeSecEval HTTP API."""
    try:
        import uvicorn
    except ImportError:
        console.print(
            "[red]Web dependencies not installed.[/red]\n"
            "Install with: pip install codeseceval[web]"
        )
        raise SystemExit(1)

    config = SecEvalConfig.load()
    if port is not None:
        config.web_port = port

    console.print(
        f"[bold]CodeSecEval[/bold] API starting on "
        f"[cyan]http://{config.web_host}:{config.web_port}/api/docs[/cyan]"
    )
    console.print("  [dim]Bound to 127.0.0.1 only[/dim]\n")

    import asyncio

    from codeseceval.web.app import create_app

    in_memory = bool(ctx.obj.get("in_memory")) if ctx.obj else False

    async def _run() -> None:
        app = await create_app(config, in_memory=in_memory)
        server_config = uvicorn.Config(
            app,
            host=config.web_host,
            port=config.web_port,
            log_level="info",
        )
        srv = uvicorn.Server(server_config)
        await srv.serve()

    asyncio.run(_run())
