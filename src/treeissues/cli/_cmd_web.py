"""Web server command for the treeissues CLI."""

from __future__ import annotations

from pathlib import Path

import typer

from treeissues.config import find_store_dir, get_setting

from ._helpers import STORE_DIR_HELP


def register(app: typer.Typer) -> None:
    """Register serve command."""

    @app.command()
    def serve(
        host: str | None = typer.Option(None, help="Host to bind to"),
        port: int | None = typer.Option(None, help="Port to listen on"),
        store_dir: str | None = typer.Option(None, "--dir", help=STORE_DIR_HELP),
    ) -> None:
        """Start the issue HTTP API server."""
        try:
            import uvicorn
        except ImportError:
            typer.echo(
                "Error: web dependencies not installed. "
                "Install with: pip install 'treeissues[web]'",
                err=True,
            )
            raise typer.Exit(1) from None

        from treeissues.web import create_app

        resolved_dir = store_dir or find_store_dir()
        if not Path(resolved_dir).is_dir():
            typer.echo(
                "Error: treeissues is not initialized. Run 'tis init' first.",
                err=True,
            )
            raise typer.Exit(1)

        resolved_host = host or get_setting(resolved_dir, "web_host")
        resolved_port = port or int(get_setting(resolved_dir, "web_port"))

        typer.echo(f"treeissues → http://{resolved_host}:{resolved_port}")
        uvicorn.run(
            create_app(store_dir=resolved_dir),
            host=resolved_host,
            port=resolved_port,
            log_level="warning",
        )
