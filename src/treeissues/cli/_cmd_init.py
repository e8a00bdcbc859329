"""Initialization command for the treeissues CLI."""

from __future__ import annotations

from pathlib import Path

import typer

from treeissues.config import DEFAULTS, get_config_path, load_config, save_config
from treeissues.constants import STORE_DIRNAME
from treeissues.errors import IssueError

from ._helpers import fail, get_storage
from ._json_state import echo_issue_json, is_json_output


def register(app: typer.Typer) -> None:
    """Register init command."""

    @app.command()
    def init(
        store_dir: str = typer.Option(
            STORE_DIRNAME,
            "--dir",
            help="Directory to create the store in",
        ),
        json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
    ) -> None:
        """Initialize a new issue store."""
        try:
            config_path = get_config_path(store_dir)
            existed = config_path.exists()
            config = load_config(store_dir)
            for key, value in DEFAULTS.items():
                config.setdefault(key, value)
            Path(store_dir).mkdir(parents=True, exist_ok=True)
            save_config(store_dir, config)

            with get_storage(store_dir, create_dir=True) as storage:
                storage.path.touch(exist_ok=True)
                count = len(storage)
        except IssueError as e:
            fail(e)
        except OSError as e:
            typer.echo(f"Error: {e}", err=True)
            raise typer.Exit(1) from e

        if is_json_output(json_output):
            echo_issue_json(
                {"store_dir": str(store_dir), "issues": count, "existing": existed},
            )
        elif existed:
            typer.echo(f"✓ Store already initialized at {store_dir} ({count} issues)")
        else:
            typer.echo(f"✓ Initialized issue store at {store_dir}")
