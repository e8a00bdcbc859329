"""Delete command for the treeissues CLI."""

from __future__ import annotations

import typer

from treeissues.errors import IssueError

from ._helpers import STORE_DIR_HELP, fail, get_storage
from ._json_state import echo_issue_json, is_json_output


def register(app: typer.Typer) -> None:
    """Register delete command."""

    @app.command()
    def delete(
        issue_id: str = typer.Argument(..., help="Issue ID"),
        json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
        store_dir: str | None = typer.Option(None, "--dir", help=STORE_DIR_HELP),
    ) -> None:
        """Permanently delete an issue."""
        try:
            with get_storage(store_dir) as storage:
                issue = storage.delete(issue_id)
        except IssueError as e:
            fail(e)

        if is_json_output(json_output):
            echo_issue_json({"deleted": issue.issue_id})
        else:
            typer.echo(f"✓ Deleted {issue.issue_id}: {issue.title}")
