"""Assign command for the treeissues CLI."""

from __future__ import annotations

import typer

from treeissues.errors import IssueError
from treeissues.models import issue_to_dict

from ._helpers import STORE_DIR_HELP, fail, get_storage, parse_user
from ._json_state import echo_error, echo_issue_json, is_json_output


def register(app: typer.Typer) -> None:
    """Register assign command."""

    @app.command()
    def assign(
        issue_id: str = typer.Argument(..., help="Issue ID"),
        users: list[str] | None = typer.Argument(
            None,
            help="Full assignee list as USER_ID or USER_ID:USERNAME",
        ),
        clear: bool = typer.Option(False, "--clear", help="Remove all assignees"),
        json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
        store_dir: str | None = typer.Option(None, "--dir", help=STORE_DIR_HELP),
    ) -> None:
        """Set the complete assignee list of an issue.

        Users not listed are unassigned. Listed users get a fresh
        assignment time.
        """
        if not users and not clear:
            echo_error("Provide the assignees to set, or --clear")
            raise typer.Exit(1)
        if users and clear:
            echo_error("Cannot combine assignees with --clear")
            raise typer.Exit(1)

        try:
            refs = [parse_user(u) for u in users or []]
            with get_storage(store_dir) as storage:
                issue = storage.set_assignees(issue_id, refs)
        except IssueError as e:
            fail(e)

        if is_json_output(json_output):
            echo_issue_json(issue_to_dict(issue))
        elif issue.assignees:
            names = ", ".join(a.username or a.user_id for a in issue.assignees)
            typer.echo(f"✓ Assigned {issue.issue_id} to {names}")
        else:
            typer.echo(f"✓ Cleared assignees of {issue.issue_id}")
