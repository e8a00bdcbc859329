"""Read/display commands for the treeissues CLI."""

from __future__ import annotations

import typer

from treeissues.errors import IssueError
from treeissues.models import filter_from_params, issue_to_dict

from ._formatting import format_issue_brief, format_issue_full, print_issue_table
from ._helpers import STORE_DIR_HELP, fail, get_storage
from ._json_state import echo_issue_json, is_json_output


def register(app: typer.Typer) -> None:
    """Register show and list commands."""

    @app.command()
    def show(
        issue_id: str = typer.Argument(..., help="Issue ID"),
        json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
        store_dir: str | None = typer.Option(None, "--dir", help=STORE_DIR_HELP),
    ) -> None:
        """Show an issue with its comments."""
        try:
            with get_storage(store_dir) as storage:
                issue = storage.get(issue_id)
        except IssueError as e:
            fail(e)

        if is_json_output(json_output):
            echo_issue_json(issue_to_dict(issue))
        else:
            typer.echo(format_issue_full(issue))

    @app.command("list")
    def list_issues(
        tree_id: str | None = typer.Option(None, "--tree", "-T", help="Tree ID"),
        node_id: str | None = typer.Option(None, "--node", "-n", help="Node ID"),
        status: str | None = typer.Option(None, "--status", "-s", help="Status"),
        priority: str | None = typer.Option(
            None,
            "--priority",
            "-p",
            help="Priority",
        ),
        table: bool = typer.Option(False, "--table", help="Show as a table"),
        json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
        store_dir: str | None = typer.Option(None, "--dir", help=STORE_DIR_HELP),
    ) -> None:
        """List issues, newest first."""
        try:
            criteria = filter_from_params(tree_id, node_id, status, priority)
            with get_storage(store_dir) as storage:
                issues = storage.find(criteria)
        except IssueError as e:
            fail(e)

        if is_json_output(json_output):
            echo_issue_json([issue_to_dict(i) for i in issues])
        elif not issues:
            typer.echo("No issues found")
        elif table:
            print_issue_table(issues)
        else:
            for issue in issues:
                typer.echo(format_issue_brief(issue))
