"""Comment command for the treeissues CLI."""

from __future__ import annotations

import typer

from treeissues.errors import IssueError
from treeissues.models import issue_to_dict

from ._helpers import STORE_DIR_HELP, fail, get_default_operator, get_storage
from ._json_state import echo_error, echo_issue_json, is_json_output


def register(app: typer.Typer) -> None:
    """Register comment command."""

    @app.command()
    def comment(
        issue_id: str = typer.Argument(..., help="Issue ID"),
        action: str = typer.Argument(..., help="Action: add or list"),
        text: str = typer.Option(None, "--text", "-t", help="Comment text (for add)"),
        author: str = typer.Option(None, "--by", help="Comment author user ID"),
        json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
        store_dir: str | None = typer.Option(None, "--dir", help=STORE_DIR_HELP),
    ) -> None:
        """Manage issue comments.

        Actions:
        - add: Append a comment to an issue
        - list: List all comments on an issue
        """
        if action not in ("add", "list"):
            echo_error(f"Unknown action '{action}'")
            typer.echo("Valid actions: add, list", err=True)
            raise typer.Exit(1)

        try:
            with get_storage(store_dir) as storage:
                if action == "add":
                    issue = storage.add_comment(
                        issue_id,
                        author or get_default_operator(),
                        text or "",
                    )
                else:
                    issue = storage.get(issue_id)
        except IssueError as e:
            fail(e)

        if action == "add":
            new_comment = issue.comments[-1]
            if is_json_output(json_output):
                echo_issue_json(issue_to_dict(issue))
            else:
                typer.echo(f"✓ Added comment {new_comment.comment_id}")
            return

        if is_json_output(json_output):
            echo_issue_json(issue_to_dict(issue)["comments"])
        elif not issue.comments:
            typer.echo("No comments")
        else:
            for c in issue.comments:
                typer.echo(f"[{c.comment_id}] {c.user_id} ({c.created_at.isoformat()})")
                typer.echo(f"  {c.content}")
