"""Create command for the treeissues CLI."""

from __future__ import annotations

import typer

from treeissues.constants import parse_tags
from treeissues.errors import IssueError
from treeissues.models import (
    IssueDraft,
    NodeRef,
    Status,
    issue_to_dict,
    parse_datetime,
)

from ._helpers import STORE_DIR_HELP, fail, get_default_operator, get_storage, parse_user
from ._json_state import echo_issue_json, is_json_output


def register(app: typer.Typer) -> None:
    """Register create command."""

    @app.command()
    def create(
        title: str = typer.Argument(..., help="Issue title"),
        tree_id: str = typer.Option(..., "--tree", "-T", help="Owning tree ID"),
        description: str = typer.Option(
            "",
            "--description",
            "-d",
            help="Issue description",
        ),
        priority: str | None = typer.Option(
            None,
            "--priority",
            "-p",
            help="Priority (low, medium, high, urgent)",
        ),
        status: str = typer.Option(
            Status.OPEN.value,
            "--status",
            "-s",
            help="Initial status (open, in_progress, resolved, closed)",
        ),
        nodes: list[str] | None = typer.Option(
            None,
            "--node",
            "-n",
            help="Tree node to attach (repeatable)",
        ),
        tags: str | None = typer.Option(
            None,
            "--tags",
            "-t",
            help="Tags, comma or space separated",
        ),
        assignees: list[str] | None = typer.Option(
            None,
            "--assignee",
            "-a",
            help="Assignee as USER_ID or USER_ID:USERNAME (repeatable)",
        ),
        due: str | None = typer.Option(None, "--due", help="Due date (ISO-8601)"),
        issue_id: str | None = typer.Option(
            None,
            "--id",
            help="Explicit issue ID (generated if omitted)",
        ),
        created_by: str | None = typer.Option(
            None,
            "--by",
            help="Creator user ID (default: git user.email)",
        ),
        json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
        store_dir: str | None = typer.Option(None, "--dir", help=STORE_DIR_HELP),
    ) -> None:
        """Create a new issue."""
        try:
            draft = IssueDraft(
                tree_id=tree_id,
                title=title,
                creator=parse_user(created_by or get_default_operator()),
                description=description,
                issue_id=issue_id,
                status=status,
                priority=priority,
                due_date=parse_datetime(due),
                assignees=tuple(parse_user(a) for a in assignees or []),
                nodes=tuple(NodeRef(node_id=n) for n in nodes or []),
                tags=tuple(parse_tags(tags or "")),
            )
            with get_storage(store_dir) as storage:
                issue = storage.create(draft)
        except IssueError as e:
            fail(e)

        if is_json_output(json_output):
            echo_issue_json(issue_to_dict(issue))
        else:
            typer.echo(f"✓ Created {issue.issue_id}: {issue.title}")
