"""Update command for the treeissues CLI."""

from __future__ import annotations

from typing import Any

import typer

from treeissues.clock import utcnow
from treeissues.constants import parse_tags
from treeissues.errors import IssueError
from treeissues.models import NodeRef, PartialUpdate, issue_to_dict, parse_datetime

from ._helpers import STORE_DIR_HELP, fail, get_storage
from ._json_state import echo_error, echo_issue_json, is_json_output


def register(app: typer.Typer) -> None:
    """Register update command."""

    @app.command()
    def update(
        issue_id: str = typer.Argument(..., help="Issue ID"),
        title: str | None = typer.Option(None, "--title", help="New title"),
        description: str | None = typer.Option(
            None,
            "--description",
            "-d",
            help="New description",
        ),
        status: str | None = typer.Option(
            None,
            "--status",
            "-s",
            help="New status (open, in_progress, resolved, closed)",
        ),
        priority: str | None = typer.Option(
            None,
            "--priority",
            "-p",
            help="New priority (low, medium, high, urgent)",
        ),
        tags: str | None = typer.Option(
            None,
            "--tags",
            "-t",
            help='Tags, comma or space separated (replaces existing; "" clears)',
        ),
        nodes: list[str] | None = typer.Option(
            None,
            "--node",
            "-n",
            help="Tree node (repeatable; replaces existing)",
        ),
        clear_nodes: bool = typer.Option(
            False,
            "--clear-nodes",
            help="Detach the issue from all nodes",
        ),
        due: str | None = typer.Option(
            None,
            "--due",
            help='Due date (ISO-8601; "" clears)',
        ),
        resolved_by: str | None = typer.Option(
            None,
            "--resolved-by",
            help="Record who resolved the issue (also stamps the resolve time)",
        ),
        json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
        store_dir: str | None = typer.Option(None, "--dir", help=STORE_DIR_HELP),
    ) -> None:
        """Update fields of an issue. Omitted fields are left unchanged."""
        if nodes and clear_nodes:
            echo_error("Cannot use both --node and --clear-nodes")
            raise typer.Exit(1)

        try:
            fields: dict[str, Any] = {}
            if title is not None:
                fields["title"] = title
            if description is not None:
                fields["description"] = description
            if status is not None:
                fields["status"] = status
            if priority is not None:
                fields["priority"] = priority
            if tags is not None:
                fields["tags"] = tuple(parse_tags(tags))
            if nodes:
                fields["nodes"] = tuple(NodeRef(node_id=n) for n in nodes)
            if clear_nodes:
                fields["nodes"] = ()
            if due is not None:
                fields["due_date"] = parse_datetime(due) if due else None
            if resolved_by is not None:
                fields["resolved_by"] = resolved_by or None
                fields["resolved_at"] = utcnow() if resolved_by else None

            if not fields:
                echo_error("No updates provided")
                raise typer.Exit(1)

            with get_storage(store_dir) as storage:
                issue = storage.update(issue_id, PartialUpdate(**fields))
        except IssueError as e:
            fail(e)

        if is_json_output(json_output):
            echo_issue_json(issue_to_dict(issue))
        else:
            typer.echo(f"✓ Updated {issue.issue_id}: {issue.title}")
