"""Display and formatting functions for the treeissues CLI."""

from __future__ import annotations

from typing import TYPE_CHECKING

import typer

from treeissues.constants import PRIORITY_COLORS, STATUS_COLORS, STATUS_SYMBOLS

if TYPE_CHECKING:
    from treeissues.models import Issue

_DT_FMT = "%Y-%m-%d %H:%M:%S"


def _styled_key(label: str) -> str:
    """Style a field label as bold cyan."""
    return typer.style(label, fg="cyan", bold=True)


def _user_label(user_id: str, username: str | None) -> str:
    return f"{username} ({user_id})" if username else user_id


def format_issue_brief(issue: Issue) -> str:
    """Format issue for one-line display with color coding."""
    symbol = STATUS_SYMBOLS.get(issue.status.value, "?")
    status_str = typer.style(
        f"{symbol} {issue.status.value}",
        fg=STATUS_COLORS.get(issue.status.value, "white"),
    )
    priority_str = typer.style(
        f"[{issue.priority.value}]",
        fg=PRIORITY_COLORS.get(issue.priority.value, "white"),
        bold=True,
    )
    tags_str = ""
    if issue.tags:
        tags_str = " " + typer.style(f"[{', '.join(issue.tags)}]", fg="cyan")
    title = typer.style(issue.title, dim=True) if issue.is_closed() else issue.title
    return f"{status_str} {priority_str} {issue.issue_id}: {title}{tags_str}"


def format_issue_full(issue: Issue) -> str:
    """Format issue for full display."""
    key = _styled_key
    lines = [
        f"{key('ID:')} {issue.issue_id}",
        f"{key('Tree:')} {issue.tree_id}",
        f"{key('Title:')} {issue.title}",
        "",
        f"{key('Status:')} {issue.status.value}",
        f"{key('Priority:')} {issue.priority.value}",
        f"{key('Creator:')} {_user_label(issue.creator.user_id, issue.creator.username)}",
    ]

    if issue.assignees:
        names = ", ".join(_user_label(a.user_id, a.username) for a in issue.assignees)
        lines.append(f"{key('Assignees:')} {names}")
    if issue.nodes:
        lines.append(f"{key('Nodes:')} {', '.join(issue.node_ids)}")
    if issue.tags:
        lines.append(f"{key('Tags:')} {', '.join(issue.tags)}")
    if issue.due_date:
        lines.append(f"{key('Due:')} {issue.due_date.strftime(_DT_FMT)}")

    lines.append(f"{key('Created:')} {issue.created_at.strftime(_DT_FMT)}")
    lines.append(f"{key('Updated:')} {issue.updated_at.strftime(_DT_FMT)}")
    if issue.resolved_at:
        resolved_line = f"{key('Resolved:')} {issue.resolved_at.strftime(_DT_FMT)}"
        if issue.resolved_by:
            resolved_line += f" by {issue.resolved_by}"
        lines.append(resolved_line)

    if issue.description:
        lines.append(f"\n{key('Description:')}\n{issue.description}")

    if issue.comments:
        lines.append(f"\n{key('Comments:')}")
        for comment in issue.comments:
            ts = comment.created_at.strftime(_DT_FMT)
            lines.append(f"  [{comment.comment_id}] {comment.user_id} ({ts})")
            lines.append(f"  {comment.content}")

    return "\n".join(lines)


def print_issue_table(issues: list[Issue]) -> None:
    """Print issues as a table."""
    from rich import box
    from rich.console import Console
    from rich.table import Table

    table = Table(
        show_header=True,
        header_style="bold",
        box=box.ROUNDED,
        pad_edge=False,
        show_edge=False,
    )
    table.add_column("ID", no_wrap=True)
    table.add_column("Status", no_wrap=True)
    table.add_column("Priority", no_wrap=True)
    table.add_column("Title", overflow="fold")
    table.add_column("Assignees", overflow="fold")
    table.add_column("Nodes", overflow="fold")
    table.add_column("Created", no_wrap=True)

    for issue in issues:
        table.add_row(
            issue.issue_id,
            f"[{STATUS_COLORS.get(issue.status.value, 'white')}]"
            f"{issue.status.value}[/]",
            f"[{PRIORITY_COLORS.get(issue.priority.value, 'white')}]"
            f"{issue.priority.value}[/]",
            issue.title,
            ", ".join(a.username or a.user_id for a in issue.assignees),
            ", ".join(issue.node_ids),
            issue.created_at.strftime("%Y-%m-%d %H:%M"),
        )

    Console().print(table)
