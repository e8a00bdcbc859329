"""Issue filtering for list views."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable

    from treeissues.models import Issue, IssueFilter


def matches(issue: Issue, criteria: IssueFilter) -> bool:
    """Check whether an issue satisfies every criterion that is set."""
    if criteria.tree_id is not None and issue.tree_id != criteria.tree_id:
        return False
    if criteria.node_id is not None and criteria.node_id not in issue.node_ids:
        return False
    if criteria.status is not None and issue.status != criteria.status:
        return False
    return criteria.priority is None or issue.priority == criteria.priority


def sort_newest_first(issues: Iterable[Issue]) -> list[Issue]:
    """Order issues by creation time, newest first (ties by issue ID)."""
    return sorted(issues, key=lambda i: (i.created_at, i.issue_id), reverse=True)


def filter_issues(issues: Iterable[Issue], criteria: IssueFilter) -> list[Issue]:
    """Return the issues matching *criteria*, newest first."""
    if criteria.is_empty():
        return sort_newest_first(issues)
    return sort_newest_first(i for i in issues if matches(i, criteria))
