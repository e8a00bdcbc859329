"""Full-replace assignment of users to an issue."""

from __future__ import annotations

import dataclasses
from typing import TYPE_CHECKING

from treeissues.clock import next_timestamp
from treeissues.models import Assignee, Issue, UserRef, validate_unique_user_ids

if TYPE_CHECKING:
    from collections.abc import Iterable
    from datetime import datetime


def stamp_assignees(
    users: Iterable[UserRef | Assignee],
    assigned_at: datetime,
) -> tuple[Assignee, ...]:
    """Turn a user list into assignees all stamped with *assigned_at*.

    Raises:
        ValidationError: If a user ID is empty or appears twice.
    """
    refs = [UserRef(user_id=u.user_id, username=u.username) for u in users]
    validate_unique_user_ids(refs)
    return tuple(
        Assignee(user_id=ref.user_id, username=ref.username, assigned_at=assigned_at)
        for ref in refs
    )


def replace_assignees(
    existing: Issue,
    new_assignees: Iterable[UserRef | Assignee],
    *,
    now: datetime | None = None,
) -> Issue:
    """Set the complete assignee list of an issue.

    Users missing from *new_assignees* are dropped. Every listed user gets a
    fresh ``assigned_at``, including users that were already assigned.

    Args:
        existing: The issue to modify.
        new_assignees: The full desired membership, in display order.
        now: Mutation time (defaults to the current time).

    Returns:
        A new issue snapshot with ``updated_at`` advanced.

    Raises:
        ValidationError: If *new_assignees* repeats a user ID.
    """
    stamp = next_timestamp(existing.updated_at, now)
    assignees = stamp_assignees(new_assignees, stamp)
    return dataclasses.replace(existing, assignees=assignees, updated_at=stamp)
