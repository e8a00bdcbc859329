"""Partial updates of an issue with field-level replace semantics."""

from __future__ import annotations

import dataclasses
import logging
from typing import TYPE_CHECKING, Any

from treeissues.assignees import stamp_assignees
from treeissues.clock import next_timestamp
from treeissues.errors import ValidationError
from treeissues.models import (
    NodeRef,
    UserRef,
    parse_datetime,
    parse_priority,
    parse_status,
    validate_description,
    validate_title,
    validate_unique_user_ids,
)

if TYPE_CHECKING:
    from datetime import datetime

    from treeissues.models import Issue, PartialUpdate

logger = logging.getLogger(__name__)


def _as_node(value: Any) -> NodeRef:
    if isinstance(value, NodeRef):
        return value
    if isinstance(value, str) and value:
        return NodeRef(node_id=value)
    msg = f"Invalid node reference: {value!r}"
    raise ValidationError(msg)


def _validated(name: str, value: Any) -> Any:
    """Validate and normalize one patch value."""
    if name == "title":
        return validate_title(value)
    if name == "description":
        return validate_description(value)
    if name == "status":
        return parse_status(value)
    if name == "priority":
        return parse_priority(value)
    if name in ("due_date", "resolved_at"):
        return parse_datetime(value)
    if name == "resolved_by":
        if value is not None and not isinstance(value, str):
            msg = "resolvedBy must be a string or null"
            raise ValidationError(msg)
        return value
    if name in ("assignees", "nodes", "tags") and isinstance(value, str):
        msg = f"Field {name} must be a list"
        raise ValidationError(msg)
    if name == "assignees":
        users = tuple(UserRef(user_id=u.user_id, username=u.username) for u in value)
        validate_unique_user_ids(users)
        return users
    if name == "nodes":
        return tuple(_as_node(n) for n in value)
    if name == "tags":
        tags = tuple(value)
        if not all(isinstance(t, str) for t in tags):
            msg = "Entries of tags must be strings"
            raise ValidationError(msg)
        return tags
    msg = f"Field {name} cannot be updated"
    raise ValidationError(msg)


def _same_membership(existing: Issue, users: tuple[UserRef, ...]) -> bool:
    current = [(a.user_id, a.username) for a in existing.assignees]
    return current == [(u.user_id, u.username) for u in users]


def merge_update(
    existing: Issue,
    patch: PartialUpdate,
    *,
    now: datetime | None = None,
) -> Issue:
    """Apply a partial update onto an issue.

    Every field present in *patch* replaces the stored value wholesale;
    absent fields are left alone. Supplying ``tags=()`` clears the tags,
    omitting ``tags`` keeps them. Assignees supplied here are fully
    replaced and restamped, as with ``replace_assignees``, unless the
    patch changes nothing at all.

    The whole patch is validated before anything is applied. When no field
    actually changes, *existing* is returned as-is, ``updated_at`` included.

    Args:
        existing: The issue snapshot to update.
        patch: The fields to change.
        now: Mutation time (defaults to the current time).

    Returns:
        The updated issue snapshot.

    Raises:
        ValidationError: If a status or priority is outside its value set,
            the title is blank, or the assignees repeat a user ID.
    """
    values = {name: _validated(name, v) for name, v in patch.present_fields().items()}

    changes: dict[str, Any] = {
        name: value
        for name, value in values.items()
        if name != "assignees" and getattr(existing, name) != value
    }
    users = values.get("assignees")
    if users is not None and not _same_membership(existing, users):
        changes["assignees"] = users

    if not changes:
        return existing

    stamp = next_timestamp(existing.updated_at, now)
    # Supplied assignees are rewritten whenever the patch changes anything
    if users is not None:
        changes["assignees"] = stamp_assignees(users, stamp)

    logger.debug(
        "Merging fields %s into issue %s",
        ", ".join(sorted(changes)),
        existing.issue_id,
    )
    return dataclasses.replace(existing, **changes, updated_at=stamp)
