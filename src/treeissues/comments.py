"""Append-only comment thread operations."""

from __future__ import annotations

import dataclasses
from typing import TYPE_CHECKING

from treeissues.clock import next_timestamp
from treeissues.errors import ValidationError
from treeissues.idgen import generate_comment_id
from treeissues.models import Comment, Issue

if TYPE_CHECKING:
    from datetime import datetime


def append_comment(
    existing: Issue,
    author_id: str,
    content: str,
    *,
    now: datetime | None = None,
) -> Issue:
    """Append a comment to the end of an issue's thread.

    Prior comments are carried over untouched and in order.

    Args:
        existing: The issue to comment on.
        author_id: User ID of the comment author.
        content: Comment text; must not be blank.
        now: Mutation time (defaults to the current time).

    Returns:
        A new issue snapshot with the comment appended and ``updated_at``
        advanced.

    Raises:
        ValidationError: If *content* or *author_id* is blank.
    """
    if not isinstance(author_id, str) or not author_id.strip():
        msg = "Comment must have a non-empty userId"
        raise ValidationError(msg)
    if not isinstance(content, str) or not content.strip():
        msg = "Comment content must not be empty"
        raise ValidationError(msg)

    stamp = next_timestamp(existing.updated_at, now)
    comment = Comment(
        comment_id=generate_comment_id({c.comment_id for c in existing.comments}),
        user_id=author_id,
        content=content,
        created_at=stamp,
    )
    return dataclasses.replace(
        existing,
        comments=(*existing.comments, comment),
        updated_at=stamp,
    )
