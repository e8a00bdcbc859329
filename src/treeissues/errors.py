"""Error taxonomy for issue operations.

Each error carries a ``kind`` so transports can map failures to a distinct
user-facing message or status code without inspecting the message text.
"""

from __future__ import annotations


class IssueError(Exception):
    """Base class for all failures raised by the issue core."""

    kind: str = "error"


class ValidationError(IssueError, ValueError):
    """Malformed input: bad enum value, empty required field, duplicate id."""

    kind = "validation"


class NotFoundError(IssueError, LookupError):
    """The referenced issue does not exist."""

    kind = "not_found"

    def __init__(self, issue_id: str) -> None:
        self.issue_id = issue_id
        super().__init__(f"Issue {issue_id} not found")


class ConflictError(IssueError, ValueError):
    """An issue with the requested ID already exists."""

    kind = "conflict"

    def __init__(self, issue_id: str) -> None:
        self.issue_id = issue_id
        super().__init__(f"Issue with ID {issue_id} already exists")


class StoreUnavailableError(IssueError, RuntimeError):
    """The persistence boundary cannot be read or written."""

    kind = "store_unavailable"
