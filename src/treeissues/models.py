"""Data models for tree issues using dataclasses."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, Final

from treeissues.clock import utcnow
from treeissues.errors import ValidationError

if TYPE_CHECKING:
    from collections.abc import Iterable


class Status(str, Enum):
    """Issue status enumeration."""

    OPEN = "open"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    CLOSED = "closed"


class Priority(str, Enum):
    """Issue priority enumeration."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class _Unset(Enum):
    UNSET = "UNSET"

    def __repr__(self) -> str:
        return "UNSET"


# Marks a PartialUpdate field as omitted; None means "explicitly cleared".
UNSET: Final = _Unset.UNSET


@dataclass(frozen=True)
class UserRef:
    """A user reference as submitted by callers."""

    user_id: str
    username: str | None = None


@dataclass(frozen=True)
class Assignee:
    """A user assigned to an issue."""

    user_id: str
    username: str | None = None
    assigned_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class NodeRef:
    """A tree node an issue is attached to."""

    node_id: str


@dataclass(frozen=True)
class Comment:
    """A comment on an issue. Never modified once appended."""

    comment_id: str
    user_id: str
    content: str
    created_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class Issue:
    """An immutable snapshot of one tracked issue."""

    issue_id: str
    tree_id: str
    title: str
    creator: UserRef
    description: str = ""
    status: Status = Status.OPEN
    priority: Priority = Priority.MEDIUM
    due_date: datetime | None = None
    assignees: tuple[Assignee, ...] = ()
    nodes: tuple[NodeRef, ...] = ()
    tags: tuple[str, ...] = ()
    comments: tuple[Comment, ...] = ()
    resolved_at: datetime | None = None
    resolved_by: str | None = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def node_ids(self) -> list[str]:
        """IDs of the nodes this issue is attached to, in order."""
        return [node.node_id for node in self.nodes]

    @property
    def assignee_ids(self) -> list[str]:
        """User IDs of the current assignees, in order."""
        return [a.user_id for a in self.assignees]

    def is_closed(self) -> bool:
        """Check if the issue is resolved or closed."""
        return self.status in (Status.RESOLVED, Status.CLOSED)


@dataclass
class IssueDraft:
    """Input for creating an issue."""

    tree_id: str
    title: str
    creator: UserRef
    description: str = ""
    issue_id: str | None = None
    status: Status | str = Status.OPEN
    priority: Priority | str | None = Priority.MEDIUM
    due_date: datetime | None = None
    assignees: tuple[UserRef, ...] = ()
    nodes: tuple[NodeRef, ...] = ()
    tags: tuple[str, ...] = ()


@dataclass(frozen=True)
class PartialUpdate:
    """Fields to change on an issue.

    A field left as ``UNSET`` is not touched by a merge. Any other value,
    including ``None`` and empty sequences, replaces the stored value.
    Identity fields, ``creator`` and ``comments`` are not part of a patch.
    """

    title: str | _Unset = UNSET
    description: str | None | _Unset = UNSET
    status: Status | str | _Unset = UNSET
    priority: Priority | str | None | _Unset = UNSET
    due_date: datetime | None | _Unset = UNSET
    assignees: tuple[UserRef, ...] | _Unset = UNSET
    nodes: tuple[NodeRef, ...] | _Unset = UNSET
    tags: tuple[str, ...] | _Unset = UNSET
    resolved_at: datetime | None | _Unset = UNSET
    resolved_by: str | None | _Unset = UNSET

    def present_fields(self) -> dict[str, Any]:
        """Return the fields carried by this patch, keyed by attribute name."""
        return {
            name: value
            for name in PATCHABLE_FIELDS
            if (value := getattr(self, name)) is not UNSET
        }

    def is_empty(self) -> bool:
        """Check whether the patch carries no fields at all."""
        return not self.present_fields()


PATCHABLE_FIELDS: tuple[str, ...] = (
    "title",
    "description",
    "status",
    "priority",
    "due_date",
    "assignees",
    "nodes",
    "tags",
    "resolved_at",
    "resolved_by",
)


@dataclass(frozen=True)
class IssueFilter:
    """Criteria for listing issues. Present fields are AND-combined."""

    tree_id: str | None = None
    node_id: str | None = None
    status: Status | None = None
    priority: Priority | None = None

    def is_empty(self) -> bool:
        """Check whether no criteria are set."""
        return (
            self.tree_id is None
            and self.node_id is None
            and self.status is None
            and self.priority is None
        )


def parse_status(value: Any) -> Status:
    """Coerce a status token to a Status, rejecting unknown values."""
    if isinstance(value, Status):
        return value
    try:
        return Status(value)
    except ValueError:
        valid = ", ".join(s.value for s in Status)
        msg = f"Invalid status {value!r}. Must be one of: {valid}"
        raise ValidationError(msg) from None


def parse_priority(value: Any) -> Priority:
    """Coerce a priority token to a Priority; ``None`` means medium."""
    if value is None:
        return Priority.MEDIUM
    if isinstance(value, Priority):
        return value
    try:
        return Priority(value)
    except ValueError:
        valid = ", ".join(p.value for p in Priority)
        msg = f"Invalid priority {value!r}. Must be one of: {valid}"
        raise ValidationError(msg) from None


def validate_title(title: Any) -> str:
    """Validate that a title is a string that is non-empty after trimming."""
    if not isinstance(title, str) or not title.strip():
        msg = "Issue must have a non-empty title"
        raise ValidationError(msg)
    return title


def validate_description(description: Any) -> str:
    """Validate that a description is a string (empty is allowed)."""
    if not isinstance(description, str):
        msg = "Issue description must be a string"
        raise ValidationError(msg)
    return description


def validate_unique_user_ids(users: Iterable[UserRef | Assignee]) -> None:
    """Reject a user list that is missing a user ID or repeats one."""
    seen: set[str] = set()
    for user in users:
        if not user.user_id:
            msg = "Assignee must have a non-empty userId"
            raise ValidationError(msg)
        if user.user_id in seen:
            msg = f"Duplicate assignee userId: {user.user_id}"
            raise ValidationError(msg)
        seen.add(user.user_id)


def _format_dt(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def parse_datetime(value: Any) -> datetime | None:
    """Parse an ISO-8601 timestamp; naive values are taken as local time."""
    if value is None or isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value)
        except ValueError:
            msg = f"Invalid timestamp: {value!r}"
            raise ValidationError(msg) from None
    else:
        msg = f"Invalid timestamp: {value!r}"
        raise ValidationError(msg)
    if parsed is not None and parsed.tzinfo is None:
        parsed = parsed.astimezone()
    return parsed


def _require(data: dict[str, Any], key: str) -> Any:
    if key not in data or data[key] is None:
        msg = f"Missing required field: {key}"
        raise ValidationError(msg)
    return data[key]


def _as_list(value: Any, key: str) -> list[Any]:
    if not isinstance(value, list | tuple):
        msg = f"Field {key} must be a list"
        raise ValidationError(msg)
    return list(value)  # pyright: ignore[reportUnknownArgumentType]


def _parse_user_ref(data: Any, key: str) -> UserRef:
    if not isinstance(data, dict):
        msg = f"Entries of {key} must be objects with a userId"
        raise ValidationError(msg)
    user_id = _require(data, "userId")  # pyright: ignore[reportUnknownArgumentType]
    if not isinstance(user_id, str) or not user_id:
        msg = f"Entries of {key} must have a non-empty userId"
        raise ValidationError(msg)
    return UserRef(user_id=user_id, username=data.get("username"))  # pyright: ignore[reportUnknownMemberType, reportUnknownArgumentType]


def parse_user_refs(value: Any, key: str) -> tuple[UserRef, ...]:
    """Parse a list of {userId, username} objects."""
    return tuple(_parse_user_ref(item, key) for item in _as_list(value, key))


def _parse_nodes(value: Any) -> tuple[NodeRef, ...]:
    nodes: list[NodeRef] = []
    for item in _as_list(value, "nodes"):
        node_id = item.get("nodeId") if isinstance(item, dict) else item  # pyright: ignore[reportUnknownMemberType]
        if not isinstance(node_id, str) or not node_id:
            msg = "Entries of nodes must have a non-empty nodeId"
            raise ValidationError(msg)
        nodes.append(NodeRef(node_id=node_id))
    return tuple(nodes)


def _parse_tags(value: Any) -> tuple[str, ...]:
    tags = _as_list(value, "tags")
    if not all(isinstance(t, str) for t in tags):
        msg = "Entries of tags must be strings"
        raise ValidationError(msg)
    return tuple(tags)


def issue_to_dict(issue: Issue) -> dict[str, Any]:
    """Convert an Issue to its wire dictionary, serializing datetimes."""
    return {
        "issueId": issue.issue_id,
        "treeId": issue.tree_id,
        "title": issue.title,
        "description": issue.description,
        "status": issue.status.value,
        "priority": issue.priority.value,
        "dueDate": _format_dt(issue.due_date),
        "creator": {
            "userId": issue.creator.user_id,
            "username": issue.creator.username,
        },
        "assignees": [
            {
                "userId": a.user_id,
                "username": a.username,
                "assignedAt": a.assigned_at.isoformat(),
            }
            for a in issue.assignees
        ],
        "nodes": [{"nodeId": n.node_id} for n in issue.nodes],
        "tags": list(issue.tags),
        "comments": [
            {
                "commentId": c.comment_id,
                "userId": c.user_id,
                "content": c.content,
                "createdAt": c.created_at.isoformat(),
            }
            for c in issue.comments
        ],
        "resolvedAt": _format_dt(issue.resolved_at),
        "resolvedBy": issue.resolved_by,
        "createdAt": issue.created_at.isoformat(),
        "updatedAt": issue.updated_at.isoformat(),
    }


def dict_to_issue(data: dict[str, Any]) -> Issue:
    """Convert a wire dictionary to an Issue, deserializing datetimes.

    Raises:
        ValidationError: If a required field is missing or an enum value
            is outside its allowed set.
    """
    creator_data = _require(data, "creator")

    assignees: list[Assignee] = []
    for raw in _as_list(data.get("assignees", []), "assignees"):
        ref = _parse_user_ref(raw, "assignees")
        assignees.append(
            Assignee(
                user_id=ref.user_id,
                username=ref.username,
                assigned_at=parse_datetime(raw.get("assignedAt")) or utcnow(),
            ),
        )

    comments: list[Comment] = []
    for comment_data in _as_list(data.get("comments", []), "comments"):
        if not isinstance(comment_data, dict):
            msg = "Entries of comments must be objects"
            raise ValidationError(msg)
        comments.append(
            Comment(
                comment_id=_require(comment_data, "commentId"),
                user_id=_require(comment_data, "userId"),
                content=_require(comment_data, "content"),
                created_at=parse_datetime(_require(comment_data, "createdAt")),  # type: ignore[arg-type]
            ),
        )

    return Issue(
        issue_id=_require(data, "issueId"),
        tree_id=_require(data, "treeId"),
        title=_require(data, "title"),
        description=data.get("description") or "",
        status=parse_status(data.get("status", Status.OPEN.value)),
        priority=parse_priority(data.get("priority")),
        due_date=parse_datetime(data.get("dueDate")),
        creator=_parse_user_ref(creator_data, "creator"),
        assignees=tuple(assignees),
        nodes=_parse_nodes(data.get("nodes", [])),
        tags=_parse_tags(data.get("tags", [])),
        comments=tuple(comments),
        resolved_at=parse_datetime(data.get("resolvedAt")),
        resolved_by=data.get("resolvedBy"),
        created_at=parse_datetime(_require(data, "createdAt")),  # type: ignore[arg-type]
        updated_at=parse_datetime(_require(data, "updatedAt")),  # type: ignore[arg-type]
    )


def draft_from_dict(data: dict[str, Any]) -> IssueDraft:
    """Build an IssueDraft from a create request body."""
    tree_id = _require(data, "treeId")
    if not isinstance(tree_id, str) or not tree_id:
        msg = "treeId must be a non-empty string"
        raise ValidationError(msg)

    return IssueDraft(
        tree_id=tree_id,
        title=validate_title(data.get("title")),
        creator=_parse_user_ref(_require(data, "creator"), "creator"),
        description=validate_description(data.get("description", "")),
        issue_id=data.get("issueId"),
        status=parse_status(data.get("status", Status.OPEN.value)),
        priority=parse_priority(data.get("priority")),
        due_date=parse_datetime(data.get("dueDate")),
        assignees=parse_user_refs(data.get("assignees", []), "assignees"),
        nodes=_parse_nodes(data.get("nodes", [])),
        tags=_parse_tags(data.get("tags", [])),
    )


def patch_from_dict(data: dict[str, Any]) -> PartialUpdate:
    """Build a PartialUpdate from a request body.

    Only keys present in *data* end up in the patch. Identity fields,
    ``creator``, timestamps and ``comments`` are ignored if supplied.
    """
    fields: dict[str, Any] = {}
    if "title" in data:
        fields["title"] = data["title"]
    if "description" in data:
        fields["description"] = data["description"]
    if "status" in data:
        fields["status"] = parse_status(data["status"])
    if "priority" in data:
        fields["priority"] = parse_priority(data["priority"])
    if "dueDate" in data:
        fields["due_date"] = parse_datetime(data["dueDate"])
    if "assignees" in data:
        fields["assignees"] = parse_user_refs(data["assignees"], "assignees")
    if "nodes" in data:
        fields["nodes"] = _parse_nodes(data["nodes"])
    if "tags" in data:
        fields["tags"] = _parse_tags(data["tags"])
    if "resolvedAt" in data:
        fields["resolved_at"] = parse_datetime(data["resolvedAt"])
    if "resolvedBy" in data:
        fields["resolved_by"] = data["resolvedBy"]
    return PartialUpdate(**fields)


def filter_from_params(
    tree_id: str | None = None,
    node_id: str | None = None,
    status: str | None = None,
    priority: str | None = None,
) -> IssueFilter:
    """Build an IssueFilter from query parameters; empty strings are absent."""
    return IssueFilter(
        tree_id=tree_id or None,
        node_id=node_id or None,
        status=parse_status(status) if status else None,
        priority=parse_priority(priority) if priority else None,
    )
