"""Routes for the treeissues HTTP API."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from fastapi import APIRouter, Request, Response

from treeissues.clock import utcnow
from treeissues.errors import ValidationError
from treeissues.models import (
    parse_user_refs,
    draft_from_dict,
    filter_from_params,
    issue_to_dict,
    patch_from_dict,
)

if TYPE_CHECKING:
    from treeissues.storage import JSONLStorage

logger = logging.getLogger(__name__)

router = APIRouter()


def _storage(request: Request) -> JSONLStorage:
    return request.app.state.storage


async def _json_body(request: Request) -> dict[str, Any]:
    """Read the request body as a JSON object."""
    try:
        body = await request.json()
    except ValueError:
        msg = "Request body must be valid JSON"
        raise ValidationError(msg) from None
    if not isinstance(body, dict):
        msg = "Request body must be a JSON object"
        raise ValidationError(msg)
    return body


@router.get("/health")
async def health() -> dict[str, str]:
    """Liveness check."""
    return {"status": "OK", "timestamp": utcnow().isoformat()}


@router.post("/api/issues", status_code=201)
async def create_issue(request: Request) -> dict[str, Any]:
    """Create an issue from a JSON body."""
    draft = draft_from_dict(await _json_body(request))
    issue = _storage(request).create(draft)
    return issue_to_dict(issue)


@router.get("/api/issues")
async def list_issues(
    request: Request,
    treeId: str | None = None,  # noqa: N803
    nodeId: str | None = None,  # noqa: N803
    status: str | None = None,
    priority: str | None = None,
) -> list[dict[str, Any]]:
    """List issues matching the query parameters, newest first."""
    criteria = filter_from_params(treeId, nodeId, status, priority)
    return [issue_to_dict(i) for i in _storage(request).find(criteria)]


@router.get("/api/issues/{issue_id}")
async def get_issue(request: Request, issue_id: str) -> dict[str, Any]:
    """Fetch one issue."""
    return issue_to_dict(_storage(request).get(issue_id))


@router.patch("/api/issues/{issue_id}")
async def update_issue(request: Request, issue_id: str) -> dict[str, Any]:
    """Apply a partial update. Keys absent from the body are left unchanged."""
    patch = patch_from_dict(await _json_body(request))
    return issue_to_dict(_storage(request).update(issue_id, patch))


@router.post("/api/issues/{issue_id}/comments", status_code=201)
async def add_comment(request: Request, issue_id: str) -> dict[str, Any]:
    """Append a comment; returns the whole updated issue."""
    body = await _json_body(request)
    user_id = body.get("userId")
    content = body.get("content")
    if not isinstance(user_id, str) or not isinstance(content, str):
        msg = "userId and content must be strings"
        raise ValidationError(msg)
    issue = _storage(request).add_comment(issue_id, user_id, content)
    return issue_to_dict(issue)


@router.put("/api/issues/{issue_id}/assignees")
async def set_assignees(request: Request, issue_id: str) -> dict[str, Any]:
    """Replace the full assignee list."""
    body = await _json_body(request)
    if "assignees" not in body:
        msg = "Missing required field: assignees"
        raise ValidationError(msg)
    users = parse_user_refs(body["assignees"], "assignees")
    return issue_to_dict(_storage(request).set_assignees(issue_id, users))


@router.delete("/api/issues/{issue_id}", status_code=204, response_model=None)
async def delete_issue(request: Request, issue_id: str) -> Response:
    """Permanently delete an issue."""
    issue = _storage(request).delete(issue_id)
    logger.info("Deleted issue %s via API", issue.issue_id)
    return Response(status_code=204)

