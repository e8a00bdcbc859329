"""HTTP JSON API for treeissues."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from treeissues.errors import (
    ConflictError,
    IssueError,
    NotFoundError,
    StoreUnavailableError,
    ValidationError,
)

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from starlette.requests import Request
    from starlette.responses import Response

logger = logging.getLogger(__name__)

# Most specific first; IssueError itself falls through to 500.
_STATUS_CODES: tuple[tuple[type[IssueError], int], ...] = (
    (ValidationError, 400),
    (NotFoundError, 404),
    (ConflictError, 409),
    (StoreUnavailableError, 503),
)


def status_code_for(error: IssueError) -> int:
    """Map an issue error to its HTTP status code."""
    for error_type, code in _STATUS_CODES:
        if isinstance(error, error_type):
            return code
    return 500


async def _issue_error_handler(request: Request, exc: IssueError) -> JSONResponse:
    code = status_code_for(exc)
    if code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=code,
        content={"error": exc.kind, "detail": str(exc)},
    )


def create_app(store_dir: str = ".treeissues") -> FastAPI:
    """Create the FastAPI app serving the issue API.

    The issue store in *store_dir* is opened when the app starts and
    closed when it shuts down.

    Args:
        store_dir: Path to the .treeissues directory.

    Returns:
        Configured FastAPI application.
    """
    from treeissues.config import get_setting, get_store_path
    from treeissues.storage import JSONLStorage

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        storage = JSONLStorage(get_store_path(store_dir)).open()
        app.state.storage = storage
        logger.info("Serving issues from %s", storage.path)
        try:
            yield
        finally:
            storage.close()

    app = FastAPI(
        title="treeissues",
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None,
    )
    app.state.store_dir = store_dir
    app.add_exception_handler(IssueError, _issue_error_handler)  # type: ignore[arg-type]

    from starlette.middleware.base import BaseHTTPMiddleware

    class SecurityHeadersMiddleware(BaseHTTPMiddleware):
        async def dispatch(self, request: Request, call_next: Any) -> Response:
            response = await call_next(request)
            response.headers["X-Content-Type-Options"] = "nosniff"
            response.headers["X-Frame-Options"] = "DENY"
            response.headers["Referrer-Policy"] = "no-referrer"
            response.headers["Content-Security-Policy"] = "default-src 'none'"
            return response

    app.add_middleware(SecurityHeadersMiddleware)

    from fastapi.middleware.cors import CORSMiddleware

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(get_setting(store_dir, "cors_origins")),
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
        allow_headers=["Content-Type"],
    )

    from treeissues.web.routes import router

    app.include_router(router)

    return app


__all__ = ["create_app", "status_code_for"]
