"""Shared infrastructure for treeissues CLI commands."""

from __future__ import annotations

import functools
import getpass
import subprocess
from typing import TYPE_CHECKING, NoReturn

import typer
from typer.core import TyperGroup

from treeissues.config import find_store_dir, get_store_path
from treeissues.errors import IssueError, ValidationError
from treeissues.models import UserRef
from treeissues.storage import JSONLStorage

from ._json_state import echo_error

if TYPE_CHECKING:
    import click

STORE_DIR_HELP = "Path to the .treeissues directory (default: search upward)"


class SortedGroup(TyperGroup):
    """Typer group that lists commands in alphabetical order."""

    def list_commands(self, ctx: click.Context) -> list[str]:
        """Return commands sorted alphabetically."""
        return sorted(super().list_commands(ctx))


@functools.lru_cache(maxsize=1)
def get_default_operator() -> str:
    """Get the default operator (user identifier) for issue operations.

    Tries to get the git config user.email first, falls back to machine username.

    Returns:
        User email from git config, or machine username as fallback.
    """
    try:
        result = subprocess.run(
            ["git", "config", "user.email"],
            capture_output=True,
            text=True,
            check=False,
        )
        if result.returncode == 0 and result.stdout.strip():
            return result.stdout.strip()
    except (FileNotFoundError, OSError):
        # git not installed or other OS error
        pass

    return getpass.getuser()


def get_storage(store_dir: str | None = None, create_dir: bool = False) -> JSONLStorage:
    """Build an (unopened) storage instance.

    If *store_dir* is not given, searches upward for .treeissues (similar to
    how git finds .git), honouring ``TREEISSUES_DIR``.

    Args:
        store_dir: Path to the .treeissues directory.
        create_dir: If True, create the directory when the store is opened.

    Returns:
        JSONLStorage instance; use it as a context manager.
    """
    resolved = store_dir or find_store_dir()
    return JSONLStorage(get_store_path(resolved), create_dir=create_dir)


def parse_user(value: str) -> UserRef:
    """Parse ``userId`` or ``userId:username`` into a UserRef."""
    user_id, _, username = value.partition(":")
    user_id = user_id.strip()
    if not user_id:
        msg = f"Invalid user '{value}'. Use USER_ID or USER_ID:USERNAME."
        raise ValidationError(msg)
    return UserRef(user_id=user_id, username=username.strip() or None)


def fail(error: IssueError) -> NoReturn:
    """Report an issue error and exit with status 1."""
    echo_error(str(error), error.kind)
    raise typer.Exit(1) from error
