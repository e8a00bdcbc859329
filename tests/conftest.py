"""Pytest configuration and shared fixtures."""

from collections.abc import Iterator
from pathlib import Path

import pytest

from treeissues.constants import STORE_FILENAME
from treeissues.models import Issue
from treeissues.storage import JSONLStorage

from issue_test_helpers import make_issue


@pytest.fixture
def temp_store_dir(tmp_path: Path) -> Path:
    """Create a temporary .treeissues directory for testing."""
    store_path = tmp_path / ".treeissues"
    store_path.mkdir()
    return store_path


@pytest.fixture
def temp_workspace(tmp_path: Path) -> Path:
    """Create a temporary workspace directory for testing."""
    return tmp_path


@pytest.fixture
def storage(temp_store_dir: Path) -> Iterator[JSONLStorage]:
    """Open a storage instance in the temporary directory."""
    store = JSONLStorage(temp_store_dir / STORE_FILENAME, create_dir=True).open()
    yield store
    store.close()


@pytest.fixture
def issue() -> Issue:
    """A plain issue snapshot created at a fixed time."""
    return make_issue()
