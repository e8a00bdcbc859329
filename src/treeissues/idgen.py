"""Hash-based ID generation for issues and comments."""

from __future__ import annotations

import hashlib
import uuid
from datetime import datetime

from treeissues.clock import utcnow
from treeissues.constants import ID_LENGTH_MAX, ID_LENGTH_THRESHOLDS


def get_id_length_for_count(issue_count: int) -> int:
    """Determine the appropriate ID length based on issue count.

    Progressive scaling keeps collisions unlikely as the store grows.

    Args:
        issue_count: Current number of issues in the store.

    Returns:
        Appropriate ID length.
    """
    for max_count, length in ID_LENGTH_THRESHOLDS:
        if issue_count <= max_count:
            return length
    return ID_LENGTH_MAX


def _base36_encode(data: bytes) -> str:
    """Encode bytes as base36 (0-9, a-z)."""
    num = int.from_bytes(data, byteorder="big")
    if num == 0:
        return "0"

    digits = "0123456789abcdefghijklmnopqrstuvwxyz"
    result: list[str] = []
    while num:
        result.append(digits[num % 36])
        num //= 36
    return "".join(reversed(result))


def generate_hash_id(input_data: str, nonce: str = "", length: int = 6) -> str:
    """Generate a base36 hash ID from input data.

    Args:
        input_data: Data to hash (e.g., tree ID + title + timestamp)
        nonce: Optional nonce to handle collisions
        length: Desired length of the ID

    Returns:
        The first *length* characters of the base36 SHA-256 digest
    """
    hash_bytes = hashlib.sha256((input_data + nonce).encode()).digest()
    return _base36_encode(hash_bytes)[:length]


def generate_comment_id(existing_ids: set[str] | None = None) -> str:
    """Generate a comment ID that is not in *existing_ids*."""
    taken = existing_ids or set()
    candidate = uuid.uuid4().hex[:12]
    while candidate in taken:
        candidate = uuid.uuid4().hex[:12]
    return candidate


class IDGenerator:
    """Generates issue IDs with collision detection and handling."""

    def __init__(self, existing_ids: set[str] | None = None) -> None:
        """Initialize the ID generator.

        Args:
            existing_ids: Set of already-used IDs to detect collisions
        """
        self.existing_ids = existing_ids if existing_ids is not None else set()
        self.max_retries = 100

    @property
    def id_length(self) -> int:
        """Get the appropriate ID length based on current issue count."""
        return get_id_length_for_count(len(self.existing_ids))

    def generate_issue_id(
        self,
        tree_id: str,
        title: str,
        timestamp: datetime | None = None,
    ) -> str:
        """Generate a unique short issue ID, handling collisions.

        Args:
            tree_id: Owning tree of the new issue
            title: Issue title
            timestamp: Creation time (default: now)

        Returns:
            Unique issue ID
        """
        if timestamp is None:
            timestamp = utcnow()

        length = self.id_length
        input_data = f"{tree_id}:{title}:{timestamp.isoformat()}"

        for attempt in range(self.max_retries):
            nonce = "" if attempt == 0 else str(attempt)
            candidate = generate_hash_id(input_data, nonce=nonce, length=length)
            if candidate not in self.existing_ids:
                self.existing_ids.add(candidate)
                return candidate

        # Fall back to a longer random-salted ID
        candidate = generate_hash_id(input_data, nonce=uuid.uuid4().hex, length=length + 2)
        while candidate in self.existing_ids:
            candidate = generate_hash_id(
                input_data,
                nonce=uuid.uuid4().hex,
                length=length + 2,
            )
        self.existing_ids.add(candidate)
        return candidate
