"""JSONL-based storage for issues with atomic writes."""

from __future__ import annotations

import dataclasses
import fcntl
import logging
import os
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Any

import orjson
from typing_extensions import Self

from treeissues._version import version as _tis_version
from treeissues.assignees import replace_assignees, stamp_assignees
from treeissues.clock import next_timestamp, utcnow
from treeissues.comments import append_comment
from treeissues.constants import LOCK_FILENAME, STORE_FILENAME
from treeissues.errors import (
    ConflictError,
    NotFoundError,
    StoreUnavailableError,
    ValidationError,
)
from treeissues.idgen import IDGenerator
from treeissues.merge import merge_update
from treeissues.models import (
    Issue,
    IssueFilter,
    dict_to_issue,
    issue_to_dict,
    parse_datetime,
    parse_priority,
    parse_status,
    validate_description,
    validate_title,
    validate_unique_user_ids,
)
from treeissues.query import filter_issues

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Iterator
    from types import TracebackType

    from treeissues.models import Assignee, IssueDraft, PartialUpdate, UserRef

logger = logging.getLogger(__name__)


def validate_issue(issue: Issue) -> None:
    """Validate that a full issue snapshot satisfies the record invariants.

    Raises:
        ValidationError: On a blank title, an out-of-range status or
            priority, duplicate assignees or duplicate comment IDs.
    """
    if not issue.issue_id or not issue.tree_id:
        msg = "Issue must have a non-empty issueId and treeId"
        raise ValidationError(msg)
    validate_title(issue.title)
    validate_description(issue.description)
    parse_status(issue.status)
    parse_priority(issue.priority)
    validate_unique_user_ids(issue.assignees)
    comment_ids = [c.comment_id for c in issue.comments]
    if len(comment_ids) != len(set(comment_ids)):
        msg = f"Issue {issue.issue_id} has duplicate comment IDs"
        raise ValidationError(msg)
    if issue.updated_at < issue.created_at:
        msg = f"Issue {issue.issue_id} has updatedAt before createdAt"
        raise ValidationError(msg)


class JSONLStorage:
    """Manages atomic JSONL storage for issues.

    The file is an append-only log of issue snapshots: later records for
    the same ``issueId`` override earlier ones. Writers serialise on an
    advisory lock file; every mutation is a single-line append, so a reader
    sees either the previous or the new snapshot of an issue, never a mix.
    Deletes and compaction rewrite the file through an atomic rename.

    The store has an explicit lifecycle: call :meth:`open` (or use it as a
    context manager) before any operation and :meth:`close` when done.
    """

    # Compact when appended lines exceed this fraction of the base file size.
    _COMPACTION_RATIO = 0.5
    # Minimum base size before ratio-based compaction kicks in.
    _COMPACTION_MIN_BASE = 20

    def __init__(
        self,
        path: str | Path = f".treeissues/{STORE_FILENAME}",
        create_dir: bool = False,
    ) -> None:
        """Initialize storage.

        Args:
            path: Path to the JSONL storage file.
            create_dir: If True, :meth:`open` creates the directory when it
                is missing. If False (default), opening a store whose
                directory doesn't exist fails.
        """
        self.path = Path(path)
        self.store_dir = self.path.parent
        self._create_dir = create_dir
        self._lock_path = self.store_dir / LOCK_FILENAME
        self._issues: dict[str, Issue] = {}
        # Track lines for compaction decisions
        self._base_lines = 0
        self._appended_lines = 0
        self._needs_compaction = False  # Set when corrupt last line is skipped
        # (inode, size, mtime_ns) of the file as of our last read or write
        self._file_state: tuple[int, int, int] | None = None
        self._is_open = False

    # -- Lifecycle --------------------------------------------------------

    def open(self) -> Self:
        """Open the store and load its current contents.

        Raises:
            StoreUnavailableError: If the directory is missing (and
                ``create_dir`` is False) or the file cannot be read.
        """
        if self._create_dir:
            try:
                self.store_dir.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                msg = f"Failed to create store directory '{self.store_dir}': {e}"
                raise StoreUnavailableError(msg) from e
        elif not self.store_dir.is_dir():
            msg = (
                f"Directory '{self.store_dir}' does not exist. "
                f"Run 'tis init' first to initialize the store."
            )
            raise StoreUnavailableError(msg)

        with self._file_lock(shared=True):
            self._load()
        self._is_open = True
        logger.debug("Opened issue store %s (%d issues)", self.path, len(self._issues))
        return self

    def close(self) -> None:
        """Close the store and drop its in-memory state."""
        self._issues.clear()
        self._file_state = None
        self._is_open = False

    @property
    def is_open(self) -> bool:
        """Whether the store is open."""
        return self._is_open

    def __enter__(self) -> Self:
        return self.open()

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def _ensure_open(self) -> None:
        if not self._is_open:
            msg = f"Issue store {self.path} is not open"
            raise StoreUnavailableError(msg)

    # -- File handling ----------------------------------------------------

    @contextmanager
    def _file_lock(self, *, shared: bool = False) -> Iterator[None]:
        """Acquire an advisory file lock (exclusive unless *shared*)."""
        try:
            lock_fd = self._lock_path.open("a")
        except OSError as e:
            msg = f"Failed to open lock file '{self._lock_path}': {e}"
            raise StoreUnavailableError(msg) from e
        try:
            fcntl.flock(lock_fd, fcntl.LOCK_SH if shared else fcntl.LOCK_EX)
            yield
        finally:
            fcntl.flock(lock_fd, fcntl.LOCK_UN)
            lock_fd.close()

    def _stat(self) -> tuple[int, int, int] | None:
        try:
            st = self.path.stat()
        except FileNotFoundError:
            return None
        except OSError as e:
            msg = f"Failed to stat storage file: {e}"
            raise StoreUnavailableError(msg) from e
        return (st.st_ino, st.st_size, st.st_mtime_ns)

    def _refresh(self) -> None:
        """Reload from disk if another writer changed the file. Caller holds a lock."""
        if self._stat() != self._file_state:
            logger.debug("Storage file %s changed on disk, reloading", self.path)
            self._load()

    def _load(self) -> None:
        """Load issues from the JSONL file into memory. Caller holds a lock.

        Replays the append-only log: later issue records override earlier
        ones (last-write-wins by ID).

        A malformed **last** line is tolerated (logged and skipped) because it
        is the most common result of a crash or disk-full during an append.
        Any other malformed line raises ``StoreUnavailableError``.
        """
        issues: dict[str, Issue] = {}
        state = self._stat()
        if state is None:
            self._issues = issues
            self._file_state = None
            self._base_lines = 0
            self._appended_lines = 0
            return

        try:
            with self.path.open("rb") as f:
                lines = f.readlines()
        except OSError as e:
            msg = f"Failed to read storage file: {e}"
            raise StoreUnavailableError(msg) from e

        # Strip trailing empty lines so we can identify the true last line
        while lines and not lines[-1].strip():
            lines.pop()

        line_count = 0
        for line_idx, raw_line in enumerate(lines):
            line = raw_line.strip()
            if not line:
                continue

            line_count += 1
            try:
                data = orjson.loads(line)
                if data.get("record_type", "issue") != "issue":
                    continue
                issue = dict_to_issue(data)
                issues[issue.issue_id] = issue
            except (
                orjson.JSONDecodeError,
                ValueError,
                KeyError,
                AttributeError,
                TypeError,
            ) as e:
                if line_idx == len(lines) - 1:
                    logger.warning(
                        "Skipping malformed last line in %s: %s",
                        self.path,
                        e,
                    )
                    self._needs_compaction = True
                else:
                    msg = f"Invalid JSONL record at line {line_idx + 1}: {e}"
                    raise StoreUnavailableError(msg) from e

        self._issues = issues
        self._file_state = state
        self._base_lines = line_count
        self._appended_lines = 0

    @staticmethod
    def _issue_record(issue: Issue) -> dict[str, Any]:
        """Serialize an issue to a dict for appending."""
        return {
            "record_type": "issue",
            "tis_version": _tis_version,
            **issue_to_dict(issue),
        }

    def _rewrite(self, issues: Iterable[Issue]) -> None:
        """Rewrite the whole file with one record per issue. Caller holds the lock."""
        try:
            with tempfile.NamedTemporaryFile(
                mode="wb",
                dir=self.store_dir,
                delete=False,
                suffix=".jsonl",
            ) as tmp_file:
                tmp_path = Path(tmp_file.name)
                try:
                    line_count = 0
                    for issue in issues:
                        tmp_file.write(orjson.dumps(self._issue_record(issue)))
                        tmp_file.write(b"\n")
                        line_count += 1
                    tmp_file.flush()
                    os.fsync(tmp_file.fileno())
                except Exception as e:
                    tmp_path.unlink(missing_ok=True)
                    msg = f"Failed to write to temporary file: {e}"
                    raise StoreUnavailableError(msg) from e
        except OSError as e:
            msg = f"Failed to create temporary file in '{self.store_dir}': {e}"
            raise StoreUnavailableError(msg) from e

        # Atomic rename to target file
        try:
            tmp_path.replace(self.path)
        except OSError as e:
            tmp_path.unlink(missing_ok=True)
            msg = f"Failed to write storage file: {e}"
            raise StoreUnavailableError(msg) from e

        self._base_lines = line_count
        self._appended_lines = 0
        self._needs_compaction = False
        self._file_state = self._stat()

    def _append(self, records: list[dict[str, Any]]) -> None:
        """Append records to the JSONL file without rewriting it. Caller holds the lock.

        Builds the payload in memory first and writes it in a single call
        so that a partial write (e.g. disk full) never leaves a truncated
        JSON line in the middle of the file. If the write or fsync fails the
        file is truncated back to its previous size, so a failed append
        never becomes visible to later readers.
        """
        # A corrupt trailing line from an earlier crash is dropped first
        if self._needs_compaction:
            self._rewrite(list(self._issues.values()))

        payload = b"".join(orjson.dumps(r) + b"\n" for r in records)
        old_size: int | None = None

        try:
            old_size = self.path.stat().st_size if self.path.exists() else 0
            # Never concatenate onto a truncated trailing line
            if old_size > 0:
                with self.path.open("rb") as check:
                    check.seek(-1, 2)
                    if check.read(1) != b"\n":
                        payload = b"\n" + payload

            with self.path.open("ab") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
        except OSError as e:
            if old_size is not None:
                self._truncate(old_size)
            msg = f"Failed to append to storage file: {e}"
            raise StoreUnavailableError(msg) from e

        self._appended_lines += len(records)
        self._file_state = self._stat()

    def _truncate(self, size: int) -> None:
        """Cut the storage file back to *size* bytes after a failed append."""
        try:
            os.truncate(self.path, size)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.error(
                "Could not roll back failed append to %s: %s",
                self.path,
                e,
            )

    def _maybe_compact(self) -> None:
        """Compact the file if appended lines exceed the threshold. Caller holds the lock."""
        if (
            self._base_lines >= self._COMPACTION_MIN_BASE
            and self._appended_lines > self._base_lines * self._COMPACTION_RATIO
        ):
            logger.debug(
                "Compacting %s (%d base lines, %d appended)",
                self.path,
                self._base_lines,
                self._appended_lines,
            )
            self._rewrite(list(self._issues.values()))

    def _persist(self, issue: Issue) -> None:
        """Append a snapshot and publish it in memory. Caller holds the lock."""
        self._append([self._issue_record(issue)])
        self._issues[issue.issue_id] = issue
        # The append is committed; a failed compaction only delays the rewrite
        try:
            self._maybe_compact()
        except StoreUnavailableError as e:
            logger.warning("Compaction of %s failed, keeping appended log: %s", self.path, e)

    # -- Operations ---------------------------------------------------------

    def create(self, draft: IssueDraft) -> Issue:
        """Create a new issue.

        Args:
            draft: The issue contents. ``status`` defaults to open and
                ``priority`` to medium; ``issue_id`` is generated when unset.

        Returns:
            The created issue

        Raises:
            ConflictError: If the supplied ID already exists
            ValidationError: If the draft is invalid
        """
        self._ensure_open()

        if not draft.tree_id:
            msg = "Issue must have a non-empty treeId"
            raise ValidationError(msg)
        if not draft.creator.user_id:
            msg = "Issue creator must have a non-empty userId"
            raise ValidationError(msg)
        validate_title(draft.title)
        validate_description(draft.description)
        status = parse_status(draft.status)
        priority = parse_priority(draft.priority)
        due_date = parse_datetime(draft.due_date)

        with self._file_lock():
            self._refresh()
            now = utcnow()
            if draft.issue_id:
                if draft.issue_id in self._issues:
                    raise ConflictError(draft.issue_id)
                issue_id = draft.issue_id
            else:
                idgen = IDGenerator(existing_ids=set(self._issues))
                issue_id = idgen.generate_issue_id(draft.tree_id, draft.title, now)

            issue = Issue(
                issue_id=issue_id,
                tree_id=draft.tree_id,
                title=draft.title,
                creator=draft.creator,
                description=draft.description,
                status=status,
                priority=priority,
                due_date=due_date,
                assignees=stamp_assignees(draft.assignees, now),
                nodes=tuple(draft.nodes),
                tags=tuple(draft.tags),
                created_at=now,
                updated_at=now,
            )
            self._persist(issue)

        logger.debug("Created issue %s in tree %s", issue.issue_id, issue.tree_id)
        return issue

    def get(self, issue_id: str) -> Issue:
        """Get an issue by ID.

        Raises:
            NotFoundError: If no issue has this ID
        """
        self._ensure_open()
        with self._file_lock(shared=True):
            self._refresh()
            issue = self._issues.get(issue_id)
        if issue is None:
            raise NotFoundError(issue_id)
        return issue

    def find(self, criteria: IssueFilter | None = None) -> list[Issue]:
        """List issues matching *criteria*, newest first.

        Returns an empty list when nothing matches.
        """
        self._ensure_open()
        with self._file_lock(shared=True):
            self._refresh()
            issues = list(self._issues.values())
        return filter_issues(issues, criteria or IssueFilter())

    def replace(self, issue: Issue) -> Issue:
        """Overwrite the stored snapshot of an issue as a whole.

        The record is keyed by ``issue_id``. Concurrent callers replacing the
        same issue race: the later write wins in full. ``tree_id``,
        ``creator`` and ``created_at`` must match the stored record, and the
        stored comments must be kept as a prefix of ``comments``.

        Returns:
            The stored snapshot. If the supplied ``updated_at`` does not move
            past the stored one it is advanced so that timestamps stay
            strictly increasing.

        Raises:
            NotFoundError: If the issue no longer exists
            ValidationError: If the snapshot breaks a record invariant
        """
        self._ensure_open()
        validate_issue(issue)

        with self._file_lock():
            self._refresh()
            stored = self._issues.get(issue.issue_id)
            if stored is None:
                raise NotFoundError(issue.issue_id)
            if (
                issue.tree_id != stored.tree_id
                or issue.creator != stored.creator
                or issue.created_at != stored.created_at
            ):
                msg = (
                    f"Issue {issue.issue_id}: treeId, creator and createdAt "
                    "cannot be changed"
                )
                raise ValidationError(msg)
            if issue.comments[: len(stored.comments)] != stored.comments:
                msg = (
                    f"Issue {issue.issue_id}: existing comments cannot be "
                    "removed, reordered or edited"
                )
                raise ValidationError(msg)
            if issue == stored:
                return stored
            if issue.updated_at <= stored.updated_at:
                issue = dataclasses.replace(
                    issue,
                    updated_at=next_timestamp(stored.updated_at),
                )
            self._persist(issue)

        logger.debug("Replaced issue %s", issue.issue_id)
        return issue

    def delete(self, issue_id: str) -> Issue:
        """Permanently remove an issue.

        Returns:
            The removed issue

        Raises:
            NotFoundError: If the issue doesn't exist (including a second
                delete of the same ID)
        """
        self._ensure_open()
        with self._file_lock():
            self._refresh()
            issue = self._issues.get(issue_id)
            if issue is None:
                raise NotFoundError(issue_id)
            remaining = [i for i in self._issues.values() if i.issue_id != issue_id]
            self._rewrite(remaining)
            del self._issues[issue_id]

        logger.debug("Deleted issue %s", issue_id)
        return issue

    def _apply(self, issue_id: str, change: Callable[[Issue], Issue]) -> Issue:
        """Run *change* against the latest stored snapshot and persist it."""
        self._ensure_open()
        with self._file_lock():
            self._refresh()
            existing = self._issues.get(issue_id)
            if existing is None:
                raise NotFoundError(issue_id)
            updated = change(existing)
            if updated is not existing:
                self._persist(updated)
        return updated

    def update(self, issue_id: str, patch: PartialUpdate) -> Issue:
        """Apply a partial update to the stored issue.

        Raises:
            NotFoundError: If the issue doesn't exist
            ValidationError: If the patch is invalid (nothing is written)
        """
        return self._apply(issue_id, lambda issue: merge_update(issue, patch))

    def add_comment(self, issue_id: str, author_id: str, content: str) -> Issue:
        """Append a comment to the stored issue.

        The comment is appended to the snapshot read under the write lock,
        so comments added concurrently by other processes are kept.

        Raises:
            NotFoundError: If the issue doesn't exist
            ValidationError: If the content is blank
        """
        return self._apply(
            issue_id,
            lambda issue: append_comment(issue, author_id, content),
        )

    def set_assignees(
        self,
        issue_id: str,
        assignees: Iterable[UserRef | Assignee],
    ) -> Issue:
        """Replace the full assignee list of the stored issue.

        Raises:
            NotFoundError: If the issue doesn't exist
            ValidationError: If a user ID is repeated
        """
        users = list(assignees)
        return self._apply(issue_id, lambda issue: replace_assignees(issue, users))

    def get_issue_ids(self) -> set[str]:
        """Get all issue IDs in storage."""
        self._ensure_open()
        with self._file_lock(shared=True):
            self._refresh()
            return set(self._issues)

    def reload(self) -> None:
        """Re-read the storage file unconditionally."""
        self._ensure_open()
        with self._file_lock(shared=True):
            self._load()

    def compact(self) -> None:
        """Rewrite the file with only the current snapshot of each issue."""
        self._ensure_open()
        with self._file_lock():
            self._refresh()
            self._rewrite(list(self._issues.values()))

    def __len__(self) -> int:
        return len(self.get_issue_ids())


def open_storage(store_dir: str | Path, *, create_dir: bool = False) -> JSONLStorage:
    """Open the issue store that lives in *store_dir*."""
    return JSONLStorage(Path(store_dir) / STORE_FILENAME, create_dir=create_dir).open()
