"""Tests for JSONL storage module."""

import errno
import os
from dataclasses import replace
from pathlib import Path

import orjson
import pytest

from treeissues.constants import STORE_FILENAME
from treeissues.errors import (
    ConflictError,
    NotFoundError,
    StoreUnavailableError,
    ValidationError,
)
from treeissues.models import (
    IssueDraft,
    IssueFilter,
    NodeRef,
    PartialUpdate,
    Priority,
    Status,
    UserRef,
    issue_to_dict,
)
from treeissues.storage import JSONLStorage, open_storage


def _draft(title: str = "Bug", **overrides: object) -> IssueDraft:
    fields: dict[str, object] = {
        "tree_id": "T1",
        "title": title,
        "description": "x",
        "creator": UserRef("creator"),
    }
    fields.update(overrides)
    return IssueDraft(**fields)  # type: ignore[arg-type]


class TestLifecycle:
    """Test opening and closing the store."""

    def test_open_fails_without_directory(self, temp_workspace: Path) -> None:
        """Opening without create_dir requires the directory."""
        path = temp_workspace / ".treeissues" / STORE_FILENAME
        with pytest.raises(StoreUnavailableError, match="does not exist"):
            JSONLStorage(path).open()

    def test_open_creates_directory_with_flag(self, temp_workspace: Path) -> None:
        """create_dir=True makes the directory."""
        path = temp_workspace / ".treeissues" / STORE_FILENAME
        with JSONLStorage(path, create_dir=True) as storage:
            assert storage.is_open
        assert path.parent.is_dir()

    def test_closed_store_refuses_operations(self, storage: JSONLStorage) -> None:
        """Operations on a closed store raise StoreUnavailableError."""
        storage.close()
        with pytest.raises(StoreUnavailableError, match="not open"):
            storage.find()

    def test_open_storage_helper(self, temp_store_dir: Path) -> None:
        """open_storage returns an open store for a directory."""
        store = open_storage(temp_store_dir)
        try:
            assert store.is_open
            assert store.path == temp_store_dir / STORE_FILENAME
        finally:
            store.close()


class TestCreate:
    """Test creating issues."""

    def test_defaults(self, storage: JSONLStorage) -> None:
        """New issues are open, medium, with empty collections."""
        issue = storage.create(_draft())

        assert issue.status is Status.OPEN
        assert issue.priority is Priority.MEDIUM
        assert issue.assignees == ()
        assert issue.comments == ()
        assert issue.created_at == issue.updated_at
        assert issue.description == "x"

    def test_generated_id_is_short_base36(self, storage: JSONLStorage) -> None:
        """Generated IDs are six base36 characters for a small store."""
        issue = storage.create(_draft())
        assert len(issue.issue_id) == 6
        assert issue.issue_id.isalnum()
        assert issue.issue_id == issue.issue_id.lower()

    def test_ids_unique_across_creates(self, storage: JSONLStorage) -> None:
        """No two created issues share an ID."""
        ids = [storage.create(_draft("Same")).issue_id for _ in range(30)]
        assert len(set(ids)) == 30

    def test_duplicate_explicit_id_conflicts(self, storage: JSONLStorage) -> None:
        """A repeated explicit ID raises ConflictError."""
        storage.create(_draft(issue_id="fixed"))
        with pytest.raises(ConflictError, match="fixed"):
            storage.create(_draft(issue_id="fixed"))
        assert len(storage) == 1

    def test_assignees_stamped_with_creation_time(self, storage: JSONLStorage) -> None:
        """Initial assignees get assignedAt = createdAt."""
        issue = storage.create(_draft(assignees=(UserRef("u1"), UserRef("u2"))))
        assert [a.assigned_at for a in issue.assignees] == [issue.created_at] * 2

    @pytest.mark.parametrize(
        "overrides",
        [
            {"title": "  "},
            {"tree_id": ""},
            {"status": "bogus"},
            {"priority": "p1"},
            {"creator": UserRef("")},
            {"assignees": (UserRef("a"), UserRef("a"))},
        ],
    )
    def test_invalid_drafts(self, storage: JSONLStorage, overrides: dict) -> None:
        """Invalid drafts raise ValidationError and store nothing."""
        draft = _draft()
        for key, value in overrides.items():
            setattr(draft, key, value)
        with pytest.raises(ValidationError):
            storage.create(draft)
        assert storage.find() == []


class TestGetAndFind:
    """Test reading issues."""

    def test_get_missing(self, storage: JSONLStorage) -> None:
        """get raises NotFoundError for unknown IDs."""
        with pytest.raises(NotFoundError, match="nope"):
            storage.get("nope")

    def test_find_by_tree_and_status(self, storage: JSONLStorage) -> None:
        """find returns exactly the matching subset."""
        a = storage.create(_draft("A"))
        b = storage.create(_draft("B", status="closed"))
        storage.create(_draft("C", tree_id="T2"))
        d = storage.create(_draft("D"))

        found = storage.find(IssueFilter(tree_id="T1", status=Status.OPEN))
        assert {i.issue_id for i in found} == {a.issue_id, d.issue_id}
        assert b.issue_id not in {i.issue_id for i in found}

    def test_find_by_node(self, storage: JSONLStorage) -> None:
        """Only the issue attached to the node is returned."""
        storage.create(_draft("A", nodes=(NodeRef("N1"),)))
        x = storage.create(_draft("X", nodes=(NodeRef("N2"), NodeRef("N3"))))
        storage.create(_draft("C"))

        assert storage.find(IssueFilter(tree_id="T1", node_id="N3")) == [x]

    def test_find_no_matches(self, storage: JSONLStorage) -> None:
        """No matches yields an empty list."""
        storage.create(_draft())
        assert storage.find(IssueFilter(tree_id="other")) == []


class TestUpdate:
    """Test partial updates through the store."""

    def test_status_update(self, storage: JSONLStorage) -> None:
        """Only status and updatedAt change."""
        issue = storage.create(_draft())
        updated = storage.update(issue.issue_id, PartialUpdate(status="in_progress"))

        assert updated.status is Status.IN_PROGRESS
        assert updated.updated_at > issue.updated_at
        assert replace(updated, status=issue.status, updated_at=issue.updated_at) == issue
        assert storage.get(issue.issue_id) == updated

    def test_invalid_update_leaves_record(self, storage: JSONLStorage) -> None:
        """A rejected patch does not touch the stored record."""
        issue = storage.create(_draft())
        with pytest.raises(ValidationError):
            storage.update(issue.issue_id, PartialUpdate(status="bogus"))
        assert storage.get(issue.issue_id) == issue

    def test_update_missing(self, storage: JSONLStorage) -> None:
        """Updating an unknown issue raises NotFoundError."""
        with pytest.raises(NotFoundError):
            storage.update("nope", PartialUpdate(title="x"))

    def test_noop_update_not_written(self, storage: JSONLStorage) -> None:
        """An empty patch appends nothing."""
        issue = storage.create(_draft())
        size = storage.path.stat().st_size
        assert storage.update(issue.issue_id, PartialUpdate()) == issue
        assert storage.path.stat().st_size == size


class TestCommentsAndAssignees:
    """Test the comment and assignee helpers."""

    def test_add_comments(self, storage: JSONLStorage) -> None:
        """Two comments are stored in order with distinct IDs."""
        issue = storage.create(_draft())
        storage.add_comment(issue.issue_id, "u1", "looks good")
        updated = storage.add_comment(issue.issue_id, "u2", "done")

        assert [c.content for c in updated.comments] == ["looks good", "done"]
        assert len({c.comment_id for c in updated.comments}) == 2

    def test_comment_from_two_instances_kept(self, temp_store_dir: Path) -> None:
        """Comments added through separate store instances are both kept."""
        path = temp_store_dir / STORE_FILENAME
        with JSONLStorage(path) as first, JSONLStorage(path) as second:
            issue = first.create(_draft())
            second.add_comment(issue.issue_id, "u1", "from second")
            first.add_comment(issue.issue_id, "u2", "from first")

            contents = [c.content for c in second.get(issue.issue_id).comments]
        assert contents == ["from second", "from first"]

    def test_set_assignees_duplicate(self, storage: JSONLStorage) -> None:
        """Duplicate assignees are rejected and nothing is stored."""
        issue = storage.create(_draft())
        with pytest.raises(ValidationError):
            storage.set_assignees(issue.issue_id, [UserRef("a"), UserRef("a")])
        assert storage.get(issue.issue_id).assignees == ()

    def test_set_assignees(self, storage: JSONLStorage) -> None:
        """The assignee list is replaced in full."""
        issue = storage.create(_draft(assignees=(UserRef("a"),)))
        updated = storage.set_assignees(issue.issue_id, [UserRef("b"), UserRef("c")])
        assert updated.assignee_ids == ["b", "c"]


class TestReplace:
    """Test whole-document replacement."""

    def test_replace_overwrites(self, storage: JSONLStorage) -> None:
        """replace stores the given snapshot and advances updatedAt."""
        issue = storage.create(_draft())
        stored = storage.replace(replace(issue, title="Renamed"))
        assert stored.title == "Renamed"
        assert stored.updated_at > issue.updated_at
        assert storage.get(issue.issue_id) == stored

    def test_last_write_wins(self, storage: JSONLStorage) -> None:
        """Two replaces from the same base: the later one wins in full."""
        base = storage.create(_draft())
        storage.replace(replace(base, title="First", tags=("a",)))
        storage.replace(replace(base, title="Second"))
        current = storage.get(base.issue_id)
        assert current.title == "Second"
        assert current.tags == ()

    def test_replace_missing(self, storage: JSONLStorage) -> None:
        """Replacing a deleted issue raises NotFoundError."""
        issue = storage.create(_draft())
        storage.delete(issue.issue_id)
        with pytest.raises(NotFoundError):
            storage.replace(issue)

    def test_replace_cannot_change_creator(self, storage: JSONLStorage) -> None:
        """creator is immutable."""
        issue = storage.create(_draft())
        with pytest.raises(ValidationError, match="cannot be changed"):
            storage.replace(replace(issue, creator=UserRef("mallory")))

    def test_replace_cannot_drop_comments(self, storage: JSONLStorage) -> None:
        """Existing comments cannot be removed through replace."""
        issue = storage.create(_draft())
        storage.add_comment(issue.issue_id, "u1", "looks good")
        current = storage.add_comment(issue.issue_id, "u2", "done")

        with pytest.raises(ValidationError, match="comments"):
            storage.replace(replace(current, comments=current.comments[1:]))
        kept = storage.get(issue.issue_id).comments
        assert [c.content for c in kept] == ["looks good", "done"]

    def test_replace_cannot_edit_comments(self, storage: JSONLStorage) -> None:
        """An edited comment is rejected."""
        issue = storage.create(_draft())
        current = storage.add_comment(issue.issue_id, "u1", "looks good")
        edited = replace(current.comments[0], content="looks bad")

        with pytest.raises(ValidationError, match="comments"):
            storage.replace(replace(current, comments=(edited,)))

    def test_replace_keeps_comments_with_other_changes(self, storage: JSONLStorage) -> None:
        """A snapshot carrying the stored thread is accepted."""
        issue = storage.create(_draft())
        current = storage.add_comment(issue.issue_id, "u1", "looks good")
        stored = storage.replace(replace(current, title="Renamed"))
        assert stored.comments == current.comments


class TestDelete:
    """Test hard deletes."""

    def test_delete_removes_from_file(self, storage: JSONLStorage) -> None:
        """Deleted issues are gone after a reload."""
        keep = storage.create(_draft("Keep"))
        gone = storage.create(_draft("Gone"))
        storage.delete(gone.issue_id)

        with JSONLStorage(storage.path) as fresh:
            assert fresh.get_issue_ids() == {keep.issue_id}
        ids_on_disk = [
            orjson.loads(line)["issueId"] for line in storage.path.read_bytes().splitlines()
        ]
        assert ids_on_disk == [keep.issue_id]

    def test_second_delete_not_found(self, storage: JSONLStorage) -> None:
        """Deleting twice raises NotFoundError."""
        issue = storage.create(_draft())
        storage.delete(issue.issue_id)
        with pytest.raises(NotFoundError):
            storage.delete(issue.issue_id)


class TestPersistence:
    """Test the JSONL file format."""

    def test_reload_sees_all_fields(self, storage: JSONLStorage) -> None:
        """A fresh instance loads the same snapshots."""
        issue = storage.create(_draft(tags=("a", "b"), nodes=(NodeRef("N1"),)))
        commented = storage.add_comment(issue.issue_id, "u1", "hi")

        with JSONLStorage(storage.path) as fresh:
            assert fresh.get(issue.issue_id) == commented

    def test_records_are_tagged(self, storage: JSONLStorage) -> None:
        """Each line is an issue record with camelCase keys."""
        storage.create(_draft())
        record = orjson.loads(storage.path.read_bytes().splitlines()[0])
        assert record["record_type"] == "issue"
        assert "issueId" in record
        assert "tis_version" in record

    def test_updates_append_lines(self, storage: JSONLStorage) -> None:
        """Updates append a new snapshot rather than rewriting."""
        issue = storage.create(_draft())
        storage.update(issue.issue_id, PartialUpdate(title="Two"))
        lines = storage.path.read_bytes().splitlines()
        assert len(lines) == 2
        assert orjson.loads(lines[-1])["title"] == "Two"

    def test_malformed_last_line_tolerated(self, storage: JSONLStorage) -> None:
        """A truncated trailing line is skipped with a warning."""
        issue = storage.create(_draft())
        with storage.path.open("ab") as f:
            f.write(b'{"record_type": "issue", "issueId": "trunc')

        with JSONLStorage(storage.path) as fresh:
            assert fresh.get_issue_ids() == {issue.issue_id}
            second = fresh.create(_draft("After"))

        with JSONLStorage(storage.path) as again:
            assert again.get_issue_ids() == {issue.issue_id, second.issue_id}

    def test_non_object_comment_in_last_line_tolerated(self, storage: JSONLStorage) -> None:
        """A trailing record whose comments are not objects is skipped."""
        issue = storage.create(_draft())
        bad = {**issue_to_dict(issue), "issueId": "zz", "comments": [1]}
        with storage.path.open("ab") as f:
            f.write(orjson.dumps({"record_type": "issue", **bad}) + b"\n")

        with JSONLStorage(storage.path) as fresh:
            assert fresh.get_issue_ids() == {issue.issue_id}

    def test_non_object_comment_in_middle_line_fails(self, storage: JSONLStorage) -> None:
        """The same record before the last line makes the store unavailable."""
        issue = storage.create(_draft())
        bad = {**issue_to_dict(issue), "issueId": "zz", "comments": [1]}
        content = storage.path.read_bytes()
        storage.path.write_bytes(orjson.dumps(bad) + b"\n" + content)

        with pytest.raises(StoreUnavailableError, match="line 1"):
            JSONLStorage(storage.path).open()

    def test_malformed_middle_line_fails(self, storage: JSONLStorage) -> None:
        """Corruption before the last line makes the store unavailable."""
        storage.create(_draft())
        content = storage.path.read_bytes()
        storage.path.write_bytes(b"not json\n" + content)

        with pytest.raises(StoreUnavailableError, match="line 1"):
            JSONLStorage(storage.path).open()

    def test_sees_writes_from_other_instance(self, temp_store_dir: Path) -> None:
        """An open store picks up changes made by another instance."""
        path = temp_store_dir / STORE_FILENAME
        with JSONLStorage(path) as reader, JSONLStorage(path) as writer:
            assert reader.find() == []
            created = writer.create(_draft())
            assert reader.get(created.issue_id) == created

    def test_compaction(self, storage: JSONLStorage) -> None:
        """Enough appended updates trigger a rewrite to one line per issue."""
        issues = [storage.create(_draft(f"Issue {i}")) for i in range(25)]
        storage.compact()
        for n in range(13):
            storage.update(issues[0].issue_id, PartialUpdate(title=f"Rev {n}"))

        lines = storage.path.read_bytes().splitlines()
        assert len(lines) == 25
        assert storage.get(issues[0].issue_id).title == "Rev 12"

    def test_reload_after_external_rewrite(self, storage: JSONLStorage) -> None:
        """reload re-reads the file even when it looks unchanged."""
        issue = storage.create(_draft())
        storage.path.write_bytes(b"")
        storage.reload()
        assert storage.find() == []
        with pytest.raises(NotFoundError):
            storage.get(issue.issue_id)


def _fail_fsync(fd: int) -> None:
    raise OSError(errno.EIO, "Input/output error")


class TestWriteFailures:
    """A failed write leaves the previous record in place."""

    def test_failed_fsync_rolls_back_replace(
        self,
        storage: JSONLStorage,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """replace that cannot sync raises and the old snapshot survives."""
        issue = storage.create(_draft())
        size = storage.path.stat().st_size
        monkeypatch.setattr(os, "fsync", _fail_fsync)

        with pytest.raises(StoreUnavailableError, match="append"):
            storage.replace(replace(issue, title="Renamed"))
        monkeypatch.undo()

        assert storage.path.stat().st_size == size
        assert storage.get(issue.issue_id).title == "Bug"
        with JSONLStorage(storage.path) as fresh:
            assert fresh.get(issue.issue_id).title == "Bug"

    def test_failed_fsync_rolls_back_comment(
        self,
        storage: JSONLStorage,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """A comment that cannot be synced is not stored."""
        issue = storage.create(_draft())
        monkeypatch.setattr(os, "fsync", _fail_fsync)

        with pytest.raises(StoreUnavailableError):
            storage.add_comment(issue.issue_id, "u1", "lost")
        monkeypatch.undo()

        with JSONLStorage(storage.path) as fresh:
            assert fresh.get(issue.issue_id).comments == ()

    def test_failed_compaction_keeps_write(
        self,
        storage: JSONLStorage,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """An update succeeds even when the follow-up compaction fails."""
        issues = [storage.create(_draft(f"Issue {i}")) for i in range(25)]
        storage.compact()

        def _fail_rewrite(issues: object) -> None:
            raise StoreUnavailableError("disk full")

        monkeypatch.setattr(storage, "_rewrite", _fail_rewrite)
        for n in range(13):
            updated = storage.update(issues[0].issue_id, PartialUpdate(title=f"Rev {n}"))
        monkeypatch.undo()

        assert updated.title == "Rev 12"
        with JSONLStorage(storage.path) as fresh:
            assert fresh.get(issues[0].issue_id).title == "Rev 12"
