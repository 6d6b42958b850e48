"""Tests for the SQLite store, changeset history and the progress tracker."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from repo_xapian.models import ChangeSet, FileChange
from repo_xapian.schema import SCHEMA_VERSION, FileAction, IndexStatus, generate_ddl, parse_action
from repo_xapian.store import ChangesetStore, IndexStore, from_timestamp, to_timestamp


class TestSchema:
    def test_ddl_creates_tables(self, store):
        names = {
            row["name"] for row in store.connection.execute("SELECT name FROM sqlite_master WHERE type = 'table'")
        }
        assert {"schema_version", "changesets", "filechanges", "indexing_logs"} <= names

    def test_ddl_is_whitespace_normalized(self):
        for stmt in generate_ddl():
            assert "\n" not in stmt

    def test_version_stamped_once(self, tmp_path):
        path = tmp_path / "state.sqlite3"
        IndexStore(path).close()
        with IndexStore(path) as store:
            rows = store.connection.execute("SELECT version FROM schema_version").fetchall()
        assert [row["version"] for row in rows] == [SCHEMA_VERSION]

    def test_creates_parent_directory(self, tmp_path):
        path = tmp_path / "nested" / "dir" / "state.sqlite3"
        with IndexStore(path) as store:
            assert store.path == str(path)
        assert path.exists()

    @pytest.mark.parametrize(
        ("code", "expected"),
        [
            ("A", FileAction.ADDED),
            ("M", FileAction.MODIFIED),
            ("D", FileAction.DELETED),
            ("R100", FileAction.REPLACED),
            ("T", FileAction.MODIFIED),
            ("C75", FileAction.ADDED),
            ("X", FileAction.MODIFIED),
        ],
    )
    def test_parse_action(self, code, expected):
        assert parse_action(code) is expected


class TestTimestamps:
    def test_naive_values_are_utc(self):
        assert to_timestamp(datetime(2024, 5, 1, 10, 0)) == "2024-05-01T10:00:00+00:00"

    def test_round_trip_keeps_instant(self):
        value = datetime(2024, 5, 1, 10, 0, tzinfo=UTC)
        assert from_timestamp(to_timestamp(value)) == value

    def test_none(self):
        assert to_timestamp(None) is None
        assert from_timestamp(None) is None


class TestChangesetStore:
    def test_ids_increase_in_insertion_order(self, store):
        changesets = ChangesetStore(store, "demo/main")
        inserted = changesets.add_many(
            [
                ("aaa", None, [("a.txt", FileAction.ADDED)]),
                ("bbb", None, [("a.txt", FileAction.MODIFIED), ("b.pdf", FileAction.ADDED)]),
            ]
        )
        assert inserted == 2
        latest = changesets.latest()
        assert latest.revision == "bbb"
        assert latest.filechanges == (
            FileChange("a.txt", FileAction.MODIFIED),
            FileChange("b.pdf", FileAction.ADDED),
        )
        assert [cs.revision for cs in changesets.all()] == ["bbb", "aaa"]

    def test_known_revisions_are_ignored(self, store):
        changesets = ChangesetStore(store, "demo/main")
        changesets.add_many([("aaa", None, [])])
        first_id = changesets.latest().id
        assert changesets.add_many([("aaa", None, []), ("bbb", None, [])]) == 1
        assert changesets.known_revisions() == {"aaa", "bbb"}
        assert changesets.by_revisions(["aaa"])[0].id == first_id

    def test_repositories_are_isolated(self, store):
        ChangesetStore(store, "demo/main").add_many([("aaa", None, [])])
        other = ChangesetStore(store, "demo/extra")
        assert other.latest() is None
        assert other.by_revisions(["aaa"]) == []

    def test_by_revisions_newest_first_and_chunked(self, store):
        changesets = ChangesetStore(store, "demo/main")
        revisions = [f"rev{i:04d}" for i in range(1200)]
        changesets.add_many((rev, None, []) for rev in revisions)
        found = changesets.by_revisions([*revisions, "unknown"])
        assert len(found) == 1200
        assert found[0].revision == "rev1199"
        assert [cs.id for cs in found] == sorted((cs.id for cs in found), reverse=True)

    def test_committed_on_persisted(self, store):
        when = datetime(2024, 5, 1, 10, 0, tzinfo=UTC)
        changesets = ChangesetStore(store, "demo/main")
        changesets.add_many([("aaa", when, [])])
        assert changesets.latest().committed_on == when


class TestProgressTracker:
    def test_no_log_initially(self, tracker, repo):
        assert tracker.get(repo) is None

    def test_record_success_then_update(self, tracker, repo):
        tracker.record(repo, ChangeSet(id=3, revision="c"), IndexStatus.FAILURE, "scriptindex crashed")
        log = tracker.record(repo, ChangeSet(id=5, revision="e"), IndexStatus.SUCCESS, "ignored")
        assert log.succeeded
        stored = tracker.get(repo)
        assert stored.changeset_id == 5
        assert stored.status == IndexStatus.SUCCESS
        assert stored.message is None
        assert stored.updated_at is not None
        assert len(tracker.all()) == 1

    def test_failure_requires_message(self, tracker, repo):
        with pytest.raises(ValueError, match="diagnostic"):
            tracker.record(repo, ChangeSet(id=1, revision="a"), IndexStatus.FAILURE)

    def test_failure_persists_message(self, tracker, repo):
        tracker.record(repo, ChangeSet(id=2, revision="b"), IndexStatus.FAILURE, "rc=1")
        log = tracker.get(repo)
        assert not log.succeeded
        assert log.message == "rc=1"
        assert log.changeset_id == 2

    def test_reset(self, tracker, repo):
        tracker.record(repo, ChangeSet(id=1, revision="a"), IndexStatus.SUCCESS)
        assert tracker.reset(repo) is True
        assert tracker.get(repo) is None
        assert tracker.reset(repo) is False

    def test_rows_keyed_per_repository(self, tracker, make_repo):
        main = make_repo()
        extra = make_repo("extra")
        tracker.record(main, ChangeSet(id=1, revision="a"), IndexStatus.SUCCESS)
        tracker.record(extra, ChangeSet(id=9, revision="z"), IndexStatus.SUCCESS)
        assert [log.repository_id for log in tracker.all()] == ["demo/extra", "demo/main"]
        assert tracker.get(main).changeset_id == 1
