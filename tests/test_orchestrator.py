"""Tests for per-repository orchestration and the batch driver."""

from __future__ import annotations

from unittest.mock import patch

import pytest

from repo_xapian.indexing.orchestrator import (
    IndexOutcome,
    OutcomeStatus,
    index_projects,
    index_repository,
    iter_repositories,
    reset_logs,
)
from repo_xapian.models import ChangeSet
from repo_xapian.progress import ProgressTracker
from repo_xapian.schema import IndexStatus
from repo_xapian.scm import ScmError
from repo_xapian.settings import ProjectSettings, RepositorySettings

A_URI = "/projects/demo/repository/revisions/main/entry/a.txt"
B_URI = "/projects/demo/repository/revisions/main/entry/b.pdf"
B_TXT_URI = "/projects/demo/repository/revisions/main/entry/b.txt"


@pytest.fixture
def run(settings, project, tracker, extractor):
    """Index a repository with a fresh recording emitter; returns ``(outcome, emitter)``."""

    def _run(repo, emitter):
        outcome = index_repository(settings, project, repo, tracker, emitter=emitter, extractor=extractor)
        return outcome, emitter

    return _run


class TestExampleScenario:
    def test_full_then_noop_then_delete(self, run, repo, tracker, make_emitter):
        repo.commit({"a.txt": b"alpha"})
        repo.commit({"a.txt": b"alpha two", "b.pdf": b"pdf text"})

        outcome, first = run(repo, make_emitter())
        assert outcome.status == OutcomeStatus.SUCCESS
        assert outcome.mode == "full"
        assert sorted(first.uris) == [A_URI, B_URI]
        assert tracker.get(repo).changeset_id == 2

        log_before = tracker.get(repo)
        outcome, second = run(repo, make_emitter())
        assert outcome.status == OutcomeStatus.UP_TO_DATE
        assert second.documents == []
        assert tracker.get(repo) == log_before

        repo.commit({"a.txt": None})
        outcome, third = run(repo, make_emitter())
        assert outcome.status == OutcomeStatus.SUCCESS
        assert outcome.mode == "delta"
        assert third.uris == [A_URI]
        assert third.deleted == [A_URI]
        assert tracker.get(repo).changeset_id == 3

    def test_full_scan_carries_body_and_date(self, run, repo, make_emitter):
        repo.commit({"a.txt": b"line one\nline two"})
        _, emitter = run(repo, make_emitter())
        (doc,) = emitter.documents
        assert doc.body == "line one\nline two"
        assert doc.timestamp is not None


class TestProgress:
    def test_monotonic_across_runs(self, run, repo, tracker, make_emitter):
        recorded = []
        for i in range(4):
            repo.commit({f"f{i}.txt": b"x"})
            run(repo, make_emitter())
            recorded.append(tracker.get(repo).changeset_id)
        assert recorded == [1, 2, 3, 4]

    def test_full_scan_is_idempotent(self, run, repo, tracker, make_emitter):
        repo.commit({"a.txt": b"alpha", "docs/b.md": b"beta"})
        _, first = run(repo, make_emitter())
        tracker.reset(repo)
        outcome, second = run(repo, make_emitter())
        assert outcome.mode == "full"
        assert {(d.uri, d.body) for d in first.documents} == {(d.uri, d.body) for d in second.documents}

    def test_reset_forces_full_scan(self, run, repo, tracker, make_emitter):
        repo.commit({"a.txt": b"alpha"})
        run(repo, make_emitter())
        assert tracker.reset(repo) is True

        outcome, emitter = run(repo, make_emitter())
        assert outcome.status == OutcomeStatus.SUCCESS
        assert outcome.mode == "full"
        assert emitter.uris == [A_URI]

    def test_empty_repository(self, run, repo, tracker, make_emitter):
        outcome, emitter = run(repo, make_emitter())
        assert outcome.status == OutcomeStatus.EMPTY
        assert outcome.ok
        assert tracker.get(repo) is None
        assert emitter.documents == []

    def test_fetch_error_skips_without_progress(self, run, repo, tracker, make_emitter):
        repo.commit({"a.txt": b"alpha"})
        repo.fetch_error = ScmError("remote gone")
        outcome, _ = run(repo, make_emitter())
        assert outcome.status == OutcomeStatus.SKIPPED
        assert outcome.message == "remote gone"
        assert tracker.get(repo) is None


class TestFailureHandling:
    def test_emit_failure_for_one_file_does_not_stop_scan(self, run, repo, tracker, make_emitter):
        repo.commit({"a.txt": b"alpha", "b.txt": b"beta"})
        outcome, emitter = run(repo, make_emitter(fail_on=("a.txt",)))
        assert outcome.status == OutcomeStatus.SUCCESS
        assert emitter.uris == [B_TXT_URI]
        assert outcome.stats.failed == 1
        assert tracker.get(repo).status == IndexStatus.SUCCESS

    def test_unreadable_branch_skips_repository(self, run, tracker, make_repo, make_emitter):
        repo = make_repo(branches=("main", "broken"))
        repo.commit({"a.txt": b"alpha"})
        repo.commit({"b.txt": b"beta"}, line="broken")
        repo.broken_lines.add("broken")

        outcome, _ = run(repo, make_emitter())
        assert outcome.status == OutcomeStatus.SKIPPED
        assert outcome.ok
        assert tracker.get(repo) is None

    def test_indexing_error_records_failure(self, run, repo, tracker, make_emitter):
        repo.commit({"a.txt": b"alpha"})
        run(repo, make_emitter())
        repo.commit({"b.txt": b"beta"})
        repo.listing_error = ScmError("refs unreadable")

        outcome, _ = run(repo, make_emitter())
        assert outcome.status == OutcomeStatus.FAILURE
        assert not outcome.ok
        log = tracker.get(repo)
        assert log.status == IndexStatus.FAILURE
        assert log.changeset_id == 2
        assert "refs unreadable" in log.message

    def test_failure_log_triggers_full_scan_next_time(self, run, repo, tracker, make_emitter):
        repo.commit({"a.txt": b"alpha"})
        run(repo, make_emitter())
        repo.commit({"b.txt": b"beta"})
        repo.listing_error = ScmError("refs unreadable")
        run(repo, make_emitter())

        repo.listing_error = None
        outcome, emitter = run(repo, make_emitter())
        assert outcome.status == OutcomeStatus.SUCCESS
        assert outcome.mode == "full"
        assert sorted(emitter.uris) == [A_URI, B_TXT_URI]
        assert tracker.get(repo).message is None


class TestBatch:
    @staticmethod
    def _add_projects(settings, tmp_path, *project_ids):
        for identifier in project_ids:
            path = tmp_path / identifier
            path.mkdir()
            settings.projects.append(
                ProjectSettings(identifier=identifier, repositories=[RepositorySettings(path=path)])
            )

    def test_iter_repositories_ignores_unknown_and_non_git(self, settings, store, tmp_path):
        self._add_projects(settings, tmp_path, "alpha")
        settings.projects[0].repositories.append(
            RepositorySettings(identifier="svn", path=tmp_path, scm="subversion")
        )
        found = list(iter_repositories(settings, store, ["missing", "alpha"]))
        assert [(p.identifier, r.key) for p, r in found] == [("alpha", "alpha/main")]

    def test_missing_repository_path_is_skipped(self, settings, store, tmp_path):
        settings.projects.append(
            ProjectSettings(identifier="ghost", repositories=[RepositorySettings(path=tmp_path / "nope")])
        )
        assert list(iter_repositories(settings, store)) == []

    def test_one_failing_repository_does_not_stop_the_batch(self, settings, store, tmp_path):
        self._add_projects(settings, tmp_path, "alpha", "beta")
        calls = []

        def fake_index(settings, project, repository, tracker):
            calls.append(project.identifier)
            if project.identifier == "alpha":
                raise RuntimeError("boom")
            return IndexOutcome(repository.key, OutcomeStatus.SUCCESS, changeset_id=1)

        with patch("repo_xapian.indexing.orchestrator.index_repository", side_effect=fake_index):
            outcomes = index_projects(settings, store)

        assert calls == ["alpha", "beta"]
        assert [o.status for o in outcomes] == [OutcomeStatus.SKIPPED, OutcomeStatus.SUCCESS]
        assert outcomes[0].message == "boom"

    def test_reset_log_before_indexing(self, settings, store, tmp_path):
        self._add_projects(settings, tmp_path, "alpha")
        ((_, repository),) = iter_repositories(settings, store)
        ProgressTracker(store).record(repository, ChangeSet(id=7, revision="abc"), IndexStatus.SUCCESS)
        seen = []

        def fake_index(settings, project, repository, tracker):
            seen.append(tracker.get(repository))
            return IndexOutcome(repository.key, OutcomeStatus.EMPTY)

        with patch("repo_xapian.indexing.orchestrator.index_repository", side_effect=fake_index):
            index_projects(settings, store, reset_log=True)

        assert seen == [None]

    def test_reset_logs_counts_removed_rows(self, settings, store, tmp_path):
        self._add_projects(settings, tmp_path, "alpha", "beta")
        tracker = ProgressTracker(store)
        (_, alpha), _ = iter_repositories(settings, store)
        tracker.record(alpha, ChangeSet(id=1, revision="abc"), IndexStatus.SUCCESS)

        assert reset_logs(settings, store) == 1
        assert tracker.all() == []
