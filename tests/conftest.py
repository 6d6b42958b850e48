"""Shared test fixtures for repo-xapian."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from repo_xapian.backend import IndexingError
from repo_xapian.emitter import IndexDocument
from repo_xapian.models import ChangeSet, Entry, FileChange, Project, Revision
from repo_xapian.progress import ProgressTracker
from repo_xapian.schema import DocumentAction, FileAction
from repo_xapian.scm import ScmError, repository_key
from repo_xapian.settings import BackendSettings, IndexerSettings, StoreSettings
from repo_xapian.store import IndexStore

_T0 = datetime(2024, 1, 1, tzinfo=UTC)


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeRepository:
    """In-memory repository with branches, tags and a changeset history.

    ``commit`` adds a changeset that becomes visible after ``fetch_changesets``,
    like a push the indexer has not seen yet.
    """

    supports_cat = True

    def __init__(self, identifier: str = "", *, project: str = "demo", branches: tuple[str, ...] = ("main",)) -> None:
        self.identifier = identifier
        self.project_identifier = project
        self._branches = list(branches)
        self._tags: list[str] = []
        self._default = self._branches[0] if self._branches else None
        self.trees: dict[str | None, dict[str, tuple[bytes, Revision | None]]] = {}
        self.line_changesets: dict[str | None, list[ChangeSet]] = {}
        self._fetched: list[ChangeSet] = []
        self._pending: list[ChangeSet] = []
        self._next_id = 1
        self.broken_lines: set[str | None] = set()
        self.fetch_error: Exception | None = None
        self.listing_error: Exception | None = None
        self.unresolvable: set[str] = set()
        self.fetch_calls = 0

    @property
    def key(self) -> str:
        return repository_key(self.project_identifier, self.identifier)

    @property
    def name(self) -> str:
        return self.identifier or "main"

    # -- test helpers --------------------------------------------------------

    def commit(self, changes: dict[str, bytes | None], *, line: str | None = "main") -> ChangeSet:
        """Apply *changes* (``None`` deletes) to *line* and record a pending changeset."""
        cs_id = self._next_id
        self._next_id += 1
        revision = Revision(identifier=f"r{cs_id}", time=_T0 + timedelta(hours=cs_id))
        tree = self.trees.setdefault(line, {})
        filechanges = []
        for path, content in changes.items():
            if content is None:
                tree.pop(path, None)
                filechanges.append(FileChange(path, FileAction.DELETED))
            else:
                action = FileAction.MODIFIED if path in tree else FileAction.ADDED
                tree[path] = (content, revision)
                filechanges.append(FileChange(path, action))
        changeset = ChangeSet(
            id=cs_id, revision=revision.identifier, committed_on=revision.time, filechanges=tuple(filechanges)
        )
        self.line_changesets.setdefault(line, []).append(changeset)
        self._pending.append(changeset)
        return changeset

    def tag(self, name: str, *, source: str | None = "main") -> None:
        self._tags.append(name)
        self.trees[name] = dict(self.trees.get(source, {}))
        self.line_changesets[name] = list(self.line_changesets.get(source, []))

    def forget_history(self, path: str, *, line: str | None = "main") -> None:
        content, _ = self.trees[line][path]
        self.trees[line][path] = (content, None)

    # -- Repository protocol -------------------------------------------------

    def fetch_changesets(self) -> None:
        self.fetch_calls += 1
        if self.fetch_error is not None:
            raise self.fetch_error
        self._fetched.extend(self._pending)
        self._pending.clear()

    @property
    def changesets(self) -> list[ChangeSet]:
        return sorted(self._fetched, key=lambda cs: cs.id, reverse=True)

    def latest_changeset(self) -> ChangeSet | None:
        return self.changesets[0] if self._fetched else None

    @property
    def branches(self) -> list[str] | None:
        if self.listing_error is not None:
            raise self.listing_error
        return list(self._branches) or None

    @property
    def tags(self) -> list[str] | None:
        return list(self._tags) or None

    def _tree(self, identifier: str | None) -> dict[str, tuple[bytes, Revision | None]]:
        line = identifier if identifier is not None else self._default
        if line in self.broken_lines:
            msg = f"cannot read {line}"
            raise ScmError(msg)
        return self.trees.get(line, {})

    def entries(self, path: str | None, identifier: str | None) -> list[Entry]:
        tree = self._tree(identifier)
        prefix = f"{path.rstrip('/')}/" if path else ""
        result: dict[str, Entry] = {}
        for file_path in sorted(tree):
            if not file_path.startswith(prefix):
                continue
            head, sep, _ = file_path[len(prefix) :].partition("/")
            child = prefix + head
            if sep:
                result.setdefault(child, Entry(child, "dir"))
            else:
                result[child] = Entry(child, "file", tree[child][1])
        return list(result.values())

    def entry(self, path: str, identifier: str | None) -> Entry | None:
        if path in self.unresolvable:
            return None
        tree = self._tree(identifier)
        if path in tree:
            return Entry(path, "file", tree[path][1])
        if any(p.startswith(f"{path}/") for p in tree):
            return Entry(path, "dir")
        return None

    def cat(self, path: str, identifier: str | None) -> bytes | None:
        return self._tree(identifier)[path][0]

    def latest_changesets(self, path: str, identifier: str | None, limit: int | None) -> list[ChangeSet]:
        line = identifier if identifier is not None else self._default
        fetched = {cs.id for cs in self._fetched}
        history = [cs for cs in self.line_changesets.get(line, []) if cs.id in fetched]
        history.sort(key=lambda cs: cs.id, reverse=True)
        return history[:limit] if limit else history

    def relative_path(self, path: str) -> str:
        return path.lstrip("/")


class RecordingEmitter:
    """Stands in for DocumentEmitter; remembers what would have been sent."""

    def __init__(self, *, fail_on: tuple[str, ...] = ()) -> None:
        self.documents: list[IndexDocument] = []
        self.fail_on = fail_on

    def emit(self, uri, action, timestamp=None, text=None) -> IndexDocument:
        if any(uri.endswith(suffix) for suffix in self.fail_on):
            msg = f"scriptindex rejected {uri}"
            raise IndexingError(msg)
        document = IndexDocument(uri=uri, action=DocumentAction(action), timestamp=timestamp, body=text or "")
        self.documents.append(document)
        return document

    @property
    def uris(self) -> list[str]:
        return [d.uri for d in self.documents]

    @property
    def deleted(self) -> list[str]:
        return [d.uri for d in self.documents if d.is_delete]


class PassthroughExtractor:
    """Treats every blob as UTF-8 text, so binary formats need no converters."""

    def extract(self, data, content_type, filename) -> str | None:
        return None if data is None else data.decode("utf-8", errors="replace")


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings(tmp_path):
    """Settings rooted in a temporary directory."""
    return IndexerSettings(
        temp_dir=tmp_path,
        backend=BackendSettings(db_root=tmp_path / "db"),
        store=StoreSettings(database=tmp_path / "state.sqlite3"),
    )


@pytest.fixture
def store():
    with IndexStore(":memory:") as s:
        yield s


@pytest.fixture
def tracker(store):
    return ProgressTracker(store)


@pytest.fixture
def project():
    return Project("demo", "Demo")


@pytest.fixture
def repo():
    return FakeRepository()


@pytest.fixture
def emitter():
    return RecordingEmitter()


@pytest.fixture
def extractor():
    return PassthroughExtractor()


@pytest.fixture
def make_repo():
    """Factory for repositories with custom branches or identifiers."""
    return FakeRepository


@pytest.fixture
def make_emitter():
    return RecordingEmitter
