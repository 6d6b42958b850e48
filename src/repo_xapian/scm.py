"""Revision-control collaborator: the repository interface and its git implementation."""

from __future__ import annotations

import subprocess
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from loguru import logger

from repo_xapian.models import ChangeSet, Entry, Revision
from repo_xapian.schema import parse_action
from repo_xapian.store import ChangesetStore

if TYPE_CHECKING:
    from collections.abc import Iterator

    from repo_xapian.models import Project
    from repo_xapian.schema import FileAction
    from repo_xapian.settings import RepositorySettings
    from repo_xapian.store import IndexStore

_RECORD_SEP = "\x1e"
_FIELD_SEP = "\x1f"
_GIT_TIMEOUT_S = 120.0


class ScmError(Exception):
    """Raised when the version control backend cannot answer a request."""


# ---------------------------------------------------------------------------
# Repository protocol
# ---------------------------------------------------------------------------


@runtime_checkable
class Repository(Protocol):
    """Interface the indexing engine needs from a version-controlled repository.

    ``identifier`` is empty for a project's main repository. ``key`` is unique
    across projects and keys the progress store.
    """

    identifier: str
    supports_cat: bool

    @property
    def key(self) -> str: ...

    @property
    def name(self) -> str: ...

    @property
    def changesets(self) -> list[ChangeSet]: ...

    @property
    def branches(self) -> list[str] | None: ...

    @property
    def tags(self) -> list[str] | None: ...

    def fetch_changesets(self) -> None: ...

    def latest_changeset(self) -> ChangeSet | None: ...

    def entries(self, path: str | None, identifier: str | None) -> list[Entry]: ...

    def entry(self, path: str, identifier: str | None) -> Entry | None: ...

    def cat(self, path: str, identifier: str | None) -> bytes | None: ...

    def latest_changesets(self, path: str, identifier: str | None, limit: int | None) -> list[ChangeSet]: ...

    def relative_path(self, path: str) -> str: ...


def repository_key(project_identifier: str, identifier: str) -> str:
    return f"{project_identifier}/{identifier or 'main'}"


# ---------------------------------------------------------------------------
# git implementation
# ---------------------------------------------------------------------------


class GitRepository:
    """A git repository (bare or working copy) read through the ``git`` binary.

    Changeset ids are assigned by :class:`~repo_xapian.store.ChangesetStore`
    when :meth:`fetch_changesets` first sees a commit, so they stay stable
    across runs no matter how git orders history later.
    """

    supports_cat = True

    def __init__(
        self,
        project: Project,
        path: str | Path,
        store: IndexStore,
        *,
        identifier: str = "",
        git_binary: str = "git",
        timeout_s: float = _GIT_TIMEOUT_S,
    ) -> None:
        self.project = project
        self.identifier = identifier
        self.path = Path(path)
        self._git_binary = git_binary
        self._timeout = timeout_s
        self._changesets = ChangesetStore(store, self.key)

    def __repr__(self) -> str:
        return f"GitRepository({self.key!r}, {str(self.path)!r})"

    @property
    def key(self) -> str:
        return repository_key(self.project.identifier, self.identifier)

    @property
    def name(self) -> str:
        return self.identifier or "main"

    # -- history -------------------------------------------------------------

    def fetch_changesets(self) -> None:
        """Store every commit reachable from any ref that is not stored yet.

        Merge commits list their changes against the first parent, so content
        that only changed in a merge resolution still reaches the delta scan.
        """
        known = self._changesets.known_revisions()
        raw = self._git(
            "log",
            "-z",
            "--all",
            "--reverse",
            "--topo-order",
            "--no-renames",
            "--name-status",
            "--diff-merges=first-parent",
            f"--format={_RECORD_SEP}%H{_FIELD_SEP}%ct",
        )
        added = self._changesets.add_many(commit for commit in _parse_log(raw) if commit[0] not in known)
        if added:
            logger.debug("Stored {} new changeset(s) for {}", added, self.key)

    @property
    def changesets(self) -> list[ChangeSet]:
        """All stored changesets, newest first."""
        return self._changesets.all()

    def latest_changeset(self) -> ChangeSet | None:
        return self._changesets.latest()

    def latest_changesets(self, path: str, identifier: str | None, limit: int | None) -> list[ChangeSet]:
        """Stored changesets among the newest *limit* commits of *identifier* touching *path*."""
        args = ["rev-list"]
        if limit is not None and limit > 0:
            args.append(f"--max-count={limit}")
        args.append(self._treeish(identifier))
        if path:
            args.extend(["--", path])
        revisions = self._git(*args).decode("ascii", errors="replace").split()
        return self._changesets.by_revisions(revisions)

    # -- refs ----------------------------------------------------------------

    @property
    def branches(self) -> list[str] | None:
        return self._refs("refs/heads/")

    @property
    def tags(self) -> list[str] | None:
        return self._refs("refs/tags/")

    def _refs(self, prefix: str) -> list[str] | None:
        raw = self._git("for-each-ref", "--format=%(refname)", prefix).decode("utf-8", errors="replace")
        names = [line[len(prefix) :] for line in raw.splitlines() if line.startswith(prefix)]
        return sorted(names) or None

    # -- trees ---------------------------------------------------------------

    def entries(self, path: str | None, identifier: str | None) -> list[Entry]:
        """Direct children of directory *path* (root when empty) at *identifier*."""
        treeish = self._treeish(identifier)
        args = ["ls-tree", "-z", treeish]
        if path:
            args.extend(["--", path.rstrip("/") + "/"])
        return [self._to_entry(kind, item_path, treeish) for kind, item_path in _parse_ls_tree(self._git(*args))]

    def entry(self, path: str, identifier: str | None) -> Entry | None:
        """The entry at exactly *path*, or ``None`` when it cannot be resolved."""
        treeish = self._treeish(identifier)
        try:
            items = list(_parse_ls_tree(self._git("ls-tree", "-z", treeish, "--", path.rstrip("/"))))
        except ScmError as exc:
            logger.debug("Cannot resolve {} at {}: {}", path, treeish, exc)
            return None
        for kind, item_path in items:
            if item_path == path.rstrip("/"):
                return self._to_entry(kind, item_path, treeish)
        return None

    def cat(self, path: str, identifier: str | None) -> bytes | None:
        return self._git("cat-file", "blob", f"{self._treeish(identifier)}:{path}")

    def relative_path(self, path: str) -> str:
        return path.lstrip("/")

    # -- helpers -------------------------------------------------------------

    def _to_entry(self, kind: str, path: str, treeish: str) -> Entry:
        lastrev = self._lastrev(path, treeish) if kind == "file" else None
        return Entry(path=path, kind=kind, lastrev=lastrev)

    def _lastrev(self, path: str, treeish: str) -> Revision | None:
        raw = self._git("log", "-1", f"--format=%H{_FIELD_SEP}%ct", treeish, "--", path).decode("ascii").strip()
        if not raw:
            return None
        revision, _, epoch = raw.partition(_FIELD_SEP)
        return Revision(identifier=revision, time=_epoch(epoch))

    @staticmethod
    def _treeish(identifier: str | None) -> str:
        return identifier or "HEAD"

    def _git(self, *args: str) -> bytes:
        cmd = [self._git_binary, "--literal-pathspecs", "-c", "core.quotepath=off", "-C", str(self.path), *args]
        try:
            result = subprocess.run(cmd, capture_output=True, timeout=self._timeout, check=False)
        except (FileNotFoundError, subprocess.TimeoutExpired) as exc:
            msg = f"git {args[0]} failed for {self.path}: {exc}"
            raise ScmError(msg) from exc
        if result.returncode != 0:
            stderr = result.stderr.decode("utf-8", errors="replace").strip()
            msg = f"git {args[0]} failed for {self.path} (rc={result.returncode}): {stderr}"
            raise ScmError(msg)
        return result.stdout


def _epoch(value: str) -> datetime | None:
    try:
        return datetime.fromtimestamp(int(value), tz=UTC)
    except ValueError:
        return None


def _parse_log(raw: bytes) -> Iterator[tuple[str, datetime | None, list[tuple[str, FileAction]]]]:
    """Parse ``git log -z --name-status`` output framed by record/field separators.

    Each record is the header, a NUL, then alternating status and path fields
    separated by NULs. Paths arrive verbatim, never C-quoted.
    """
    for record in raw.split(_RECORD_SEP.encode())[1:]:
        header, _, body = record.partition(b"\0")
        revision, _, epoch = header.decode("utf-8", errors="replace").partition(_FIELD_SEP)
        fields = body.split(b"\0")
        changes: list[tuple[str, FileAction]] = []
        for code, path in zip(fields[::2], fields[1::2], strict=False):
            letter = code.strip().decode("ascii", errors="replace")
            if not letter or not path:
                continue
            changes.append((path.decode("utf-8", errors="replace"), parse_action(letter)))
        yield revision.strip(), _epoch(epoch.strip()), changes


def _parse_ls_tree(raw: bytes) -> Iterator[tuple[str, str]]:
    """Yield ``(kind, path)`` from ``git ls-tree -z``; submodules are skipped."""
    for item in raw.split(b"\0"):
        if not item:
            continue
        meta, _, name = item.partition(b"\t")
        fields = meta.split()
        if len(fields) < 3:
            continue
        otype = fields[1]
        if otype == b"tree":
            yield "dir", name.decode("utf-8", errors="replace")
        elif otype == b"blob":
            yield "file", name.decode("utf-8", errors="replace")


def open_repository(project: Project, settings: RepositorySettings, store: IndexStore) -> Repository | None:
    """Build a repository for *settings*, or ``None`` if content cannot be retrieved from it."""
    if settings.scm.lower() != "git":
        logger.info(
            "Repository {} of {} uses '{}', which does not support content retrieval; skipping",
            settings.identifier or "main",
            project,
            settings.scm,
        )
        return None
    if not settings.path.exists():
        logger.warning("Repository path {} for project {} does not exist; skipping", settings.path, project)
        return None
    return GitRepository(project, settings.path, store, identifier=settings.identifier)
