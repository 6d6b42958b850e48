"""Revision-control data structures shared by the store, the git adapter and the scans."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from repo_xapian.schema import FileAction, IndexStatus


@dataclass(frozen=True)
class FileChange:
    """A path touched by a changeset."""

    path: str
    action: FileAction


@dataclass(frozen=True)
class ChangeSet:
    """An atomic unit of history. ``id`` increases strictly within a repository."""

    id: int
    revision: str
    committed_on: datetime | None = None
    filechanges: tuple[FileChange, ...] = ()


@dataclass(frozen=True)
class Revision:
    """The last revision that touched an entry."""

    identifier: str
    time: datetime | None = None


@dataclass(frozen=True)
class Entry:
    """A path at a given revision."""

    path: str
    kind: str  # "dir" | "file"
    lastrev: Revision | None = None

    @property
    def is_dir(self) -> bool:
        return self.kind == "dir"

    @property
    def is_file(self) -> bool:
        return self.kind == "file"

    @property
    def name(self) -> str:
        return self.path.rsplit("/", 1)[-1]


@dataclass(frozen=True)
class IndexingLog:
    """The authoritative progress row for one repository."""

    repository_id: str
    changeset_id: int
    status: IndexStatus
    message: str | None = None
    updated_at: datetime | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == IndexStatus.SUCCESS


@dataclass(frozen=True)
class Project:
    """A project owning one or more repositories."""

    identifier: str
    name: str = ""

    def __str__(self) -> str:
        return self.name or self.identifier
