"""SQLite store for changeset history and indexing progress."""

from __future__ import annotations

import sqlite3
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING

from loguru import logger

from repo_xapian.models import ChangeSet, FileChange
from repo_xapian.schema import SCHEMA_VERSION, FileAction, generate_ddl

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

_IN_CHUNK = 500  # stay well below SQLITE_MAX_VARIABLE_NUMBER


def to_timestamp(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat()


def from_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(value)


class IndexStore:
    """Owns the SQLite connection and schema.

    Pass ``":memory:"`` for a throwaway store (tests).
    """

    def __init__(self, path: str | Path) -> None:
        self._path = str(path)
        if self._path != ":memory:":
            Path(self._path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(self._path)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA foreign_keys = ON")
        self.ensure_schema()

    @property
    def connection(self) -> sqlite3.Connection:
        return self._conn

    @property
    def path(self) -> str:
        return self._path

    def ensure_schema(self) -> None:
        """Create tables if missing and stamp the schema version."""
        with self._conn:
            for stmt in generate_ddl():
                self._conn.execute(stmt)
            row = self._conn.execute("SELECT version FROM schema_version").fetchone()
            if row is None:
                self._conn.execute("INSERT INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,))
            elif row["version"] != SCHEMA_VERSION:
                logger.warning(
                    "Store {} has schema version {}, expected {}", self._path, row["version"], SCHEMA_VERSION
                )

    def close(self) -> None:
        self._conn.close()

    def __enter__(self) -> IndexStore:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()


class ChangesetStore:
    """Changeset history of a single repository.

    Ids come from a store-wide autoincrement, so they increase strictly in
    insertion order and never change once assigned.
    """

    def __init__(self, store: IndexStore, repository_id: str) -> None:
        self._conn = store.connection
        self.repository_id = repository_id

    def known_revisions(self) -> set[str]:
        rows = self._conn.execute(
            "SELECT revision FROM changesets WHERE repository_id = ?", (self.repository_id,)
        ).fetchall()
        return {row["revision"] for row in rows}

    def add_many(
        self,
        changesets: Iterable[tuple[str, datetime | None, Sequence[tuple[str, FileAction]]]],
    ) -> int:
        """Insert ``(revision, committed_on, [(path, action), ...])`` tuples in order.

        Revisions already present are ignored. Returns the number inserted.
        """
        inserted = 0
        with self._conn:
            for revision, committed_on, changes in changesets:
                cur = self._conn.execute(
                    "INSERT OR IGNORE INTO changesets (repository_id, revision, committed_on) VALUES (?, ?, ?)",
                    (self.repository_id, revision, to_timestamp(committed_on)),
                )
                if cur.rowcount == 0:
                    continue
                changeset_id = cur.lastrowid
                self._conn.executemany(
                    "INSERT INTO filechanges (changeset_id, position, path, action) VALUES (?, ?, ?, ?)",
                    [(changeset_id, pos, path, str(action)) for pos, (path, action) in enumerate(changes)],
                )
                inserted += 1
        return inserted

    def latest(self) -> ChangeSet | None:
        row = self._conn.execute(
            "SELECT * FROM changesets WHERE repository_id = ? ORDER BY id DESC LIMIT 1", (self.repository_id,)
        ).fetchone()
        if row is None:
            return None
        return self._hydrate([row])[0]

    def all(self) -> list[ChangeSet]:
        """Every changeset, newest first."""
        rows = self._conn.execute(
            "SELECT * FROM changesets WHERE repository_id = ? ORDER BY id DESC", (self.repository_id,)
        ).fetchall()
        return self._hydrate(rows)

    def by_revisions(self, revisions: Sequence[str]) -> list[ChangeSet]:
        """Changesets matching *revisions*, newest first. Unknown revisions are ignored."""
        rows: list[sqlite3.Row] = []
        for start in range(0, len(revisions), _IN_CHUNK):
            chunk = list(revisions[start : start + _IN_CHUNK])
            placeholders = ",".join("?" * len(chunk))
            rows.extend(
                self._conn.execute(
                    f"SELECT * FROM changesets WHERE repository_id = ? AND revision IN ({placeholders})",
                    (self.repository_id, *chunk),
                ).fetchall()
            )
        rows.sort(key=lambda r: r["id"], reverse=True)
        return self._hydrate(rows)

    def _hydrate(self, rows: Sequence[sqlite3.Row]) -> list[ChangeSet]:
        changes: dict[int, list[FileChange]] = {row["id"]: [] for row in rows}
        ids = list(changes)
        for start in range(0, len(ids), _IN_CHUNK):
            chunk = ids[start : start + _IN_CHUNK]
            placeholders = ",".join("?" * len(chunk))
            for fc in self._conn.execute(
                f"SELECT changeset_id, path, action FROM filechanges "
                f"WHERE changeset_id IN ({placeholders}) ORDER BY changeset_id, position",
                chunk,
            ):
                changes[fc["changeset_id"]].append(FileChange(fc["path"], FileAction(fc["action"])))
        return [
            ChangeSet(
                id=row["id"],
                revision=row["revision"],
                committed_on=from_timestamp(row["committed_on"]),
                filechanges=tuple(changes[row["id"]]),
            )
            for row in rows
        ]
