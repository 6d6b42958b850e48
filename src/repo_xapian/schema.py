"""Store schema and shared enumerations.

Defines file-change actions, indexing outcomes and the SQLite DDL used by
:mod:`repo_xapian.store`.
"""

from __future__ import annotations

from enum import StrEnum

# Bump on every change to the DDL below.
SCHEMA_VERSION: int = 1

# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class FileAction(StrEnum):
    """Action recorded for a path in a changeset."""

    ADDED = "A"
    MODIFIED = "M"
    REPLACED = "R"
    DELETED = "D"

    @property
    def is_delete(self) -> bool:
        return self is FileAction.DELETED


# git name-status letters that are not part of FileAction
_GIT_STATUS_ALIASES = {"T": FileAction.MODIFIED, "C": FileAction.ADDED}


def parse_action(code: str) -> FileAction:
    """Map a single-letter status code (git name-status style) to a FileAction."""
    letter = code[:1].upper()
    if letter in _GIT_STATUS_ALIASES:
        return _GIT_STATUS_ALIASES[letter]
    try:
        return FileAction(letter)
    except ValueError:
        return FileAction.MODIFIED


class IndexStatus(StrEnum):
    """Status persisted in the indexing log."""

    SUCCESS = "success"
    FAILURE = "failure"


class DocumentAction(StrEnum):
    """What the search backend should do with a document."""

    ADD_OR_UPDATE = "add_or_update"
    DELETE = "delete"


# ---------------------------------------------------------------------------
# DDL
# ---------------------------------------------------------------------------

_DDL: tuple[str, ...] = (
    """
    CREATE TABLE IF NOT EXISTS schema_version (
        version INTEGER NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS changesets (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        repository_id TEXT NOT NULL,
        revision TEXT NOT NULL,
        committed_on TEXT,
        UNIQUE (repository_id, revision)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS filechanges (
        changeset_id INTEGER NOT NULL REFERENCES changesets (id) ON DELETE CASCADE,
        position INTEGER NOT NULL,
        path TEXT NOT NULL,
        action TEXT NOT NULL,
        PRIMARY KEY (changeset_id, position)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS indexing_logs (
        repository_id TEXT PRIMARY KEY,
        changeset_id INTEGER NOT NULL,
        status TEXT NOT NULL,
        message TEXT,
        updated_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_changesets_repository ON changesets (repository_id, id)",
)


def generate_ddl() -> list[str]:
    """Return the DDL statements that create the store schema."""
    return [" ".join(stmt.split()) for stmt in _DDL]
