"""Per-repository indexing progress.

Exactly one row per repository is authoritative. ``record`` upserts it,
``reset`` deletes it so the next run starts with a full scan.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING

from loguru import logger

from repo_xapian.models import IndexingLog
from repo_xapian.schema import IndexStatus
from repo_xapian.store import from_timestamp, to_timestamp

if TYPE_CHECKING:
    import sqlite3

    from repo_xapian.models import ChangeSet
    from repo_xapian.scm import Repository
    from repo_xapian.store import IndexStore


class ProgressTracker:
    """Reads and writes ``indexing_logs`` rows.

    Two processes indexing the same repository race on the row; the last
    writer wins.
    """

    def __init__(self, store: IndexStore) -> None:
        self._conn = store.connection

    def get(self, repository: Repository) -> IndexingLog | None:
        row = self._conn.execute(
            "SELECT * FROM indexing_logs WHERE repository_id = ?", (repository.key,)
        ).fetchone()
        return _to_log(row) if row is not None else None

    def record(
        self,
        repository: Repository,
        changeset: ChangeSet,
        status: IndexStatus,
        message: str | None = None,
    ) -> IndexingLog:
        """Upsert the row for *repository*.

        Success clears any previous message; failure requires one.
        """
        status = IndexStatus(status)
        if status == IndexStatus.FAILURE and not message:
            msg = "A failure must be recorded with a diagnostic message"
            raise ValueError(msg)
        if status == IndexStatus.SUCCESS:
            message = None

        existing = self.get(repository)
        now = datetime.now(tz=UTC)
        with self._conn:
            self._conn.execute(
                """
                INSERT INTO indexing_logs (repository_id, changeset_id, status, message, updated_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT (repository_id) DO UPDATE SET
                    changeset_id = excluded.changeset_id,
                    status = excluded.status,
                    message = excluded.message,
                    updated_at = excluded.updated_at
                """,
                (repository.key, changeset.id, str(status), message, to_timestamp(now)),
            )
        if existing is None:
            logger.info("New log for repository {} saved", repository.name)
        else:
            logger.info("Log for repository {} updated", repository.name)
        return IndexingLog(repository.key, changeset.id, status, message, now)

    def reset(self, repository: Repository) -> bool:
        """Delete the row for *repository*. Returns True if one existed."""
        with self._conn:
            cur = self._conn.execute("DELETE FROM indexing_logs WHERE repository_id = ?", (repository.key,))
        logger.info("Log for repository {} removed", repository.name)
        return cur.rowcount > 0

    def all(self) -> list[IndexingLog]:
        rows = self._conn.execute("SELECT * FROM indexing_logs ORDER BY repository_id").fetchall()
        return [_to_log(row) for row in rows]


def _to_log(row: sqlite3.Row) -> IndexingLog:
    return IndexingLog(
        repository_id=row["repository_id"],
        changeset_id=row["changeset_id"],
        status=IndexStatus(row["status"]),
        message=row["message"],
        updated_at=from_timestamp(row["updated_at"]),
    )
