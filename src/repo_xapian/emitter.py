"""Document emitter: formats scriptindex records and feeds them to the backend.

A record is line oriented::

    url=/projects/p/repository/revisions/main/entry/a.txt
    date=2024-05-01 10:00:00 +0000
    body=first line
    =second line

A record carrying only ``url`` removes the document with that URI.
"""

from __future__ import annotations

import contextlib
import tempfile
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING

from loguru import logger

from repo_xapian.backend import IndexingError, run_backend
from repo_xapian.schema import DocumentAction

if TYPE_CHECKING:
    from collections.abc import Iterator

    from repo_xapian.settings import BackendSettings

# Field mapping handed to scriptindex for repository documents.
INDEX_CONFIG = "url : field boolean=Q unique=Q\nbody : index truncate=400 field=sample\ndate: field=date\n"

EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


def format_date(value: datetime | None) -> str:
    value = value or EPOCH
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.strftime("%Y-%m-%d %H:%M:%S %z")


@dataclass(frozen=True)
class IndexDocument:
    """One document for the backend, or a delete marker when ``action`` is DELETE."""

    uri: str
    action: DocumentAction = DocumentAction.ADD_OR_UPDATE
    timestamp: datetime | None = None
    body: str = ""

    @property
    def is_delete(self) -> bool:
        return self.action == DocumentAction.DELETE

    def to_record(self) -> str:
        lines = [f"url={self.uri}"]
        if not self.is_delete:
            lines.append(f"date={format_date(self.timestamp)}")
            for i, line in enumerate(self.body.splitlines()):
                lines.append(f"body={line}" if i == 0 else f"={line}")
        return "\n".join(lines) + "\n"


@contextlib.contextmanager
def index_config(temp_dir: str | Path) -> Iterator[Path]:
    """Write the field-mapping config for one repository run; removed on exit."""
    try:
        with tempfile.NamedTemporaryFile(
            "w", encoding="utf-8", prefix="index.conf.", dir=temp_dir, delete=False
        ) as fh:
            fh.write(INDEX_CONFIG)
    except OSError as exc:
        msg = f"Cannot write index config in {temp_dir}: {exc}"
        raise IndexingError(msg) from exc
    path = Path(fh.name)
    try:
        yield path
    finally:
        path.unlink(missing_ok=True)


class DocumentEmitter:
    """Feeds single documents to ``scriptindex``.

    Each :meth:`emit` is a separate backend process updating the repository
    database; the backend's own locking serializes writers.
    """

    def __init__(
        self,
        settings: BackendSettings,
        config_path: str | Path,
        temp_dir: str | Path,
        *,
        verbose: bool = False,
    ) -> None:
        self._settings = settings
        self._config_path = Path(config_path)
        self._temp_dir = Path(temp_dir)
        self._verbose = verbose

    def emit(
        self,
        uri: str,
        action: DocumentAction,
        timestamp: datetime | None = None,
        text: str | None = None,
    ) -> IndexDocument:
        """Add, update or delete the document keyed by *uri*.

        Raises :class:`IndexingError` when the backend rejects the record.
        """
        document = IndexDocument(uri=uri, action=DocumentAction(action), timestamp=timestamp, body=text or "")
        self.send(document)
        return document

    def send(self, document: IndexDocument) -> None:
        try:
            with tempfile.NamedTemporaryFile(
                "w", encoding="utf-8", prefix="filetoindex.", dir=self._temp_dir, delete=False
            ) as fh:
                fh.write(document.to_record())
        except OSError as exc:
            msg = f"Cannot write record for {document.uri}: {exc}"
            raise IndexingError(msg) from exc
        record = Path(fh.name)
        try:
            run_backend(
                [
                    self._settings.scriptindex,
                    "-s",
                    self._settings.repository_stem_lang,
                    self._settings.repository_db_path,
                    self._config_path,
                    record,
                ],
                verbose=self._verbose,
                timeout_s=self._settings.timeout_s,
            )
        finally:
            record.unlink(missing_ok=True)
        if document.is_delete:
            logger.debug("Document {} removed from the database", document.uri)
        else:
            logger.debug("Document {} added to the database", document.uri)
