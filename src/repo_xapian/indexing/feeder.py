"""Per-document feeding shared by the full and delta scans."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING

from loguru import logger

from repo_xapian.backend import IndexingError
from repo_xapian.schema import DocumentAction
from repo_xapian.scm import ScmError

if TYPE_CHECKING:
    from collections.abc import Iterator
    from datetime import datetime

    from repo_xapian.content_types import ContentType
    from repo_xapian.emitter import DocumentEmitter
    from repo_xapian.extractor import TextExtractor
    from repo_xapian.models import Project, Revision
    from repo_xapian.routing import UrlRouter
    from repo_xapian.scm import Repository


class FeedResult(StrEnum):
    """Outcome of feeding one path."""

    INDEXED = "indexed"
    DELETED = "deleted"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class ScanStats:
    """Counters for one full or delta scan.

    ``complete`` is False when a walk was abandoned part way through.
    """

    mode: str = "full"  # "full" | "delta"
    indexed: int = 0
    deleted: int = 0
    skipped: int = 0
    failed: int = 0
    complete: bool = True

    def add(self, result: FeedResult) -> None:
        if result is FeedResult.INDEXED:
            self.indexed += 1
        elif result is FeedResult.DELETED:
            self.deleted += 1
        elif result is FeedResult.SKIPPED:
            self.skipped += 1
        else:
            self.failed += 1

    @property
    def emitted(self) -> int:
        return self.indexed + self.deleted


def revision_lines(repository: Repository) -> Iterator[tuple[str | None, str]]:
    """Yield ``(identifier, kind)`` for every branch, then every tag.

    A repository without branches contributes a single unnamed line.
    """
    branches = repository.branches
    if branches:
        for branch in branches:
            yield branch, "branch"
    else:
        yield None, "branch"
    for tag in repository.tags or ():
        yield tag, "tag"


def describe(identifier: str | None) -> str:
    return identifier or "[NOBRANCH]"


class DocumentFeeder:
    """Takes one path through URI generation, text extraction and emission.

    Every step that can fail returns a :class:`FeedResult` instead of raising,
    so one bad file never stops a scan.
    """

    def __init__(
        self,
        project: Project,
        repository: Repository,
        router: UrlRouter,
        extractor: TextExtractor,
        emitter: DocumentEmitter,
    ) -> None:
        self.project = project
        self.repository = repository
        self._router = router
        self._extractor = extractor
        self._emitter = emitter

    def add_or_update(
        self,
        identifier: str | None,
        path: str,
        lastrev: Revision | None,
        content_type: ContentType,
    ) -> FeedResult:
        uri = self._router.generate(self.project, self.repository, identifier, path)
        if not uri:
            return FeedResult.SKIPPED
        try:
            data = self.repository.cat(path, identifier)
        except ScmError as exc:
            logger.error("Cannot read {} at {}: {}", path, describe(identifier), exc)
            return FeedResult.SKIPPED
        text = self._extractor.extract(data, content_type, path)
        if text is None:
            logger.debug("No text extracted from {} ({})", path, content_type)
            return FeedResult.SKIPPED
        logger.debug("Indexing: {} as {}", path, uri)
        timestamp = lastrev.time if lastrev is not None else None
        return self._emit(uri, DocumentAction.ADD_OR_UPDATE, timestamp, text)

    def delete(self, identifier: str | None, path: str) -> FeedResult:
        uri = self._router.generate(self.project, self.repository, identifier, path)
        if not uri:
            return FeedResult.SKIPPED
        logger.debug("Path: {} should be deleted", path)
        return self._emit(uri, DocumentAction.DELETE)

    def _emit(
        self,
        uri: str,
        action: DocumentAction,
        timestamp: datetime | None = None,
        text: str | None = None,
    ) -> FeedResult:
        try:
            self._emitter.emit(uri, action, timestamp, text)
        except IndexingError as exc:
            logger.error("{}", exc)
            return FeedResult.FAILED
        return FeedResult.DELETED if action == DocumentAction.DELETE else FeedResult.INDEXED
