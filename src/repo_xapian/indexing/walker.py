"""Full scan: walk every file of every branch and tag."""

from __future__ import annotations

from typing import TYPE_CHECKING

from loguru import logger

from repo_xapian.backend import IndexingError
from repo_xapian.content_types import detect_content_type
from repo_xapian.indexing.feeder import ScanStats, describe, revision_lines

if TYPE_CHECKING:
    from collections.abc import Iterator

    from repo_xapian.indexing.feeder import DocumentFeeder
    from repo_xapian.models import Entry
    from repo_xapian.scm import Repository


def iter_files(repository: Repository, identifier: str | None) -> Iterator[Entry]:
    """Depth-first, in enumeration order, over the file entries of *identifier*.

    Uses an explicit stack of entry iterators so deep trees do not grow the
    call stack.
    """
    stack = [iter(repository.entries(None, identifier))]
    while stack:
        entry = next(stack[-1], None)
        if entry is None:
            stack.pop()
            continue
        if entry.is_dir:
            stack.append(iter(repository.entries(entry.path, identifier)))
        elif entry.is_file:
            yield entry


def walk(repository: Repository, identifier: str | None, feeder: DocumentFeeder, stats: ScanStats) -> None:
    """Feed every supported file at *identifier*. Files without a last revision are skipped."""
    for entry in iter_files(repository, identifier):
        if entry.lastrev is None:
            continue
        content_type = detect_content_type(entry.path)
        if content_type is None:
            continue
        stats.add(feeder.add_or_update(identifier, entry.path, entry.lastrev, content_type))


def index_all(repository: Repository, feeder: DocumentFeeder) -> ScanStats:
    """Full scan over all branches (or the default line) and then all tags.

    A file present in a branch and a tag is indexed once per identifier, each
    under its own URI. :class:`IndexingError` propagates; any other error
    abandons the scan and returns stats with ``complete=False``.
    """
    logger.info("Indexing all: {}", repository.name)
    stats = ScanStats(mode="full")
    try:
        for identifier, kind in revision_lines(repository):
            logger.info("Walking in {}: {} - {}", kind, repository.name, describe(identifier))
            walk(repository, identifier, feeder, stats)
    except IndexingError:
        raise
    except Exception as exc:
        logger.error("{} encountered an error and will be skipped: {}", repository.name, exc)
        stats.complete = False
    return stats
