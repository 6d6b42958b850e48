"""Delta scan: index only the paths touched inside a changeset window."""

from __future__ import annotations

from typing import TYPE_CHECKING

from loguru import logger

from repo_xapian.backend import IndexingError
from repo_xapian.content_types import detect_content_type
from repo_xapian.indexing.feeder import FeedResult, ScanStats, describe, revision_lines
from repo_xapian.scm import ScmError

if TYPE_CHECKING:
    from collections.abc import Iterable

    from repo_xapian.indexing.feeder import DocumentFeeder
    from repo_xapian.models import ChangeSet
    from repo_xapian.schema import FileAction
    from repo_xapian.scm import Repository


def fold_actions(changesets: Iterable[ChangeSet]) -> dict[str, FileAction]:
    """Collapse file changes to one final action per path.

    Changesets are applied in ascending id order and the last action for a
    path wins, so a delete followed by an add folds to the add.
    """
    actions: dict[str, FileAction] = {}
    for changeset in sorted(changesets, key=lambda cs: cs.id):
        for change in changeset.filechanges:
            actions[change.path] = change.action
    return actions


def changesets_in_window(
    repository: Repository,
    identifier: str | None,
    from_id: int,
    to_id: int,
) -> list[ChangeSet]:
    """Changesets of *identifier* with ``from_id < id <= to_id``, ascending.

    The window size is only a page-size hint: other revision lines can push
    older commits into the page, so the result is re-filtered on ids.
    """
    try:
        fetched = repository.latest_changesets("", identifier, to_id - from_id)
    except ScmError as exc:
        msg = f"Cannot list changesets of {repository.name} - {describe(identifier)}: {exc}"
        raise IndexingError(msg) from exc
    return sorted((cs for cs in fetched if from_id < cs.id <= to_id), key=lambda cs: cs.id)


def walk_changes(
    repository: Repository,
    identifier: str | None,
    changesets: list[ChangeSet],
    feeder: DocumentFeeder,
    stats: ScanStats,
) -> None:
    logger.debug("Walking into {} changeset(s) of {}", len(changesets), describe(identifier))
    for path, action in fold_actions(changesets).items():
        if action.is_delete:
            stats.add(feeder.delete(identifier, path))
            continue
        entry = repository.entry(path, identifier)
        if entry is None:
            logger.warning(
                "Error indexing path: {!r}, action: {}, identifier: {!r}, repository: {}",
                path,
                action.name,
                identifier,
                repository.name,
            )
            stats.add(FeedResult.SKIPPED)
            continue
        if not entry.is_file:
            continue
        content_type = detect_content_type(path)
        if content_type is None:
            continue
        stats.add(feeder.add_or_update(identifier, path, entry.lastrev, content_type))


def index_diff(repository: Repository, feeder: DocumentFeeder, from_id: int, to_id: int) -> ScanStats:
    """Delta scan over the window ``(from_id, to_id]`` for every branch and tag."""
    stats = ScanStats(mode="delta")
    if from_id >= to_id:
        logger.info("Already indexed: {} (from: {} to {})", repository.name, from_id, to_id)
        return stats

    logger.info("Indexing diff: {} (from: {} to {})", repository.name, from_id, to_id)
    try:
        lines = list(revision_lines(repository))
    except ScmError as exc:
        msg = f"Cannot list branches and tags of {repository.name}: {exc}"
        raise IndexingError(msg) from exc
    for identifier, kind in lines:
        logger.info("Walking in {}: {} - {}", kind, repository.name, describe(identifier))
        changesets = changesets_in_window(repository, identifier, from_id, to_id)
        walk_changes(repository, identifier, changesets, feeder, stats)
    return stats
