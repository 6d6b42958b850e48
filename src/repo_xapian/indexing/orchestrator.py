"""Per-repository orchestration: full vs. delta, progress bookkeeping, batch driver."""

from __future__ import annotations

import contextlib
import time
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING

from loguru import logger

from repo_xapian.backend import IndexingError
from repo_xapian.emitter import DocumentEmitter, index_config
from repo_xapian.extractor import TextExtractor
from repo_xapian.indexing.delta import index_diff
from repo_xapian.indexing.feeder import DocumentFeeder, ScanStats
from repo_xapian.indexing.walker import index_all
from repo_xapian.models import Project
from repo_xapian.progress import ProgressTracker
from repo_xapian.routing import UrlRouter
from repo_xapian.schema import IndexStatus
from repo_xapian.scm import ScmError, open_repository

if TYPE_CHECKING:
    from collections.abc import Iterator

    from repo_xapian.scm import Repository
    from repo_xapian.settings import IndexerSettings
    from repo_xapian.store import IndexStore

# ---------------------------------------------------------------------------
# Data structures
# ---------------------------------------------------------------------------


class OutcomeStatus(StrEnum):
    SUCCESS = "success"  # scan completed, progress advanced
    FAILURE = "failure"  # IndexingError, failure recorded
    SKIPPED = "skipped"  # aborted, progress untouched, retried next run
    UP_TO_DATE = "up_to_date"  # nothing new since the recorded changeset
    EMPTY = "empty"  # repository has no history


@dataclass(frozen=True)
class IndexOutcome:
    """Result of indexing one repository."""

    repository_key: str
    status: OutcomeStatus
    mode: str | None = None  # "full" | "delta"
    changeset_id: int | None = None
    message: str | None = None
    stats: ScanStats | None = None
    duration_s: float = 0.0

    @property
    def ok(self) -> bool:
        return self.status != OutcomeStatus.FAILURE


# ---------------------------------------------------------------------------
# Single repository
# ---------------------------------------------------------------------------


def index_repository(
    settings: IndexerSettings,
    project: Project,
    repository: Repository,
    tracker: ProgressTracker,
    *,
    emitter: DocumentEmitter | None = None,
    extractor: TextExtractor | None = None,
    router: UrlRouter | None = None,
) -> IndexOutcome:
    """Bring the search database up to date with *repository*.

    1. Refresh changeset history
    2. Stop if there is no history, or nothing new since the last success
    3. Full scan without a successful log, delta scan otherwise
    4. Record success (or the IndexingError as failure) against the latest changeset

    Progress is written only after a scan completes, so an interrupted or
    abandoned run is retried from the same point next time.
    """
    start = time.monotonic()
    key = repository.key

    logger.info("Fetch changesets: {} - {}", project, repository.name)
    try:
        repository.fetch_changesets()
    except ScmError as exc:
        logger.error("Cannot fetch changesets of {} - {}: {}", project, repository.name, exc)
        return IndexOutcome(key, OutcomeStatus.SKIPPED, message=str(exc), duration_s=time.monotonic() - start)

    latest = repository.latest_changeset()
    if latest is None:
        logger.info("No changesets: {} - {}", project, repository.name)
        return IndexOutcome(key, OutcomeStatus.EMPTY, duration_s=time.monotonic() - start)
    logger.info("Latest revision: {} - {} - {}", project, repository.name, latest.revision)

    prior = tracker.get(repository)
    logger.debug("Latest indexed: {}", prior)
    baseline = prior if prior is not None and prior.succeeded else None
    if baseline is not None and baseline.changeset_id >= latest.id:
        logger.info("Already indexed: {} (changeset {})", repository.name, baseline.changeset_id)
        return IndexOutcome(
            key,
            OutcomeStatus.UP_TO_DATE,
            mode="delta",
            changeset_id=baseline.changeset_id,
            duration_s=time.monotonic() - start,
        )

    mode = "delta" if baseline is not None else "full"
    try:
        with contextlib.ExitStack() as stack:
            if emitter is None:
                config_path = stack.enter_context(index_config(settings.temp_dir))
                emitter = DocumentEmitter(
                    settings.backend, config_path, settings.temp_dir, verbose=settings.verbose > 0
                )
            feeder = DocumentFeeder(
                project,
                repository,
                router or UrlRouter(settings.routing.base_url),
                extractor or TextExtractor(settings.converters, settings.temp_dir),
                emitter,
            )
            if baseline is not None:
                logger.info("Repository {} indexed, indexing diff", repository.name)
                stats = index_diff(repository, feeder, baseline.changeset_id, latest.id)
            else:
                logger.info("Repository {} not indexed, indexing all", repository.name)
                stats = index_all(repository, feeder)
    except IndexingError as exc:
        logger.error("Indexing {} - {} failed: {}", project, repository.name, exc)
        tracker.record(repository, latest, IndexStatus.FAILURE, str(exc))
        return IndexOutcome(
            key,
            OutcomeStatus.FAILURE,
            mode=mode,
            changeset_id=latest.id,
            message=str(exc),
            duration_s=time.monotonic() - start,
        )

    if not stats.complete:
        return IndexOutcome(
            key,
            OutcomeStatus.SKIPPED,
            mode=mode,
            message="scan did not complete",
            stats=stats,
            duration_s=time.monotonic() - start,
        )

    tracker.record(repository, latest, IndexStatus.SUCCESS)
    duration = time.monotonic() - start
    logger.info(
        "Successfully indexed ({}): {} - {} - {} | {} indexed, {} deleted, {} skipped, {} failed in {:.1f}s",
        mode,
        project,
        repository.name,
        latest.revision,
        stats.indexed,
        stats.deleted,
        stats.skipped,
        stats.failed,
        duration,
    )
    return IndexOutcome(
        key, OutcomeStatus.SUCCESS, mode=mode, changeset_id=latest.id, stats=stats, duration_s=duration
    )


# ---------------------------------------------------------------------------
# Batch
# ---------------------------------------------------------------------------


def iter_repositories(
    settings: IndexerSettings,
    store: IndexStore,
    project_ids: list[str] | None = None,
) -> Iterator[tuple[Project, Repository]]:
    """Yield ``(project, repository)`` for every configured repository that supports content retrieval.

    With *project_ids*, only those projects are visited, in the given order.
    """
    by_id = {p.identifier: p for p in settings.projects}
    selected = project_ids or list(by_id)
    for identifier in selected:
        project_settings = by_id.get(identifier)
        if project_settings is None:
            logger.warning("Project identifier {} not found, ignoring", identifier)
            continue
        project = Project(project_settings.identifier, project_settings.name)
        logger.info("- Indexing repositories for {}...", project)
        for repo_settings in project_settings.repositories:
            repository = open_repository(project, repo_settings, store)
            if repository is not None:
                yield project, repository


def index_projects(
    settings: IndexerSettings,
    store: IndexStore,
    *,
    project_ids: list[str] | None = None,
    reset_log: bool = False,
) -> list[IndexOutcome]:
    """Index every selected repository, one at a time.

    A failure in one repository never stops the others.
    """
    tracker = ProgressTracker(store)
    outcomes: list[IndexOutcome] = []
    for project, repository in iter_repositories(settings, store, project_ids):
        if reset_log:
            tracker.reset(repository)
        try:
            outcome = index_repository(settings, project, repository, tracker)
        except Exception as exc:
            logger.exception("Unexpected error indexing {} - {}", project, repository.name)
            outcome = IndexOutcome(repository.key, OutcomeStatus.SKIPPED, message=str(exc))
        outcomes.append(outcome)
    return outcomes


def reset_logs(settings: IndexerSettings, store: IndexStore, *, project_ids: list[str] | None = None) -> int:
    """Delete the indexing log of every selected repository. Returns the number removed."""
    tracker = ProgressTracker(store)
    return sum(tracker.reset(repository) for _, repository in iter_repositories(settings, store, project_ids))
