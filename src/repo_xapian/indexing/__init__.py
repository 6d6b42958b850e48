"""Full scan, delta scan, document feeding and orchestration."""

from __future__ import annotations

from repo_xapian.indexing.delta import changesets_in_window, fold_actions, index_diff
from repo_xapian.indexing.feeder import DocumentFeeder, FeedResult, ScanStats, revision_lines
from repo_xapian.indexing.orchestrator import (
    IndexOutcome,
    OutcomeStatus,
    index_projects,
    index_repository,
    iter_repositories,
    reset_logs,
)
from repo_xapian.indexing.walker import index_all, iter_files

__all__ = [
    "DocumentFeeder",
    "FeedResult",
    "IndexOutcome",
    "OutcomeStatus",
    "ScanStats",
    "changesets_in_window",
    "fold_actions",
    "index_all",
    "index_diff",
    "index_projects",
    "index_repository",
    "iter_files",
    "iter_repositories",
    "reset_logs",
    "revision_lines",
]
