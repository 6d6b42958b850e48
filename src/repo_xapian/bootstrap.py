"""Environment checks run before any indexing.

A failure here means the installation is misconfigured, so the whole run
stops instead of skipping a repository.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from loguru import logger

from repo_xapian.attachments import attachment_db_path

if TYPE_CHECKING:
    from pathlib import Path

    from repo_xapian.settings import IndexerSettings


class BootstrapError(Exception):
    """Raised when a required binary or directory is unavailable."""


def require_binary(path: Path) -> None:
    if not path.exists():
        msg = f"{path} does not exist, exiting..."
        raise BootstrapError(msg)


def ensure_directory(path: Path) -> Path:
    """Create *path* (and parents) when missing."""
    if not path.is_dir():
        logger.info("{} does not exist, creating...", path)
        try:
            path.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            msg = f"Cannot create {path}: {exc}"
            raise BootstrapError(msg) from exc
    return path


def prepare_attachments(settings: IndexerSettings, stem_langs: list[str]) -> None:
    require_binary(settings.backend.omindex)
    files_dir = settings.attachments.files_dir
    if not files_dir.is_dir():
        msg = f"An error while accessing {files_dir}, exiting..."
        raise BootstrapError(msg)
    for lang in stem_langs:
        ensure_directory(attachment_db_path(settings, lang))


def prepare_repositories(settings: IndexerSettings) -> None:
    require_binary(settings.backend.scriptindex)
    ensure_directory(settings.backend.repository_db_path)
    ensure_directory(settings.temp_dir)
    ensure_directory(settings.store_path.parent)
