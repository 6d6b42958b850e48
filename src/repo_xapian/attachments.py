"""Attachment store indexing, delegated wholesale to omindex.

Unlike repositories this is not incremental on our side: omindex crawls the
whole directory and skips files it has already seen.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from loguru import logger

from repo_xapian.backend import run_backend

if TYPE_CHECKING:
    from pathlib import Path

    from repo_xapian.settings import IndexerSettings


def omindex_command(settings: IndexerSettings, lang: str) -> list[str]:
    """Build the omindex invocation for one stemming language."""
    cmd = [
        str(settings.backend.omindex),
        "-s",
        lang,
        "--db",
        str(attachment_db_path(settings, lang)),
        str(settings.attachments.files_dir),
        "--url",
        settings.attachments.base_url,
        "--depth-limit=0",
    ]
    if settings.verbose > 0:
        cmd.append("-v")
    if settings.attachments.retry_failed:
        cmd.append("--retry-failed")
    return cmd


def attachment_db_path(settings: IndexerSettings, lang: str) -> Path:
    return settings.backend.db_root / lang


def index_attachments(settings: IndexerSettings, stem_langs: list[str] | None = None) -> None:
    """Run omindex once per stemming language.

    Raises :class:`~repo_xapian.backend.IndexingError` on the first failure.
    """
    for lang in stem_langs or settings.backend.stem_langs:
        cmd = omindex_command(settings, lang)
        logger.info("Indexing attachments ({}) from {}", lang, settings.attachments.files_dir)
        run_backend(cmd, verbose=settings.verbose > 0)
    logger.info("Attachments indexed")
