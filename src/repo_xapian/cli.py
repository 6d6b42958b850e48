"""CLI entrypoint for repo-xapian."""

from __future__ import annotations

import sys
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path

import typer
from loguru import logger

app = typer.Typer(
    name="repo-xapian",
    help="Feed repository and attachment contents to a Xapian search database.",
    no_args_is_help=True,
)

_WARNING_LEVEL = 30


def configure_logging(verbose: int) -> None:
    """Warnings and errors always go to stderr; progress goes to stdout only when verbose."""
    logger.remove()
    logger.add(sys.stderr, level="WARNING", format="{message}")
    if verbose > 0:
        logger.add(
            sys.stdout,
            level="DEBUG" if verbose > 1 else "INFO",
            format="{message}",
            filter=lambda record: record["level"].no < _WARNING_LEVEL,
        )


def _package_version() -> str:
    try:
        return version("repo-xapian")
    except PackageNotFoundError:
        return "0.0.0"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(_package_version())
        raise typer.Exit


def _split(values: list[str] | None) -> list[str]:
    """Accept both repeated options and comma separated lists."""
    return [item.strip() for value in values or [] for item in value.split(",") if item.strip()]


@app.callback()
def main(
    show_version: bool = typer.Option(
        False, "--version", "-V", callback=_version_callback, is_eager=True, help="Show version and exit."
    ),
) -> None:
    """Index repositories and attachments into Xapian."""


@app.command()
def index(
    projects: list[str] | None = typer.Option(
        None, "--project", "-p", help="Project whose repositories are indexed (repeatable or comma separated)."
    ),
    stem_langs: list[str] | None = typer.Option(
        None, "--stemming-lang", "-s", help="Stemming language for attachments (repeatable or comma separated)."
    ),
    verbose: int = typer.Option(0, "--verbose", "-v", count=True, help="Verbose output (repeat for more)."),
    files_only: bool = typer.Option(False, "--files-only", "-f", help="Only index attachments."),
    repositories_only: bool = typer.Option(False, "--repositories-only", "-r", help="Only index repositories."),
    temp_dir: Path | None = typer.Option(None, "--temp-dir", "-t", help="Temporary directory for indexing."),
    reset_log: bool = typer.Option(False, "--reset-log", "-x", help="Reset the indexing log before indexing."),
    retry_failed: bool = typer.Option(
        False, "--retry-failed", "-R", help="Retry attachments omindex failed to extract text from."
    ),
) -> None:
    """Index attachments and repositories."""
    from repo_xapian.attachments import index_attachments
    from repo_xapian.backend import IndexingError
    from repo_xapian.bootstrap import BootstrapError, prepare_attachments, prepare_repositories
    from repo_xapian.indexing.orchestrator import index_projects
    from repo_xapian.settings import IndexerSettings
    from repo_xapian.store import IndexStore

    settings = IndexerSettings()
    settings.verbose = max(settings.verbose, verbose)
    if temp_dir is not None:
        settings.temp_dir = temp_dir
    if retry_failed:
        settings.attachments.retry_failed = True
    configure_logging(settings.verbose)

    if files_only and repositories_only:
        logger.error("--files-only and --repositories-only are mutually exclusive")
        raise typer.Exit(code=2)

    if not repositories_only:
        langs = _split(stem_langs) or settings.backend.stem_langs
        try:
            prepare_attachments(settings, langs)
            index_attachments(settings, langs)
        except (BootstrapError, IndexingError) as exc:
            logger.error("{}", exc)
            raise typer.Exit(code=1) from exc

    if not files_only:
        try:
            prepare_repositories(settings)
        except BootstrapError as exc:
            logger.error("{}", exc)
            raise typer.Exit(code=1) from exc
        with IndexStore(settings.store_path) as store:
            outcomes = index_projects(settings, store, project_ids=_split(projects) or None, reset_log=reset_log)
        failed = [o for o in outcomes if not o.ok]
        if failed:
            logger.error("{} of {} repositories failed to index", len(failed), len(outcomes))
            raise typer.Exit(code=1)


@app.command()
def status() -> None:
    """Show the indexing log of every repository."""
    from repo_xapian.progress import ProgressTracker
    from repo_xapian.settings import IndexerSettings
    from repo_xapian.store import IndexStore

    settings = IndexerSettings()
    configure_logging(settings.verbose)
    with IndexStore(settings.store_path) as store:
        logs = ProgressTracker(store).all()
    if not logs:
        typer.echo("No repositories indexed yet.")
        return
    for log in logs:
        updated = log.updated_at.isoformat() if log.updated_at else "never"
        line = f"{log.repository_id} | {log.status} | changeset {log.changeset_id} | {updated}"
        if log.message:
            line = f"{line} | {log.message}"
        typer.echo(line)


@app.command()
def reset(
    projects: list[str] | None = typer.Option(
        None, "--project", "-p", help="Project whose logs are reset (default: all)."
    ),
) -> None:
    """Forget indexing progress so the next run re-indexes from scratch."""
    from repo_xapian.indexing.orchestrator import reset_logs
    from repo_xapian.settings import IndexerSettings
    from repo_xapian.store import IndexStore

    settings = IndexerSettings()
    configure_logging(settings.verbose)
    with IndexStore(settings.store_path) as store:
        removed = reset_logs(settings, store, project_ids=_split(projects) or None)
    typer.echo(f"Removed {removed} indexing log(s).")


if __name__ == "__main__":
    app()
