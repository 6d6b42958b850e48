"""Invocation of the Xapian command-line indexers (scriptindex, omindex)."""

from __future__ import annotations

import shlex
import subprocess
from typing import TYPE_CHECKING

from loguru import logger

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path


class IndexingError(Exception):
    """Raised when a step of indexing cannot be completed meaningfully."""


def run_backend(cmd: Sequence[str | Path], *, verbose: bool = False, timeout_s: float | None = None) -> None:
    """Run a backend command, raising :class:`IndexingError` unless it exits 0.

    The command's standard output is shown only in verbose mode.
    """
    argv = [str(part) for part in cmd]
    command = shlex.join(argv)
    logger.debug("Running: {}", command)
    try:
        result = subprocess.run(
            argv,
            stdout=None if verbose else subprocess.DEVNULL,
            stderr=subprocess.PIPE,
            timeout=timeout_s,
            check=False,
        )
    except (OSError, subprocess.TimeoutExpired) as exc:
        msg = f'"{command}" failed: {exc}'
        raise IndexingError(msg) from exc
    if result.returncode != 0:
        stderr = (result.stderr or b"").decode("utf-8", errors="replace").strip()
        msg = f'"{command}" failed (rc={result.returncode})'
        if stderr:
            msg = f"{msg}: {stderr}"
        raise IndexingError(msg)
