"""Text extraction: turn a blob of a known content type into indexable text."""

from __future__ import annotations

import subprocess
import tempfile
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING
from xml.etree import ElementTree

from loguru import logger

if TYPE_CHECKING:
    from repo_xapian.content_types import ContentType, Converter
    from repo_xapian.settings import ConverterSettings


def xml_to_text(raw: bytes) -> str:
    """Text nodes of an XML document, one per line. Unparseable input is returned decoded."""
    try:
        root = ElementTree.fromstring(raw)
    except ElementTree.ParseError:
        return raw.decode("utf-8", errors="replace")
    chunks = (chunk.strip() for chunk in root.itertext())
    return "\n".join(chunk for chunk in chunks if chunk)


class TextExtractor:
    """Dispatches blobs to the converter configured for their content type.

    Every blob is written to ``<temp_dir>/<basename>`` (spaces replaced) and
    removed afterwards. Two extractors sharing a temp directory can collide on
    equal basenames, so only one indexer may run per temp directory.
    """

    def __init__(self, converters: ConverterSettings, temp_dir: str | Path) -> None:
        self._converters = converters
        self._temp_dir = Path(temp_dir)
        self._timeout = converters.timeout_s

    def extract(self, data: bytes | None, content_type: ContentType, filename: str) -> str | None:
        """Return the text of *data*, or ``None`` if it cannot be extracted."""
        if data is None:
            return None
        converter = content_type.converter
        if converter is None:
            return data.decode("utf-8", errors="replace")

        binary = self.binary_for(converter)
        if not binary.exists():
            logger.debug("Converter {} not installed; skipping {}", binary, filename)
            return None

        blob = self.blob_path(filename)
        try:
            blob.write_bytes(data)
        except OSError as exc:
            logger.error("Cannot write {} for conversion: {}", blob, exc)
            return None
        try:
            if converter.is_archive:
                return self._extract_member(binary, converter, blob)
            output = self._run([str(binary), *_expand(converter.args, input=blob)], blob.name)
            return output.decode("utf-8", errors="replace") if output is not None else None
        finally:
            try:
                blob.unlink(missing_ok=True)
            except OSError as exc:
                logger.warning("Cannot remove {}: {}", blob, exc)

    def binary_for(self, converter: Converter) -> Path:
        return Path(getattr(self._converters, converter.tool))

    def blob_path(self, filename: str) -> Path:
        name = PurePosixPath(filename).name.replace(" ", "_") or "blob"
        return self._temp_dir / name

    def _extract_member(self, binary: Path, converter: Converter, blob: Path) -> str | None:
        with tempfile.TemporaryDirectory(prefix="unpack-", dir=self._temp_dir) as outdir:
            cmd = [str(binary), *_expand(converter.args, input=blob, outdir=Path(outdir))]
            # unzip exits non-zero on mere warnings; the member read decides
            self._run(cmd, blob.name, check=False)
            member = Path(outdir) / str(converter.member)
            try:
                raw = member.read_bytes()
            except OSError as exc:
                logger.error("Error: {} reading {} from {}", exc, converter.member, blob.name)
                return None
        return xml_to_text(raw)

    def _run(self, cmd: list[str], name: str, *, check: bool = True) -> bytes | None:
        try:
            result = subprocess.run(cmd, capture_output=True, timeout=self._timeout, check=False)
        except (OSError, subprocess.TimeoutExpired) as exc:
            logger.error("Converting {} failed: {}", name, exc)
            return None
        if check and result.returncode != 0:
            stderr = result.stderr.decode("utf-8", errors="replace").strip()
            logger.error("Converting {} failed (rc={}): {}", name, result.returncode, stderr)
            return None
        return result.stdout


def _expand(args: tuple[str, ...], **values: Path) -> list[str]:
    return [arg.format(**{key: str(value) for key, value in values.items()}) for arg in args]
