"""Content-type detection and the converter table.

Detection works on the path alone: the extension gives a MIME type, and the
MIME type gives a :class:`ContentType`. Plain-text types need no converter.
"""

from __future__ import annotations

import mimetypes
from dataclasses import dataclass
from enum import StrEnum
from pathlib import PurePosixPath

# ---------------------------------------------------------------------------
# Content types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Converter:
    """How to turn a blob into text.

    ``tool`` names a field of :class:`~repo_xapian.settings.ConverterSettings`.
    ``args`` may contain ``{input}`` and ``{outdir}`` placeholders. Archive
    converters set ``member``, the file read out of the unpacked container.
    """

    tool: str
    args: tuple[str, ...]
    member: str | None = None

    @property
    def is_archive(self) -> bool:
        return self.member is not None


class ContentType(StrEnum):
    TEXT = "text"
    JS = "js"
    PDF = "pdf"
    RTF = "rtf"
    DOC = "doc"
    XLS = "xls"
    PPT = "ppt"
    PPS = "pps"
    DOCX = "docx"
    XLSX = "xlsx"
    PPTX = "pptx"
    PPSX = "ppsx"
    ODS = "ods"
    ODT = "odt"
    ODP = "odp"

    @property
    def converter(self) -> Converter | None:
        """``None`` for types whose raw bytes are the text."""
        return _CONVERTERS.get(self)


_UNZIP_ARGS = ("-o", "-qq", "{input}", "-d", "{outdir}")

_CONVERTERS: dict[ContentType, Converter] = {
    ContentType.PDF: Converter("pdftotext", ("-enc", "UTF-8", "{input}", "-")),
    ContentType.RTF: Converter("unrtf", ("-t", "text", "{input}")),
    ContentType.DOC: Converter("catdoc", ("{input}",)),
    ContentType.XLS: Converter("xls2csv", ("{input}",)),
    ContentType.PPT: Converter("catppt", ("{input}",)),
    ContentType.PPS: Converter("catppt", ("{input}",)),
    ContentType.DOCX: Converter("unzip", _UNZIP_ARGS, member="word/document.xml"),
    ContentType.XLSX: Converter("unzip", _UNZIP_ARGS, member="xl/sharedStrings.xml"),
    ContentType.PPTX: Converter("unzip", _UNZIP_ARGS, member="docProps/app.xml"),
    ContentType.PPSX: Converter("unzip", _UNZIP_ARGS, member="docProps/app.xml"),
    ContentType.ODT: Converter("unzip", _UNZIP_ARGS, member="content.xml"),
    ContentType.ODS: Converter("unzip", _UNZIP_ARGS, member="content.xml"),
    ContentType.ODP: Converter("unzip", _UNZIP_ARGS, member="content.xml"),
}

# ---------------------------------------------------------------------------
# MIME tables
# ---------------------------------------------------------------------------

MIME_TYPES: dict[str, ContentType] = {
    "application/pdf": ContentType.PDF,
    "application/rtf": ContentType.RTF,
    "application/msword": ContentType.DOC,
    "application/vnd.ms-excel": ContentType.XLS,
    "application/vnd.ms-powerpoint": ContentType.PPT,
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": ContentType.DOCX,
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet": ContentType.XLSX,
    "application/vnd.openxmlformats-officedocument.presentationml.presentation": ContentType.PPTX,
    "application/vnd.openxmlformats-officedocument.presentationml.slideshow": ContentType.PPSX,
    "application/vnd.oasis.opendocument.spreadsheet": ContentType.ODS,
    "application/vnd.oasis.opendocument.text": ContentType.ODT,
    "application/vnd.oasis.opendocument.presentation": ContentType.ODP,
    "application/javascript": ContentType.JS,
}

# Extensions checked before the platform mimetypes database, which varies
# between systems and misses most source-code extensions.
_EXTENSION_MAP: dict[str, str] = {
    ".pdf": "application/pdf",
    ".rtf": "application/rtf",
    ".doc": "application/msword",
    ".xls": "application/vnd.ms-excel",
    ".ppt": "application/vnd.ms-powerpoint",
    ".pps": "application/vnd.ms-powerpoint",
    ".docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    ".xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    ".pptx": "application/vnd.openxmlformats-officedocument.presentationml.presentation",
    ".ppsx": "application/vnd.openxmlformats-officedocument.presentationml.slideshow",
    ".ods": "application/vnd.oasis.opendocument.spreadsheet",
    ".odt": "application/vnd.oasis.opendocument.text",
    ".odp": "application/vnd.oasis.opendocument.presentation",
    ".js": "application/javascript",
    ".mjs": "application/javascript",
    # text
    ".txt": "text/plain",
    ".md": "text/markdown",
    ".markdown": "text/markdown",
    ".rst": "text/x-rst",
    ".textile": "text/x-textile",
    ".csv": "text/csv",
    ".log": "text/plain",
    ".ini": "text/plain",
    ".cfg": "text/plain",
    ".conf": "text/plain",
    ".toml": "text/x-toml",
    ".yml": "text/x-yaml",
    ".yaml": "text/x-yaml",
    ".html": "text/html",
    ".htm": "text/html",
    ".xml": "text/xml",
    ".css": "text/css",
    ".scss": "text/x-scss",
    ".sql": "text/x-sql",
    ".sh": "text/x-sh",
    ".bat": "text/x-bat",
    ".c": "text/x-c",
    ".h": "text/x-c",
    ".cc": "text/x-c++",
    ".cpp": "text/x-c++",
    ".hpp": "text/x-c++",
    ".cs": "text/x-csharp",
    ".java": "text/x-java",
    ".kt": "text/x-kotlin",
    ".scala": "text/x-scala",
    ".go": "text/x-go",
    ".rs": "text/x-rust",
    ".py": "text/x-python",
    ".rb": "text/x-ruby",
    ".erb": "text/x-ruby",
    ".rake": "text/x-ruby",
    ".php": "text/x-php",
    ".pl": "text/x-perl",
    ".lua": "text/x-lua",
    ".ts": "text/x-typescript",
    ".tsx": "text/x-typescript",
    ".jsx": "text/x-javascript",
    ".vue": "text/x-vue",
    ".tex": "text/x-tex",
    ".diff": "text/x-diff",
    ".patch": "text/x-diff",
}

# Extensionless files that are text by convention
_TEXT_FILENAMES = frozenset({"readme", "license", "changelog", "makefile", "dockerfile", "gemfile", "rakefile"})


def mime_type_of(path: str) -> str | None:
    """Best-effort MIME type for *path*, from its extension."""
    suffix = PurePosixPath(path).suffix.lower()
    if suffix in _EXTENSION_MAP:
        return _EXTENSION_MAP[suffix]
    if not suffix and PurePosixPath(path).name.lower() in _TEXT_FILENAMES:
        return "text/plain"
    guessed, _ = mimetypes.guess_type(PurePosixPath(path).name, strict=False)
    return guessed


def is_text(path: str) -> bool:
    mime = mime_type_of(path)
    return mime is not None and mime.startswith("text/")


def detect_content_type(path: str) -> ContentType | None:
    """Return the content type to index *path* as, or ``None`` if unsupported."""
    mime = mime_type_of(path)
    if mime is None:
        return None
    content_type = MIME_TYPES.get(mime)
    if content_type is ContentType.PPT and PurePosixPath(path).suffix.lower() == ".pps":
        return ContentType.PPS
    if content_type is not None:
        return content_type
    if is_text(path):
        return ContentType.TEXT
    return None
