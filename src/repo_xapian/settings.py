"""Configuration management for the repository indexer."""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict, TomlConfigSettingsSource

CONFIG_FILENAME = "repo_xapian.toml"

# ---------------------------------------------------------------------------
# Path helpers
# ---------------------------------------------------------------------------


def find_config_file(start: Path | None = None) -> Path | None:
    """Walk up from *start* (default: cwd) looking for ``repo_xapian.toml``."""
    current = (start or Path.cwd()).resolve()
    while True:
        candidate = current / CONFIG_FILENAME
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            return None
        current = parent


def _default_db_root() -> Path:
    return Path.cwd() / "file_index"


class BackendSettings(BaseSettings):
    """Xapian backend binaries and database locations."""

    scriptindex: Path = Field(default=Path("/usr/bin/scriptindex"), description="scriptindex binary path.")
    omindex: Path = Field(default=Path("/usr/bin/omindex"), description="omindex binary path.")
    db_root: Path = Field(default_factory=_default_db_root, description="Directory holding the Xapian databases.")
    repository_db: str = Field(default="repodb", description="Database subdirectory for repository documents.")
    repository_stem_lang: str = Field(default="english", description="Stemming language for repository documents.")
    stem_langs: list[str] = Field(
        default_factory=lambda: ["english"],
        description="Stemming languages for attachments; one database per language.",
    )
    timeout_s: float = Field(default=300.0, description="Timeout in seconds for a single backend invocation.")

    @property
    def repository_db_path(self) -> Path:
        return self.db_root / self.repository_db


class ConverterSettings(BaseSettings):
    """Binaries used to turn binary documents into plain text."""

    pdftotext: Path = Field(default=Path("/usr/bin/pdftotext"), description="PDF converter.")
    catdoc: Path = Field(default=Path("/usr/bin/catdoc"), description="MS Word (.doc) converter.")
    xls2csv: Path = Field(default=Path("/usr/bin/xls2csv"), description="MS Excel (.xls) converter.")
    catppt: Path = Field(default=Path("/usr/bin/catppt"), description="MS PowerPoint (.ppt/.pps) converter.")
    unzip: Path = Field(default=Path("/usr/bin/unzip"), description="Archive tool for OOXML/ODF containers.")
    unrtf: Path = Field(default=Path("/usr/bin/unrtf"), description="RTF converter.")
    timeout_s: float = Field(default=120.0, description="Timeout in seconds for a single conversion.")


class AttachmentSettings(BaseSettings):
    """Flat attachment store crawled by omindex."""

    files_dir: Path = Field(default_factory=lambda: Path.cwd() / "files", description="Attachment directory.")
    base_url: str = Field(default="/", description="Base URL under which attachments are published.")
    retry_failed: bool = Field(default=False, description="Retry files omindex previously failed to extract.")


class RoutingSettings(BaseSettings):
    """Document URI generation."""

    base_url: str = Field(default="", description="Prefix prepended to every generated document URI.")


class StoreSettings(BaseSettings):
    """Progress store location."""

    database: Path | None = Field(
        default=None, description="SQLite database path (default: <db_root>/indexing.sqlite3)."
    )


class RepositorySettings(BaseModel):
    """A version-controlled repository attached to a project."""

    identifier: str = Field(default="", description="Repository identifier; empty for the project's main repository.")
    path: Path = Field(description="Local path of the repository (bare or working copy).")
    scm: str = Field(default="git", description="Version control system.")


class ProjectSettings(BaseModel):
    """A project whose repositories are indexed."""

    identifier: str = Field(description="Project identifier used in document URIs.")
    name: str = Field(default="", description="Display name.")
    repositories: list[RepositorySettings] = Field(default_factory=list)


class IndexerSettings(BaseSettings):
    """Root configuration for the repository indexer."""

    model_config = SettingsConfigDict(
        toml_file=CONFIG_FILENAME,
        env_prefix="REPO_XAPIAN_",
        env_nested_delimiter="__",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,  # noqa: ARG003
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        toml_path = find_config_file()
        sources: list[PydanticBaseSettingsSource] = [init_settings, env_settings]
        if toml_path:
            sources.append(TomlConfigSettingsSource(settings_cls, toml_file=toml_path))
        sources.append(file_secret_settings)
        return tuple(sources)

    temp_dir: Path = Field(default=Path("/tmp"), description="Scratch directory for extraction and records.")
    verbose: int = Field(default=0, description="Verbosity level; 0 is silent on success.")
    backend: BackendSettings = Field(default_factory=BackendSettings)
    converters: ConverterSettings = Field(default_factory=ConverterSettings)
    attachments: AttachmentSettings = Field(default_factory=AttachmentSettings)
    routing: RoutingSettings = Field(default_factory=RoutingSettings)
    store: StoreSettings = Field(default_factory=StoreSettings)
    projects: list[ProjectSettings] = Field(default_factory=list)

    @property
    def store_path(self) -> Path:
        return self.store.database or self.backend.db_root / "indexing.sqlite3"
