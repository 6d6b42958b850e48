"""Document URI generation.

URIs follow the repository browser routes of the web front end, so a search
hit links straight to the file at the indexed revision:

    /projects/<project>/repository[/<repo>][/revisions/<rev>]/entry/<path>
"""

from __future__ import annotations

from typing import TYPE_CHECKING
from urllib.parse import quote

if TYPE_CHECKING:
    from repo_xapian.models import Project
    from repo_xapian.scm import Repository


class UrlRouter:
    """Maps ``(project, repository, identifier, path)`` to a stable URI."""

    def __init__(self, base_url: str = "") -> None:
        self._base_url = base_url.rstrip("/")

    def generate(
        self,
        project: Project,
        repository: Repository,
        identifier: str | None,
        path: str,
    ) -> str | None:
        """Return the URI, or ``None`` when there is nothing to key the document on."""
        rel_path = repository.relative_path(path).strip("/")
        if not project.identifier or not rel_path:
            return None
        parts = ["projects", quote(project.identifier, safe=""), "repository"]
        if repository.identifier:
            parts.append(quote(repository.identifier, safe=""))
        if identifier:
            parts.extend(["revisions", quote(identifier, safe="")])
        parts.extend(["entry", quote(rel_path, safe="/")])
        return f"{self._base_url}/{'/'.join(parts)}"
