"""Repository registry backed by Helm's ``repositories.yaml``.

``helm dependency update`` resolves HTTP(S) dependency URLs through the
repositories registered in this file, so every missing dependency's
source must be registered before the bulk fetch runs.

File Format:
    apiVersion: v1
    generated: "2026-01-01T00:00:00Z"
    repositories:
    - name: ealenn-github-io-charts
      url: https://ealenn.github.io/charts

Writes are read-merge-write: entries already in the file (including
fields this module does not know, such as ``caFile``) are preserved, and
an entry is appended only if no existing entry has the same URL. The file
is not locked; concurrent writers must be serialized by the caller.

Example:
    >>> registry = RepositoryRegistry(Path("~/.config/helm/repositories.yaml").expanduser())
    >>> source, added = registry.ensure("https://ealenn.github.io/charts")
    >>> registry.save()
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

import structlog
import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from helm_tester.errors import RepositoryRegistryError

REGISTRY_API_VERSION = "v1"
REMOTE_SCHEMES = ("http", "https")


class RepositorySource(BaseModel):
    """A named chart repository.

    Attributes:
        name: Registry key, referenced as ``@name`` from Chart.yaml.
        url: Fetch address of the repository index.
    """

    model_config = ConfigDict(extra="allow")

    name: str = Field(..., min_length=1)
    url: str = Field(..., min_length=1)


class RepositoryFile(BaseModel):
    """Content of ``repositories.yaml``."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    api_version: str = Field(default=REGISTRY_API_VERSION, alias="apiVersion")
    generated: str | None = Field(default=None)
    repositories: list[RepositorySource] = Field(default_factory=list)


def normalize_url(url: str) -> str:
    """Normalize a repository URL for comparison.

    >>> normalize_url("https://ealenn.github.io/charts/")
    'https://ealenn.github.io/charts'
    """
    return url.strip().rstrip("/")


def is_remote_source(repository: str) -> bool:
    """Whether a dependency's repository must be registered before fetching.

    ``file://`` paths, ``oci://`` references, and ``@name``/``alias:name``
    references to already registered repositories are fetched without a
    new registry entry.

    >>> is_remote_source("https://ealenn.github.io/charts")
    True
    >>> is_remote_source("@stable")
    False
    """
    return urlparse(repository.strip()).scheme in REMOTE_SCHEMES


def source_name_for(url: str) -> str:
    """Derive a registry name from a repository URL.

    >>> source_name_for("https://ealenn.github.io/charts/")
    'ealenn-github-io-charts'
    """
    parsed = urlparse(normalize_url(url))
    slug = re.sub(r"[^a-z0-9]+", "-", f"{parsed.netloc}{parsed.path}".lower())
    return slug.strip("-") or "repository"


def unique_name(base: str, taken: set[str]) -> str:
    """Return ``base``, or ``base-N`` with the lowest free N >= 2.

    >>> unique_name("charts", {"charts", "charts-2"})
    'charts-3'
    """
    name = base
    suffix = 2
    while name in taken:
        name = f"{base}-{suffix}"
        suffix += 1
    return name


class RepositoryRegistry:
    """Read-merge-write view of a ``repositories.yaml`` file.

    Attributes:
        path: Location of the registry file.
    """

    def __init__(self, path: Path, *, logger: Any = None) -> None:
        """Initialize the registry.

        Args:
            path: Location of the registry file; need not exist yet.
            logger: structlog logger (default: module logger).
        """
        self.path = path
        self._log = logger or structlog.get_logger(__name__)
        self._file: RepositoryFile | None = None
        self._pending: list[RepositorySource] = []

    def _read(self) -> RepositoryFile:
        if not self.path.exists():
            return RepositoryFile()
        try:
            raw = yaml.safe_load(self.path.read_text(encoding="utf-8"))
        except (OSError, yaml.YAMLError) as e:
            raise RepositoryRegistryError(self.path, f"cannot read: {e}") from e
        if raw is None:
            return RepositoryFile()
        try:
            return RepositoryFile.model_validate(raw)
        except ValidationError as e:
            raise RepositoryRegistryError(self.path, f"invalid content: {e}") from e

    def load(self) -> RepositoryFile:
        """Load the registry file, cached after the first call.

        Returns:
            Registry content, empty if the file does not exist.

        Raises:
            RepositoryRegistryError: If the file is unreadable or malformed.
        """
        if self._file is None:
            self._file = self._read()
        return self._file

    @property
    def sources(self) -> list[RepositorySource]:
        """Registered sources, including ones not yet saved."""
        return list(self.load().repositories)

    def find(self, url: str) -> RepositorySource | None:
        """Find a registered source by fetch address, under any name."""
        wanted = normalize_url(url)
        for source in self.load().repositories:
            if normalize_url(source.url) == wanted:
                return source
        return None

    def ensure(self, url: str) -> tuple[RepositorySource, bool]:
        """Make sure a source with this fetch address is registered.

        Args:
            url: Repository fetch address.

        Returns:
            The registered source and whether it was newly added.

        Raises:
            RepositoryRegistryError: If the registry file cannot be read.
        """
        existing = self.find(url)
        if existing is not None:
            return existing, False

        registry = self.load()
        taken = {source.name for source in registry.repositories}
        name = unique_name(source_name_for(url), taken)

        source = RepositorySource(name=name, url=normalize_url(url))
        registry.repositories.append(source)
        self._pending.append(source)
        self._log.debug("repository_registered", name=name, url=source.url)
        return source, True

    def save(self) -> None:
        """Write pending sources to disk.

        The file is re-read first so entries written by others since
        ``load`` are kept. Does nothing when no source was added.

        Raises:
            RepositoryRegistryError: If the file cannot be read or written.
        """
        if not self._pending:
            return

        current = self._read()
        known = {normalize_url(source.url) for source in current.repositories}
        taken = {source.name for source in current.repositories}
        for source in self._pending:
            if normalize_url(source.url) in known:
                continue
            if source.name in taken:
                # Name taken by another writer since ensure()
                renamed = unique_name(source_name_for(source.url), taken)
                self._log.warning(
                    "repository_renamed", name=source.name, renamed=renamed, url=source.url
                )
                source.name = renamed
            current.repositories.append(source)
            known.add(normalize_url(source.url))
            taken.add(source.name)

        current.generated = datetime.now(timezone.utc).isoformat()
        content = current.model_dump(by_alias=True, exclude_none=True)
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(
                yaml.safe_dump(content, default_flow_style=False, sort_keys=False),
                encoding="utf-8",
            )
        except OSError as e:
            raise RepositoryRegistryError(self.path, f"cannot write: {e}") from e

        self._log.info(
            "repository_registry_saved", path=str(self.path), added=len(self._pending)
        )
        self._pending = []
        self._file = current


__all__: list[str] = [
    "RepositoryFile",
    "RepositoryRegistry",
    "RepositorySource",
    "is_remote_source",
    "normalize_url",
    "source_name_for",
    "unique_name",
]
