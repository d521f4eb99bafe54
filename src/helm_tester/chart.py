"""Chart tree model and loaders.

A chart is loaded from a directory or a ``.tgz`` archive into a tree of
``ChartNode`` instances. Each node owns its resolved dependency charts,
matched against the ``dependencies`` declared in ``Chart.yaml``.

Chart Layout:
    mychart/
    ├── Chart.yaml          # identity + declared dependencies
    ├── values.yaml         # default values
    ├── templates/          # template sources (expanded by helm)
    └── charts/             # dependency archives or unpacked charts
        ├── echo-server-0.5.0.tgz
        └── vendored/

Example:
    >>> chart = load_chart("./helm")
    >>> [ref.name for ref in chart.dependencies]
    ['echo-server']
    >>> chart.missing_dependencies
    []
"""

from __future__ import annotations

import io
import tarfile
from collections.abc import Iterator
from copy import deepcopy
from dataclasses import dataclass, field, replace
from pathlib import Path, PurePosixPath
from typing import Any

import structlog
import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from helm_tester.errors import ChartLoadError

CHART_FILE = "Chart.yaml"
VALUES_FILE = "values.yaml"
REQUIREMENTS_FILE = "requirements.yaml"
TEMPLATES_DIR = "templates"
DEFAULT_DEPS_DIR = "charts"
DEFAULT_ARCHIVE_EXTENSION = "tgz"

# Relative path -> raw content, for a chart read from disk or an archive
ChartFiles = dict[str, bytes]


def strip_version_prefix(version: str) -> str:
    """Drop a single leading ``v`` from a version string.

    >>> strip_version_prefix("v1.2.3")
    '1.2.3'
    """
    return version[1:] if version.startswith("v") else version


class DependencyReference(BaseModel):
    """A dependency declared in ``Chart.yaml``.

    Attributes:
        name: Chart name of the dependency.
        version: Version (or constraint) of the dependency.
        repository: Source location: an HTTP(S) URL, ``oci://``,
            ``file://``, or a ``@name``/``alias:name`` registry reference.
        alias: Name the dependency is mounted under in the parent's values.
        condition: Values path toggling the dependency.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    name: str = Field(..., min_length=1)
    version: str = Field(default="")
    repository: str = Field(default="")
    alias: str | None = Field(default=None)
    condition: str | None = Field(default=None)

    @field_validator("version", mode="before")
    @classmethod
    def _coerce_version(cls, value: Any) -> str:
        return "" if value is None else str(value)

    @property
    def key(self) -> str:
        """Key the dependency's values live under in the parent chart."""
        return self.alias or self.name

    def archive_name(self, extension: str = DEFAULT_ARCHIVE_EXTENSION) -> str:
        """File name of the packaged dependency.

        Example:
            >>> DependencyReference(name="echo-server", version="v0.5.0").archive_name()
            'echo-server-0.5.0.tgz'
        """
        return f"{self.name}-{strip_version_prefix(self.version)}.{extension}"


class ChartMetadata(BaseModel):
    """Chart identity read from ``Chart.yaml``."""

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    api_version: str = Field(default="v2", alias="apiVersion")
    name: str = Field(..., min_length=1)
    version: str = Field(..., min_length=1)
    app_version: str | None = Field(default=None, alias="appVersion")
    description: str | None = Field(default=None)
    type: str | None = Field(default=None)
    dependencies: list[DependencyReference] = Field(default_factory=list)

    @field_validator("version", "app_version", mode="before")
    @classmethod
    def _coerce_str(cls, value: Any) -> Any:
        # YAML reads `version: 1.0` as a float
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value

    @field_validator("dependencies", mode="before")
    @classmethod
    def _none_is_empty(cls, value: Any) -> Any:
        return [] if value is None else value


@dataclass
class ChartNode:
    """A loaded chart and its resolved dependency charts.

    Attributes:
        metadata: Parsed ``Chart.yaml``.
        values: Default values from ``values.yaml``.
        templates: Template sources keyed by path relative to the chart.
        path: On-disk location, None for charts nested inside an archive.
        reference: The parent's declaration this node satisfies, if any.
        children: Resolved dependency charts, declaration order first.
        missing: Declared dependencies with no matching chart on disk.
    """

    metadata: ChartMetadata
    values: dict[str, Any]
    templates: dict[str, str] = field(default_factory=dict)
    path: Path | None = None
    reference: DependencyReference | None = None
    children: list[ChartNode] = field(default_factory=list)
    missing: list[DependencyReference] = field(default_factory=list)

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def version(self) -> str:
        return self.metadata.version

    @property
    def dependencies(self) -> list[DependencyReference]:
        """Dependencies declared in ``Chart.yaml``."""
        return self.metadata.dependencies

    @property
    def key(self) -> str:
        """Key this chart's values live under in its parent."""
        if self.reference is not None:
            return self.reference.key
        return self.name

    @property
    def missing_dependencies(self) -> list[str]:
        """Missing dependencies anywhere in the tree, as ``parent/name`` paths."""
        result = [f"{self.name}/{ref.name}" for ref in self.missing]
        for child in self.children:
            result.extend(child.missing_dependencies)
        return result

    @property
    def is_resolved(self) -> bool:
        """True when every declared dependency in the tree has a chart."""
        return not self.missing_dependencies

    def walk(self) -> Iterator[ChartNode]:
        """Iterate over this node and all descendants, depth first."""
        yield self
        for child in self.children:
            yield from child.walk()


def _read_directory(path: Path) -> ChartFiles:
    files: ChartFiles = {}
    for file_path in sorted(path.rglob("*")):
        if file_path.is_file():
            files[file_path.relative_to(path).as_posix()] = file_path.read_bytes()
    return files


def _read_archive(data: bytes, label: str) -> ChartFiles:
    """Read a chart archive, dropping its top-level directory."""
    files: ChartFiles = {}
    try:
        with tarfile.open(fileobj=io.BytesIO(data), mode="r:*") as archive:
            for member in archive.getmembers():
                if not member.isfile():
                    continue
                parts = PurePosixPath(member.name).parts
                if len(parts) < 2 or ".." in parts:
                    continue
                extracted = archive.extractfile(member)
                if extracted is None:
                    continue
                files["/".join(parts[1:])] = extracted.read()
    except tarfile.TarError as e:
        raise ChartLoadError(label, f"invalid chart archive: {e}") from e
    return files


def _parse_yaml(files: ChartFiles, name: str, label: str) -> Any:
    try:
        return yaml.safe_load(files[name].decode("utf-8"))
    except (yaml.YAMLError, UnicodeDecodeError) as e:
        raise ChartLoadError(label, f"{name} is not valid YAML: {e}") from e


def _parse_metadata(files: ChartFiles, label: str) -> ChartMetadata:
    if CHART_FILE not in files:
        raise ChartLoadError(label, f"{CHART_FILE} not found")

    raw = _parse_yaml(files, CHART_FILE, label)
    if not isinstance(raw, dict):
        raise ChartLoadError(label, f"{CHART_FILE} must be a mapping")

    # apiVersion v1 charts declare dependencies in requirements.yaml
    if not raw.get("dependencies") and REQUIREMENTS_FILE in files:
        requirements = _parse_yaml(files, REQUIREMENTS_FILE, label)
        if isinstance(requirements, dict):
            raw = {**raw, "dependencies": requirements.get("dependencies") or []}

    try:
        return ChartMetadata.model_validate(raw)
    except ValidationError as e:
        raise ChartLoadError(label, f"invalid {CHART_FILE}: {e}") from e


def _parse_values(files: ChartFiles, label: str) -> dict[str, Any]:
    if VALUES_FILE not in files:
        return {}
    values = _parse_yaml(files, VALUES_FILE, label)
    if values is None:
        return {}
    if not isinstance(values, dict):
        raise ChartLoadError(label, f"{VALUES_FILE} must be a mapping")
    return values


def _parse_templates(files: ChartFiles) -> dict[str, str]:
    prefix = f"{TEMPLATES_DIR}/"
    return {
        name: content.decode("utf-8", errors="replace")
        for name, content in files.items()
        if name.startswith(prefix)
    }


def _load_subcharts(
    files: ChartFiles,
    label: str,
    deps_dir: str,
    archive_extension: str,
    log: Any,
) -> dict[str, ChartNode]:
    """Load every chart found in the dependency directory.

    Returns:
        Loaded charts keyed by their entry name under ``deps_dir``
        (archive file name or directory name), sorted by entry name.
    """
    prefix = f"{deps_dir}/"
    archives: dict[str, bytes] = {}
    directories: dict[str, ChartFiles] = {}

    for name, content in files.items():
        if not name.startswith(prefix):
            continue
        rest = name[len(prefix) :]
        entry, _, inner = rest.partition("/")
        if not inner:
            if entry.endswith(f".{archive_extension}"):
                archives[entry] = content
        else:
            directories.setdefault(entry, {})[inner] = content

    subcharts: dict[str, ChartNode] = {}
    for entry in sorted(set(archives) | set(directories)):
        entry_label = f"{label}/{deps_dir}/{entry}"
        if entry in archives:
            sub_files = _read_archive(archives[entry], entry_label)
        elif CHART_FILE in directories[entry]:
            sub_files = directories[entry]
        else:
            log.debug("subchart_directory_skipped", entry=entry_label)
            continue
        subcharts[entry] = _build_node(
            sub_files, entry_label, None, deps_dir, archive_extension, log
        )
    return subcharts


def _match_subchart(
    ref: DependencyReference,
    subcharts: dict[str, ChartNode],
    archive_extension: str,
) -> ChartNode | None:
    exact = subcharts.get(ref.archive_name(archive_extension))
    if exact is not None:
        return exact

    by_name = [node for node in subcharts.values() if node.name == ref.name]
    wanted = strip_version_prefix(ref.version)
    for node in by_name:
        if strip_version_prefix(node.version) == wanted:
            return node
    # Version constraints (e.g. "~1.2") cannot be compared literally
    return by_name[0] if by_name else None


def _build_node(
    files: ChartFiles,
    label: str,
    path: Path | None,
    deps_dir: str,
    archive_extension: str,
    log: Any,
) -> ChartNode:
    metadata = _parse_metadata(files, label)
    node = ChartNode(
        metadata=metadata,
        values=_parse_values(files, label),
        templates=_parse_templates(files),
        path=path,
    )

    subcharts = _load_subcharts(files, label, deps_dir, archive_extension, log)
    declared_names = {ref.name for ref in metadata.dependencies}

    for ref in metadata.dependencies:
        match = _match_subchart(ref, subcharts, archive_extension)
        if match is None:
            node.missing.append(ref)
        else:
            # Each reference owns its own copy, even when two share a subchart
            node.children.append(replace(deepcopy(match), reference=ref))

    # Charts vendored without a declaration are still dependencies
    for entry, subchart in subcharts.items():
        if subchart.name not in declared_names:
            log.debug("undeclared_subchart_loaded", chart=metadata.name, entry=entry)
            node.children.append(subchart)

    return node


def load_chart(
    path: Path | str,
    *,
    deps_dir: str = DEFAULT_DEPS_DIR,
    archive_extension: str = DEFAULT_ARCHIVE_EXTENSION,
    logger: Any = None,
) -> ChartNode:
    """Load a chart and its dependency charts from disk.

    Args:
        path: Chart directory or packaged chart archive.
        deps_dir: Subdirectory holding dependency charts.
        archive_extension: Extension of packaged dependency charts.
        logger: structlog logger (default: module logger).

    Returns:
        Root ChartNode; dependencies absent on disk are listed in ``missing``.

    Raises:
        ChartLoadError: If the path, Chart.yaml, values.yaml, or an
            archive in the tree is missing or malformed.
    """
    chart_path = Path(path)
    label = str(chart_path)
    if chart_path.is_dir():
        files = _read_directory(chart_path)
    elif chart_path.is_file():
        files = _read_archive(chart_path.read_bytes(), label)
    else:
        raise ChartLoadError(chart_path, "path does not exist")

    log = logger or structlog.get_logger(__name__)
    return _build_node(files, label, chart_path, deps_dir, archive_extension, log)


def get_default_values(path: Path | str) -> dict[str, Any]:
    """Return a chart's default values.

    Args:
        path: Chart directory or packaged chart archive.

    Returns:
        The root chart's ``values.yaml`` content.

    Raises:
        ChartLoadError: If the chart cannot be loaded.
    """
    return load_chart(path).values


def dependency_archive_path(
    deps_dir: Path,
    ref: DependencyReference,
    extension: str = DEFAULT_ARCHIVE_EXTENSION,
) -> Path:
    """Expected on-disk location of a packaged dependency.

    Must agree with the file name ``helm dependency update`` writes.

    Example:
        >>> ref = DependencyReference(name="echo-server", version="0.5.0")
        >>> dependency_archive_path(Path("helm/charts"), ref).as_posix()
        'helm/charts/echo-server-0.5.0.tgz'
    """
    return deps_dir / ref.archive_name(extension)


__all__: list[str] = [
    "ChartMetadata",
    "ChartNode",
    "DependencyReference",
    "dependency_archive_path",
    "get_default_values",
    "load_chart",
    "strip_version_prefix",
]
