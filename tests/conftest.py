"""Shared pytest fixtures for helm-tester tests.

Charts are written to ``tmp_path`` on the fly; dependency archives are
packaged with ``tarfile`` so no network access or helm binary is needed
outside the integration tier.

NOTE: Do NOT add __init__.py to test directories - pytest uses importlib mode
which can cause namespace collisions with __init__.py files.
"""

from __future__ import annotations

import io
import tarfile
from collections.abc import Callable
from copy import deepcopy
from pathlib import Path
from typing import Any

import pytest
import yaml

from helm_tester.chart import ChartNode
from helm_tester.merger import coalesce_subchart_values

ECHO_REPOSITORY = "https://ealenn.github.io/charts"

ChartFactory = Callable[..., Path]
PackageFactory = Callable[[Path, Path], Path]


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers",
        "requirement(id): Mark test as covering a specific requirement",
    )
    config.addinivalue_line(
        "markers",
        "integration: Tests requiring the helm binary",
    )


def _write_chart(
    root: Path,
    name: str,
    version: str = "0.1.0",
    *,
    values: dict[str, Any] | None = None,
    dependencies: list[dict[str, Any]] | None = None,
    templates: dict[str, str] | None = None,
) -> Path:
    chart_dir = root / name
    (chart_dir / "templates").mkdir(parents=True, exist_ok=True)
    metadata: dict[str, Any] = {"apiVersion": "v2", "name": name, "version": version}
    if dependencies:
        metadata["dependencies"] = dependencies
    (chart_dir / "Chart.yaml").write_text(yaml.safe_dump(metadata, sort_keys=False))
    (chart_dir / "values.yaml").write_text(yaml.safe_dump(values or {}, sort_keys=False))
    for template_name, content in (templates or {}).items():
        (chart_dir / "templates" / template_name).write_text(content)
    return chart_dir


def _package_chart(chart_dir: Path, dest_dir: Path) -> Path:
    metadata = yaml.safe_load((chart_dir / "Chart.yaml").read_text())
    dest_dir.mkdir(parents=True, exist_ok=True)
    archive_path = dest_dir / f"{metadata['name']}-{metadata['version']}.tgz"
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz") as archive:
        archive.add(str(chart_dir), arcname=metadata["name"])
    archive_path.write_bytes(buffer.getvalue())
    return archive_path


@pytest.fixture
def make_chart(tmp_path: Path) -> ChartFactory:
    """Factory writing a chart directory under ``tmp_path``.

    Usage:
        chart_dir = make_chart("echo-app", values={"replicaCount": 1})
    """

    def _factory(name: str, version: str = "0.1.0", **kwargs: Any) -> Path:
        root = kwargs.pop("root", tmp_path)
        return _write_chart(root, name, version, **kwargs)

    return _factory


@pytest.fixture
def package_chart() -> PackageFactory:
    """Factory packaging a chart directory into ``<dest>/<name>-<version>.tgz``."""
    return _package_chart


class RecordingEngine:
    """Template engine double that records every call.

    Renders an echo-server Deployment from the coalesced subchart values,
    the way helm would, plus a two-document ConfigMap blob from the root
    chart values.
    """

    def __init__(self, blobs: dict[str, str] | None = None) -> None:
        self.calls: list[dict[str, Any]] = []
        self._blobs = blobs

    def template(self, chart: ChartNode, values: dict[str, Any]) -> dict[str, str]:
        self.calls.append(deepcopy(values))
        if self._blobs is not None:
            return dict(self._blobs)

        blobs: dict[str, str] = {
            f"{chart.name}/templates/configmaps.yaml": yaml.safe_dump_all(
                [
                    {"apiVersion": "v1", "kind": "ConfigMap", "metadata": {"name": "first"}},
                    {"apiVersion": "v1", "kind": "ConfigMap", "metadata": {"name": "second"}},
                ]
            ),
        }
        for child in chart.children:
            sub = coalesce_subchart_values(child.values, values, child.key)
            image = sub.get("image", {})
            deployment = {
                "apiVersion": "apps/v1",
                "kind": "Deployment",
                "metadata": {"name": f"-{child.name}"},
                "spec": {
                    "replicas": sub.get("replicaCount", 1),
                    "template": {
                        "spec": {
                            "containers": [
                                {
                                    "name": child.name,
                                    "image": f"{image.get('repository')}:{image.get('tag')}",
                                }
                            ]
                        }
                    },
                },
            }
            blobs[f"{chart.name}/charts/{child.name}/templates/deployment.yaml"] = yaml.safe_dump(
                deployment
            )
        return blobs


class RecordingFetcher:
    """Dependency fetcher double that records calls.

    Args:
        on_fetch: Called with the chart path to simulate materialization.
        error: Raised from fetch when set.
    """

    def __init__(
        self,
        on_fetch: Callable[[Path], None] | None = None,
        error: Exception | None = None,
    ) -> None:
        self.calls: list[tuple[Path, bool]] = []
        self._on_fetch = on_fetch
        self._error = error

    def fetch(self, chart_path: Path, *, refresh: bool) -> None:
        self.calls.append((chart_path, refresh))
        if self._error is not None:
            raise self._error
        if self._on_fetch is not None:
            self._on_fetch(chart_path)


@pytest.fixture
def recording_engine() -> RecordingEngine:
    return RecordingEngine()


@pytest.fixture
def make_engine() -> type[RecordingEngine]:
    """RecordingEngine class, for tests needing fixed blobs."""
    return RecordingEngine


@pytest.fixture
def make_fetcher() -> type[RecordingFetcher]:
    """RecordingFetcher class, for tests configuring fetch behavior."""
    return RecordingFetcher


@pytest.fixture
def echo_server_source(tmp_path: Path) -> Path:
    """Unpacked echo-server chart, standing in for the remote repository."""
    return _write_chart(
        tmp_path / "upstream",
        "echo-server",
        "0.5.0",
        values={
            "replicaCount": 1,
            "image": {"repository": "ealen/echo-server", "tag": "0.6.0"},
        },
        templates={"deployment.yaml": "kind: Deployment\n"},
    )


@pytest.fixture
def echo_chart(tmp_path: Path, echo_server_source: Path) -> Path:
    """Chart depending on echo-server 0.5.0, with the archive already present."""
    chart_dir = _write_chart(
        tmp_path,
        "echo-app",
        values={"echo-server": {"replicaCount": 2}, "global": {"env": "ci"}},
        dependencies=[
            {"name": "echo-server", "version": "0.5.0", "repository": ECHO_REPOSITORY},
        ],
        templates={"configmaps.yaml": "kind: ConfigMap\n"},
    )
    _package_chart(echo_server_source, chart_dir / "charts")
    return chart_dir


@pytest.fixture
def registry_path(tmp_path: Path) -> Path:
    """Location of an isolated repositories.yaml."""
    return tmp_path / "helm-config" / "repositories.yaml"
