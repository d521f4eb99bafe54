"""helm CLI integration.

``HelmClient`` provides the two external capabilities the harness relies
on, both backed by the ``helm`` binary:

- Template expansion (``helm template``): chart + merged values in,
  one text blob per template output unit out.
- Bulk dependency fetch (``helm dependency update``): downloads every
  missing dependency archive of a chart in one invocation.

Both capabilities are also expressed as Protocols so tests and callers
can substitute their own engine or fetcher.

Example:
    >>> client = HelmClient(HelmTesterSettings())
    >>> blobs = client.template(load_chart("./helm"), {"replicaCount": 2})
    >>> sorted(blobs)
    ['echo-app/templates/deployment.yaml', ...]
"""

from __future__ import annotations

import os
import subprocess
import tempfile
from collections.abc import Callable
from pathlib import Path
from typing import Any, Protocol

import structlog
import yaml

from helm_tester.chart import ChartNode
from helm_tester.config import HelmTesterSettings
from helm_tester.errors import (
    DependencyFetchError,
    HelmCommandError,
    HelmNotFoundError,
    RenderError,
)

SOURCE_MARKER = "# Source: "
DOCUMENT_SEPARATOR = "---"

# Runs helm with the given arguments (binary excluded)
HelmRunner = Callable[[list[str]], "subprocess.CompletedProcess[str]"]


class TemplateEngine(Protocol):
    """Expands a chart's templates with a set of values."""

    def template(self, chart: ChartNode, values: dict[str, Any]) -> dict[str, str]:
        """Render templates.

        Returns:
            Output unit name mapped to its rendered text.
        """
        ...


class DependencyFetcher(Protocol):
    """Materializes a chart's missing dependency archives in one step."""

    def fetch(self, chart_path: Path, *, refresh: bool) -> None:
        """Fetch dependencies into the chart's dependency directory."""
        ...


def split_manifests(stream: str) -> dict[str, str]:
    """Split ``helm template`` output into per-template blobs.

    Helm prefixes each rendered document with a ``# Source: <path>``
    comment. Documents from the same template are joined back into one
    multi-document blob.

    Args:
        stream: Full stdout of ``helm template``.

    Returns:
        Template path mapped to its rendered text, in emission order.
        Documents without a source comment are grouped under ``""``.

    Example:
        >>> split_manifests("---\\n# Source: app/templates/cm.yaml\\nkind: ConfigMap\\n")
        {'app/templates/cm.yaml': 'kind: ConfigMap'}
    """
    documents: list[list[str]] = [[]]
    for line in stream.splitlines():
        if line.rstrip() == DOCUMENT_SEPARATOR:
            documents.append([])
        else:
            documents[-1].append(line)

    grouped: dict[str, list[str]] = {}
    for lines in documents:
        if not any(line.strip() for line in lines):
            continue
        source = ""
        body: list[str] = []
        for line in lines:
            if not source and line.startswith(SOURCE_MARKER):
                source = line[len(SOURCE_MARKER) :].strip()
            else:
                body.append(line)
        grouped.setdefault(source, []).append("\n".join(body).strip("\n"))

    return {
        source: f"\n{DOCUMENT_SEPARATOR}\n".join(parts) for source, parts in grouped.items()
    }


def with_deletions(defaults: dict[str, Any], values: dict[str, Any]) -> dict[str, Any]:
    """Mark default keys absent from merged values as null.

    helm merges the chart's values.yaml under any values file it is given,
    so a key removed by an override has to be passed as an explicit null.

    Example:
        >>> with_deletions({"a": 1, "b": {"c": 1, "d": 2}}, {"b": {"c": 1}})
        {'b': {'c': 1, 'd': None}, 'a': None}
    """
    result = dict(values)
    for key, default in defaults.items():
        if key not in values:
            result[key] = None
        elif isinstance(default, dict) and isinstance(values[key], dict):
            result[key] = with_deletions(default, values[key])
    return result


def _run_helm(
    binary: str,
    args: list[str],
    timeout: float | None = None,
) -> subprocess.CompletedProcess[str]:
    """Run helm, capturing output.

    Args:
        binary: helm executable.
        args: helm arguments.
        timeout: Command timeout in seconds (None: wait forever).

    Returns:
        Completed process result.
    """
    return subprocess.run(
        [binary] + args,
        capture_output=True,
        text=True,
        timeout=timeout,
        check=False,
    )


class HelmClient:
    """Template engine and dependency fetcher backed by the helm CLI.

    Example:
        >>> client = HelmClient(HelmTesterSettings(release_name="test"))
        >>> client.fetch(Path("./helm"), refresh=False)
    """

    def __init__(
        self,
        settings: HelmTesterSettings | None = None,
        *,
        runner: HelmRunner | None = None,
        logger: Any = None,
    ) -> None:
        """Initialize the client.

        Args:
            settings: Harness settings (binary, release, repository paths).
            runner: Callable that runs helm commands. Signature:
                ``(args: list[str]) -> subprocess.CompletedProcess[str]``.
                Defaults to running ``settings.helm_binary``.
            logger: structlog logger (default: module logger).
        """
        self.settings = settings or HelmTesterSettings()
        self._runner = runner
        self._log = logger or structlog.get_logger(__name__)

    def run(self, args: list[str]) -> subprocess.CompletedProcess[str]:
        """Run a helm command.

        Args:
            args: helm arguments, without the binary.

        Returns:
            Completed process result, whatever its return code.

        Raises:
            HelmNotFoundError: If the helm binary is not installed.
            HelmCommandError: If the command timed out.
        """
        self._log.debug("helm_command", args=args)
        if self._runner is not None:
            return self._runner(args)
        try:
            return _run_helm(self.settings.helm_binary, args, self.settings.helm_timeout)
        except FileNotFoundError as e:
            raise HelmNotFoundError(self.settings.helm_binary) from e
        except subprocess.TimeoutExpired as e:
            raise HelmCommandError(
                args, -1, f"timed out after {self.settings.helm_timeout} seconds"
            ) from e

    def _repository_args(self) -> list[str]:
        return [
            "--repository-config",
            str(self.settings.registry_path()),
            "--repository-cache",
            str(self.settings.cache_path()),
        ]

    def fetch(self, chart_path: Path, *, refresh: bool) -> None:
        """Download all missing dependencies of a chart.

        Args:
            chart_path: Chart directory.
            refresh: Refresh repository indexes before resolving versions.

        Raises:
            DependencyFetchError: If helm fails or is not installed.
        """
        args = ["dependency", "update", str(chart_path), *self._repository_args()]
        if not refresh:
            args.append("--skip-refresh")

        try:
            result = self.run(args)
        except HelmCommandError as e:
            raise DependencyFetchError(chart_path, str(e), e.stderr) from e

        if result.returncode != 0:
            raise DependencyFetchError(
                chart_path,
                f"helm exited with code {result.returncode}",
                stderr=result.stderr or "",
            )
        self._log.debug("helm_dependency_update_complete", chart=str(chart_path))

    def template(self, chart: ChartNode, values: dict[str, Any]) -> dict[str, str]:
        """Render a chart with ``helm template``.

        Args:
            chart: Chart to render; must have an on-disk path.
            values: Fully merged values passed as a values file.

        Returns:
            Template path mapped to its rendered text.

        Raises:
            RenderError: If the chart has no path or helm fails.
        """
        if chart.path is None:
            raise RenderError(chart.name, "chart has no on-disk location")

        temp_file = tempfile.NamedTemporaryFile(
            mode="w",
            suffix=".yaml",
            prefix="helm-tester-values-",
            delete=False,
        )
        try:
            yaml.safe_dump(
                with_deletions(chart.values, values),
                temp_file,
                default_flow_style=False,
                sort_keys=False,
            )
            temp_file.close()

            args = [
                "template",
                self.settings.release_name,
                str(chart.path),
                "--namespace",
                self.settings.namespace,
                "-f",
                temp_file.name,
            ]
            try:
                result = self.run(args)
            except HelmCommandError as e:
                raise RenderError(chart.name, str(e)) from e

            if result.returncode != 0:
                stderr = (result.stderr or "").strip()
                raise RenderError(
                    chart.name,
                    stderr or f"helm exited with code {result.returncode}",
                )
            return split_manifests(result.stdout or "")
        finally:
            try:
                os.unlink(temp_file.name)
            except OSError:
                pass


__all__: list[str] = [
    "DependencyFetcher",
    "HelmClient",
    "HelmRunner",
    "TemplateEngine",
    "split_manifests",
    "with_deletions",
]
