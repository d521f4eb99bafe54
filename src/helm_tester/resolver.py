"""Dependency resolution for a chart tree.

Makes sure every dependency declared in a chart's ``Chart.yaml`` is
present under its dependency directory before rendering, with as little
network activity as possible:

1. Load the root chart (failure is fatal)
2. Check every declared dependency's expected archive path as a batch
3. If all are present, stop: no registry writes, no fetch
4. Otherwise register the fetch address of each missing HTTP(S)
   dependency in the repository registry
5. Run the bulk fetch exactly once, then reload the tree

Fetch and registry failures do not raise: they are recorded in the
returned ``ResolutionResult`` and the tree keeps its missing children,
which then fail any render downstream.

Example:
    >>> resolver = DependencyResolver(Path("./helm"), policy=DependencyPolicy.NO_REFRESH)
    >>> result = resolver.resolve()
    >>> result.fetched, result.error
    (False, None)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import structlog

from helm_tester.chart import ChartNode, DependencyReference, dependency_archive_path, load_chart
from helm_tester.config import DependencyPolicy, HelmTesterSettings
from helm_tester.errors import DependencyResolutionError
from helm_tester.helm import DependencyFetcher, HelmClient
from helm_tester.repositories import RepositoryRegistry, RepositorySource, is_remote_source


@dataclass
class ResolutionResult:
    """Outcome of one resolution pass.

    Attributes:
        chart: The loaded chart tree (reloaded after a fetch).
        present: Dependencies whose archive already existed.
        missing: Dependencies whose archive was absent before fetching.
        registered: Repository sources newly added to the registry.
        fetched: Whether the bulk fetch ran and succeeded.
        error: Registry or fetch failure, if any.
    """

    chart: ChartNode
    present: list[DependencyReference] = field(default_factory=list)
    missing: list[DependencyReference] = field(default_factory=list)
    registered: list[RepositorySource] = field(default_factory=list)
    fetched: bool = False
    error: DependencyResolutionError | None = None

    @property
    def ok(self) -> bool:
        """True when no error occurred and the tree has no missing children."""
        return self.error is None and self.chart.is_resolved


class DependencyResolver:
    """Resolves a chart's declared dependencies onto disk."""

    def __init__(
        self,
        chart_path: Path | str,
        *,
        policy: DependencyPolicy = DependencyPolicy.UPDATE,
        settings: HelmTesterSettings | None = None,
        fetcher: DependencyFetcher | None = None,
        registry: RepositoryRegistry | None = None,
        logger: Any = None,
    ) -> None:
        """Initialize the resolver.

        Args:
            chart_path: Root chart directory.
            policy: Whether to skip, fetch without refresh, or fully update.
            settings: Harness settings.
            fetcher: Bulk fetch capability (default: ``HelmClient``).
            registry: Repository registry (default: ``settings.registry_path()``).
            logger: structlog logger (default: module logger).
        """
        self.chart_path = Path(chart_path)
        self.policy = policy
        self.settings = settings or HelmTesterSettings()
        self._log = logger or structlog.get_logger(__name__)
        self.fetcher = fetcher or HelmClient(self.settings, logger=self._log)
        self.registry = registry or RepositoryRegistry(
            self.settings.registry_path(), logger=self._log
        )

    @property
    def deps_dir(self) -> Path:
        return self.chart_path / self.settings.deps_dir_name

    def load(self) -> ChartNode:
        """Load the chart tree as it currently is on disk.

        Raises:
            ChartLoadError: If the chart cannot be loaded.
        """
        return load_chart(
            self.chart_path,
            deps_dir=self.settings.deps_dir_name,
            archive_extension=self.settings.archive_extension,
            logger=self._log,
        )

    def check(
        self, chart: ChartNode
    ) -> tuple[list[DependencyReference], list[DependencyReference]]:
        """Split declared dependencies into present and missing archives.

        Args:
            chart: Root chart.

        Returns:
            ``(present, missing)`` in declaration order.
        """
        present: list[DependencyReference] = []
        missing: list[DependencyReference] = []
        for ref in chart.dependencies:
            path = dependency_archive_path(self.deps_dir, ref, self.settings.archive_extension)
            (present if path.exists() else missing).append(ref)
        return present, missing

    def register_sources(self, missing: list[DependencyReference]) -> list[RepositorySource]:
        """Register the fetch address of each missing remote dependency.

        Args:
            missing: Dependencies about to be fetched.

        Returns:
            Sources newly added to the registry.

        Raises:
            RepositoryRegistryError: If the registry cannot be read or written.
        """
        added: list[RepositorySource] = []
        for ref in missing:
            if not is_remote_source(ref.repository):
                continue
            source, is_new = self.registry.ensure(ref.repository)
            if is_new:
                added.append(source)
        self.registry.save()
        return added

    def resolve(self) -> ResolutionResult:
        """Run one resolution pass.

        Returns:
            The resolution outcome; failures are reported in ``error``.

        Raises:
            ChartLoadError: If the root chart cannot be loaded.
        """
        chart = self.load()
        log = self._log.bind(chart=chart.name, policy=self.policy.value)

        if self.policy is DependencyPolicy.SKIP:
            log.debug("dependency_resolution_skipped")
            return ResolutionResult(chart=chart)

        if not self.chart_path.is_dir():
            log.debug("dependency_resolution_skipped_for_archive", path=str(self.chart_path))
            return ResolutionResult(chart=chart)

        present, missing = self.check(chart)
        if not missing:
            log.info("dependencies_present", count=len(present))
            return ResolutionResult(chart=chart, present=present)

        log.info("dependencies_missing", missing=[ref.name for ref in missing])
        registered: list[RepositorySource] = []
        try:
            registered = self.register_sources(missing)
            self.fetcher.fetch(
                self.chart_path,
                refresh=self.policy is DependencyPolicy.UPDATE,
            )
        except DependencyResolutionError as e:
            log.error("dependency_resolution_failed", error=str(e))
            return ResolutionResult(
                chart=chart,
                present=present,
                missing=missing,
                registered=registered,
                error=e,
            )

        chart = self.load()
        if not chart.is_resolved:
            log.warning("dependencies_still_missing", missing=chart.missing_dependencies)
        else:
            log.info("dependencies_fetched", count=len(missing))
        return ResolutionResult(
            chart=chart,
            present=present,
            missing=missing,
            registered=registered,
            fetched=True,
        )


__all__: list[str] = [
    "DependencyResolver",
    "ResolutionResult",
]
