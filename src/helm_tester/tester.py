"""HelmTester: render a chart and query values, dependencies and manifests.

The harness resolves a chart's dependencies at construction, renders it
on demand, and answers jq queries against one unified document:

    Chart:        the root chart's merged values (defaults + overrides)
    Dependencies: one {Name, Version, Alias, Values} entry per dependency,
                  Values being the dependency's defaults coalesced with
                  the parent's values for it
    Manifests:    every rendered document, in emission order

State Machine:
    UNRESOLVED --(resolution)--> RESOLVED --(render)--> RENDERED
    RENDERED --(render)--> RENDERED   (output replaced, never appended)
    RENDERED --(invalidate)--> RESOLVED
    A query in RESOLVED renders implicitly with no overrides first.

Example:
    >>> tester = HelmTester("./helm", policy=DependencyPolicy.NO_REFRESH)
    >>> tester.query(".Chart|keys", list[str])
    ['echo-server']
    >>> tester.query(".Dependencies[0].Values.image.tag", str)
    '0.6.0'
    >>> docs = tester.render({"echo-server": {"image": {"tag": "overriden"}}})
    >>> tester.assert_query('[.Manifests[].kind] | index("Deployment") != null')
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Any

from helm_tester.chart import ChartNode
from helm_tester.config import DependencyPolicy, HelmTesterSettings
from helm_tester.errors import RenderError
from helm_tester.helm import DependencyFetcher, HelmClient, TemplateEngine
from helm_tester.logging import make_logger
from helm_tester.merger import coalesce_subchart_values
from helm_tester.query import JqEvaluator, collapse, decode_result
from helm_tester.renderer import RenderedDocument, Renderer
from helm_tester.repositories import RepositoryRegistry
from helm_tester.resolver import DependencyResolver, ResolutionResult


class HarnessState(str, Enum):
    """Lifecycle state of a HelmTester."""

    UNRESOLVED = "unresolved"
    RESOLVED = "resolved"
    RENDERED = "rendered"


class _Unset:
    def __repr__(self) -> str:
        return "<unset>"


UNSET: Any = _Unset()


class HelmTester:
    """Test harness over a single chart.

    Not safe for concurrent use: queries and renders on the same instance
    must be serialized by the caller.

    Attributes:
        settings: Harness settings.
        resolution: Outcome of the dependency resolution pass.
        chart: Resolved chart tree.
        renderer: Renderer holding the cached render output.
        evaluator: Query evaluator.
    """

    def __init__(
        self,
        chart_path: Path | str,
        *,
        policy: DependencyPolicy = DependencyPolicy.UPDATE,
        settings: HelmTesterSettings | None = None,
        engine: TemplateEngine | None = None,
        fetcher: DependencyFetcher | None = None,
        registry: RepositoryRegistry | None = None,
        evaluator: JqEvaluator | None = None,
        log_level: str | None = None,
    ) -> None:
        """Resolve dependencies and load the chart tree.

        Args:
            chart_path: Chart directory (or packaged chart).
            policy: Dependency resolution policy.
            settings: Harness settings (default: from environment).
            engine: Template expansion capability (default: helm CLI).
            fetcher: Bulk dependency fetch capability (default: helm CLI).
            registry: Repository registry (default: Helm's repositories.yaml).
            evaluator: Query evaluator (default: jq).
            log_level: Overrides ``settings.log_level`` for this instance.

        Raises:
            ChartLoadError: If the root chart cannot be loaded. Dependency
                fetch failures do not raise; see ``resolution.error``.
        """
        self._state = HarnessState.UNRESOLVED
        self.settings = settings or HelmTesterSettings()
        self._log = make_logger(log_level or self.settings.log_level, chart_path=str(chart_path))

        client = (
            HelmClient(self.settings, logger=self._log)
            if engine is None or fetcher is None
            else None
        )
        resolver = DependencyResolver(
            chart_path,
            policy=policy,
            settings=self.settings,
            fetcher=fetcher or client,
            registry=registry,
            logger=self._log,
        )
        self.resolution: ResolutionResult = resolver.resolve()
        if self.resolution.error is not None:
            self._log.warning("resolution_incomplete", error=str(self.resolution.error))

        self.chart: ChartNode = self.resolution.chart
        self.renderer = Renderer(
            self.chart,
            engine or client,  # type: ignore[arg-type]
            strict_decode=self.settings.strict_decode,
            logger=self._log,
        )
        self.evaluator = evaluator or JqEvaluator(logger=self._log)
        self._dependency_values: list[dict[str, Any]] | None = None
        self._state = HarnessState.RESOLVED

    @property
    def state(self) -> HarnessState:
        return self._state

    @property
    def manifests(self) -> list[RenderedDocument]:
        """Rendered documents, rendering with defaults if needed."""
        self._ensure_rendered()
        return list(self.renderer.documents or [])

    def render(self, overrides: dict[str, Any] | None = None) -> list[RenderedDocument]:
        """Render the chart, replacing any previous output.

        Args:
            overrides: Values merged over the chart defaults.

        Returns:
            Decoded documents.

        Raises:
            RenderError: If rendering fails. Previously cached output is kept.
        """
        documents = self.renderer.render(overrides)
        self._dependency_values = None
        self._state = HarnessState.RENDERED
        return documents

    def invalidate(self) -> None:
        """Drop cached render output; the next query renders again."""
        self.renderer.invalidate()
        self._dependency_values = None
        self._state = HarnessState.RESOLVED

    def _ensure_rendered(self) -> None:
        if not self.renderer.rendered:
            self._log.debug("implicit_render")
            self.render()

    def _dependency_views(self, parent_values: dict[str, Any]) -> list[dict[str, Any]]:
        missing = self.chart.missing_dependencies
        if missing:
            raise RenderError(self.chart.name, f"missing dependencies: {', '.join(missing)}")
        return [
            {
                "Name": child.name,
                "Version": child.version,
                "Alias": child.reference.alias if child.reference is not None else None,
                "Values": coalesce_subchart_values(child.values, parent_values, child.key),
            }
            for child in self.chart.children
        ]

    def dependency_values(self) -> list[dict[str, Any]]:
        """Per-dependency views for the current render, cached until re-render."""
        self._ensure_rendered()
        if self._dependency_values is None:
            self._dependency_values = self._dependency_views(self.renderer.values or {})
        return self._dependency_values

    def query_context(self) -> dict[str, Any]:
        """The unified ``{Chart, Dependencies, Manifests}`` document.

        Raises:
            RenderError: If the implicit render fails.
        """
        self._ensure_rendered()
        return {
            "Chart": self.renderer.values,
            "Dependencies": self.dependency_values(),
            "Manifests": self.renderer.documents,
        }

    def _input_document(self, data: Any) -> Any:
        if data is UNSET:
            return self.query_context()
        return data

    def query(self, query: str, dest: Any = Any, data: Any = UNSET) -> Any:
        """Evaluate a jq query and decode the result into ``dest``.

        Args:
            query: jq query, e.g. ``.Dependencies[0].Values.image.tag``.
            dest: Destination type; ``Any`` returns the raw result.
            data: Explicit input instead of the chart state: a YAML/JSON
                string passed through as is, or a structure to serialize.

        Returns:
            The decoded result; no match yields ``dest``'s zero value.

        Raises:
            RenderError: If the implicit render fails.
            QueryParseError: If the query does not compile.
            QueryInputError: If ``data`` cannot be parsed or serialized.
            QueryExecutionError: If jq fails at runtime.
            ResultDecodeError: If the result does not fit ``dest``.
        """
        document = self._input_document(data)
        results = self.evaluator.evaluate(query, document)
        return decode_result(collapse(results), dest, query=query)

    def values(self, query: str, dest: Any = Any) -> Any:
        """Query ``{Chart, Dependencies}`` without triggering a render.

        Uses the last render's values if there is one, otherwise the
        chart defaults.

        Raises:
            RenderError: If dependencies are still missing after resolution.
        """
        if self.renderer.rendered:
            context = {"Chart": self.renderer.values, "Dependencies": self.dependency_values()}
        else:
            parent = self.renderer.merge_values(None)
            context = {"Chart": parent, "Dependencies": self._dependency_views(parent)}
        return self.query(query, dest, data=context)

    def assert_query(self, query: str, data: Any = UNSET, msg: str | None = None) -> None:
        """Assert that a query yields exactly ``true``.

        Raises:
            AssertionError: If the result is anything but ``True``.
        """
        result = self.query(query, Any, data)
        if result is not True:
            raise AssertionError(msg or f"Query {query!r} returned {result!r}, expected true")


__all__: list[str] = [
    "HarnessState",
    "HelmTester",
    "UNSET",
]
