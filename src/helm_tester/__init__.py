"""helm-tester: render Helm charts and query them from tests.

Resolves a chart's dependencies, renders its templates with optional
value overrides, and evaluates jq queries against the unified
``{Chart, Dependencies, Manifests}`` document with typed results.

Modules:
    chart: Chart tree model and loaders
    resolver: Dependency resolution with a single bulk fetch
    renderer: Template rendering and manifest decoding
    query: jq evaluation and typed result decoding
    tester: HelmTester facade

Example:
    >>> from helm_tester import HelmTester, DependencyPolicy
    >>> tester = HelmTester("./helm", policy=DependencyPolicy.SKIP)
    >>> tester.query(".Chart|keys", list[str])
    ['echo-server']
"""

from __future__ import annotations

from helm_tester.chart import (
    ChartMetadata,
    ChartNode,
    DependencyReference,
    dependency_archive_path,
    get_default_values,
    load_chart,
)
from helm_tester.config import DependencyPolicy, HelmTesterSettings
from helm_tester.errors import (
    ChartLoadError,
    DependencyFetchError,
    DependencyResolutionError,
    HelmCommandError,
    HelmNotFoundError,
    HelmTesterError,
    ManifestDecodeError,
    QueryError,
    QueryExecutionError,
    QueryInputError,
    QueryParseError,
    RenderError,
    RepositoryRegistryError,
    ResultDecodeError,
)
from helm_tester.helm import DependencyFetcher, HelmClient, TemplateEngine
from helm_tester.merger import deep_merge
from helm_tester.query import JqEvaluator, decode_result, zero_value
from helm_tester.renderer import Renderer
from helm_tester.repositories import RepositoryRegistry, RepositorySource
from helm_tester.resolver import DependencyResolver, ResolutionResult
from helm_tester.tester import HarnessState, HelmTester

__all__: list[str] = [
    # Chart model
    "ChartMetadata",
    "ChartNode",
    "DependencyReference",
    "dependency_archive_path",
    "get_default_values",
    "load_chart",
    # Configuration
    "DependencyPolicy",
    "HelmTesterSettings",
    # Errors
    "ChartLoadError",
    "DependencyFetchError",
    "DependencyResolutionError",
    "HelmCommandError",
    "HelmNotFoundError",
    "HelmTesterError",
    "ManifestDecodeError",
    "QueryError",
    "QueryExecutionError",
    "QueryInputError",
    "QueryParseError",
    "RenderError",
    "RepositoryRegistryError",
    "ResultDecodeError",
    # Pipeline
    "DependencyFetcher",
    "DependencyResolver",
    "HelmClient",
    "JqEvaluator",
    "RepositoryRegistry",
    "RepositorySource",
    "Renderer",
    "ResolutionResult",
    "TemplateEngine",
    "deep_merge",
    "decode_result",
    "zero_value",
    # Facade
    "HarnessState",
    "HelmTester",
]
