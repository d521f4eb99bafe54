"""Exception hierarchy for helm-tester.

All exceptions inherit from HelmTesterError so callers (usually a test
function) can catch every harness failure with a single except clause,
or pick the specific failure they care about.

Exception Hierarchy:
    HelmTesterError (base)
    ├── ChartLoadError              # Chart.yaml missing/malformed, bad archive
    ├── DependencyResolutionError   # Dependency materialization failed
    │   ├── RepositoryRegistryError # repositories.yaml read/write failed
    │   └── DependencyFetchError    # helm dependency update failed
    ├── HelmCommandError            # helm CLI returned non-zero
    │   └── HelmNotFoundError       # helm binary not installed
    ├── RenderError                 # Template expansion failed
    │   └── ManifestDecodeError     # Rendered blob is not valid YAML (strict mode)
    └── QueryError                  # Query evaluation failed
        ├── QueryParseError         # Query does not compile
        ├── QueryExecutionError     # Query failed at runtime
        ├── QueryInputError         # Explicit input is not parseable
        └── ResultDecodeError       # Result does not fit destination type

Exit Codes (CLI):
    0 - Success
    1 - General error (HelmTesterError)
    3 - Chart not found or invalid (ChartLoadError)
    5 - Query error (QueryError)
    7 - Render error (RenderError)
    8 - Network error (DependencyResolutionError)

Example:
    >>> from helm_tester.errors import QueryParseError
    >>> raise QueryParseError(".[", "syntax error")
    Traceback (most recent call last):
        ...
    QueryParseError: Invalid query '.[': syntax error
"""

from __future__ import annotations

from pathlib import Path


class HelmTesterError(Exception):
    """Base exception for all helm-tester errors.

    Attributes:
        exit_code: CLI exit code for this error type (default: 1).
    """

    exit_code: int = 1


class ChartLoadError(HelmTesterError):
    """Raised when a chart cannot be loaded from disk.

    Attributes:
        path: Chart directory or archive that failed to load.
        reason: Human-readable failure reason.

    Example:
        >>> raise ChartLoadError(Path("./helm"), "Chart.yaml not found")
        Traceback (most recent call last):
            ...
        ChartLoadError: Failed to load chart from helm: Chart.yaml not found
    """

    exit_code: int = 3

    def __init__(self, path: Path | str, reason: str) -> None:
        """Initialize ChartLoadError.

        Args:
            path: Chart directory or archive that failed to load.
            reason: Human-readable failure reason.
        """
        self.path = Path(path)
        self.reason = reason
        super().__init__(f"Failed to load chart from {path}: {reason}")


class DependencyResolutionError(HelmTesterError):
    """Base exception for dependency materialization failures."""

    exit_code: int = 8


class RepositoryRegistryError(DependencyResolutionError):
    """Raised when the repository registry file cannot be read or written.

    Attributes:
        path: Location of the registry file.
    """

    def __init__(self, path: Path, reason: str) -> None:
        """Initialize RepositoryRegistryError.

        Args:
            path: Location of the registry file.
            reason: Human-readable failure reason.
        """
        self.path = path
        super().__init__(f"Repository registry {path}: {reason}")


class DependencyFetchError(DependencyResolutionError):
    """Raised when the bulk dependency fetch fails.

    Attributes:
        chart_path: Chart whose dependencies were being fetched.
        stderr: Captured stderr from helm, if any.
    """

    def __init__(self, chart_path: Path, reason: str, stderr: str = "") -> None:
        """Initialize DependencyFetchError.

        Args:
            chart_path: Chart whose dependencies were being fetched.
            reason: Human-readable failure reason.
            stderr: Captured stderr from helm.
        """
        self.chart_path = chart_path
        self.stderr = stderr
        super().__init__(f"Failed to update dependencies for chart {chart_path}: {reason}")


class HelmCommandError(HelmTesterError):
    """Raised when a helm CLI invocation exits non-zero.

    Attributes:
        args: Arguments passed to helm.
        returncode: Process exit code.
        stderr: Captured stderr.
    """

    def __init__(self, args: list[str], returncode: int, stderr: str = "") -> None:
        """Initialize HelmCommandError.

        Args:
            args: Arguments passed to helm.
            returncode: Process exit code.
            stderr: Captured stderr.
        """
        self.args_ = args
        self.returncode = returncode
        self.stderr = stderr
        message = f"helm {' '.join(args[:2])} exited with code {returncode}"
        if stderr.strip():
            message = f"{message}: {stderr.strip()}"
        super().__init__(message)


class HelmNotFoundError(HelmCommandError):
    """Raised when the helm binary cannot be executed."""

    def __init__(self, binary: str) -> None:
        """Initialize HelmNotFoundError.

        Args:
            binary: The helm executable that was looked up.
        """
        self.binary = binary
        super().__init__([binary], 127, f"helm binary not found: {binary}")


class RenderError(HelmTesterError):
    """Raised when template expansion fails.

    Attributes:
        chart: Name of the chart being rendered.
    """

    exit_code: int = 7

    def __init__(self, chart: str, reason: str) -> None:
        """Initialize RenderError.

        Args:
            chart: Name of the chart being rendered.
            reason: Human-readable failure reason.
        """
        self.chart = chart
        self.reason = reason
        super().__init__(f"Failed to render chart '{chart}': {reason}")


class ManifestDecodeError(RenderError):
    """Raised in strict mode when a rendered blob is not valid YAML.

    Attributes:
        source: Template output unit the blob came from.
    """

    def __init__(self, chart: str, source: str, reason: str) -> None:
        """Initialize ManifestDecodeError.

        Args:
            chart: Name of the chart being rendered.
            source: Template output unit the blob came from.
            reason: YAML parser message.
        """
        self.source = source
        super().__init__(chart, f"output of {source} is not valid YAML: {reason}")


class QueryError(HelmTesterError):
    """Base exception for query failures.

    Attributes:
        query: The query string that failed.
    """

    exit_code: int = 5

    def __init__(self, query: str, message: str) -> None:
        """Initialize QueryError.

        Args:
            query: The query string that failed.
            message: Full error message.
        """
        self.query = query
        super().__init__(message)


class QueryParseError(QueryError):
    """Raised when a query does not compile."""

    def __init__(self, query: str, reason: str) -> None:
        """Initialize QueryParseError."""
        super().__init__(query, f"Invalid query '{query}': {reason}")


class QueryExecutionError(QueryError):
    """Raised when a compiled query fails against its input."""

    def __init__(self, query: str, reason: str) -> None:
        """Initialize QueryExecutionError."""
        super().__init__(query, f"Query '{query}' failed: {reason}")


class QueryInputError(QueryError):
    """Raised when explicit query input cannot be parsed or serialized."""

    def __init__(self, query: str, reason: str) -> None:
        """Initialize QueryInputError."""
        super().__init__(query, f"Invalid input for query '{query}': {reason}")


class ResultDecodeError(QueryError):
    """Raised when a query result does not fit the destination type.

    Attributes:
        destination: The requested destination type.
        value: The raw query result.
    """

    def __init__(self, query: str, destination: object, value: object, reason: str) -> None:
        """Initialize ResultDecodeError.

        Args:
            query: The query string.
            destination: The requested destination type.
            value: The raw query result.
            reason: Validation failure details.
        """
        self.destination = destination
        self.value = value
        super().__init__(
            query,
            f"Result of query '{query}' does not decode as {destination!r}: {reason}",
        )


__all__: list[str] = [
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
]
