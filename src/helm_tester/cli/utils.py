"""CLI utility functions and error handling.

This module provides shared utilities for the helm-tester CLI:
- Exit code constants
- Output helpers for consistent stderr/stdout usage
- Conversion of harness errors into exit codes

Example:
    from helm_tester.cli.utils import error_exit, ExitCode

    if not path.exists():
        error_exit("Chart not found", exit_code=ExitCode.FILE_NOT_FOUND, path=str(path))
"""

from __future__ import annotations

import sys
from enum import IntEnum
from typing import TYPE_CHECKING

import click

from helm_tester.errors import HelmTesterError

if TYPE_CHECKING:
    from typing import NoReturn


class ExitCode(IntEnum):
    """Exit codes for CLI commands, aligned with ``HelmTesterError.exit_code``."""

    SUCCESS = 0
    """Command completed successfully."""

    GENERAL_ERROR = 1
    """General error (catch-all for failures)."""

    USAGE_ERROR = 2
    """Invalid usage (bad arguments, missing required options)."""

    FILE_NOT_FOUND = 3
    """Chart or input file not found or not loadable."""

    QUERY_ERROR = 5
    """Query failed to parse, run, or decode."""

    RENDER_ERROR = 7
    """Template rendering failed."""

    NETWORK_ERROR = 8
    """Dependency fetch or repository registry error."""

    ASSERTION_FAILED = 9
    """Truth assertion did not hold."""


def error(message: str, **context: str | int | bool | None) -> None:
    """Print an error message to stderr.

    Args:
        message: Error message to display.
        **context: Optional context key-value pairs to include.

    Example:
        error("Chart not found", path="./helm")
        # Output: Error: Chart not found (path=./helm)
    """
    if context:
        context_str = ", ".join(f"{k}={v}" for k, v in context.items() if v is not None)
        full_message = f"Error: {message} ({context_str})"
    else:
        full_message = f"Error: {message}"

    click.echo(full_message, err=True)


def error_exit(
    message: str,
    exit_code: int = ExitCode.GENERAL_ERROR,
    **context: str | int | bool | None,
) -> NoReturn:
    """Print an error message to stderr and exit with a code.

    Raises:
        SystemExit: Always exits with the specified code.
    """
    error(message, **context)
    sys.exit(exit_code)


def fail(exc: HelmTesterError) -> NoReturn:
    """Report a harness error and exit with its exit code."""
    error_exit(str(exc), exit_code=exc.exit_code)


def warn(message: str, **context: str | int | bool | None) -> None:
    """Print a warning message to stderr."""
    if context:
        context_str = ", ".join(f"{k}={v}" for k, v in context.items() if v is not None)
        full_message = f"Warning: {message} ({context_str})"
    else:
        full_message = f"Warning: {message}"

    click.echo(full_message, err=True)


def success(message: str) -> None:
    """Print a result to stdout."""
    click.echo(message)


def info(message: str) -> None:
    """Print progress information to stderr, out of the way of stdout redirection."""
    click.echo(message, err=True)


__all__: list[str] = [
    "ExitCode",
    "error",
    "error_exit",
    "fail",
    "info",
    "success",
    "warn",
]
