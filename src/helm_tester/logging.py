"""Structured logging for helm-tester via structlog.

Library modules use a module-level ``structlog.get_logger(__name__)``.
A harness instance gets its own filtering logger so its verbosity can be
set per instance instead of through process-wide state.

The CLI calls ``configure_logging`` once so diagnostics go to stderr and
never mix with command output on stdout.

Example:
    >>> log = make_logger("DEBUG", chart="echo-app")
    >>> log.debug("render_started")  # emitted
    >>> quiet = make_logger("ERROR")
    >>> quiet.info("ignored")  # filtered
"""

from __future__ import annotations

import logging
import sys
from typing import Any, TextIO

import structlog


def level_number(level: str) -> int:
    """Translate a level name to its numeric value.

    Args:
        level: Level name (case-insensitive), e.g. "debug" or "WARNING".

    Returns:
        Numeric level as used by the standard library.

    Raises:
        ValueError: If the level name is unknown.
    """
    number = logging.getLevelName(level.upper())
    if not isinstance(number, int):
        msg = f"Unknown log level: {level}"
        raise ValueError(msg)
    return number


def configure_logging(level: str = "WARNING", stream: TextIO | None = None) -> None:
    """Configure structlog process-wide for command line use.

    Args:
        level: Minimum level for module loggers.
        stream: Output stream (default: stderr).
    """
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(colors=False),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level_number(level)),
        logger_factory=structlog.PrintLoggerFactory(file=stream or sys.stderr),
    )


def make_logger(level: str = "WARNING", **initial_values: Any) -> Any:
    """Create a structlog logger that filters below ``level``.

    Uses the globally configured processors and logger factory, only the
    level filter is instance specific.

    Args:
        level: Minimum level to emit.
        **initial_values: Context bound to every event.

    Returns:
        A structlog bound logger.
    """
    return structlog.wrap_logger(
        None,
        wrapper_class=structlog.make_filtering_bound_logger(level_number(level)),
        **initial_values,
    )


__all__: list[str] = [
    "configure_logging",
    "level_number",
    "make_logger",
]
