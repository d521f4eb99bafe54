"""Options shared by helm-tester commands.

Provides the chart/dependency options, the override options
(``--set`` and ``--values``), and helpers turning them into a HelmTester
and an overrides mapping.
"""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Any, TypeVar

import click
import yaml

from helm_tester.cli.utils import ExitCode, error_exit, warn
from helm_tester.config import DependencyPolicy
from helm_tester.merger import deep_merge
from helm_tester.parsing import parse_set_values
from helm_tester.tester import HelmTester

F = TypeVar("F", bound=Callable[..., Any])


def dependency_options(func: F) -> F:
    """Add ``--skip-deps`` and ``--skip-refresh``."""
    func = click.option(
        "--skip-refresh",
        is_flag=True,
        default=False,
        help="Fetch missing dependencies without refreshing repository indexes.",
    )(func)
    func = click.option(
        "--skip-deps",
        is_flag=True,
        default=False,
        help="Do not fetch dependencies; use what is already on disk.",
    )(func)
    return func


def override_options(func: F) -> F:
    """Add ``--set`` and ``--values``."""
    func = click.option(
        "--values",
        "-f",
        "values_files",
        type=click.Path(exists=True, dir_okay=False, resolve_path=True, path_type=Path),
        multiple=True,
        help="Values files merged over chart defaults. Can be repeated.",
        metavar="PATH",
    )(func)
    func = click.option(
        "--set",
        "set_values",
        multiple=True,
        help="Override values using key=value syntax. Can be repeated.",
        metavar="KEY=VALUE",
    )(func)
    return func


def policy_from_flags(skip_deps: bool, skip_refresh: bool) -> DependencyPolicy:
    if skip_deps:
        return DependencyPolicy.SKIP
    if skip_refresh:
        return DependencyPolicy.NO_REFRESH
    return DependencyPolicy.UPDATE


def collect_overrides(
    set_values: tuple[str, ...],
    values_files: tuple[Path, ...],
) -> dict[str, Any] | None:
    """Merge values files in order, then ``--set`` values on top.

    ``null`` values are kept so the render deletes those chart defaults.

    Returns:
        Overrides mapping, or None when no override was given.
    """
    if not set_values and not values_files:
        return None

    overrides: dict[str, Any] = {}
    for values_file in values_files:
        try:
            content = yaml.safe_load(values_file.read_text(encoding="utf-8"))
        except yaml.YAMLError as e:
            error_exit(
                f"Invalid values file: {e}",
                exit_code=ExitCode.USAGE_ERROR,
                path=str(values_file),
            )
        if content is None:
            continue
        if not isinstance(content, dict):
            error_exit(
                "Values file must contain a mapping",
                exit_code=ExitCode.USAGE_ERROR,
                path=str(values_file),
            )
        overrides = deep_merge(overrides, content, keep_none=True)

    return deep_merge(overrides, parse_set_values(set_values, warn_fn=warn), keep_none=True)


def make_tester(
    ctx: click.Context,
    chart: Path,
    skip_deps: bool,
    skip_refresh: bool,
) -> HelmTester:
    """Build a HelmTester from command options.

    Raises:
        ChartLoadError: If the chart cannot be loaded.
    """
    log_level = (ctx.obj or {}).get("log_level")
    return HelmTester(
        chart,
        policy=policy_from_flags(skip_deps, skip_refresh),
        log_level=log_level,
    )


__all__: list[str] = [
    "collect_overrides",
    "dependency_options",
    "make_tester",
    "override_options",
    "policy_from_flags",
]
