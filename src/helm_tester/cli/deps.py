"""``helm-tester deps``: resolve a chart's dependencies.

Example:
    $ helm-tester deps ./helm
    $ helm-tester deps ./helm --skip-refresh
"""

from __future__ import annotations

from pathlib import Path

import click

from helm_tester.cli.utils import fail, info, success, warn
from helm_tester.config import DependencyPolicy, HelmTesterSettings
from helm_tester.errors import HelmTesterError
from helm_tester.logging import make_logger
from helm_tester.resolver import DependencyResolver


@click.command(
    name="deps",
    help="""\b
Fetch missing dependencies of a chart.

Checks every declared dependency archive first; the bulk fetch runs
only when at least one is missing.

Examples:
    $ helm-tester deps ./helm
    $ helm-tester deps ./helm --skip-refresh
""",
    context_settings={"help_option_names": ["-h", "--help"]},
)
@click.argument(
    "chart",
    type=click.Path(exists=True, file_okay=False, resolve_path=True, path_type=Path),
)
@click.option(
    "--skip-refresh",
    is_flag=True,
    default=False,
    help="Fetch without refreshing repository indexes.",
)
@click.pass_context
def deps_command(ctx: click.Context, chart: Path, skip_refresh: bool) -> None:
    """Resolve dependencies and report the outcome."""
    settings = HelmTesterSettings()
    log_level = (ctx.obj or {}).get("log_level") or settings.log_level
    resolver = DependencyResolver(
        chart,
        policy=DependencyPolicy.NO_REFRESH if skip_refresh else DependencyPolicy.UPDATE,
        settings=settings,
        logger=make_logger(log_level, chart_path=str(chart)),
    )

    try:
        result = resolver.resolve()
    except HelmTesterError as e:
        fail(e)

    for source in result.registered:
        info(f"Registered repository {source.name}: {source.url}")
    if result.error is not None:
        fail(result.error)
    if not result.missing:
        success(f"All {len(result.present)} dependencies are already present.")
        return
    if not result.chart.is_resolved:
        warn("Dependencies still missing", missing=", ".join(result.chart.missing_dependencies))
    success(f"Fetched {len(result.missing)} missing dependencies.")


__all__: list[str] = ["deps_command"]
