"""``helm-tester render``: print a chart's rendered manifests.

Example:
    $ helm-tester render ./helm --set echo-server.image.tag=overriden
    $ helm-tester render ./helm -f ci-values.yaml -o rendered.yaml
"""

from __future__ import annotations

from pathlib import Path

import click
import yaml

from helm_tester.cli.options import (
    collect_overrides,
    dependency_options,
    make_tester,
    override_options,
)
from helm_tester.cli.utils import fail, info, success
from helm_tester.errors import HelmTesterError


@click.command(
    name="render",
    help="""\b
Render a chart and print every decoded manifest as YAML.

Examples:
    $ helm-tester render ./helm
    $ helm-tester render ./helm --set echo-server.image.tag=overriden
    $ helm-tester render ./helm --skip-deps -o rendered.yaml
""",
    context_settings={"help_option_names": ["-h", "--help"]},
)
@click.argument(
    "chart",
    type=click.Path(exists=True, resolve_path=True, path_type=Path),
)
@dependency_options
@override_options
@click.option(
    "--output",
    "-o",
    type=click.Path(dir_okay=False, resolve_path=True, path_type=Path),
    default=None,
    help="Write manifests to a file instead of stdout.",
    metavar="PATH",
)
@click.pass_context
def render_command(
    ctx: click.Context,
    chart: Path,
    skip_deps: bool,
    skip_refresh: bool,
    set_values: tuple[str, ...],
    values_files: tuple[Path, ...],
    output: Path | None,
) -> None:
    """Render and print manifests."""
    overrides = collect_overrides(set_values, values_files)
    try:
        tester = make_tester(ctx, chart, skip_deps, skip_refresh)
        documents = tester.render(overrides)
    except HelmTesterError as e:
        fail(e)

    content = yaml.safe_dump_all(documents, default_flow_style=False, sort_keys=False)
    if output is None:
        success(content.rstrip("\n"))
        return

    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(content, encoding="utf-8")
    info(f"Wrote {len(documents)} manifests to {output}")


__all__: list[str] = ["render_command"]
