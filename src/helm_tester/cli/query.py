"""``helm-tester query``: evaluate a jq query against a chart or a file.

Example:
    $ helm-tester query '.Chart|keys' --chart ./helm
    $ helm-tester query '.Dependencies[0].Values.image.tag' --chart ./helm --skip-deps
    $ helm-tester query '.list' --input data.yaml
    $ helm-tester query '[.Manifests[].kind] | length > 0' --chart ./helm --assert
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import TextIO

import click
import yaml

from helm_tester.cli.options import (
    collect_overrides,
    dependency_options,
    make_tester,
    override_options,
)
from helm_tester.cli.utils import ExitCode, error_exit, fail, success
from helm_tester.errors import HelmTesterError
from helm_tester.query import JqEvaluator, collapse


@click.command(
    name="query",
    help="""\b
Evaluate a jq query against a chart's {Chart, Dependencies, Manifests}
document, or against an explicit YAML/JSON input file.

Examples:
    $ helm-tester query '.Chart|keys' --chart ./helm
    $ helm-tester query '.Manifests[]|select(.kind=="Deployment")|.metadata.name' --chart ./helm
    $ helm-tester query '.string' --input data.yaml
""",
    context_settings={"help_option_names": ["-h", "--help"]},
)
@click.argument("expression", metavar="QUERY")
@click.option(
    "--chart",
    "-c",
    type=click.Path(exists=True, resolve_path=True, path_type=Path),
    default=None,
    help="Chart directory to query.",
    metavar="PATH",
)
@click.option(
    "--input",
    "-i",
    "input_file",
    type=click.File("r"),
    default=None,
    help="Query this YAML/JSON document instead of a chart ('-' for stdin).",
    metavar="PATH",
)
@dependency_options
@override_options
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["json", "yaml"]),
    default="json",
    show_default=True,
    help="Output format of the result.",
)
@click.option(
    "--assert",
    "assert_true",
    is_flag=True,
    default=False,
    help="Exit non-zero unless the query yields true.",
)
@click.pass_context
def query_command(
    ctx: click.Context,
    expression: str,
    chart: Path | None,
    input_file: TextIO | None,
    skip_deps: bool,
    skip_refresh: bool,
    set_values: tuple[str, ...],
    values_files: tuple[Path, ...],
    output_format: str,
    assert_true: bool,
) -> None:
    """Evaluate a query and print its result."""
    if (chart is None) == (input_file is None):
        error_exit("Exactly one of --chart or --input is required", exit_code=ExitCode.USAGE_ERROR)

    try:
        if chart is not None:
            tester = make_tester(ctx, chart, skip_deps, skip_refresh)
            overrides = collect_overrides(set_values, values_files)
            if overrides is not None:
                tester.render(overrides)
            result = tester.query(expression)
        else:
            assert input_file is not None
            result = collapse(JqEvaluator().evaluate(expression, input_file.read()))
    except HelmTesterError as e:
        fail(e)

    if output_format == "yaml":
        success(yaml.safe_dump(result, default_flow_style=False, sort_keys=False).rstrip("\n"))
    else:
        success(json.dumps(result, indent=2, default=str))

    if assert_true and result is not True:
        error_exit(f"Query did not yield true: {expression}", exit_code=ExitCode.ASSERTION_FAILED)


__all__: list[str] = ["query_command"]
