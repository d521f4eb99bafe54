"""Main entry point for the helm-tester CLI.

Commands:
    helm-tester deps: Fetch missing chart dependencies
    helm-tester render: Print rendered manifests
    helm-tester query: Evaluate a jq query against a chart or a file

Example:
    $ helm-tester --help
    $ helm-tester --log-level DEBUG render ./helm --set replicaCount=2
"""

from __future__ import annotations

import sys
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as get_version

import click

from helm_tester.cli.deps import deps_command
from helm_tester.cli.query import query_command
from helm_tester.cli.render import render_command
from helm_tester.config import HelmTesterSettings
from helm_tester.logging import configure_logging


def _get_version() -> str:
    """Get the helm-tester package version.

    Returns:
        Version string from package metadata, or 'unknown' if not installed.
    """
    try:
        return get_version("helm-tester")
    except PackageNotFoundError:
        return "unknown"


@click.group(
    name="helm-tester",
    help="helm-tester - render Helm charts and query values and manifests.",
    epilog="Use 'helm-tester <command> --help' for command-specific help.",
    context_settings={
        "help_option_names": ["-h", "--help"],
    },
)
@click.version_option(
    version=_get_version(),
    prog_name="helm-tester",
    message="%(prog)s %(version)s",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"], case_sensitive=False),
    default=None,
    help="Diagnostic verbosity (default: HELM_TESTER_LOG_LEVEL or WARNING).",
)
@click.pass_context
def cli(ctx: click.Context, log_level: str | None) -> None:
    """Root command group for the helm-tester CLI."""
    ctx.ensure_object(dict)
    ctx.obj["log_level"] = log_level.upper() if log_level else None
    configure_logging(ctx.obj["log_level"] or HelmTesterSettings().log_level)


cli.add_command(deps_command)
cli.add_command(render_command)
cli.add_command(query_command)


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the helm-tester CLI.

    Args:
        argv: Command-line arguments (uses sys.argv if None).
    """
    try:
        cli(args=argv, standalone_mode=False)
    except click.ClickException as e:
        e.show()
        sys.exit(e.exit_code)
    except click.Abort:
        click.echo("Aborted!", err=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
