"""helm-tester command line interface."""

from __future__ import annotations

from helm_tester.cli.main import cli, main

__all__: list[str] = ["cli", "main"]
