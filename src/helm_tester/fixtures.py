"""pytest plugin providing HelmTester fixtures.

Load from a conftest.py with:

    pytest_plugins = ["helm_tester.fixtures"]

Fixtures:
    helm_tester_factory: Session-scoped factory creating HelmTester
        instances, reusing one instance per (chart path, policy)

Example:
    def test_echo_server_tag(helm_tester_factory) -> None:
        tester = helm_tester_factory("./helm")
        assert tester.query(".Dependencies[0].Values.image.tag", str) == "0.6.0"
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest

from helm_tester.config import DependencyPolicy
from helm_tester.tester import HelmTester


class HelmTesterCache:
    """Creates HelmTester instances, one per resolved chart path and policy.

    Dependency resolution writes Helm's repository registry without
    locking, so sharing one harness per chart avoids concurrent writers
    within a session. Passing any other keyword argument (engine,
    settings, ...) creates a fresh, uncached instance.
    """

    def __init__(self) -> None:
        self._instances: dict[tuple[Path, DependencyPolicy], HelmTester] = {}

    def __call__(
        self,
        chart_path: Path | str,
        policy: DependencyPolicy = DependencyPolicy.UPDATE,
        **kwargs: Any,
    ) -> HelmTester:
        if kwargs:
            return HelmTester(chart_path, policy=policy, **kwargs)
        key = (Path(chart_path).resolve(), policy)
        if key not in self._instances:
            self._instances[key] = HelmTester(chart_path, policy=policy)
        return self._instances[key]

    def clear(self) -> None:
        self._instances.clear()


@pytest.fixture(scope="session")
def helm_tester_factory() -> HelmTesterCache:
    """Session-wide HelmTester factory with the constructor's signature."""
    return HelmTesterCache()


__all__: list[str] = ["HelmTesterCache", "helm_tester_factory"]
