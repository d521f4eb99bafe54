"""Integration tests against a real helm binary.

Charts are built in tmp_path and depend on each other through
``file://`` repositories, so no network access is needed.

Skipped when helm is not on PATH.
"""

from __future__ import annotations

import shutil
from pathlib import Path

import pytest
import yaml

from helm_tester.config import DependencyPolicy, HelmTesterSettings
from helm_tester.errors import RenderError
from helm_tester.helm import HelmClient
from helm_tester.tester import HarnessState, HelmTester

pytestmark = [
    pytest.mark.integration,
    pytest.mark.skipif(shutil.which("helm") is None, reason="helm binary not on PATH"),
]

DEPLOYMENT_TEMPLATE = """\
apiVersion: apps/v1
kind: Deployment
metadata:
  name: {{ .Release.Name }}-echo-server
spec:
  replicas: {{ .Values.replicaCount }}
  selector:
    matchLabels:
      app: echo-server
  template:
    metadata:
      labels:
        app: echo-server
    spec:
      containers:
        - name: echo-server
          image: "{{ .Values.image.repository }}:{{ .Values.image.tag }}"
"""

CONFIGMAPS_TEMPLATE = """\
apiVersion: v1
kind: ConfigMap
metadata:
  name: {{ .Release.Name }}-first
data:
  env: {{ .Values.global.env | quote }}
---
apiVersion: v1
kind: ConfigMap
metadata:
  name: {{ .Release.Name }}-second
"""

EMPTY_TEMPLATE = """\
{{- if .Values.extra.enabled }}
apiVersion: v1
kind: Secret
metadata:
  name: extra
{{- end }}
"""

DEPLOYMENT_IMAGE = (
    '.Manifests[] | select(.kind == "Deployment") | .spec.template.spec.containers[0].image'
)


@pytest.fixture
def settings(tmp_path: Path) -> HelmTesterSettings:
    return HelmTesterSettings(
        release_name="test",
        repository_config=tmp_path / "helm" / "repositories.yaml",
        repository_cache=tmp_path / "helm" / "cache",
    )


@pytest.fixture
def local_chart(make_chart) -> Path:
    """echo-app depending on a sibling echo-server chart via file://."""
    make_chart(
        "echo-server",
        "0.5.0",
        values={
            "replicaCount": 1,
            "image": {"repository": "ealen/echo-server", "tag": "0.6.0"},
        },
        templates={"deployment.yaml": DEPLOYMENT_TEMPLATE},
    )
    return make_chart(
        "echo-app",
        values={
            "echo-server": {"replicaCount": 2},
            "global": {"env": "ci"},
            "extra": {"enabled": False},
        },
        dependencies=[
            {"name": "echo-server", "version": "0.5.0", "repository": "file://../echo-server"}
        ],
        templates={"configmaps.yaml": CONFIGMAPS_TEMPLATE, "extra.yaml": EMPTY_TEMPLATE},
    )


@pytest.fixture
def resolved_tester(local_chart: Path, settings: HelmTesterSettings) -> HelmTester:
    return HelmTester(local_chart, policy=DependencyPolicy.NO_REFRESH, settings=settings)


class TestDependencyUpdate:
    """Tests for dependency resolution through helm dependency update."""

    @pytest.mark.requirement("DEPS-SINGLE-FETCH")
    def test_missing_dependency_fetched(
        self, local_chart: Path, resolved_tester: HelmTester
    ) -> None:
        """Test that the missing archive is materialized at the expected path."""
        assert (local_chart / "charts" / "echo-server-0.5.0.tgz").is_file()
        assert resolved_tester.resolution.fetched
        assert resolved_tester.resolution.ok

    @pytest.mark.requirement("DEPS-SKIP-FETCH")
    def test_second_harness_does_not_fetch(
        self, local_chart: Path, resolved_tester: HelmTester, settings: HelmTesterSettings
    ) -> None:
        """Test that a resolved chart is not fetched again."""
        archive = local_chart / "charts" / "echo-server-0.5.0.tgz"
        mtime = archive.stat().st_mtime_ns

        again = HelmTester(local_chart, policy=DependencyPolicy.NO_REFRESH, settings=settings)

        assert not again.resolution.fetched
        assert archive.stat().st_mtime_ns == mtime

    @pytest.mark.requirement("DEPS-POLICY")
    def test_skip_policy_leaves_chart_unresolved(
        self, local_chart: Path, settings: HelmTesterSettings
    ) -> None:
        """Test that SKIP fetches nothing and renders fail."""
        tester = HelmTester(local_chart, policy=DependencyPolicy.SKIP, settings=settings)

        assert not (local_chart / "charts").exists()
        with pytest.raises(RenderError, match="missing dependencies"):
            tester.query(".Manifests")


class TestTemplate:
    """Tests for rendering through helm template."""

    @pytest.mark.requirement("QUERY-CONTEXT")
    def test_default_render(self, resolved_tester: HelmTester) -> None:
        """Test querying a default render."""
        assert resolved_tester.query(".Chart|keys", list[str]) == [
            "echo-server",
            "extra",
            "global",
        ]
        assert resolved_tester.query(".Dependencies[0].Values.image.tag", str) == "0.6.0"
        assert resolved_tester.query(DEPLOYMENT_IMAGE, str) == "ealen/echo-server:0.6.0"
        assert resolved_tester.state is HarnessState.RENDERED

    @pytest.mark.requirement("RENDER-DECODE")
    def test_multi_document_template(self, resolved_tester: HelmTester) -> None:
        """Test that both documents of one template are decoded."""
        names = resolved_tester.query(
            '[.Manifests[] | select(.kind == "ConfigMap") | .metadata.name] | sort', list[str]
        )

        assert names == ["test-first", "test-second"]
        assert resolved_tester.query('[.Manifests[].kind] | index("Secret")') is None

    @pytest.mark.requirement("RENDER-MERGE")
    def test_override_render(self, resolved_tester: HelmTester) -> None:
        """Test that overrides reach the subchart and leave no residue."""
        resolved_tester.render({"echo-server": {"image": {"tag": "overriden"}}})
        overridden = resolved_tester.query(DEPLOYMENT_IMAGE, str)

        resolved_tester.render()

        assert overridden == "ealen/echo-server:overriden"
        assert resolved_tester.query(DEPLOYMENT_IMAGE, str) == "ealen/echo-server:0.6.0"
        resolved_tester.assert_query(
            '.Manifests[] | select(.kind == "Deployment") | .spec.replicas == 2'
        )

    @pytest.mark.requirement("RENDER-ERRORS")
    def test_template_error(self, make_chart, settings: HelmTesterSettings) -> None:
        """Test that helm template failures surface as RenderError."""
        chart_dir = make_chart("broken", templates={"bad.yaml": "kind: {{ .Values.x \n"})
        tester = HelmTester(chart_dir, policy=DependencyPolicy.SKIP, settings=settings)

        with pytest.raises(RenderError, match="broken"):
            tester.render()

    @pytest.mark.requirement("RENDER-ENGINE")
    def test_client_template_blobs(self, resolved_tester: HelmTester, settings) -> None:
        """Test that helm output is split per template."""
        blobs = HelmClient(settings).template(resolved_tester.chart, {"global": {"env": "x"}})

        assert "echo-app/templates/configmaps.yaml" in blobs
        assert "echo-app/charts/echo-server/templates/deployment.yaml" in blobs
        configmaps = list(yaml.safe_load_all(blobs["echo-app/templates/configmaps.yaml"]))
        assert configmaps[0]["data"] == {"env": "x"}
