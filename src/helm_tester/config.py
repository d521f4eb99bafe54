"""Configuration for helm-tester.

Settings load from environment variables with the ``HELM_TESTER_`` prefix
and can be overridden per harness by passing a ``HelmTesterSettings``
instance explicitly.

Environment Variables:
    HELM_TESTER_LOG_LEVEL: Diagnostic verbosity (DEBUG, INFO, WARNING, ...)
    HELM_TESTER_HELM_BINARY: helm executable (default: "helm")
    HELM_TESTER_RELEASE_NAME: Release name used for ``helm template``
    HELM_TESTER_NAMESPACE: Namespace used for ``helm template``
    HELM_TESTER_STRICT_DECODE: Fail renders on undecodable output blobs
    HELM_REPOSITORY_CONFIG / HELM_REPOSITORY_CACHE: Helm's own locations,
        used as defaults for the repository registry and cache.

Example:
    >>> settings = HelmTesterSettings(log_level="DEBUG", strict_decode=True)
    >>> settings.registry_path().name
    'repositories.yaml'
"""

from __future__ import annotations

import os
from enum import Enum
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class DependencyPolicy(str, Enum):
    """How the harness materializes chart dependencies at construction.

    Attributes:
        SKIP: Do not touch dependencies; use whatever is already on disk.
        NO_REFRESH: Fetch missing archives without refreshing repository indexes.
        UPDATE: Refresh repository indexes and fetch missing archives.
    """

    SKIP = "skip"
    NO_REFRESH = "no-refresh"
    UPDATE = "update"


def _xdg_dir(env_var: str, fallback: str) -> Path:
    value = os.environ.get(env_var)
    if value:
        return Path(value)
    return Path.home() / fallback


class HelmTesterSettings(BaseSettings):
    """Runtime settings for a helm-tester harness.

    Attributes:
        log_level: Minimum level for the harness logger.
        helm_binary: helm executable to invoke.
        release_name: Release name passed to ``helm template``.
        namespace: Namespace passed to ``helm template``.
        repository_config: repositories.yaml location (None: Helm default).
        repository_cache: Repository index cache (None: Helm default).
        deps_dir_name: Subdirectory of a chart holding dependency archives.
        archive_extension: Extension of dependency archives.
        strict_decode: Raise instead of skipping undecodable rendered blobs.
        helm_timeout: Seconds before a helm call is aborted (None: no limit).
    """

    model_config = SettingsConfigDict(
        env_prefix="HELM_TESTER_",
        extra="ignore",
    )

    log_level: LogLevel = Field(
        default="WARNING",
        description="Diagnostic verbosity of the harness logger",
    )
    helm_binary: str = Field(
        default="helm",
        description="helm executable",
    )
    release_name: str = Field(
        default="release-name",
        description="Release name used when rendering templates",
    )
    namespace: str = Field(
        default="default",
        description="Namespace used when rendering templates",
    )
    repository_config: Path | None = Field(
        default=None,
        description="Path to repositories.yaml (defaults to Helm's location)",
    )
    repository_cache: Path | None = Field(
        default=None,
        description="Path to the repository index cache (defaults to Helm's location)",
    )
    deps_dir_name: str = Field(
        default="charts",
        description="Chart subdirectory holding dependency archives",
    )
    archive_extension: str = Field(
        default="tgz",
        description="Extension of dependency archives",
    )
    strict_decode: bool = Field(
        default=False,
        description="Fail renders on rendered blobs that are not valid YAML",
    )
    helm_timeout: float | None = Field(
        default=None,
        gt=0,
        description="Timeout in seconds for helm calls (None: no timeout)",
    )

    def registry_path(self) -> Path:
        """Resolve the repository registry file location.

        Returns:
            Explicit ``repository_config``, else ``$HELM_REPOSITORY_CONFIG``,
            else ``$XDG_CONFIG_HOME/helm/repositories.yaml``.
        """
        if self.repository_config is not None:
            return self.repository_config
        env_path = os.environ.get("HELM_REPOSITORY_CONFIG")
        if env_path:
            return Path(env_path)
        return _xdg_dir("XDG_CONFIG_HOME", ".config") / "helm" / "repositories.yaml"

    def cache_path(self) -> Path:
        """Resolve the repository cache directory.

        Returns:
            Explicit ``repository_cache``, else ``$HELM_REPOSITORY_CACHE``,
            else ``$XDG_CACHE_HOME/helm/repository``.
        """
        if self.repository_cache is not None:
            return self.repository_cache
        env_path = os.environ.get("HELM_REPOSITORY_CACHE")
        if env_path:
            return Path(env_path)
        return _xdg_dir("XDG_CACHE_HOME", ".cache") / "helm" / "repository"


__all__: list[str] = [
    "DependencyPolicy",
    "HelmTesterSettings",
    "LogLevel",
]
