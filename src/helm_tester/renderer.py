"""Chart rendering into decoded manifests.

The Renderer merges caller overrides over a chart's default values,
hands the result to a template engine, and decodes every YAML document
of every rendered blob into one flat, ordered list.

Decoding Rules:
    - All documents of a multi-document blob are kept, in order
    - Empty documents (separators, comment-only output) are dropped
    - Blobs are split at column-zero ``---`` markers and each document is
      decoded on its own
    - A document that is not valid YAML is skipped with a warning, or
      raises ManifestDecodeError when ``strict_decode`` is set. Its
      neighbours in the same blob are kept either way.

Output order follows the engine's emission order and is not stable
across helm versions: query documents by content, not position.

Example:
    >>> renderer = Renderer(chart, HelmClient())
    >>> docs = renderer.render({"echo-server": {"image": {"tag": "overriden"}}})
    >>> [d["kind"] for d in docs]
    ['ConfigMap', 'Service', 'Deployment']
"""

from __future__ import annotations

import re
from typing import Any

import structlog
import yaml

from helm_tester.chart import ChartNode
from helm_tester.errors import ManifestDecodeError, RenderError
from helm_tester.helm import TemplateEngine
from helm_tester.merger import deep_merge

# One decoded YAML document of the render output
RenderedDocument = Any

# A document start marker at column zero always begins a new document
_DOCUMENT_START = re.compile(r"^(?=---(?:[ \t]|$))", re.MULTILINE)


def split_documents(text: str) -> list[str]:
    """Split a YAML stream into single-document chunks.

    Each chunk keeps its own ``---`` marker, so it loads on its own.

    Args:
        text: Multi-document YAML text.

    Returns:
        Non-blank chunks in stream order.
    """
    return [chunk for chunk in _DOCUMENT_START.split(text) if chunk.strip()]


class Renderer:
    """Renders a chart and caches the last successful output.

    Attributes:
        chart: Root chart being rendered.
        engine: Template expansion capability.
        strict_decode: Raise on undecodable blobs instead of skipping them.
    """

    def __init__(
        self,
        chart: ChartNode,
        engine: TemplateEngine,
        *,
        strict_decode: bool = False,
        logger: Any = None,
    ) -> None:
        """Initialize the renderer.

        Args:
            chart: Root chart being rendered.
            engine: Template expansion capability.
            strict_decode: Raise on undecodable blobs instead of skipping them.
            logger: structlog logger (default: module logger).
        """
        self.chart = chart
        self.engine = engine
        self.strict_decode = strict_decode
        self._log = logger or structlog.get_logger(__name__)
        self._values: dict[str, Any] | None = None
        self._documents: list[RenderedDocument] | None = None

    @property
    def rendered(self) -> bool:
        """Whether a successful render is cached."""
        return self._documents is not None

    @property
    def values(self) -> dict[str, Any] | None:
        """Merged values of the last successful render."""
        return self._values

    @property
    def documents(self) -> list[RenderedDocument] | None:
        """Documents of the last successful render."""
        return self._documents

    def merge_values(self, overrides: dict[str, Any] | None) -> dict[str, Any]:
        """Merge overrides over the chart's default values.

        Raises:
            RenderError: If overrides is not a mapping.
        """
        if overrides is not None and not isinstance(overrides, dict):
            raise RenderError(
                self.chart.name,
                f"overrides must be a mapping, got {type(overrides).__name__}",
            )
        return deep_merge(self.chart.values, overrides)

    def render(self, overrides: dict[str, Any] | None = None) -> list[RenderedDocument]:
        """Render the chart, replacing any cached output.

        A failed render leaves the previously cached output untouched.

        Args:
            overrides: Values merged over the chart defaults; None renders
                with defaults unchanged.

        Returns:
            Decoded documents in emission order.

        Raises:
            RenderError: If dependencies are missing, overrides are not a
                mapping, or template expansion fails.
            ManifestDecodeError: In strict mode, if a blob is not valid YAML.
        """
        missing = self.chart.missing_dependencies
        if missing:
            raise RenderError(self.chart.name, f"missing dependencies: {', '.join(missing)}")

        values = self.merge_values(overrides)
        self._log.debug("render_started", chart=self.chart.name, overridden=bool(overrides))
        blobs = self.engine.template(self.chart, values)
        documents = self.decode(blobs)

        self._values = values
        self._documents = documents
        self._log.info(
            "render_complete",
            chart=self.chart.name,
            blobs=len(blobs),
            documents=len(documents),
        )
        return list(documents)

    def decode(self, blobs: dict[str, str]) -> list[RenderedDocument]:
        """Decode every document of every blob into one list.

        Args:
            blobs: Output unit name mapped to rendered text.

        Returns:
            Non-empty decoded documents, blob by blob.

        Raises:
            ManifestDecodeError: In strict mode, if a blob is not valid YAML.
        """
        documents: list[RenderedDocument] = []
        for source, text in blobs.items():
            documents.extend(self._decode_blob(source, text))
        return documents

    def _decode_blob(self, source: str, text: str) -> list[RenderedDocument]:
        documents: list[RenderedDocument] = []
        for index, chunk in enumerate(split_documents(text)):
            try:
                decoded = [doc for doc in yaml.safe_load_all(chunk) if doc is not None]
            except yaml.YAMLError as e:
                if self.strict_decode:
                    raise ManifestDecodeError(self.chart.name, source, str(e)) from e
                self._log.warning(
                    "manifest_document_skipped", source=source, index=index, error=str(e)
                )
                continue
            documents.extend(decoded)
        return documents

    def invalidate(self) -> None:
        """Drop cached output so the next query renders again."""
        self._values = None
        self._documents = None


__all__: list[str] = [
    "RenderedDocument",
    "Renderer",
    "split_documents",
]
