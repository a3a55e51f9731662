"""Protocol definitions for Folio.

This module defines the small interfaces that let the pipeline be extended
without modifying it: new source types plug in as body renderers, and new
derived metadata fields plug in as field extractors.
"""

from __future__ import annotations

from abc import abstractmethod
from collections.abc import Mapping
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class BodyRenderer(Protocol):
    """Protocol for converting a document body into an HTML fragment.

    Implementations handle one source type each (Markdown, HTML, text).
    """

    source_type: str

    @abstractmethod
    def render(self, body: str) -> str:
        """Render a body.

        Args:
            body: Document text after the header block.

        Returns:
            HTML fragment.
        """
        ...


@runtime_checkable
class FieldExtractor(Protocol):
    """Protocol for deriving one metadata field for a document."""

    key: str

    @abstractmethod
    def extract(self, metadata: Mapping[str, Any], body: str, path: str) -> dict[str, Any]:
        """Derive metadata.

        Args:
            metadata: Metadata gathered so far.
            body: Document body.
            path: Source path relative to the source root.

        Returns:
            Dictionary of derived values to merge.
        """
        ...
