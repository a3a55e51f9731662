"""Site assembly for Folio.

The SiteAssembler turns parsed documents into placed documents: it fills
derived metadata, picks the layout chain and computes the output path. It
also orders documents for aggregate pages.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date

from .collections import order_documents
from .config import SiteConfig
from .content import Document
from .errors import MalformedMetadataError
from .extractors import CompositeMetadataExtractor, default_metadata_extractor
from .layouts import Layout, LayoutRegistry
from .manifest import MANIFEST_FILENAME
from .utils import normalize_output_path


class SiteAssembler:
    """Resolves layouts, output paths and ordering for documents.

    Attributes:
        config: Site configuration.
        layouts: Loaded layout registry.
    """

    def __init__(
        self,
        config: SiteConfig,
        layouts: LayoutRegistry,
        metadata_extractor: CompositeMetadataExtractor | None = None,
    ):
        self.config = config
        self.layouts = layouts
        self.metadata_extractor = metadata_extractor or default_metadata_extractor

    def resolve_layout_chain(self, layout_name: str | None) -> tuple[Layout, ...]:
        """Return the layout chain for a name, innermost first.

        None selects the configured default layout.

        Raises:
            LayoutNotFoundError: If the layout does not exist.
        """
        return self.layouts.resolve_chain(layout_name or self.config.default_layout)

    def chain_for(self, document: Document) -> tuple[Layout, ...]:
        return self.resolve_layout_chain(document.layout)

    def assemble(self, document: Document) -> Document:
        """Fill derived metadata and the output path of a parsed document.

        Raises:
            MalformedMetadataError: If a derived value is invalid or the
                output path would leave the output root.
        """
        if not document.parsed:
            raise ValueError(f"{document.source_path} has not been parsed")
        metadata = self.metadata_extractor.extract(
            document.metadata, document.body, document.source_path
        )
        output_path = self.output_path(document.source_path, metadata)
        return document.with_output(metadata, output_path)

    def output_path(self, source_path: str, metadata) -> str:
        """Compute the output path from the source path and metadata.

        A ``permalink`` metadata value wins. Otherwise dated documents use
        ``dated_permalink`` and the rest use ``permalink``; a document named
        ``index`` always maps to ``index.html`` in its folder.
        """
        folder, _, filename = source_path.rpartition("/")
        stem = filename.split(".", 1)[0]
        explicit = metadata.get("permalink")
        if explicit:
            target = str(explicit)
            if target.endswith("/"):
                target += "index.html"
        elif stem == "index":
            target = f"{folder}/index.html"
        else:
            when = metadata.get("date")
            pattern = self.config.dated_permalink if isinstance(when, date) else self.config.permalink
            target = pattern.format(
                folder=folder,
                slug=metadata.get("slug") or stem,
                stem=stem,
                year=f"{when.year:04d}" if isinstance(when, date) else "",
                month=f"{when.month:02d}" if isinstance(when, date) else "",
                day=f"{when.day:02d}" if isinstance(when, date) else "",
            )
        normalized = normalize_output_path(target)
        if normalized is None:
            raise MalformedMetadataError(f"output path {target!r} is outside the output directory")
        if normalized == MANIFEST_FILENAME:
            raise MalformedMetadataError(f"output path {target!r} is reserved for the build manifest")
        return normalized

    def order(self, documents: Iterable[Document], field: str | None = None) -> list[Document]:
        """Order documents by a metadata field, descending, ties by source path."""
        return order_documents(documents, field or self.config.sort_by)
