"""Folio static site builder.

This package builds a directory of rendered files from a tree of content
documents with front-matter header blocks, using Markdown and Jinja2 layouts.
Builds are incremental: a manifest of content fingerprints lets a rebuild
render only the documents whose inputs changed.

The main entry point is the CLI module, which provides commands for building
a site, rebuilding on change, and creating new documents.

Pipeline, leaf first:
- content: Content Store, enumerates raw documents.
- extractors: Metadata Parser, splits header blocks from bodies.
- renderers: Renderer, converts bodies and wraps them in layout chains.
- layouts, assembler, collections: Site Assembler, resolves layouts,
  output paths and ordering.
- manifest, build: Build Orchestrator and its persisted manifest.
"""

__all__ = ["__version__"]
__version__ = "0.1.0"
