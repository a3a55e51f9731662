"""Content loading for Folio.

This module discovers source documents and represents them as immutable
Document values. It only reads files: header parsing happens in
``extractors`` and enrichment in ``assembler``.

Key classes:
- Document: Frozen dataclass for one source document.
- ContentStore: Lazily enumerates documents under a source root.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field, replace
from pathlib import Path, PurePosixPath
from types import MappingProxyType
from typing import Any

from .errors import SourceUnreadableError

logger = logging.getLogger(__name__)

SOURCE_TYPES = {
    ".md": "markdown",
    ".markdown": "markdown",
    ".html": "html",
    ".htm": "html",
    ".txt": "text",
}


def source_type_for(path: str | Path) -> str | None:
    """Return the source type for a filename, or None if it is not a document."""
    return SOURCE_TYPES.get(PurePosixPath(str(path)).suffix.lower())


@dataclass(frozen=True)
class Document:
    """A single source document.

    Attributes:
        source_path: Path relative to the source root, POSIX form.
        raw_text: Complete file content as read from disk.
        source_type: "markdown", "html" or "text".
        metadata: Header block values, plus derived fields once assembled.
        body: Text after the header block; None until parsed.
        output_path: Path relative to the output root; None until assembled.
    """

    source_path: str
    raw_text: str
    source_type: str
    metadata: Mapping[str, Any] = field(default_factory=dict)
    body: str | None = None
    output_path: str | None = None

    def __post_init__(self):
        object.__setattr__(self, "metadata", MappingProxyType(dict(self.metadata)))

    @property
    def parsed(self) -> bool:
        return self.body is not None

    @property
    def layout(self) -> str | None:
        value = self.metadata.get("layout")
        return str(value) if value not in (None, "") else None

    @property
    def title(self) -> str:
        return str(self.metadata.get("title", ""))

    @property
    def date(self):
        return self.metadata.get("date")

    @property
    def folder(self) -> str:
        parent = PurePosixPath(self.source_path).parent.as_posix()
        return "" if parent == "." else parent

    @property
    def url(self) -> str:
        """URL path of the rendered output, with ``index.html`` collapsed."""
        if self.output_path is None:
            return ""
        if self.output_path == "index.html":
            return "/"
        if self.output_path.endswith("/index.html"):
            return "/" + self.output_path[: -len("index.html")]
        return "/" + self.output_path

    @property
    def is_draft(self) -> bool:
        return PurePosixPath(self.source_path).name.startswith("_") or bool(
            self.metadata.get("draft", False)
        )

    def with_parsed(self, metadata: Mapping[str, Any], body: str) -> Document:
        return replace(self, metadata=metadata, body=body)

    def with_output(self, metadata: Mapping[str, Any], output_path: str) -> Document:
        return replace(self, metadata=metadata, output_path=output_path)


class ContentStore:
    """Enumerates documents under a source root.

    Directories starting with ``_`` (layouts, data) are skipped. Files
    starting with ``_`` are drafts and only yielded when requested.

    Directories listed in ``exclude`` (such as an output directory nested
    in the source tree) are skipped as well.

    Attributes:
        root: Source root directory.
    """

    def __init__(self, root: Path, exclude: Iterable[Path] = ()):
        self.root = Path(root)
        self._exclude = {Path(p).resolve() for p in exclude}

    def enumerate(self, include_drafts: bool = False) -> Iterator[Document]:
        """Yield raw documents in sorted source-path order.

        Each call starts a fresh walk. Nothing is parsed here.

        Args:
            include_drafts: Whether to yield ``_``-prefixed files.

        Raises:
            SourceUnreadableError: If the root or a document cannot be read.
        """
        self._check_root()
        for rel in self._iter_paths(include_drafts):
            yield self._read(rel)

    def paths(self, include_drafts: bool = False) -> list[str]:
        """Return the relative paths enumerate() would yield."""
        self._check_root()
        return list(self._iter_paths(include_drafts))

    def _check_root(self) -> None:
        if not self.root.exists():
            raise SourceUnreadableError(self.root, "no such directory")
        if not self.root.is_dir():
            raise SourceUnreadableError(self.root, "not a directory")
        if not os.access(self.root, os.R_OK | os.X_OK):
            raise SourceUnreadableError(self.root, "permission denied")

    def _iter_paths(self, include_drafts: bool) -> Iterator[str]:
        found: list[str] = []

        def on_error(exc: OSError) -> None:
            raise SourceUnreadableError(Path(exc.filename or self.root), exc.strerror or str(exc))

        for dirpath, dirnames, filenames in os.walk(self.root, onerror=on_error):
            dirnames[:] = [
                d
                for d in dirnames
                if not d.startswith(("_", "."))
                and (Path(dirpath) / d).resolve() not in self._exclude
            ]
            base = Path(dirpath).relative_to(self.root)
            for name in filenames:
                if name.startswith("."):
                    continue
                if name.startswith("_") and not include_drafts:
                    continue
                if source_type_for(name) is None:
                    continue
                found.append((base / name).as_posix())
        yield from sorted(found)

    def _read(self, rel: str) -> Document:
        path = self.root / rel
        try:
            raw = path.read_text(encoding="utf-8")
        except UnicodeDecodeError as exc:
            raise SourceUnreadableError(path, f"not UTF-8 text ({exc.reason})") from exc
        except OSError as exc:
            raise SourceUnreadableError(path, exc.strerror or str(exc)) from exc
        logger.debug("Read %s (%d bytes)", rel, len(raw))
        return Document(source_path=rel, raw_text=raw, source_type=source_type_for(rel))
