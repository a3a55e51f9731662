"""Metadata parsing and extraction for Folio.

This module splits a document's front-matter header block from its body
and derives the fields every document needs (title, date, slug).

Key pieces:
- parse / serialize: Purely syntactic header block handling.
- TitleExtractor, DateExtractor, SlugExtractor: Derive a single field each.
- CompositeMetadataExtractor: Runs extractors, filling only missing keys.
"""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import PurePosixPath
from typing import TYPE_CHECKING, Any

import yaml

from .errors import MalformedMetadataError
from .utils import coerce_date, extract_date_from_name, slugify, titleize

if TYPE_CHECKING:
    from .protocols import FieldExtractor

OPEN_MARKER = "---"
CLOSE_MARKERS = ("---", "...")


def parse(raw_text: str) -> tuple[dict[str, Any], str]:
    """Split raw document text into (metadata, body).

    A header block starts with a ``---`` line at the very top of the text
    and ends at the next ``---`` or ``...`` line. Its contents are YAML
    ``key: value`` lines. Text without a header block yields empty
    metadata and the full text as body.

    Args:
        raw_text: Complete file content.

    Returns:
        Tuple of (metadata dict, body string).

    Raises:
        MalformedMetadataError: If the header block is never closed, is not
            valid YAML, or does not hold a mapping.
    """
    text = raw_text[1:] if raw_text.startswith("\ufeff") else raw_text
    lines = text.splitlines(keepends=True)
    if not lines or lines[0].rstrip() != OPEN_MARKER:
        return {}, text

    for index in range(1, len(lines)):
        if lines[index].rstrip() in CLOSE_MARKERS:
            header = "".join(lines[1:index])
            body = "".join(lines[index + 1 :])
            break
    else:
        raise MalformedMetadataError("header block opened but never closed", line=1)

    try:
        data = yaml.safe_load(header)
    except yaml.YAMLError as exc:
        mark = getattr(exc, "problem_mark", None)
        line = mark.line + 2 if mark is not None else None
        problem = getattr(exc, "problem", None) or str(exc)
        raise MalformedMetadataError(f"invalid header block: {problem}", line=line) from exc
    except ValueError as exc:
        # Raised while constructing values, e.g. ``date: 2018-02-30``.
        raise MalformedMetadataError(f"invalid header value: {exc}") from exc
    if data is None:
        return {}, body
    if not isinstance(data, dict):
        raise MalformedMetadataError(
            f"header block must be key: value lines, got {type(data).__name__}", line=2
        )
    return {str(key): value for key, value in data.items()}, body


def serialize(metadata: Mapping[str, Any], body: str) -> str:
    """Write metadata and body back out as document text.

    The result parses back to the same metadata and body.
    """
    if not metadata and not body.lstrip("\ufeff").startswith(OPEN_MARKER):
        return body
    header = ""
    if metadata:
        header = yaml.safe_dump(
            dict(metadata),
            sort_keys=False,
            allow_unicode=True,
            default_flow_style=False,
        )
    return f"{OPEN_MARKER}\n{header}{OPEN_MARKER}\n{body}"


class TitleExtractor:
    """Derives a title from the first level-1 heading or the filename."""

    key = "title"

    def extract(self, metadata: Mapping[str, Any], body: str, path: str) -> dict[str, Any]:
        for line in body.splitlines():
            stripped = line.strip()
            if stripped.startswith("# "):
                return {"title": stripped[2:].strip()}
        return {"title": titleize(PurePosixPath(path).name)}


class DateExtractor:
    """Normalizes the ``date`` key, falling back to a YYYY-MM-DD filename prefix."""

    key = "date"

    def extract(self, metadata: Mapping[str, Any], body: str, path: str) -> dict[str, Any]:
        if "date" in metadata:
            coerced = coerce_date(metadata["date"])
            if coerced is None:
                raise MalformedMetadataError(f"unrecognized date: {metadata['date']!r}")
            return {"date": coerced}
        found = extract_date_from_name(PurePosixPath(path).stem)
        return {"date": found} if found is not None else {}


class SlugExtractor:
    """Derives a slug from the filename, without any date prefix."""

    key = "slug"

    def extract(self, metadata: Mapping[str, Any], body: str, path: str) -> dict[str, Any]:
        if "slug" in metadata:
            return {"slug": slugify(str(metadata["slug"]))}
        return {"slug": slugify(PurePosixPath(path).stem)}


class CompositeMetadataExtractor:
    """Combines field extractors over a parsed metadata mapping.

    Each extractor sees the metadata accumulated so far. Values already
    present in the header block win, except for keys an extractor
    normalizes (date, slug), which it rewrites.
    """

    def __init__(self, extractors: list[FieldExtractor] | None = None):
        if extractors is None:
            self._extractors = [TitleExtractor(), DateExtractor(), SlugExtractor()]
        else:
            self._extractors = list(extractors)

    def add_extractor(self, extractor: FieldExtractor) -> None:
        self._extractors.append(extractor)

    def extract(self, metadata: Mapping[str, Any], body: str, path: str) -> dict[str, Any]:
        """Return a new mapping with derived fields filled in.

        Args:
            metadata: Parsed header block.
            body: Document body.
            path: Source path relative to the source root.

        Returns:
            Metadata merged with derived values.
        """
        result: dict[str, Any] = dict(metadata)
        for extractor in self._extractors:
            key = getattr(extractor, "key", None)
            if key == "title" and result.get("title") not in (None, ""):
                continue
            result.update(extractor.extract(result, body, path))
        return result


default_metadata_extractor = CompositeMetadataExtractor()
