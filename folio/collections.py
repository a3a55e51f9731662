from __future__ import annotations

from collections.abc import Iterable, Iterator, Sequence
from datetime import date, datetime
from typing import Any

from .content import Document


def _sort_value(value: Any) -> tuple:
    if isinstance(value, datetime):
        return (0, value.date(), value.time())
    if isinstance(value, date):
        return (0, value, datetime.min.time())
    if isinstance(value, bool):
        return (1, int(value))
    if isinstance(value, (int, float)):
        return (1, value)
    return (2, str(value))


def order_documents(documents: Iterable[Document], field: str = "date") -> list[Document]:
    """Order documents by a metadata field, newest/highest first.

    Ties are broken by source path ascending. Documents without the field
    come last, also in source-path order.

    Args:
        documents: Documents to order.
        field: Metadata key to sort by.

    Returns:
        A new list.
    """
    by_path = sorted(documents, key=lambda d: d.source_path)
    present = [d for d in by_path if d.metadata.get(field) is not None]
    missing = [d for d in by_path if d.metadata.get(field) is None]
    present.sort(key=lambda d: _sort_value(d.metadata[field]), reverse=True)
    return present + missing


class DocumentCollection(Sequence[Document]):
    """Lightweight helper for working with lists of Documents in templates and code."""

    def __init__(self, documents: Iterable[Document]):
        self._documents = list(documents)

    def __iter__(self) -> Iterator[Document]:
        return iter(self._documents)

    def __len__(self) -> int:
        return len(self._documents)

    def __getitem__(self, item):
        return self._documents[item]

    def in_folder(self, folder: str) -> DocumentCollection:
        return DocumentCollection(d for d in self._documents if d.folder == folder)

    def with_tag(self, tag: str) -> DocumentCollection:
        def tags_of(doc: Document) -> list:
            tags = doc.metadata.get("tags") or []
            return [tags] if isinstance(tags, str) else list(tags)

        return DocumentCollection(d for d in self._documents if tag in tags_of(d))

    def drafts(self) -> DocumentCollection:
        return DocumentCollection(d for d in self._documents if d.is_draft)

    def published(self) -> DocumentCollection:
        return DocumentCollection(d for d in self._documents if not d.is_draft)

    def sorted(self, field: str = "date") -> DocumentCollection:
        """Sort by ``field`` descending, ties by source path."""
        return DocumentCollection(order_documents(self._documents, field))

    def latest(self, count: int = 5, field: str = "date") -> DocumentCollection:
        return DocumentCollection(self.sorted(field)[:count])

    def __repr__(self) -> str:  # pragma: no cover - for debugging
        return f"DocumentCollection({len(self._documents)} documents)"
