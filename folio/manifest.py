"""Build manifest for incremental rebuilds.

The manifest records, for each source path, the fingerprint of the inputs
that produced its output, when it was rendered and where it was written.
It is stored as JSON next to the built site and owned by the build
orchestrator, which applies all updates from a single thread.
"""

from __future__ import annotations

import hashlib
import json
import logging
from collections.abc import Iterator, Sequence
from dataclasses import dataclass
from pathlib import Path

from .content import Document
from .layouts import Layout
from .utils import atomic_write_text

logger = logging.getLogger(__name__)

MANIFEST_FILENAME = ".folio-manifest.json"
MANIFEST_VERSION = 1


def fingerprint(document: Document, chain: Sequence[Layout], site_fingerprint: str = "") -> str:
    """Return a SHA-256 digest over everything a document's output depends on.

    Args:
        document: The document (its raw text is hashed).
        chain: Resolved layout chain; each layout's source text is hashed.
        site_fingerprint: Digest of configuration and data.
    """
    digest = hashlib.sha256()
    for part in (
        document.source_path,
        document.raw_text,
        *(f"{layout.name}\0{layout.source_text}" for layout in chain),
        site_fingerprint,
    ):
        encoded = part.encode("utf-8")
        digest.update(len(encoded).to_bytes(8, "big"))
        digest.update(encoded)
    return digest.hexdigest()


@dataclass(frozen=True)
class ManifestEntry:
    """Record of the last successful render of one document."""

    fingerprint: str
    rendered_at: str
    output: str


class BuildManifest:
    """Mapping from source path to ManifestEntry.

    Attributes:
        path: File the manifest is loaded from and saved to, if any.
    """

    def __init__(self, entries: dict[str, ManifestEntry] | None = None, path: Path | None = None):
        self.path = path
        self._entries: dict[str, ManifestEntry] = dict(entries or {})

    @classmethod
    def load(cls, path: Path) -> BuildManifest:
        """Load a manifest file; a missing or unreadable one starts empty."""
        if not path.exists():
            return cls(path=path)
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
            if payload.get("version") != MANIFEST_VERSION:
                raise ValueError(f"unsupported manifest version {payload.get('version')!r}")
            entries = {
                str(source): ManifestEntry(
                    fingerprint=str(record["fingerprint"]),
                    rendered_at=str(record["rendered_at"]),
                    output=str(record["output"]),
                )
                for source, record in payload["entries"].items()
            }
        except (OSError, ValueError, KeyError, TypeError, AttributeError) as exc:
            logger.warning("Ignoring unusable manifest %s: %s", path, exc)
            return cls(path=path)
        return cls(entries, path=path)

    def save(self, path: Path | None = None) -> None:
        target = path or self.path
        if target is None:
            raise ValueError("No manifest path given")
        payload = {
            "version": MANIFEST_VERSION,
            "entries": {
                source: {
                    "fingerprint": entry.fingerprint,
                    "rendered_at": entry.rendered_at,
                    "output": entry.output,
                }
                for source, entry in sorted(self._entries.items())
            },
        }
        atomic_write_text(target, json.dumps(payload, indent=2, sort_keys=True) + "\n")

    def get(self, source_path: str) -> ManifestEntry | None:
        return self._entries.get(source_path)

    def record(self, source_path: str, entry: ManifestEntry) -> None:
        self._entries[source_path] = entry

    def discard(self, source_path: str) -> ManifestEntry | None:
        return self._entries.pop(source_path, None)

    def is_stale(self, source_path: str, current: str, output_root: Path | None = None) -> bool:
        """Check whether a document needs rendering.

        A document is stale when it has no entry or its fingerprint changed.
        When output_root is given, an entry whose output file is gone counts
        as absent.
        """
        entry = self._entries.get(source_path)
        if entry is None or entry.fingerprint != current:
            return True
        if output_root is not None and not (output_root / entry.output).is_file():
            return True
        return False

    def __contains__(self, source_path: str) -> bool:
        return source_path in self._entries

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._entries))

    def __len__(self) -> int:
        return len(self._entries)

    def items(self):
        return sorted(self._entries.items())
