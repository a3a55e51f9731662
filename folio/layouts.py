"""Layout loading and inheritance resolution for Folio.

Layouts live under ``_layouts/`` in the source root. A layout file may start
with its own header block; its ``layout`` key names a parent layout and any
other keys become default values for documents rendered through it.

Chains are resolved once, when the registry is built, into tuples ordered
innermost first. Layouts never hold references to each other.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any

from .errors import (
    ConfigurationError,
    CyclicLayoutError,
    LayoutNotFoundError,
    MalformedMetadataError,
)
from .extractors import parse

logger = logging.getLogger(__name__)

LAYOUT_DIR = "_layouts"
PASSTHROUGH_TEMPLATE = "{{ content }}"


@dataclass(frozen=True)
class Layout:
    """A named template that wraps rendered content.

    Attributes:
        name: Layout name (path under ``_layouts`` without suffixes).
        template: Jinja2 template source, header block removed.
        parent: Name of the enclosing layout, if any.
        defaults: Header values other than ``layout``.
        source_text: Raw file text, used for fingerprints.
        builtin: True for the generated passthrough layout.
    """

    name: str
    template: str
    parent: str | None = None
    defaults: Mapping[str, Any] = field(default_factory=dict)
    source_text: str = ""
    builtin: bool = False

    def __post_init__(self):
        object.__setattr__(self, "defaults", MappingProxyType(dict(self.defaults)))

    @classmethod
    def from_text(cls, name: str, text: str) -> Layout:
        metadata, template = parse(text)
        parent = metadata.pop("layout", None)
        return cls(
            name=name,
            template=template,
            parent=str(parent) if parent not in (None, "") else None,
            defaults=metadata,
            source_text=text,
        )


def layout_name_for(rel: Path) -> str:
    """Return the layout name for a path relative to the layout directory."""
    stem = rel.name.split(".", 1)[0]
    parent = rel.parent.as_posix()
    return stem if parent in ("", ".") else f"{parent}/{stem}"


class LayoutRegistry:
    """Holds layouts by name and their resolved inheritance chains.

    Attributes:
        default_layout: Name used for documents without a ``layout`` key.
    """

    def __init__(self, layouts: Mapping[str, Layout], default_layout: str = "default"):
        self.default_layout = default_layout
        self._layouts = dict(layouts)
        if default_layout not in self._layouts:
            self._layouts[default_layout] = Layout(
                name=default_layout,
                template=PASSTHROUGH_TEMPLATE,
                source_text=PASSTHROUGH_TEMPLATE,
                builtin=True,
            )
        self._chains: dict[str, tuple[Layout, ...]] = {}
        for name in sorted(self._layouts):
            try:
                self._chains[name] = self._walk(name)
            except LayoutNotFoundError as exc:
                raise ConfigurationError(str(exc)) from exc

    @classmethod
    def load(cls, source_root: Path, default_layout: str = "default") -> LayoutRegistry:
        """Load every layout under ``source_root/_layouts``.

        Raises:
            CyclicLayoutError: If any layout chain revisits a layout.
            ConfigurationError: If a layout is unreadable, has a malformed
                header, names a missing parent, or two files share a name.
        """
        layout_dir = Path(source_root) / LAYOUT_DIR
        layouts: dict[str, Layout] = {}
        if layout_dir.is_dir():
            for path in sorted(layout_dir.rglob("*")):
                if path.is_dir() or path.name.startswith("."):
                    continue
                rel = path.relative_to(layout_dir)
                name = layout_name_for(rel)
                if name in layouts:
                    raise ConfigurationError(
                        f"Duplicate layout name {name!r}: {rel.as_posix()}"
                    )
                try:
                    text = path.read_text(encoding="utf-8")
                    layouts[name] = Layout.from_text(name, text)
                except (OSError, UnicodeDecodeError) as exc:
                    raise ConfigurationError(f"Cannot read layout {rel.as_posix()}: {exc}") from exc
                except MalformedMetadataError as exc:
                    raise ConfigurationError(f"Layout {rel.as_posix()}: {exc}") from exc
        logger.debug("Loaded %d layouts from %s", len(layouts), layout_dir)
        return cls(layouts, default_layout=default_layout)

    def __contains__(self, name: str) -> bool:
        return name in self._layouts

    def __len__(self) -> int:
        return len(self._layouts)

    def names(self) -> list[str]:
        return sorted(self._layouts)

    def get(self, name: str) -> Layout:
        try:
            return self._layouts[name]
        except KeyError:
            raise LayoutNotFoundError(name) from None

    def resolve_chain(self, name: str | None = None) -> tuple[Layout, ...]:
        """Return the chain for a layout name, innermost first.

        Args:
            name: Layout name, or None for the default layout.

        Raises:
            LayoutNotFoundError: If the name is unknown.
        """
        key = name or self.default_layout
        try:
            return self._chains[key]
        except KeyError:
            raise LayoutNotFoundError(key) from None

    def _walk(self, name: str) -> tuple[Layout, ...]:
        chain: list[Layout] = []
        visited: set[str] = set()
        current: str | None = name
        referrer: str | None = None
        while current is not None:
            if current in visited:
                raise CyclicLayoutError([layout.name for layout in chain] + [current])
            layout = self._layouts.get(current)
            if layout is None:
                raise LayoutNotFoundError(current, referrer)
            visited.add(current)
            chain.append(layout)
            referrer = current
            current = layout.parent
        return tuple(chain)
