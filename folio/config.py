"""Site configuration for Folio.

Configuration is read from ``folio.yaml`` in the source root (or an explicit
path), merged over DEFAULT_CONFIG and frozen into a SiteConfig that is passed
explicitly to every component that needs it.
"""

from __future__ import annotations

import hashlib
import json
import string
from collections.abc import Mapping
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from types import MappingProxyType
from typing import Any

import yaml

from .errors import ConfigurationError
from .manifest import MANIFEST_FILENAME
from .utils import normalize_output_path

CONFIG_FILENAME = "folio.yaml"

DEFAULT_CONFIG: dict[str, Any] = {
    "default_layout": "default",
    "permalink": "{folder}/{slug}/index.html",
    "dated_permalink": "{folder}/{year}/{month}/{day}/{slug}/index.html",
    "sort_by": "date",
    "index": True,
    "index_output": "index.html",
    "index_layout": "index",
    "index_title": "Index",
    "workers": 1,
    "include_drafts": False,
    "title": "",
    "url": "",
}

_PERMALINK_FIELDS = {"folder", "slug", "year", "month", "day", "stem"}


@dataclass(frozen=True)
class SiteConfig:
    """Global build settings.

    Attributes:
        default_layout: Layout for documents without a ``layout`` key.
        permalink: Output path pattern for undated documents.
        dated_permalink: Output path pattern for dated documents.
        sort_by: Metadata key used to order the index page.
        index: Whether to write the aggregate index page.
        index_output: Output path of the index page.
        index_layout: Layout for the index page; falls back to default_layout.
        index_title: Title given to the index page.
        workers: Number of render threads; 1 renders sequentially.
        include_drafts: Whether draft documents are built.
        title: Site title, exposed as ``site.title``.
        url: Site base URL, exposed as ``site.url``.
        extra: Any other keys from the config file, exposed under ``site``.
    """

    default_layout: str = DEFAULT_CONFIG["default_layout"]
    permalink: str = DEFAULT_CONFIG["permalink"]
    dated_permalink: str = DEFAULT_CONFIG["dated_permalink"]
    sort_by: str = DEFAULT_CONFIG["sort_by"]
    index: bool = DEFAULT_CONFIG["index"]
    index_output: str = DEFAULT_CONFIG["index_output"]
    index_layout: str = DEFAULT_CONFIG["index_layout"]
    index_title: str = DEFAULT_CONFIG["index_title"]
    workers: int = DEFAULT_CONFIG["workers"]
    include_drafts: bool = DEFAULT_CONFIG["include_drafts"]
    title: str = DEFAULT_CONFIG["title"]
    url: str = DEFAULT_CONFIG["url"]
    extra: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "extra", MappingProxyType(dict(self.extra)))
        if not self.default_layout:
            raise ConfigurationError("default_layout must not be empty")
        if not isinstance(self.workers, int) or isinstance(self.workers, bool) or self.workers < 1:
            raise ConfigurationError(f"workers must be a positive integer, got {self.workers!r}")
        for key in ("permalink", "dated_permalink"):
            _check_pattern(key, getattr(self, key))
        index_output = normalize_output_path(str(self.index_output))
        if index_output is None:
            raise ConfigurationError(
                f"index_output {self.index_output!r} is outside the output directory"
            )
        if index_output == MANIFEST_FILENAME:
            raise ConfigurationError(f"index_output {index_output!r} is reserved for the build manifest")
        object.__setattr__(self, "index_output", index_output)

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> SiteConfig:
        """Build a config from a mapping, applying defaults.

        Raises:
            ConfigurationError: If a value has the wrong type.
        """
        merged = dict(DEFAULT_CONFIG)
        merged.update(values)
        known = {k: merged.pop(k) for k in DEFAULT_CONFIG}
        for key in ("index", "include_drafts"):
            if not isinstance(known[key], bool):
                raise ConfigurationError(f"{key} must be true or false, got {known[key]!r}")
        for key in ("default_layout", "permalink", "dated_permalink", "sort_by",
                    "index_output", "index_layout", "index_title", "title", "url"):
            if known[key] is None:
                known[key] = ""
            if not isinstance(known[key], str):
                raise ConfigurationError(f"{key} must be a string, got {known[key]!r}")
        return cls(**known, extra=merged)

    def with_overrides(self, **overrides: Any) -> SiteConfig:
        """Return a copy with the given non-None values replaced."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **changes) if changes else self

    def site_context(self) -> dict[str, Any]:
        """Values exposed to templates as ``site``."""
        context = dict(self.extra)
        context.update(title=self.title, url=self.url)
        return context

    def fingerprint(self) -> str:
        """Digest of every setting that can change rendered output."""
        values = {f.name: getattr(self, f.name) for f in fields(self)}
        values["extra"] = dict(self.extra)
        values.pop("workers")
        payload = json.dumps(values, sort_keys=True, default=str)
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def _check_pattern(key: str, pattern: str) -> None:
    try:
        names = {name for _, name, _, _ in string.Formatter().parse(pattern) if name}
    except ValueError as exc:
        raise ConfigurationError(f"{key} is not a valid pattern: {exc}") from exc
    unknown = names - _PERMALINK_FIELDS
    if unknown:
        raise ConfigurationError(
            f"{key} uses unknown fields: {', '.join(sorted(unknown))}"
        )


def load_config(source_root: Path, config_path: Path | None = None) -> SiteConfig:
    """Load site configuration.

    Args:
        source_root: Source directory; ``folio.yaml`` is looked up here.
        config_path: Explicit config file, which must exist.

    Returns:
        SiteConfig with defaults applied.

    Raises:
        ConfigurationError: If the file is unreadable, not YAML, not a
            mapping, or holds invalid values.
    """
    path = config_path or (Path(source_root) / CONFIG_FILENAME)
    if config_path is None and not path.exists():
        return SiteConfig()
    try:
        with open(path, encoding="utf-8") as f:
            loaded = yaml.safe_load(f)
    except OSError as exc:
        raise ConfigurationError(f"Cannot read config {path}: {exc}") from exc
    except UnicodeDecodeError as exc:
        raise ConfigurationError(f"Config {path} is not UTF-8 text: {exc.reason}") from exc
    except (yaml.YAMLError, ValueError) as exc:
        raise ConfigurationError(f"Invalid YAML in {path}: {exc}") from exc
    if loaded is None:
        loaded = {}
    if not isinstance(loaded, dict):
        raise ConfigurationError(f"Config {path} must be a mapping")
    return SiteConfig.from_mapping({str(k): v for k, v in loaded.items()})


def load_data(source_root: Path) -> dict[str, Any]:
    """Load template data from ``_data/*.yaml``.

    Each file becomes a key named after its stem.

    Raises:
        ConfigurationError: If a data file is not valid YAML.
    """
    data_dir = Path(source_root) / "_data"
    data: dict[str, Any] = {}
    if not data_dir.is_dir():
        return data
    for path in sorted([*data_dir.glob("*.yaml"), *data_dir.glob("*.yml")]):
        try:
            with open(path, encoding="utf-8") as f:
                data[path.stem] = yaml.safe_load(f)
        except UnicodeDecodeError as exc:
            raise ConfigurationError(f"Data file {path} is not UTF-8 text: {exc.reason}") from exc
        except (yaml.YAMLError, ValueError) as exc:
            raise ConfigurationError(f"Invalid YAML in {path}: {exc}") from exc
        except OSError as exc:
            raise ConfigurationError(f"Cannot read data file {path}: {exc}") from exc
    return data
