"""Exception types raised by Folio.

Per-document errors (MalformedMetadataError, LayoutNotFoundError,
OutputCollisionError) are recorded by the build orchestrator and the run
continues. ConfigurationError and its subclasses, plus SourceUnreadableError,
abort the run.
"""

from __future__ import annotations

from pathlib import Path


class FolioError(Exception):
    """Base class for Folio errors."""


class SourceUnreadableError(OSError):
    """Source root or a source file cannot be read.

    Attributes:
        path: The path that could not be read.
    """

    def __init__(self, path: Path, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Cannot read {path}: {reason}")


class MalformedMetadataError(FolioError):
    """A document header block is unterminated or unparseable.

    Attributes:
        message: Human-readable description.
        line: 1-based line number of the offending marker, when known.
    """

    def __init__(self, message: str, line: int | None = None):
        self.message = message
        self.line = line
        if line is not None:
            message = f"line {line}: {message}"
        super().__init__(message)


class ConfigurationError(FolioError):
    """Site configuration is invalid; no safe rendering is possible."""


class CyclicLayoutError(ConfigurationError):
    """Layout inheritance revisits a layout already in the chain.

    Attributes:
        chain: Layout names walked so far, ending with the repeated name.
    """

    def __init__(self, chain: list[str]):
        self.chain = list(chain)
        super().__init__("Cyclic layout inheritance: " + " -> ".join(self.chain))


class LayoutNotFoundError(FolioError):
    """A document or layout names a layout that does not exist."""

    def __init__(self, name: str, referrer: str | None = None):
        self.name = name
        self.referrer = referrer
        detail = f" (referenced by {referrer})" if referrer else ""
        super().__init__(f"Layout not found: {name}{detail}")


class OutputCollisionError(FolioError):
    """Two documents resolve to the same output path."""

    def __init__(self, output_path: str, owner: str):
        self.output_path = output_path
        self.owner = owner
        super().__init__(f"Output {output_path} is already produced by {owner}")


class UnresolvedPlaceholderWarning(UserWarning):
    """A template placeholder had no value during rendering."""
