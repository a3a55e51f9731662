"""Site building for Folio.

This module contains the build orchestrator, which drives one run through
scanning, rendering and writing, and the build_site convenience function.

A run moves through IDLE -> SCANNING -> RENDERING -> WRITING -> DONE. Fatal
errors (invalid configuration, cyclic layouts, I/O failures) move it to
FAILED immediately. Errors in a single document are recorded and the run
continues; the run still ends in FAILED so that the exit status reflects
the worst outcome.

Key pieces:
- BuildOrchestrator: Runs a build with incremental staleness checks.
- BuildReport: Outcome of a run, including the process exit code.
- build_site: Load configuration and run a build in one call.
"""

from __future__ import annotations

import hashlib
import json
import logging
import threading
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any

from jinja2 import TemplateSyntaxError

from .assembler import SiteAssembler
from .collections import DocumentCollection
from .config import SiteConfig, load_config, load_data
from .content import ContentStore, Document
from .errors import (
    ConfigurationError,
    LayoutNotFoundError,
    MalformedMetadataError,
    OutputCollisionError,
    UnresolvedPlaceholderWarning,
)
from .extractors import parse
from .layouts import Layout, LayoutRegistry
from .manifest import MANIFEST_FILENAME, BuildManifest, ManifestEntry, fingerprint
from .renderers import Renderer
from .utils import atomic_write_text

logger = logging.getLogger(__name__)

INDEX_TEMPLATE = """<ul class="index">
{% for doc in documents %}  <li><a href="{{ url_for(doc) }}">{{ doc.title }}</a>{% if doc.date %} <time datetime="{{ doc.date }}">{{ doc.date }}</time>{% endif %}</li>
{% endfor %}</ul>
"""

EXIT_OK = 0
EXIT_DOCUMENT_FAILED = 1
EXIT_FATAL = 2


class BuildState(str, Enum):
    IDLE = "idle"
    SCANNING = "scanning"
    RENDERING = "rendering"
    WRITING = "writing"
    DONE = "done"
    FAILED = "failed"


class BuildError(Exception):
    """Error while building one document, with file context.

    Attributes:
        source_path: Source path (relative) of the document that failed.
        message: Human-readable error message.
        original_error: The original exception that was caught.
    """

    def __init__(
        self,
        source_path: str,
        message: str,
        original_error: Exception | None = None,
    ):
        self.source_path = source_path
        self.message = message
        self.original_error = original_error
        super().__init__(f"{source_path}: {message}")


@dataclass
class BuildReport:
    """Outcome of a build run.

    Attributes:
        state: Final state (DONE or FAILED).
        rendered: Source paths rendered and written this run.
        skipped: Source paths whose manifest entry was still fresh.
        written: Output paths written this run, including the index page.
        removed: Output paths deleted because their source disappeared.
        failures: Per-document errors.
        warnings: Unresolved placeholder warnings.
        fatal: Error that aborted the run, if any.
        cancelled: Whether the run was cancelled before finishing.
    """

    state: BuildState = BuildState.IDLE
    rendered: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    written: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    failures: list[BuildError] = field(default_factory=list)
    warnings: list[UnresolvedPlaceholderWarning] = field(default_factory=list)
    fatal: BaseException | None = None
    cancelled: bool = False

    @property
    def exit_code(self) -> int:
        if self.fatal is not None:
            return EXIT_FATAL
        if self.failures or self.cancelled:
            return EXIT_DOCUMENT_FAILED
        return EXIT_OK

    @property
    def ok(self) -> bool:
        return self.exit_code == EXIT_OK


@dataclass(frozen=True)
class _Job:
    document: Document
    chain: tuple[Layout, ...]
    fingerprint: str


@dataclass(frozen=True)
class _Rendered:
    job: _Job
    output: str | None = None
    unresolved: tuple[str, ...] = ()
    error: BuildError | None = None


class BuildOrchestrator:
    """Builds a site from a source tree into an output directory.

    Attributes:
        source_root: Directory holding documents, ``_layouts`` and ``_data``.
        output_root: Directory receiving rendered files and the manifest.
        config: Site configuration, threaded to every component.
        force: Ignore the manifest and render everything.
    """

    def __init__(
        self,
        source_root: Path,
        output_root: Path,
        config: SiteConfig | None = None,
        force: bool = False,
    ):
        self.source_root = Path(source_root)
        self.output_root = Path(output_root)
        self.config = config or SiteConfig()
        self.force = force
        self.state = BuildState.IDLE
        self._cancel = threading.Event()

    @property
    def manifest_path(self) -> Path:
        return self.output_root / MANIFEST_FILENAME

    def cancel(self) -> None:
        """Ask a running build to stop before the next document."""
        self._cancel.set()

    def run(self) -> BuildReport:
        """Run one build and return its report. Never raises for build errors."""
        self._cancel.clear()
        report = BuildReport()
        try:
            self._run(report)
        except (ConfigurationError, OSError) as exc:
            logger.error("Build aborted: %s", exc)
            report.fatal = exc
            self._transition(BuildState.FAILED)
        report.cancelled = report.cancelled or self._cancel.is_set()
        if report.fatal is None:
            failed = report.failures or report.cancelled
            self._transition(BuildState.FAILED if failed else BuildState.DONE)
        report.state = self.state
        logger.info(
            "Build %s: %d rendered, %d up to date, %d failed",
            self.state.value,
            len(report.rendered),
            len(report.skipped),
            len(report.failures),
        )
        return report

    def _run(self, report: BuildReport) -> None:
        self._transition(BuildState.SCANNING)
        if self.output_root.resolve() == self.source_root.resolve():
            raise ConfigurationError("Output directory must differ from the source directory")
        layouts = LayoutRegistry.load(self.source_root, self.config.default_layout)
        data = load_data(self.source_root)
        assembler = SiteAssembler(self.config, layouts)
        renderer = Renderer(site=self.config.site_context(), data=data)
        site_fingerprint = self._site_fingerprint(data)
        self.output_root.mkdir(parents=True, exist_ok=True)
        manifest = BuildManifest.load(self.manifest_path)

        placed, jobs = self._scan(assembler, manifest, site_fingerprint, report)
        if self._cancel.is_set():
            manifest.save()
            return

        self._transition(BuildState.RENDERING)
        results = self._render(renderer, jobs)

        self._transition(BuildState.WRITING)
        self._write(results, manifest, report)
        if not self._cancel.is_set():
            self._prune(manifest, placed, report)
            self._write_index(assembler, renderer, placed, report)
        manifest.save()

    def _scan(
        self,
        assembler: SiteAssembler,
        manifest: BuildManifest,
        site_fingerprint: str,
        report: BuildReport,
    ) -> tuple[dict[str, Document], list[_Job]]:
        store = ContentStore(self.source_root, exclude=[self.output_root])
        placed: dict[str, Document] = {}
        owners: dict[str, str] = {}
        jobs: list[_Job] = []
        for raw in store.enumerate(include_drafts=self.config.include_drafts):
            if self._cancel.is_set():
                break
            try:
                metadata, body = parse(raw.raw_text)
                document = raw.with_parsed(metadata, body)
                if document.is_draft and not self.config.include_drafts:
                    logger.debug("Skipping draft %s", raw.source_path)
                    continue
                document = assembler.assemble(document)
                chain = assembler.chain_for(document)
                owner = owners.get(document.output_path)
                if owner is not None:
                    raise OutputCollisionError(document.output_path, owner)
            except (MalformedMetadataError, LayoutNotFoundError, OutputCollisionError) as exc:
                self._fail(report, manifest, raw.source_path, str(exc), exc)
                placed[raw.source_path] = raw
                continue
            owners[document.output_path] = document.source_path
            placed[document.source_path] = document
            current = fingerprint(document, chain, site_fingerprint)
            if not self.force and not manifest.is_stale(
                document.source_path, current, self.output_root
            ):
                report.skipped.append(document.source_path)
                continue
            jobs.append(_Job(document, chain, current))
        return placed, jobs

    def _render(self, renderer: Renderer, jobs: Sequence[_Job]) -> list[_Rendered]:
        def render_one(job: _Job) -> _Rendered | None:
            if self._cancel.is_set():
                return None
            try:
                result = renderer.render_with_report(job.document, job.chain)
            except TemplateSyntaxError as exc:
                message = f"Template syntax error on line {exc.lineno}: {exc.message}"
                return _Rendered(job, error=BuildError(job.document.source_path, message, exc))
            except Exception as exc:
                return _Rendered(
                    job,
                    error=BuildError(job.document.source_path, _format_error_message(exc), exc),
                )
            return _Rendered(job, output=result.output, unresolved=result.unresolved)

        if self.config.workers > 1 and len(jobs) > 1:
            with ThreadPoolExecutor(max_workers=self.config.workers) as pool:
                results = list(pool.map(render_one, jobs))
        else:
            results = []
            for job in jobs:
                results.append(render_one(job))
        return [r for r in results if r is not None]

    def _write(
        self, results: Sequence[_Rendered], manifest: BuildManifest, report: BuildReport
    ) -> None:
        for rendered in results:
            if self._cancel.is_set():
                break
            document = rendered.job.document
            if rendered.error is not None:
                logger.error("%s", rendered.error)
                report.failures.append(rendered.error)
                manifest.discard(document.source_path)
                continue
            for name in rendered.unresolved:
                self._warn(report, document.source_path, name)
            atomic_write_text(self.output_root / document.output_path, rendered.output)
            manifest.record(
                document.source_path,
                ManifestEntry(
                    fingerprint=rendered.job.fingerprint,
                    rendered_at=datetime.now(timezone.utc).isoformat(timespec="seconds"),
                    output=document.output_path,
                ),
            )
            report.rendered.append(document.source_path)
            report.written.append(document.output_path)
            logger.info("Rendered %s -> %s", document.source_path, document.output_path)

    def _prune(
        self, manifest: BuildManifest, placed: dict[str, Document], report: BuildReport
    ) -> None:
        live_outputs = {d.output_path for d in placed.values() if d.output_path}
        for source_path, entry in manifest.items():
            if source_path in placed:
                continue
            manifest.discard(source_path)
            if entry.output in live_outputs:
                continue
            target = self.output_root / entry.output
            if target.is_file():
                target.unlink()
                report.removed.append(entry.output)
                logger.info("Removed %s (source %s is gone)", entry.output, source_path)

    def _write_index(
        self,
        assembler: SiteAssembler,
        renderer: Renderer,
        placed: dict[str, Document],
        report: BuildReport,
    ) -> None:
        if not self.config.index:
            return
        target = self.config.index_output
        if any(d.output_path == target for d in placed.values()):
            logger.info("Not generating %s: a source document produces it", target)
            return
        failed = {failure.source_path for failure in report.failures}
        documents = [
            d
            for d in placed.values()
            if d.output_path is not None and not d.is_draft and d.source_path not in failed
        ]
        ordered = DocumentCollection(assembler.order(documents))
        layout = self.config.index_layout
        if not layout or layout not in assembler.layouts:
            layout = self.config.default_layout
        try:
            body = renderer.render_string(INDEX_TEMPLATE, {"documents": ordered})
            index = Document(
                source_path=target,
                raw_text="",
                source_type="html",
                metadata={"title": self.config.index_title, "documents": ordered},
                body=body,
                output_path=target,
            )
            result = renderer.render_with_report(index, assembler.resolve_layout_chain(layout))
        except Exception as exc:
            error = BuildError(target, _format_error_message(exc), exc)
            logger.error("%s", error)
            report.failures.append(error)
            return
        for name in result.unresolved:
            self._warn(report, target, name)
        atomic_write_text(self.output_root / target, result.output)
        report.written.append(target)
        logger.info("Wrote index %s (%d documents)", target, len(ordered))

    def _site_fingerprint(self, data: dict[str, Any]) -> str:
        payload = json.dumps(data, sort_keys=True, default=str)
        digest = hashlib.sha256(self.config.fingerprint().encode("utf-8"))
        digest.update(payload.encode("utf-8"))
        return digest.hexdigest()

    def _fail(
        self,
        report: BuildReport,
        manifest: BuildManifest,
        source_path: str,
        message: str,
        exc: Exception,
    ) -> None:
        error = BuildError(source_path, message, exc)
        logger.error("%s", error)
        report.failures.append(error)
        manifest.discard(source_path)

    def _warn(self, report: BuildReport, source_path: str, name: str) -> None:
        warning = UnresolvedPlaceholderWarning(f"{source_path}: unresolved placeholder {name!r}")
        logger.warning("%s", warning)
        report.warnings.append(warning)

    def _transition(self, new_state: BuildState) -> None:
        logger.debug("Build state %s -> %s", self.state.value, new_state.value)
        self.state = new_state


def _format_error_message(exc: Exception) -> str:
    """Format an exception into a user-friendly error message."""
    error_type = type(exc).__name__
    error_msg = str(exc)

    if error_type == "UndefinedError":
        return f"Undefined variable: {error_msg}"
    if error_type == "TypeError":
        return f"Type error: {error_msg}"
    if error_type == "AttributeError":
        return f"Attribute error: {error_msg}"

    return f"{error_type}: {error_msg}"


def build_site(
    source_root: Path,
    output_root: Path,
    config: SiteConfig | None = None,
    config_path: Path | None = None,
    include_drafts: bool | None = None,
    workers: int | None = None,
    force: bool = False,
) -> BuildReport:
    """Build a site in one call.

    Args:
        source_root: Source directory.
        output_root: Output directory.
        config: Configuration to use; loaded from ``folio.yaml`` when None.
        config_path: Explicit configuration file.
        include_drafts: Override for ``include_drafts``.
        workers: Override for ``workers``.
        force: Render every document regardless of the manifest.

    Returns:
        BuildReport for the run. Configuration errors are reported as fatal.
    """
    try:
        resolved = config or load_config(Path(source_root), config_path)
        resolved = resolved.with_overrides(include_drafts=include_drafts, workers=workers)
    except ConfigurationError as exc:
        logger.error("Build aborted: %s", exc)
        return BuildReport(state=BuildState.FAILED, fatal=exc)
    orchestrator = BuildOrchestrator(source_root, output_root, resolved, force=force)
    return orchestrator.run()
