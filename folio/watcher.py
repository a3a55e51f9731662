"""Watch mode for Folio.

Runs an initial build, then watches the source tree with watchdog and runs
an incremental build whenever something changes. Only documents whose
fingerprint changed are rendered again, so rebuilds stay cheap.

Key classes:
- SiteWatcher: Owns the observer and serializes rebuilds.
- _ChangeHandler: File system event handler that triggers rebuilds.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from pathlib import Path

from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from .build import BuildReport, build_site

logger = logging.getLogger(__name__)


class SiteWatcher:
    """Rebuilds a site when its sources change.

    Attributes:
        source_root: Directory being watched.
        output_root: Directory receiving the build.
        debounce_seconds: Quiet period after the last change before rebuilding.
    """

    def __init__(
        self,
        source_root: Path,
        output_root: Path,
        config_path: Path | None = None,
        include_drafts: bool | None = None,
        on_build: Callable[[BuildReport], None] | None = None,
        debounce_seconds: float = 0.2,
    ):
        self.source_root = Path(source_root)
        self.output_root = Path(output_root)
        self.config_path = config_path
        self.include_drafts = include_drafts
        self.on_build = on_build
        self.debounce_seconds = debounce_seconds
        self._observer: Observer | None = None
        self._lock = threading.Lock()
        self._pending = threading.Event()
        self._last_change_at = 0.0

    def build(self) -> BuildReport:
        with self._lock:
            report = build_site(
                self.source_root,
                self.output_root,
                config_path=self.config_path,
                include_drafts=self.include_drafts,
            )
        if self.on_build is not None:
            self.on_build(report)
        return report

    def notify(self) -> None:
        """Record that a source file changed."""
        self._last_change_at = time.monotonic()
        self._pending.set()

    def poll(self) -> BuildReport | None:
        """Rebuild once no change has arrived for the debounce window."""
        if not self._pending.is_set():
            return None
        if time.monotonic() - self._last_change_at < self.debounce_seconds:
            return None
        self._pending.clear()
        logger.info("Change detected; rebuilding...")
        return self.build()

    def ignores(self, path: Path) -> bool:
        """Check whether a changed path lies inside the output directory."""
        try:
            path.resolve().relative_to(self.output_root.resolve())
        except ValueError:
            return False
        return True

    def start(self) -> None:
        handler = _ChangeHandler(self)
        observer = Observer()
        observer.schedule(handler, str(self.source_root), recursive=True)
        if self.config_path is not None:
            config_dir = Path(self.config_path).resolve().parent
            if not config_dir.is_relative_to(self.source_root.resolve()):
                observer.schedule(handler, str(config_dir), recursive=False)
        observer.start()
        self._observer = observer

    def stop(self) -> None:
        if self._observer:
            self._observer.stop()
            self._observer.join()
            self._observer = None

    def serve_forever(self, interval: float = 0.1) -> None:  # pragma: no cover - integration path
        self.build()
        self.start()
        try:
            while True:
                time.sleep(interval)
                self.poll()
        except KeyboardInterrupt:
            self.stop()


class _ChangeHandler(FileSystemEventHandler):
    def __init__(self, watcher: SiteWatcher):
        super().__init__()
        self.watcher = watcher

    def on_any_event(self, event):
        if event.is_directory:
            return
        path = Path(event.src_path)
        if self.watcher.ignores(path):
            return
        if path.name.startswith("."):
            return
        self.watcher.notify()
