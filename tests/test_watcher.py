from pathlib import Path

from folio.watcher import SiteWatcher, _ChangeHandler


class DummyEvent:
    def __init__(self, path, is_directory=False):
        self.src_path = path
        self.is_directory = is_directory


def create_source(tmp_path: Path) -> Path:
    source = tmp_path / "src"
    source.mkdir()
    (source / "a.md").write_text("# A\n", encoding="utf-8")
    return source


def test_change_handler_skips_output_and_hidden_files(tmp_path):
    source = create_source(tmp_path)
    watcher = SiteWatcher(source, source / "public", debounce_seconds=0)
    handler = _ChangeHandler(watcher)

    handler.on_any_event(DummyEvent(str(source / "public" / "index.html")))
    handler.on_any_event(DummyEvent(str(source / ".a.md.swp")))
    handler.on_any_event(DummyEvent(str(source / "posts"), is_directory=True))
    assert watcher.poll() is None

    handler.on_any_event(DummyEvent(str(source / "a.md")))
    report = watcher.poll()
    assert report is not None
    assert report.rendered == ["a.md"]


def test_poll_rebuilds_once_per_change(tmp_path):
    source = create_source(tmp_path)
    reports = []
    watcher = SiteWatcher(source, tmp_path / "out", on_build=reports.append, debounce_seconds=0)
    assert watcher.poll() is None

    watcher.notify()
    watcher.notify()
    assert watcher.poll() is not None
    assert watcher.poll() is None
    assert len(reports) == 1
    assert reports[0].rendered == ["a.md"]


def test_rebuild_is_incremental(tmp_path):
    source = create_source(tmp_path)
    watcher = SiteWatcher(source, tmp_path / "out", debounce_seconds=0)
    watcher.build()
    (source / "b.md").write_text("# B\n", encoding="utf-8")
    watcher.notify()
    report = watcher.poll()
    assert report.rendered == ["b.md"]
    assert report.skipped == ["a.md"]


def test_poll_waits_for_debounce_window(tmp_path):
    source = create_source(tmp_path)
    watcher = SiteWatcher(source, tmp_path / "out", debounce_seconds=60)
    watcher.build()
    watcher.notify()
    assert watcher.poll() is None
    # The change stays pending until the window passes.
    watcher.debounce_seconds = 0
    assert watcher.poll() is not None


def test_debounce_window_restarts_on_each_change(monkeypatch, tmp_path):
    source = create_source(tmp_path)
    clock = [1000.0]
    monkeypatch.setattr("folio.watcher.time.monotonic", lambda: clock[0])
    watcher = SiteWatcher(source, tmp_path / "out", debounce_seconds=5)
    watcher.build()

    # Long after the last rebuild, a burst of changes still waits for quiet.
    clock[0] = 2000.0
    watcher.notify()
    assert watcher.poll() is None
    clock[0] = 2004.0
    watcher.notify()
    clock[0] = 2006.0
    assert watcher.poll() is None
    clock[0] = 2009.5
    report = watcher.poll()
    assert report is not None
    assert report.skipped == ["a.md"]


def test_ignores(tmp_path):
    watcher = SiteWatcher(tmp_path / "src", tmp_path / "out")
    assert watcher.ignores(tmp_path / "out" / "a" / "index.html")
    assert not watcher.ignores(tmp_path / "src" / "a.md")


def test_start_schedules_source_and_config_dir(monkeypatch, tmp_path):
    source = create_source(tmp_path)
    config_dir = tmp_path / "conf"
    config_dir.mkdir()
    (config_dir / "folio.yaml").write_text("title: x\n", encoding="utf-8")
    scheduled = []

    class DummyObserver:
        def schedule(self, handler, path, recursive):
            scheduled.append((path, recursive))

        def start(self):
            scheduled.append(("started", True))

        def stop(self):
            scheduled.append(("stopped", False))

        def join(self):
            scheduled.append(("joined", False))

    monkeypatch.setattr("folio.watcher.Observer", DummyObserver)
    watcher = SiteWatcher(source, tmp_path / "out", config_path=config_dir / "folio.yaml")
    watcher.start()
    assert scheduled == [
        (str(source), True),
        (str(config_dir.resolve()), False),
        ("started", True),
    ]
    watcher.stop()
    assert scheduled[-2:] == [("stopped", False), ("joined", False)]
    watcher.stop()


def test_start_skips_config_dir_inside_source(monkeypatch, tmp_path):
    source = create_source(tmp_path)
    (source / "folio.yaml").write_text("title: x\n", encoding="utf-8")
    scheduled = []

    class DummyObserver:
        def schedule(self, handler, path, recursive):
            scheduled.append(path)

        def start(self):
            pass

    monkeypatch.setattr("folio.watcher.Observer", DummyObserver)
    SiteWatcher(source, tmp_path / "out", config_path=source / "folio.yaml").start()
    assert scheduled == [str(source)]
