"""
Tests for the convergence watcher.
"""

import threading

import pytest

from quill.adapters.mock import MemoryRegistry
from quill.core.composer.lifecycle import LifecycleEngine
from quill.core.composer.watcher import ConvergenceWatcher
from quill.core.context import ComposerContext

SCRIPTS = {"install.sh": "echo Installing", "uninstall.sh": "echo Uninstalling"}


@pytest.fixture
def installed_a(engine, publish):
    """``a@1.0.0`` installed against ``^1.0.0``."""
    publish("a", "1.0.0", scripts=SCRIPTS)
    engine.install("a@^1.0.0")


class TestEnsureLatest:
    """Tests for one convergence pass."""

    def test_up_to_date(self, engine, installed_a):
        assert ConvergenceWatcher(engine).ensure_latest() == []

    def test_updates_within_range(self, engine, publish, installed_a):
        publish("a", "1.1.0", scripts=SCRIPTS)

        updated = ConvergenceWatcher(engine).ensure_latest()

        assert updated == ["a@1.1.0"]
        assert engine.store.read("a").version == "1.1.0"
        [event] = engine.bus.recent("watch:latest")
        assert event["key"] == "a"
        assert event["data"] == {"from": "1.0.0", "to": "1.1.0", "required": "^1.0.0"}

    def test_ignores_versions_outside_range(self, engine, publish, installed_a):
        publish("a", "2.0.0", scripts=SCRIPTS)
        assert ConvergenceWatcher(engine).ensure_latest() == []
        assert engine.store.read("a").version == "1.0.0"

    def test_second_pass_is_quiet(self, engine, publish, installed_a):
        publish("a", "1.1.0", scripts=SCRIPTS)
        watcher = ConvergenceWatcher(engine)
        watcher.ensure_latest()
        assert watcher.ensure_latest() == []

    def test_only_roots_by_default(self, engine, publish):
        publish("a", "1.0.0", scripts=SCRIPTS)
        publish("web", "1.0.0", dependencies={"a": "^1.0.0"}, scripts=SCRIPTS)
        engine.install("web")
        publish("a", "1.1.0", scripts=SCRIPTS)

        assert ConvergenceWatcher(engine).ensure_latest() == []
        assert engine.store.read("a").version == "1.0.0"

    def test_recursive_includes_dependencies(self, engine, publish):
        publish("a", "1.0.0", scripts=SCRIPTS)
        publish("web", "1.0.0", dependencies={"a": "^1.0.0"}, scripts=SCRIPTS)
        engine.install("web")
        publish("a", "1.1.0", scripts=SCRIPTS)

        assert ConvergenceWatcher(engine, recursive=True).ensure_latest() == ["a@1.1.0"]
        assert engine.store.read("a").version == "1.1.0"

    def test_dry_mode(self, tmp_path, registry, publish):
        ctx = ComposerContext.for_root(tmp_path / "dry", dry=True)
        engine = LifecycleEngine(ctx, registry)
        publish("a", "1.0.0", scripts=SCRIPTS)
        engine.install("a@^1.0.0")
        publish("a", "1.1.0", scripts=SCRIPTS)

        assert ConvergenceWatcher(engine).ensure_latest() == []
        assert engine.store.read("a").version == "1.0.0"

    def test_errors_reported_not_raised(self, ctx, installed_a):
        """A system the registry no longer knows is reported and skipped."""
        engine = LifecycleEngine(ctx, MemoryRegistry())

        assert ConvergenceWatcher(engine).ensure_latest() == []
        [event] = engine.bus.recent("watch:error")
        assert event["key"] == "a"
        assert "unknown system" in event["data"]["error"]


class TestWatchLoop:
    """Tests for the polling thread."""

    def test_default_interval_from_context(self, engine):
        assert ConvergenceWatcher(engine).interval == engine.context.watch_interval

    def test_background_loop(self, engine, publish, installed_a):
        publish("a", "1.1.0", scripts=SCRIPTS)
        done = threading.Event()
        engine.bus.subscribe("watch:latest", lambda e: done.set())

        watcher = ConvergenceWatcher(engine, interval=0.05)
        watcher.start()
        try:
            assert watcher.running
            assert done.wait(10)
        finally:
            watcher.stop(timeout=10)

        assert not watcher.running
        assert engine.store.read("a").version == "1.1.0"
