"""
Tests for the install store — active versions and their ledgers.
"""

import pytest

from quill.core.composer.cache import Cache
from quill.core.composer.installed import InstallStore
from quill.core.errors import AmbiguousInstall, CacheIOError, VersionConflict
from quill.core.events import EventBus
from quill.core.models import HistoryAction, ResolvedSystem


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


@pytest.fixture
def cache(ctx, registry, bus) -> Cache:
    return Cache(ctx, registry, bus)


@pytest.fixture
def store(ctx, cache, bus) -> InstallStore:
    return InstallStore(ctx, cache, bus)


@pytest.fixture
def cached(registry, publish, cache):
    """Publish and cache ``name@version``; return the resolved member."""

    def _cached(name: str, version: str, required: str = "*") -> ResolvedSystem:
        publish(name, version, scripts={"install.sh": f"echo {name}"})
        system = registry.get_system(name).versions[version]
        member = ResolvedSystem(name=name, version=version, required=required, system=system)
        cache.add([member])
        return member

    return _cached


class TestInstallStoreAdd:
    """Tests for copying cached systems into place."""

    def test_copies_from_cache(self, store, cached, ctx):
        member = cached("a", "0.0.1", required="^0.0.1")
        [record] = store.add([member])

        path = ctx.install_dir / "a" / "0.0.1"
        assert record.path == str(path)
        assert (path / "scripts" / "install.sh").is_file()
        assert record.required == "^0.0.1"
        assert (ctx.install_dir / "a" / "history.json").is_file()

    def test_read_back(self, store, cached):
        store.add([cached("a", "0.0.1")])
        record = store.read("a")
        assert record.installed
        assert record.version == "0.0.1"
        assert record.system.scripts == ["install.sh"]
        assert [e.action for e in record.history.entries] == [HistoryAction.COPY]

    def test_same_version_is_noop(self, store, cached):
        member = cached("a", "0.0.1")
        store.add([member])
        store.add([member])
        assert len(store.read("a").history.entries) == 1

    def test_force_recopies_same_version(self, store, cached, ctx):
        member = cached("a", "0.0.1")
        store.add([member])
        (ctx.install_dir / "a" / "0.0.1" / "scratch").write_text("local edit")

        store.add([member], force=True)
        assert not (ctx.install_dir / "a" / "0.0.1" / "scratch").exists()
        assert len(store.read("a").history.entries) == 2

    def test_older_installed_conflicts(self, store, cached):
        store.add([cached("a", "1.0.0")])
        newer = cached("a", "1.1.0")
        with pytest.raises(VersionConflict, match="--force"):
            store.add([newer])
        assert store.read("a").version == "1.0.0"

    def test_force_replaces_older(self, store, cached, ctx):
        store.add([cached("a", "1.0.0")])
        store.add([cached("a", "1.1.0")], force=True)
        assert sorted(p.name for p in (ctx.install_dir / "a").iterdir()) == ["1.1.0", "history.json"]
        assert store.read("a").version == "1.1.0"

    def test_newer_installed_is_kept(self, store, cached):
        older = cached("a", "1.0.0")
        store.add([cached("a", "1.1.0")])
        [record] = store.add([older])
        assert record.version == "1.1.0"
        assert store.read("a").version == "1.1.0"

    def test_failed_copy_leaves_no_staging(self, store, cached, ctx, monkeypatch):
        member = cached("a", "0.0.1")

        def broken_copytree(*args, **kwargs):
            raise OSError("disk full")

        monkeypatch.setattr("quill.core.composer.installed.shutil.copytree", broken_copytree)

        with pytest.raises(CacheIOError, match="disk full"):
            store.add([member])
        assert list((ctx.install_dir / "a").iterdir()) == []

    def test_not_cached(self, store, registry, describe):
        system = describe("a", "0.0.1")
        with pytest.raises(CacheIOError, match="not in cache"):
            store.add([ResolvedSystem(name="a", version="0.0.1", system=system)])

    def test_events(self, store, cached, bus):
        store.add([cached("a", "0.0.1")])
        assert [e["key"] for e in bus.recent("installed:copy")] == ["a"]
        assert len(bus.recent("history:update")) == 1


class TestInstallStoreRead:
    """Tests for reading installed state."""

    def test_unknown_name(self, store):
        record = store.read("nope")
        assert not record.installed
        assert record.history.entries == []

    def test_ambiguous_install(self, store, cached, ctx):
        store.add([cached("a", "1.0.0")])
        (ctx.install_dir / "a" / "2.0.0").mkdir()
        with pytest.raises(AmbiguousInstall, match="1.0.0, 2.0.0"):
            store.read("a")

    def test_list(self, store, cached, ctx):
        store.add([cached("a", "0.0.1"), cached("b", "0.2.0")])
        (ctx.install_dir / ".copy-stale").mkdir()
        records = store.list()
        assert sorted(records) == ["a", "b"]
        assert records["b"].version == "0.2.0"

    def test_list_empty(self, store):
        assert store.list() == {}


class TestInstallStoreRemove:
    """Tests for removing installed versions."""

    def test_remove_keeps_history(self, store, cached, ctx):
        store.add([cached("a", "0.0.1")])
        assert store.remove(["a"]) == ["a@0.0.1"]

        assert not (ctx.install_dir / "a" / "0.0.1").exists()
        record = store.read("a")
        assert not record.installed
        assert [e.action for e in record.history.entries] == [HistoryAction.COPY, HistoryAction.UNINSTALL]
        assert record.history.last_uninstall() == 2

    def test_remove_not_installed(self, store):
        assert store.remove(["nope"]) == []

    def test_remove_resolves_ambiguity(self, store, cached, ctx):
        store.add([cached("a", "1.0.0")])
        (ctx.install_dir / "a" / "2.0.0").mkdir()
        assert store.remove(["a"]) == ["a@1.0.0", "a@2.0.0"]
        assert not store.read("a").installed

    def test_remove_event(self, store, cached, bus):
        store.add([cached("a", "0.0.1")])
        store.remove(["a"])
        assert [e["data"]["version"] for e in bus.recent("installed:remove")] == ["0.0.1"]


class TestEnsureLatest:
    """Tests for the convergence check."""

    def test_needs_install_when_missing(self, store, cached):
        member = cached("a", "1.0.0")
        assert store.ensure_latest(store.read("a"), member)

    def test_newer_target(self, store, cached):
        store.add([cached("a", "1.0.0")])
        newer = cached("a", "1.1.0")
        assert store.ensure_latest(store.read("a"), newer)

    def test_same_target(self, store, cached):
        member = cached("a", "1.0.0")
        store.add([member])
        assert not store.ensure_latest(store.read("a"), member)
