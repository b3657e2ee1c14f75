"""
Cache — downloaded tarballs and their unpacked contents.

Layout::

    <cacheRoot>/<name>/<version>/system.tgz
    <cacheRoot>/<name>/<version>/system/...

A version directory is assembled in a hidden staging directory next to
it and renamed into place only once download and unpack both succeeded,
so an interrupted ``add`` never leaves a half-populated version behind.
Downloads run concurrently through a BatchRunner; one failure aborts the
whole batch and discards every staging directory.
"""

from __future__ import annotations

import logging
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path

from quill.adapters.base import Registry
from quill.core.composer import tar
from quill.core.composer.versions import parse_version, sort_versions
from quill.core.context import ComposerContext
from quill.core.engine.batch import BatchRunner
from quill.core.errors import CacheIOError, ComposerError
from quill.core.events import EventBus
from quill.core.models.system import ResolvedSystem, split_name

logger = logging.getLogger(__name__)

TARBALL = "system.tgz"
UNPACKED = "system"


@dataclass(frozen=True)
class CacheEntry:
    """One cached ``name@version``."""

    name: str
    version: str
    root: Path

    @property
    def tarball(self) -> Path:
        return self.root / TARBALL

    @property
    def cached(self) -> Path:
        return self.root / UNPACKED

    @property
    def tag(self) -> str:
        return f"{self.name}@{self.version}"


class Cache:
    """Local store of system tarballs, keyed by ``(name, version)``."""

    def __init__(self, context: ComposerContext, registry: Registry, bus: EventBus | None = None) -> None:
        self._ctx = context
        self._registry = registry
        self._bus = bus or EventBus()

    @property
    def root(self) -> Path:
        return self._ctx.cache_dir

    def entry(self, name: str, version: str) -> CacheEntry:
        return CacheEntry(name, version, self.root / name / version)

    def has(self, name: str, version: str) -> bool:
        entry = self.entry(name, version)
        return entry.tarball.is_file() and entry.cached.is_dir()

    # ── Inventory ───────────────────────────────────────────────

    def list(self) -> dict[str, list[str]]:
        """Cached versions per name. A missing cache root is empty."""
        inventory: dict[str, list[str]] = {}
        if not self.root.is_dir():
            return inventory
        for name_dir in sorted(self.root.iterdir()):
            if not name_dir.is_dir() or name_dir.name.startswith("."):
                continue
            versions = [
                d.name for d in name_dir.iterdir()
                if d.is_dir() and not d.name.startswith(".")
            ]
            valid = sort_versions(versions)
            inventory[name_dir.name] = valid + sorted(v for v in versions if parse_version(v) is None)
        return inventory

    def clean(self, names: list[str] | None = None) -> list[str]:
        """Remove cached entries matching ``name`` or ``name@version``.

        With no names the whole cache is removed. Returns removed tags.
        """
        removed: list[str] = []
        inventory = self.list()
        targets = [split_name(n) for n in names] if names else [(n, None) for n in inventory]

        for name, version in targets:
            versions = inventory.get(name, [])
            if version is not None:
                versions = [v for v in versions if v == version]
            for v in versions:
                shutil.rmtree(self.root / name / v)
                removed.append(f"{name}@{v}")
            name_dir = self.root / name
            if name_dir.is_dir() and not any(name_dir.iterdir()):
                name_dir.rmdir()

        if removed:
            logger.info("Cleaned %d cache entries", len(removed))
        return removed

    # ── Population ──────────────────────────────────────────────

    def add(self, systems: list[ResolvedSystem], *, force: bool = False) -> list[CacheEntry]:
        """Ensure every system is cached; download what is missing.

        With ``force`` every system is re-downloaded.

        Raises:
            NotFound / RegistryError: The registry could not serve a tarball.
            UnpackError: A tarball is corrupt or unsafe.
            CacheIOError: Any filesystem failure.
        """
        entries: dict[str, CacheEntry] = {}
        missing: list[ResolvedSystem] = []
        for member in systems:
            if member.tag in entries or any(m.tag == member.tag for m in missing):
                continue
            if not force and self.has(member.name, member.version):
                entries[member.tag] = self.entry(member.name, member.version)
                self._bus.publish("cache:hit", key=member.name, data={"version": member.version})
            else:
                missing.append(member)

        if missing:
            staged = self._stage_all(missing)
            for member in missing:
                entries[member.tag] = self._commit(member, staged[member.tag])

        return [entries[m.tag] for m in systems]

    def _stage_all(self, members: list[ResolvedSystem]) -> dict[str, Path]:
        runner = BatchRunner(max_workers=max(1, self._ctx.concurrency))
        for member in members:
            runner.add(member.tag, self._stage, member)
        report = runner.run()

        staged = {key: result.value for key, result in report.results.items() if result.ok}
        if not report.all_ok:
            for path in staged.values():
                shutil.rmtree(path, ignore_errors=True)
            for key, error in report.errors.items():
                logger.error("Cannot cache %s: %s", key, error)
            report.raise_first([m.tag for m in members])
        return staged

    def _stage(self, member: ResolvedSystem) -> Path:
        """Download and unpack into a staging directory; return it."""
        name_dir = self.root / member.name
        try:
            name_dir.mkdir(parents=True, exist_ok=True)
            staging = Path(tempfile.mkdtemp(dir=name_dir, prefix=f".{member.version}-"))
        except OSError as e:
            raise CacheIOError("cannot create staging directory", system=member.tag, cause=e) from e

        try:
            tarball = self._registry.download(member.name, member.version, staging / TARBALL)
            self._bus.publish("cache:download", key=member.name, data={"version": member.version})

            scratch = staging / ".unpack"
            unpacked = tar.unpack(tarball, scratch, self._ctx.modes)
            unpacked.rename(staging / UNPACKED)
            shutil.rmtree(scratch, ignore_errors=True)
            self._bus.publish("cache:unpack", key=member.name, data={"version": member.version})
        except ComposerError as e:
            shutil.rmtree(staging, ignore_errors=True)
            if not e.system:
                e.system = member.tag
            raise
        except OSError as e:
            shutil.rmtree(staging, ignore_errors=True)
            raise CacheIOError("cannot populate cache", system=member.tag, cause=e) from e
        return staging

    def _commit(self, member: ResolvedSystem, staging: Path) -> CacheEntry:
        entry = self.entry(member.name, member.version)
        try:
            if entry.root.exists():
                shutil.rmtree(entry.root)
            staging.rename(entry.root)
        except OSError as e:
            shutil.rmtree(staging, ignore_errors=True)
            raise CacheIOError("cannot move staged system into cache", system=member.tag, cause=e) from e

        logger.debug("Cached %s at %s", member.tag, entry.root)
        self._bus.publish("cache:add", key=member.name, data={
            "version": member.version,
            "path": str(entry.root),
        })
        return entry
