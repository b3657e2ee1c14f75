"""
InstallStore — the active install directory and its history ledgers.

Layout::

    <installRoot>/<name>/<version>/...      copied from the cache
    <installRoot>/<name>/history.json       survives uninstall

Exactly one version directory may exist per name. Finding more is
reported as ``AmbiguousInstall``, never guessed around.
"""

from __future__ import annotations

import logging
import shutil
import tempfile
from pathlib import Path

from quill.core.composer.cache import Cache
from quill.core.composer.files import read_system
from quill.core.composer.versions import is_newer
from quill.core.context import ComposerContext
from quill.core.errors import AmbiguousInstall, CacheIOError, VersionConflict
from quill.core.events import EventBus
from quill.core.models.history import History, HistoryAction, HistoryPhase
from quill.core.models.installed import InstallRecord
from quill.core.models.system import ResolvedSystem
from quill.core.persistence.history_file import history_path, load_history, save_history

logger = logging.getLogger(__name__)


class InstallStore:
    """Installed systems under ``context.install_dir``."""

    def __init__(self, context: ComposerContext, cache: Cache, bus: EventBus | None = None) -> None:
        self._ctx = context
        self._cache = cache
        self._bus = bus or EventBus()

    @property
    def root(self) -> Path:
        return self._ctx.install_dir

    def system_root(self, name: str) -> Path:
        return self.root / name

    def system_dir(self, name: str, version: str) -> Path:
        return self.root / name / version

    # ── Reading ─────────────────────────────────────────────────

    def _version_dirs(self, name: str) -> list[Path]:
        root = self.system_root(name)
        if not root.is_dir():
            return []
        return sorted(d for d in root.iterdir() if d.is_dir() and not d.name.startswith("."))

    def read(self, name: str) -> InstallRecord:
        """Installed system (or None) plus history for ``name``.

        Raises:
            AmbiguousInstall: More than one version directory exists.
        """
        history = load_history(history_path(self.system_root(name)), system=name)
        dirs = self._version_dirs(name)
        if len(dirs) > 1:
            versions = ", ".join(d.name for d in dirs)
            raise AmbiguousInstall(f"multiple installed versions: {versions}", system=name)
        if not dirs:
            return InstallRecord(name=name, history=history)

        directory = dirs[0]
        system = read_system(directory)
        updates = {}
        if not system.name:
            updates["name"] = name
        if not system.version:
            updates["version"] = directory.name
        if updates:
            system = system.model_copy(update=updates)
        return InstallRecord(name=name, system=system, path=str(directory), history=history)

    def list(self) -> dict[str, InstallRecord]:
        """Every name with an install directory, installed or not."""
        if not self.root.is_dir():
            return {}
        return {
            d.name: self.read(d.name)
            for d in sorted(self.root.iterdir())
            if d.is_dir() and not d.name.startswith(".")
        }

    def save_history(self, name: str, history: History) -> None:
        save_history(history, history_path(self.system_root(name)))
        self._bus.publish("history:update", key=name, data={"entries": len(history.entries)})

    # ── Mutation ────────────────────────────────────────────────

    def add(self, systems: list[ResolvedSystem], *, force: bool = False) -> list[InstallRecord]:
        """Copy cached systems into the install directory.

        Per system:
          - same version installed: nothing to do (re-copied with ``force``);
          - newer version installed: nothing to do, the newer one is kept;
          - older version installed: ``VersionConflict`` unless ``force``,
            in which case the old version directory is replaced.

        Raises:
            VersionConflict: An older version is installed.
            CacheIOError: The system is not cached or cannot be copied.
        """
        results: list[InstallRecord] = []
        for member in systems:
            record = self.read(member.name)

            if record.installed:
                if record.version == member.version and not force:
                    logger.debug("%s already installed", member.tag)
                    results.append(record)
                    continue
                if record.version != member.version and is_newer(record.version, member.version):
                    logger.info(
                        "%s: %s is installed, newer than %s; nothing to do",
                        member.name, record.version, member.version,
                    )
                    results.append(record)
                    continue
                if record.version != member.version and not force:
                    raise VersionConflict(
                        f"version {record.version} is installed; "
                        f"use --force to replace it with {member.version}",
                        system=member.name,
                    )
                self._remove_dirs(member.name)

            results.append(self._copy(member, record.history))
        return results

    def _copy(self, member: ResolvedSystem, history: History) -> InstallRecord:
        entry = self._cache.entry(member.name, member.version)
        if not entry.cached.is_dir():
            raise CacheIOError("not in cache", system=member.tag)

        dest = self.system_dir(member.name, member.version)
        staging = None
        try:
            dest.parent.mkdir(parents=True, exist_ok=True)
            staging = Path(tempfile.mkdtemp(dir=dest.parent, prefix=".copy-"))
            target = staging / member.version
            shutil.copytree(entry.cached, target, symlinks=True)
            target.rename(dest)
            staging.rmdir()
        except OSError as e:
            if staging is not None:
                shutil.rmtree(staging, ignore_errors=True)
            raise CacheIOError("cannot copy into install directory", system=member.tag, cause=e) from e

        history.append(member.version, HistoryAction.COPY, HistoryPhase.END, required=member.required)
        self.save_history(member.name, history)
        self._bus.publish("installed:copy", key=member.name, data={
            "version": member.version,
            "path": str(dest),
        })
        return InstallRecord(name=member.name, system=member.system, path=str(dest), history=history)

    def _remove_dirs(self, name: str) -> list[str]:
        removed = []
        for directory in self._version_dirs(name):
            shutil.rmtree(directory)
            removed.append(directory.name)
        return removed

    def remove(self, names: list[str]) -> list[str]:
        """Delete installed version directories; history is kept.

        An ``uninstall`` marker is appended so earlier entries stop
        counting as executed. Returns the removed ``name@version`` tags.
        """
        removed: list[str] = []
        for name in names:
            history = load_history(history_path(self.system_root(name)), system=name)
            versions = self._remove_dirs(name)
            for version in versions:
                history.append(version, HistoryAction.UNINSTALL, HistoryPhase.END)
                removed.append(f"{name}@{version}")
                self._bus.publish("installed:remove", key=name, data={"version": version})
            if versions:
                self.save_history(name, history)
        return removed

    def ensure_latest(self, installed: InstallRecord, target: ResolvedSystem) -> bool:
        """Whether ``installed`` must be replaced to converge on ``target``."""
        if not installed.installed:
            return True
        return is_newer(target.version, installed.version)
