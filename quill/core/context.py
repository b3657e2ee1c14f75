"""
Composer context — the paths and settings every component shares.

Built once by whichever entry point launches quill (CLI, tests,
the watcher) and passed explicitly to each component constructor:
Cache, InstallStore, DependencyGraphBuilder, LifecycleEngine.
Nothing reads ambient global state.
"""

from __future__ import annotations

import logging
import platform
from dataclasses import dataclass, field, replace
from pathlib import Path

from quill.core.config.loader import Modes, QuillConfig

logger = logging.getLogger(__name__)


def detect_os() -> str | None:
    """Best-effort OS identifier (``ubuntu``, ``debian``, ``darwin``...)."""
    os_release = Path("/etc/os-release")
    if os_release.is_file():
        try:
            for line in os_release.read_text(encoding="utf-8").splitlines():
                if line.startswith("ID="):
                    return line.split("=", 1)[1].strip().strip('"') or None
        except OSError as e:
            logger.debug("Cannot read %s: %s", os_release, e)
    system = platform.system().lower()
    return system or None


@dataclass(frozen=True)
class ComposerContext:
    """Paths plus behaviour switches for one composer process."""

    cache_dir: Path
    install_dir: Path
    tmp_dir: Path
    os_name: str | None = None
    strict: bool = False
    no_templates: bool = False
    dry: bool = False
    concurrency: int = 4
    watch_interval: float = 300.0
    modes: Modes = field(default_factory=Modes)

    @classmethod
    def from_config(cls, config: QuillConfig, *, os_name: str | None = None) -> ComposerContext:
        root = Path(config.root).expanduser()
        dirs = config.directories
        return cls(
            cache_dir=Path(dirs.cache).expanduser() if dirs.cache else root / "cache",
            install_dir=Path(dirs.install).expanduser() if dirs.install else root / "installed",
            tmp_dir=Path(dirs.tmp).expanduser() if dirs.tmp else root / "tmp",
            os_name=os_name or config.os or detect_os(),
            strict=config.strict,
            no_templates=config.no_templates,
            dry=config.dry,
            concurrency=config.concurrency,
            watch_interval=config.watch.interval,
            modes=config.modes,
        )

    @classmethod
    def for_root(cls, root: Path, **kwargs) -> ComposerContext:
        """Context with every directory under one root (tests, sandboxes)."""
        return cls(
            cache_dir=root / "cache",
            install_dir=root / "installed",
            tmp_dir=root / "tmp",
            **kwargs,
        )

    def with_os(self, os_name: str | None) -> ComposerContext:
        return replace(self, os_name=os_name)

    def ensure_dirs(self) -> None:
        for d in (self.cache_dir, self.install_dir, self.tmp_dir):
            d.mkdir(parents=True, exist_ok=True)
