"""
ConvergenceWatcher — keep installed systems on their newest versions.

Each pass lists installed systems, builds their dependency trees to find
the roots (systems nothing else installed depends on), and re-resolves
each root against the range it was installed with. When a newer version
satisfies that range, the system is reinstalled through the
LifecycleEngine. With ``recursive`` the same check runs for non-root
installs too.

A failed check is logged and published as ``watch:error``; the loop
keeps going.
"""

from __future__ import annotations

import logging
import threading

from quill.core.composer.dependencies import dependencies_of
from quill.core.composer.lifecycle import LifecycleEngine
from quill.core.errors import ComposerError
from quill.core.models.action import LifecycleAction
from quill.core.models.system import DependencyNode

logger = logging.getLogger(__name__)


class ConvergenceWatcher:
    """Polling loop that converges installs onto their latest versions."""

    def __init__(
        self,
        engine: LifecycleEngine,
        *,
        interval: float | None = None,
        action: LifecycleAction = LifecycleAction.INSTALL,
        recursive: bool = False,
    ) -> None:
        self.engine = engine
        self.interval = interval if interval is not None else engine.context.watch_interval
        self.action = action
        self.recursive = recursive
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def ensure_latest(self) -> list[str]:
        """One convergence pass. Returns the ``name@version`` tags updated."""
        ctx = self.engine.context
        if ctx.dry:
            logger.info("Dry mode: skipping convergence pass")
            return []

        builder = self.engine.builder
        builder.forget()
        installed = {n: r for n, r in self.engine.store.list().items() if r.installed}

        trees: dict[str, DependencyNode] = {}
        for name, record in installed.items():
            try:
                trees.update(builder.dependencies({name: record.version}, ctx.os_name))
            except ComposerError as e:
                self._report(name, e)

        roots = [n for n in trees if not dependencies_of(n, trees)]
        candidates = roots
        if self.recursive:
            candidates = roots + [n for n in installed if n not in roots]
        logger.debug("Convergence candidates: %s", ", ".join(candidates) or "-")

        updated: list[str] = []
        for name in candidates:
            # An earlier reinstall in this pass may have replaced it
            record = self.engine.store.read(name)
            if not record.installed:
                continue
            try:
                latest = builder.resolve(name, record.required, ctx.os_name)
                if not self.engine.store.ensure_latest(record, latest):
                    continue
                logger.info("%s: %s → %s", name, record.version, latest.version)
                self.engine.converge(name, record.required, self.action)
            except ComposerError as e:
                self._report(name, e)
                continue
            updated.append(latest.tag)
            self.engine.bus.publish("watch:latest", key=name, data={
                "from": record.version,
                "to": latest.version,
                "required": record.required,
            })
        return updated

    def _report(self, name: str, error: ComposerError) -> None:
        logger.error("Convergence failed for %s: %s", name, error)
        self.engine.bus.publish("watch:error", key=name, data={"error": str(error)})

    # ── Loop ────────────────────────────────────────────────────

    def start(self) -> threading.Thread:
        """Start polling on a daemon thread; the first pass runs at once."""
        if self.running:
            return self._thread
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, daemon=True, name="quill-watcher")
        self._thread.start()
        logger.info("Convergence watcher started (poll every %.0fs)", self.interval)
        return self._thread

    def stop(self, timeout: float | None = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def run_forever(self) -> None:
        """Poll on the calling thread until ``stop()`` is called."""
        self._stop.clear()
        self._loop()

    def _loop(self) -> None:
        while not self._stop.is_set():
            try:
                self.ensure_latest()
            except Exception as e:
                logger.exception("Convergence pass failed")
                self.engine.bus.publish("watch:error", data={"error": str(e)})
            self._stop.wait(self.interval)
