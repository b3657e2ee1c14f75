"""
LifecycleEngine — run install / configure / update / start / uninstall.

Flow for one action invocation:

    resolve runlist → cache → (force: uninstall stale) → install copy
        → filter scripts against history → execute members in order

Members execute strictly one after another, dependencies first. Every
script is bracketed by ``start`` / ``end`` history entries, and the
ledger is persisted after each of them, so a failed or interrupted run
resumes where it stopped. The first failing script aborts the action
with ``ScriptFailure``.
"""

from __future__ import annotations

import logging
from pathlib import Path

from quill.adapters.base import Registry
from quill.adapters.shell.command import ScriptRunner
from quill.core.composer.cache import Cache
from quill.core.composer.config import merged_config, to_environment
from quill.core.composer.dependencies import (
    DependencyGraphBuilder,
    Names,
    filter_runlist,
    localize_runlist,
)
from quill.core.composer.installed import InstallStore
from quill.core.composer.template import render_directory
from quill.core.composer.versions import is_newer
from quill.core.context import ComposerContext
from quill.core.errors import ComposerError, ScriptFailure
from quill.core.events import EventBus
from quill.core.models.action import LifecycleAction, parse_action, script_action
from quill.core.models.history import HistoryPhase
from quill.core.models.installed import InstallRecord
from quill.core.models.system import ResolvedSystem, system_names

logger = logging.getLogger(__name__)


class LifecycleEngine:
    """Resolves, installs and scripts systems for one composer context."""

    def __init__(
        self,
        context: ComposerContext,
        registry: Registry,
        *,
        bus: EventBus | None = None,
        runner: ScriptRunner | None = None,
    ) -> None:
        self.context = context
        self.registry = registry
        self.bus = bus or EventBus()
        self.runner = runner or ScriptRunner()
        self.builder = DependencyGraphBuilder(context, registry)
        self.cache = Cache(context, registry, self.bus)
        self.store = InstallStore(context, self.cache, self.bus)

    # ── Actions ─────────────────────────────────────────────────

    def install(self, names: Names, **kwargs) -> list[ResolvedSystem]:
        return self.run(LifecycleAction.INSTALL, names, **kwargs)

    def configure(self, names: Names, **kwargs) -> list[ResolvedSystem]:
        return self.run(LifecycleAction.CONFIGURE, names, **kwargs)

    def update(self, names: Names, **kwargs) -> list[ResolvedSystem]:
        return self.run(LifecycleAction.UPDATE, names, **kwargs)

    def start(self, names: Names, **kwargs) -> list[ResolvedSystem]:
        return self.run(LifecycleAction.START, names, **kwargs)

    def uninstall(self, names: Names, **kwargs) -> list[ResolvedSystem]:
        return self.run(LifecycleAction.UNINSTALL, names, **kwargs)

    def run(
        self,
        action: LifecycleAction | str,
        names: Names,
        *,
        force: bool = False,
        recursive: bool = False,
        config_items: list[str] | tuple[str, ...] = (),
        max_depth: int | None = None,
    ) -> list[ResolvedSystem]:
        """Run ``action`` for ``names`` and their runlist.

        Returns the runlist members with the scripts that were run.

        Raises:
            ComposerError: Resolution, cache or install failures abort
                before any script runs; ``ScriptFailure`` aborts mid-run.
        """
        if isinstance(action, str):
            action = parse_action(action)
        roots = {name for name, _ in system_names(names)}

        runlist = self.builder.runlist(names, self.context.os_name, max_depth)
        logger.info("%s runlist: %s", action.value, ", ".join(m.tag for m in runlist))
        installed = self.store.list()

        if action == LifecycleAction.UNINSTALL:
            return self._uninstall(runlist, installed, roots, recursive, config_items)

        self.cache.add(runlist)

        if force:
            for member in runlist:
                record = installed.get(member.name)
                if record is None or not record.installed:
                    continue
                # A newer installed dependency is kept
                if member.name in roots or is_newer(member.version, record.version):
                    self._run_uninstall_scripts(record, config_items)
                    self.store.remove([member.name])
            to_add = runlist
        elif action == LifecycleAction.INSTALL:
            to_add = localize_runlist(runlist, installed)
        else:
            to_add = runlist

        self.store.add(to_add)

        installed = self.store.list()
        filtered = filter_runlist(action, runlist, installed, roots=roots, recursive=recursive)
        for member in filtered:
            if member.scripts:
                self._execute(action, member, installed[member.name], config_items)
        return filtered

    def converge(
        self,
        name: str,
        rng: str,
        action: LifecycleAction = LifecycleAction.INSTALL,
    ) -> list[ResolvedSystem]:
        """Reinstall ``name`` at the newest version satisfying ``rng``."""
        self.builder.forget()
        return self.run(action, [f"{name}@{rng}"], force=True)

    # ── Uninstall ───────────────────────────────────────────────

    def _uninstall(
        self,
        runlist: list[ResolvedSystem],
        installed: dict[str, InstallRecord],
        roots: set[str],
        recursive: bool,
        config_items,
    ) -> list[ResolvedSystem]:
        # Uninstall what is actually on disk, not what resolves today
        on_disk = [
            _as_resolved(installed[m.name]) if m.name in installed and installed[m.name].installed else m
            for m in runlist
        ]
        filtered = filter_runlist(
            LifecycleAction.UNINSTALL, on_disk, installed, roots=roots, recursive=recursive,
        )
        # Dependents go before their dependencies
        for member in reversed(filtered):
            if member.scripts:
                self._execute(LifecycleAction.UNINSTALL, member, installed[member.name], config_items)

        doomed = [m.name for m in filtered if recursive or m.name in roots]
        self.store.remove(doomed)
        return filtered

    def _run_uninstall_scripts(self, record: InstallRecord, config_items) -> None:
        member = _as_resolved(record)
        scripts = [s for s in member.scripts if script_action(s) == LifecycleAction.UNINSTALL]
        if scripts:
            self._execute(LifecycleAction.UNINSTALL, member.with_scripts(scripts), record, config_items)

    # ── Execution ───────────────────────────────────────────────

    def _execute(
        self,
        action: LifecycleAction,
        member: ResolvedSystem,
        record: InstallRecord,
        config_items,
    ) -> None:
        directory = Path(record.path) if record.path else self.store.system_dir(member.name, member.version)
        version = record.version or member.version
        history = record.history

        config = merged_config(member.system, items=config_items, registry=self.registry)
        env = to_environment(config)
        rendered = False

        for script in member.scripts:
            family = script_action(script)

            if family == LifecycleAction.CONFIGURE and not rendered and not self.context.no_templates:
                try:
                    render_directory(directory / "templates", config)
                except ComposerError as e:
                    e.system = e.system or member.tag
                    e.action = e.action or action.value
                    raise
                rendered = True

            history.append(version, family, HistoryPhase.START, script=script)
            self.store.save_history(member.name, history)
            self.bus.publish("run:start", key=member.name, data={
                "version": version, "action": action.value, "script": script,
            })

            def _on_line(stream: str, line: str, script: str = script) -> None:
                self.bus.publish(f"run:{stream}", key=member.name, data={
                    "script": script, "line": line,
                })

            receipt = self.runner.run(
                member.tag,
                directory / "scripts" / script,
                cwd=directory,
                env=env,
                on_line=_on_line,
            )

            history.append(
                version, family, HistoryPhase.END,
                script=script,
                exit_code=receipt.exit_code,
                error=None if receipt.ok else receipt.error,
            )
            self.store.save_history(member.name, history)
            self.bus.publish("run:end", key=member.name, data={
                "version": version,
                "action": action.value,
                "script": script,
                "status": receipt.status,
                "exit_code": receipt.exit_code,
                "duration_ms": receipt.duration_ms,
            })

            if receipt.failed:
                raise ScriptFailure(
                    receipt.error or f"{script} failed",
                    system=member.tag,
                    action=action.value,
                    exit_code=receipt.exit_code,
                )


def _as_resolved(record: InstallRecord) -> ResolvedSystem:
    return ResolvedSystem(
        name=record.name,
        version=record.version,
        required=record.required,
        system=record.system,
    )
