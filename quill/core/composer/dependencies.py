"""
DependencyGraphBuilder — dependency trees and install-order runlists.

Given root systems (``name`` or ``name@range``), the builder fetches each
system's metadata from the registry, pins a version, validates the
descriptor and recurses into its dependencies, merged with the OS
override for the target OS.

Runlist construction
────────────────────
Every resolution is pushed to the *front* of one shared list after
removing any earlier entry for the same name, so the last resolution of
a name wins and dependencies always end up ahead of their dependents.
Children are expanded in reverse run order for the same reason::

    root (runlist [c, b, a]),  c → b

    [root]
    [a, root]
    [b, a, root]
    [c, b, a, root]
    [b, c, a, root]     ← c's dependency b moves ahead of c
"""

from __future__ import annotations

import logging

from quill.adapters.base import Registry
from quill.core.composer.validate import validate_system
from quill.core.composer.versions import max_satisfying
from quill.core.context import ComposerContext
from quill.core.errors import InvalidSystem
from quill.core.models.action import (
    LifecycleAction,
    is_recursive,
    prerequisites,
    script_action,
    script_rank,
)
from quill.core.models.installed import InstallRecord
from quill.core.models.system import (
    DependencyNode,
    RegistryRecord,
    ResolvedSystem,
    System,
    system_names,
)

logger = logging.getLogger(__name__)

Names = str | list[str] | dict[str, str]


class DependencyGraphBuilder:
    """Resolves systems into trees and runlists."""

    def __init__(self, context: ComposerContext, registry: Registry) -> None:
        self._ctx = context
        self._registry = registry
        self._records: dict[str, RegistryRecord] = {}

    # ── Resolution ──────────────────────────────────────────────

    def fetch(self, name: str) -> RegistryRecord:
        """Registry record for ``name``, fetched once per builder."""
        if name not in self._records:
            logger.debug("Fetching metadata for %s", name)
            self._records[name] = self._registry.get_system(name)
        return self._records[name]

    def forget(self) -> None:
        """Drop fetched metadata so the next resolution sees new versions."""
        self._records.clear()

    def resolve(self, name: str, rng: str | None, os_name: str | None = None) -> ResolvedSystem:
        """Pin ``name`` to the highest version satisfying ``rng``.

        Without a range the registry's current version tag is used.
        """
        record = self.fetch(name)
        target = rng or record.version or "*"
        version = max_satisfying(record.versions, target, system=name)
        system = record.versions[version]
        validate_system(system, os_name, strict=self._ctx.strict)
        return ResolvedSystem(name=name, version=version, required=rng or "*", system=system)

    def children(self, system: System, os_name: str | None) -> list[tuple[str, str]]:
        """``(name, range)`` of the systems to run before ``system``, in order.

        OS override entries come first, then the declared runlist (or
        dependency-key order when none is declared).
        """
        os_deps = system.os_dependencies(os_name)
        ranges = {**system.dependencies, **os_deps}
        names = system.os_runlist(os_name)
        names += [
            n for n in system.effective_runlist()
            if n in system.dependencies and n not in names
        ]

        out: list[tuple[str, str]] = []
        for name in names:
            if name not in ranges:
                logger.warning("%s: no version range for %s, skipping", system.tag, name)
                continue
            out.append((name, ranges[name]))
        return out

    # ── Trees ───────────────────────────────────────────────────

    def dependencies(self, names: Names, os_name: str | None = None) -> dict[str, DependencyNode]:
        """Nested dependency tree keyed by root name.

        Raises:
            NotFound: A name is unknown to the registry.
            NoSatisfyingVersion: A range cannot be pinned.
            InvalidSystem: A cycle, or a strict validation failure.
        """
        return {
            name: self._node(name, rng, os_name, ())
            for name, rng in system_names(names)
        }

    def _node(self, name: str, rng: str | None, os_name: str | None, trail: tuple[str, ...]) -> DependencyNode:
        _check_cycle(name, trail)
        resolved = self.resolve(name, rng, os_name)
        children = self.children(resolved.system, os_name)
        node = DependencyNode(
            name=name,
            version=resolved.version,
            required=resolved.required,
            runlist=[n for n, _ in children],
        )
        for child, child_rng in children:
            node.dependencies[child] = self._node(child, child_rng, os_name, trail + (name,))
        for remote, remote_rng in resolved.system.remote_dependencies.items():
            node.remote_dependencies[remote] = self._node(remote, remote_rng, os_name, trail + (name,))
        return node

    # ── Runlists ────────────────────────────────────────────────

    def runlist(
        self,
        names: Names,
        os_name: str | None = None,
        max_depth: int | None = None,
    ) -> list[ResolvedSystem]:
        """Flattened install order; roots last.

        Expansion stops (silently) below ``max_depth`` levels; roots are
        depth 0.
        """
        result: list[ResolvedSystem] = []
        for name, rng in system_names(names):
            self._expand(name, rng, result, os_name, 0, max_depth, ())
        return result

    def _expand(
        self,
        name: str,
        rng: str | None,
        result: list[ResolvedSystem],
        os_name: str | None,
        depth: int,
        max_depth: int | None,
        trail: tuple[str, ...],
    ) -> None:
        _check_cycle(name, trail)
        resolved = self.resolve(name, rng, os_name)

        result[:] = [r for r in result if r.name != name]
        result.insert(0, resolved)

        if max_depth is not None and depth >= max_depth:
            return

        for child, child_rng in reversed(self.children(resolved.system, os_name)):
            self._expand(child, child_rng, result, os_name, depth + 1, max_depth, trail + (name,))


def _check_cycle(name: str, trail: tuple[str, ...]) -> None:
    if name in trail:
        path = " -> ".join(trail + (name,))
        raise InvalidSystem(f"dependency cycle {path}", system=trail[0])


# ── Runlist filters ─────────────────────────────────────────────


def localize_runlist(
    runlist: list[ResolvedSystem],
    installed: dict[str, InstallRecord],
) -> list[ResolvedSystem]:
    """Drop members that already have an installed version."""
    return [
        member for member in runlist
        if member.name not in installed or not installed[member.name].installed
    ]


def filter_runlist(
    action: LifecycleAction,
    runlist: list[ResolvedSystem],
    installed: dict[str, InstallRecord],
    *,
    roots: set[str] | None = None,
    recursive: bool = False,
) -> list[ResolvedSystem]:
    """Members with their scripts pruned to what ``action`` must run.

    - scripts belong to ``action`` or one of its prerequisites;
    - members that are not roots only run recursive actions unless
      ``recursive`` is set;
    - scripts that already ended successfully since the last uninstall
      are dropped;
    - for ``uninstall``, members that are not installed are dropped.

    Scripts are ordered install, configure, then update/start.
    """
    if roots is None:
        roots = {runlist[-1].name} if runlist else set()

    allowed = {action, *prerequisites(action)}
    filtered: list[ResolvedSystem] = []

    for member in runlist:
        record = installed.get(member.name)

        if action == LifecycleAction.UNINSTALL and (record is None or not record.installed):
            logger.debug("%s is not installed, nothing to uninstall", member.name)
            continue

        member_allowed = allowed
        if member.name not in roots and not recursive:
            member_allowed = {a for a in allowed if is_recursive(a)}

        scripts = [s for s in member.scripts if script_action(s) in member_allowed]

        if record is not None and action != LifecycleAction.UNINSTALL:
            done = [s for s in scripts if record.history.executed(s)]
            if done:
                logger.debug("%s: already executed %s", member.tag, ", ".join(done))
            scripts = [s for s in scripts if s not in done]

        filtered.append(member.with_scripts(sorted(scripts, key=script_rank)))

    return filtered


def dependencies_of(name: str, trees: dict[str, DependencyNode]) -> bool:
    """Whether ``name`` is a (transitive) dependency in any other tree."""

    def _contains(node: DependencyNode) -> bool:
        for child in node.dependencies.values():
            if child.name == name or _contains(child):
                return True
        return False

    return any(_contains(tree) for root, tree in trees.items() if root != name)
