"""
System models — descriptors as published, and records as resolved.

A *System* is what a ``system.json`` (or one entry of a registry
record's ``versions`` map) declares. A *ResolvedSystem* is a System
pinned to one concrete version during a traversal; it is frozen and
never mutated afterwards. Pruning scripts or attaching paths makes a
new record via ``model_copy(update=...)``.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class System(BaseModel):
    """A system descriptor for one version."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    name: str = ""
    version: str = ""
    description: str = ""

    dependencies: dict[str, str] = Field(default_factory=dict)
    runlist: list[str] | None = None
    remote_dependencies: dict[str, str] = Field(
        default_factory=dict, alias="remoteDependencies",
    )
    scripts: list[str] = Field(default_factory=list)
    files: list[str] = Field(default_factory=list)
    templates: list[str] = Field(default_factory=list)
    os: dict[str, dict[str, Any]] = Field(default_factory=dict)
    config: dict[str, Any] = Field(default_factory=dict)

    @property
    def tag(self) -> str:
        return f"{self.name}@{self.version}"

    def os_override(self, os_name: str | None) -> dict[str, Any] | None:
        """The override block for ``os_name``, if the system declares one."""
        if not os_name:
            return None
        block = self.os.get(os_name)
        return block if isinstance(block, dict) else None

    def os_dependencies(self, os_name: str | None) -> dict[str, str]:
        """Dependencies contributed by the OS override.

        A block without ``dependencies`` or ``runlist`` keys is itself a
        name→range mapping.
        """
        block = self.os_override(os_name)
        if block is None:
            return {}
        if "dependencies" not in block and "runlist" not in block:
            return {k: str(v) for k, v in block.items()}
        return {k: str(v) for k, v in (block.get("dependencies") or {}).items()}

    def os_runlist(self, os_name: str | None) -> list[str]:
        """Names the OS override wants run, in order."""
        block = self.os_override(os_name)
        if block is None:
            return []
        if "runlist" in block:
            return list(block.get("runlist") or [])
        return list(self.os_dependencies(os_name))

    def effective_runlist(self) -> list[str]:
        """Declared runlist, or dependency-key order when none is declared."""
        if self.runlist is not None:
            return list(self.runlist)
        return list(self.dependencies)


class RegistryRecord(BaseModel):
    """What the registry returns for a system name."""

    name: str
    version: str = ""
    description: str = ""
    versions: dict[str, System] = Field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> RegistryRecord:
        """Build a record, filling ``name``/``version`` into each descriptor."""
        name = payload.get("name", "")
        versions: dict[str, System] = {}
        for version, descriptor in (payload.get("versions") or {}).items():
            data = dict(descriptor or {})
            data.setdefault("name", name)
            data.setdefault("version", version)
            versions[version] = System.model_validate(data)
        return cls(
            name=name,
            version=payload.get("version", ""),
            description=payload.get("description", ""),
            versions=versions,
        )


class ResolvedSystem(BaseModel):
    """A System pinned to a concrete version within one runlist."""

    model_config = ConfigDict(frozen=True)

    name: str
    version: str
    required: str = "*"
    system: System

    @property
    def tag(self) -> str:
        return f"{self.name}@{self.version}"

    @property
    def scripts(self) -> list[str]:
        return list(self.system.scripts)

    def with_scripts(self, scripts: list[str]) -> ResolvedSystem:
        return self.model_copy(
            update={"system": self.system.model_copy(update={"scripts": list(scripts)})},
        )


class DependencyNode(BaseModel):
    """One node in a dependency tree."""

    name: str
    version: str
    required: str = "*"
    runlist: list[str] = Field(default_factory=list)
    dependencies: dict[str, DependencyNode] = Field(default_factory=dict)
    remote_dependencies: dict[str, DependencyNode] = Field(default_factory=dict)

    @property
    def tag(self) -> str:
        return f"{self.name}@{self.version}"


def split_name(spec: str) -> tuple[str, str | None]:
    """Split ``name@range`` into ``(name, range)``; range may be None."""
    name, sep, rng = spec.partition("@")
    return name, (rng if sep and rng else None)


def system_names(names: str | list[str] | dict[str, str]) -> list[tuple[str, str | None]]:
    """Normalize the accepted shapes of "which systems" into pairs."""
    if isinstance(names, str):
        return [split_name(names)]
    if isinstance(names, dict):
        return [(name, rng) for name, rng in names.items()]
    return [split_name(n) for n in names]
