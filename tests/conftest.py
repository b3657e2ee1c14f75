"""
Shared test fixtures — composer context, in-memory registry, fixture systems.
"""

import json
from pathlib import Path

import pytest

from quill.adapters.mock import MemoryRegistry
from quill.core.composer.lifecycle import LifecycleEngine
from quill.core.context import ComposerContext
from quill.core.models.system import System


def write_system(
    root: Path,
    name: str,
    version: str,
    *,
    scripts: dict[str, str] | None = None,
    templates: dict[str, str] | None = None,
    files: dict[str, str] | None = None,
    **descriptor,
) -> Path:
    """Create ``root/<name>-<version>`` with system.json and resources.

    ``scripts`` maps filename → shell body; each becomes an executable
    ``#!/bin/sh`` script.
    """
    directory = root / f"{name}-{version}"
    directory.mkdir(parents=True)
    data = {"name": name, "version": version, **descriptor}
    (directory / "system.json").write_text(json.dumps(data, indent=2))

    for filename, body in (scripts or {}).items():
        path = directory / "scripts" / filename
        path.parent.mkdir(exist_ok=True)
        path.write_text(f"#!/bin/sh\n{body}\n")
        path.chmod(0o755)
    for filename, body in (templates or {}).items():
        path = directory / "templates" / filename
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(body)
    for filename, body in (files or {}).items():
        path = directory / "files" / filename
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(body)
    return directory


@pytest.fixture
def ctx(tmp_path: Path) -> ComposerContext:
    """Context with cache/install/tmp under one temporary root."""
    return ComposerContext.for_root(tmp_path / "quill")


@pytest.fixture
def registry() -> MemoryRegistry:
    return MemoryRegistry()


@pytest.fixture
def systems_dir(tmp_path: Path) -> Path:
    path = tmp_path / "systems"
    path.mkdir()
    return path


@pytest.fixture
def publish(registry: MemoryRegistry, systems_dir: Path):
    """Create a system directory, pack it, and register it.

    Usage: ``publish("a", "0.0.1", scripts={"install.sh": "echo hi"})``
    """

    def _publish(name: str, version: str, **kwargs) -> System:
        directory = write_system(systems_dir, name, version, **kwargs)
        return registry.add_directory(directory)

    return _publish


@pytest.fixture
def describe(registry: MemoryRegistry):
    """Register a descriptor only (no tarball); enough for resolution."""

    def _describe(name: str, version: str, **descriptor) -> System:
        system = System.model_validate({"name": name, "version": version, **descriptor})
        registry.add_system(system)
        return system

    return _describe


@pytest.fixture
def engine(ctx: ComposerContext, registry: MemoryRegistry) -> LifecycleEngine:
    return LifecycleEngine(ctx, registry)


@pytest.fixture
def output(engine: LifecycleEngine) -> list[str]:
    """Lines written to stdout by lifecycle scripts, in order."""
    lines: list[str] = []
    engine.bus.subscribe("run:stdout", lambda e: lines.append(e["data"]["line"]))
    return lines


@pytest.fixture
def make_system():
    """The ``write_system`` helper, for tests that build directories by hand."""
    return write_system
