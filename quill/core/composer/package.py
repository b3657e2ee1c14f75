"""
Packaging and publishing a system directory.
"""

from __future__ import annotations

import logging
from pathlib import Path

from quill.adapters.base import Registry
from quill.core.composer import tar
from quill.core.composer.files import list_files, read_system
from quill.core.errors import InvalidSystem, NotFound
from quill.core.events import EventBus
from quill.core.models.system import System

logger = logging.getLogger(__name__)


def package(
    directory: Path,
    tarball: Path | None = None,
    *,
    bus: EventBus | None = None,
) -> tuple[System, Path]:
    """Pack the system at ``directory`` into ``tarball``.

    The tarball defaults to ``./<name>.tgz``. Publishes ``pack:read``,
    ``pack:list`` and ``pack:pack`` as it goes.

    Raises:
        InvalidSystem: ``system.json`` is missing, malformed, or lacks
            a name or version.
    """
    bus = bus or EventBus()

    bus.publish("pack:read", key=directory.name, data={"dir": str(directory)})
    system = read_system(directory)
    if not system.name or not system.version:
        raise InvalidSystem("system.json needs both name and version", system=system.name or directory.name)

    files = list_files(directory)
    bus.publish("pack:list", key=system.name, data={"version": system.version, "files": files})

    tarball = tarball or Path.cwd() / f"{system.name}.tgz"
    bus.publish("pack:pack", key=system.name, data={"tarball": str(tarball)})
    tar.pack(tarball, directory, files)
    logger.info("Packed %s into %s (%d files)", system.tag, tarball, len(files))
    return system, tarball


def publish(
    directory: Path,
    registry: Registry,
    *,
    tarball: Path | None = None,
    bus: EventBus | None = None,
) -> System:
    """Package ``directory`` and upload it to ``registry``.

    Unknown systems are created; known ones get a new version.
    """
    system, tarball = package(directory, tarball, bus=bus)

    try:
        registry.get_system(system.name)
    except NotFound:
        logger.info("Creating %s in %s registry", system.name, registry.name)
        registry.create(system)
    else:
        registry.add_version(system)

    registry.upload(system.name, system.version, tarball)
    logger.info("Published %s", system.tag)
    return system
