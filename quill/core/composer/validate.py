"""
Descriptor validation.

Extraneous entries (a dependency that is never run, a runlist name with
no declared range) are logged as warnings. With ``strict`` they raise
``InvalidSystem`` instead.
"""

from __future__ import annotations

import logging

from quill.core.errors import InvalidSystem
from quill.core.models.system import System

logger = logging.getLogger(__name__)


def validate_system(system: System, os_name: str | None = None, *, strict: bool = False) -> list[str]:
    """Check ``system`` against itself and its OS override.

    Returns the list of problems found (empty when clean).

    Raises:
        InvalidSystem: When the descriptor has no name, or when
            ``strict`` is set and any problem was found.
    """
    if not system.name:
        raise InvalidSystem("descriptor has no name", system=system.version or "?")

    problems: list[str] = []
    deps = system.dependencies
    os_deps = system.os_dependencies(os_name)
    runlist = system.effective_runlist()

    for name in deps:
        if name not in runlist:
            problems.append(f"extraneous {name} in dependencies")

    if system.runlist is not None:
        for name in system.runlist:
            if name not in deps and name not in os_deps:
                problems.append(f"extraneous {name} in runlist")

    for name in system.os_runlist(os_name):
        if name not in os_deps and name not in deps:
            problems.append(f"extraneous {name} in os.{os_name}.runlist")

    if os_name and system.os and system.os_override(os_name) is None:
        logger.debug("%s: no OS settings for %s", system.tag, os_name)

    for problem in problems:
        if strict:
            raise InvalidSystem(problem, system=system.tag)
        logger.warning("%s: %s", system.tag, problem)

    return problems
