"""
Local system files — reading ``system.json`` and listing packable files.

A system directory looks like::

    mysystem/
        system.json
        files/...
        scripts/install.sh, configure.sh, ...
        templates/...
        .quillignore            (optional; .gitignore is used otherwise)

``list_files`` always skips VCS metadata and editor/OS junk, then
applies ignore rules. Rules are gitignore-flavoured: globs, a trailing
``/`` matches directories only, ``!`` re-includes, later rules win, and
an ignore file in a subdirectory adds rules scoped to that subdirectory.
"""

from __future__ import annotations

import fnmatch
import json
import logging
from dataclasses import dataclass
from pathlib import Path, PurePosixPath

from quill.core.errors import InvalidSystem
from quill.core.models.system import System

logger = logging.getLogger(__name__)

SYSTEM_FILE = "system.json"
RESOURCE_DIRS = ("files", "scripts", "templates")
IGNORE_FILES = (".quillignore", ".gitignore")

_JUNK_DIRS = frozenset({".git", "CVS", ".svn", ".hg"})
_JUNK_FILES = frozenset({".lock-wscript", ".DS_Store", "npm-debug.log"})
_JUNK_GLOBS = (".*.swp", "._*")


def read_system(directory: Path) -> System:
    """Read ``system.json`` plus the resource listings of ``directory``.

    Raises:
        InvalidSystem: If ``system.json`` is missing or malformed.
    """
    path = directory / SYSTEM_FILE
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as e:
        raise InvalidSystem(f"no {SYSTEM_FILE} in {directory}", cause=e) from e
    except (OSError, ValueError) as e:
        raise InvalidSystem(f"cannot read {path}", cause=e) from e

    if not isinstance(data, dict):
        raise InvalidSystem(f"{path} must contain a JSON object", system=directory.name)

    for key in RESOURCE_DIRS:
        resource_dir = directory / key
        if resource_dir.is_dir():
            data[key] = sorted(p.name for p in resource_dir.iterdir())

    try:
        return System.model_validate(data)
    except ValueError as e:
        raise InvalidSystem(f"invalid {SYSTEM_FILE}", system=data.get("name", ""), cause=e) from e


@dataclass(frozen=True)
class IgnoreRule:
    """One line of an ignore file, scoped to the directory holding it."""

    base: PurePosixPath
    pattern: str
    negate: bool = False
    dir_only: bool = False

    @classmethod
    def parse(cls, line: str, base: PurePosixPath) -> IgnoreRule | None:
        line = line.strip()
        if not line or line.startswith("#"):
            return None
        negate = line.startswith("!")
        if negate:
            line = line[1:]
        dir_only = line.endswith("/")
        line = line.strip("/") if dir_only else line.lstrip("/")
        if not line:
            return None
        return cls(base=base, pattern=line, negate=negate, dir_only=dir_only)

    def matches(self, rel: PurePosixPath, is_dir: bool) -> bool:
        if self.dir_only and not is_dir:
            return False
        try:
            scoped = rel.relative_to(self.base) if self.base.parts else rel
        except ValueError:
            return False
        if "/" in self.pattern:
            return fnmatch.fnmatchcase(scoped.as_posix(), self.pattern)
        return fnmatch.fnmatchcase(scoped.name, self.pattern)


def _is_junk(name: str, is_dir: bool) -> bool:
    if is_dir:
        return name in _JUNK_DIRS
    return name in _JUNK_FILES or any(fnmatch.fnmatchcase(name, g) for g in _JUNK_GLOBS)


def _read_rules(directory: Path, base: PurePosixPath) -> list[IgnoreRule]:
    for filename in IGNORE_FILES:
        path = directory / filename
        if path.is_file():
            lines = path.read_text(encoding="utf-8").splitlines()
            return [r for r in (IgnoreRule.parse(line, base) for line in lines) if r]
    return []


def _ignored(rules: list[IgnoreRule], rel: PurePosixPath) -> bool:
    """Last matching rule wins; a rule matching a parent directory counts."""
    candidates = [(rel, False)] + [(p, True) for p in rel.parents if p.parts]
    ignored = False
    for rule in rules:
        if any(rule.matches(path, is_dir) for path, is_dir in candidates):
            ignored = not rule.negate
    return ignored


def list_files(directory: Path) -> list[str]:
    """Files under ``directory`` that belong in a package, sorted.

    Paths are relative POSIX strings.
    """
    root = directory.resolve()
    found: list[str] = []

    def _walk(current: Path, rel_dir: PurePosixPath, rules: list[IgnoreRule]) -> None:
        rules = rules + _read_rules(current, rel_dir)
        for entry in sorted(current.iterdir(), key=lambda p: p.name):
            is_dir = entry.is_dir() and not entry.is_symlink()
            if _is_junk(entry.name, is_dir):
                continue
            rel = rel_dir / entry.name
            if is_dir:
                _walk(entry, rel, rules)
            elif not _ignored(rules, rel):
                found.append(rel.as_posix())

    _walk(root, PurePosixPath(), [])
    logger.debug("Listed %d files in %s", len(found), root)
    return sorted(found)
