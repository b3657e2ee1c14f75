"""
In-memory registry — a Registry test double, also usable offline.

Holds system records, tarball bytes, owners and config sets in plain
dicts. Systems can be added from descriptors or straight from a system
directory on disk, which is packed on the way in.
"""

from __future__ import annotations

import copy
import tempfile
from pathlib import Path
from typing import Any

from quill.adapters.base import Registry
from quill.core.composer.versions import is_newer
from quill.core.errors import NotFound, RegistryError
from quill.core.models.system import RegistryRecord, System


class MemoryRegistry(Registry):
    """Registry backed by dicts. Records every call in ``call_log``."""

    def __init__(self, registry_name: str = "memory") -> None:
        self._name = registry_name
        self._records: dict[str, dict[str, Any]] = {}
        self._tarballs: dict[tuple[str, str], bytes] = {}
        self._owners: dict[str, set[str]] = {}
        self._configs: dict[str, dict[str, Any]] = {}
        self._call_log: list[tuple[str, str]] = []

    @property
    def name(self) -> str:
        return self._name

    @property
    def call_log(self) -> list[tuple[str, str]]:
        """``(method, subject)`` for every call received."""
        return self._call_log

    def calls(self, method: str) -> list[str]:
        return [subject for m, subject in self._call_log if m == method]

    # ── Seeding ─────────────────────────────────────────────────

    def add_system(self, system: System, tarball: Path | bytes | None = None) -> None:
        """Register ``system`` (and optionally its tarball) directly."""
        record = self._records.setdefault(system.name, {
            "name": system.name, "version": system.version, "versions": {},
        })
        record["versions"][system.version] = system.model_dump(mode="json", by_alias=True)
        if not record["version"] or is_newer(system.version, record["version"]):
            record["version"] = system.version
        if tarball is not None:
            data = tarball if isinstance(tarball, bytes) else tarball.read_bytes()
            self._tarballs[(system.name, system.version)] = data

    def add_directory(self, directory: Path) -> System:
        """Pack the system at ``directory`` and register it."""
        from quill.core.composer.package import package

        with tempfile.TemporaryDirectory(prefix="quill-registry-") as tmp:
            system, tarball = package(directory, Path(tmp) / "system.tgz")
            self.add_system(system, tarball)
        return system

    # ── Systems ─────────────────────────────────────────────────

    def get_system(self, name: str) -> RegistryRecord:
        self._call_log.append(("get_system", name))
        if name not in self._records:
            raise NotFound("unknown system", system=name)
        return RegistryRecord.from_payload(copy.deepcopy(self._records[name]))

    def download(self, name: str, version: str, dest: Path) -> Path:
        self._call_log.append(("download", f"{name}@{version}"))
        data = self._tarballs.get((name, version))
        if data is None:
            raise NotFound("no tarball", system=f"{name}@{version}")
        dest.parent.mkdir(parents=True, exist_ok=True)
        dest.write_bytes(data)
        return dest

    def create(self, system: System) -> None:
        self._call_log.append(("create", system.name))
        if system.name in self._records:
            raise RegistryError("system already exists", system=system.name)
        self.add_system(system)

    def add_version(self, system: System) -> None:
        self._call_log.append(("add_version", system.tag))
        if system.name not in self._records:
            raise NotFound("unknown system", system=system.name)
        self.add_system(system)

    def upload(self, name: str, version: str, tarball: Path) -> None:
        self._call_log.append(("upload", f"{name}@{version}"))
        if version not in self._records.get(name, {}).get("versions", {}):
            raise NotFound("unknown version", system=f"{name}@{version}")
        self._tarballs[(name, version)] = tarball.read_bytes()

    # ── Owners ──────────────────────────────────────────────────

    def add_owner(self, name: str, user: str) -> None:
        self._call_log.append(("add_owner", name))
        if name not in self._records:
            raise NotFound("unknown system", system=name)
        self._owners.setdefault(name, set()).add(user)

    def remove_owner(self, name: str, user: str) -> None:
        self._call_log.append(("remove_owner", name))
        self._owners.get(name, set()).discard(user)

    def owners(self, name: str) -> list[str]:
        return sorted(self._owners.get(name, set()))

    # ── Config sets ─────────────────────────────────────────────

    def get_config(self, name: str) -> dict[str, Any]:
        self._call_log.append(("get_config", name))
        if name not in self._configs:
            raise NotFound("unknown config set", system=name)
        return copy.deepcopy(self._configs[name])

    def set_config(self, name: str, settings: dict[str, Any]) -> None:
        self._call_log.append(("set_config", name))
        self._configs[name] = copy.deepcopy(settings)

    def delete_config(self, name: str) -> None:
        self._call_log.append(("delete_config", name))
        if self._configs.pop(name, None) is None:
            raise NotFound("unknown config set", system=name)

    def list_configs(self) -> list[str]:
        self._call_log.append(("list_configs", ""))
        return sorted(self._configs)

    def reset(self) -> None:
        """Clear the call log."""
        self._call_log.clear()
