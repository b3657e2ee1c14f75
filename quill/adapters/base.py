"""
Registry base — the contract between the composer and a system registry.

The composer only talks to a registry through this interface: the
DependencyGraphBuilder reads metadata, the Cache downloads tarballs,
``publish`` creates and uploads, and the config layer reads named
config sets.

Unlike script runners, registries raise: ``NotFound`` for unknown
names, ``RegistryError`` for everything else.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from quill.core.models.system import RegistryRecord, System


class Registry(ABC):
    """Abstract base class for system registries."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Registry identifier (``http``, ``memory``)."""

    # ── Systems ─────────────────────────────────────────────────

    @abstractmethod
    def get_system(self, name: str) -> RegistryRecord:
        """Full version metadata for ``name``.

        Raises:
            NotFound: If the registry does not know ``name``.
        """

    @abstractmethod
    def download(self, name: str, version: str, dest: Path) -> Path:
        """Write the tarball for ``name@version`` to ``dest``; return ``dest``."""

    @abstractmethod
    def create(self, system: System) -> None:
        """Register a new system with its first version."""

    @abstractmethod
    def add_version(self, system: System) -> None:
        """Add ``system.version`` to an existing system."""

    @abstractmethod
    def upload(self, name: str, version: str, tarball: Path) -> None:
        """Attach the tarball for ``name@version``."""

    # ── Owners ──────────────────────────────────────────────────

    @abstractmethod
    def add_owner(self, name: str, user: str) -> None: ...

    @abstractmethod
    def remove_owner(self, name: str, user: str) -> None: ...

    # ── Named config sets ───────────────────────────────────────

    @abstractmethod
    def get_config(self, name: str) -> dict[str, Any]:
        """Settings of config set ``name``.

        Raises:
            NotFound: If the set does not exist.
        """

    @abstractmethod
    def set_config(self, name: str, settings: dict[str, Any]) -> None: ...

    @abstractmethod
    def delete_config(self, name: str) -> None: ...

    @abstractmethod
    def list_configs(self) -> list[str]: ...

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"
