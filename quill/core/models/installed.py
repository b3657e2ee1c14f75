"""
InstallRecord — what InstallStore knows about one installed system name.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from quill.core.models.history import History
from quill.core.models.system import System


class InstallRecord(BaseModel):
    """One installed system name.

    ``system`` is None once the version directory has been removed;
    the history survives so a later reinstall can consult it.
    """

    name: str
    system: System | None = None
    path: str | None = None
    history: History = Field(default_factory=History)

    @property
    def installed(self) -> bool:
        return self.system is not None

    @property
    def version(self) -> str | None:
        return self.system.version if self.system else None

    @property
    def required(self) -> str:
        """Range the system was installed against (``*`` if unknown)."""
        entry = self.history.last_copy()
        return entry.required if entry and entry.required else "*"
