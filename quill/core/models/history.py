"""
History — the durable ledger of what has been done to an installed system.

Stored as ``<installRoot>/<name>/history.json``. The ledger is append-only
and ordered by a monotonic ``seq``; timestamps are informational. Only
entries strictly after the most recent ``uninstall`` count toward
"already executed".
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, Field

from quill.core.models.action import script_action

logger = logging.getLogger(__name__)

HISTORY_SCHEMA_VERSION = 1


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


class HistoryAction(StrEnum):
    COPY = "copy"
    INSTALL = "install"
    CONFIGURE = "configure"
    UPDATE = "update"
    START = "start"
    UNINSTALL = "uninstall"


class HistoryPhase(StrEnum):
    START = "start"
    END = "end"


class HistoryEntry(BaseModel):
    """One ledger line."""

    seq: int
    timestamp: str = Field(default_factory=_now_iso)
    version: str
    action: HistoryAction
    phase: HistoryPhase
    script: str = ""
    required: str | None = None  # declared range, copy entries only
    exit_code: int | None = None
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        """An ``end`` entry for a run that exited cleanly."""
        return (
            self.phase == HistoryPhase.END
            and self.error is None
            and self.exit_code in (None, 0)
        )


class History(BaseModel):
    """Append-only ledger for one installed system name."""

    schema_version: int = HISTORY_SCHEMA_VERSION
    entries: list[HistoryEntry] = Field(default_factory=list)

    @property
    def next_seq(self) -> int:
        return self.entries[-1].seq + 1 if self.entries else 1

    def append(
        self,
        version: str,
        action: HistoryAction | str,
        phase: HistoryPhase | str,
        *,
        script: str = "",
        required: str | None = None,
        exit_code: int | None = None,
        error: str | None = None,
    ) -> HistoryEntry:
        entry = HistoryEntry(
            seq=self.next_seq,
            version=version,
            action=HistoryAction(action),
            phase=HistoryPhase(phase),
            script=script,
            required=required,
            exit_code=exit_code,
            error=error,
        )
        self.entries.append(entry)
        return entry

    def last_uninstall(self) -> int:
        """Sequence number of the most recent successful uninstall, or 0.

        A failed uninstall leaves the system in place, so it does not reset
        what counts as executed.
        """
        for entry in reversed(self.entries):
            if entry.action == HistoryAction.UNINSTALL and entry.succeeded:
                return entry.seq
        return 0

    def since_uninstall(self) -> list[HistoryEntry]:
        floor = self.last_uninstall()
        return [e for e in self.entries if e.seq > floor]

    def executed(self, script: str) -> bool:
        """Whether ``script`` already ran successfully since the last uninstall.

        Entries without a script name stand for the whole action.
        """
        action = script_action(script)
        for entry in self.since_uninstall():
            if not entry.succeeded:
                continue
            if entry.script == script:
                return True
            if not entry.script and action is not None and entry.action == action.value:
                return True
        return False

    def last_copy(self) -> HistoryEntry | None:
        for entry in reversed(self.entries):
            if entry.action == HistoryAction.COPY:
                return entry
        return None

    def dangling(self) -> list[HistoryEntry]:
        """``start`` entries that never got a matching ``end``.

        These mark a run that was killed mid-script. Whether the script
        took effect is unknown, so they are reported, never repaired.
        """
        open_runs: dict[tuple[str, str], HistoryEntry] = {}
        for entry in self.entries:
            key = (entry.action.value, entry.script)
            if entry.phase == HistoryPhase.START:
                open_runs[key] = entry
            else:
                open_runs.pop(key, None)
        return sorted(open_runs.values(), key=lambda e: e.seq)
