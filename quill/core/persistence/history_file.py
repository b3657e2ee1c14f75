"""
History file persistence — atomic read/write for a system's ledger.

The ledger lives at ``<installRoot>/<name>/history.json``. Writes are
atomic (write to temp file, then rename) so a crash mid-write never
leaves a truncated ledger behind.
"""

from __future__ import annotations

import json
import logging
import tempfile
from pathlib import Path

from quill.core.errors import CacheIOError
from quill.core.models.history import History

logger = logging.getLogger(__name__)

HISTORY_FILE = "history.json"


def history_path(system_root: Path) -> Path:
    """Ledger path for an installed system's top-level directory."""
    return system_root / HISTORY_FILE


def load_history(path: Path, *, system: str = "") -> History:
    """Load a ledger; a missing file is an empty history.

    Dangling ``start`` entries are logged, not repaired.

    Raises:
        CacheIOError: If the file exists but cannot be parsed.
    """
    if not path.is_file():
        return History()

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        history = History.model_validate(data)
    except (OSError, ValueError) as e:
        raise CacheIOError(f"Corrupt history file {path}", system=system, cause=e) from e

    for entry in history.dangling():
        logger.warning(
            "%s: %s %s started at %s (seq %d) has no end entry; "
            "the run was interrupted",
            system or path.parent.name,
            entry.action.value,
            entry.script or "-",
            entry.timestamp,
            entry.seq,
        )
    return history


def save_history(history: History, path: Path) -> None:
    """Save a ledger (atomic write)."""
    path.parent.mkdir(parents=True, exist_ok=True)

    data = history.model_dump(mode="json", exclude_none=True)
    content = json.dumps(data, indent=2, ensure_ascii=False) + "\n"

    _fd, tmp_path = tempfile.mkstemp(
        dir=path.parent,
        prefix=".history_",
        suffix=".tmp",
    )
    tmp = Path(tmp_path)
    try:
        with open(_fd, "w", encoding="utf-8") as fh:
            fh.write(content)
        tmp.replace(path)
        logger.debug("History saved to %s", path)
    except OSError as e:
        tmp.unlink(missing_ok=True)
        raise CacheIOError(f"Failed to save history to {path}", cause=e) from e
