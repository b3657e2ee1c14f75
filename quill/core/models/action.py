"""
Lifecycle actions and Receipts — the execution contract.

Actions are the fixed, ordered set of things quill can do to an
installed system. Receipts are what the script runner hands back:
the runner never raises for a failing script, the outcome is captured
here and the LifecycleEngine decides what a failure means.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from typing import Literal

from pydantic import BaseModel, Field


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class LifecycleAction(StrEnum):
    """Lifecycle actions, in their canonical order."""

    INSTALL = "install"
    CONFIGURE = "configure"
    UPDATE = "update"
    START = "start"
    UNINSTALL = "uninstall"


# action → (prerequisite actions, recursive by default)
_ACTION_TABLE: dict[LifecycleAction, tuple[tuple[LifecycleAction, ...], bool]] = {
    LifecycleAction.INSTALL: ((), True),
    LifecycleAction.CONFIGURE: ((LifecycleAction.INSTALL,), True),
    LifecycleAction.UPDATE: ((LifecycleAction.INSTALL, LifecycleAction.CONFIGURE), False),
    LifecycleAction.START: ((LifecycleAction.INSTALL, LifecycleAction.CONFIGURE), False),
    LifecycleAction.UNINSTALL: ((), False),
}

# Execution rank inside one system: install, then configure, then the rest
_SCRIPT_RANK: dict[LifecycleAction, int] = {
    LifecycleAction.UNINSTALL: 0,
    LifecycleAction.INSTALL: 1,
    LifecycleAction.CONFIGURE: 2,
    LifecycleAction.UPDATE: 3,
    LifecycleAction.START: 3,
}


def parse_action(value: str) -> LifecycleAction:
    """Parse an action name, raising ValueError listing the valid ones."""
    try:
        return LifecycleAction(value)
    except ValueError:
        valid = " ".join(a.value for a in LifecycleAction)
        raise ValueError(f"Invalid action: {value}. Valid actions are: {valid}.") from None


def prerequisites(action: LifecycleAction) -> tuple[LifecycleAction, ...]:
    """Transitive prerequisite actions of ``action``."""
    seen: list[LifecycleAction] = []
    stack = list(_ACTION_TABLE[action][0])
    while stack:
        pre = stack.pop(0)
        if pre in seen:
            continue
        seen.append(pre)
        stack.extend(_ACTION_TABLE[pre][0])
    return tuple(seen)


def is_recursive(action: LifecycleAction) -> bool:
    return _ACTION_TABLE[action][1]


def script_action(script: str) -> LifecycleAction | None:
    """The lifecycle action a script belongs to, by filename prefix.

    ``install.sh`` and ``install-deps.sh`` are both ``install``;
    ``helpers.sh`` belongs to no action.
    """
    base = script.rsplit("/", 1)[-1]
    for action in LifecycleAction:
        if base.startswith(action.value):
            return action
    return None


def script_rank(script: str) -> int:
    action = script_action(script)
    return _SCRIPT_RANK[action] if action else len(_SCRIPT_RANK)


class Receipt(BaseModel):
    """Result of running one lifecycle script.

    The runner NEVER raises — spawn errors and non-zero exits are
    captured here.
    """

    system: str
    script: str
    status: Literal["ok", "failed"] = "ok"

    started_at: str = Field(default_factory=_now_iso)
    ended_at: str = Field(default_factory=_now_iso)
    duration_ms: int = 0

    exit_code: int | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        """Whether the script succeeded."""
        return self.status == "ok"

    @property
    def failed(self) -> bool:
        return self.status == "failed"

    @classmethod
    def success(cls, system: str, script: str, **kwargs) -> Receipt:
        return cls(system=system, script=script, status="ok", exit_code=0, **kwargs)

    @classmethod
    def failure(cls, system: str, script: str, error: str, **kwargs) -> Receipt:
        return cls(system=system, script=script, status="failed", error=error, **kwargs)
