"""
Core data models — pydantic models for systems, history and receipts.
"""

from quill.core.models.action import (
    LifecycleAction,
    Receipt,
    is_recursive,
    parse_action,
    prerequisites,
    script_action,
    script_rank,
)
from quill.core.models.history import History, HistoryAction, HistoryEntry, HistoryPhase
from quill.core.models.installed import InstallRecord
from quill.core.models.system import (
    DependencyNode,
    RegistryRecord,
    ResolvedSystem,
    System,
    split_name,
    system_names,
)

__all__ = [
    "DependencyNode",
    "History",
    "HistoryAction",
    "HistoryEntry",
    "HistoryPhase",
    "InstallRecord",
    "LifecycleAction",
    "Receipt",
    "RegistryRecord",
    "ResolvedSystem",
    "System",
    "is_recursive",
    "parse_action",
    "prerequisites",
    "script_action",
    "script_rank",
    "split_name",
    "system_names",
]
