"""
Adapters — collaborators with side effects.

Registries serve system metadata, tarballs and config sets; the script
runner spawns lifecycle scripts.
"""

from quill.adapters.base import Registry
from quill.adapters.mock import MemoryRegistry
from quill.adapters.registry_client import HttpRegistry
from quill.adapters.shell.command import ScriptRunner

__all__ = ["HttpRegistry", "MemoryRegistry", "Registry", "ScriptRunner"]
