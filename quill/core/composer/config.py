"""
System configuration — merging config sources and exporting them as env.

Sources, lowest precedence first:

    1. the system's own ``config``
    2. named config sets fetched from the registry (the first named wins)
    3. ``key=value`` items from the command line (dotted keys nest)

Nested mappings are merged key by key; anything else is replaced.
"""

from __future__ import annotations

import copy
import json
import logging
from typing import Any

from quill.adapters.base import Registry
from quill.core.models.system import System

logger = logging.getLogger(__name__)

ENV_PREFIX = "quill"


def parse_items(items: list[str] | tuple[str, ...]) -> tuple[dict[str, Any], list[str]]:
    """Split CLI config items into ``(overrides, set_names)``.

    ``db.host=localhost`` becomes ``{"db": {"host": "localhost"}}``;
    an item without ``=`` names a registry config set.
    """
    overrides: dict[str, Any] = {}
    sets: list[str] = []
    for item in items:
        key, sep, value = item.partition("=")
        if not sep:
            sets.append(item)
            continue
        target = overrides
        parts = key.split(".")
        for part in parts[:-1]:
            nested = target.get(part)
            if not isinstance(nested, dict):
                nested = target[part] = {}
            target = nested
        target[parts[-1]] = value
    return overrides, sets


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """New mapping with ``override`` layered on ``base``."""
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def merged_config(
    system: System,
    *,
    items: list[str] | tuple[str, ...] = (),
    registry: Registry | None = None,
) -> dict[str, Any]:
    """Fully merged configuration for ``system``.

    Raises:
        NotFound: A named config set does not exist.
    """
    overrides, sets = parse_items(items)
    config = copy.deepcopy(system.config)

    if sets and registry is None:
        logger.warning("No registry configured; ignoring config sets %s", ", ".join(sets))
        sets = []

    for name in reversed(sets):
        logger.debug("Applying config set %s to %s", name, system.name)
        config = deep_merge(config, registry.get_config(name))

    return deep_merge(config, overrides)


def _scalar(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float, str)):
        return str(value)
    return json.dumps(value)


def _flatten(value: Any) -> dict[str, str]:
    if isinstance(value, dict):
        items = value.items()
    elif isinstance(value, (list, tuple)):
        items = ((str(i), v) for i, v in enumerate(value))
    else:
        return {"": _scalar(value)}

    flat: dict[str, str] = {}
    for key, child in items:
        for sub, text in _flatten(child).items():
            flat[f"{key}_{sub}" if sub else str(key)] = text
    return flat


def to_environment(config: dict[str, Any], prefix: str = ENV_PREFIX) -> dict[str, str]:
    """Flatten ``config`` into ``<prefix>_``-named environment variables.

    >>> to_environment({"db": {"host": "h", "ports": [1, 2]}, "debug": True})
    {'quill_db_host': 'h', 'quill_db_ports_0': '1', 'quill_db_ports_1': '2', 'quill_debug': 'true'}
    """
    return {f"{prefix}_{key}": value for key, value in _flatten(config).items()}
