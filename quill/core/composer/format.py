"""
Formatting helpers for dependency trees and installed systems.
"""

from __future__ import annotations

from typing import Any

from quill.core.models.system import DependencyNode


def hierarchy(label: str, tree: dict[str, DependencyNode]) -> dict[str, Any]:
    """``{"label", "nodes"}`` structure for a tree; leaves are ``name@version``."""
    nodes: list[Any] = []
    for node in tree.values():
        if node.dependencies:
            nodes.append(hierarchy(node.tag, node.dependencies))
        else:
            nodes.append(node.tag)
    return {"label": label, "nodes": nodes}


def render_tree(data: dict[str, Any]) -> str:
    """ASCII rendering of a ``hierarchy()`` result."""
    lines = [data["label"]]

    def _walk(nodes: list[Any], indent: str) -> None:
        for i, node in enumerate(nodes):
            last = i == len(nodes) - 1
            branch = "└── " if last else "├── "
            if isinstance(node, dict):
                lines.append(f"{indent}{branch}{node['label']}")
                _walk(node["nodes"], indent + ("    " if last else "│   "))
            else:
                lines.append(f"{indent}{branch}{node}")

    _walk(data["nodes"], "")
    return "\n".join(lines)


def runlist_line(tags: list[str]) -> str:
    return " → ".join(tags) if tags else "(empty)"
