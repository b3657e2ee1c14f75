"""
Template rendering for files under a system's ``templates/`` directory.

Tokens look like ``{{ db.host }}`` or ``{{ servers[0].name }}`` and may
nest (``{{ hosts.{{ env }} }}``); inner tokens are rendered first.
Mappings and lists render as indented JSON. Files are rewritten in
place.
"""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Any

from quill.core.errors import TemplateError

logger = logging.getLogger(__name__)

# Innermost token: no braces inside
_TOKEN = re.compile(r"\{\{ ?([\sa-zA-Z0-9.\-_\[\]]+?) ?\}\}")
_PATH_PART = re.compile(r"([^.\[\]]+)|\[(\d+)\]")

_MISSING = object()


def lookup(data: Any, key: str) -> Any:
    """Value at dotted ``key`` (``a.b[0].c``) in ``data``, or a sentinel."""
    value = data
    for name, index in _PATH_PART.findall(key.strip()):
        if index:
            if not isinstance(value, list) or int(index) >= len(value):
                return _MISSING
            value = value[int(index)]
        elif isinstance(value, dict) and name in value:
            value = value[name]
        elif isinstance(value, list) and name.isdigit() and int(name) < len(value):
            value = value[int(name)]
        else:
            return _MISSING
    return value


def _text(value: Any) -> str:
    if isinstance(value, (dict, list)):
        return json.dumps(value, indent=2)
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return ""
    return str(value)


def render(template: str, config: dict[str, Any], *, force: bool = False, source: str = "") -> str:
    """Substitute every token in ``template``.

    Raises:
        TemplateError: A token names a missing value and ``force`` is off.
            With ``force`` the token is left as written.
    """
    text = template
    while True:
        def _sub(match: re.Match) -> str:
            key = match.group(1).strip()
            value = lookup(config, key)
            if value is _MISSING:
                if force:
                    return match.group(0)
                where = f" in {source}" if source else ""
                raise TemplateError(f"missing configuration value: {key}{where}")
            return _text(value)

        rendered = _TOKEN.sub(_sub, text)
        if rendered == text:
            return rendered
        text = rendered


def render_file(path: Path, config: dict[str, Any], *, force: bool = False) -> None:
    try:
        content = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise TemplateError(f"cannot read template {path}", cause=e) from e
    rendered = render(content, config, force=force, source=str(path))
    try:
        path.write_text(rendered, encoding="utf-8")
    except OSError as e:
        raise TemplateError(f"cannot write template {path}", cause=e) from e


def render_directory(directory: Path, config: dict[str, Any], *, force: bool = False) -> list[Path]:
    """Render every file below ``directory`` in place.

    A missing directory renders nothing. Returns the rendered files.
    """
    if not directory.is_dir():
        return []
    rendered = []
    for path in sorted(directory.rglob("*")):
        if path.is_file():
            render_file(path, config, force=force)
            rendered.append(path)
    logger.debug("Rendered %d templates in %s", len(rendered), directory)
    return rendered
