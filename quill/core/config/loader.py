"""
Configuration loader — reads .quillconf into a QuillConfig model.

The file is YAML (plain JSON files parse too). It is discovered by
walking up from the working directory, falling back to ``$HOME``.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

import yaml
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

# Default config filename
QUILL_CONFIG_FILE = ".quillconf"


class ConfigError(Exception):
    """Raised when quill configuration is invalid or missing."""


class Directories(BaseModel):
    """Overrides for the on-disk roots. Empty means ``<root>/<name>``."""

    cache: str = ""
    install: str = ""
    tmp: str = ""


class Modes(BaseModel):
    """Permission bits applied to unpacked systems."""

    exec: int = 0o755
    file: int = 0o644
    umask: int = 0o022


class WatchSettings(BaseModel):
    interval: float = 300.0


class QuillConfig(BaseModel):
    """Everything read from .quillconf."""

    root: str = Field(default_factory=lambda: str(Path.home() / ".quill"))
    directories: Directories = Field(default_factory=Directories)

    # ── Registry ─────────────────────────────────────────────────
    protocol: str = "http"
    remote_host: str = "localhost"
    port: int | None = 9003
    username: str = ""
    password: str = ""
    request_timeout: float = 30.0

    # ── Composer behaviour ───────────────────────────────────────
    os: str | None = None
    strict: bool = False
    no_templates: bool = False
    dry: bool = False
    concurrency: int = 4
    modes: Modes = Field(default_factory=Modes)
    watch: WatchSettings = Field(default_factory=WatchSettings)

    @property
    def remote_uri(self) -> str:
        port = f":{self.port}" if self.port else ""
        return f"{self.protocol}://{self.remote_host}{port}"


def find_config_file(start_dir: Path | None = None) -> Path | None:
    """Search for .quillconf starting from the given directory, walking up.

    Falls back to ``$HOME/.quillconf``.

    Args:
        start_dir: Directory to start searching from (default: cwd).

    Returns:
        Path to .quillconf, or None if not found.
    """
    current = (start_dir or Path.cwd()).resolve()

    for _ in range(20):  # safety limit
        candidate = current / QUILL_CONFIG_FILE
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            break  # filesystem root
        current = parent

    home = os.environ.get("HOME")
    if home:
        candidate = Path(home) / QUILL_CONFIG_FILE
        if candidate.is_file():
            return candidate

    return None


def load_config(path: Path | None = None) -> QuillConfig:
    """Load and validate quill configuration.

    A missing file is not an error when discovering: defaults apply.
    An explicit ``path`` that does not exist is.

    Raises:
        ConfigError: If the file is unreadable or invalid.
    """
    explicit = path is not None
    if path is None:
        path = find_config_file()

    if path is None:
        logger.debug("No %s found, using defaults", QUILL_CONFIG_FILE)
        return QuillConfig()

    if not path.is_file():
        if explicit:
            raise ConfigError(f"Config file not found: {path}")
        return QuillConfig()

    logger.debug("Loading quill config from %s", path)

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        return QuillConfig()

    if not isinstance(data, dict):
        raise ConfigError(f"Expected a mapping in {path}, got {type(data).__name__}")

    # Older files store credentials as "user:password"
    auth = data.pop("auth", None)
    if isinstance(auth, str) and ":" in auth:
        data.setdefault("username", auth.split(":", 1)[0])
        data.setdefault("password", auth.split(":", 1)[1])

    try:
        return QuillConfig.model_validate(data)
    except Exception as e:
        raise ConfigError(f"Invalid quill configuration: {e}") from e
