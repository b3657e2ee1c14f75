"""
Composer errors — the failure vocabulary of resolution, storage and scripts.

Every error carries enough context to be actionable: the system it is
about (``name`` or ``name@version``), the lifecycle action in flight when
known, and the underlying cause. ``str()`` renders all of it, so the CLI
can print errors verbatim.
"""

from __future__ import annotations


class ComposerError(Exception):
    """Base class for all composer failures."""

    def __init__(
        self,
        message: str,
        *,
        system: str = "",
        action: str = "",
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.system = system
        self.action = action
        self.cause = cause

    def __str__(self) -> str:
        parts = []
        if self.action:
            parts.append(f"[{self.action}]")
        if self.system:
            parts.append(f"{self.system}:")
        parts.append(self.message)
        if self.cause is not None:
            parts.append(f"({self.cause})")
        return " ".join(parts)


class NotFound(ComposerError):
    """Unknown system or version in the registry."""


class NoSatisfyingVersion(ComposerError):
    """No known version satisfies the requested semver range."""


class InvalidSystem(ComposerError):
    """A system descriptor failed validation."""


class VersionConflict(ComposerError):
    """Installing would overwrite a different installed version."""


class AmbiguousInstall(ComposerError):
    """More than one version directory exists for one installed system."""


class CacheIOError(ComposerError):
    """Filesystem failure while populating or reading the cache."""


class UnpackError(ComposerError):
    """A tarball could not be unpacked."""


class ScriptFailure(ComposerError):
    """A lifecycle script exited non-zero or could not be spawned."""

    def __init__(self, message: str, *, exit_code: int | None = None, **kwargs):
        super().__init__(message, **kwargs)
        self.exit_code = exit_code


class TemplateError(ComposerError):
    """A template could not be read, written or given a configuration value."""


class RegistryError(ComposerError):
    """The remote registry answered with an unexpected error."""
