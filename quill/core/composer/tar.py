"""
Tarball codec — gzip tar pack/unpack for system directories.

Packing forces every entry user-writable so a system packed from a
read-only checkout can still be unpacked and modified, and ships a
``.gitignore`` as ``.quillignore`` when the directory has no
``.quillignore`` of its own.

Unpacking refuses members that would land outside the target and then
normalizes permissions: directories get the exec mode, files keep any
exec bits they had, and the umask is applied last.
"""

from __future__ import annotations

import logging
import stat
import tarfile
from pathlib import Path

from quill.core.config.loader import Modes
from quill.core.errors import UnpackError

logger = logging.getLogger(__name__)


def pack(tarball: Path, base_dir: Path, files: list[str], *, prefix: str | None = None) -> Path:
    """Write ``files`` (relative to ``base_dir``) into ``tarball``.

    Entries are stored under ``prefix/`` (default: ``base_dir``'s name).
    """
    prefix = prefix if prefix is not None else base_dir.name
    wanted = set(files)

    def _writable(info: tarfile.TarInfo) -> tarfile.TarInfo:
        info.mode |= stat.S_IWUSR
        return info

    tarball.parent.mkdir(parents=True, exist_ok=True)
    with tarfile.open(tarball, "w:gz") as tar:
        for rel in sorted(wanted):
            arcname = rel
            name = Path(rel).name
            if name == ".gitignore":
                if (base_dir / Path(rel).parent / ".quillignore").exists():
                    continue
                arcname = str(Path(rel).parent / ".quillignore")
            if prefix:
                arcname = f"{prefix}/{arcname}"
            tar.add(base_dir / rel, arcname=arcname, recursive=False, filter=_writable)

    logger.debug("Packed %d files from %s into %s", len(wanted), base_dir, tarball)
    return tarball


def _safe_members(tar: tarfile.TarFile, target: Path) -> list[tarfile.TarInfo]:
    root = target.resolve()
    members = []
    for member in tar.getmembers():
        dest = (root / member.name).resolve()
        try:
            dest.relative_to(root)
        except ValueError:
            raise UnpackError(f"member {member.name!r} escapes {root}") from None
        if member.issym() or member.islnk():
            link = (dest.parent / member.linkname).resolve()
            try:
                link.relative_to(root)
            except ValueError:
                raise UnpackError(f"link {member.name!r} points outside {root}") from None
        if not (member.isfile() or member.isdir() or member.issym() or member.islnk()):
            logger.debug("Skipping special member %s", member.name)
            continue
        members.append(member)
    return members


def _apply_modes(path: Path, modes: Modes) -> None:
    if path.is_symlink():
        return
    st = path.stat()
    old = stat.S_IMODE(st.st_mode)
    if stat.S_ISDIR(st.st_mode):
        new = (old | modes.exec) & ~modes.umask
    else:
        # Keep exec bits already present, never add new ones
        new = (old | modes.file) & ~modes.umask
    if new != old:
        path.chmod(new)


def unpack(tarball: Path, target: Path, modes: Modes | None = None) -> Path:
    """Extract ``tarball`` into ``target`` and normalize modes.

    Returns the single top-level directory of the archive if it has
    exactly one, otherwise ``target``.

    Raises:
        UnpackError: On a corrupt archive or an unsafe member.
    """
    modes = modes or Modes()
    target.mkdir(parents=True, exist_ok=True)

    try:
        with tarfile.open(tarball, "r:*") as tar:
            members = _safe_members(tar, target)
            tar.extractall(target, members=members, filter="tar")
    except (tarfile.TarError, OSError, EOFError) as e:
        raise UnpackError(f"cannot unpack {tarball}", cause=e) from e

    for member in members:
        _apply_modes(target / member.name, modes)
    parents = {target / p for m in members for p in Path(m.name).parents if p.parts}
    for directory in parents:
        if directory.is_dir():
            _apply_modes(directory, modes)

    tops = {Path(m.name).parts[0] for m in members if Path(m.name).parts}
    if len(tops) == 1:
        only = target / tops.pop()
        if only.is_dir():
            return only
    return target
