"""The ``directorysizes`` cache of a trash root.

Each line reads ``<size> <mtime> <percent-encoded dir name>``. The file
is never edited in place: it is rebuilt in a temporary file on the same
device and renamed over the old one, so readers see either the old or
the new version. Concurrent writers are not serialised; the last rename
wins.
"""

from __future__ import annotations

import logging
import os
import stat
import tempfile
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import quote, unquote_to_bytes

from trashbin.core import device
from trashbin.core.roots import TrashRoot, TrashRootKind
from trashbin.errors import TrashPermissionError, UnsupportedRootError
from trashbin.utils import can_delete_file, dir_size

log = logging.getLogger(__name__)

_TEMP_DIR_NAME = "trash-bin"


@dataclass(frozen=True, slots=True)
class DirectorySizesEntry:
    """Cached size of one trashed directory."""

    size: int
    mtime: int
    name: str

    @classmethod
    def parse(cls, line: str) -> DirectorySizesEntry | None:
        fields = line.split()
        if len(fields) != 3:
            return None
        try:
            return cls(
                size=int(fields[0]),
                mtime=int(fields[1]),
                name=os.fsdecode(unquote_to_bytes(fields[2])),
            )
        except ValueError:
            return None

    def render(self) -> str:
        return f"{self.size} {self.mtime} {quote(os.fsencode(self.name), safe='')}\n"


def get_or_create_path(root: TrashRoot) -> Path:
    """Return the root's ``directorysizes`` file, creating it empty if absent.

    Raises:
        UnsupportedRootError: If the path exists but is not a regular file.
        TrashPermissionError: If the user could not delete the file, which
            means they are not entitled to maintain it.
    """
    path = root.directorysizes
    if not path.exists() and not path.is_symlink():
        path.touch(exist_ok=True)
        log.debug("Created %s", path)
    if path.is_symlink() or not path.is_file():
        raise UnsupportedRootError(f"{path} is not a file, not updating directorysizes")
    if not can_delete_file(path):
        raise TrashPermissionError(f"not enough permissions to edit {path}")
    return path


def read(root: TrashRoot) -> dict[str, DirectorySizesEntry]:
    """Parse the root's cache into a name -> entry mapping.

    Missing or unreadable files yield an empty mapping; malformed lines
    are skipped.
    """
    try:
        text = root.directorysizes.read_text(encoding="utf-8")
    except FileNotFoundError:
        return {}
    except (OSError, UnicodeDecodeError) as exc:
        log.debug("Cannot read %s: %s", root.directorysizes, exc)
        return {}

    entries: dict[str, DirectorySizesEntry] = {}
    for line in text.splitlines():
        entry = DirectorySizesEntry.parse(line)
        if entry is not None:
            entries[entry.name] = entry
    return entries


def _is_private_dir(path: Path) -> bool:
    """True if *path* is a real directory owned by us that nobody else can write."""
    st = path.lstat()
    return (
        stat.S_ISDIR(st.st_mode)
        and st.st_uid == os.geteuid()
        and not st.st_mode & (stat.S_IWGRP | stat.S_IWOTH)
    )


def _shared_temp_dir(root: TrashRoot) -> Path | None:
    """Our directory in the system temp dir, if it is usable for *root*."""
    system_tmp = Path(tempfile.gettempdir())
    same_device = (
        device.identity_for(system_tmp, follow_symlinks=True).device_id
        == device.identity_for(root.path, follow_symlinks=True).device_id
    )
    if not same_device:
        return None
    scratch = system_tmp / f"{_TEMP_DIR_NAME}-{os.geteuid()}"
    try:
        scratch.mkdir(mode=0o700)
    except FileExistsError:
        pass
    if not _is_private_dir(scratch):
        log.warning("Not using %s: not a private directory owned by the current user", scratch)
        return None
    return scratch


def _temp_dir(root: TrashRoot) -> Path:
    """Scratch directory on the same filesystem as *root*."""
    match root.kind:
        case TrashRootKind.HOME:
            scratch = _shared_temp_dir(root) or root.path / _TEMP_DIR_NAME
        case TrashRootKind.TOPDIR_ADMIN | TrashRootKind.TOPDIR_USER:
            scratch = root.path / _TEMP_DIR_NAME

    scratch.mkdir(mode=0o700, exist_ok=True)
    if scratch.is_symlink() or not scratch.is_dir():
        raise UnsupportedRootError(f"{scratch} is not a directory")
    return scratch


def _retained_lines(root: TrashRoot, path: Path, exclude: str | None = None) -> list[str]:
    """Existing lines whose directory is still in ``files/``.

    *exclude* drops the line for a name being re-added: a directory that
    was restored by a tool ignoring ``directorysizes`` and trashed again
    under the same name would otherwise keep its outdated line.
    """
    retained: list[str] = []
    for line in path.read_text(encoding="utf-8").splitlines():
        entry = DirectorySizesEntry.parse(line)
        if entry is None:
            log.debug("Dropping malformed directorysizes line: %r", line)
            continue
        if entry.name == exclude:
            continue
        if not (root.files_dir / entry.name).exists():
            log.debug("Dropping stale directorysizes entry for '%s'", entry.name)
            continue
        retained.append(f"{line}\n")
    return retained


def _replace(root: TrashRoot, target: Path, lines: list[str]) -> None:
    fd, tmp_name = tempfile.mkstemp(prefix="directorysizes-", dir=_temp_dir(root))
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.writelines(lines)
        os.replace(tmp_name, target)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def add_entry(root: TrashRoot, trashed_dir: Path, trashinfo: Path) -> bool:
    """Record the size of a freshly trashed directory.

    Returns False, without touching the cache, when *trashed_dir* is not
    a directory.

    Raises:
        TrashPermissionError, UnsupportedRootError: See :func:`get_or_create_path`.
        OSError: If sizing the directory or rewriting the cache fails.
    """
    if trashed_dir.is_symlink() or not trashed_dir.is_dir():
        return False

    target = get_or_create_path(root)
    entry = DirectorySizesEntry(
        size=dir_size(trashed_dir),
        mtime=int(trashinfo.stat().st_mtime),
        name=trashed_dir.name,
    )
    lines = _retained_lines(root, target, exclude=entry.name)
    lines.append(entry.render())
    _replace(root, target, lines)
    log.debug("Recorded %s (%d bytes) in %s", entry.name, entry.size, target)
    return True


def cleanup(root: TrashRoot) -> None:
    """Drop entries whose directory no longer exists in ``files/``."""
    target = get_or_create_path(root)
    _replace(root, target, _retained_lines(root, target))
    log.debug("Pruned %s", target)
