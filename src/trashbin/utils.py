"""Shared utility functions."""

from __future__ import annotations

import logging
import os
import stat
from datetime import datetime
from pathlib import Path

log = logging.getLogger(__name__)

# st_blocks is always counted in 512-byte units, whatever the filesystem block size.
_BLOCK_UNIT = 512


def home_dir() -> Path:
    """Return $HOME, falling back to the passwd entry."""
    return Path(os.environ.get("HOME") or Path.home())


def xdg_config_home() -> Path:
    """Return XDG_CONFIG_HOME, defaulting to ~/.config."""
    return Path(os.environ.get("XDG_CONFIG_HOME") or home_dir() / ".config")


def xdg_data_home() -> Path:
    """Return XDG_DATA_HOME, defaulting to ~/.local/share."""
    return Path(os.environ.get("XDG_DATA_HOME") or home_dir() / ".local" / "share")


def to_abs_path(path: Path | str) -> Path:
    """Make *path* absolute without resolving symlinks.

    ``..`` components are collapsed lexically so that a trailing symlink
    is never dereferenced.
    """
    return Path(os.path.abspath(path))


def is_writable_dir(path: Path) -> bool:
    """Check the effective user can list, create and remove entries in *path*."""
    mode = os.R_OK | os.W_OK | os.X_OK
    if os.access in os.supports_effective_ids:
        return os.access(path, mode, effective_ids=True)
    return os.access(path, mode)


def can_delete_file(path: Path) -> bool:
    """Check whether the effective user could remove *path*.

    The parent directory must be writable and searchable. The entry itself
    must be readable and writable, except for symlinks, whose permissions
    are meaningless and whose target may not even exist.
    """
    parent = path.parent
    if not is_writable_dir(parent):
        return False
    if path.is_symlink():
        return True
    mode = os.R_OK | os.W_OK
    if os.access in os.supports_effective_ids:
        return os.access(path, mode, effective_ids=True)
    return os.access(path, mode)


def must_have_dir(path: Path) -> None:
    """Make sure *path* exists as a directory, creating it if missing.

    Raises:
        NotADirectoryError: If *path* exists but is not a directory.
        OSError: If the directory cannot be created.
    """
    try:
        path.mkdir()
    except FileExistsError:
        if not path.is_dir():
            raise NotADirectoryError(f"path exists but is not a directory: {path}")
    else:
        log.debug("Created directory %s", path)


def has_sticky_bit(path: Path) -> bool:
    """Check the sticky bit of *path* without following symlinks."""
    return bool(path.lstat().st_mode & stat.S_ISVTX)


def dir_size(path: Path | str) -> int:
    """Disk usage of a directory tree in bytes, like ``du -B1``.

    Sums allocated blocks of the directory itself, every subdirectory and
    every regular file. Symlinks and special files are skipped.

    Raises:
        NotADirectoryError: If *path* is not a directory.
        OSError: If part of the tree cannot be read.
    """
    st = os.lstat(path)
    if not stat.S_ISDIR(st.st_mode):
        raise NotADirectoryError(f"path is not a directory: {path}")

    total = st.st_blocks * _BLOCK_UNIT
    stack: list[Path | str] = [path]
    while stack:
        current = stack.pop()
        with os.scandir(current) as it:
            for entry in it:
                if entry.is_dir(follow_symlinks=False):
                    total += entry.stat(follow_symlinks=False).st_blocks * _BLOCK_UNIT
                    stack.append(entry.path)
                elif entry.is_file(follow_symlinks=False):
                    total += entry.stat(follow_symlinks=False).st_blocks * _BLOCK_UNIT
    return total


def tilde_path(path: Path) -> str:
    """Render *path* with the home directory shown as ``~``."""
    home = home_dir()
    try:
        relative = path.relative_to(home)
    except ValueError:
        return str(path)
    if relative == Path("."):
        return "~"
    return f"~/{relative}"


def bytes_to_human(size_bytes: int) -> str:
    """Convert byte count to a human-readable string."""
    if size_bytes < 0:
        return f"-{bytes_to_human(-size_bytes)}"
    if size_bytes == 0:
        return "0 B"

    units = ("B", "KB", "MB", "GB", "TB")
    value = float(size_bytes)
    for unit in units[:-1]:
        if abs(value) < 1024:
            return f"{value:.1f} {unit}" if unit != "B" else f"{int(value)} B"
        value /= 1024
    return f"{value:.1f} {units[-1]}"


def format_relative_time(when: datetime) -> str:
    """Format an aware datetime as relative time ('2 hours ago')."""
    seconds = int((datetime.now(when.tzinfo) - when).total_seconds())

    if seconds < 60:
        return "just now"
    if seconds < 3600:
        m = seconds // 60
        return f"{m} minute{'s' if m != 1 else ''} ago"
    if seconds < 86400:
        h = seconds // 3600
        return f"{h} hour{'s' if h != 1 else ''} ago"
    d = seconds // 86400
    if d < 30:
        return f"{d} day{'s' if d != 1 else ''} ago"
    mo = d // 30
    if mo < 12:
        return f"{mo} month{'s' if mo != 1 else ''} ago"
    y = d // 365
    return f"{y} year{'s' if y != 1 else ''} ago"
