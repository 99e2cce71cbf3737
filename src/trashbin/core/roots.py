"""Trash root resolution and discovery.

A trash root is a directory holding ``files/``, ``info/`` and optionally
``directorysizes``. Files on the same device as ``$XDG_DATA_HOME`` go to
the home trash; files on other mounts go to ``$topdir/.Trash/$uid`` when
an administrator prepared a sticky ``$topdir/.Trash``, and to
``$topdir/.Trash-$uid`` otherwise.
"""

from __future__ import annotations

import enum
import logging
import os
from dataclasses import dataclass
from pathlib import Path

from trashbin.core import device
from trashbin.core.device import DeviceIdentity, MountEntry
from trashbin.errors import (
    InvalidTrashRootError,
    NotFoundError,
    TrashError,
    TrashPermissionError,
    UnsupportedRootError,
)
from trashbin.utils import has_sticky_bit, is_writable_dir, must_have_dir, xdg_data_home

log = logging.getLogger(__name__)

HOME_TRASH_NAME = "Trash"
ADMIN_TRASH_NAME = ".Trash"
DIRECTORYSIZES_NAME = "directorysizes"

# Mount sources that are never worth probing for a trash directory.
_VIRTUAL_SOURCE_PREFIXES = ("/dev/loop", "/dev/ram", "/dev/zram")
_BOOT_DIR = Path("/boot")


class TrashRootKind(enum.Enum):
    """Where a trash root lives."""

    HOME = "home"
    TOPDIR_ADMIN = "topdir-admin"
    TOPDIR_USER = "topdir-user"


@dataclass(frozen=True, slots=True)
class TrashRoot:
    """A usable trash directory and the device it serves."""

    device: DeviceIdentity
    path: Path
    kind: TrashRootKind

    @property
    def files_dir(self) -> Path:
        return self.path / "files"

    @property
    def info_dir(self) -> Path:
        return self.path / "info"

    @property
    def directorysizes(self) -> Path:
        return self.path / DIRECTORYSIZES_NAME

    @property
    def top_dir(self) -> Path:
        """Directory that relative ``Path=`` entries are resolved against."""
        match self.kind:
            case TrashRootKind.HOME:
                return self.path.parent
            case TrashRootKind.TOPDIR_ADMIN | TrashRootKind.TOPDIR_USER:
                if self.device.mount_point is None:
                    raise UnsupportedRootError(f"mount point of {self.path} is unknown")
                return self.device.mount_point

    def has_layout(self) -> bool:
        return self.files_dir.is_dir() and self.info_dir.is_dir()

    def ensure_layout(self) -> None:
        """Create ``files/`` and ``info/`` if missing.

        Raises:
            UnsupportedRootError: If either cannot be created.
        """
        for sub in (self.files_dir, self.info_dir):
            try:
                must_have_dir(sub)
            except OSError as exc:
                raise UnsupportedRootError(f"cannot create {sub}: {exc}") from exc

    def encode_original(self, original: Path) -> str:
        """Path key for a ``.trashinfo`` file.

        Absolute in the home trash, relative to the mount point in topdir
        trashes.
        """
        match self.kind:
            case TrashRootKind.HOME:
                return str(original)
            case TrashRootKind.TOPDIR_ADMIN | TrashRootKind.TOPDIR_USER:
                try:
                    return str(original.relative_to(self.top_dir))
                except ValueError as exc:
                    raise UnsupportedRootError(
                        f"{original} is not below mount point {self.top_dir}"
                    ) from exc

    def decode_original(self, stored: str) -> Path:
        """Absolute original location for a decoded ``Path=`` value."""
        path = Path(stored)
        if path.is_absolute():
            return path
        return self.top_dir / path


def _ensure_root_dir(path: Path) -> None:
    try:
        must_have_dir(path)
    except OSError as exc:
        raise UnsupportedRootError(f"cannot create trash directory '{path}': {exc}") from exc
    if not is_writable_dir(path):
        raise TrashPermissionError(f"trash directory '{path}' isn't writable")


def _nearest_existing(path: Path) -> Path:
    while not path.exists() and path != path.parent:
        path = path.parent
    return path


def try_topdir_admin_trash(top_dir: Path, euid: int) -> Path:
    """Return ``$topdir/.Trash/$uid``, creating the user directory if needed.

    Raises:
        NotFoundError: If ``$topdir/.Trash`` does not exist.
        InvalidTrashRootError: If it is a symlink, not a directory, or
            lacks the sticky bit.
        TrashPermissionError: If it or the user directory is not writable.
    """
    admin_trash = top_dir / ADMIN_TRASH_NAME
    if admin_trash.is_symlink():
        raise InvalidTrashRootError(f"top directory trash '{admin_trash}' is a symlink")
    if not admin_trash.exists():
        raise NotFoundError(f"top directory trash '{admin_trash}' does not exist")
    if not admin_trash.is_dir():
        raise InvalidTrashRootError(f"top directory trash '{admin_trash}' is not a directory")
    if not is_writable_dir(admin_trash):
        raise TrashPermissionError(f"top directory trash '{admin_trash}' isn't writable")
    if not has_sticky_bit(admin_trash):
        raise InvalidTrashRootError(f"top directory trash '{admin_trash}' does not have the sticky bit set")

    user_trash = admin_trash / str(euid)
    _ensure_root_dir(user_trash)
    return user_trash


def try_topdir_user_trash(top_dir: Path, euid: int) -> Path:
    """Return ``$topdir/.Trash-$uid``, creating it if needed."""
    user_trash = top_dir / f".Trash-{euid}"
    _ensure_root_dir(user_trash)
    return user_trash


def home_root(create: bool = False) -> TrashRoot | None:
    """The home trash root, or None if it does not exist and *create* is False."""
    path = xdg_data_home() / HOME_TRASH_NAME
    if create:
        path.parent.mkdir(parents=True, exist_ok=True)
        _ensure_root_dir(path)
    elif not path.is_dir():
        return None
    root = TrashRoot(device.identity_for(path, follow_symlinks=True), path, TrashRootKind.HOME)
    if create:
        root.ensure_layout()
    elif not root.has_layout():
        return None
    return root


def resolve_for_file(path: Path) -> TrashRoot:
    """Determine, and create if needed, the trash root for an absolute *path*.

    Raises:
        OSError: If *path* or the data home cannot be stat'ed.
        TrashPermissionError: If the chosen root is not writable.
        UnsupportedRootError: If no root can be created.
        MountNotFoundError: If the file's mount cannot be found.
    """
    log.info("Deriving trash root for %s", path)
    data_home = xdg_data_home()
    file_dev = device.identity_for(path)
    home_dev = device.identity_for(_nearest_existing(data_home), follow_symlinks=True)

    if file_dev.device_id == home_dev.device_id:
        root_path = data_home / HOME_TRASH_NAME
        try:
            data_home.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise UnsupportedRootError(f"cannot create '{data_home}': {exc}") from exc
        _ensure_root_dir(root_path)
        root = TrashRoot(file_dev, root_path, TrashRootKind.HOME)
        root.ensure_layout()
        log.info("Using home trash %s", root.path)
        return root

    file_dev = device.resolve_mount(file_dev, path)
    top_dir = file_dev.mount_point
    # Effective uid, so that sudo trashes into root's trash and can restore from it.
    euid = os.geteuid()

    try:
        root_path = try_topdir_admin_trash(top_dir, euid)
        kind = TrashRootKind.TOPDIR_ADMIN
    except NotFoundError as exc:
        log.info("%s, using per-user trash", exc)
        root_path = try_topdir_user_trash(top_dir, euid)
        kind = TrashRootKind.TOPDIR_USER
    except (TrashError, OSError) as exc:
        log.warning("Top directory trash is unusable: %s", exc)
        root_path = try_topdir_user_trash(top_dir, euid)
        kind = TrashRootKind.TOPDIR_USER

    root = TrashRoot(file_dev, root_path, kind)
    root.ensure_layout()
    log.info("Using %s trash %s", kind.value, root.path)
    return root


def _is_real_block_device(mount: MountEntry) -> bool:
    if not mount.source.startswith("/dev/"):
        return False
    if mount.source.startswith(_VIRTUAL_SOURCE_PREFIXES):
        return False
    return not mount.mount_point.is_relative_to(_BOOT_DIR)


def _scan_mount(mount: MountEntry, euid: int) -> list[tuple[Path, TrashRootKind]]:
    """Existing trash roots under one mount point. Never creates anything."""
    found: list[tuple[Path, TrashRootKind]] = []
    top_dir = mount.mount_point

    admin_trash = top_dir / ADMIN_TRASH_NAME
    admin_user = admin_trash / str(euid)
    if admin_trash.is_dir() and not admin_trash.is_symlink():
        if has_sticky_bit(admin_trash):
            if admin_user.is_dir():
                found.append((admin_user, TrashRootKind.TOPDIR_ADMIN))
        elif admin_user.is_dir():
            log.warning("Trash directory %s skipped because parent is not sticky", admin_user)
    elif admin_trash.is_symlink() and admin_user.exists():
        log.warning("Trash directory %s skipped because parent is a symlink", admin_user)

    user_trash = top_dir / f".Trash-{euid}"
    if user_trash.is_dir() and not user_trash.is_symlink():
        found.append((user_trash, TrashRootKind.TOPDIR_USER))
    return found


def enumerate_roots(mounts: list[MountEntry] | None = None) -> list[TrashRoot]:
    """Discover existing topdir trash roots on all real block device mounts.

    The home trash is not included; see :func:`home_root`.
    """
    if mounts is None:
        mounts = device.read_mount_table()
    euid = os.geteuid()
    roots: list[TrashRoot] = []
    seen: set[Path] = set()

    for mount in mounts:
        if not _is_real_block_device(mount):
            continue
        identity = DeviceIdentity(
            device_id=os.makedev(mount.major, mount.minor),
            major=mount.major,
            minor=mount.minor,
            source_name=mount.source,
            mount_root=mount.mount_root,
            mount_point=mount.mount_point,
        )
        try:
            candidates = _scan_mount(mount, euid)
        except OSError as exc:
            log.debug("Cannot scan %s for trash directories: %s", mount.mount_point, exc)
            continue
        for path, kind in candidates:
            if path in seen:
                continue
            root = TrashRoot(identity, path, kind)
            if not root.has_layout():
                log.debug("Ignoring %s: missing files/ or info/", path)
                continue
            seen.add(path)
            roots.append(root)

    log.debug("Found %d topdir trash roots", len(roots))
    return roots
