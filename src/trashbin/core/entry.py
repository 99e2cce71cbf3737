"""Trashed items and their lifecycle.

A :class:`PendingTrashRequest` knows only the file and its trash root.
Naming it yields a :class:`TrashedItem` whose files and info entries are
reserved, which can then write its ``.trashinfo`` and be moved into the
trash. Items already in a trash are read back as
:class:`DiscoveredTrashedItem`. Both can be restored or deleted forever.
"""

from __future__ import annotations

import enum
import errno
import logging
import os
import shutil
import stat
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from trashbin.core import dirsizes
from trashbin.core.dirsizes import DirectorySizesEntry
from trashbin.core.naming import generate_name
from trashbin.core.roots import TrashRoot
from trashbin.errors import InvalidArgumentError, NotFoundError, TrashError
from trashbin.models.trashinfo import TRASHINFO_SUFFIX, TrashInfo
from trashbin.utils import dir_size, tilde_path

log = logging.getLogger(__name__)


class ItemKind(enum.Enum):
    FILE = "file"
    DIRECTORY = "directory"
    SYMLINK = "symlink"


def kind_of(path: Path) -> ItemKind:
    """Classify *path* without following symlinks."""
    mode = path.lstat().st_mode
    if stat.S_ISLNK(mode):
        return ItemKind.SYMLINK
    if stat.S_ISDIR(mode):
        return ItemKind.DIRECTORY
    return ItemKind.FILE


@dataclass(frozen=True)
class PendingTrashRequest:
    """A file about to be trashed into *root*."""

    original_path: Path
    root: TrashRoot

    def name(self, deletion_time: datetime | None = None) -> TrashedItem:
        """Reserve free entry names and return the fully populated item.

        Raises:
            InvalidArgumentError: If the path is not absolute or has no name.
            NameSpaceExhaustedError: If no free name exists.
        """
        if not self.original_path.is_absolute():
            raise InvalidArgumentError(f"file path is not absolute: {self.original_path}")
        if not self.original_path.name:
            raise InvalidArgumentError(f"cannot trash '{self.original_path}'")

        files_entry, info_entry = generate_name(
            self.root.files_dir, self.root.info_dir, self.original_path.name
        )
        info = TrashInfo.new(
            self.root.encode_original(self.original_path),
            deletion_time or datetime.now(),
            info_entry,
        )
        return TrashedItem(
            original_path=self.original_path,
            files_entry=files_entry,
            trashinfo=info,
            root=self.root,
        )


@dataclass(frozen=True)
class TrashedItem:
    """One item with both of its trash entries known."""

    original_path: Path
    files_entry: Path
    trashinfo: TrashInfo
    root: TrashRoot

    @property
    def kind(self) -> ItemKind:
        return kind_of(self.files_entry)

    @property
    def name(self) -> str:
        """Entry name inside ``files/``."""
        return self.files_entry.name

    def display_path(self) -> str:
        """Original location with the home directory shown as ``~``.

        Bytes that are not valid UTF-8 are shown as U+FFFD so the result
        can always be printed.
        """
        return os.fsencode(tilde_path(self.original_path)).decode("utf-8", "replace")

    def create_trashinfo(self) -> Path:
        """Write the ``.trashinfo`` file, never overwriting an existing one."""
        return self.trashinfo.create_file()

    def trash(self, update_sizes: bool = True) -> Path:
        """Move the original file into ``files/``.

        Must follow :meth:`create_trashinfo`. If the move fails the info
        file is removed again. Once the move succeeded the item counts as
        trashed; a failing ``directorysizes`` update is only logged.
        """
        try:
            os.rename(self.original_path, self.files_entry)
        except OSError:
            self.trashinfo.backing_path.unlink(missing_ok=True)
            raise
        log.info("Trashed %s -> %s", self.original_path, self.files_entry)

        if update_sizes and self.kind is ItemKind.DIRECTORY:
            try:
                dirsizes.add_entry(self.root, self.files_entry, self.trashinfo.backing_path)
            except (TrashError, OSError) as exc:
                log.info("Error while updating directorysizes: %s", exc)
        return self.files_entry

    def restore(self) -> Path:
        """Move the item back to its original location.

        Raises:
            FileNotFoundError: If the original parent directory is gone.
            FileExistsError: If something already occupies the original path.
        """
        dest = self.original_path
        if not dest.parent.is_dir():
            raise FileNotFoundError(
                errno.ENOENT, "original location no longer exists", str(dest.parent)
            )
        if dest.exists() or dest.is_symlink():
            raise FileExistsError(
                errno.EEXIST, "a file already exists at the original location", str(dest)
            )

        was_dir = self.kind is ItemKind.DIRECTORY
        os.rename(self.files_entry, dest)
        self.trashinfo.remove()
        log.info("Restored %s", dest)

        if was_dir:
            try:
                dirsizes.cleanup(self.root)
            except (TrashError, OSError) as exc:
                log.info("Error while updating directorysizes: %s", exc)
        return dest

    def delete_forever(self) -> None:
        """Permanently remove the item and its ``.trashinfo``.

        Symlinks are removed as links. Unlike trashing, a failing
        ``directorysizes`` update is an error here: the directory is gone
        and nothing would ever prune its line.
        """
        was_dir = False
        if self.files_entry.exists() or self.files_entry.is_symlink():
            was_dir = self.kind is ItemKind.DIRECTORY
            if was_dir:
                shutil.rmtree(self.files_entry)
            else:
                self.files_entry.unlink()
        else:
            log.debug("%s already gone, removing its info entry only", self.files_entry)
        self.trashinfo.remove()
        log.info("Deleted %s forever", self.files_entry)

        if was_dir:
            dirsizes.cleanup(self.root)

    def size(self) -> int:
        """Size in bytes: link size, ``du -B1`` size or file size."""
        st = self.files_entry.lstat()
        if stat.S_ISDIR(st.st_mode):
            return dir_size(self.files_entry)
        return st.st_size


@dataclass(frozen=True)
class DiscoveredTrashedItem(TrashedItem):
    """An item read back from an existing ``.trashinfo`` file."""

    deletion_date: datetime
    cached_size: DirectorySizesEntry | None = None

    @classmethod
    def from_trashinfo(
        cls,
        root: TrashRoot,
        info_path: Path,
        cache: dict[str, DirectorySizesEntry] | None = None,
    ) -> DiscoveredTrashedItem:
        """Pair *info_path* with its files entry.

        Raises:
            CorruptTrashInfoError: If the info file is malformed.
            NotFoundError: If the files entry is missing.
        """
        info = TrashInfo.from_file(info_path)
        name = info_path.name.removesuffix(TRASHINFO_SUFFIX)
        files_entry = root.files_dir / name
        if not files_entry.exists() and not files_entry.is_symlink():
            raise NotFoundError(f"orphaned info entry {info_path}")
        return cls(
            original_path=root.decode_original(info.original_path),
            files_entry=files_entry,
            trashinfo=info,
            root=root,
            deletion_date=info.deletion_date,
            cached_size=(cache or {}).get(name),
        )

    def size(self) -> int:
        """Like :meth:`TrashedItem.size`, preferring a fresh ``directorysizes`` entry."""
        if self.cached_size is not None and self.kind is ItemKind.DIRECTORY:
            try:
                mtime = int(self.trashinfo.backing_path.stat().st_mtime)
            except OSError:
                mtime = None
            if mtime == self.cached_size.mtime:
                return self.cached_size.size
        return super().size()
