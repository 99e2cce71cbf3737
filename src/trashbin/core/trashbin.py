"""Trashing, listing, restoring and purging across all trash roots."""

from __future__ import annotations

import enum
import logging
from pathlib import Path

from trashbin.core import dirsizes
from trashbin.core.entry import DiscoveredTrashedItem, ItemKind, PendingTrashRequest, TrashedItem
from trashbin.core.roots import TrashRoot, enumerate_roots, home_root, resolve_for_file
from trashbin.errors import (
    InvalidArgumentError,
    NotFoundError,
    RootResolutionError,
    TrashError,
    TrashPermissionError,
    UnsupportedRootError,
)
from trashbin.models.results import BatchResult
from trashbin.models.trashinfo import TRASHINFO_SUFFIX
from trashbin.utils import can_delete_file, to_abs_path

log = logging.getLogger(__name__)


class SortOrder(enum.Enum):
    DATE = "date"
    DEVICE = "device"
    SIZE = "size"
    NAME = "name"


def _date_key(item: DiscoveredTrashedItem) -> float:
    return -item.deletion_date.timestamp()


def _safe_size(item: TrashedItem) -> int:
    try:
        return item.size()
    except OSError as exc:
        log.debug("Cannot size %s: %s", item.files_entry, exc)
        return 0


def sort_items(items: list[DiscoveredTrashedItem], order: SortOrder) -> list[DiscoveredTrashedItem]:
    """Sort items for display.

    DATE: newest first, directories before files on ties.
    DEVICE: by root device id, then newest first.
    SIZE: largest first, then newest first.
    NAME: original file name, case-insensitive.
    """
    match order:
        case SortOrder.DATE:
            return sorted(items, key=lambda i: (_date_key(i), i.kind is not ItemKind.DIRECTORY))
        case SortOrder.DEVICE:
            return sorted(items, key=lambda i: (i.root.device.device_id, _date_key(i)))
        case SortOrder.SIZE:
            sizes = {id(i): _safe_size(i) for i in items}
            return sorted(items, key=lambda i: (-sizes[id(i)], _date_key(i)))
        case SortOrder.NAME:
            return sorted(items, key=lambda i: i.original_path.name.casefold())


class TrashBin:
    """Operations over every reachable trash root.

    Roots are looked up again for each call so that changes made by other
    tools (a file manager emptying the trash, a drive being unplugged) are
    picked up.
    """

    def __init__(self, update_directorysizes: bool = True) -> None:
        self.update_directorysizes = update_directorysizes

    # ── trashing ─────────────────────────────────────────────────────────

    def prepare(self, path: Path | str) -> TrashedItem:
        """Check *path* can be trashed and reserve its trash entries.

        Nothing is moved yet, so a refusal never leaves a half-trashed item.

        Raises:
            NotFoundError: If *path* does not exist (dangling symlinks do).
            TrashPermissionError: If the user could not delete *path*.
            RootResolutionError: If no trash root can be found or created.
            UnsupportedRootError: If *path* is, or contains, its trash root.
        """
        abs_path = to_abs_path(path)
        if not abs_path.exists() and not abs_path.is_symlink():
            raise NotFoundError("no such file or directory")
        if not abs_path.name:
            raise InvalidArgumentError("cannot trash the root directory")
        if not can_delete_file(abs_path):
            raise TrashPermissionError("not enough permissions to delete the file")

        try:
            root = resolve_for_file(abs_path)
        except TrashError as exc:
            raise RootResolutionError(f"cannot resolve trash directory: {exc}") from exc
        except OSError as exc:
            reason = exc.strerror or str(exc)
            raise RootResolutionError(f"cannot resolve trash directory: {reason}") from exc
        if abs_path.is_relative_to(root.path) or root.path.is_relative_to(abs_path):
            raise UnsupportedRootError("trashing the trash is not supported")
        return PendingTrashRequest(abs_path, root).name()

    def commit(self, item: TrashedItem) -> Path:
        """Write the info entry and move the file. Returns the files entry."""
        item.create_trashinfo()
        return item.trash(update_sizes=self.update_directorysizes)

    def trash(self, path: Path | str) -> TrashedItem:
        """Move *path* to its trash."""
        item = self.prepare(path)
        self.commit(item)
        return item

    # ── discovery ────────────────────────────────────────────────────────

    def roots(self) -> list[TrashRoot]:
        """The home trash (when it exists) followed by every topdir trash."""
        roots: list[TrashRoot] = []
        home = home_root()
        if home is not None:
            roots.append(home)
        for root in enumerate_roots():
            if all(r.path != root.path for r in roots):
                roots.append(root)
        return roots

    def items(self, root: TrashRoot) -> list[DiscoveredTrashedItem]:
        """Trashed items of one root. Orphaned or corrupt info files are skipped."""
        cache = dirsizes.read(root)
        found: list[DiscoveredTrashedItem] = []
        try:
            info_files = sorted(root.info_dir.glob(f"*{TRASHINFO_SUFFIX}"))
        except OSError as exc:
            log.warning("Cannot list %s: %s", root.info_dir, exc)
            return found
        for info_path in info_files:
            try:
                found.append(DiscoveredTrashedItem.from_trashinfo(root, info_path, cache))
            except NotFoundError as exc:
                log.debug("Skipping %s", exc)
            except (TrashError, OSError) as exc:
                log.warning("Skipping %s: %s", info_path, exc)
        return found

    def list_items(
        self,
        sort: SortOrder = SortOrder.DATE,
        roots: list[TrashRoot] | None = None,
    ) -> list[DiscoveredTrashedItem]:
        """All trashed items across *roots* (default: every reachable root)."""
        items: list[DiscoveredTrashedItem] = []
        for root in roots if roots is not None else self.roots():
            items.extend(self.items(root))
        return sort_items(items, sort)

    def find(self, query: str, items: list[DiscoveredTrashedItem] | None = None) -> list[DiscoveredTrashedItem]:
        """Items whose original path, display path or original name equals *query*.

        Relative queries are also matched against the current directory.
        """
        if items is None:
            items = self.list_items()
        candidates = {query, str(to_abs_path(query))}
        return [
            i for i in items
            if str(i.original_path) in candidates
            or i.display_path() in candidates
            or i.original_path.name == query
        ]

    # ── restore / purge ──────────────────────────────────────────────────

    def restore(self, item: TrashedItem) -> Path:
        return item.restore()

    def delete(self, item: TrashedItem) -> None:
        item.delete_forever()

    def empty(self, root: TrashRoot | None = None) -> BatchResult:
        """Delete every item of *root*, or of every root, forever.

        One failing item never stops the batch; failures are collected in
        the result.
        """
        roots = [root] if root is not None else self.roots()
        result = BatchResult()
        for r in roots:
            for item in self.items(r):
                size = _safe_size(item)
                try:
                    item.delete_forever()
                except (TrashError, OSError) as exc:
                    log.warning("Failed to delete %s: %s", item.files_entry, exc)
                    result.errors.append(f"{item.display_path()}: {exc}")
                    continue
                result.removed += 1
                result.freed_bytes += size
        log.info("Emptied trash: %d items, %d bytes", result.removed, result.freed_bytes)
        return result
