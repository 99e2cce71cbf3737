"""The ``.trashinfo`` sidecar record."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from urllib.parse import quote, unquote_to_bytes

from trashbin.errors import AlreadyExistsError, CorruptTrashInfoError

log = logging.getLogger(__name__)

HEADER = "[Trash Info]"
TRASHINFO_SUFFIX = ".trashinfo"

_PATH_KEY = "Path="
_DATE_KEY = "DeletionDate="
_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"


def encode_path(path: str) -> str:
    """Percent-encode a path for a ``Path=`` line, keeping separators literal.

    The raw filesystem bytes are encoded, so names that are not valid
    UTF-8 survive the round trip through :func:`decode_path`.
    """
    return quote(os.fsencode(path), safe="/")


def decode_path(encoded: str) -> str:
    """Inverse of :func:`encode_path`."""
    return os.fsdecode(unquote_to_bytes(encoded))


def format_deletion_date(when: datetime) -> str:
    """Format *when* as local time, seconds precision, without a UTC offset."""
    if when.tzinfo is not None:
        when = when.astimezone()
    return when.strftime(_DATE_FORMAT)


def parse_deletion_date(value: str) -> datetime:
    """Parse a ``DeletionDate=`` value into an aware datetime.

    Timestamps without an offset are local time; the offset in force on
    that date is attached. An explicit offset written by another tool is
    kept as is.
    """
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.astimezone()
    return parsed


@dataclass(frozen=True, slots=True)
class TrashInfo:
    """Original location and deletion time of one trashed item.

    ``path_encoded`` is stored exactly as it appears on disk: absolute for
    the home trash, relative to the mount point for topdir trashes.
    """

    path_encoded: str
    deletion_stamp: str
    backing_path: Path

    @classmethod
    def new(cls, original_path: str, deletion_time: datetime, backing_path: Path) -> TrashInfo:
        """Build a record for an item being trashed now."""
        return cls(
            path_encoded=encode_path(original_path),
            deletion_stamp=format_deletion_date(deletion_time),
            backing_path=backing_path,
        )

    @classmethod
    def from_file(cls, path: Path) -> TrashInfo:
        """Parse an existing ``.trashinfo`` file.

        Raises:
            CorruptTrashInfoError: If the header, ``Path=`` and
                ``DeletionDate=`` lines are not present in that order.
            OSError: If the file cannot be read.
        """
        try:
            text = path.read_text(encoding="utf-8")
        except UnicodeDecodeError as exc:
            raise CorruptTrashInfoError(f"{path}: not valid UTF-8: {exc}") from exc

        lines = [line.strip() for line in text.splitlines() if line.strip()]
        if len(lines) < 3 or lines[0] != HEADER:
            raise CorruptTrashInfoError(f"{path}: missing '{HEADER}' header")
        if not lines[1].startswith(_PATH_KEY) or len(lines[1]) == len(_PATH_KEY):
            raise CorruptTrashInfoError(f"{path}: missing Path entry")
        if not lines[2].startswith(_DATE_KEY):
            raise CorruptTrashInfoError(f"{path}: missing DeletionDate entry")

        return cls(
            path_encoded=lines[1][len(_PATH_KEY):],
            deletion_stamp=lines[2][len(_DATE_KEY):],
            backing_path=path,
        )

    @property
    def original_path(self) -> str:
        """The decoded ``Path=`` value."""
        return decode_path(self.path_encoded)

    @property
    def deletion_date(self) -> datetime:
        """The deletion time as an aware datetime.

        Raises:
            CorruptTrashInfoError: If the stored timestamp is not ISO 8601.
        """
        try:
            return parse_deletion_date(self.deletion_stamp)
        except ValueError as exc:
            raise CorruptTrashInfoError(
                f"{self.backing_path}: invalid DeletionDate {self.deletion_stamp!r}"
            ) from exc

    def render(self) -> str:
        return f"{HEADER}\nPath={self.path_encoded}\nDeletionDate={self.deletion_stamp}\n"

    def create_file(self) -> Path:
        """Write the record to ``backing_path``, never overwriting.

        Raises:
            AlreadyExistsError: If the file exists, including when another
                process created it between naming and writing.
            OSError: On any other write failure.
        """
        if self.backing_path.exists() or self.backing_path.is_symlink():
            raise AlreadyExistsError(f"info entry already exists: {self.backing_path}")
        try:
            f = open(self.backing_path, "x", encoding="utf-8")
        except FileExistsError as exc:
            raise AlreadyExistsError(f"info entry already exists: {self.backing_path}") from exc
        try:
            with f:
                f.write(self.render())
        except OSError:
            self.backing_path.unlink(missing_ok=True)
            raise
        log.debug("Wrote %s", self.backing_path)
        return self.backing_path

    def remove(self) -> None:
        """Delete the backing file."""
        self.backing_path.unlink()
        log.debug("Removed %s", self.backing_path)
