"""Device identity and mount table lookups."""

from __future__ import annotations

import dataclasses
import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path

from trashbin.errors import MountNotFoundError

log = logging.getLogger(__name__)

MOUNTINFO_PATH = Path("/proc/self/mountinfo")

_OCTAL_ESCAPE = re.compile(r"\\([0-7]{3})")


@dataclass(frozen=True, slots=True)
class MountEntry:
    """One line of the mount table (see ``man 5 proc``)."""

    major: int
    minor: int
    mount_root: Path
    mount_point: Path
    fs_type: str
    source: str


@dataclass(frozen=True, slots=True)
class DeviceIdentity:
    """Device a path lives on, optionally with its mount table details."""

    device_id: int
    major: int
    minor: int
    source_name: str | None = None
    mount_root: Path | None = None
    mount_point: Path | None = None

    @property
    def is_resolved(self) -> bool:
        return self.mount_point is not None


def identity_for(path: Path | str, follow_symlinks: bool = False) -> DeviceIdentity:
    """Return the device identity of *path*.

    Symlinks are not followed unless asked, so a link is attributed to the
    device holding the link itself.

    Raises:
        OSError: If the path cannot be stat'ed.
    """
    st = os.stat(path, follow_symlinks=follow_symlinks)
    return DeviceIdentity(
        device_id=st.st_dev,
        major=os.major(st.st_dev),
        minor=os.minor(st.st_dev),
    )


def _unescape(field: str) -> str:
    return _OCTAL_ESCAPE.sub(lambda m: chr(int(m.group(1), 8)), field)


def parse_mountinfo_line(line: str) -> MountEntry | None:
    """Parse a single mountinfo line, returning None if it is malformed.

    Format: ``id parent major:minor root mount_point options [optional...] - fstype source superopts``
    """
    head, sep, tail = line.partition(" - ")
    if not sep:
        return None
    fields = head.split()
    tail_fields = tail.split()
    if len(fields) < 5 or len(tail_fields) < 2:
        return None
    major, _, minor = fields[2].partition(":")
    try:
        return MountEntry(
            major=int(major),
            minor=int(minor),
            mount_root=Path(_unescape(fields[3])),
            mount_point=Path(_unescape(fields[4])),
            fs_type=tail_fields[0],
            source=_unescape(tail_fields[1]),
        )
    except ValueError:
        return None


def read_mount_table(mountinfo: Path | None = None) -> list[MountEntry]:
    """Read and parse the mount table of the running process."""
    source = mountinfo or MOUNTINFO_PATH
    entries: list[MountEntry] = []
    for line in source.read_text().splitlines():
        entry = parse_mountinfo_line(line)
        if entry is None:
            log.debug("Skipping malformed mountinfo line: %r", line)
            continue
        entries.append(entry)
    return entries


def resolve_mount(identity: DeviceIdentity, path: Path | None = None) -> DeviceIdentity:
    """Fill in the mount table fields of *identity*.

    When several mounts share the device numbers (bind mounts, btrfs
    subvolumes), the one whose mount point is the longest prefix of *path*
    wins.

    Raises:
        MountNotFoundError: If no mount matches, e.g. the device was
            unmounted between stat and lookup.
    """
    if identity.is_resolved:
        return identity

    candidates = [
        m for m in read_mount_table()
        if m.major == identity.major and m.minor == identity.minor
    ]
    if not candidates:
        raise MountNotFoundError(
            f"could not find mount point for device {identity.major}:{identity.minor}"
        )

    best = candidates[0]
    if path is not None:
        containing = [m for m in candidates if path.is_relative_to(m.mount_point)]
        if containing:
            best = max(containing, key=lambda m: len(m.mount_point.parts))

    log.debug("Device %d:%d is mounted at %s", identity.major, identity.minor, best.mount_point)
    return dataclasses.replace(
        identity,
        source_name=best.source,
        mount_root=best.mount_root,
        mount_point=best.mount_point,
    )
