"""Collision-free names for trash entries."""

from __future__ import annotations

import logging
from pathlib import Path

from trashbin.errors import NameSpaceExhaustedError
from trashbin.models.trashinfo import TRASHINFO_SUFFIX

log = logging.getLogger(__name__)

# Matches a 32-bit counter; never reached in practice.
_MAX_INDEX = 2**32 - 1


def trashable_name(file_name: str, index: int) -> str:
    """Candidate entry name for the *index*-th attempt, starting at 1.

    The first attempt keeps the name. Later ones insert ``.N`` before the
    first dot (``a.tar.gz`` -> ``a.2.tar.gz``), or append it when there is
    none. Numbering starts at 2, like Nautilus.
    """
    if index < 2:
        return file_name
    stem, dot, rest = file_name.partition(".")
    if dot:
        return f"{stem}.{index}.{rest}"
    return f"{file_name}.{index}"


def _taken(path: Path) -> bool:
    return path.exists() or path.is_symlink()


def generate_name(files_dir: Path, info_dir: Path, file_name: str) -> tuple[Path, Path]:
    """Find the first free ``(files entry, info entry)`` pair for *file_name*.

    A candidate is free only when neither the files entry nor its
    ``.trashinfo`` exists, so an orphaned info file is never overwritten.

    Raises:
        NameSpaceExhaustedError: If every index is taken.
    """
    for index in range(1, _MAX_INDEX):
        candidate = trashable_name(file_name, index)
        files_entry = files_dir / candidate
        info_entry = info_dir / f"{candidate}{TRASHINFO_SUFFIX}"
        if not _taken(files_entry) and not _taken(info_entry):
            if index > 1:
                log.debug("'%s' is taken, using '%s'", file_name, candidate)
            return files_entry, info_entry
    raise NameSpaceExhaustedError(f"reached maximum trash file name iteration for '{file_name}'")
