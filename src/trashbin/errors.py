"""Error taxonomy for trash operations."""

from __future__ import annotations

EXIT_OK = 0
EXIT_INVALID_ARGS = 1
EXIT_UNSUPPORTED = 2
EXIT_EXTERNAL = 255


class TrashError(Exception):
    """Base class for all trash-bin errors."""

    exit_code = EXIT_UNSUPPORTED


class InvalidArgumentError(TrashError):
    """Raised for bad command line usage or malformed input paths."""

    exit_code = EXIT_INVALID_ARGS


class NotFoundError(TrashError):
    """Raised when the file to operate on does not exist."""

    exit_code = EXIT_INVALID_ARGS


class MountNotFoundError(NotFoundError):
    """Raised when no mount table entry matches a device.

    The file itself exists, only its trash root is unknown, so this is a
    refusal rather than bad input.
    """

    exit_code = EXIT_UNSUPPORTED


class TrashPermissionError(TrashError):
    """Raised when the effective user lacks rights on a file or trash root."""


class UnsupportedRootError(TrashError):
    """Raised when no usable trash root can be found or created."""


class InvalidTrashRootError(UnsupportedRootError):
    """Raised when a candidate trash root fails the symlink or sticky bit checks."""


class AlreadyExistsError(TrashError):
    """Raised when a trash entry that should be fresh already exists."""


class NameSpaceExhaustedError(TrashError):
    """Raised when no free trash entry name could be generated."""


class CorruptTrashInfoError(TrashError):
    """Raised when a .trashinfo file cannot be parsed."""


class RootResolutionError(UnsupportedRootError):
    """Raised when the trash root for a file cannot be determined or created."""
