"""Trash bin data models."""

from trashbin.models.results import BatchResult
from trashbin.models.trashinfo import TrashInfo

__all__ = [
    "BatchResult",
    "TrashInfo",
]
