"""Metadata index interface and implementations."""

from mediavault.errors import MetadataIndexError, RecordConflictError, RecordNotFoundError

from .base import MetadataIndex
from .models import FileRecord
from .sqlite import SqliteMetadataIndex

__all__ = [
    "MetadataIndex",
    "SqliteMetadataIndex",
    "FileRecord",
    "MetadataIndexError",
    "RecordConflictError",
    "RecordNotFoundError",
]
