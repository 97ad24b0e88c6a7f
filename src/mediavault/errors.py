"""Error taxonomy for the ingestion pipeline."""


class MediaVaultError(Exception):
    """Base exception for mediavault operations."""


class WatchRootError(MediaVaultError):
    """Raised when the watched directory is unusable at start-up."""


class ArchiveRootError(MediaVaultError):
    """Raised when the archive root cannot be prepared at start-up."""


class UnsupportedTypeError(MediaVaultError):
    """Raised when no metadata handler is registered for a file extension."""


class MetadataParseError(MediaVaultError):
    """Raised when embedded tags or probe output cannot be read."""


class ArchiveWriteError(MediaVaultError):
    """Raised when creating archive directories or copying bytes fails."""


class MetadataIndexError(MediaVaultError):
    """Base exception for metadata index operations."""


class RecordConflictError(MetadataIndexError):
    """Raised when a record with the same backup path is already indexed."""


class RecordNotFoundError(MetadataIndexError):
    """Raised when no record matches the requested identifier."""


__all__ = [
    "MediaVaultError",
    "WatchRootError",
    "ArchiveRootError",
    "UnsupportedTypeError",
    "MetadataParseError",
    "ArchiveWriteError",
    "MetadataIndexError",
    "RecordConflictError",
    "RecordNotFoundError",
]
