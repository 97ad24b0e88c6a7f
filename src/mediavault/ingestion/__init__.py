"""Ingestion pipeline: metadata extraction, archival, and indexing."""

from .archive import BackupWriter, resolve_archive_path
from .coordinator import IngestionCoordinator
from .extractors import FFProbe, MetadataExtractor, filesystem_created_at
from .models import (
    ExtractionResult,
    IngestionOutcome,
    IngestionStatus,
    PendingIngestion,
    WriteResult,
)

__all__ = [
    "BackupWriter",
    "ExtractionResult",
    "FFProbe",
    "IngestionCoordinator",
    "IngestionOutcome",
    "IngestionStatus",
    "MetadataExtractor",
    "PendingIngestion",
    "WriteResult",
    "filesystem_created_at",
    "resolve_archive_path",
]
