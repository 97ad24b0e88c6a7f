"""Transient data passed between ingestion stages."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional

from mediavault.index.models import FileRecord


@dataclass(slots=True, frozen=True)
class PendingIngestion:
    """One file moving through the pipeline; never persisted."""

    path: Path
    extension: str

    @classmethod
    def from_path(cls, path: Path) -> "PendingIngestion":
        return cls(path=path, extension=path.suffix.lower().lstrip("."))


@dataclass(slots=True)
class ExtractionResult:
    """Metadata blob and resolved creation timestamp for a file.

    Attributes:
        metadata: Raw, format-specific tag set.
        created: Creation timestamp derived from tags or the file system.
        source: Name of the tag (or ``"filesystem"``) the timestamp came from.
    """

    metadata: Dict[str, Any]
    created: datetime
    source: str


@dataclass(slots=True, frozen=True)
class WriteResult:
    """Outcome of a backup write."""

    relative_path: str
    copied: bool


class IngestionStatus(str, Enum):
    """Terminal state of a single file's ingestion."""

    ARCHIVED = "archived"
    DUPLICATE = "duplicate"
    UNSUPPORTED = "unsupported"
    FAILED = "failed"


@dataclass(slots=True)
class IngestionOutcome:
    """Result reported for each ingested file.

    Attributes:
        path: Source path that triggered the ingestion.
        status: Terminal status for the file.
        record: Index record built for the file, when one was constructed.
        record_id: Identifier assigned by the index on a fresh insert.
        error: Failure description when ``status`` is ``FAILED``.
        notes: Informational messages such as skipped copies.
    """

    path: Path
    status: IngestionStatus
    record: Optional[FileRecord] = None
    record_id: Optional[int] = None
    error: Optional[str] = None
    notes: list[str] = field(default_factory=list)


__all__ = [
    "PendingIngestion",
    "ExtractionResult",
    "WriteResult",
    "IngestionStatus",
    "IngestionOutcome",
]
