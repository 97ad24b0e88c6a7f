"""Index record models."""

from __future__ import annotations

from datetime import date
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class FileRecord(BaseModel):
    """Index entry describing one archived file.

    Attributes:
        id: Identifier assigned by the index; ``None`` before insertion.
        original_name: Base name of the file as observed at ingestion.
        file_type: Lowercase extension without the leading dot, one of the
            extractor registry's extensions.
        backup_path: Archive-relative path; unique across the index.
        metadata: Format-specific tag set stored verbatim.
        created_at: Calendar date of the content's creation.
    """

    model_config = ConfigDict(frozen=True)

    id: Optional[int] = None
    original_name: str
    file_type: str
    backup_path: str
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: date


__all__ = ["FileRecord"]
