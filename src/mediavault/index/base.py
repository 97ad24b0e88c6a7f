"""Abstract metadata index interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import date
from typing import Iterable

from .models import FileRecord


class MetadataIndex(ABC):
    """Record store for archived files, keyed uniquely on ``backup_path``.

    Query results are ordered by ``created_at`` ascending.
    """

    @abstractmethod
    def insert(self, record: FileRecord) -> int:
        """Store ``record`` and return its identifier.

        Raises:
            RecordConflictError: If ``record.backup_path`` is already indexed.
        """

    @abstractmethod
    def query_by_date(self, day: date) -> list[FileRecord]:
        """Return records created on ``day``."""

    @abstractmethod
    def query_by_date_range(self, start: date, end: date) -> list[FileRecord]:
        """Return records created between ``start`` and ``end`` inclusive."""

    @abstractmethod
    def query_by_date_range_and_types(
        self, start: date, end: date, types: Iterable[str]
    ) -> list[FileRecord]:
        """Return records in the date range whose ``file_type`` is in ``types``.

        An empty ``types`` collection yields an empty list.
        """

    @abstractmethod
    def query_by_id(self, record_id: int) -> FileRecord:
        """Return the record with ``record_id``.

        Raises:
            RecordNotFoundError: If no record has that identifier.
        """

    def close(self) -> None:
        """Release resources held by the index."""


__all__ = ["MetadataIndex"]
