"""SQLite-backed metadata index."""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
from datetime import date
from pathlib import Path
from typing import Any, Iterable

from mediavault.errors import MetadataIndexError, RecordConflictError, RecordNotFoundError

from .base import MetadataIndex
from .models import FileRecord

LOGGER = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS files (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    original_name TEXT NOT NULL,
    file_type TEXT NOT NULL,
    backup_path TEXT NOT NULL UNIQUE,
    metadata TEXT,
    created_at TEXT NOT NULL
)
"""
_COLUMNS = "id, original_name, file_type, backup_path, metadata, created_at"


class SqliteMetadataIndex(MetadataIndex):
    """Metadata index stored in a single SQLite table.

    One connection is shared by all worker threads; access is serialized with
    a lock so concurrent inserts are safe.
    """

    def __init__(self, db_path: Path | str) -> None:
        """Open (and create if needed) the index database.

        Args:
            db_path: Database file path, or ``":memory:"`` for a transient index.

        Raises:
            MetadataIndexError: If the database cannot be opened or initialized.
        """
        self._lock = threading.Lock()
        target = str(db_path)
        if target != ":memory:":
            path = Path(target).expanduser()
            path.parent.mkdir(parents=True, exist_ok=True)
            target = str(path)
        try:
            self._conn = sqlite3.connect(target, check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            with self._conn:
                self._conn.execute(_SCHEMA)
        except sqlite3.Error as exc:
            raise MetadataIndexError(f"Unable to open metadata index at {target}: {exc}") from exc
        LOGGER.debug("Metadata index ready at %s", target)

    def insert(self, record: FileRecord) -> int:
        """Store ``record`` and return its row identifier.

        Raises:
            RecordConflictError: If ``record.backup_path`` is already indexed.
            MetadataIndexError: For any other database failure.
        """
        params = (
            record.original_name,
            record.file_type,
            record.backup_path,
            json.dumps(record.metadata, default=str),
            record.created_at.isoformat(),
        )
        with self._lock:
            try:
                with self._conn:
                    cursor = self._conn.execute(
                        "INSERT INTO files"
                        " (original_name, file_type, backup_path, metadata, created_at)"
                        " VALUES (?, ?, ?, ?, ?)",
                        params,
                    )
            except sqlite3.IntegrityError as exc:
                raise RecordConflictError(
                    f"Backup path already indexed: {record.backup_path}"
                ) from exc
            except sqlite3.Error as exc:
                raise MetadataIndexError(f"Failed to insert {record.backup_path}: {exc}") from exc
        return int(cursor.lastrowid)

    def query_by_date(self, day: date) -> list[FileRecord]:
        return self._select(
            "WHERE date(created_at) = ? ORDER BY created_at, id", (day.isoformat(),)
        )

    def query_by_date_range(self, start: date, end: date) -> list[FileRecord]:
        return self._select(
            "WHERE date(created_at) BETWEEN ? AND ? ORDER BY created_at, id",
            (start.isoformat(), end.isoformat()),
        )

    def query_by_date_range_and_types(
        self, start: date, end: date, types: Iterable[str]
    ) -> list[FileRecord]:
        wanted = sorted({value.lower() for value in types})
        if not wanted:
            return []
        placeholders = ", ".join("?" for _ in wanted)
        return self._select(
            f"WHERE date(created_at) BETWEEN ? AND ? AND file_type IN ({placeholders})"
            " ORDER BY created_at, id",
            (start.isoformat(), end.isoformat(), *wanted),
        )

    def query_by_id(self, record_id: int) -> FileRecord:
        rows = self._select("WHERE id = ?", (record_id,))
        if not rows:
            raise RecordNotFoundError(f"No file record with id {record_id}")
        return rows[0]

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def _select(self, clause: str, params: tuple[Any, ...]) -> list[FileRecord]:
        with self._lock:
            try:
                cursor = self._conn.execute(f"SELECT {_COLUMNS} FROM files {clause}", params)
                rows = cursor.fetchall()
            except sqlite3.Error as exc:
                raise MetadataIndexError(f"Metadata index query failed: {exc}") from exc
        return [_row_to_record(row) for row in rows]


def _row_to_record(row: sqlite3.Row) -> FileRecord:
    metadata = json.loads(row["metadata"]) if row["metadata"] else {}
    return FileRecord(
        id=row["id"],
        original_name=row["original_name"],
        file_type=row["file_type"],
        backup_path=row["backup_path"],
        metadata=metadata,
        created_at=date.fromisoformat(row["created_at"][:10]),
    )


__all__ = ["SqliteMetadataIndex"]
