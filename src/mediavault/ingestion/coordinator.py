"""Per-file ingestion orchestration."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Iterable, Optional

from mediavault.errors import MediaVaultError, RecordConflictError, UnsupportedTypeError
from mediavault.index import FileRecord, MetadataIndex

from .archive import BackupWriter, resolve_archive_path
from .extractors import MetadataExtractor
from .models import IngestionOutcome, IngestionStatus, PendingIngestion

if TYPE_CHECKING:
    from mediavault.watch.models import ReadyFile

LOGGER = logging.getLogger(__name__)

OutcomeCallback = Callable[[IngestionOutcome], None]


class IngestionCoordinator:
    """Drive extract → resolve → copy → index for each ready file.

    Every file is an independent unit of work: failures are logged and turned
    into ``FAILED`` outcomes, never raised. Files dispatched through
    :meth:`submit` run on a bounded thread pool in no particular order.
    """

    def __init__(
        self,
        extractor: MetadataExtractor,
        writer: BackupWriter,
        index: MetadataIndex,
        *,
        max_workers: int = 4,
        on_complete: Optional[OutcomeCallback] = None,
    ) -> None:
        self.extractor = extractor
        self.writer = writer
        self.index = index
        self.max_workers = max(1, max_workers)
        self._on_complete = on_complete
        self._executor: ThreadPoolExecutor | None = None
        self._executor_lock = threading.Lock()

    # ------------------------------------------------------------------ #
    # Public API                                                         #
    # ------------------------------------------------------------------ #

    def ingest(self, path: Path) -> IngestionOutcome:
        """Ingest one file synchronously and report its outcome."""
        pending = PendingIngestion.from_path(Path(path))
        if not self.extractor.supports(pending.path):
            LOGGER.debug("Ignoring unsupported file %s", pending.path.name)
            return IngestionOutcome(path=pending.path, status=IngestionStatus.UNSUPPORTED)

        LOGGER.info("Processing %s", pending.path)
        try:
            return self._process(pending)
        except UnsupportedTypeError as exc:
            LOGGER.debug("Ignoring unsupported file %s: %s", pending.path.name, exc)
            return IngestionOutcome(path=pending.path, status=IngestionStatus.UNSUPPORTED)
        except MediaVaultError as exc:
            LOGGER.error("Failed to process file %s: %s", pending.path.name, exc)
            return self._failed(pending, exc)
        except Exception as exc:
            LOGGER.exception("Unexpected error while processing file %s", pending.path.name)
            return self._failed(pending, exc)

    def submit(self, path: Path) -> Future[IngestionOutcome]:
        """Queue ``path`` for ingestion on the worker pool and return immediately."""
        future = self._ensure_executor().submit(self.ingest, Path(path))
        if self._on_complete is not None:
            future.add_done_callback(self._notify)
        return future

    def run(self, events: Iterable[ReadyFile]) -> int:
        """Dispatch every ready-file event without waiting for completion.

        Args:
            events: Ready-file events, typically from a directory watch source.

        Returns:
            int: Number of files dispatched before the event stream ended.
        """
        dispatched = 0
        for event in events:
            self.submit(event.path)
            dispatched += 1
        return dispatched

    def close(self, wait: bool = True) -> None:
        """Shut down the worker pool, optionally waiting for in-flight files."""
        with self._executor_lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=wait)

    def __enter__(self) -> "IngestionCoordinator":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # ------------------------------------------------------------------ #
    # Internal helpers                                                   #
    # ------------------------------------------------------------------ #

    def _process(self, pending: PendingIngestion) -> IngestionOutcome:
        extraction = self.extractor.extract(pending.path)
        relative_path = resolve_archive_path(extraction.created, pending.path.name)
        written = self.writer.write(pending.path, relative_path)

        record = FileRecord(
            original_name=pending.path.name,
            file_type=pending.extension,
            backup_path=written.relative_path,
            metadata=extraction.metadata,
            created_at=extraction.created.date(),
        )
        notes = [] if written.copied else [f"backup already present at {written.relative_path}"]

        try:
            record_id = self.index.insert(record)
        except RecordConflictError:
            LOGGER.info("File already indexed: %s. Skipping.", written.relative_path)
            notes.append("index entry already present")
            return IngestionOutcome(
                path=pending.path,
                status=IngestionStatus.DUPLICATE,
                record=record,
                notes=notes,
            )

        LOGGER.info("Indexed %s with id %s", written.relative_path, record_id)
        return IngestionOutcome(
            path=pending.path,
            status=IngestionStatus.ARCHIVED,
            record=record.model_copy(update={"id": record_id}),
            record_id=record_id,
            notes=notes,
        )

    def _failed(self, pending: PendingIngestion, exc: BaseException) -> IngestionOutcome:
        return IngestionOutcome(
            path=pending.path,
            status=IngestionStatus.FAILED,
            error=f"{exc.__class__.__name__}: {exc}",
        )

    def _ensure_executor(self) -> ThreadPoolExecutor:
        with self._executor_lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=self.max_workers, thread_name_prefix="mediavault-ingest"
                )
            return self._executor

    def _notify(self, future: Future[IngestionOutcome]) -> None:
        if self._on_complete is None or future.cancelled():
            return
        try:
            self._on_complete(future.result())
        except Exception:
            LOGGER.exception("Outcome callback failed")


__all__ = ["IngestionCoordinator"]
