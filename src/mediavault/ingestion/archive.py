"""Archive path derivation and idempotent backup copies."""

from __future__ import annotations

import logging
import shutil
import threading
from contextlib import contextmanager, suppress
from datetime import date, datetime
from pathlib import Path, PurePosixPath
from typing import Iterator

from mediavault.errors import ArchiveRootError, ArchiveWriteError

from .models import WriteResult

LOGGER = logging.getLogger(__name__)


def resolve_archive_path(created: date | datetime, original_name: str) -> str:
    """Return the archive-relative path ``YYYY/MM/DD/<original_name>``.

    Args:
        created: Content creation date (a datetime contributes only its date).
        original_name: File name to keep at the leaf.

    Returns:
        str: POSIX-style relative path.
    """
    day = created.date() if isinstance(created, datetime) else created
    return str(
        PurePosixPath(f"{day.year:04d}", f"{day.month:02d}", f"{day.day:02d}", original_name)
    )


class BackupWriter:
    """Copy files into the archive root without ever overwriting."""

    def __init__(self, archive_root: Path) -> None:
        self._root = Path(archive_root).expanduser()
        # destination -> (lock, number of writers holding or waiting on it)
        self._locks: dict[Path, tuple[threading.Lock, int]] = {}
        self._locks_guard = threading.Lock()

    @property
    def archive_root(self) -> Path:
        return self._root

    @property
    def active_locks(self) -> int:
        """Return the number of destinations currently being written or awaited."""
        with self._locks_guard:
            return len(self._locks)

    def prepare(self) -> Path:
        """Create the archive root.

        Raises:
            ArchiveRootError: If the directory cannot be created.
        """
        try:
            self._root.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise ArchiveRootError(f"Unable to prepare archive root {self._root}: {exc}") from exc
        if not self._root.is_dir():
            raise ArchiveRootError(f"Archive root is not a directory: {self._root}")
        return self._root

    def destination_for(self, relative_path: str) -> Path:
        return self._root.joinpath(*PurePosixPath(relative_path).parts)

    def write(self, source: Path, relative_path: str) -> WriteResult:
        """Copy ``source`` to ``relative_path`` under the archive root.

        An existing destination is treated as an earlier backup of the same
        file: nothing is copied and the relative path is returned unchanged.

        Raises:
            ArchiveWriteError: If directories cannot be created or the copy fails.
        """
        destination = self.destination_for(relative_path)
        with self._lock_for(destination):
            copying = False
            try:
                destination.parent.mkdir(parents=True, exist_ok=True)
                if destination.exists():
                    LOGGER.info("Backup already exists at %s; skipping copy.", relative_path)
                    return WriteResult(relative_path=relative_path, copied=False)
                copying = True
                shutil.copy2(source, destination)
            except OSError as exc:
                if copying:
                    with suppress(OSError):
                        destination.unlink()
                raise ArchiveWriteError(
                    f"Failed to back up {source.name} to {relative_path}: {exc}"
                ) from exc
        LOGGER.info("Backed up %s to %s", source.name, relative_path)
        return WriteResult(relative_path=relative_path, copied=True)

    @contextmanager
    def _lock_for(self, destination: Path) -> Iterator[None]:
        with self._locks_guard:
            lock, users = self._locks.get(destination) or (threading.Lock(), 0)
            self._locks[destination] = (lock, users + 1)
        try:
            with lock:
                yield
        finally:
            with self._locks_guard:
                _, users = self._locks[destination]
                if users == 1:
                    del self._locks[destination]
                else:
                    self._locks[destination] = (lock, users - 1)


__all__ = ["resolve_archive_path", "BackupWriter"]
