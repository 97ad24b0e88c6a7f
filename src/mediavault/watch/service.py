"""Filesystem watch source that reports files once their writes settle."""

from __future__ import annotations

import logging
import os
import queue
import stat
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterator, Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer
from watchdog.observers.api import BaseObserver

from mediavault.config.models import WatchSettings
from mediavault.errors import WatchRootError

from .models import ReadyFile

LOGGER = logging.getLogger(__name__)

SizeProbe = Callable[[Path], Optional[int]]


def _is_hidden(path: Path) -> bool:
    return any(part.startswith(".") for part in path.parts if part not in (".", ".."))


def _file_size(path: Path) -> Optional[int]:
    """Return the size of a regular file, or ``None`` when it is gone or not a file."""
    try:
        info = path.stat()
    except OSError:
        return None
    if not stat.S_ISREG(info.st_mode):
        return None
    return info.st_size


@dataclass(slots=True)
class _Observation:
    size: int
    stable_since: float


class WriteStabilityTracker:
    """Hold candidate files until their size stops changing.

    A file becomes ready once consecutive samples have reported the same size
    for at least ``threshold`` seconds.
    """

    def __init__(self, threshold: float, *, size_of: SizeProbe = _file_size) -> None:
        self.threshold = max(0.0, threshold)
        self._size_of = size_of
        self._pending: dict[Path, _Observation] = {}

    def __len__(self) -> int:
        return len(self._pending)

    def __contains__(self, path: object) -> bool:
        return path in self._pending

    def track(self, path: Path, now: float) -> None:
        """Start watching ``path``; already tracked paths are left untouched."""
        if path in self._pending:
            return
        size = self._size_of(path)
        if size is None:
            LOGGER.debug("Ignoring %s; not a regular file.", path)
            return
        self._pending[path] = _Observation(size=size, stable_since=now)

    def poll(self, now: float) -> list[Path]:
        """Sample every tracked file and return the ones that are now stable."""
        ready: list[Path] = []
        for path, observation in list(self._pending.items()):
            size = self._size_of(path)
            if size is None:
                LOGGER.debug("%s disappeared before its write finished.", path)
                del self._pending[path]
                continue
            if size != observation.size:
                observation.size = size
                observation.stable_since = now
                continue
            if now - observation.stable_since >= self.threshold:
                del self._pending[path]
                ready.append(path)
        return ready


class DirectoryWatchSource:
    """Emit a ready-file event for each file that arrives under a root directory.

    Only files created or moved in after :meth:`events` is called are
    reported. Hidden files and directories are ignored. The event stream is
    lazy, unbounded, and can be consumed once.
    """

    def __init__(
        self,
        root: Path,
        *,
        stability_threshold: float = 2.0,
        poll_interval: float = 0.1,
        recursive: bool = True,
        create_missing: bool = False,
        observer_factory: Callable[[], BaseObserver] = Observer,
        clock: Callable[[], float] = time.monotonic,
        initial_backoff: float = 1.0,
        max_backoff: float = 30.0,
    ) -> None:
        """Validate the root and prepare the watch.

        Args:
            root: Directory to monitor.
            stability_threshold: Seconds a file's size must hold before it is ready.
            poll_interval: Seconds between size samples.
            recursive: Whether subdirectories are monitored.
            create_missing: Create ``root`` when it does not exist.
            observer_factory: Factory for the watchdog observer.
            clock: Monotonic time source.
            initial_backoff: First delay before restarting a failed observer.
            max_backoff: Upper bound for the restart delay.

        Raises:
            WatchRootError: If the root is missing (and not created) or is not a directory.
        """
        self._root = self._validate_root(Path(root).expanduser(), create_missing)
        self._poll_interval = max(0.001, poll_interval)
        self._recursive = recursive
        self._observer_factory = observer_factory
        self._clock = clock
        self._tracker = WriteStabilityTracker(stability_threshold)
        self._queue: queue.Queue[Path] = queue.Queue()
        self._stop_event = threading.Event()
        self._observer: BaseObserver | None = None
        self._started = False
        self._initial_backoff = max(0.1, initial_backoff)
        self._max_backoff = max(self._initial_backoff, max_backoff)
        self._backoff = self._initial_backoff
        self._restart_at: float | None = None

    @classmethod
    def from_settings(cls, root: Path, settings: WatchSettings) -> "DirectoryWatchSource":
        """Build a watch source from the ``watch`` configuration section."""
        return cls(
            root,
            stability_threshold=settings.stability_threshold_ms / 1000,
            poll_interval=settings.poll_interval_ms / 1000,
            recursive=settings.recursive,
            create_missing=settings.create_missing,
        )

    @property
    def root(self) -> Path:
        return self._root

    @property
    def pending(self) -> int:
        """Return the number of files waiting for their writes to settle."""
        return len(self._tracker)

    # ------------------------------------------------------------------ #
    # Public API                                                         #
    # ------------------------------------------------------------------ #

    def events(self) -> Iterator[ReadyFile]:
        """Start watching and return the ready-file event stream.

        Raises:
            RuntimeError: If the stream was already requested.
            WatchRootError: If the underlying observer cannot be started.
        """
        if self._started:
            raise RuntimeError("DirectoryWatchSource events can only be consumed once.")
        self._started = True
        try:
            self._start_observer()
        except OSError as exc:
            raise WatchRootError(f"Unable to watch {self._root}: {exc}") from exc
        LOGGER.info("Watching for new files in: %s", self._root)
        return self._iterate()

    def stop(self) -> None:
        """Ask the event stream to finish after its current poll."""
        self._stop_event.set()

    # ------------------------------------------------------------------ #
    # Internal helpers                                                   #
    # ------------------------------------------------------------------ #

    def _iterate(self) -> Iterator[ReadyFile]:
        try:
            while not self._stop_event.is_set():
                now = self._clock()
                self._drain(now)
                for path in self._tracker.poll(now):
                    LOGGER.debug("File ready: %s", path)
                    yield ReadyFile(path=path)
                self._supervise(now)
                self._stop_event.wait(self._poll_interval)
        finally:
            self._stop_observer()

    def _drain(self, now: float) -> None:
        while True:
            try:
                path = self._queue.get_nowait()
            except queue.Empty:
                return
            self._tracker.track(path, now)

    def _supervise(self, now: float) -> None:
        """Restart the observer with backoff when its threads have died."""
        if self._observer is not None and self._observer_alive(self._observer):
            self._backoff = self._initial_backoff
            self._restart_at = None
            return

        if self._restart_at is None:
            LOGGER.error("Directory watcher for %s stopped unexpectedly.", self._root)
            self._restart_at = now + self._backoff
            return
        if now < self._restart_at:
            return

        self._stop_observer()
        try:
            self._start_observer()
        except OSError as exc:
            LOGGER.error("Watcher error: %s", exc)
            self._backoff = min(self._backoff * 2, self._max_backoff)
            self._restart_at = now + self._backoff
            return
        LOGGER.warning("Directory watcher for %s restarted.", self._root)
        self._restart_at = None

    def _start_observer(self) -> None:
        observer = self._observer_factory()
        observer.schedule(
            _WatchEventHandler(self._root, self._queue),
            str(self._root),
            recursive=self._recursive,
        )
        observer.daemon = True
        observer.start()
        self._observer = observer

    def _stop_observer(self) -> None:
        observer, self._observer = self._observer, None
        if observer is None:
            return
        observer.stop()
        if observer.is_alive():
            observer.join(timeout=5)

    @staticmethod
    def _observer_alive(observer: BaseObserver) -> bool:
        if not observer.is_alive():
            return False
        return all(emitter.is_alive() for emitter in observer.emitters)

    @staticmethod
    def _validate_root(root: Path, create_missing: bool) -> Path:
        if not root.exists():
            if not create_missing:
                raise WatchRootError(f"Watch directory not found at '{root}'")
            LOGGER.warning("Watch directory not found at '%s'; creating it.", root)
            try:
                root.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                raise WatchRootError(f"Failed to create watch directory {root}: {exc}") from exc
        if not root.is_dir():
            raise WatchRootError(f"Watch path is not a directory: {root}")
        return root.resolve()


class _WatchEventHandler(FileSystemEventHandler):
    """Forward newly arrived files into the watch queue."""

    def __init__(self, root: Path, queue_handle: queue.Queue[Path]) -> None:
        self._root = root
        self._queue = queue_handle

    def on_created(self, event: FileSystemEvent) -> None:
        """Handle a filesystem create event."""
        if not event.is_directory:
            self._enqueue(os.fsdecode(event.src_path))

    def on_moved(self, event: FileSystemEvent) -> None:
        """Handle a file moved or renamed into place."""
        if not event.is_directory:
            self._enqueue(os.fsdecode(event.dest_path))

    def _enqueue(self, raw_path: str) -> None:
        path = Path(raw_path)
        try:
            relative = path.relative_to(self._root)
        except ValueError:
            return
        if _is_hidden(relative):
            return
        self._queue.put(path)


__all__ = ["DirectoryWatchSource", "WriteStabilityTracker"]
