"""Tests for archive path derivation and the backup writer."""

from __future__ import annotations

import threading
from datetime import date, datetime
from pathlib import Path

import pytest

from mediavault.errors import ArchiveRootError, ArchiveWriteError
from mediavault.ingestion import BackupWriter, resolve_archive_path


def test_resolve_archive_path_partitions_by_day() -> None:
    assert resolve_archive_path(date(2024, 3, 5), "clip.avi") == "2024/03/05/clip.avi"
    assert resolve_archive_path(datetime(1999, 12, 31, 23, 59), "IMG.JPG") == "1999/12/31/IMG.JPG"


def test_resolve_archive_path_is_deterministic() -> None:
    first = resolve_archive_path(datetime(2024, 3, 5, 8, 0), "a.wav")
    second = resolve_archive_path(datetime(2024, 3, 5, 20, 30), "a.wav")

    assert first == second


def test_write_creates_intermediate_directories(tmp_path: Path) -> None:
    """Copy into a fresh day folder and keep the source in place.

    Args:
        tmp_path: Temporary directory provided by pytest.
    """
    source = tmp_path / "incoming" / "clip.avi"
    source.parent.mkdir()
    source.write_bytes(b"RIFF-avi-bytes")
    writer = BackupWriter(tmp_path / "archive")
    writer.prepare()

    result = writer.write(source, "2024/03/05/clip.avi")

    destination = tmp_path / "archive" / "2024" / "03" / "05" / "clip.avi"
    assert result.copied is True
    assert result.relative_path == "2024/03/05/clip.avi"
    assert destination.read_bytes() == b"RIFF-avi-bytes"
    assert source.exists()


def test_write_never_overwrites_existing_backup(tmp_path: Path) -> None:
    source = tmp_path / "photo.jpg"
    source.write_bytes(b"new")
    writer = BackupWriter(tmp_path / "archive")
    destination = writer.destination_for("2020/01/02/photo.jpg")
    destination.parent.mkdir(parents=True)
    destination.write_bytes(b"original")

    result = writer.write(source, "2020/01/02/photo.jpg")

    assert result.copied is False
    assert destination.read_bytes() == b"original"


def test_concurrent_writes_to_same_destination_copy_once(tmp_path: Path) -> None:
    source = tmp_path / "same.wav"
    source.write_bytes(b"x" * 4096)
    writer = BackupWriter(tmp_path / "archive")
    results = []

    def _write() -> None:
        results.append(writer.write(source, "2021/06/07/same.wav"))

    threads = [threading.Thread(target=_write) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert sum(1 for result in results if result.copied) == 1
    assert len(results) == 8
    assert writer.active_locks == 0


def test_write_missing_source_raises_and_leaves_no_partial(tmp_path: Path) -> None:
    writer = BackupWriter(tmp_path / "archive")

    with pytest.raises(ArchiveWriteError):
        writer.write(tmp_path / "gone.jpg", "2024/01/01/gone.jpg")

    assert not writer.destination_for("2024/01/01/gone.jpg").exists()
    assert writer.active_locks == 0


def test_prepare_rejects_file_as_root(tmp_path: Path) -> None:
    blocker = tmp_path / "archive"
    blocker.write_text("not a directory", encoding="utf-8")

    with pytest.raises(ArchiveRootError):
        BackupWriter(blocker).prepare()


def test_destination_locks_are_released_after_each_write(tmp_path: Path) -> None:
    """Long-running writers must not accumulate one lock per archived path.

    Args:
        tmp_path: Temporary directory provided by pytest.
    """
    source = tmp_path / "take.wav"
    source.write_bytes(b"RIFF")
    writer = BackupWriter(tmp_path / "archive")

    for number in range(500):
        writer.write(source, f"2024/03/05/clip{number}.wav")

    assert writer.active_locks == 0
    assert len(list((tmp_path / "archive" / "2024" / "03" / "05").iterdir())) == 500
