"""Tests for metadata extraction and creation-date resolution."""

from __future__ import annotations

import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Mapping

import pytest
from PIL import Image

from mediavault.errors import MetadataParseError, UnsupportedTypeError
from mediavault.ingestion import FFProbe, MetadataExtractor, filesystem_created_at
from mediavault.ingestion.extractors import (
    FILESYSTEM_SOURCE,
    parse_creation_time,
    parse_exif_datetime,
    resolve_image_timestamp,
)


def _jpeg(path: Path, *, modify_date: str | None = None) -> Path:
    """Write a tiny JPEG, optionally tagged with an IFD0 ``DateTime`` value.

    Args:
        path: Destination path.
        modify_date: EXIF-formatted date for tag 306.

    Returns:
        Path: The written file.
    """
    image = Image.new("RGB", (8, 8), "red")
    if modify_date is None:
        image.save(path, format="JPEG")
    else:
        exif = Image.Exif()
        exif[306] = modify_date
        image.save(path, format="JPEG", exif=exif)
    return path


class _FakeProber:
    def __init__(self, payload: Mapping[str, Any]) -> None:
        self.payload = payload
        self.calls: list[Path] = []

    def __call__(self, path: Path) -> Mapping[str, Any]:
        self.calls.append(path)
        return self.payload


def test_image_tag_priority_prefers_original_capture() -> None:
    tags = {
        "DateTime": "2022:01:01 00:00:00",
        "DateTimeDigitized": "2021:01:01 00:00:00",
        "DateTimeOriginal": "2020:01:01 12:30:00",
    }

    created, name = resolve_image_timestamp(tags)

    assert created == datetime(2020, 1, 1, 12, 30)
    assert name == "DateTimeOriginal"


def test_image_tag_priority_skips_unparseable_values() -> None:
    tags = {"DateTimeOriginal": "0000:00:00 00:00:00", "DateTimeDigitized": "2019:05:06 07:08:09"}

    created, name = resolve_image_timestamp(tags)

    assert created == datetime(2019, 5, 6, 7, 8, 9)
    assert name == "DateTimeDigitized"


def test_parsers_reject_garbage() -> None:
    assert parse_exif_datetime("yesterday") is None
    assert parse_exif_datetime(None) is None
    assert parse_creation_time("") is None
    assert parse_creation_time("not-a-date") is None


def test_parse_creation_time_handles_utc_suffix() -> None:
    parsed = parse_creation_time("2023-05-06T07:08:09.000000Z")

    assert parsed == datetime(2023, 5, 6, 7, 8, 9, tzinfo=timezone.utc)


def test_image_with_only_modify_date_uses_it(tmp_path: Path) -> None:
    """Fall back to the modify date when no capture date is recorded.

    Args:
        tmp_path: Temporary directory provided by pytest.
    """
    path = _jpeg(tmp_path / "modified.jpg", modify_date="2021:07:04 10:11:12")

    result = MetadataExtractor().extract(path)

    assert result.created == datetime(2021, 7, 4, 10, 11, 12)
    assert result.source == "DateTime"
    assert result.metadata["DateTime"] == "2021:07:04 10:11:12"


def test_image_without_exif_uses_filesystem_time(tmp_path: Path) -> None:
    path = _jpeg(tmp_path / "plain.jpeg")

    result = MetadataExtractor().extract(path)

    assert result.source == FILESYSTEM_SOURCE
    assert result.created == filesystem_created_at(path)


def test_corrupt_image_raises_parse_error(tmp_path: Path) -> None:
    path = tmp_path / "broken.jpg"
    path.write_bytes(b"definitely not a jpeg")

    with pytest.raises(MetadataParseError):
        MetadataExtractor().extract(path)


def test_media_uses_container_creation_time(tmp_path: Path) -> None:
    path = tmp_path / "clip.avi"
    path.write_bytes(b"RIFF")
    prober = _FakeProber(
        {"format": {"duration": "1.5", "tags": {"creation_time": "2022-02-03T04:05:06.000000Z"}}}
    )

    result = MetadataExtractor(prober=prober).extract(path)

    assert prober.calls == [path]
    assert result.created.date().isoformat() == "2022-02-03"
    assert result.source == "creation_time"
    assert result.metadata["duration"] == "1.5"


def test_media_without_creation_time_falls_back(tmp_path: Path) -> None:
    path = tmp_path / "voice.WAV"
    path.write_bytes(b"RIFF")
    prober = _FakeProber({"format": {"duration": "3.0", "tags": {"encoder": "Lavf"}}})

    result = MetadataExtractor(prober=prober).extract(path)

    assert result.source == FILESYSTEM_SOURCE
    assert result.created == filesystem_created_at(path)


def test_media_without_format_section_raises(tmp_path: Path) -> None:
    path = tmp_path / "odd.wav"
    path.write_bytes(b"RIFF")

    with pytest.raises(MetadataParseError):
        MetadataExtractor(prober=_FakeProber({})).extract(path)


def test_unsupported_extension_raises(tmp_path: Path) -> None:
    extractor = MetadataExtractor(prober=_FakeProber({}))

    assert extractor.supports(Path("IMG_0001.JPG"))
    assert not extractor.supports(Path("notes.png"))
    assert extractor.extensions == frozenset({"jpg", "jpeg", "avi", "wav"})
    with pytest.raises(UnsupportedTypeError):
        extractor.extract(tmp_path / "notes.png")


def test_ffprobe_missing_binary_raises_parse_error(tmp_path: Path) -> None:
    path = tmp_path / "clip.avi"
    path.write_bytes(b"RIFF")

    with pytest.raises(MetadataParseError):
        FFProbe("mediavault-no-such-ffprobe")(path)


@pytest.mark.skipif(sys.platform == "win32", reason="requires a POSIX shell script")
def test_ffprobe_parses_json_output(tmp_path: Path) -> None:
    script = tmp_path / "fake-ffprobe"
    script.write_text(
        "#!/bin/sh\n"
        "echo '{\"format\": {\"tags\": {\"creation_time\": \"2020-10-11T12:00:00Z\"}}}'\n",
        encoding="utf-8",
    )
    script.chmod(0o755)
    failing = tmp_path / "failing-ffprobe"
    failing.write_text("#!/bin/sh\necho boom >&2\nexit 1\n", encoding="utf-8")
    failing.chmod(0o755)
    media = tmp_path / "clip.avi"
    media.write_bytes(b"RIFF")

    payload = FFProbe(str(script), timeout=10)(media)

    assert payload["format"]["tags"]["creation_time"] == "2020-10-11T12:00:00Z"
    with pytest.raises(MetadataParseError, match="boom"):
        FFProbe(str(failing))(media)
