"""Embedded metadata extraction and creation-date resolution."""

from __future__ import annotations

import json
import logging
import subprocess
from abc import ABC, abstractmethod
from datetime import datetime
from numbers import Rational
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Mapping, Optional, Tuple

from PIL import ExifTags, Image

from mediavault.errors import MetadataParseError, UnsupportedTypeError

from .models import ExtractionResult

LOGGER = logging.getLogger(__name__)

FILESYSTEM_SOURCE = "filesystem"

# Tag names as Pillow reports them: original capture, create, modify.
IMAGE_DATE_TAGS = ("DateTimeOriginal", "DateTimeDigitized", "DateTime")
_EXIF_DATE_FORMAT = "%Y:%m:%d %H:%M:%S"
_EXIF_IFD = 0x8769
_IFD_POINTERS = {0x8769, 0x8825, 0xA005}

Prober = Callable[[Path], Mapping[str, Any]]


def filesystem_created_at(path: Path) -> datetime:
    """Return the file's creation time as reported by the file system.

    Uses ``st_birthtime`` where the platform provides it and ``st_ctime``
    otherwise. The value is a naive local datetime.
    """
    stat = path.stat()
    birth = getattr(stat, "st_birthtime", None)
    return datetime.fromtimestamp(birth if birth else stat.st_ctime)


def parse_exif_datetime(value: Any) -> Optional[datetime]:
    """Parse an EXIF ``YYYY:MM:DD HH:MM:SS`` value, returning ``None`` when invalid."""
    if not isinstance(value, str):
        return None
    text = value.strip().rstrip("\x00")
    try:
        return datetime.strptime(text[:19], _EXIF_DATE_FORMAT)
    except ValueError:
        return None


def parse_creation_time(value: Any) -> Optional[datetime]:
    """Parse an ISO 8601 ``creation_time`` tag, returning ``None`` when invalid."""
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


def resolve_image_timestamp(tags: Mapping[str, Any]) -> Tuple[Optional[datetime], Optional[str]]:
    """Return the first parseable date tag in priority order and its name."""
    for name in IMAGE_DATE_TAGS:
        parsed = parse_exif_datetime(tags.get(name))
        if parsed is not None:
            return parsed, name
    return None, None


def resolve_media_timestamp(format_section: Mapping[str, Any]) -> Optional[datetime]:
    """Return the container's ``creation_time`` tag when present and parseable."""
    tags = format_section.get("tags")
    if not isinstance(tags, Mapping):
        return None
    value = tags.get("creation_time")
    if value is None:
        value = next(
            (tag_value for key, tag_value in tags.items() if str(key).lower() == "creation_time"),
            None,
        )
    return parse_creation_time(value)


def _json_safe(value: Any) -> Any:
    if isinstance(value, bytes):
        try:
            return value.decode("ascii").rstrip("\x00")
        except UnicodeDecodeError:
            return value.hex()
    if isinstance(value, str):
        return value.rstrip("\x00")
    if isinstance(value, (bool, int, float)) or value is None:
        return value
    if isinstance(value, Rational):
        try:
            return float(value)
        except ZeroDivisionError:
            return None
    if isinstance(value, Mapping):
        return {str(key): _json_safe(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_json_safe(item) for item in value]
    return str(value)


def _named_tags(items: Iterable[Tuple[int, Any]]) -> Dict[str, Any]:
    return {
        ExifTags.TAGS.get(tag_id, str(tag_id)): _json_safe(value)
        for tag_id, value in items
        if tag_id not in _IFD_POINTERS
    }


class MetadataHandler(ABC):
    """Extract metadata for one family of file extensions."""

    extensions: Tuple[str, ...] = ()

    @abstractmethod
    def extract(self, path: Path) -> ExtractionResult:
        """Return metadata and the resolved creation timestamp for ``path``.

        Raises:
            MetadataParseError: If the file's tags cannot be read.
        """


class ImageMetadataHandler(MetadataHandler):
    """Read EXIF tags from JPEG images with Pillow."""

    extensions = ("jpg", "jpeg")

    def extract(self, path: Path) -> ExtractionResult:
        tags = self.read_tags(path)
        created, source = resolve_image_timestamp(tags)
        if created is None:
            created, source = filesystem_created_at(path), FILESYSTEM_SOURCE
        return ExtractionResult(metadata=tags, created=created, source=source)

    def read_tags(self, path: Path) -> Dict[str, Any]:
        """Return IFD0 and Exif sub-IFD tags keyed by their EXIF names."""
        try:
            with Image.open(path) as image:
                exif = image.getexif()
                tags = _named_tags(exif.items())
                tags.update(_named_tags(exif.get_ifd(_EXIF_IFD).items()))
        except (OSError, SyntaxError, ValueError, Image.DecompressionBombError) as exc:
            raise MetadataParseError(f"Unable to read EXIF tags from {path.name}: {exc}") from exc
        return tags


class FFProbe:
    """Run ``ffprobe`` and return its JSON description of a container."""

    def __init__(self, binary: str = "ffprobe", *, timeout: float | None = None) -> None:
        """Configure the probe.

        Args:
            binary: ffprobe executable name or path.
            timeout: Optional limit in seconds; the call may block indefinitely when ``None``.
        """
        self.binary = binary
        self.timeout = timeout

    def __call__(self, path: Path) -> Dict[str, Any]:
        cmd = [
            self.binary,
            "-v",
            "error",
            "-print_format",
            "json",
            "-show_format",
            str(path),
        ]
        LOGGER.debug("Probing %s", path)
        try:
            completed = subprocess.run(
                cmd,
                check=True,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except FileNotFoundError as exc:
            raise MetadataParseError(f"ffprobe executable not found: {self.binary}") from exc
        except subprocess.TimeoutExpired as exc:
            raise MetadataParseError(
                f"ffprobe timed out after {self.timeout}s on {path.name}"
            ) from exc
        except subprocess.CalledProcessError as exc:
            detail = (exc.stderr or "").strip() or f"exit status {exc.returncode}"
            raise MetadataParseError(f"ffprobe failed on {path.name}: {detail}") from exc

        try:
            payload = json.loads(completed.stdout or "{}")
        except json.JSONDecodeError as exc:
            raise MetadataParseError(f"ffprobe returned invalid JSON for {path.name}") from exc
        if not isinstance(payload, dict):
            raise MetadataParseError(f"ffprobe returned unexpected output for {path.name}")
        return payload


class MediaMetadataHandler(MetadataHandler):
    """Describe audio/video containers through a probe."""

    extensions = ("avi", "wav")

    def __init__(self, prober: Prober | None = None) -> None:
        self._prober: Prober = prober or FFProbe()

    def extract(self, path: Path) -> ExtractionResult:
        try:
            payload = self._prober(path)
        except (OSError, ValueError) as exc:
            raise MetadataParseError(f"Unable to probe {path.name}: {exc}") from exc

        format_section = payload.get("format")
        if not isinstance(format_section, Mapping):
            raise MetadataParseError(f"Probe output for {path.name} has no format section")

        metadata = _json_safe(format_section)
        created = resolve_media_timestamp(format_section)
        if created is None:
            return ExtractionResult(
                metadata=metadata, created=filesystem_created_at(path), source=FILESYSTEM_SOURCE
            )
        return ExtractionResult(metadata=metadata, created=created, source="creation_time")


def default_handlers(prober: Prober | None = None) -> list[MetadataHandler]:
    """Return the built-in image and audio/video handlers."""
    return [ImageMetadataHandler(), MediaMetadataHandler(prober)]


class MetadataExtractor:
    """Dispatch metadata extraction by lowercase file extension.

    Additional file kinds are supported by registering further handlers.
    """

    def __init__(
        self,
        handlers: Iterable[MetadataHandler] | None = None,
        *,
        prober: Prober | None = None,
    ) -> None:
        self._handlers: Dict[str, MetadataHandler] = {}
        for handler in handlers if handlers is not None else default_handlers(prober):
            self.register(handler)

    def register(self, handler: MetadataHandler) -> None:
        """Route every extension listed by ``handler`` to it."""
        for extension in handler.extensions:
            self._handlers[extension.lower().lstrip(".")] = handler

    @property
    def extensions(self) -> frozenset[str]:
        """Return the supported extensions, lowercase and without dots."""
        return frozenset(self._handlers)

    def supports(self, path: Path) -> bool:
        return path.suffix.lower().lstrip(".") in self._handlers

    def extract(self, path: Path) -> ExtractionResult:
        """Return metadata and creation timestamp for ``path``.

        Raises:
            UnsupportedTypeError: If no handler is registered for the extension.
            MetadataParseError: If the handler cannot read the file's tags.
        """
        extension = path.suffix.lower().lstrip(".")
        handler = self._handlers.get(extension)
        if handler is None:
            raise UnsupportedTypeError(f"Unsupported file type: .{extension}")
        result = handler.extract(path)
        LOGGER.debug(
            "Resolved %s creation time %s from %s", path.name, result.created, result.source
        )
        return result


__all__ = [
    "FILESYSTEM_SOURCE",
    "IMAGE_DATE_TAGS",
    "FFProbe",
    "ImageMetadataHandler",
    "MediaMetadataHandler",
    "MetadataExtractor",
    "MetadataHandler",
    "default_handlers",
    "filesystem_created_at",
    "parse_creation_time",
    "parse_exif_datetime",
    "resolve_image_timestamp",
    "resolve_media_timestamp",
]
