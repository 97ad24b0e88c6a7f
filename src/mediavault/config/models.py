"""Configuration models describing mediavault settings."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class VaultBaseModel(BaseModel):
    """Shared configuration for mediavault Pydantic models."""

    model_config = ConfigDict(extra="forbid")


class PathSettings(VaultBaseModel):
    """Filesystem locations used by the ingestion service.

    Attributes:
        watch_dir: Directory monitored for newly arriving media files.
        archive_dir: Root of the date-partitioned archive.
        index_path: SQLite database holding the metadata index.
    """

    watch_dir: str = "~/mediavault/incoming"
    archive_dir: str = "~/mediavault/archive"
    index_path: str = "~/mediavault/metadata.db"


class WatchSettings(VaultBaseModel):
    """Directory watch behavior.

    Attributes:
        stability_threshold_ms: Quiet period a file's size must hold before it is ready.
        poll_interval_ms: Interval between size samples for pending files.
        recursive: Whether subdirectories of the watch root are monitored.
        create_missing: Whether a missing watch root is created instead of aborting.
    """

    stability_threshold_ms: int = Field(default=2_000, ge=0)
    poll_interval_ms: int = Field(default=100, gt=0, le=100)
    recursive: bool = True
    create_missing: bool = False


class IngestionSettings(VaultBaseModel):
    """Per-file ingestion settings.

    Attributes:
        max_workers: Size of the worker pool running ingestion tasks.
        ffprobe_binary: Executable used to probe audio/video containers.
        probe_timeout_seconds: Optional limit for a single probe call; unlimited when unset.
    """

    max_workers: int = Field(default=4, ge=1)
    ffprobe_binary: str = "ffprobe"
    probe_timeout_seconds: Optional[float] = Field(default=None, gt=0)


class LoggingSettings(VaultBaseModel):
    """Runtime logging configuration.

    Attributes:
        level: Logging verbosity level.
        file: Optional log file path; console-only logging when unset.
        max_size_mb: Maximum log size before rotation.
        backup_count: Number of historical log files to retain.
    """

    level: str = "INFO"
    file: Optional[str] = None
    max_size_mb: int = 100
    backup_count: int = 5


class VaultConfig(VaultBaseModel):
    """Top-level configuration struct for mediavault.

    Attributes:
        paths: Watch, archive, and index locations.
        watch: Directory watch settings.
        ingestion: Worker pool and probe settings.
        logging: Logging configuration.
    """

    paths: PathSettings = Field(default_factory=PathSettings)
    watch: WatchSettings = Field(default_factory=WatchSettings)
    ingestion: IngestionSettings = Field(default_factory=IngestionSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


__all__ = [
    "VaultBaseModel",
    "PathSettings",
    "WatchSettings",
    "IngestionSettings",
    "LoggingSettings",
    "VaultConfig",
]
