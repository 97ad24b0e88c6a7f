"""Events emitted by the directory watch source."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path


@dataclass(slots=True, frozen=True)
class ReadyFile:
    """A file that appeared under the watch root and stopped changing size."""

    path: Path


__all__ = ["ReadyFile"]
