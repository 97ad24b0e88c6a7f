"""Directory watching for newly arrived files."""

from .models import ReadyFile
from .service import DirectoryWatchSource, WriteStabilityTracker

__all__ = ["DirectoryWatchSource", "ReadyFile", "WriteStabilityTracker"]
