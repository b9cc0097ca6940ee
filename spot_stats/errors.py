"""
Error types for the spot-stats pipeline.

Every failure the core can surface has its own class so callers (the CLI,
or anything embedding ``load_or_build``) can tell them apart:

  DecodeInputError      - a source export file is unreadable or malformed
  MergeIntegrityError   - two plays collide on group key and timestamp
  CodecError            - snapshot bytes are invalid, or encoding failed
  StoreIOError          - the snapshot file could not be read or written
  SnapshotNotFoundError - no snapshot yet; the caller may rebuild from source

Records that cannot be classified are not errors; they are skipped and
counted by the aggregator.
"""

from datetime import datetime
from pathlib import Path
from typing import Optional


class SpotStatsError(Exception):
    """Base class for all spot-stats errors."""


class DecodeInputError(SpotStatsError):
    """A source export file could not be read or parsed."""

    def __init__(self, path: Path, reason: str, index: Optional[int] = None) -> None:
        self.path = path
        self.reason = reason
        self.index = index
        where = f"{path}" if index is None else f"{path} (record {index})"
        super().__init__(f"Cannot decode {where}: {reason}")


class MergeIntegrityError(SpotStatsError):
    """Two contributions for the same group share an event timestamp."""

    def __init__(self, key: tuple, timestamp: datetime) -> None:
        self.key = key
        self.timestamp = timestamp
        super().__init__(
            f"Duplicate event at {timestamp:%Y-%m-%dT%H:%M:%SZ} for group {key}"
        )


class CodecError(SpotStatsError):
    """Snapshot bytes are structurally invalid, or could not be produced."""


class StoreIOError(SpotStatsError):
    """The snapshot file could not be read or written."""

    def __init__(self, path: Path, message: str) -> None:
        self.path = path
        super().__init__(message)


class SnapshotNotFoundError(StoreIOError):
    """No snapshot exists at the configured path."""

    def __init__(self, path: Path) -> None:
        super().__init__(path, f"Snapshot not found: {path}")
