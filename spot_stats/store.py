"""
Snapshot Store: reads and writes snapshot bytes on disk.

Writes go to a ``.tmp`` sibling first and are moved into place with
``Path.replace()``, so an interrupted write leaves the previous snapshot (and
possibly a stale ``.tmp`` file) rather than a half-written one. There is no
locking: one process writes at a time.
"""

from pathlib import Path
from typing import Optional, Union

from loguru import logger

from .aggregator import AggregatedIndex
from .codec import SnapshotCodec
from .errors import SnapshotNotFoundError, StoreIOError


class SnapshotStore:
    """File-backed storage for a single snapshot."""

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.is_file()

    def write(self, data: bytes) -> None:
        """Replace the snapshot with ``data``."""
        tmp = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_bytes(data)
            tmp.replace(self.path)
        except OSError as e:
            raise StoreIOError(self.path, f"Cannot write snapshot {self.path}: {e}") from e
        logger.debug(f"Snapshot written: {self.path} ({len(data)} bytes)")

    def read(self) -> bytes:
        """
        Return the snapshot bytes.

        Raises SnapshotNotFoundError if there is no snapshot yet, and
        StoreIOError for any other I/O failure. Content is not validated here.
        """
        try:
            data = self.path.read_bytes()
        except FileNotFoundError as e:
            raise SnapshotNotFoundError(self.path) from e
        except OSError as e:
            raise StoreIOError(self.path, f"Cannot read snapshot {self.path}: {e}") from e
        logger.debug(f"Snapshot read: {self.path} ({len(data)} bytes)")
        return data

    def save_index(self, index: AggregatedIndex, codec: Optional[SnapshotCodec] = None) -> int:
        """Encode and write ``index``. Returns the number of bytes written."""
        data = (codec or SnapshotCodec()).encode(index)
        self.write(data)
        return len(data)

    def load_index(self, codec: Optional[SnapshotCodec] = None) -> AggregatedIndex:
        return (codec or SnapshotCodec()).decode(self.read())

    def __repr__(self) -> str:
        return f"SnapshotStore(path={self.path})"
