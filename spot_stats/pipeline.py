"""
load_or_build: the entry point handed to presentation.

On a warm start the snapshot is decoded and returned as is. On a cold start
(no snapshot, or ``rebuild=True``) the export directory is decoded, folded and
saved before being returned.
"""

from pathlib import Path
from typing import Optional, Union

from loguru import logger

from .aggregator import AggregatedIndex, fold
from .codec import SnapshotCodec
from .decoder import iter_records
from .errors import SnapshotNotFoundError
from .store import SnapshotStore


def build_index(source_dir: Union[str, Path]) -> AggregatedIndex:
    """Decode and fold an export directory."""
    logger.info(f"Building index from {source_dir}")
    index = fold(iter_records(source_dir))
    logger.info(f"Built {index!r}")
    return index


def load_or_build(
    source_dir: Optional[Union[str, Path]],
    snapshot_path: Union[str, Path],
    *,
    compress: bool = True,
    rebuild: bool = False,
) -> AggregatedIndex:
    """
    Return the aggregated index, from the snapshot when there is one.

    Args:
        source_dir:    Export directory. Only read on a cold start.
        snapshot_path: Snapshot file to load from and save to.
        compress:      Compress the snapshot when (re)building.
        rebuild:       Ignore any existing snapshot and rebuild from source.

    Raises:
        SnapshotNotFoundError: no snapshot and no ``source_dir`` to build from.
        ValueError:            ``rebuild`` requested without ``source_dir``.
        CodecError:            the snapshot exists but is corrupt.
        DecodeInputError, MergeIntegrityError, StoreIOError: see spot_stats.errors.
    """
    store = SnapshotStore(snapshot_path)
    codec = SnapshotCodec(compress=compress)

    if rebuild:
        if source_dir is None:
            raise ValueError("Rebuilding the snapshot requires a source directory")
    else:
        try:
            index = store.load_index(codec)
        except SnapshotNotFoundError:
            if source_dir is None:
                raise
            logger.info(f"No snapshot at {store.path}, building from source")
        else:
            logger.info(f"Loaded {index!r} from {store.path}")
            return index

    index = build_index(source_dir)
    size = store.save_index(index, codec)
    logger.info(f"Saved snapshot to {store.path} ({size} bytes)")
    return index
