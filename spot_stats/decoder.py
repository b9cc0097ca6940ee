"""
Record Decoder for Spotify extended streaming history exports.

An export is a directory of JSON files (``Streaming_History_Audio_*.json``
and friends), each holding one array of playback records. Files are read in
sorted name order and each file is parsed and validated completely before
any of its records are handed out.
"""

import json
from pathlib import Path
from typing import Iterator, List, Tuple, Union

from loguru import logger
from pydantic import ValidationError

from .errors import DecodeInputError
from .models import Record


def export_files(source_dir: Union[str, Path]) -> List[Path]:
    """The ``*.json`` files of an export directory, sorted by name."""
    folder = Path(source_dir)
    if not folder.is_dir():
        raise DecodeInputError(folder, "not a directory")
    return sorted(p for p in folder.glob("*.json") if p.is_file())


def read_export_file(path: Union[str, Path]) -> List[Record]:
    """Parse and validate one export file."""
    path = Path(path)
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as e:
        raise DecodeInputError(path, f"unreadable ({e})") from e
    except UnicodeDecodeError as e:
        raise DecodeInputError(path, f"not UTF-8 ({e})") from e

    try:
        document = json.loads(content)
    except json.JSONDecodeError as e:
        raise DecodeInputError(path, f"invalid JSON ({e})") from e

    if not isinstance(document, list):
        raise DecodeInputError(
            path, f"expected a JSON array of records, got {type(document).__name__}"
        )

    records = []
    for i, raw in enumerate(document):
        try:
            records.append(Record.model_validate(raw))
        except ValidationError as e:
            raise DecodeInputError(path, str(e), index=i) from e
    logger.debug(f"Decoded {len(records)} records from {path.name}")
    return records


def iter_partitions(source_dir: Union[str, Path]) -> Iterator[Tuple[Path, List[Record]]]:
    """Yield ``(path, records)`` for every export file, in sorted name order."""
    files = export_files(source_dir)
    if not files:
        logger.warning(f"No JSON files found in {source_dir}")
    for path in files:
        yield path, read_export_file(path)


def iter_records(source_dir: Union[str, Path]) -> Iterator[Record]:
    """Yield every record of an export directory, in decode order."""
    for _, records in iter_partitions(source_dir):
        yield from records
