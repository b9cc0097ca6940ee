"""
Snapshot Codec: AggregatedIndex <-> bytes.

Layout:

    offset  size  field
    0       4     magic  b"SPST"
    4       1     format version (currently 1)
    5       1     flags  (bit 0: payload is DEFLATE-compressed)
    6       ...   payload

The payload is MessagePack. Groups are written as nested maps so that shared
key prefixes are stored once:

    {username: {country: {kind_tag: {level1: {level2: {level3: summary}}}}}}

    summary = [total_ms_played, username, track_uri, episode_uri, event_log]
    event_log = {"YYYY-MM-DDTHH:MM:SSZ": event, ...}
    event = [platform, ms_played, reason_start, reason_end, shuffle, skipped,
             offline, ip_addr, user_agent, offline_timestamp, incognito_mode]

Durations are integer milliseconds and timestamps are fixed-format strings.
Decoding is strict: anything that does not match the layout above raises
CodecError and nothing is returned.
"""

import struct
import zlib
from typing import Any, List, Tuple

import msgpack
from msgpack.exceptions import UnpackException

from .aggregator import AggregatedIndex
from .errors import CodecError
from .models import (
    ContentKind,
    EventDetail,
    GroupKey,
    Summary,
    format_timestamp,
    parse_timestamp,
)

MAGIC = b"SPST"
FORMAT_VERSION = 1
FLAG_DEFLATE = 0x01
_KNOWN_FLAGS = FLAG_DEFLATE
_HEADER = struct.Struct(">4sBB")

_SUMMARY_FIELDS = 5
_EVENT_FIELDS = 11


class SnapshotCodec:
    """Encodes and decodes snapshots, compressing the payload when enabled."""

    def __init__(self, compress: bool = True, level: int = 9) -> None:
        self.compress = compress
        self.level = level

    def encode(self, index: AggregatedIndex) -> bytes:
        wire = _index_to_wire(index)
        try:
            payload = msgpack.packb(wire, use_bin_type=True)
        except (TypeError, ValueError, OverflowError) as e:
            raise CodecError(f"Failed to encode snapshot: {e}") from e

        flags = 0
        if self.compress:
            try:
                payload = zlib.compress(payload, self.level)
            except zlib.error as e:
                raise CodecError(f"Failed to compress snapshot: {e}") from e
            flags |= FLAG_DEFLATE
        return _HEADER.pack(MAGIC, FORMAT_VERSION, flags) + payload

    def decode(self, data: bytes) -> AggregatedIndex:
        # The header decides whether the payload is compressed, not self.compress.
        if len(data) < _HEADER.size:
            raise CodecError(
                f"Snapshot truncated: {len(data)} bytes, header needs {_HEADER.size}"
            )
        magic, version, flags = _HEADER.unpack_from(data)
        if magic != MAGIC:
            raise CodecError(f"Not a spot-stats snapshot (magic {magic!r})")
        if version != FORMAT_VERSION:
            raise CodecError(
                f"Unsupported snapshot format version {version} (expected {FORMAT_VERSION})"
            )
        if flags & ~_KNOWN_FLAGS:
            raise CodecError(f"Unknown snapshot flags: {flags:#04x}")

        payload = data[_HEADER.size:]
        if flags & FLAG_DEFLATE:
            try:
                payload = zlib.decompress(payload)
            except zlib.error as e:
                raise CodecError(f"Corrupt compressed payload: {e}") from e

        try:
            wire = msgpack.unpackb(
                payload, raw=False, use_list=False, object_pairs_hook=list,
            )
        except (ValueError, TypeError, UnpackException) as e:
            raise CodecError(f"Corrupt snapshot payload: {e}") from e

        return _wire_to_index(wire)


def encode(index: AggregatedIndex, compress: bool = True) -> bytes:
    return SnapshotCodec(compress=compress).encode(index)


def decode(data: bytes) -> AggregatedIndex:
    return SnapshotCodec().decode(data)


# ---------------------------------------------------------------------------
# Index -> wire
# ---------------------------------------------------------------------------

def _index_to_wire(index: AggregatedIndex) -> dict:
    out: dict = {}
    for username, countries in index.nested().items():
        out[username] = {
            country: {
                kind.tag: {
                    l1: {
                        l2: {
                            l3: _summary_to_wire(summary)
                            for l3, summary in tracks.items()
                        }
                        for l2, tracks in albums.items()
                    }
                    for l1, albums in artists.items()
                }
                for kind, artists in kinds.items()
            }
            for country, kinds in countries.items()
        }
    return out


def _summary_to_wire(summary: Summary) -> list:
    return [
        summary.total_ms_played,
        summary.username,
        summary.track_uri,
        summary.episode_uri,
        {
            format_timestamp(ts): _event_to_wire(event)
            for ts, event in sorted(summary.event_log.items())
        },
    ]


def _event_to_wire(event: EventDetail) -> list:
    return [
        event.platform,
        event.ms_played,
        event.reason_start,
        event.reason_end,
        event.shuffle,
        event.skipped,
        event.offline,
        str(event.ip_addr) if event.ip_addr is not None else None,
        event.user_agent,
        event.offline_timestamp,
        event.incognito_mode,
    ]


# ---------------------------------------------------------------------------
# Wire -> index
# ---------------------------------------------------------------------------

def _pairs(obj: Any, where: str) -> List[Tuple[Any, Any]]:
    """Entries of a decoded map; maps arrive as lists of pairs."""
    if not isinstance(obj, list):
        raise CodecError(f"Expected a map at {where}, got {type(obj).__name__}")
    seen = set()
    for key, _ in obj:
        if not isinstance(key, str):
            raise CodecError(f"Expected string keys at {where}, got {type(key).__name__}")
        if key in seen:
            raise CodecError(f"Duplicate key {key!r} at {where}")
        seen.add(key)
    return obj


def _array(obj: Any, length: int, where: str) -> tuple:
    if not isinstance(obj, tuple) or len(obj) != length:
        raise CodecError(f"Expected an array of {length} items at {where}")
    return obj


def _check(value: Any, kind: type, where: str, optional: bool = True) -> Any:
    if value is None and optional:
        return None
    # bool is an int subclass; never accept it where a number is expected.
    if kind is int and isinstance(value, bool):
        raise CodecError(f"Expected int at {where}, got bool")
    if not isinstance(value, kind):
        raise CodecError(f"Expected {kind.__name__} at {where}, got {type(value).__name__}")
    return value


def _wire_to_index(wire: Any) -> AggregatedIndex:
    index = AggregatedIndex()
    for username, countries in _pairs(wire, "root"):
        for country, kinds in _pairs(countries, f"{username}"):
            for tag, artists in _pairs(kinds, f"{username}/{country}"):
                try:
                    kind = ContentKind.from_tag(tag)
                except ValueError as e:
                    raise CodecError(str(e)) from e
                for l1, albums in _pairs(artists, f"{username}/{country}/{tag}"):
                    for l2, tracks in _pairs(albums, f"{username}/{country}/{tag}/{l1}"):
                        for l3, raw in _pairs(tracks, f"{username}/{country}/{tag}/{l1}/{l2}"):
                            key = GroupKey(username, country, kind, l1, l2, l3)
                            index.merge_insert(key, _wire_to_summary(raw, key))
    return index


def _wire_to_summary(raw: Any, key: GroupKey) -> Summary:
    where = "/".join(str(part) for part in key)
    total, username, track_uri, episode_uri, log = _array(raw, _SUMMARY_FIELDS, where)
    event_log = {}
    for ts_text, event in _pairs(log, f"{where}/event_log"):
        try:
            ts = parse_timestamp(ts_text)
        except ValueError as e:
            raise CodecError(f"Bad timestamp {ts_text!r} at {where}") from e
        # strptime accepts unpadded fields; only the canonical spelling is valid.
        if format_timestamp(ts) != ts_text:
            raise CodecError(f"Non-canonical timestamp {ts_text!r} at {where}")
        if ts in event_log:
            raise CodecError(f"Duplicate event timestamp {ts_text!r} at {where}")
        event_log[ts] =_wire_to_event(event, f"{where}/{ts_text}")
    try:
        return Summary(
            username=_check(username, str, f"{where}/username", optional=False),
            total_ms_played=_check(total, int, f"{where}/total", optional=False),
            track_uri=_check(track_uri, str, f"{where}/track_uri"),
            episode_uri=_check(episode_uri, str, f"{where}/episode_uri"),
            event_log=event_log,
        )
    except ValueError as e:
        raise CodecError(f"Invalid summary at {where}: {e}") from e


def _wire_to_event(raw: Any, where: str) -> EventDetail:
    (platform, ms_played, reason_start, reason_end, shuffle, skipped, offline,
     ip_addr, user_agent, offline_timestamp, incognito) = _array(raw, _EVENT_FIELDS, where)
    try:
        return EventDetail(
            platform=_check(platform, str, f"{where}/platform", optional=False),
            ms_played=_check(ms_played, int, f"{where}/ms_played", optional=False),
            reason_start=_check(reason_start, str, f"{where}/reason_start"),
            reason_end=_check(reason_end, str, f"{where}/reason_end"),
            shuffle=_check(shuffle, bool, f"{where}/shuffle"),
            skipped=_check(skipped, bool, f"{where}/skipped"),
            offline=_check(offline, bool, f"{where}/offline"),
            ip_addr=_check(ip_addr, str, f"{where}/ip_addr"),
            user_agent=_check(user_agent, str, f"{where}/user_agent"),
            offline_timestamp=_check(offline_timestamp, int, f"{where}/offline_timestamp"),
            incognito_mode=_check(incognito, bool, f"{where}/incognito_mode"),
        )
    except ValueError as e:
        raise CodecError(f"Invalid event at {where}: {e}") from e
