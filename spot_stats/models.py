"""
Data Models for spot-stats

Playback records as they come out of a Spotify extended streaming history
export, and the aggregated per-group summaries the index is built from.
"""

from datetime import datetime, timezone
from enum import IntEnum
from typing import Dict, NamedTuple, Optional

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    IPvAnyAddress,
    field_validator,
)

from .errors import MergeIntegrityError


# ---------------------------------------------------------------------------
# Timestamps
# ---------------------------------------------------------------------------

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


def parse_timestamp(value: str) -> datetime:
    """Parse an export timestamp such as ``2023-02-22T07:01:41Z`` (naive UTC)."""
    return datetime.strptime(value, TIMESTAMP_FORMAT)


def format_timestamp(value: datetime) -> str:
    return value.strftime(TIMESTAMP_FORMAT)


def _normalise_timestamp(value: datetime) -> datetime:
    # Naive UTC, whole seconds.
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.replace(microsecond=0)


# ---------------------------------------------------------------------------
# Content kinds
# ---------------------------------------------------------------------------

class ContentKind(IntEnum):
    """What a playback record represents. Orders song < episode < other."""

    SONG = 0
    PODCAST_EPISODE = 1
    OTHER_OR_VIDEO = 2

    @property
    def tag(self) -> str:
        return KIND_TO_TAG[self]

    @classmethod
    def from_tag(cls, tag: str) -> "ContentKind":
        try:
            return TAG_TO_KIND[tag]
        except KeyError:
            raise ValueError(f"Unknown content kind tag: {tag!r}") from None


KIND_TO_TAG: dict[ContentKind, str] = {
    ContentKind.SONG: "song",
    ContentKind.PODCAST_EPISODE: "episode",
    ContentKind.OTHER_OR_VIDEO: "other",
}
TAG_TO_KIND: dict[str, ContentKind] = {v: k for k, v in KIND_TO_TAG.items()}


# ---------------------------------------------------------------------------
# Raw playback record
# ---------------------------------------------------------------------------

class Record(BaseModel):
    """One playback event from the export. Field names follow the export."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    ts: datetime = Field(..., description="When the stream ended (UTC, second precision)")
    username: str = Field(..., description="Spotify username")
    platform: str = Field(..., description="Platform used, e.g. 'Android OS'")
    ms_played: int = Field(..., ge=0, description="Milliseconds the stream was played")
    conn_country: str = Field(..., description="Country code where the stream was played")
    ip_addr_decrypted: Optional[IPvAnyAddress] = Field(
        None, validation_alias=AliasChoices("ip_addr_decrypted", "ip_addr"),
    )
    user_agent_decrypted: Optional[str] = None
    master_metadata_track_name: Optional[str] = None
    master_metadata_album_artist_name: Optional[str] = None
    master_metadata_album_album_name: Optional[str] = None
    spotify_track_uri: Optional[str] = None
    episode_name: Optional[str] = None
    episode_show_name: Optional[str] = None
    spotify_episode_uri: Optional[str] = None
    reason_start: Optional[str] = None
    reason_end: Optional[str] = None
    shuffle: Optional[bool] = None
    skipped: Optional[bool] = None
    offline: Optional[bool] = None
    offline_timestamp: Optional[int] = None
    incognito_mode: Optional[bool] = None

    @field_validator("ts", mode="before")
    @classmethod
    def _parse_ts(cls, v):
        if isinstance(v, str):
            return parse_timestamp(v)
        return v

    @field_validator("ts")
    @classmethod
    def _naive_utc(cls, v: datetime) -> datetime:
        return _normalise_timestamp(v)


# ---------------------------------------------------------------------------
# Aggregated data
# ---------------------------------------------------------------------------

class GroupKey(NamedTuple):
    """Aggregation bucket. Tuple ordering gives the index's iteration order."""

    username: str
    conn_country: str
    kind: ContentKind
    level1: str  # artist
    level2: str  # album or show
    level3: str  # track or episode


class EventDetail(BaseModel):
    """Everything recorded about a single play, minus the grouping fields."""

    model_config = ConfigDict(frozen=True)

    platform: str
    ms_played: int = Field(..., ge=0)
    reason_start: Optional[str] = None
    reason_end: Optional[str] = None
    shuffle: Optional[bool] = None
    skipped: Optional[bool] = None
    offline: Optional[bool] = None
    ip_addr: Optional[IPvAnyAddress] = None
    user_agent: Optional[str] = None
    offline_timestamp: Optional[int] = None
    incognito_mode: Optional[bool] = None

    @classmethod
    def from_record(cls, record: Record) -> "EventDetail":
        return cls(
            platform=record.platform,
            ms_played=record.ms_played,
            reason_start=record.reason_start,
            reason_end=record.reason_end,
            shuffle=record.shuffle,
            skipped=record.skipped,
            offline=record.offline,
            ip_addr=record.ip_addr_decrypted,
            user_agent=record.user_agent_decrypted,
            offline_timestamp=record.offline_timestamp,
            incognito_mode=record.incognito_mode,
        )


class Summary(BaseModel):
    """
    Accumulated state for one group.

    ``username`` and the URIs come from the first contributing play and are
    never overwritten by later merges. ``event_log`` maps each play's end
    timestamp to its detail; timestamps are unique within a group.
    """

    username: str
    total_ms_played: int = Field(0, ge=0)
    track_uri: Optional[str] = None
    episode_uri: Optional[str] = None
    event_log: Dict[datetime, EventDetail] = Field(default_factory=dict)

    @classmethod
    def from_record(cls, record: Record) -> "Summary":
        """Contribution of a single play."""
        return cls(
            username=record.username,
            total_ms_played=record.ms_played,
            track_uri=record.spotify_track_uri,
            episode_uri=record.spotify_episode_uri,
            event_log={record.ts: EventDetail.from_record(record)},
        )

    @property
    def play_count(self) -> int:
        return len(self.event_log)

    def absorb(self, other: "Summary", key: tuple = ()) -> None:
        """
        Merge ``other`` into this summary in place.

        Raises MergeIntegrityError if the two event logs share a timestamp;
        nothing is modified in that case.
        """
        for ts in other.event_log:
            if ts in self.event_log:
                raise MergeIntegrityError(key, ts)
        self.total_ms_played += other.total_ms_played
        self.event_log.update(other.event_log)

    def merged(self, other: "Summary", key: tuple = ()) -> "Summary":
        """Return a new summary combining both; identity fields from ``self``."""
        out = self.copy_summary()
        out.absorb(other, key)
        out.event_log = dict(sorted(out.event_log.items()))
        return out

    def copy_summary(self) -> "Summary":
        # EventDetail is frozen, so copying the log mapping is enough.
        return self.model_copy(update={"event_log": dict(self.event_log)})

    def first_played(self) -> Optional[datetime]:
        return min(self.event_log) if self.event_log else None

    def last_played(self) -> Optional[datetime]:
        return max(self.event_log) if self.event_log else None
