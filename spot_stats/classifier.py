"""
Key Classifier

Decides what kind of content a playback record represents and which three
labels it is grouped under:

  Song            artist / album / track
  PodcastEpisode  artist / show  / episode
  OtherOrVideo    no grouping labels; such records are not indexed

The kind is decided first and never revisited: a record with both an artist
and an album is a song even if it also carries an episode name.
"""

from typing import NamedTuple, Optional, Tuple

from .models import ContentKind, Record


class Classification(NamedTuple):
    kind: ContentKind
    level1: str
    level2: str
    level3: str


def classify_kind(record: Record) -> ContentKind:
    """Content kind of a record, from which identifying fields are present."""
    if (record.master_metadata_album_artist_name is not None
            and record.master_metadata_album_album_name is not None):
        return ContentKind.SONG
    if record.episode_name is not None:
        return ContentKind.PODCAST_EPISODE
    return ContentKind.OTHER_OR_VIDEO


def group_labels(
    record: Record, kind: ContentKind
) -> Tuple[Optional[str], Optional[str], Optional[str]]:
    """The three label fields used for ``kind``, possibly missing."""
    if kind is ContentKind.SONG:
        return (
            record.master_metadata_album_artist_name,
            record.master_metadata_album_album_name,
            record.master_metadata_track_name,
        )
    if kind is ContentKind.PODCAST_EPISODE:
        return (
            record.master_metadata_album_artist_name,
            record.episode_show_name,
            record.episode_name,
        )
    return (None, None, None)


def classify(record: Record) -> Optional[Classification]:
    """
    Classify a record and select its grouping labels.

    Returns None when any of the three labels for the detected kind is
    missing (an empty string counts as present). OtherOrVideo records always
    return None.
    """
    kind = classify_kind(record)
    level1, level2, level3 = group_labels(record, kind)
    if level1 is None or level2 is None or level3 is None:
        return None
    return Classification(kind, level1, level2, level3)
