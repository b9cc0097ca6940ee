"""Unit tests for the Key Classifier."""

import pytest
from spot_stats.classifier import Classification, classify, classify_kind
from spot_stats.models import ContentKind, Record


def make_record(artist=None, album=None, track=None, episode=None, show=None):
    return Record(
        ts="2023-01-01T10:00:00Z",
        username="user",
        platform="Android OS",
        ms_played=1000,
        conn_country="NL",
        master_metadata_album_artist_name=artist,
        master_metadata_album_album_name=album,
        master_metadata_track_name=track,
        episode_name=episode,
        episode_show_name=show,
    )


class TestClassifyKind:
    def test_artist_and_album_is_song(self):
        assert classify_kind(make_record(artist="A", album="B")) == ContentKind.SONG

    def test_song_wins_over_episode(self):
        record = make_record(artist="A", album="B", episode="E")
        assert classify_kind(record) == ContentKind.SONG

    def test_episode_only_is_podcast(self):
        assert classify_kind(make_record(episode="E")) == ContentKind.PODCAST_EPISODE

    def test_artist_without_album_and_episode_is_podcast(self):
        record = make_record(artist="A", episode="E", show="S")
        assert classify_kind(record) == ContentKind.PODCAST_EPISODE

    def test_nothing_is_other(self):
        assert classify_kind(make_record()) == ContentKind.OTHER_OR_VIDEO

    def test_track_only_is_other(self):
        assert classify_kind(make_record(track="T")) == ContentKind.OTHER_OR_VIDEO


class TestClassify:
    def test_song_labels(self):
        result = classify(make_record(artist="A", album="B", track="T"))
        assert result == Classification(ContentKind.SONG, "A", "B", "T")

    def test_episode_labels(self):
        result = classify(make_record(artist="Host", show="Show", episode="Ep 1"))
        assert result == Classification(ContentKind.PODCAST_EPISODE, "Host", "Show", "Ep 1")

    def test_song_missing_track_rejected(self):
        assert classify(make_record(artist="A", album="B")) is None

    def test_episode_missing_show_rejected(self):
        assert classify(make_record(artist="Host", episode="Ep 1")) is None

    def test_episode_missing_artist_rejected(self):
        assert classify(make_record(show="Show", episode="Ep 1")) is None

    def test_other_always_rejected(self):
        assert classify(make_record()) is None
        assert classify(make_record(artist="A", track="T")) is None

    def test_empty_string_counts_as_present(self):
        result = classify(make_record(artist="", album="", track=""))
        assert result == Classification(ContentKind.SONG, "", "", "")

    @pytest.mark.parametrize("kind", list(ContentKind))
    def test_kind_tags_round_trip(self, kind):
        assert ContentKind.from_tag(kind.tag) is kind

    def test_unknown_tag(self):
        with pytest.raises(ValueError):
            ContentKind.from_tag("video")
