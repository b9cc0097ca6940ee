"""End-to-end tests for load_or_build."""

import json
import shutil

import pytest
from spot_stats.codec import decode
from spot_stats.errors import CodecError, MergeIntegrityError, SnapshotNotFoundError
from spot_stats.models import ContentKind, GroupKey
from spot_stats.pipeline import build_index, load_or_build


def raw_entry(ts, artist="Artist", album="Album", track="Track", ms=1000, episode=None):
    return {
        "ts": ts,
        "username": "user",
        "platform": "Android OS",
        "ms_played": ms,
        "conn_country": "NL",
        "master_metadata_album_artist_name": artist,
        "master_metadata_album_album_name": album,
        "master_metadata_track_name": track,
        "episode_name": episode,
    }


@pytest.fixture
def export_dir(tmp_path):
    folder = tmp_path / "export"
    folder.mkdir()
    (folder / "Streaming_History_Audio_0.json").write_text(json.dumps([
        raw_entry("2023-01-01T10:00:00Z", ms=1000),
        raw_entry("2023-01-01T11:00:00Z", ms=2000),
        raw_entry("2023-01-01T12:00:00Z", artist=None, album=None, track=None),
    ]))
    (folder / "Streaming_History_Audio_1.json").write_text(json.dumps([
        raw_entry("2023-02-01T10:00:00Z", artist="Other", track="Song", ms=500),
    ]))
    return folder


@pytest.fixture
def snapshot(tmp_path):
    return tmp_path / "state" / "snapshot.bin"


class TestLoadOrBuild:
    def test_cold_start_builds_and_saves(self, export_dir, snapshot):
        index = load_or_build(export_dir, snapshot)
        assert snapshot.is_file()
        assert len(index) == 2
        key = GroupKey("user", "NL", ContentKind.SONG, "Artist", "Album", "Track")
        assert index[key].total_ms_played == 3000

    def test_reload_equals_direct_build(self, export_dir, snapshot):
        built = load_or_build(export_dir, snapshot)
        assert load_or_build(export_dir, snapshot) == built
        assert decode(snapshot.read_bytes()) == build_index(export_dir)

    def test_warm_start_skips_source(self, export_dir, snapshot):
        built = load_or_build(export_dir, snapshot)
        shutil.rmtree(export_dir)
        assert load_or_build(None, snapshot) == built
        assert load_or_build(export_dir, snapshot) == built

    def test_no_snapshot_no_source(self, snapshot):
        with pytest.raises(SnapshotNotFoundError):
            load_or_build(None, snapshot)

    def test_rebuild_picks_up_new_data(self, export_dir, snapshot):
        load_or_build(export_dir, snapshot)
        (export_dir / "Streaming_History_Audio_2.json").write_text(json.dumps([
            raw_entry("2023-03-01T10:00:00Z", artist="New", track="New"),
        ]))
        assert len(load_or_build(export_dir, snapshot)) == 2
        assert len(load_or_build(export_dir, snapshot, rebuild=True)) == 3
        assert len(load_or_build(None, snapshot)) == 3

    def test_rebuild_needs_source(self, snapshot):
        with pytest.raises(ValueError):
            load_or_build(None, snapshot, rebuild=True)

    def test_corrupt_snapshot_is_reported(self, export_dir, snapshot):
        snapshot.parent.mkdir(parents=True)
        snapshot.write_bytes(b"SPST\x01\x00garbage")
        with pytest.raises(CodecError):
            load_or_build(export_dir, snapshot)

    def test_uncompressed_snapshot(self, export_dir, snapshot, tmp_path):
        plain = load_or_build(export_dir, snapshot, compress=False)
        assert snapshot.read_bytes()[5] == 0
        other = tmp_path / "compressed.bin"
        assert load_or_build(export_dir, other, compress=True) == plain

    def test_duplicate_play_aborts_without_snapshot(self, export_dir, snapshot):
        (export_dir / "Streaming_History_Audio_9.json").write_text(json.dumps([
            raw_entry("2023-01-01T10:00:00Z", ms=1),
        ]))
        with pytest.raises(MergeIntegrityError):
            load_or_build(export_dir, snapshot)
        assert not snapshot.exists()
