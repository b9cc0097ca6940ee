"""Tests for the spot-stats command line."""

import json

import pytest
from loguru import logger
from spot_stats.cli import main
from spot_stats.config import Settings


def raw_entry(ts, artist, album, track, ms):
    return {
        "ts": ts,
        "username": "user",
        "platform": "web_player",
        "ms_played": ms,
        "conn_country": "NL",
        "master_metadata_album_artist_name": artist,
        "master_metadata_album_album_name": album,
        "master_metadata_track_name": track,
    }


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("SPOT_STATS_DATA_DIR", "SPOT_STATS_SNAPSHOT_PATH",
                 "SPOT_STATS_COMPRESS", "SPOT_STATS_LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)
    yield
    logger.remove()


@pytest.fixture
def export_dir(tmp_path):
    folder = tmp_path / "export"
    folder.mkdir()
    (folder / "history.json").write_text(json.dumps([
        raw_entry("2023-01-01T10:00:00Z", "Daft Punk", "Discovery", "One More Time", 3000),
        raw_entry("2023-01-01T11:00:00Z", "Daft Punk", "Discovery", "Aerodynamic", 1000),
        raw_entry("2023-01-01T12:00:00Z", "Air", "Moon Safari", "La femme d'argent", 5000),
    ]))
    return folder


@pytest.fixture
def base_args(export_dir, tmp_path):
    return ["--data", str(export_dir), "--snapshot", str(tmp_path / "snap.bin")]


class TestOutput:
    def test_table(self, base_args, capsys):
        assert main(base_args) == 0
        out = capsys.readouterr().out
        assert "| Artist" in out
        assert "One More Time" in out
        assert out.index("Air") < out.index("Daft Punk")

    def test_json(self, base_args, capsys):
        assert main(base_args + ["--format", "json"]) == 0
        rows = json.loads(capsys.readouterr().out)
        assert [r["level3"] for r in rows] == ["La femme d'argent", "Aerodynamic", "One More Time"]
        assert rows[0]["total_ms_played"] == 5000
        assert rows[0]["kind"] == "song"

    def test_sorted_top(self, base_args, capsys):
        assert main(base_args + ["--format", "sorted", "--top", "2"]) == 0
        out = capsys.readouterr().out
        assert "La femme d'argent" in out
        assert "One More Time" in out
        assert "Aerodynamic" not in out

    def test_artist_filter(self, base_args, capsys):
        assert main(base_args + ["--format", "json", "--artist", "Air"]) == 0
        rows = json.loads(capsys.readouterr().out)
        assert [r["level1"] for r in rows] == ["Air"]

    def test_any_filter_matches(self, base_args, capsys):
        args = base_args + ["--format", "json", "--artist", "Air", "--track", "Aerodynamic"]
        assert main(args) == 0
        assert len(json.loads(capsys.readouterr().out)) == 2

    def test_kind_filter(self, base_args, capsys):
        assert main(base_args + ["--format", "json", "--kind", "episode"]) == 0
        assert json.loads(capsys.readouterr().out) == []

    def test_output_file(self, base_args, tmp_path, capsys):
        target = tmp_path / "out.json"
        assert main(base_args + ["--format", "json", "--output", str(target)]) == 0
        assert len(json.loads(target.read_text())) == 3
        assert capsys.readouterr().out == ""


class TestRuns:
    def test_second_run_uses_snapshot(self, base_args, tmp_path, capsys):
        assert main(base_args) == 0
        first = capsys.readouterr().out
        assert main(["--snapshot", str(tmp_path / "snap.bin")]) == 0
        assert capsys.readouterr().out == first

    def test_first_run_without_data_fails(self, tmp_path, capsys):
        assert main(["--snapshot", str(tmp_path / "missing.bin")]) == 1
        err = capsys.readouterr().err
        assert "ERROR" in err
        assert "--data" in err

    def test_bad_export_fails(self, tmp_path, capsys):
        folder = tmp_path / "bad"
        folder.mkdir()
        (folder / "x.json").write_text("not json")
        assert main(["--data", str(folder), "--snapshot", str(tmp_path / "s.bin")]) == 1
        assert "invalid JSON" in capsys.readouterr().err

    def test_snapshot_from_env(self, export_dir, tmp_path, monkeypatch, capsys):
        snap = tmp_path / "env.bin"
        monkeypatch.setenv("SPOT_STATS_SNAPSHOT_PATH", str(snap))
        monkeypatch.setenv("SPOT_STATS_COMPRESS", "no")
        assert main(["--data", str(export_dir)]) == 0
        assert snap.read_bytes()[5] == 0

    def test_bad_env_value(self, base_args, monkeypatch, capsys):
        monkeypatch.setenv("SPOT_STATS_COMPRESS", "maybe")
        assert main(base_args) == 1
        assert "SPOT_STATS_COMPRESS" in capsys.readouterr().err

    def test_unknown_log_level_flag(self, base_args, capsys):
        assert main(base_args + ["--log-level", "LOUD"]) == 1
        assert "ERROR: Unknown log level 'LOUD'" in capsys.readouterr().err

    def test_unknown_log_level_env(self, base_args, monkeypatch, capsys):
        monkeypatch.setenv("SPOT_STATS_LOG_LEVEL", "loud")
        assert main(base_args) == 1
        assert "ERROR" in capsys.readouterr().err

    def test_lowercase_log_level_flag(self, base_args, capsys):
        assert main(base_args + ["--log-level", "debug"]) == 0


class TestSettings:
    def test_defaults(self):
        settings = Settings.from_env({})
        assert settings.data_dir is None
        assert settings.compress is True
        assert settings.snapshot_path.name == "spot_stats.snapshot"
        assert settings.log_level == "WARNING"

    def test_from_mapping(self, tmp_path):
        settings = Settings.from_env({
            "SPOT_STATS_DATA_DIR": str(tmp_path),
            "SPOT_STATS_SNAPSHOT_PATH": str(tmp_path / "s.bin"),
            "SPOT_STATS_COMPRESS": "False",
            "SPOT_STATS_LOG_LEVEL": "debug",
        })
        assert settings.data_dir == tmp_path
        assert settings.snapshot_path == tmp_path / "s.bin"
        assert settings.compress is False
        assert settings.log_level == "DEBUG"

    def test_unknown_log_level(self):
        with pytest.raises(ValueError, match="log level"):
            Settings.from_env({"SPOT_STATS_LOG_LEVEL": "loud"})
