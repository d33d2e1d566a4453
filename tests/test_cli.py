"""CLI tests. No command here reaches Spotify."""
import json

import pytest

from tunebloom_recs import cli
from tunebloom_recs.config import LIKED_TRACKS_KEY
from tunebloom_recs.utils import LocalStore, normalize_track_id

from conftest import make_track


@pytest.fixture
def state_dir(tmp_path, monkeypatch):
    path = tmp_path / "state"
    monkeypatch.setenv("TUNEBLOOM_STATE_DIR", str(path))
    return path


def _deck():
    tracks = [make_track("a", 0.5), make_track("b")]
    tracks[0].similarity = 0.0
    tracks[1].similarity = 999.0
    return tracks


class TestFormatOutput:
    def test_json(self):
        rows = json.loads(cli.format_output(_deck(), "json"))
        assert [r["id"] for r in rows] == ["a", "b"]
        assert rows[1]["audio_features"] is None

    def test_csv(self):
        lines = cli.format_output(_deck(), "csv").splitlines()
        assert lines[0] == "track_id,track_name,artists,distance,heard_like"
        assert lines[1].startswith('a,"Song a","Artist artist-1",0.0000')

    def test_simple(self):
        text = cli.format_output(_deck(), "simple")
        assert "Top 2 Recommendations:" in text
        assert "Track ID: b" in text


class TestCommands:
    def test_missing_credentials(self, state_dir, monkeypatch, capsys):
        for name in ("SPOTIFY_CLIENT_ID", "SPOTIPY_CLIENT_ID", "SPOTIFY_CLIENT_SECRET", "SPOTIPY_CLIENT_SECRET"):
            monkeypatch.delenv(name, raising=False)

        assert cli.main(["recommend"]) == 1
        assert "credentials not found" in capsys.readouterr().err

    def test_liked_lists_local_tracks(self, state_dir, capsys):
        LocalStore(str(state_dir)).set(LIKED_TRACKS_KEY, [make_track("a").to_dict()])

        assert cli.main(["liked"]) == 0
        out = capsys.readouterr().out
        assert "Song a" in out
        assert "1 liked tracks" in out

    def test_liked_clear(self, state_dir, capsys):
        store = LocalStore(str(state_dir))
        store.set(LIKED_TRACKS_KEY, [make_track("a").to_dict()])

        assert cli.main(["liked", "--clear"]) == 0
        assert store.get(LIKED_TRACKS_KEY) is None

    def test_undo_removes_from_liked(self, state_dir, capsys):
        store = LocalStore(str(state_dir))
        store.set(LIKED_TRACKS_KEY, [make_track("a").to_dict(), make_track("b").to_dict()])

        assert cli.main(["undo", "spotify:track:a"]) == 0
        assert [row["id"] for row in store.get(LIKED_TRACKS_KEY)] == ["b"]
        assert "will not reappear" in capsys.readouterr().out

    def test_undo_help_mentions_recorded_swipe(self, capsys):
        with pytest.raises(SystemExit):
            cli.main(["undo", "--help"])
        assert "stays hidden" in capsys.readouterr().out

    def test_subcommand_required(self):
        with pytest.raises(SystemExit):
            cli.main([])


@pytest.mark.parametrize("value", [
    "4uLU6hMCjMI75M1A2tKUQC",
    "spotify:track:4uLU6hMCjMI75M1A2tKUQC",
    "https://open.spotify.com/track/4uLU6hMCjMI75M1A2tKUQC?si=abc",
])
def test_normalize_track_id(value):
    assert normalize_track_id(value) == "4uLU6hMCjMI75M1A2tKUQC"
