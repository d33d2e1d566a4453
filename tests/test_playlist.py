"""Liked-track list and playlist export tests."""
import pytest
from unittest.mock import MagicMock

from tunebloom_recs.config import PLAYLIST_DESCRIPTION
from tunebloom_recs.features import HeardSample
from tunebloom_recs.playlist import PlaylistExporter, TrackListStore, next_playlist_name

from conftest import make_track


def _spotify(existing=None):
    sp = MagicMock()
    sp.get_current_user.return_value = {"id": "user-1"}
    sp.get_user_playlists.return_value = [{"id": str(i), "name": n} for i, n in enumerate(existing or [])]
    sp.create_playlist.side_effect = lambda user_id, name, description, public: {"id": "pl-1", "name": name}
    return sp


class TestNextPlaylistName:
    def test_first_export(self):
        assert next_playlist_name([]) == "TuneBloom Likes"

    def test_bare_name_counts_as_one(self):
        assert next_playlist_name(["TuneBloom Likes"]) == "TuneBloom Likes 2"

    def test_highest_number_wins(self):
        names = ["TuneBloom Likes 3", "Road Trip", "TuneBloom Likes", None]
        assert next_playlist_name(names) == "TuneBloom Likes 4"

    def test_unrelated_suffix_ignored(self):
        assert next_playlist_name(["TuneBloom Likes Extra"]) == "TuneBloom Likes"


class TestPlaylistExporter:
    def test_adds_in_chunks_of_100(self):
        sp = _spotify()
        tracks = [make_track(f"t{i}") for i in range(250)]

        PlaylistExporter(sp).export(tracks, name="Mine")

        sizes = [len(c.args[1]) for c in sp.add_tracks_to_playlist.call_args_list]
        assert sizes == [100, 100, 50]
        assert sp.add_tracks_to_playlist.call_args_list[0].args[1][0] == "spotify:track:t0"

    def test_generated_name(self):
        sp = _spotify(existing=["TuneBloom Likes"])

        playlist = PlaylistExporter(sp).export([make_track("t1")])

        sp.create_playlist.assert_called_once_with(
            "user-1", "TuneBloom Likes 2", PLAYLIST_DESCRIPTION, True
        )
        assert playlist["name"] == "TuneBloom Likes 2"

    def test_private_with_given_name(self):
        sp = _spotify()
        PlaylistExporter(sp).export([make_track("t1")], name="  Late Night  ", public=False)
        sp.create_playlist.assert_called_once_with("user-1", "Late Night", PLAYLIST_DESCRIPTION, False)
        sp.get_user_playlists.assert_not_called()

    def test_duplicate_uris_sent_once(self):
        sp = _spotify()
        count = PlaylistExporter(sp).add_tracks("pl-1", [make_track("a"), make_track("a")])
        assert count == 1

    def test_empty_selection_rejected(self):
        sp = _spotify()
        with pytest.raises(ValueError):
            PlaylistExporter(sp).export([])
        sp.create_playlist.assert_not_called()


class TestTrackListStore:
    def test_add_is_duplicate_free(self, local_store):
        liked = TrackListStore(local_store, "liked")
        liked.add_track(make_track("a", 0.4))
        liked.add_track(make_track("a", 0.4))
        liked.add_track(make_track("b"))

        assert liked.track_ids() == ["a", "b"]
        assert liked.count() == 2

    def test_stored_tracks_keep_features(self, local_store):
        liked = TrackListStore(local_store, "liked")
        track = make_track("a", 0.4)
        track.heard_samples = [HeardSample(id="h", name="H", artists="X")]
        track.similarity = 0.12

        liked.add_track(track)
        (stored,) = liked.get_tracks()

        assert stored.audio_features.energy == 0.4
        assert stored.heard_samples == []
        assert "added_at" in local_store.get("liked")[0]

    def test_remove_and_clear(self, local_store):
        liked = TrackListStore(local_store, "liked")
        liked.add_track(make_track("a"))
        liked.add_track(make_track("b"))

        liked.remove_track("a")
        assert liked.track_ids() == ["b"]

        liked.clear()
        assert liked.get_tracks() == []
