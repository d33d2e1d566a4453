"""
Shared fixtures and payload builders.

The Spotify catalog is always a MagicMock shaped like SpotifyClient, so no
test touches the network. Local state lives under pytest's tmp_path.
"""
import random

import pytest
from unittest.mock import MagicMock

from tunebloom_recs.exclusions import ExclusionStore, PersistResult
from tunebloom_recs.features import AudioFeatures, Track
from tunebloom_recs.utils import LocalStore


# ---------------------------------------------------------------------------
# Payload builders
# ---------------------------------------------------------------------------

def track_payload(track_id, name=None, artist_id="artist-1", genres=None):
    return {
        "id": track_id,
        "name": name or f"Song {track_id}",
        "uri": f"spotify:track:{track_id}",
        "artists": [{"id": artist_id, "name": f"Artist {artist_id}", "genres": genres or []}],
        "album": {"id": "album-1", "name": "Album", "images": [{"url": "http://img/1.jpg"}]},
        "popularity": 50,
    }


def features_payload(value=0.5, tempo=120.0):
    return {
        "danceability": value,
        "energy": value,
        "valence": value,
        "tempo": tempo,
    }


def make_track(track_id, value=None, artist_id="artist-1", genres=None):
    """Track model with d/e/v all set to value (no features if None)."""
    track = Track.from_api(track_payload(track_id, artist_id=artist_id, genres=genres))
    if value is not None:
        track.audio_features = AudioFeatures(danceability=value, energy=value, valence=value)
    return track


def mock_spotify(top=None, saved=None, recent=None, artists=None, recs=None,
                 search=None, features=None, user_id="user-1"):
    """
    Catalog mock.

    features: track id -> feature payload; ids missing from it report None.
    """
    features = features or {}
    sp = MagicMock()
    sp.get_current_user.return_value = {"id": user_id} if user_id else {}
    sp.get_top_tracks.side_effect = lambda time_range, limit: list(top or [])
    sp.get_top_artists.return_value = list(artists or [])
    sp.get_saved_tracks.side_effect = lambda limit, offset: list(saved or []) if offset == 0 else []
    sp.get_recently_played.return_value = list(recent or [])
    sp.get_user_playlists.return_value = []
    sp.get_playlist_tracks.return_value = []
    sp.get_audio_features.side_effect = lambda ids: [features.get(i) for i in ids]
    sp.get_recommendations.side_effect = lambda **kwargs: list(recs or [])
    sp.search_tracks.side_effect = lambda query, limit: list(search or [])
    return sp


def mock_store(persisted=None):
    store = MagicMock(spec=ExclusionStore)
    store.get_excluded_track_ids.return_value = list(persisted or [])
    store.add_bulk_excluded_tracks.side_effect = (
        lambda user_id, track_ids, reason: PersistResult(ok=True, count=len(track_ids))
    )
    return store


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def local_store(tmp_path):
    return LocalStore(str(tmp_path / "state"))


@pytest.fixture
def rng():
    return random.Random(1234)
