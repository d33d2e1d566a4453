"""
Spotify API Client Wrapper
==========================

Handles all interactions with the Spotify Web API including:
- Authentication (authorization code flow, token refresh by spotipy)
- Listening history (top tracks/artists, saved, recently played)
- Audio features retrieval
- Recommendations and search
- Playlist reads and writes
- Request throttling

Errors are not swallowed here. Callers decide which failures are fatal.
"""

import os
import time
from typing import Any, Dict, List, Optional

import spotipy
from spotipy.oauth2 import SpotifyOAuth

from .config import (
    SPOTIFY_CLIENT_ID,
    SPOTIFY_CLIENT_SECRET,
    SPOTIFY_REDIRECT_URI,
    SPOTIFY_SCOPES,
)

# Spotify API limit for id lists on /audio-features
AUDIO_FEATURES_BATCH = 50


class SpotifyClient:
    """
    Wrapper around Spotipy for a single authenticated listener.

    Attributes:
        sp: Spotipy client instance
    """

    def __init__(self, sp: Optional[spotipy.Spotify] = None, cache_path: Optional[str] = None):
        """
        Initialize Spotify client with user credentials.

        Args:
            sp: Pre-authenticated spotipy client (built from env if None)
            cache_path: Where spotipy keeps the OAuth token
        """
        if sp is None:
            # Get credentials from environment at runtime (not import time)
            client_id = os.environ.get("SPOTIFY_CLIENT_ID") or os.environ.get("SPOTIPY_CLIENT_ID") or SPOTIFY_CLIENT_ID
            client_secret = os.environ.get("SPOTIFY_CLIENT_SECRET") or os.environ.get("SPOTIPY_CLIENT_SECRET") or SPOTIFY_CLIENT_SECRET
            redirect_uri = os.environ.get("SPOTIFY_REDIRECT_URI") or os.environ.get("SPOTIPY_REDIRECT_URI") or SPOTIFY_REDIRECT_URI

            auth_manager = SpotifyOAuth(
                client_id=client_id,
                client_secret=client_secret,
                redirect_uri=redirect_uri,
                scope=" ".join(SPOTIFY_SCOPES),
                cache_path=cache_path,
            )
            sp = spotipy.Spotify(auth_manager=auth_manager)
        self.sp = sp

        # Request throttling
        self._last_request_time = 0.0
        self._min_request_interval = 0.05  # 50ms between requests

    def _throttle(self):
        """Ensure minimum time between requests."""
        elapsed = time.time() - self._last_request_time
        if elapsed < self._min_request_interval:
            time.sleep(self._min_request_interval - elapsed)
        self._last_request_time = time.time()

    @staticmethod
    def _unwrap_tracks(items: List[Dict]) -> List[Dict]:
        """Pull track objects out of saved/recent/playlist item envelopes."""
        tracks = []
        for item in items or []:
            track = item.get('track') if item else None
            # Local files and removed tracks come back without an id
            if track and track.get('id'):
                tracks.append(track)
        return tracks

    # =========================================================================
    # USER OPERATIONS
    # =========================================================================

    def get_current_user(self) -> Dict:
        """Fetch the authenticated user's profile."""
        self._throttle()
        return self.sp.current_user()

    def get_top_tracks(self, time_range: str = "medium_term", limit: int = 50) -> List[Dict]:
        """
        Fetch the user's top tracks for a time window.

        Args:
            time_range: short_term, medium_term or long_term
            limit: Maximum tracks (API cap 50)

        Returns:
            List of track dictionaries
        """
        self._throttle()
        result = self.sp.current_user_top_tracks(limit=min(limit, 50), time_range=time_range)
        return [t for t in (result or {}).get('items', []) if t and t.get('id')]

    def get_top_artists(self, time_range: str = "medium_term", limit: int = 20) -> List[Dict]:
        """Fetch the user's top artists for a time window."""
        self._throttle()
        result = self.sp.current_user_top_artists(limit=min(limit, 50), time_range=time_range)
        return [a for a in (result or {}).get('items', []) if a and a.get('id')]

    def get_saved_tracks(self, limit: int = 50, offset: int = 0) -> List[Dict]:
        """Fetch one page of the user's saved library."""
        self._throttle()
        result = self.sp.current_user_saved_tracks(limit=min(limit, 50), offset=offset)
        return self._unwrap_tracks((result or {}).get('items', []))

    def get_recently_played(self, limit: int = 50) -> List[Dict]:
        """Fetch recently played tracks, most recent first."""
        self._throttle()
        result = self.sp.current_user_recently_played(limit=min(limit, 50))
        return self._unwrap_tracks((result or {}).get('items', []))

    # =========================================================================
    # PLAYLIST OPERATIONS
    # =========================================================================

    def get_user_playlists(self, limit: int = 50) -> List[Dict]:
        """Fetch the user's playlists (first page)."""
        self._throttle()
        result = self.sp.current_user_playlists(limit=min(limit, 50))
        return [p for p in (result or {}).get('items', []) if p and p.get('id')]

    def get_playlist_tracks(self, playlist_id: str, limit: int = 50, offset: int = 0) -> List[Dict]:
        """
        Fetch one page of a playlist's tracks.

        Args:
            playlist_id: Spotify playlist ID
            limit: Page size (API cap 100)
            offset: Index of the first item

        Returns:
            List of track dictionaries
        """
        self._throttle()
        result = self.sp.playlist_items(
            playlist_id,
            limit=min(limit, 100),
            offset=offset,
            additional_types=('track',),
        )
        return self._unwrap_tracks((result or {}).get('items', []))

    def create_playlist(
        self,
        user_id: str,
        name: str,
        description: str = "",
        public: bool = True
    ) -> Dict:
        """Create a playlist on the user's account."""
        self._throttle()
        return self.sp.user_playlist_create(
            user_id,
            name,
            public=public,
            description=description,
        )

    def add_tracks_to_playlist(self, playlist_id: str, uris: List[str]) -> Dict:
        """Append up to 100 track uris to a playlist."""
        self._throttle()
        return self.sp.playlist_add_items(playlist_id, uris)

    # =========================================================================
    # TRACK OPERATIONS
    # =========================================================================

    def get_track(self, track_id: str) -> Dict:
        """Fetch a single track."""
        self._throttle()
        return self.sp.track(track_id)

    def get_audio_features(self, track_ids: List[str]) -> List[Optional[Dict]]:
        """
        Fetch audio features for up to 50 tracks.

        Args:
            track_ids: Spotify track IDs

        Returns:
            Feature dictionaries aligned with track_ids (None for unavailable)
        """
        if not track_ids:
            return []
        if len(track_ids) > AUDIO_FEATURES_BATCH:
            raise ValueError(f"At most {AUDIO_FEATURES_BATCH} ids per audio features request")

        self._throttle()
        result = self.sp.audio_features(track_ids)
        if not result:
            return [None] * len(track_ids)
        return list(result)

    # =========================================================================
    # DISCOVERY OPERATIONS
    # =========================================================================

    def get_recommendations(
        self,
        seed_tracks: Optional[List[str]] = None,
        seed_artists: Optional[List[str]] = None,
        seed_genres: Optional[List[str]] = None,
        limit: int = 20,
        **targets: Any
    ) -> List[Dict]:
        """
        Fetch recommendations for a seed set.

        Args:
            seed_tracks: Track ID seeds
            seed_artists: Artist ID seeds
            seed_genres: Genre seeds
            limit: Maximum tracks (API cap 100)
            **targets: target_*/min_*/max_* tunable attributes

        Returns:
            List of track dictionaries
        """
        self._throttle()
        result = self.sp.recommendations(
            seed_artists=seed_artists or None,
            seed_genres=seed_genres or None,
            seed_tracks=seed_tracks or None,
            limit=min(limit, 100),
            **targets
        )
        return [t for t in (result or {}).get('tracks', []) if t and t.get('id')]

    def search_tracks(self, query: str, limit: int = 20) -> List[Dict]:
        """
        General track search.

        Args:
            query: Search query
            limit: Maximum tracks to return

        Returns:
            List of track dictionaries
        """
        self._throttle()
        result = self.sp.search(q=query, type='track', limit=min(limit, 50))
        items = ((result or {}).get('tracks') or {}).get('items', [])
        return [t for t in items if t and t.get('id')]
