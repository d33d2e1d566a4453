"""
Temporary playlist and Spotify export.

Liked (and disliked) tracks from swiping are kept locally until the
listener exports them as a real playlist on their account.
"""

import logging
import re
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional

from .config import (
    PLAYLIST_ADD_CHUNK_SIZE,
    PLAYLIST_BASE_NAME,
    PLAYLIST_DESCRIPTION,
)
from .features import Track
from .spotify_client import SpotifyClient
from .utils import LocalStore, chunked

logger = logging.getLogger(__name__)


class TrackListStore:
    """Ordered, duplicate-free list of tracks persisted under one local key."""

    def __init__(self, store: LocalStore, key: str):
        self.store = store
        self.key = key

    def _load(self) -> List[Dict]:
        data = self.store.get(self.key)
        if not isinstance(data, list):
            return []
        return [row for row in data if isinstance(row, dict) and row.get('id')]

    def get_tracks(self) -> List[Track]:
        return [Track.from_api(row) for row in self._load()]

    def track_ids(self) -> List[str]:
        return [row['id'] for row in self._load()]

    def count(self) -> int:
        return len(self._load())

    def add_track(self, track: Track) -> List[Track]:
        """Append a track unless already present."""
        rows = self._load()
        if any(row['id'] == track.id for row in rows):
            return [Track.from_api(row) for row in rows]

        row = track.to_dict()
        row.pop('heard_samples', None)
        row.pop('similarity', None)
        row['added_at'] = datetime.now(timezone.utc).isoformat()
        rows.append(row)
        self.store.set(self.key, rows)
        return [Track.from_api(r) for r in rows]

    def remove_track(self, track_id: str) -> List[Track]:
        rows = [row for row in self._load() if row['id'] != track_id]
        self.store.set(self.key, rows)
        return [Track.from_api(r) for r in rows]

    def clear(self) -> None:
        self.store.delete(self.key)


def next_playlist_name(existing_names: Iterable[str], base: str = PLAYLIST_BASE_NAME) -> str:
    """
    Next free export name: "TuneBloom Likes", then "TuneBloom Likes 2", ...

    Args:
        existing_names: Names of the listener's playlists
        base: Base playlist name
    """
    pattern = re.compile(r"^" + re.escape(base) + r"(?:\s*(\d+))?$")
    numbers = []
    for name in existing_names:
        if not name:
            continue
        match = pattern.match(name)
        if match:
            numbers.append(int(match.group(1)) if match.group(1) else 1)

    next_num = max(numbers) + 1 if numbers else 1
    return base if next_num == 1 else f"{base} {next_num}"


class PlaylistExporter:
    """Creates Spotify playlists from liked tracks."""

    def __init__(self, spotify: SpotifyClient, chunk_size: int = PLAYLIST_ADD_CHUNK_SIZE):
        self.spotify = spotify
        self.chunk_size = chunk_size

    def add_tracks(self, playlist_id: str, tracks: List[Track]) -> int:
        """
        Add unique track uris in chunks.

        Returns:
            Number of uris sent
        """
        uris = list(dict.fromkeys(t.uri for t in tracks if t.uri))
        for chunk in chunked(uris, self.chunk_size):
            self.spotify.add_tracks_to_playlist(playlist_id, chunk)
        return len(uris)

    def export(
        self,
        tracks: List[Track],
        name: Optional[str] = None,
        public: bool = True
    ) -> Dict:
        """
        Create a playlist on the listener's account holding the tracks.

        Args:
            tracks: Tracks to export
            name: Playlist name (next free "TuneBloom Likes" name if None)
            public: Whether the playlist is public

        Returns:
            Created playlist payload
        """
        if not tracks:
            raise ValueError("Select at least one track")

        user = self.spotify.get_current_user()
        if name is None or not name.strip():
            existing = [p.get('name') for p in self.spotify.get_user_playlists(50)]
            name = next_playlist_name(existing)

        playlist = self.spotify.create_playlist(
            user['id'],
            name.strip(),
            PLAYLIST_DESCRIPTION,
            public,
        )
        added = self.add_tracks(playlist['id'], tracks)
        logger.info("Exported %d tracks to playlist %s", added, playlist['id'])
        return playlist
