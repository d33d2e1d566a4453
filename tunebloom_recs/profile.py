"""
Taste Profile Builder
=====================

Derives a listener's taste profile from their Spotify history:
1. Reset derived state (exclusions, heard tracks)
2. Identify the listener
3. Load persisted exclusions
4. Gather reference tracks (top tracks -> saved library -> recently played)
5. Fetch audio features for the reference set
6. Average features into the audio profile
7. Derive top genres from top artists
8. Merge everything already heard into the exclusion tracker
9. Persist newly discovered listened ids, tagged by provenance
10. Record seed tracks and artists

Every external call is guarded on its own: a failure degrades that step to
an empty result and the build carries on.
"""

import logging
from typing import Callable, Dict, List, Optional, Set, TypeVar

from .config import MAX_SEEDS, TIME_RANGES, ProfileConfig
from .exclusions import ExclusionReason, ExclusionTracker
from .features import (
    Artist,
    AudioFeatures,
    TasteProfile,
    Track,
    average_audio_profile,
    extract_top_genres,
)
from .spotify_client import SpotifyClient
from .utils import chunked, dedupe_tracks

logger = logging.getLogger(__name__)

T = TypeVar("T")


def guarded(label: str, call: Callable[[], T], default: T) -> T:
    """
    Run an external call, logging and replacing any failure with default.

    Args:
        label: What is being fetched (for the log line)
        call: Zero-argument callable
        default: Value returned on failure
    """
    try:
        result = call()
    except Exception as e:
        logger.warning("Failed to fetch %s: %s", label, e)
        return default
    return default if result is None else result


def fetch_audio_features(
    spotify: SpotifyClient,
    track_ids: List[str],
    chunk_size: int = 50
) -> Dict[str, AudioFeatures]:
    """
    Fetch feature vectors in chunks, tolerating failed chunks.

    Returns:
        track id -> AudioFeatures for every id the API reported
    """
    features: Dict[str, AudioFeatures] = {}
    for chunk in chunked(track_ids, chunk_size):
        rows = guarded(
            f"audio features for {len(chunk)} tracks",
            lambda: spotify.get_audio_features(chunk),
            [],
        )
        for track_id, row in zip(chunk, rows):
            parsed = AudioFeatures.from_api(row)
            if parsed is not None:
                features[track_id] = parsed
    return features


class ProfileBuilder:
    """
    Builds the long-term TasteProfile for one listening session.

    Attributes:
        user_id: Listener id, None if it could not be fetched
        heard_tracks: Known tracks used for heard samples
        artist_genres: artist id -> genre tags from top artists
    """

    def __init__(
        self,
        spotify: SpotifyClient,
        tracker: ExclusionTracker,
        config: Optional[ProfileConfig] = None,
        liked_ids: Optional[Callable[[], List[str]]] = None
    ):
        """
        Initialize profile builder.

        Args:
            spotify: Spotify API client
            tracker: Exclusion tracker to populate
            config: Profile limits
            liked_ids: Returns ids liked in earlier swipes on this device
        """
        self.spotify = spotify
        self.tracker = tracker
        self.config = config or ProfileConfig()
        self.liked_ids = liked_ids or (lambda: [])

        self.user_id: Optional[str] = None
        self.heard_tracks: List[Track] = []
        self.artist_genres: Dict[str, List[str]] = {}

    def reset(self) -> None:
        """Clear all derived sets."""
        self.tracker.clear()
        self.heard_tracks = []
        self.artist_genres = {}

    def build(self) -> TasteProfile:
        """
        Build the taste profile from the listener's history.

        Returns:
            TasteProfile (seeds empty when there is no history at all)
        """
        cfg = self.config

        # Step 1: fresh derived state
        self.reset()

        # Step 2: listener identity
        user = guarded("current user", self.spotify.get_current_user, {})
        self.user_id = user.get('id') if isinstance(user, dict) else None

        # Step 3: persisted exclusions
        persisted_count = self.tracker.load_persisted(self.user_id)
        persisted = set(self.tracker.listened)
        logger.debug("Loaded %d persisted exclusions", persisted_count)

        # Step 4: reference tracks
        saved_tracks: Optional[List[Track]] = None
        recent_tracks: Optional[List[Track]] = None

        reference = self._fetch_top_tracks()
        if not reference:
            saved_tracks = self._fetch_saved_tracks()
            reference = saved_tracks[:cfg.top_tracks_per_window]
            if reference:
                logger.info("No top tracks, using %d saved tracks", len(reference))
        if not reference:
            recent_tracks = self._fetch_recently_played()
            reference = recent_tracks
            if reference:
                logger.info("No saved tracks, using %d recent plays", len(reference))

        # Steps 5-6: audio profile
        reference_ids = [t.id for t in reference][:cfg.max_reference_tracks]
        features = fetch_audio_features(self.spotify, reference_ids, cfg.features_chunk_size)
        for track in reference:
            track.audio_features = features.get(track.id)
        audio_profile = average_audio_profile(features.get(tid) for tid in reference_ids)

        # Step 7: top artists and genres
        top_artists = [
            Artist.from_api(a) for a in guarded(
                "top artists",
                lambda: self.spotify.get_top_artists("medium_term", cfg.top_artists_limit),
                [],
            )
        ]
        self.artist_genres = {a.id: a.genres for a in top_artists if a.id}
        top_genres = extract_top_genres(top_artists, MAX_SEEDS)

        # Step 8: everything already heard
        if saved_tracks is None:
            saved_tracks = self._fetch_saved_tracks()
        if recent_tracks is None:
            recent_tracks = self._fetch_recently_played()
        playlist_ids = self._fetch_playlist_track_ids()
        liked = guarded("liked tracks", self.liked_ids, [])

        library_ids = [t.id for t in reference] + [t.id for t in saved_tracks] + playlist_ids
        recent_ids = [t.id for t in recent_tracks]

        self.tracker.merge_from_source(library_ids, ExclusionReason.IN_LIBRARY)
        self.tracker.merge_from_source(recent_ids, ExclusionReason.RECENTLY_PLAYED)
        self.tracker.merge_from_source(liked, ExclusionReason.SWIPED)

        self.heard_tracks = dedupe_tracks(reference + saved_tracks + recent_tracks)[:cfg.heard_tracks_cap]

        # Step 9: persist what the store has not seen yet
        self._persist_new(library_ids, persisted, ExclusionReason.IN_LIBRARY)
        self._persist_new(recent_ids, persisted, ExclusionReason.RECENTLY_PLAYED)
        self._persist_new(liked, persisted, ExclusionReason.SWIPED)

        # Step 10: seeds
        profile = TasteProfile(
            audio_profile=audio_profile,
            seed_tracks=[t.id for t in reference[:MAX_SEEDS]],
            top_artists=[a.id for a in top_artists if a.id],
            top_genres=top_genres,
        )

        logger.info(
            "Built taste profile: %d reference tracks, %d seed artists, genres=%s, %d exclusions",
            len(reference), len(profile.top_artists), profile.top_genres, self.tracker.size
        )
        return profile

    # =========================================================================
    # HISTORY FETCHES
    # =========================================================================

    def _fetch_top_tracks(self) -> List[Track]:
        """Union of top tracks across all windows, deduplicated."""
        tracks: List[Track] = []
        for time_range in TIME_RANGES:
            rows = guarded(
                f"top tracks ({time_range})",
                lambda: self.spotify.get_top_tracks(time_range, self.config.top_tracks_per_window),
                [],
            )
            tracks.extend(Track.from_api(r) for r in rows)
        return dedupe_tracks(tracks)

    def _fetch_saved_tracks(self) -> List[Track]:
        """Saved library, paginated up to the cap."""
        cfg = self.config
        tracks: List[Track] = []
        offset = 0
        while offset < cfg.saved_tracks_cap:
            page = guarded(
                f"saved tracks (offset {offset})",
                lambda: self.spotify.get_saved_tracks(cfg.saved_tracks_page_size, offset),
                [],
            )
            tracks.extend(Track.from_api(r) for r in page)
            if len(page) < cfg.saved_tracks_page_size:
                break
            offset += cfg.saved_tracks_page_size
        return dedupe_tracks(tracks)[:cfg.saved_tracks_cap]

    def _fetch_recently_played(self) -> List[Track]:
        rows = guarded(
            "recently played",
            lambda: self.spotify.get_recently_played(self.config.recently_played_limit),
            [],
        )
        return dedupe_tracks(Track.from_api(r) for r in rows)

    def _fetch_playlist_track_ids(self) -> List[str]:
        """Bounded sample of ids from the listener's playlists."""
        cfg = self.config
        playlists = guarded(
            "playlists",
            lambda: self.spotify.get_user_playlists(cfg.playlists_scanned),
            [],
        )

        ids: List[str] = []
        for playlist in playlists[:cfg.playlists_scanned]:
            playlist_id = playlist.get('id')
            if not playlist_id:
                continue

            collected = 0
            while collected < cfg.per_playlist_cap and len(ids) < cfg.playlist_tracks_cap:
                limit = min(cfg.playlist_page_size, cfg.per_playlist_cap - collected)
                page = guarded(
                    f"playlist {playlist_id} tracks",
                    lambda: self.spotify.get_playlist_tracks(playlist_id, limit, collected),
                    [],
                )
                ids.extend(t['id'] for t in page if t.get('id'))
                collected += len(page)
                if len(page) < limit:
                    break

            if len(ids) >= cfg.playlist_tracks_cap:
                break

        return list(dict.fromkeys(ids))[:cfg.playlist_tracks_cap]

    def _persist_new(self, track_ids: List[str], known: Set[str], reason: ExclusionReason) -> None:
        fresh = [tid for tid in dict.fromkeys(track_ids) if tid and tid not in known]
        if not fresh:
            return
        known.update(fresh)
        self.tracker.persist(self.user_id, fresh, reason)
