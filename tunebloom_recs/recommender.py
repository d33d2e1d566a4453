"""
Main Recommendation Engine
==========================

Orchestrates the complete recommendation pipeline:
1. Build (or reuse) the listener's taste profile
2. Build a feedback profile from this session's likes
3. Fetch candidates
4. Drop anything already heard
5. Fall back to wider pools when too little is left
6. Rank by audio-feature distance
7. Truncate and remember what was served

One engine instance serves one listening session. The swipe client calls
only generate_recommendations, exclude_track, remove_exclusion and reset.
"""

import logging
import random
from typing import List, Optional

from .candidates import CandidateFetcher
from .config import DEFAULT_CONFIG, NUM_RECOMMENDATIONS, EngineConfig
from .exclusions import ExclusionReason, ExclusionStore, ExclusionTracker
from .features import TasteProfile, Track, build_feedback_profile
from .heard_samples import HeardSampleSelector
from .playlist import TrackListStore
from .profile import ProfileBuilder, guarded
from .scoring import Ranker
from .spotify_client import SpotifyClient
from .utils import LocalStore, dedupe_tracks

logger = logging.getLogger(__name__)


class RecommendationError(Exception):
    """No recommendations could be produced, fallbacks included."""


class RecommendationEngine:
    """
    Recommendation engine for one listening session.

    Usage:
        engine = RecommendationEngine(SpotifyClient(), local_store=LocalStore(STATE_DIR))
        deck = engine.generate_recommendations(50)
        engine.exclude_track(deck[0].id)
    """

    def __init__(
        self,
        spotify: SpotifyClient,
        exclusion_store: Optional[ExclusionStore] = None,
        local_store: Optional[LocalStore] = None,
        liked_store: Optional[TrackListStore] = None,
        config: EngineConfig = DEFAULT_CONFIG,
        rng: Optional[random.Random] = None,
        sleep=None
    ):
        """
        Initialize recommendation engine.

        Args:
            spotify: Authenticated Spotify client
            exclusion_store: Cross-session exclusion store (no-op if None)
            local_store: Local key-value store for the served-id cache
            liked_store: Liked tracks kept on this device
            config: Engine configuration
            rng: Random source (shuffle, tie jitter, heard samples)
            sleep: Pause function between batches (time.sleep if None)
        """
        self.spotify = spotify
        self.config = config
        self.rng = rng or random.Random()

        self.tracker = ExclusionTracker(
            remote_store=exclusion_store,
            local_store=local_store,
            config=config.exclusions,
        )
        self.liked_store = liked_store
        self.profile_builder = ProfileBuilder(
            spotify,
            self.tracker,
            config.profile,
            liked_ids=liked_store.track_ids if liked_store is not None else None,
        )
        self.heard = HeardSampleSelector(rng=self.rng)

        fetcher_kwargs = {} if sleep is None else {"sleep": sleep}
        self.fetcher = CandidateFetcher(spotify, config.candidates, self.heard, **fetcher_kwargs)
        self.ranker = Ranker(config.ranking, self.rng)

        self._profile: Optional[TasteProfile] = None
        self._generation = 0
        self._identity_checked = False

    @property
    def profile(self) -> Optional[TasteProfile]:
        return self._profile

    @property
    def user_id(self) -> Optional[str]:
        """Listener id; looked up once if no profile has been built yet."""
        if self.profile_builder.user_id is None and not self._identity_checked:
            self._identity_checked = True
            user = guarded("current user", self.spotify.get_current_user, {})
            if isinstance(user, dict):
                self.profile_builder.user_id = user.get('id')
        return self.profile_builder.user_id

    def is_excluded(self, track_id: str) -> bool:
        return self.tracker.is_excluded(track_id)

    def _ensure_profile(self, generation: int) -> TasteProfile:
        if self._profile is not None:
            return self._profile

        profile = self.profile_builder.build()
        self.heard.update(self.profile_builder.heard_tracks, self.profile_builder.artist_genres)

        if generation == self._generation:
            self._profile = profile
        else:
            logger.info("Discarding profile from superseded request %d", generation)
        return profile

    def generate_recommendations(
        self,
        count: int = NUM_RECOMMENDATIONS,
        liked_tracks: Optional[List[Track]] = None,
        vibe_shift: int = 0
    ) -> List[Track]:
        """
        Produce an ordered deck of at most `count` tracks.

        Args:
            count: Maximum number of tracks
            liked_tracks: Tracks liked in this session, oldest first
            vibe_shift: Refresh counter, nudges feature targets

        Returns:
            Ranked tracks with audio features and heard samples attached
        """
        if count < 1:
            raise ValueError("count must be at least 1")

        self._generation += 1
        generation = self._generation

        # Step 1: profiles
        profile = self._ensure_profile(generation)
        feedback = build_feedback_profile(liked_tracks)

        # Step 2: candidates
        candidates = dedupe_tracks(self.fetcher.fetch_candidates(profile, feedback, vibe_shift))

        # Step 3: drop what the listener already heard
        working = [t for t in candidates if not self.tracker.is_listened(t.id)]
        logger.debug("%d of %d candidates are new", len(working), len(candidates))

        # Step 4: repeats beat an empty deck
        if len(working) < self.config.ranking.min_filtered_candidates:
            logger.info("Only %d new candidates, using unfiltered pool", len(working))
            working = candidates

        # Step 5: generic fallback
        if not working or len(working) < count / 2:
            logger.info("Pool of %d too small for %d, fetching fallback", len(working), count)
            fallback = self.fetcher.fetch_fallback()
            seen = {t.id for t in working}
            fresh = [
                t for t in fallback
                if t.id not in seen and not self.tracker.is_listened(t.id)
            ]
            working = working + fresh
            if not working:
                working = dedupe_tracks(fallback)

        if not working:
            raise RecommendationError("No recommendations available")

        # Steps 6-8: rank against session taste when there is one
        target = profile.audio_profile
        if feedback is not None and feedback.audio_profile:
            target = feedback.audio_profile
        ranked = self.ranker.rank(working, target)

        # Step 9: truncate
        deck = ranked[:count]

        # Step 10: remember what was served
        if generation != self._generation:
            logger.info("Request %d superseded, not recording served tracks", generation)
            return deck

        served = [t.id for t in deck]
        self.tracker.remember_locally(served)
        self.tracker.persist(self.user_id, served, ExclusionReason.SERVED)

        logger.info("Generated %d recommendations", len(deck))
        return deck

    def exclude_track(self, track_id: str) -> None:
        """Called on every swipe, like or dislike."""
        self.tracker.exclude(track_id)
        self.tracker.persist(self.user_id, [track_id], ExclusionReason.SWIPED)

    def remove_exclusion(self, track_id: str) -> None:
        """Called on undo. The remote store is not touched."""
        self.tracker.unexclude(track_id)

    def reset(self) -> None:
        """Drop all in-memory state. Persisted stores are untouched."""
        self._generation += 1
        self._profile = None
        self._identity_checked = False
        self.profile_builder.reset()
        self.heard.clear()
