"""
Candidate Fetching Module
=========================

Gathers candidate tracks for the deck by issuing several differently
parameterized requests to the recommendations endpoint:

    A. track seeds + artist seeds, point targets on danceability/energy/valence
    B. genre seeds + artist seeds, targets nudged by the vibe offset
    C. another track-seed slice, an energy range instead of a point target
    D. track + artist seeds, tempo target

A batch is only sent when it carries at least one seed. With no seeds at
all (a brand-new account) a keyword search over generic terms is used so
the pool is never empty.

Nothing is filtered here; the ranker decides what the listener sees.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from .config import CandidateConfig
from .features import FeedbackProfile, TasteProfile, Track
from .heard_samples import HeardSampleSelector
from .profile import fetch_audio_features, guarded
from .spotify_client import SpotifyClient
from .utils import dedupe_tracks

logger = logging.getLogger(__name__)


@dataclass
class SeedSet:
    """Seeds and feature targets for one round of batches."""
    tracks: List[str] = field(default_factory=list)
    artists: List[str] = field(default_factory=list)
    genres: List[str] = field(default_factory=list)
    targets: Dict[str, float] = field(default_factory=dict)

    @property
    def empty(self) -> bool:
        return not (self.tracks or self.artists or self.genres)


def merge_seeds(profile: TasteProfile, feedback: Optional[FeedbackProfile] = None) -> SeedSet:
    """
    Combine long-term and session seeds.

    Session feedback takes priority wherever it has something to offer.
    """
    if feedback is None:
        feedback = FeedbackProfile()
    return SeedSet(
        tracks=list(feedback.seed_tracks or profile.seed_tracks),
        artists=list(feedback.seed_artists or profile.seed_artists),
        genres=list(feedback.top_genres or profile.top_genres),
        targets=dict(feedback.audio_profile or profile.audio_profile),
    )


def vibe_offset(vibe_shift: int, cycle: int = 5, step: float = 0.05) -> float:
    """Target perturbation for a refresh counter: 0, 0.05, ... 0.2, then repeats."""
    return (vibe_shift % cycle) * step


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


def build_batches(
    seeds: SeedSet,
    offset: float = 0.0,
    config: Optional[CandidateConfig] = None
) -> List[Dict[str, Any]]:
    """
    Build request parameters for batches A-D.

    Args:
        seeds: Merged seed set
        offset: Vibe offset
        config: Candidate configuration

    Returns:
        Keyword arguments for SpotifyClient.get_recommendations, seedless
        batches dropped
    """
    config = config or CandidateConfig()
    targets = seeds.targets
    limit_a, limit_b, limit_c, limit_d = config.batch_limits

    batch_a: Dict[str, Any] = {
        "seed_tracks": seeds.tracks[:3],
        "seed_artists": seeds.artists[:2],
        "limit": limit_a,
    }
    for feature in ("danceability", "energy", "valence"):
        if feature in targets:
            batch_a[f"target_{feature}"] = targets[feature]

    batch_b: Dict[str, Any] = {
        "seed_genres": seeds.genres[:3],
        "seed_artists": seeds.artists[:2],
        "limit": limit_b,
    }
    if "danceability" in targets:
        batch_b["target_danceability"] = _clamp(targets["danceability"] + offset)
    if "energy" in targets:
        batch_b["target_energy"] = _clamp(targets["energy"] + offset)
    if "valence" in targets:
        batch_b["target_valence"] = _clamp(targets["valence"] - offset)

    batch_c: Dict[str, Any] = {
        "seed_tracks": seeds.tracks[2:5],
        "limit": limit_c,
    }
    if "energy" in targets:
        window = config.energy_window + offset
        batch_c["min_energy"] = _clamp(targets["energy"] - window)
        batch_c["max_energy"] = _clamp(targets["energy"] + window)

    batch_d: Dict[str, Any] = {
        "seed_tracks": seeds.tracks[:3],
        "seed_artists": seeds.artists[:2],
        "limit": limit_d,
    }
    if "tempo" in targets:
        batch_d["target_tempo"] = targets["tempo"]
    if "danceability" in targets:
        batch_d["target_danceability"] = targets["danceability"]

    batches = []
    for batch in (batch_a, batch_b, batch_c, batch_d):
        if any(batch.get(k) for k in ("seed_tracks", "seed_artists", "seed_genres")):
            batches.append(batch)
    return batches


class CandidateFetcher:
    """
    Fetches, deduplicates and enriches candidate tracks.

    Strategy:
        1. Merge historical and session seeds
        2. Send batches A-D, pausing between them
        3. Fall back to keyword search when there are no seeds
        4. Attach audio features and heard samples
    """

    def __init__(
        self,
        spotify: SpotifyClient,
        config: Optional[CandidateConfig] = None,
        heard: Optional[HeardSampleSelector] = None,
        sleep: Callable[[float], None] = time.sleep
    ):
        """
        Initialize candidate fetcher.

        Args:
            spotify: Spotify API client
            config: Candidate configuration
            heard: Heard sample selector
            sleep: Pause function used between batches
        """
        self.spotify = spotify
        self.config = config or CandidateConfig()
        self.heard = heard or HeardSampleSelector()
        self.sleep = sleep

    def _pause(self):
        if self.config.batch_delay > 0:
            self.sleep(self.config.batch_delay)

    def fetch_candidates(
        self,
        profile: TasteProfile,
        feedback: Optional[FeedbackProfile] = None,
        vibe_shift: int = 0
    ) -> List[Track]:
        """
        Gather a deduplicated candidate pool.

        Args:
            profile: Long-term taste profile
            feedback: Session feedback profile, if any likes exist
            vibe_shift: Refresh counter

        Returns:
            Candidate tracks with features and heard samples attached
        """
        seeds = merge_seeds(profile, feedback)
        offset = vibe_offset(vibe_shift, self.config.vibe_cycle, self.config.vibe_step)
        batches = build_batches(seeds, offset, self.config)

        if not batches:
            logger.info("No seeds available, using keyword search")
            candidates = self._search_fallback()
        else:
            candidates = []
            for i, params in enumerate(batches):
                if i > 0:
                    self._pause()
                rows = guarded(
                    f"recommendation batch {i + 1}/{len(batches)}",
                    lambda: self.spotify.get_recommendations(**params),
                    [],
                )
                candidates.extend(Track.from_api(r) for r in rows)
                logger.debug("Batch %d returned %d tracks", i + 1, len(rows))

        candidates = dedupe_tracks(candidates)
        logger.info("Fetched %d unique candidates (vibe offset %.2f)", len(candidates), offset)

        self.enrich(candidates)
        return candidates

    def fetch_fallback(self) -> List[Track]:
        """
        Generic candidates for when the seeded pool runs dry.

        Tries one default-genre batch, then keyword searches.
        """
        rows = guarded(
            "default genre recommendations",
            lambda: self.spotify.get_recommendations(
                seed_genres=self.config.default_genres[:5],
                limit=self.config.fallback_genre_limit,
            ),
            [],
        )
        candidates = [Track.from_api(r) for r in rows]

        self._pause()
        candidates.extend(self._search_fallback())

        candidates = dedupe_tracks(candidates)
        logger.info("Fallback produced %d candidates", len(candidates))

        self.enrich(candidates)
        return candidates

    def _search_fallback(self) -> List[Track]:
        candidates: List[Track] = []
        for i, query in enumerate(self.config.fallback_queries):
            if i > 0:
                self._pause()
            rows = guarded(
                f"search '{query}'",
                lambda: self.spotify.search_tracks(query, self.config.fallback_search_limit),
                [],
            )
            candidates.extend(Track.from_api(r) for r in rows)
        return dedupe_tracks(candidates)

    def enrich(self, tracks: List[Track]) -> None:
        """Attach audio features and heard samples in place."""
        if not tracks:
            return

        missing = [t.id for t in tracks if t.audio_features is None]
        features = fetch_audio_features(self.spotify, missing, self.config.features_chunk_size)
        for track in tracks:
            if track.audio_features is None:
                track.audio_features = features.get(track.id)

        self.heard.attach(tracks, self.config.heard_samples_per_track)
