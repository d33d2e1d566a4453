"""
Heard Sample Module
===================

Picks a few tracks the listener already knows to show next to a
recommendation ("similar to tracks you know").

With feature vectors on both sides, known tracks are ranked by NaN-aware
Euclidean distance minus a bonus per shared genre tag. Without them a
random sample is used. Samples are display-only and never affect ranking.
"""

import random
from typing import Dict, List, Optional, Set

import numpy as np
from sklearn.metrics.pairwise import nan_euclidean_distances

from .config import AUDIO_FEATURES
from .features import HeardSample, Track, normalize_genre

# Score reduction per genre tag shared with the candidate
GENRE_OVERLAP_BONUS = 0.1

# Tempo is BPM; scale it into the same range as the other features
TEMPO_SCALE = 200.0


class HeardSampleSelector:
    """
    Chooses heard samples for candidate tracks.

    Attributes:
        heard_tracks: Tracks from the listener's history
        artist_genres: artist id -> genre tags (from top artists)
    """

    def __init__(
        self,
        heard_tracks: Optional[List[Track]] = None,
        artist_genres: Optional[Dict[str, List[str]]] = None,
        rng: Optional[random.Random] = None
    ):
        self.rng = rng or random.Random()
        self.update(heard_tracks or [], artist_genres or {})

    def update(self, heard_tracks: List[Track], artist_genres: Dict[str, List[str]]) -> None:
        """Replace the known-track pool."""
        self.heard_tracks = list(heard_tracks)
        self.artist_genres = dict(artist_genres)

        self._with_features = [t for t in self.heard_tracks if t.audio_features is not None]
        if self._with_features:
            self._matrix = np.array([self._vector(t) for t in self._with_features])
        else:
            self._matrix = np.zeros((0, len(AUDIO_FEATURES)))

    def clear(self) -> None:
        self.update([], {})

    @staticmethod
    def _vector(track: Track) -> np.ndarray:
        vector = track.audio_features.to_vector(AUDIO_FEATURES)
        tempo_idx = AUDIO_FEATURES.index("tempo")
        vector[tempo_idx] = vector[tempo_idx] / TEMPO_SCALE
        return vector

    def _genres(self, track: Track) -> Set[str]:
        genres = set()
        for artist in track.artists:
            tags = artist.genres or self.artist_genres.get(artist.id, [])
            genres.update(normalize_genre(g) for g in tags if g)
        return genres

    def select(self, track: Track, k: int = 3) -> List[HeardSample]:
        """
        Pick up to k known tracks for a candidate.

        Args:
            track: Candidate track
            k: Number of samples

        Returns:
            List of HeardSample
        """
        pool = [t for t in self.heard_tracks if t.id != track.id]
        if not pool or k <= 0:
            return []

        vector = self._vector(track) if track.audio_features is not None else None
        if vector is None or np.all(np.isnan(vector)) or len(self._with_features) == 0:
            picks = self.rng.sample(pool, min(k, len(pool)))
            return [t.to_heard_sample() for t in picks]

        distances = nan_euclidean_distances(vector.reshape(1, -1), self._matrix)[0]
        candidate_genres = self._genres(track)

        scored = []
        for known, distance in zip(self._with_features, distances):
            if known.id == track.id:
                continue
            if np.isnan(distance):
                distance = float(len(AUDIO_FEATURES))
            overlap = len(candidate_genres & self._genres(known))
            scored.append((float(distance) - GENRE_OVERLAP_BONUS * overlap, known))

        if not scored:
            picks = self.rng.sample(pool, min(k, len(pool)))
            return [t.to_heard_sample() for t in picks]

        scored.sort(key=lambda x: x[0])
        return [known.to_heard_sample() for _, known in scored[:k]]

    def attach(self, tracks: List[Track], k: int = 3) -> None:
        """Set heard_samples on every track."""
        for track in tracks:
            track.heard_samples = self.select(track, k)
