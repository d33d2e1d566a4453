"""
Ranking Module
==============

Orders candidates by how close their sound is to the listener's taste.

Mathematical Formulation:
-------------------------

    d(c, p) = sqrt( Σ (c_f - p_f)^2 )   for f in {danceability, energy, valence}

Terms where either side lacks a value are skipped. A candidate with no
feature vector at all gets a large sentinel distance and sinks to the end.
Lower is better.

Candidates are shuffled before scoring, and scores closer than a small
epsilon are ordered at random, so near-identical tracks do not always
cluster in the same order.
"""

import random
from typing import Dict, List, Optional

from scipy.spatial.distance import euclidean

from .config import DISTANCE_FEATURES, RankingConfig
from .features import AudioFeatures, Track


def feature_distance(
    features: Dict[str, Optional[float]],
    target: Dict[str, Optional[float]],
    names: List[str] = DISTANCE_FEATURES
) -> float:
    """
    Euclidean distance over the named features both sides report.

    Args:
        features: Candidate feature values
        target: Target profile values
        names: Features to compare

    Returns:
        Distance (0.0 when no feature is shared)
    """
    a, b = [], []
    for name in names:
        x = features.get(name)
        y = target.get(name)
        if x is None or y is None:
            continue
        a.append(float(x))
        b.append(float(y))

    if not a:
        return 0.0
    return float(euclidean(a, b))


class Ranker:
    """
    Distance-based ranker for candidate tracks.

    Usage:
        ranker = Ranker()
        ordered = ranker.rank(candidates, {"danceability": 0.6, "energy": 0.7})
    """

    def __init__(self, config: Optional[RankingConfig] = None, rng: Optional[random.Random] = None):
        """
        Initialize ranker.

        Args:
            config: Ranking configuration
            rng: Random source for shuffling and tie jitter
        """
        self.config = config or RankingConfig()
        self.rng = rng or random.Random()

    def score(self, features: Optional[AudioFeatures], target: Dict[str, float]) -> float:
        """Distance of one feature vector to the target."""
        if features is None:
            return self.config.missing_distance
        return feature_distance(features.to_dict(), target)

    def rank(self, candidates: List[Track], target: Dict[str, float]) -> List[Track]:
        """
        Score and sort candidates, closest first.

        Sets `similarity` (the distance) on every track.

        Args:
            candidates: Tracks to rank
            target: Target audio profile

        Returns:
            New list ordered by ascending distance
        """
        ordered = list(candidates)
        self.rng.shuffle(ordered)

        for track in ordered:
            track.similarity = self.score(track.audio_features, target)

        # Jitter below the epsilon only reorders near-ties
        jitter = {id(t): self.rng.uniform(0, self.config.tie_epsilon) for t in ordered}
        ordered.sort(key=lambda t: t.similarity + jitter[id(t)])
        return ordered
