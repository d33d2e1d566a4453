"""Distance and ranking tests."""
import random

import pytest

from tunebloom_recs.config import RankingConfig
from tunebloom_recs.features import AudioFeatures
from tunebloom_recs.scoring import Ranker, feature_distance

from conftest import make_track

TARGET = {"danceability": 0.5, "energy": 0.5, "valence": 0.5}


class TestFeatureDistance:
    def test_zero_to_itself(self):
        assert feature_distance(TARGET, TARGET) == 0.0

    def test_symmetric(self):
        a = {"danceability": 0.1, "energy": 0.9, "valence": 0.4}
        b = {"danceability": 0.7, "energy": 0.2, "valence": 0.4}
        assert feature_distance(a, b) == pytest.approx(feature_distance(b, a))

    def test_skips_terms_missing_on_either_side(self):
        a = {"danceability": 0.5}
        b = {"danceability": 0.8, "energy": 0.1}
        assert feature_distance(a, b) == pytest.approx(0.3)

    def test_no_shared_terms(self):
        assert feature_distance({"energy": 0.3}, {"valence": 0.9}) == 0.0

    def test_ignores_non_distance_features(self):
        a = {"danceability": 0.5, "energy": 0.5, "valence": 0.5, "tempo": 90.0}
        b = {"danceability": 0.5, "energy": 0.5, "valence": 0.5, "tempo": 180.0}
        assert feature_distance(a, b) == 0.0


class TestRanker:
    def test_closer_track_first(self):
        for seed in range(20):
            ranker = Ranker(rng=random.Random(seed))
            near = make_track("near", 0.5)
            far = make_track("far", 0.9)
            ranked = ranker.rank([far, near], TARGET)
            assert [t.id for t in ranked] == ["near", "far"]

    def test_high_energy_pair(self):
        a = make_track("a", 0.9)
        b = make_track("b", 0.1)
        target = {"danceability": 0.85, "energy": 0.85, "valence": 0.85}
        ranked = Ranker(rng=random.Random(2)).rank([b, a], target)
        assert [t.id for t in ranked] == ["a", "b"]

    def test_missing_features_rank_last(self):
        ranker = Ranker(rng=random.Random(3))
        bare = make_track("bare")
        tracks = [bare, make_track("a", 0.1), make_track("b", 0.95)]

        ranked = ranker.rank(tracks, TARGET)

        assert ranked[-1].id == "bare"
        assert bare.similarity == 999.0

    def test_sets_similarity_on_every_track(self):
        ranker = Ranker(rng=random.Random(0))
        tracks = [make_track("a", 0.5), make_track("b", 0.6)]
        ranker.rank(tracks, TARGET)
        assert tracks[0].similarity == pytest.approx(0.0)
        assert tracks[1].similarity == pytest.approx((3 * 0.01) ** 0.5)

    def test_input_list_not_reordered(self):
        tracks = [make_track(str(i), i / 10) for i in range(10)]
        Ranker(rng=random.Random(5)).rank(tracks, TARGET)
        assert [t.id for t in tracks] == [str(i) for i in range(10)]

    def test_exact_ties_vary_in_order(self):
        orders = set()
        for seed in range(30):
            tracks = [make_track(t, 0.5) for t in ("x", "y", "z")]
            ranked = Ranker(rng=random.Random(seed)).rank(tracks, TARGET)
            orders.add(tuple(t.id for t in ranked))
        assert len(orders) > 1

    def test_score_without_features(self):
        ranker = Ranker(RankingConfig(missing_distance=42.0))
        assert ranker.score(None, TARGET) == 42.0
        assert ranker.score(AudioFeatures(danceability=0.5), TARGET) == 0.0
