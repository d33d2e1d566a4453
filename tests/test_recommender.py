"""
End-to-end engine tests.

Mocked boundaries:
  - SpotifyClient (MagicMock catalog from conftest)
  - ExclusionStore (MagicMock)
Local state is a real LocalStore under tmp_path.
"""
import random

import pytest

from tunebloom_recs.recommender import RecommendationEngine, RecommendationError

from conftest import features_payload, make_track, mock_spotify, mock_store, track_payload

HISTORY = [track_payload(f"h{i}") for i in range(5)]


def _catalog(n_recs=40, search=None, history_value=0.5, rec_values=None):
    recs = [track_payload(f"r{i}") for i in range(n_recs)]
    rec_values = rec_values or {}
    features = {p["id"]: features_payload(history_value) for p in HISTORY}
    for p in recs:
        features[p["id"]] = features_payload(rec_values.get(p["id"], 0.5))
    return mock_spotify(top=HISTORY, recs=recs, features=features, search=search)


def _engine(sp, store=None, local_store=None, liked_store=None):
    return RecommendationEngine(
        sp,
        exclusion_store=store,
        local_store=local_store,
        liked_store=liked_store,
        rng=random.Random(11),
        sleep=lambda s: None,
    )


class TestDeck:
    def test_bounded_unique_and_unheard(self):
        deck = _engine(_catalog()).generate_recommendations(20)

        ids = [t.id for t in deck]
        assert len(ids) == 20
        assert len(set(ids)) == 20
        assert not any(i.startswith("h") for i in ids)

    def test_tracks_carry_features_and_heard_samples(self):
        deck = _engine(_catalog()).generate_recommendations(5)

        for track in deck:
            assert track.audio_features is not None
            assert track.similarity is not None
            assert len(track.heard_samples) == 3
            assert all(s.id.startswith("h") for s in track.heard_samples)

    def test_count_must_be_positive(self):
        with pytest.raises(ValueError):
            _engine(_catalog()).generate_recommendations(0)

    def test_swiped_track_left_out_of_next_deck(self):
        engine = _engine(_catalog())
        first = engine.generate_recommendations(5)

        engine.exclude_track(first[0].id)
        second = engine.generate_recommendations(40)

        assert first[0].id not in [t.id for t in second]


class TestFallbacks:
    @pytest.mark.parametrize("count", [1, 20, 50])
    def test_cold_start_uses_search(self, count):
        search = [track_payload(f"s{i}") for i in range(15)]
        sp = mock_spotify(search=search)

        deck = _engine(sp).generate_recommendations(count)

        assert 0 < len(deck) <= count
        assert all(t.id.startswith("s") for t in deck)
        assert sp.get_recommendations.call_count <= 1

    def test_small_pool_topped_up_from_fallback(self):
        search = [track_payload(f"s{i}") for i in range(10)]
        sp = _catalog(n_recs=3, search=search)

        deck = _engine(sp).generate_recommendations(20)

        assert len(deck) == 13

    def test_repeats_beat_an_empty_deck(self):
        sp = mock_spotify(top=HISTORY, recs=HISTORY)

        deck = _engine(sp).generate_recommendations(10)

        assert sorted(t.id for t in deck) == [f"h{i}" for i in range(5)]

    def test_heard_fallback_tracks_as_last_resort(self):
        sp = mock_spotify(top=HISTORY, search=HISTORY)

        deck = _engine(sp).generate_recommendations(10)

        assert deck
        assert {t.id for t in deck} <= {f"h{i}" for i in range(5)}

    def test_nothing_anywhere_raises(self):
        with pytest.raises(RecommendationError):
            _engine(mock_spotify()).generate_recommendations(10)


class TestFeedback:
    def test_likes_change_the_ranking_target(self):
        values = {"r0": 0.9, "r1": 0.2}
        engine = _engine(_catalog(n_recs=12, history_value=0.2, rec_values=values))

        before = engine.generate_recommendations(2)
        after = engine.generate_recommendations(2, liked_tracks=[make_track("L", 0.9)])

        assert before[0].id == "r1"
        assert after[0].id == "r0"

    def test_likes_become_seeds(self):
        sp = _catalog()
        engine = _engine(sp)

        engine.generate_recommendations(5, liked_tracks=[make_track("L", 0.9)])

        first_batch = sp.get_recommendations.call_args_list[0].kwargs
        assert first_batch["seed_tracks"] == ["L"]


class TestPersistence:
    def test_served_ids_recorded(self, local_store):
        store = mock_store()
        engine = _engine(_catalog(), store=store, local_store=local_store)

        deck = engine.generate_recommendations(10)

        served = [t.id for t in deck]
        store.add_bulk_excluded_tracks.assert_any_call("user-1", served, "served")
        assert engine.tracker.local_cache.load() == served

    def test_next_session_skips_served(self, local_store):
        first = _engine(_catalog(), local_store=local_store).generate_recommendations(10)
        second = _engine(_catalog(), local_store=local_store).generate_recommendations(10)

        assert not {t.id for t in first} & {t.id for t in second}

    def test_swipe_and_undo(self):
        store = mock_store()
        engine = _engine(_catalog(), store=store)

        engine.exclude_track("r1")
        assert engine.is_excluded("r1")
        store.add_bulk_excluded_tracks.assert_called_once_with("user-1", ["r1"], "swiped")

        engine.remove_exclusion("r1")
        assert not engine.is_excluded("r1")

    def test_undo_keeps_library_track_hidden(self):
        engine = _engine(_catalog())
        engine.generate_recommendations(5)

        engine.exclude_track("h0")
        engine.remove_exclusion("h0")

        assert engine.is_excluded("h0")

    def test_store_failure_does_not_break_deck(self):
        store = mock_store()
        store.add_bulk_excluded_tracks.side_effect = RuntimeError("offline")
        deck = _engine(_catalog(), store=store).generate_recommendations(10)
        assert len(deck) == 10


class TestSessionState:
    def test_reset_drops_profile_and_exclusions(self):
        sp = _catalog()
        engine = _engine(sp)
        engine.generate_recommendations(5)
        engine.exclude_track("r1")

        engine.reset()

        assert engine.profile is None
        assert engine.tracker.size == 0
        engine.generate_recommendations(5)
        assert sp.get_top_tracks.call_count == 6

    def test_reset_retries_identity_lookup(self):
        sp = _catalog()
        sp.get_current_user.side_effect = [RuntimeError("401"), {"id": "user-2"}]
        engine = _engine(sp)

        assert engine.user_id is None
        engine.reset()

        assert engine.user_id == "user-2"

    def test_profile_reused_between_decks(self):
        sp = _catalog()
        engine = _engine(sp)
        engine.generate_recommendations(5)
        engine.generate_recommendations(5, vibe_shift=1)
        assert sp.get_top_tracks.call_count == 3

    def test_superseded_request_not_recorded(self):
        store = mock_store()
        sp = _catalog()
        engine = _engine(sp, store=store)
        recs = sp.get_recommendations.side_effect

        def reset_midway(**kwargs):
            if sp.get_recommendations.call_count == 1:
                engine.reset()
            return recs(**kwargs)

        sp.get_recommendations.side_effect = reset_midway

        deck = engine.generate_recommendations(10)

        assert len(deck) == 10
        assert engine.profile is None
        reasons = [c.args[2] for c in store.add_bulk_excluded_tracks.call_args_list]
        assert "served" not in reasons
