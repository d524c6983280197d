"""
Tests for cache keys and TTL stores.
"""

import random

import pytest

from feature_matrix.cache import (
    TTLCache,
    build_cache_key,
    get_pca_cache,
    get_row_cache,
    reset_caches,
)
from feature_matrix.clock import MockClock


# ============================================================
# CACHE KEY
# ============================================================

class TestBuildCacheKey:
    """Tests for build_cache_key."""

    def test_key_format(self):
        key = build_cache_key(3, ["EDA", "ECG"], [10, 2, 1])

        assert key == "3:ECG,EDA:1,2,10"

    def test_invariant_under_permutation(self):
        features = ["ECG", "EDA", "SBP", "DBP", "temp"]
        subjects = list(range(1, 30))
        expected = build_cache_key(2, features, subjects)

        rng = random.Random(7)
        for _ in range(20):
            f = features[:]
            s = subjects[:]
            rng.shuffle(f)
            rng.shuffle(s)
            assert build_cache_key(2, f, s) == expected

    def test_subject_ids_sorted_numerically(self):
        """10 must sort after 9, not between 1 and 2."""
        assert build_cache_key(1, ["ECG"], [10, 9]) == "1:ECG:9,10"

    def test_distinct_subject_sets_produce_distinct_keys(self):
        assert build_cache_key(1, ["ECG"], [1, 2]) != build_cache_key(1, ["ECG"], [1, 3])
        assert build_cache_key(1, ["ECG"], [1, 2]) != build_cache_key(1, ["ECG"], [12])

    def test_distinct_studies_produce_distinct_keys(self):
        assert build_cache_key(1, ["ECG"], [1]) != build_cache_key(2, ["ECG"], [1])

    def test_duplicates_in_any_order_give_same_key(self):
        assert build_cache_key(1, ["ECG"], [2, 1, 2]) == build_cache_key(1, ["ECG"], [2, 2, 1])

    def test_does_not_mutate_inputs(self):
        features = ["EDA", "ECG"]
        subjects = [3, 1, 2]

        build_cache_key(1, features, subjects)

        assert features == ["EDA", "ECG"]
        assert subjects == [3, 1, 2]

    def test_empty_lists_rejected(self):
        with pytest.raises(ValueError):
            build_cache_key(1, [], [1])
        with pytest.raises(ValueError):
            build_cache_key(1, ["ECG"], [])


# ============================================================
# TTL CACHE
# ============================================================

class TestTTLCache:
    """Tests for TTLCache."""

    def test_round_trip(self, mock_clock):
        cache = TTLCache("test", ttl_seconds=300, clock=mock_clock)
        payload = object()

        cache.set("k", payload)
        entry = cache.get("k")

        assert entry is not None
        assert entry.payload is payload

    def test_missing_key(self, mock_clock):
        cache = TTLCache("test", clock=mock_clock)

        assert cache.get("nope") is None

    def test_valid_just_before_ttl(self, mock_clock):
        cache = TTLCache("test", ttl_seconds=300, clock=mock_clock)
        cache.set("k", "v")

        mock_clock.advance(seconds=299)

        assert cache.get("k") is not None

    def test_expired_after_five_minutes(self, mock_clock):
        cache = TTLCache("test", ttl_seconds=300, clock=mock_clock)
        cache.set("k", "v")

        mock_clock.advance(minutes=5)

        assert cache.get("k") is None
        assert len(cache) == 0  # lazily evicted

    def test_set_replaces_and_restarts_ttl(self, mock_clock):
        cache = TTLCache("test", ttl_seconds=300, clock=mock_clock)
        cache.set("k", "old")
        mock_clock.advance(seconds=200)
        cache.set("k", "new")
        mock_clock.advance(seconds=200)

        entry = cache.get("k")

        assert entry is not None
        assert entry.payload == "new"

    def test_stats_track_hits_and_misses(self, mock_clock):
        cache = TTLCache("test", clock=mock_clock)
        cache.set("k", 1)

        cache.get("k")
        cache.get("k")
        cache.get("other")

        stats = cache.stats()
        assert stats["hits"] == 2
        assert stats["misses"] == 1
        assert stats["size"] == 1

    def test_invalidate(self, mock_clock):
        cache = TTLCache("test", clock=mock_clock)
        cache.set("k", 1)

        assert cache.invalidate("k") is True
        assert cache.invalidate("k") is False
        assert cache.get("k") is None


class TestProcessWideCaches:
    """Tests for the module-level row and PCA caches."""

    def test_caches_are_independent(self):
        get_row_cache().set("k", "rows")

        assert get_pca_cache().get("k") is None

    def test_reset_empties_both(self):
        get_row_cache().set("k", "rows")
        get_pca_cache().set("k", "pca")

        reset_caches()

        assert len(get_row_cache()) == 0
        assert len(get_pca_cache()) == 0

    def test_process_cache_follows_global_clock(self):
        from feature_matrix.clock import get_clock, set_clock

        original = get_clock()
        clock = MockClock()
        set_clock(clock)
        try:
            get_row_cache().set("k", "rows")
            clock.advance(minutes=6)
            assert get_row_cache().get("k") is None
        finally:
            set_clock(original)
