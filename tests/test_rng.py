"""Tests for the labelled, seeded model RNG."""

import pytest

from replay.exceptions import InvalidStateError, UnseededRNGError
from replay.util.rng import (
    MAX_SEED,
    SeededRNG,
    SystemRNG,
    create_model_rng,
    generate_seed,
    require_seeded_rng,
)


class TestSeededRNG:
    """Reproducibility of the Mulberry32 generator."""

    def test_same_seed_same_sequence(self):
        a = SeededRNG(12345)
        b = SeededRNG(12345)
        assert [a.random() for _ in range(50)] == [b.random() for _ in range(50)]

    def test_labels_never_affect_values(self):
        a = SeededRNG(7)
        b = SeededRNG(7)
        labelled = [a.random(f"label_{i}") for i in range(20)]
        unlabelled = [b.random() for _ in range(20)]
        assert labelled == unlabelled

    def test_different_seeds_diverge(self):
        a = SeededRNG(1)
        b = SeededRNG(2)
        assert [a.random() for _ in range(5)] != [b.random() for _ in range(5)]

    def test_values_in_unit_interval(self):
        rng = SeededRNG(99)
        for _ in range(1000):
            value = rng.random()
            assert 0.0 <= value < 1.0

    def test_seed_is_masked_to_32_bits(self):
        rng = SeededRNG(2**32 + 5)
        assert rng.initial_seed == 5
        assert [rng.random() for _ in range(3)] == [SeededRNG(5).random() for _ in range(3)]

    def test_reset_rewinds_and_clears_log(self):
        rng = SeededRNG(42)
        first = [rng.random("a") for _ in range(4)]
        rng.reset()
        assert rng.call_count == 0
        assert rng.get_call_log() == []
        assert [rng.random("a") for _ in range(4)] == first


class TestCallLog:
    """Every draw is counted and logged with its label."""

    def test_call_count_matches_log_length(self, seeded_rng):
        seeded_rng.random("one")
        seeded_rng.pick_random(["a", "b", "c"], "two")
        seeded_rng.random_in_range(1.0, 2.0, "three")
        assert seeded_rng.call_count == 3
        assert seeded_rng.get_call_count() == len(seeded_rng.get_call_log()) == 3

    def test_log_records_labels_values_and_indices(self, seeded_rng):
        value = seeded_rng.random("attention_check")
        seeded_rng.random()
        log = seeded_rng.get_call_log()
        assert log[0].label == "attention_check"
        assert log[0].value == value
        assert log[0].index == 0
        assert log[1].label == "random"
        assert log[1].index == 1

    def test_default_labels_for_helpers(self, seeded_rng):
        seeded_rng.pick_random([1, 2])
        seeded_rng.random_in_range(0.0, 1.0)
        assert [d.label for d in seeded_rng.get_call_log()] == ["pickRandom", "randomInRange"]

    def test_get_call_log_returns_a_copy(self, seeded_rng):
        seeded_rng.random()
        log = seeded_rng.get_call_log()
        log.clear()
        assert seeded_rng.call_count == 1


class TestHelpers:
    def test_pick_random_uses_one_draw(self, seeded_rng):
        items = ["p1", "p2", "p3"]
        picked = seeded_rng.pick_random(items, "grievance_target")
        assert picked in items
        assert seeded_rng.call_count == 1

    def test_pick_random_matches_index_of_draw(self):
        items = ["a", "b", "c", "d"]
        value = SeededRNG(3).random()
        assert SeededRNG(3).pick_random(items) == items[int(value * len(items))]

    def test_pick_random_empty_raises(self, seeded_rng):
        with pytest.raises(ValueError):
            seeded_rng.pick_random([])
        assert seeded_rng.call_count == 0

    def test_random_in_range_bounds(self, seeded_rng):
        for _ in range(200):
            value = seeded_rng.random_in_range(-3.0, 5.0)
            assert -3.0 <= value < 5.0


class TestFactories:
    def test_create_model_rng_seeded(self):
        rng = create_model_rng(42)
        assert isinstance(rng, SeededRNG)
        assert rng.initial_seed == 42

    def test_create_model_rng_live(self):
        rng = create_model_rng()
        assert isinstance(rng, SystemRNG)
        value = rng.random("live")
        assert 0.0 <= value < 1.0
        assert rng.call_count == 1

    def test_shared_base_needs_a_value_source(self):
        from replay.util.rng import _LoggingRNG

        with pytest.raises(TypeError):
            _LoggingRNG()

    def test_generate_seed_range(self):
        for _ in range(20):
            assert 0 <= generate_seed() < MAX_SEED


class TestRequireSeededRNG:
    def test_accepts_seeded(self, seeded_rng):
        assert require_seeded_rng(seeded_rng, "test") is seeded_rng

    @pytest.mark.parametrize("rng", [None, SystemRNG(), object()])
    def test_rejects_everything_else(self, rng):
        with pytest.raises(UnseededRNGError) as exc_info:
            require_seeded_rng(rng, "recording")
        assert "recording" in str(exc_info.value)

    def test_error_is_an_invalid_state(self):
        with pytest.raises(InvalidStateError):
            require_seeded_rng(None)
