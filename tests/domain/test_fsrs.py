"""Tests for the forgetting-curve model functions."""

import math

import pytest

from mneme.domain import fsrs
from mneme.domain.constants import DEFAULT_WEIGHTS
from mneme.domain.errors import InvalidInput
from mneme.domain.models import ParameterVector, Rating


class TestRetrievability:
    def test_full_recall_right_after_review(self):
        assert fsrs.retrievability(0, 5.0) == 1.0

    def test_ninety_percent_at_stability(self):
        for s in (0.5, 1.0, 12.0, 365.0):
            assert fsrs.retrievability(s, s) == pytest.approx(0.9)

    def test_strictly_decreasing_in_time(self):
        values = [fsrs.retrievability(t, 10.0) for t in (0, 0.5, 1, 5, 30, 300)]
        assert all(a > b for a, b in zip(values, values[1:]))

    def test_higher_stability_retains_more(self):
        assert fsrs.retrievability(10, 20.0) > fsrs.retrievability(10, 5.0)

    def test_infinite_elapsed_is_zero(self):
        assert fsrs.retrievability(math.inf, 3.0) == 0.0

    @pytest.mark.parametrize(
        "elapsed, stability",
        [
            (-1, 5.0),
            (math.nan, 5.0),
            (1, 0.0),
            (1, -2.0),
            (1, math.nan),
            ("3", 5.0),
            (10**400, 5.0),
            (1, 10**400),
        ],
    )
    def test_rejects_out_of_domain(self, elapsed, stability):
        with pytest.raises(InvalidInput):
            fsrs.retrievability(elapsed, stability)


class TestNextInterval:
    def test_interval_equals_stability_at_ninety_percent(self):
        assert fsrs.next_interval(10.0, 0.9) == 10

    def test_higher_retention_shortens_interval(self):
        assert fsrs.next_interval(30.0, 0.95) < fsrs.next_interval(30.0, 0.85)

    def test_clamped_to_bounds(self):
        assert fsrs.next_interval(0.01, 0.9) == 1
        assert fsrs.next_interval(1e9, 0.9, maximum_days=365) == 365

    def test_inverse_of_retrievability(self):
        interval = fsrs.next_interval(20.0, 0.8)
        assert fsrs.retrievability(interval, 20.0) == pytest.approx(0.8, abs=0.01)

    @pytest.mark.parametrize("retention", [0.0, 1.0, 1.5, -0.2])
    def test_rejects_bad_retention(self, retention):
        with pytest.raises(InvalidInput):
            fsrs.next_interval(10.0, retention)


class TestInitialState:
    def test_initial_stability_selected_by_rating(self):
        for rating in Rating:
            assert fsrs.initial_stability(rating) == DEFAULT_WEIGHTS[rating - 1]

    def test_initial_difficulty_good_is_baseline(self):
        assert fsrs.initial_difficulty(Rating.GOOD) == pytest.approx(DEFAULT_WEIGHTS[4])

    def test_initial_difficulty_orders_by_rating(self):
        values = [fsrs.initial_difficulty(r) for r in Rating]
        assert values == sorted(values, reverse=True)
        assert all(1 <= v <= 10 for v in values)

    def test_initial_difficulty_clamped(self):
        weights = ParameterVector().with_updates({4: 10.0, 5: 4.0})
        assert fsrs.initial_difficulty(Rating.AGAIN, weights) == 10.0
        assert fsrs.initial_difficulty(Rating.EASY, ParameterVector().with_updates({4: 1.0})) == 1.0

    def test_rejects_unknown_rating(self):
        with pytest.raises(InvalidInput):
            fsrs.initial_stability(5)


class TestUpdateDifficulty:
    def test_again_raises_easy_lowers(self):
        assert fsrs.update_difficulty(Rating.AGAIN, 5.0) > 5.0
        assert fsrs.update_difficulty(Rating.EASY, 5.0) < 5.0

    def test_good_reverts_toward_baseline(self):
        above = fsrs.update_difficulty(Rating.GOOD, 9.0)
        assert DEFAULT_WEIGHTS[4] < above < 9.0

    def test_stays_in_range(self):
        d = 9.5
        for _ in range(50):
            d = fsrs.update_difficulty(Rating.AGAIN, d)
            assert 1.0 <= d <= 10.0
        for _ in range(100):
            d = fsrs.update_difficulty(Rating.EASY, d)
            assert 1.0 <= d <= 10.0

    def test_rejects_out_of_range_difficulty(self):
        with pytest.raises(InvalidInput):
            fsrs.update_difficulty(Rating.GOOD, 11.0)


class TestUpdateStability:
    @pytest.mark.parametrize("rating", [Rating.HARD, Rating.GOOD, Rating.EASY])
    @pytest.mark.parametrize("s, d, r", [(1.0, 5.0, 0.9), (30.0, 9.0, 0.5), (0.2, 1.0, 0.99)])
    def test_recall_never_decreases(self, rating, s, d, r):
        assert fsrs.update_stability(rating, s, d, r) >= s

    @pytest.mark.parametrize("s, d, r", [(1.0, 5.0, 0.9), (30.0, 9.0, 0.5), (365.0, 2.0, 0.1)])
    def test_lapse_never_increases(self, s, d, r):
        after = fsrs.update_stability(Rating.AGAIN, s, d, r)
        assert 0 < after <= s

    def test_easy_beats_good_beats_hard(self):
        args = (10.0, 5.0, 0.8)
        hard = fsrs.update_stability(Rating.HARD, *args)
        good = fsrs.update_stability(Rating.GOOD, *args)
        easy = fsrs.update_stability(Rating.EASY, *args)
        assert hard < good < easy

    def test_low_retrievability_gives_larger_gain(self):
        late = fsrs.update_stability(Rating.GOOD, 10.0, 5.0, 0.6)
        early = fsrs.update_stability(Rating.GOOD, 10.0, 5.0, 0.95)
        assert late > early

    def test_easier_cards_grow_faster(self):
        easy_card = fsrs.update_stability(Rating.GOOD, 10.0, 2.0, 0.8)
        hard_card = fsrs.update_stability(Rating.GOOD, 10.0, 9.0, 0.8)
        assert easy_card > hard_card

    def test_full_retrievability_means_no_growth(self):
        assert fsrs.update_stability(Rating.GOOD, 10.0, 5.0, 1.0) == pytest.approx(10.0)

    def test_rejects_bad_retrievability(self):
        with pytest.raises(InvalidInput):
            fsrs.update_stability(Rating.GOOD, 10.0, 5.0, 1.2)


def test_huge_integers_are_invalid_input():
    with pytest.raises(InvalidInput, match="too large"):
        fsrs.next_interval(10**400, 0.9)
    with pytest.raises(InvalidInput, match="too large"):
        fsrs.update_difficulty(Rating.GOOD, 10**400)
