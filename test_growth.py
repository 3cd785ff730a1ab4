import math
import random

import pytest
import growth
from errors import InvalidArgument
from growth import (
    BONUS_INCREMENT,
    SurvivalTable,
    days_to_target,
    min_bonus_for_target,
    simulate,
    survival_probabilities,
)


class TestSurvivalProbabilities:
    def test_binomial_values(self):
        # P(Binomial(t, 0.5) < 2)
        assert survival_probabilities(0.5, 3, capacity=2) == pytest.approx([1.0, 1.0, 0.75, 0.5])

    def test_p_zero_never_exhausts(self):
        assert survival_probabilities(0.0, 5, capacity=1) == [1.0] * 6

    def test_p_one_exhausts_at_capacity(self):
        assert survival_probabilities(1.0, 4, capacity=3) == [1.0, 1.0, 1.0, 0.0, 0.0]

    def test_zero_capacity(self):
        assert survival_probabilities(0.3, 2, capacity=0) == [0.0, 0.0, 0.0]

    def test_non_increasing(self):
        values = survival_probabilities(0.2, 200, capacity=10)
        assert all(a >= b for a, b in zip(values, values[1:]))
        assert values[-1] < 1e-6

    def test_table_extends_lazily(self):
        table = SurvivalTable(0.3, 4)
        assert len(table) == 0
        assert table[10] == pytest.approx(survival_probabilities(0.3, 10, capacity=4)[10])
        assert len(table) == 11

    def test_large_capacity_does_not_underflow(self):
        """(1-p)^t underflows past t ~ 1075 at p=0.5; the CDF itself does not."""
        values = survival_probabilities(0.5, 2100, capacity=1000)
        for t in (1074, 1075, 1100, 1500, 2100):
            exact = sum(math.comb(t, k) for k in range(1000)) / 2**t
            assert values[t] == pytest.approx(exact, rel=1e-8)
        assert values[1100] > 0.999

    def test_invalid_probability(self):
        with pytest.raises(InvalidArgument):
            SurvivalTable(-0.1, 10)


class TestSimulate:
    """Expected cumulative successes; index 0 is always 0."""

    def test_day_zero(self):
        assert simulate(0.5, 0) == [0.0]

    def test_p_zero(self):
        assert simulate(0.0, 30) == [0.0] * 31

    def test_no_capacity_exhaustion_matches_closed_form(self):
        """With fewer days than capacity every referrer stays active: N(1+p)^d - N."""
        result = simulate(0.5, 6)
        assert len(result) == 7
        for day, value in enumerate(result):
            assert value == pytest.approx(100 * 1.5**day - 100)
        assert result[6] == pytest.approx(1039.0625)

    def test_long_horizon(self):
        assert simulate(0.1, 21)[21] == pytest.approx(640.02, abs=0.01)

    def test_p_one_respects_capacity(self):
        """
        capacity 3: each cohort succeeds on its first three days only.
        day 1: 100, day 2: 100 + 100, day 3: 100 + 100 + 200,
        day 4: 100 + 200 + 400 (the initial cohort is done).
        """
        assert simulate(1.0, 4, initial_referrers=100, capacity=3) == [0.0, 100.0, 300.0, 700.0, 1400.0]

    @pytest.mark.parametrize("capacity", [2, 3, 5])
    def test_initial_cohort_contributes_capacity(self, capacity):
        """
        At p=1 every initial agent succeeds on each of its first `capacity`
        days and never again. Later cohorts, seeded by day j's successes,
        account for the rest of day d's successes for j in [d - capacity, d - 1].
        """
        result = simulate(1.0, 12, initial_referrers=100, capacity=capacity)
        daily = [0.0] + [b - a for a, b in zip(result, result[1:])]
        own = [
            daily[d] - sum(daily[max(1, d - capacity):d])
            for d in range(1, 13)
        ]
        assert own == [100.0 if d <= capacity else 0.0 for d in range(1, 13)]
        assert sum(own) == 100 * capacity

    @pytest.mark.parametrize("p, capacity, days", [(0.9, 3, 60), (0.3, 4, 120), (0.05, 10, 300)])
    def test_truncation_window_within_tolerance(self, monkeypatch, p, capacity, days):
        truncated = simulate(p, days, capacity=capacity)
        monkeypatch.setattr(growth, "SURVIVAL_EPSILON", 0.0)
        full = simulate(p, days, capacity=capacity)
        assert truncated == pytest.approx(full, rel=1e-12)

    def test_cohorts_leave_the_window(self):
        values = survival_probabilities(0.9, 60, capacity=3)
        assert values[59] < growth.SURVIVAL_EPSILON

    @pytest.mark.parametrize("p, capacity, days", [(0.001, 10, 3000), (0.3, 4, 200), (0.5, 2, 50)])
    def test_matches_capacity_bucket_model(self, p, capacity, days):
        """
        Same model tracked as expected referrers per remaining capacity:
        a success moves a referrer down one bucket, and the day's successes
        join the top bucket for the next day.
        """
        buckets = [0.0] * (capacity + 1)
        buckets[capacity] = 100.0
        expected = [0.0]
        total = 0.0
        for _ in range(days):
            successes = p * sum(buckets[1:])
            total += successes
            expected.append(total)
            rebuilt = [0.0] * (capacity + 1)
            for c in range(1, capacity + 1):
                rebuilt[c] += buckets[c] * (1 - p)
                rebuilt[c - 1] += buckets[c] * p
            rebuilt[0] += buckets[0]
            rebuilt[capacity] += successes
            buckets = rebuilt

        assert simulate(p, days, capacity=capacity) == pytest.approx(expected, rel=1e-9)

    def test_monotone_in_days(self):
        rng = random.Random(5)
        for _ in range(5):
            p = rng.random()
            result = simulate(p, 60, capacity=rng.randint(1, 12))
            assert all(a <= b for a, b in zip(result, result[1:]))

    def test_prefix_stable(self):
        assert simulate(0.2, 40)[:21] == simulate(0.2, 20)

    def test_invalid_arguments(self):
        with pytest.raises(InvalidArgument):
            simulate(0.5, -1)
        with pytest.raises(InvalidArgument):
            simulate(1.5, 10)
        with pytest.raises(InvalidArgument):
            simulate(0.5, 10, capacity=-1)


class TestDaysToTarget:
    def test_reaches_target(self):
        # day 5: 659.4, day 6: 1039.06
        assert days_to_target(0.5, 1000) == 6

    def test_exact_value_is_reached(self):
        values = simulate(0.3, 15)
        for day in range(1, 16):
            assert days_to_target(0.3, values[day]) == day

    def test_non_positive_target(self):
        assert days_to_target(0.5, 0) == 0
        assert days_to_target(0.0, -5) == 0

    def test_not_reached_within_limit(self):
        assert days_to_target(0.5, 1000, max_days_limit=5) is None

    def test_p_zero_never_reaches(self):
        assert days_to_target(0.0, 1) is None

    def test_invalid_probability(self):
        with pytest.raises(InvalidArgument):
            days_to_target(1.01, 10)
        with pytest.raises(InvalidArgument):
            days_to_target(-0.01, 10)


def linear_adoption(bonus: int) -> float:
    return min(1.0, bonus / 1000)


class TestMinBonusForTarget:
    def test_finds_minimum_increment(self):
        """p=0.49 gives 994.25 after 6 days, p=0.5 gives 1039.06."""
        bonus = min_bonus_for_target(6, 1000, linear_adoption)
        assert bonus == 500
        assert bonus % BONUS_INCREMENT == 0

    def test_zero_bonus_suffices(self):
        assert min_bonus_for_target(6, 100, lambda bonus: 0.5) == 0

    def test_calls_adoption_prob_once_per_bonus(self):
        calls = []

        def adoption(bonus):
            calls.append(bonus)
            return linear_adoption(bonus)

        min_bonus_for_target(6, 1000, adoption)
        assert len(calls) == len(set(calls))

    def test_never_adopted(self):
        assert min_bonus_for_target(10, 1, lambda bonus: 0.0) is None

    def test_saturated_probability(self):
        # p=1 still only reaches 700 in 3 days
        assert min_bonus_for_target(3, 10**9, lambda bonus: 1.0) is None

    def test_max_bonus_too_small(self):
        assert min_bonus_for_target(6, 1000, linear_adoption, max_bonus=400) is None
        assert min_bonus_for_target(6, 1000, linear_adoption, max_bonus=505) == 500

    def test_probability_out_of_range(self):
        with pytest.raises(InvalidArgument):
            min_bonus_for_target(6, 1000, lambda bonus: 2.0)

    def test_probability_within_epsilon_is_clamped(self):
        assert min_bonus_for_target(1, 100, lambda bonus: 1.0005) == 0

    def test_invalid_days(self):
        with pytest.raises(InvalidArgument):
            min_bonus_for_target(-1, 10, linear_adoption)
