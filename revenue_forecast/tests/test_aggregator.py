"""Tests for reduction of trial revenues into forecast statistics."""

import numpy as np
import pytest

from revenue_forecast.aggregator import (
    PERCENTILE_LEVELS,
    histogram,
    summarize,
    truncated_percentile,
)
from revenue_forecast.exceptions import EmptyTrialSetError, ForecastError
from revenue_forecast.results import N_BUCKETS


class TestTruncatedPercentile:
    """Tests for the truncated-index percentile rule."""

    def test_ten_values(self):
        ordered = np.arange(1.0, 11.0)
        assert truncated_percentile(ordered, 0.10) == 2.0
        assert truncated_percentile(ordered, 0.25) == 3.0
        assert truncated_percentile(ordered, 0.50) == 6.0
        assert truncated_percentile(ordered, 0.75) == 8.0
        assert truncated_percentile(ordered, 0.90) == 10.0

    def test_single_value(self):
        ordered = np.array([42.0])
        for level in PERCENTILE_LEVELS.values():
            assert truncated_percentile(ordered, level) == 42.0

    def test_ties_are_not_deduplicated(self):
        ordered = np.array([1.0, 1.0, 1.0, 1.0, 9.0])
        assert truncated_percentile(ordered, 0.75) == 1.0
        assert truncated_percentile(ordered, 0.90) == 9.0


class TestHistogram:
    """Tests for equal-width bucketing."""

    def test_spread_values(self):
        counts, lower_bounds = histogram(np.arange(1.0, 11.0))
        assert counts.sum() == 10
        assert len(counts) == N_BUCKETS
        assert np.flatnonzero(counts).tolist() == [0, 2, 4, 6, 8, 11, 13, 15, 17, 19]
        assert lower_bounds[0] == 1.0
        assert lower_bounds[1] == pytest.approx(1.45)

    def test_maximum_lands_in_last_bucket(self):
        counts, _ = histogram(np.array([0.0, 100.0]))
        assert counts[0] == 1
        assert counts[-1] == 1

    def test_zero_width_puts_mass_in_first_bucket(self):
        counts, lower_bounds = histogram(np.array([7.0, 7.0, 7.0]))
        assert counts[0] == 3
        assert counts[1:].sum() == 0
        assert np.all(lower_bounds == 7.0)

    def test_custom_bucket_count(self):
        counts, lower_bounds = histogram(np.array([0.0, 1.0, 2.0, 3.0]), n_buckets=4)
        assert counts.tolist() == [1, 1, 1, 1]
        assert lower_bounds.tolist() == [0.0, 0.75, 1.5, 2.25]


class TestSummarize:
    """Tests for summarize()."""

    def test_statistics(self):
        result = summarize([10.0, 3.0, 7.0, 1.0, 5.0, 2.0, 8.0, 4.0, 9.0, 6.0])
        assert result.n_trials == 10
        assert result.expected_revenue == pytest.approx(5.5)
        assert result.min_revenue == 1.0
        assert result.max_revenue == 10.0
        assert result.percentiles.as_dict() == {
            "p10": 2.0,
            "p25": 3.0,
            "p50": 6.0,
            "p75": 8.0,
            "p90": 10.0,
        }

    def test_distribution_normalized_to_tallest_bucket(self):
        result = summarize([0.0, 0.0, 0.0, 0.0, 50.0, 100.0])
        assert max(result.distribution) == 1.0
        assert result.distribution[0] == 1.0
        assert result.distribution[-1] == 0.25
        assert len(result.buckets) == N_BUCKETS
        assert list(result.buckets) == sorted(result.buckets)

    def test_single_distinct_value(self):
        result = summarize(np.full(2000, 100.0))
        assert result.expected_revenue == 100.0
        assert result.min_revenue == result.max_revenue == 100.0
        assert set(result.percentiles.as_dict().values()) == {100.0}
        assert result.distribution == (1.0,) + (0.0,) * (N_BUCKETS - 1)
        assert result.buckets == (100.0,) * N_BUCKETS

    def test_order_independent(self):
        values = np.random.default_rng(3).uniform(0, 1000, size=500)
        forward = summarize(values)
        backward = summarize(values[::-1])
        assert forward.percentiles == backward.percentiles
        assert forward.distribution == backward.distribution
        assert forward.buckets == backward.buckets
        assert forward.expected_revenue == pytest.approx(backward.expected_revenue)

    def test_does_not_modify_input(self):
        values = np.array([3.0, 1.0, 2.0])
        summarize(values)
        assert values.tolist() == [3.0, 1.0, 2.0]

    def test_empty_raises(self):
        with pytest.raises(EmptyTrialSetError):
            summarize([])

    def test_empty_error_is_value_error(self):
        with pytest.raises(ValueError):
            summarize(np.array([]))
        assert issubclass(EmptyTrialSetError, ForecastError)

    @pytest.mark.parametrize("bad", [float("nan"), float("inf")])
    def test_non_finite_raises(self, bad):
        with pytest.raises(ValueError, match="finite"):
            summarize([1.0, bad])
