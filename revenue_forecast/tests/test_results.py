"""Tests for SimulationResult."""

import pytest

from revenue_forecast.aggregator import summarize
from revenue_forecast.results import N_BUCKETS, Percentiles, SimulationResult


@pytest.fixture
def result():
    return summarize([1200.0, 2500.5, 800.25, 4000.0, 3100.0])


class TestSimulationResult:
    """Tests for SimulationResult."""

    def test_empty_result(self):
        empty = SimulationResult.empty()
        assert empty.n_trials == 0
        assert empty.expected_revenue == 0.0
        assert empty.min_revenue == empty.max_revenue == 0.0
        assert set(empty.percentiles.as_dict().values()) == {0.0}
        assert empty.distribution == (1.0,) + (0.0,) * (N_BUCKETS - 1)
        assert empty.buckets == (0.0,) * N_BUCKETS

    def test_mismatched_histogram_rejected(self):
        with pytest.raises(ValueError, match="same length"):
            SimulationResult(
                expected_revenue=0.0,
                min_revenue=0.0,
                max_revenue=0.0,
                percentiles=Percentiles(0.0, 0.0, 0.0, 0.0, 0.0),
                distribution=(1.0,),
                buckets=(0.0, 1.0),
                n_trials=1,
            )

    def test_frozen(self, result):
        with pytest.raises(AttributeError):
            result.expected_revenue = 0.0

    def test_to_dict_keys(self, result):
        data = result.to_dict()
        assert set(data) == {
            "expectedRevenue",
            "minRevenue",
            "maxRevenue",
            "percentiles",
            "distribution",
            "buckets",
        }
        assert set(data["percentiles"]) == {"p10", "p25", "p50", "p75", "p90"}
        assert data["minRevenue"] == 800.25
        assert len(data["distribution"]) == len(data["buckets"]) == N_BUCKETS

    def test_histogram_frame(self, result):
        frame = result.histogram_frame()
        assert list(frame.columns) == ["bucket_start", "frequency"]
        assert len(frame) == N_BUCKETS
        assert frame["frequency"].max() == 1.0
        assert frame["bucket_start"].is_monotonic_increasing

    def test_summary_text(self, result):
        text = result.summary()
        assert text.startswith("Revenue Forecast Summary")
        assert "Trials: 5" in text
        assert "Expected Revenue: $2,320.15" in text
        assert "Range: $800.25 - $4,000.00" in text
        assert "P50: $2,500.50" in text
