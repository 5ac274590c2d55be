"""Immutable summary of a completed forecast run."""

from dataclasses import dataclass
from typing import Any, Dict, Tuple

import pandas as pd

N_BUCKETS = 20


@dataclass(frozen=True)
class Percentiles:
    """Trial revenue at fixed percentile levels (truncated-index rule)."""

    p10: float
    p25: float
    p50: float
    p75: float
    p90: float

    def as_dict(self) -> Dict[str, float]:
        return {"p10": self.p10, "p25": self.p25, "p50": self.p50, "p75": self.p75, "p90": self.p90}


@dataclass(frozen=True)
class SimulationResult:
    """Results from a revenue forecast run.

    Attributes:
        expected_revenue: Mean trial revenue.
        min_revenue: Smallest trial revenue.
        max_revenue: Largest trial revenue.
        percentiles: Trial revenue at p10, p25, p50, p75 and p90.
        distribution: Histogram frequencies, normalized so the tallest
            bucket is exactly 1.0.
        buckets: Ascending lower bound of each histogram bucket.
        n_trials: Number of trials summarized. Zero only for the
            degenerate result of an empty run.
    """

    expected_revenue: float
    min_revenue: float
    max_revenue: float
    percentiles: Percentiles
    distribution: Tuple[float, ...]
    buckets: Tuple[float, ...]
    n_trials: int

    def __post_init__(self):
        if len(self.buckets) != len(self.distribution):
            raise ValueError(
                f"buckets and distribution must have the same length, "
                f"got {len(self.buckets)} and {len(self.distribution)}"
            )

    @classmethod
    def empty(cls) -> "SimulationResult":
        """Zero-filled result for runs with no claims or no iterations.

        All statistics are 0.0 and the whole histogram mass sits in the
        first bucket, matching the single-value collapse of a real run.
        """
        return cls(
            expected_revenue=0.0,
            min_revenue=0.0,
            max_revenue=0.0,
            percentiles=Percentiles(0.0, 0.0, 0.0, 0.0, 0.0),
            distribution=(1.0,) + (0.0,) * (N_BUCKETS - 1),
            buckets=(0.0,) * N_BUCKETS,
            n_trials=0,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize with the camelCase keys consumed by dashboard charts."""
        return {
            "expectedRevenue": self.expected_revenue,
            "minRevenue": self.min_revenue,
            "maxRevenue": self.max_revenue,
            "percentiles": self.percentiles.as_dict(),
            "distribution": list(self.distribution),
            "buckets": list(self.buckets),
        }

    def histogram_frame(self) -> pd.DataFrame:
        """Histogram as a DataFrame with ``bucket_start`` and ``frequency`` columns."""
        return pd.DataFrame({"bucket_start": self.buckets, "frequency": self.distribution})

    def summary(self) -> str:
        """Generate summary of forecast results."""
        percentile_lines = "\n".join(
            f"  {name.upper()}: ${value:,.2f}" for name, value in self.percentiles.as_dict().items()
        )
        return (
            f"Revenue Forecast Summary\n"
            f"{'='*50}\n"
            f"Trials: {self.n_trials:,}\n"
            f"Expected Revenue: ${self.expected_revenue:,.2f}\n"
            f"Range: ${self.min_revenue:,.2f} - ${self.max_revenue:,.2f}\n"
            f"Percentiles:\n{percentile_lines}\n"
        )
