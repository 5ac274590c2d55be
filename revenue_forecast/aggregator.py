"""Reduction of trial revenues into a :class:`SimulationResult`.

Percentiles use the truncated-index rule: ``pK`` is the element at index
``floor(N * K)`` of the ascending-sorted trials, with no interpolation and
no deduplication of ties. The histogram partitions ``[min, max]`` into
:data:`N_BUCKETS` equal-width buckets and is normalized by its tallest
bucket.
"""

import math
from typing import Dict, Sequence, Union

import numpy as np

from .exceptions import EmptyTrialSetError
from .results import N_BUCKETS, Percentiles, SimulationResult

PERCENTILE_LEVELS: Dict[str, float] = {
    "p10": 0.10,
    "p25": 0.25,
    "p50": 0.50,
    "p75": 0.75,
    "p90": 0.90,
}


def truncated_percentile(ordered: np.ndarray, level: float) -> float:
    """Return ``ordered[floor(len(ordered) * level)]`` for ``0 <= level < 1``."""
    return float(ordered[math.floor(len(ordered) * level)])


def histogram(ordered: np.ndarray, n_buckets: int = N_BUCKETS):
    """Bucket sorted trial revenues into equal-width bins over ``[min, max]``.

    When every trial has the same value the bucket width is zero and all
    of the mass is placed in the first bucket.

    Args:
        ordered: Ascending trial revenues, at least one element.
        n_buckets: Number of buckets.

    Returns:
        Tuple of (counts, lower_bounds), both of length ``n_buckets``.
    """
    lo = ordered[0]
    hi = ordered[-1]
    bucket_size = (hi - lo) / n_buckets
    lower_bounds = lo + np.arange(n_buckets) * bucket_size

    if bucket_size == 0:
        counts = np.zeros(n_buckets, dtype=np.int64)
        counts[0] = len(ordered)
        return counts, lower_bounds

    # Clamp keeps the maximum trial out of a phantom bucket past the end
    indices = np.minimum(np.floor((ordered - lo) / bucket_size).astype(np.int64), n_buckets - 1)
    counts = np.bincount(indices, minlength=n_buckets)
    return counts, lower_bounds


def summarize(trial_revenues: Union[Sequence[float], np.ndarray]) -> SimulationResult:
    """Summarize a set of trial revenues.

    Args:
        trial_revenues: Revenue of each completed trial, in any order.

    Returns:
        SimulationResult with mean, extrema, percentiles and histogram.

    Raises:
        EmptyTrialSetError: If no trials are given.
        ValueError: If any trial revenue is not finite.
    """
    values = np.asarray(trial_revenues, dtype=np.float64).ravel()
    n_trials = values.size
    if n_trials == 0:
        raise EmptyTrialSetError()
    if not np.all(np.isfinite(values)):
        raise ValueError("Trial revenues must be finite numbers")

    ordered = np.sort(values, kind="stable")
    min_revenue = float(ordered[0])
    max_revenue = float(ordered[-1])
    # A single distinct value collapses every statistic onto it exactly
    expected_revenue = min_revenue if min_revenue == max_revenue else float(values.mean())

    percentiles = Percentiles(
        **{name: truncated_percentile(ordered, level) for name, level in PERCENTILE_LEVELS.items()}
    )

    counts, lower_bounds = histogram(ordered)
    distribution = counts / counts.max()

    return SimulationResult(
        expected_revenue=expected_revenue,
        min_revenue=min_revenue,
        max_revenue=max_revenue,
        percentiles=percentiles,
        distribution=tuple(float(f) for f in distribution),
        buckets=tuple(float(b) for b in lower_bounds),
        n_trials=int(n_trials),
    )
