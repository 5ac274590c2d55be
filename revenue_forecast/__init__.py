"""Claims Revenue Forecast"""

from ._version import __version__

# Use lazy imports so importing the package does not pull in numpy/pandas
# until a forecasting class is actually accessed

__all__ = [
    "__version__",
    "Claim",
    "ClaimLedger",
    "CooperativeRunner",
    "EmptyTrialSetError",
    "ForecastConfig",
    "ForecastError",
    "InvalidStatusError",
    "OffloadedRunner",
    "PaymentStatus",
    "Percentiles",
    "ProbabilityMap",
    "RevenueForecaster",
    "RunHandle",
    "RunState",
    "SimulationCancelledError",
    "SimulationConfig",
    "SimulationResult",
    "forecast_revenue",
    "sample_one_trial",
    "summarize",
]


def __getattr__(name):
    """Lazy import modules on first attribute access."""
    if name in ("Claim", "ClaimLedger", "PaymentStatus"):
        from .claims import Claim, ClaimLedger, PaymentStatus

        return locals()[name]
    elif name in ("ForecastConfig", "ProbabilityMap", "SimulationConfig"):
        from .config import ForecastConfig, ProbabilityMap, SimulationConfig

        return locals()[name]
    elif name in (
        "EmptyTrialSetError",
        "ForecastError",
        "InvalidStatusError",
        "SimulationCancelledError",
    ):
        from .exceptions import (
            EmptyTrialSetError,
            ForecastError,
            InvalidStatusError,
            SimulationCancelledError,
        )

        return locals()[name]
    elif name in ("CooperativeRunner", "RunHandle", "RunState"):
        from .runner import CooperativeRunner, RunHandle, RunState

        return locals()[name]
    elif name == "OffloadedRunner":
        from .worker import OffloadedRunner

        return OffloadedRunner
    elif name in ("RevenueForecaster", "forecast_revenue"):
        from .forecaster import RevenueForecaster, forecast_revenue

        return locals()[name]
    elif name in ("Percentiles", "SimulationResult"):
        from .results import Percentiles, SimulationResult

        return locals()[name]
    elif name == "sample_one_trial":
        from .sampler import sample_one_trial

        return sample_one_trial
    elif name == "summarize":
        from .aggregator import summarize

        return summarize
    raise AttributeError(f"module '{__name__}' has no attribute '{name}'")
