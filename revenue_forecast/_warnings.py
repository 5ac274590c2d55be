"""Custom warning classes for the revenue_forecast package.

These warning classes allow users to programmatically filter, suppress,
or capture warnings using Python's standard ``warnings`` module.

Example:
    Silence backend fallback notices in a batch run::

        import warnings
        from revenue_forecast._warnings import ExecutionFallbackWarning

        warnings.filterwarnings("ignore", category=ExecutionFallbackWarning)
"""


class RevenueForecastWarning(UserWarning):
    """Base class for all revenue-forecast warnings."""


class ExecutionFallbackWarning(RevenueForecastWarning):
    """A requested execution backend was unavailable.

    Raised when a background run cannot start its worker process (for
    example on platforms without a usable multiprocessing start method)
    and the run falls back to a worker thread instead.
    """
