"""Exceptions raised by the revenue forecasting engine.

Cancellation is a normal terminal state of a run, not an error. The
:class:`SimulationCancelledError` exists only so that blocking or awaiting
helpers can tell a cancelled run apart from a failed one.
"""

from typing import Any


class ForecastError(Exception):
    """Base class for all revenue-forecast errors."""


class InvalidStatusError(ForecastError, LookupError):
    """Raised when a claim's payment status has no probability entry.

    This is fatal to the run that encounters it: it is not retried, the
    partial trials are discarded and the error is surfaced through the
    runner's failure path.

    Attributes:
        status: The payment status that could not be resolved.

    Examples:
        Catching a missing probability::

            try:
                sample_one_trial(claims, {"Pending": 0.5})
            except InvalidStatusError as e:
                print(f"Missing probability for {e.status}")
    """

    def __init__(self, status: Any) -> None:
        self.status = status
        super().__init__(status)

    def __str__(self) -> str:
        status = getattr(self.status, "value", self.status)
        return f"No payment probability configured for claim status {status!r}"


class EmptyTrialSetError(ForecastError, ValueError):
    """Raised when aggregation is asked to summarize zero trials.

    Runners never summarize an empty trial set, so seeing this exception
    indicates a programming error rather than a recoverable condition.
    """

    def __init__(self, message: str = "Cannot summarize an empty set of trial revenues") -> None:
        super().__init__(message)


class SimulationCancelledError(ForecastError):
    """Raised by ``wait()``/``join()`` helpers when the awaited run was cancelled."""

    def __init__(self, message: str = "Simulation run was cancelled") -> None:
        super().__init__(message)
