"""High-level entry points for revenue forecasting.

:class:`RevenueForecaster` binds a claim ledger to a
:class:`~revenue_forecast.config.ForecastConfig` and runs forecasts either
in the calling thread (:meth:`RevenueForecaster.run`) or in the
background on the configured backend (:meth:`RevenueForecaster.start`).

Examples:
    Blocking forecast with a console progress bar::

        from revenue_forecast import ForecastConfig, RevenueForecaster

        config = ForecastConfig.from_dict({"simulation": {"progress_bar": True}})
        forecaster = RevenueForecaster(ledger, config=config)
        result = forecaster.run()
        print(result.summary())

    Background forecast feeding a dashboard::

        handle = forecaster.start(
            on_progress=lambda f: progress.set(f * 100),
            on_complete=chart.update,
            on_error=show_error,
        )
        ...
        handle.cancel()  # probabilities changed, start over
"""

import asyncio
import logging
import threading
from typing import Callable, Optional
import warnings

from tqdm import tqdm

from ._warnings import ExecutionFallbackWarning
from .config import ForecastConfig, ProbabilityInput, SimulationConfig
from .results import SimulationResult
from .runner import (
    DEFAULT_ITERATIONS,
    CancelCallback,
    ChunkedTrials,
    CompleteCallback,
    CooperativeRunner,
    ErrorCallback,
    ProgressCallback,
    RunHandle,
)
from .sampler import ClaimsInput, RandomSource, as_ledger
from .worker import OffloadedRunner

logger = logging.getLogger(__name__)


class RevenueForecaster:
    """Monte Carlo revenue forecaster for a claim ledger.

    Args:
        claims: The claims to forecast. Referenced, never modified.
        probabilities: Payment probability per status. Defaults to
            ``config.probabilities``.
        config: Forecast configuration. Defaults to :class:`ForecastConfig`.

    Attributes:
        ledger: The claim ledger.
        probabilities: Probabilities used for every run.
        config: The configuration used for every run.
    """

    def __init__(
        self,
        claims: ClaimsInput,
        probabilities: Optional[ProbabilityInput] = None,
        config: Optional[ForecastConfig] = None,
    ):
        self.ledger = as_ledger(claims)
        self.config = config or ForecastConfig()
        self.probabilities = (
            probabilities if probabilities is not None else self.config.probabilities
        )

    @property
    def simulation(self) -> SimulationConfig:
        return self.config.simulation

    def run(
        self,
        progress_callback: Optional[Callable[[float], None]] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> Optional[SimulationResult]:
        """Execute a forecast in the calling thread.

        Args:
            progress_callback: Optional callback invoked with the completed
                fraction after each slice.
            cancel_event: Optional :class:`threading.Event`. When set, the
                run stops before its next slice and no result is produced.

        Returns:
            The forecast result, or ``None`` if the run was cancelled.

        Raises:
            InvalidStatusError: If a claim's status has no probability.
        """
        sim = self.simulation
        trials = ChunkedTrials(
            self.ledger, self.probabilities, sim.n_iterations, sim.chunk_size, rng=sim.seed
        )
        pbar = None
        if sim.progress_bar:
            pbar = tqdm(total=trials.total, desc="Forecasting revenue", unit="trial")

        try:
            while True:
                if cancel_event is not None and cancel_event.is_set():
                    logger.info(
                        "Cancellation requested at trial %d/%d", trials.completed, trials.total
                    )
                    return None

                before = trials.completed
                fraction = trials.step()
                if pbar is not None:
                    pbar.update(trials.completed - before)
                if progress_callback is not None:
                    progress_callback(fraction)

                if trials.finished:
                    return trials.summarize()
        finally:
            trials.release()
            if pbar is not None:
                pbar.close()

    def start(
        self,
        on_progress: Optional[ProgressCallback] = None,
        on_complete: Optional[CompleteCallback] = None,
        on_error: Optional[ErrorCallback] = None,
        on_cancel: Optional[CancelCallback] = None,
        backend: Optional[str] = None,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ) -> RunHandle:
        """Start a background forecast.

        Args:
            on_progress: Called with the completed fraction after each slice.
            on_complete: Called once with the result.
            on_error: Called once with the exception if sampling fails.
            on_cancel: Called once if the run is cancelled.
            backend: ``"cooperative"``, ``"thread"`` or ``"process"``.
                Defaults to ``config.simulation.backend``.
            loop: Event loop for the cooperative backend.

        Returns:
            Handle for cancelling and collecting the run. Worker-backed
            handles dispatch callbacks when polled, joined or awaited.
        """
        sim = self.simulation
        backend = backend or sim.backend
        run_kwargs = dict(
            n_iterations=sim.n_iterations,
            chunk_size=sim.chunk_size,
            on_progress=on_progress,
            on_complete=on_complete,
            on_error=on_error,
            on_cancel=on_cancel,
            seed=sim.seed,
        )

        if backend == "cooperative":
            return CooperativeRunner(loop).start(self.ledger, self.probabilities, **run_kwargs)
        if backend == "process":
            try:
                return OffloadedRunner("process").start(
                    self.ledger, self.probabilities, **run_kwargs
                )
            except (OSError, RuntimeError) as e:
                warnings.warn(
                    f"Worker process unavailable: {e}. Falling back to a worker thread.",
                    ExecutionFallbackWarning,
                    stacklevel=2,
                )
                backend = "thread"
        if backend == "thread":
            return OffloadedRunner("thread").start(self.ledger, self.probabilities, **run_kwargs)
        raise ValueError(f"Unknown backend {backend!r}; use 'cooperative', 'thread' or 'process'")


def forecast_revenue(
    claims: ClaimsInput,
    probabilities: ProbabilityInput,
    n_iterations: int = DEFAULT_ITERATIONS,
    seed: RandomSource = None,
) -> SimulationResult:
    """Run a complete forecast in the calling thread and return its result.

    Args:
        claims: Claims to forecast.
        probabilities: Payment probability per status.
        n_iterations: Number of trials.
        seed: Generator or seed for the random source.

    Raises:
        InvalidStatusError: If a claim's status has no probability.
    """
    trials = ChunkedTrials(claims, probabilities, n_iterations, max(n_iterations, 1), rng=seed)
    trials.step()
    return trials.summarize()
