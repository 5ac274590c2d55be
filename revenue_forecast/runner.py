"""Incremental, cancellable execution of forecast runs.

A run is split into slices of ``chunk_size`` trials. After each slice the
runner reports ``completed / total`` progress and hands control back to
its host before starting the next one, so no single scheduling turn does
more than one slice of sampling work. Once every trial has completed the
accumulated revenues are summarized and delivered exactly once.

Two hosts are supported and share the same slice loop
(:class:`ChunkedTrials`):

- :class:`CooperativeRunner` interleaves slices with an asyncio event loop
  using ``loop.call_soon``.
- :class:`~revenue_forecast.worker.OffloadedRunner` runs every slice on a
  worker thread or process and reports back through typed messages.

Runs with no claims or no iterations complete on their first turn with
:meth:`SimulationResult.empty`.

Examples:
    Forecasting on an asyncio loop::

        runner = CooperativeRunner()
        handle = runner.start(ledger, ProbabilityMap(), on_progress=bar.update)
        result = await handle.wait()
"""

import asyncio
from enum import Enum
import logging
from typing import Callable, List, Optional, Tuple
import uuid

import numpy as np

from .aggregator import summarize
from .config import ProbabilityInput
from .exceptions import SimulationCancelledError
from .results import SimulationResult
from .sampler import (
    ClaimsInput,
    RandomSource,
    TrialSampler,
    as_ledger,
    describe_random_source,
    make_rng,
)

logger = logging.getLogger(__name__)

DEFAULT_ITERATIONS = 2000
DEFAULT_CHUNK_SIZE = 200

ProgressCallback = Callable[[float], None]
CompleteCallback = Callable[[SimulationResult], None]
ErrorCallback = Callable[[BaseException], None]
CancelCallback = Callable[[], None]


class RunState(Enum):
    """Lifecycle state of a forecast run."""

    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


TERMINAL_STATES = frozenset({RunState.COMPLETED, RunState.CANCELLED, RunState.FAILED})


def plan_slices(n_iterations: int, chunk_size: int) -> Tuple[int, int]:
    """Validate run sizing and return ``(total_trials, chunk_size)``.

    Non-positive iteration counts become a zero-trial run.

    Raises:
        ValueError: If ``chunk_size`` is not positive.
    """
    if chunk_size <= 0:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}")
    return max(int(n_iterations), 0), int(chunk_size)


class ChunkedTrials:
    """Slice-by-slice accumulation of trial revenues for one run.

    Each instance owns its own buffer, so concurrent runs share no mutable
    state. The sampler is prepared on the first slice, which means an
    unresolvable claim status surfaces as a failure of that slice rather
    than of the call that started the run.

    Args:
        claims: Claims to sample.
        probabilities: Probability per payment status.
        n_iterations: Total number of trials.
        chunk_size: Trials per slice.
        rng: Generator or seed; ``None`` uses fresh OS entropy.
    """

    def __init__(
        self,
        claims: ClaimsInput,
        probabilities: ProbabilityInput,
        n_iterations: int = DEFAULT_ITERATIONS,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        rng: RandomSource = None,
    ):
        self.total, self.chunk_size = plan_slices(n_iterations, chunk_size)
        self.ledger = as_ledger(claims)
        self.probabilities = probabilities
        self.completed = 0
        self._rng = make_rng(rng)
        self._sampler: Optional[TrialSampler] = None
        self._buffer: Optional[np.ndarray] = None if self.trivial else np.empty(self.total)

    @property
    def trivial(self) -> bool:
        """True when the run has nothing to sample."""
        return self.total == 0 or len(self.ledger) == 0

    @property
    def finished(self) -> bool:
        return self.trivial or self.completed >= self.total

    @property
    def fraction(self) -> float:
        return 1.0 if self.finished else self.completed / self.total

    def step(self) -> float:
        """Run the next slice and return the completed fraction."""
        if self.trivial:
            return 1.0
        if self._buffer is None:
            raise RuntimeError("Trial buffer has been released")
        if self._sampler is None:
            self._sampler = TrialSampler(self.ledger, self.probabilities)

        n = min(self.chunk_size, self.total - self.completed)
        self._buffer[self.completed : self.completed + n] = self._sampler.sample(n, self._rng)
        self.completed += n
        return self.fraction

    def summarize(self) -> SimulationResult:
        """Summarize the completed run.

        Raises:
            RuntimeError: If the run has not finished.
        """
        if self.trivial:
            return SimulationResult.empty()
        if not self.finished or self._buffer is None:
            raise RuntimeError(
                f"Cannot summarize an unfinished run ({self.completed}/{self.total} trials)"
            )
        return summarize(self._buffer)

    def release(self) -> None:
        """Drop the trial buffer and prepared sampler."""
        self._buffer = None
        self._sampler = None


class RunHandle:
    """Live handle to a forecast run.

    The handle owns the run's callbacks and guarantees that at most one
    terminal callback (``on_complete``, ``on_error`` or ``on_cancel``) fires
    and that no progress is reported after it. An exception raised by
    ``on_progress`` fails the run and is passed to ``on_error``.

    Attributes:
        run_id: Short identifier used in log messages.
        state: Current :class:`RunState`.
        progress: Last reported completed fraction.
        result: The result once the run has completed.
        error: The exception once the run has failed.
    """

    def __init__(
        self,
        on_progress: Optional[ProgressCallback] = None,
        on_complete: Optional[CompleteCallback] = None,
        on_error: Optional[ErrorCallback] = None,
        on_cancel: Optional[CancelCallback] = None,
    ):
        self.run_id = uuid.uuid4().hex[:8]
        self.state = RunState.IDLE
        self.progress = 0.0
        self.result: Optional[SimulationResult] = None
        self.error: Optional[BaseException] = None
        self._on_progress = on_progress
        self._on_complete = on_complete
        self._on_error = on_error
        self._on_cancel = on_cancel

    def __repr__(self) -> str:
        return f"{type(self).__name__}(run_id={self.run_id!r}, state={self.state.value})"

    def done(self) -> bool:
        """Return True once the run is completed, cancelled or failed."""
        return self.state in TERMINAL_STATES

    def cancel(self) -> None:
        """Cancel the run. A no-op if the run already terminated."""
        if self.done():
            return
        self.state = RunState.CANCELLED
        logger.info("Run %s cancelled at %.0f%%", self.run_id, self.progress * 100)
        self._teardown()
        if self._on_cancel is not None:
            self._on_cancel()

    def outcome(self) -> SimulationResult:
        """Return the result of a terminated run.

        Raises:
            SimulationCancelledError: If the run was cancelled.
            RuntimeError: If the run has not terminated yet.
            Exception: The run's own error if it failed.
        """
        if self.state is RunState.COMPLETED and self.result is not None:
            return self.result
        if self.state is RunState.FAILED and self.error is not None:
            raise self.error
        if self.state is RunState.CANCELLED:
            raise SimulationCancelledError()
        raise RuntimeError(f"Run {self.run_id} has not finished (state={self.state.value})")

    def _report_progress(self, fraction: float) -> None:
        if self.state is not RunState.RUNNING:
            return
        self.progress = max(self.progress, fraction)
        if self._on_progress is None:
            return
        try:
            self._on_progress(self.progress)
        except Exception as exc:  # pylint: disable=broad-except
            logger.debug("Progress callback of run %s raised", self.run_id, exc_info=True)
            self._fail(exc)

    def _complete(self, result: SimulationResult) -> None:
        if self.state is not RunState.RUNNING:
            return
        self.state = RunState.COMPLETED
        self.result = result
        logger.info(
            "Run %s completed: %d trials, expected revenue %.2f",
            self.run_id,
            result.n_trials,
            result.expected_revenue,
        )
        self._teardown()
        if self._on_complete is not None:
            self._on_complete(result)

    def _fail(self, error: BaseException) -> None:
        if self.state is not RunState.RUNNING:
            return
        self.state = RunState.FAILED
        self.error = error
        logger.error("Run %s failed: %s", self.run_id, error)
        self._teardown()
        if self._on_error is not None:
            self._on_error(error)

    def _teardown(self) -> None:
        """Release run resources. Called once on every terminal transition."""


class CooperativeRunHandle(RunHandle):
    """Run handle whose slices are scheduled on an asyncio event loop."""

    def __init__(self, trials: ChunkedTrials, loop: asyncio.AbstractEventLoop, **callbacks):
        super().__init__(**callbacks)
        self._trials = trials
        self._loop = loop
        self._pending: Optional[asyncio.Handle] = None
        self._waiters: List[asyncio.Future] = []

    def _begin(self) -> None:
        self.state = RunState.RUNNING
        self._pending = self._loop.call_soon(self._run_slice)

    def _run_slice(self) -> None:
        self._pending = None
        if self.state is not RunState.RUNNING:
            return

        try:
            fraction = self._trials.step()
            result = self._trials.summarize() if self._trials.finished else None
        except Exception as exc:  # any sampling error aborts the whole run
            self._fail(exc)
            return

        logger.debug("Run %s: %d/%d trials", self.run_id, self._trials.completed, self._trials.total)
        self._report_progress(fraction)
        if result is not None:
            self._complete(result)
        elif self.state is RunState.RUNNING:
            self._pending = self._loop.call_soon(self._run_slice)

    def _teardown(self) -> None:
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None
        self._trials.release()
        for waiter in self._waiters:
            if not waiter.done():
                waiter.set_result(None)
        self._waiters.clear()

    async def wait(self) -> SimulationResult:
        """Wait for the run to terminate and return its result.

        Raises:
            SimulationCancelledError: If the run was cancelled.
            Exception: The run's own error if it failed.
        """
        if not self.done():
            waiter = self._loop.create_future()
            self._waiters.append(waiter)
            await waiter
        return self.outcome()


class CooperativeRunner:
    """Runs forecasts in slices interleaved with an asyncio event loop.

    Args:
        loop: Event loop to schedule slices on. Defaults to the loop running
            when :meth:`start` is called.
    """

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop

    def start(
        self,
        claims: ClaimsInput,
        probabilities: ProbabilityInput,
        n_iterations: int = DEFAULT_ITERATIONS,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        on_progress: Optional[ProgressCallback] = None,
        on_complete: Optional[CompleteCallback] = None,
        on_error: Optional[ErrorCallback] = None,
        on_cancel: Optional[CancelCallback] = None,
        seed: RandomSource = None,
    ) -> CooperativeRunHandle:
        """Start a run. The first slice executes on the loop's next turn.

        Args:
            claims: Claims to forecast.
            probabilities: Probability per payment status.
            n_iterations: Number of trials.
            chunk_size: Trials per slice.
            on_progress: Called with the completed fraction after each slice.
            on_complete: Called once with the result.
            on_error: Called once with the exception if sampling fails.
            on_cancel: Called once if the run is cancelled.
            seed: Generator or seed for the run's random source.

        Returns:
            Handle for cancelling and awaiting the run.

        Raises:
            RuntimeError: If no loop was given and none is running.
            ValueError: If ``chunk_size`` is not positive.
        """
        loop = self._loop
        if loop is None:
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                raise RuntimeError(
                    "CooperativeRunner.start() needs a running event loop or an explicit loop"
                ) from None

        trials = ChunkedTrials(claims, probabilities, n_iterations, chunk_size, rng=seed)
        handle = CooperativeRunHandle(
            trials,
            loop,
            on_progress=on_progress,
            on_complete=on_complete,
            on_error=on_error,
            on_cancel=on_cancel,
        )
        logger.info(
            "Starting run %s: %d trials over %d claims in slices of %d (%s)",
            handle.run_id,
            trials.total,
            len(trials.ledger),
            trials.chunk_size,
            describe_random_source(seed),
        )
        handle._begin()
        return handle
