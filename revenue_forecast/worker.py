"""Offloaded forecast runs on a worker thread or process.

The worker executes every slice of a run through the same
:class:`~revenue_forecast.runner.ChunkedTrials` loop the cooperative runner
uses, so chunking and progress cadence are identical and a seeded run
produces the same result on either host. The worker and its controller
communicate only through:

- a one-way message channel carrying :data:`RunMessage` values
  (:class:`Progress`, :class:`Complete` or :class:`Failed`), and
- a cancel event set by the controller and checked by the worker between
  slices.

Messages are dispatched to the run's callbacks on whichever thread calls
:meth:`WorkerRunHandle.poll`, :meth:`WorkerRunHandle.join` or awaits
:meth:`WorkerRunHandle.wait`. The host thread itself never samples.

Examples:
    Blocking until a background run finishes::

        runner = OffloadedRunner(backend="process")
        handle = runner.start(ledger, probabilities, n_iterations=10_000)
        result = handle.join(timeout=60)
"""

import asyncio
from dataclasses import dataclass
import logging
import multiprocessing as mp
import pickle
import queue
import threading
import time
from typing import Any, Dict, Literal, Optional, Union

from .claims import ClaimLedger, PaymentStatus
from .config import ProbabilityInput, normalize_probabilities
from .exceptions import ForecastError
from .results import SimulationResult
from .runner import (
    DEFAULT_CHUNK_SIZE,
    DEFAULT_ITERATIONS,
    CancelCallback,
    ChunkedTrials,
    CompleteCallback,
    ErrorCallback,
    ProgressCallback,
    RunHandle,
    RunState,
    plan_slices,
)
from .sampler import ClaimsInput, RandomSource, as_ledger, describe_random_source

logger = logging.getLogger(__name__)

Backend = Literal["thread", "process"]


@dataclass(frozen=True)
class Progress:
    """A slice finished; ``fraction`` of the run's trials are complete."""

    fraction: float


@dataclass(frozen=True)
class Complete:
    """Every trial finished and was summarized."""

    result: SimulationResult


@dataclass(frozen=True)
class Failed:
    """Sampling failed and the run was aborted.

    Attributes:
        reason: Human-readable description of the failure.
        error: The original exception when it could be transported.
    """

    reason: str
    error: Optional[BaseException] = None


RunMessage = Union[Progress, Complete, Failed]


@dataclass(frozen=True)
class RunRequest:
    """Everything a worker needs to execute one run."""

    claims: ClaimLedger
    probabilities: Dict[PaymentStatus, float]
    n_iterations: int
    chunk_size: int
    seed: RandomSource = None


def _on_running_loop() -> bool:
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return False
    return True


def _transportable(exc: BaseException) -> Optional[BaseException]:
    try:
        pickle.loads(pickle.dumps(exc))
    except (pickle.PicklingError, TypeError, AttributeError):
        return None
    return exc


def run_worker(request: RunRequest, channel: Any, cancel_event: Any) -> None:
    """Execute a whole run, posting :data:`RunMessage` values to ``channel``.

    Module-level so it can be pickled as a process target. Cancellation is
    checked before every slice and once more before each report, so a slice
    already in flight finishes but its outcome is never posted.

    Args:
        request: The run to execute.
        channel: Queue-like object with a ``put`` method.
        cancel_event: Event-like object with an ``is_set`` method.
    """
    trials = None
    try:
        trials = ChunkedTrials(
            request.claims,
            request.probabilities,
            request.n_iterations,
            request.chunk_size,
            rng=request.seed,
        )
        while not cancel_event.is_set():
            fraction = trials.step()
            result = trials.summarize() if trials.finished else None
            if cancel_event.is_set():
                break
            channel.put(Progress(fraction))
            if result is not None:
                channel.put(Complete(result))
                break
    except Exception as exc:  # pylint: disable=broad-except
        channel.put(Failed(reason=f"{type(exc).__name__}: {exc}", error=_transportable(exc)))
    finally:
        if trials is not None:
            trials.release()


class WorkerRunHandle(RunHandle):
    """Controller-side handle for a run executing on a worker.

    Args:
        worker: The started (or about to be started) thread or process.
        channel: Queue the worker posts messages to.
        cancel_event: Event the worker checks between slices.
        backend: ``"thread"`` or ``"process"``.
        join_timeout: Seconds to wait for the worker to exit on teardown.

    Note:
        Teardown sets the cancel event and, for a process, drains the
        channel while joining it. A worker thread is joined too, except
        when teardown runs on an asyncio event loop: there the daemon thread
        is left to exit on its own after its current slice.
    """

    def __init__(
        self,
        worker: Union[threading.Thread, Any],
        channel: Any,
        cancel_event: Any,
        backend: Backend,
        join_timeout: float = 5.0,
        **callbacks,
    ):
        super().__init__(**callbacks)
        self.backend = backend
        self.join_timeout = join_timeout
        self._worker = worker
        self._channel = channel
        self._cancel_event = cancel_event
        self._torn_down = False

    def poll(self) -> int:
        """Dispatch every message already waiting, without blocking.

        Returns:
            Number of messages dispatched.
        """
        handled = 0
        while not self.done():
            try:
                message = self._channel.get_nowait()
            except queue.Empty:
                break
            self._dispatch(message)
            handled += 1
        if not self.done() and not handled:
            self._check_worker_alive()
        return handled

    def join(self, timeout: Optional[float] = None) -> SimulationResult:
        """Block, dispatching messages, until the run terminates.

        Args:
            timeout: Maximum seconds to wait; ``None`` waits indefinitely.

        Returns:
            The run's result.

        Raises:
            TimeoutError: If the run is still going after ``timeout``.
            SimulationCancelledError: If the run was cancelled.
            Exception: The run's own error if it failed.
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        while not self.done():
            remaining = 0.1 if deadline is None else min(0.1, deadline - time.monotonic())
            if remaining <= 0:
                raise TimeoutError(f"Run {self.run_id} did not finish within {timeout}s")
            try:
                message = self._channel.get(timeout=remaining)
            except queue.Empty:
                self._check_worker_alive()
                continue
            self._dispatch(message)
        return self.outcome()

    async def wait(self, poll_interval: float = 0.01) -> SimulationResult:
        """Await the run without blocking the event loop.

        Raises:
            SimulationCancelledError: If the run was cancelled.
            Exception: The run's own error if it failed.
        """
        while not self.done():
            self.poll()
            if not self.done():
                await asyncio.sleep(poll_interval)
        return self.outcome()

    def _dispatch(self, message: RunMessage) -> None:
        if isinstance(message, Progress):
            self._report_progress(message.fraction)
        elif isinstance(message, Complete):
            self._complete(message.result)
        elif isinstance(message, Failed):
            self._fail(message.error or ForecastError(message.reason))
        else:
            raise TypeError(f"Unexpected worker message: {message!r}")

    def _check_worker_alive(self) -> None:
        if self._worker.is_alive():
            return
        # Messages posted just before exit may still be in flight
        try:
            message = self._channel.get(timeout=0.05)
        except queue.Empty:
            self._fail(ForecastError(f"Worker for run {self.run_id} exited without a result"))
            return
        self._dispatch(message)

    def _discard_pending(self) -> None:
        while True:
            try:
                self._channel.get_nowait()
            except queue.Empty:
                return

    def _drain_and_join(self, timeout: float) -> None:
        # A process cannot exit while its queue's pipe is full of unread messages
        deadline = time.monotonic() + timeout
        while self._worker.is_alive():
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            self._discard_pending()
            self._worker.join(min(0.05, remaining))
        self._discard_pending()

    def _teardown(self) -> None:
        if self._torn_down:
            return
        self._torn_down = True
        self._cancel_event.set()

        joinable = self._worker.ident is not None and self._worker is not threading.current_thread()
        if joinable and self.backend == "thread" and _on_running_loop():
            # The thread exits after its current slice; joining here would stall the loop
            logger.debug("Not joining worker thread of run %s from the event loop", self.run_id)
        elif joinable:
            self._drain_and_join(self.join_timeout)
            if self._worker.is_alive():
                if self.backend == "process":
                    logger.warning("Terminating unresponsive worker process for run %s", self.run_id)
                    self._worker.terminate()
                    self._worker.join(self.join_timeout)
                else:
                    logger.warning(
                        "Worker thread for run %s still finishing its last slice", self.run_id
                    )

        if self.backend == "process":
            self._channel.cancel_join_thread()
            self._channel.close()


class OffloadedRunner:
    """Runs forecasts entirely on a worker thread or process.

    Args:
        backend: ``"thread"`` or ``"process"``.
        join_timeout: Seconds to wait for a worker to exit on teardown.
        start_method: Multiprocessing start method for the process backend
            (``None`` uses the platform default).
    """

    def __init__(
        self,
        backend: Backend = "thread",
        join_timeout: float = 5.0,
        start_method: Optional[str] = None,
    ):
        if backend not in ("thread", "process"):
            raise ValueError(f"backend must be 'thread' or 'process', got {backend!r}")
        self.backend = backend
        self.join_timeout = join_timeout
        self.start_method = start_method

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
    ) -> WorkerRunHandle:
        """Start a run on a new worker.

        Arguments match :meth:`CooperativeRunner.start`. Callbacks fire on
        the thread that polls, joins or awaits the returned handle.

        Raises:
            ValueError: If ``chunk_size`` is not positive or the
                probability map is malformed.
            OSError: If the worker process cannot be started.
        """
        total, chunk = plan_slices(n_iterations, chunk_size)
        request = RunRequest(
            claims=as_ledger(claims),
            probabilities=normalize_probabilities(probabilities),
            n_iterations=total,
            chunk_size=chunk,
            seed=seed,
        )

        if self.backend == "process":
            ctx = mp.get_context(self.start_method)
            channel: Any = ctx.Queue()
            cancel_event: Any = ctx.Event()
            worker: Any = ctx.Process(
                target=run_worker, args=(request, channel, cancel_event), daemon=True
            )
        else:
            channel = queue.Queue()
            cancel_event = threading.Event()
            worker = threading.Thread(
                target=run_worker, args=(request, channel, cancel_event), daemon=True
            )

        handle = WorkerRunHandle(
            worker,
            channel,
            cancel_event,
            self.backend,
            join_timeout=self.join_timeout,
            on_progress=on_progress,
            on_complete=on_complete,
            on_error=on_error,
            on_cancel=on_cancel,
        )
        worker.name = f"revenue-forecast-{handle.run_id}"
        logger.info(
            "Starting run %s on %s worker: %d trials over %d claims in slices of %d (%s)",
            handle.run_id,
            self.backend,
            total,
            len(request.claims),
            chunk,
            describe_random_source(seed),
        )
        handle.state = RunState.RUNNING
        try:
            worker.start()
        except Exception:
            if self.backend == "process":
                channel.close()
            raise
        return handle
