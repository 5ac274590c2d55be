"""Monte Carlo sampling of claim payment outcomes.

Each trial draws one uniform variate in [0, 1) per claim. A claim is paid
when its draw is strictly below the payment probability of its status,
and the trial's revenue is the sum of the paid amounts.

Batches are vectorised: ``n`` trials over ``m`` claims consume an
``(n, m)`` block of draws from the generator in row-major order, which is
the same stream ``n`` successive single-trial calls would consume.
"""

from typing import Any, Optional, Sequence, Union

import numpy as np

from .claims import Claim, ClaimLedger
from .config import ProbabilityInput, normalize_probabilities
from .exceptions import InvalidStatusError

ClaimsInput = Union[ClaimLedger, Sequence[Claim]]
RandomSource = Union[np.random.Generator, np.random.SeedSequence, int, None]


def as_ledger(claims: ClaimsInput) -> ClaimLedger:
    """Wrap a plain claim sequence in a :class:`ClaimLedger` if needed."""
    if isinstance(claims, ClaimLedger):
        return claims
    return ClaimLedger(claims)


def make_rng(rng: RandomSource = None) -> np.random.Generator:
    """Return ``rng`` if it is already a Generator, else seed a new one from it."""
    if isinstance(rng, np.random.Generator):
        return rng
    return np.random.default_rng(rng)


def resolve_probabilities(claims: ClaimsInput, probabilities: ProbabilityInput) -> np.ndarray:
    """Look up the payment probability of every claim.

    Args:
        claims: Claims to resolve, in order.
        probabilities: Probability per payment status.

    Returns:
        Float64 vector with one probability per claim.

    Raises:
        InvalidStatusError: If a claim's status has no probability entry.
    """
    table = normalize_probabilities(probabilities)
    resolved = np.empty(len(claims), dtype=np.float64)
    for i, claim in enumerate(claims):
        try:
            resolved[i] = table[claim.payment_status]
        except KeyError:
            raise InvalidStatusError(claim.payment_status) from None
    return resolved


class TrialSampler:
    """Samples trial revenues for a fixed ledger and probability map.

    Claim amounts and per-claim probabilities are resolved once at
    construction, so repeated calls to :meth:`sample` only draw random
    numbers.

    Args:
        claims: The claim ledger. It is referenced, not copied.
        probabilities: Probability per payment status.

    Raises:
        InvalidStatusError: If a claim's status has no probability entry.
    """

    def __init__(self, claims: ClaimsInput, probabilities: ProbabilityInput):
        self.ledger = as_ledger(claims)
        self.amounts = self.ledger.amounts()
        self.probabilities = resolve_probabilities(self.ledger, probabilities)

    @property
    def n_claims(self) -> int:
        return len(self.ledger)

    def sample(self, n_trials: int, rng: np.random.Generator) -> np.ndarray:
        """Draw ``n_trials`` independent trial revenues.

        Args:
            n_trials: Number of trials to draw.
            rng: Random generator consumed by the draws.

        Returns:
            Float64 vector of trial revenues.
        """
        if n_trials < 0:
            raise ValueError(f"n_trials must be non-negative, got {n_trials}")
        draws = rng.random((n_trials, self.n_claims))
        paid = draws < self.probabilities
        return np.where(paid, self.amounts, 0.0).sum(axis=1)


def sample_trials(
    claims: ClaimsInput,
    probabilities: ProbabilityInput,
    n_trials: int,
    rng: RandomSource = None,
) -> np.ndarray:
    """Draw a batch of independent trial revenues.

    Args:
        claims: Claims to sample.
        probabilities: Probability per payment status.
        n_trials: Number of trials.
        rng: Generator or seed; ``None`` uses fresh OS entropy.

    Returns:
        Float64 vector of ``n_trials`` revenues.
    """
    return TrialSampler(claims, probabilities).sample(n_trials, make_rng(rng))


def sample_one_trial(
    claims: ClaimsInput,
    probabilities: ProbabilityInput,
    rng: RandomSource = None,
) -> float:
    """Draw the revenue of a single trial.

    Args:
        claims: Claims to sample.
        probabilities: Probability per payment status.
        rng: Generator or seed; ``None`` uses fresh OS entropy.

    Returns:
        Sum of the amounts of the claims judged paid.

    Raises:
        InvalidStatusError: If a claim's status has no probability entry.
    """
    return float(sample_trials(claims, probabilities, 1, rng)[0])


def describe_random_source(rng: Any) -> str:
    """Short description of a random source for log messages."""
    if rng is None:
        return "unseeded"
    if isinstance(rng, np.random.Generator):
        return "injected generator"
    return f"seed={rng}"
