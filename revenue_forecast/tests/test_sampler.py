"""Tests for Monte Carlo trial sampling."""

import numpy as np
import pytest

from revenue_forecast.claims import ClaimLedger, PaymentStatus
from revenue_forecast.exceptions import InvalidStatusError
from revenue_forecast.sampler import (
    TrialSampler,
    as_ledger,
    describe_random_source,
    make_rng,
    resolve_probabilities,
    sample_one_trial,
    sample_trials,
)

CERTAIN = {"Pending": 1.0, "Approved": 1.0, "Denied": 1.0}
NEVER = {"Pending": 0.0, "Approved": 0.0, "Denied": 0.0}


class TestSampleOneTrial:
    """Tests for sample_one_trial()."""

    def test_certain_payment_sums_all_amounts(self, ledger):
        assert sample_one_trial(ledger, CERTAIN, rng=1) == pytest.approx(20490.10)

    def test_zero_probability_pays_nothing(self, ledger):
        assert sample_one_trial(ledger, NEVER, rng=1) == 0.0

    def test_per_status_probabilities(self, two_claims):
        revenue = sample_one_trial(two_claims, {"Approved": 1.0, "Denied": 0.0, "Pending": 0.5})
        assert revenue == 100.0

    def test_empty_claims(self):
        assert sample_one_trial([], CERTAIN) == 0.0

    def test_missing_status_raises(self, two_claims):
        with pytest.raises(InvalidStatusError) as exc_info:
            sample_one_trial(two_claims, {"Approved": 1.0})
        assert exc_info.value.status is PaymentStatus.DENIED
        assert "Denied" in str(exc_info.value)

    def test_accepts_plain_claim_list(self, claim_factory):
        claims = [claim_factory(40, PaymentStatus.PENDING), claim_factory(2, PaymentStatus.PENDING)]
        assert sample_one_trial(claims, {"Pending": 1.0}) == 42.0

    def test_revenue_is_subset_sum(self, ledger):
        amounts = ledger.amounts()
        for seed in range(20):
            revenue = sample_one_trial(ledger, {"Pending": 0.5, "Approved": 0.5, "Denied": 0.5}, seed)
            subset_sums = [
                amounts[[bool(mask >> i & 1) for i in range(len(amounts))]].sum()
                for mask in range(2 ** len(amounts))
            ]
            assert min(abs(revenue - s) for s in subset_sums) < 1e-6


class TestTrialSampler:
    """Tests for TrialSampler."""

    def test_resolves_once(self, ledger):
        sampler = TrialSampler(ledger, {"Pending": 0.25, "Approved": 0.75, "Denied": 0.0})
        assert sampler.n_claims == 5
        np.testing.assert_allclose(sampler.probabilities, [0.25, 0.75, 0.25, 0.0, 0.0])

    def test_missing_status_raises_at_construction(self, two_claims):
        with pytest.raises(InvalidStatusError):
            TrialSampler(two_claims, {"Denied": 0.5})

    def test_negative_trials(self, ledger):
        sampler = TrialSampler(ledger, CERTAIN)
        with pytest.raises(ValueError):
            sampler.sample(-1, make_rng(0))

    def test_zero_trials(self, ledger):
        assert TrialSampler(ledger, CERTAIN).sample(0, make_rng(0)).shape == (0,)

    def test_batch_matches_successive_single_trials(self, ledger):
        probs = {"Pending": 0.5, "Approved": 0.9, "Denied": 0.1}
        batch = sample_trials(ledger, probs, 50, rng=123)

        rng = np.random.default_rng(123)
        singles = [sample_one_trial(ledger, probs, rng) for _ in range(50)]
        np.testing.assert_allclose(batch, singles)

    def test_split_batches_match_one_batch(self, ledger):
        probs = {"Pending": 0.5, "Approved": 0.9, "Denied": 0.1}
        sampler = TrialSampler(ledger, probs)
        rng = make_rng(9)
        split = np.concatenate([sampler.sample(30, rng), sampler.sample(70, rng)])
        np.testing.assert_allclose(split, sampler.sample(100, make_rng(9)))

    def test_paid_fraction_tracks_probability(self, claim_factory):
        claims = ClaimLedger([claim_factory(1, PaymentStatus.APPROVED)])
        revenues = sample_trials(claims, {"Approved": 0.3}, 20_000, rng=2024)
        assert revenues.mean() == pytest.approx(0.3, abs=0.02)


class TestHelpers:
    """Tests for sampler helper functions."""

    def test_as_ledger_passthrough(self, ledger):
        assert as_ledger(ledger) is ledger

    def test_make_rng_passthrough(self):
        rng = np.random.default_rng(0)
        assert make_rng(rng) is rng

    def test_make_rng_from_seed_is_reproducible(self):
        assert make_rng(5).random() == make_rng(5).random()

    def test_resolve_probabilities_empty(self):
        assert resolve_probabilities([], {}).shape == (0,)

    @pytest.mark.parametrize(
        "source,expected",
        [(None, "unseeded"), (np.random.default_rng(1), "injected generator"), (42, "seed=42")],
    )
    def test_describe_random_source(self, source, expected):
        assert describe_random_source(source) == expected
