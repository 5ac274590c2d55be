"""Claim records and the claim ledger fed into each forecast run.

The ledger is an immutable, ordered snapshot of billing claims supplied by
the caller before a run starts. The sampler only ever reads from it: claim
amounts are converted once into a numpy vector and statuses are resolved
to per-claim payment probabilities.

Examples:
    Building a ledger from plain records::

        from revenue_forecast.claims import ClaimLedger

        ledger = ClaimLedger.from_records([
            {
                "patient_id": "P1",
                "patient_name": "John Smith",
                "billing_code": "B1001",
                "amount": "1675.50",
                "insurance_provider": "Blue Shield",
                "payment_status": "Pending",
                "claim_date": "2025-03-25",
            },
        ])
        print(ledger.summary().total_amount)
"""

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Iterable, Iterator, Mapping, Tuple, Union, overload

import numpy as np
import pandas as pd
from pydantic import BaseModel, ConfigDict, Field

LEDGER_COLUMNS = [
    "patient_id",
    "patient_name",
    "billing_code",
    "amount",
    "insurance_provider",
    "payment_status",
    "claim_date",
]


class PaymentStatus(Enum):
    """Payment status of a billing claim.

    The enumeration is closed: forecasting supports exactly these three
    statuses, each with its own payment probability.
    """

    PENDING = "Pending"
    APPROVED = "Approved"
    DENIED = "Denied"


class Claim(BaseModel):
    """A single billing claim.

    Attributes:
        patient_id: Identifier of the claim's patient record.
        patient_name: Display name of the patient.
        billing_code: Billing code the claim was filed under.
        amount: Billed amount in dollars. Must be non-negative.
        insurance_provider: Name of the payer.
        payment_status: Current payment status.
        claim_date: Date the claim was filed.
    """

    model_config = ConfigDict(frozen=True)

    patient_id: str = Field(description="Patient identifier")
    patient_name: str = Field(default="", description="Patient display name")
    billing_code: str = Field(default="", description="Billing code")
    amount: Decimal = Field(ge=0, description="Billed amount in dollars")
    insurance_provider: str = Field(default="", description="Payer name")
    payment_status: PaymentStatus = Field(description="Current payment status")
    claim_date: date = Field(description="Date the claim was filed")


@dataclass(frozen=True)
class LedgerSummary:
    """Aggregate figures for a claim ledger.

    Attributes:
        total_amount: Sum of all claim amounts.
        total_claims: Number of claims.
        status_counts: Number of claims per payment status.
        status_amounts: Sum of claim amounts per payment status.
        provider_amounts: One row per insurance provider with columns
            ``provider``, ``amount`` and ``count``, in first-seen order.
    """

    total_amount: Decimal
    total_claims: int
    status_counts: Dict[PaymentStatus, int]
    status_amounts: Dict[PaymentStatus, Decimal]
    provider_amounts: pd.DataFrame


class ClaimLedger(Sequence):
    """Immutable, ordered collection of claims for one forecast run."""

    def __init__(self, claims: Iterable[Claim] = ()):
        self._claims: Tuple[Claim, ...] = tuple(claims)
        for claim in self._claims:
            if not isinstance(claim, Claim):
                raise TypeError(f"ClaimLedger expects Claim instances, got {type(claim).__name__}")

    @classmethod
    def from_records(cls, records: Iterable[Mapping[str, Any]]) -> "ClaimLedger":
        """Build a ledger from plain mappings, validating each record.

        Raises:
            pydantic.ValidationError: If a record is malformed.
        """
        return cls(Claim.model_validate(dict(record)) for record in records)

    @classmethod
    def from_dataframe(cls, frame: pd.DataFrame) -> "ClaimLedger":
        """Build a ledger from a DataFrame with one row per claim."""
        return cls.from_records(frame.to_dict("records"))

    @overload
    def __getitem__(self, index: int) -> Claim: ...

    @overload
    def __getitem__(self, index: slice) -> "ClaimLedger": ...

    def __getitem__(self, index: Union[int, slice]) -> Union[Claim, "ClaimLedger"]:
        if isinstance(index, slice):
            return ClaimLedger(self._claims[index])
        return self._claims[index]

    def __len__(self) -> int:
        return len(self._claims)

    def __iter__(self) -> Iterator[Claim]:
        return iter(self._claims)

    def __repr__(self) -> str:
        return f"ClaimLedger({len(self._claims)} claims)"

    def amounts(self) -> np.ndarray:
        """Claim amounts as a float64 vector, in ledger order."""
        return np.fromiter((float(c.amount) for c in self._claims), dtype=np.float64, count=len(self))

    def statuses(self) -> Tuple[PaymentStatus, ...]:
        """Claim payment statuses, in ledger order."""
        return tuple(c.payment_status for c in self._claims)

    def to_dataframe(self) -> pd.DataFrame:
        """Export the ledger as a DataFrame (amounts as floats, statuses as strings)."""
        rows = [
            {
                **claim.model_dump(),
                "amount": float(claim.amount),
                "payment_status": claim.payment_status.value,
            }
            for claim in self._claims
        ]
        return pd.DataFrame(rows, columns=LEDGER_COLUMNS)

    def summary(self) -> LedgerSummary:
        """Compute totals per status and per insurance provider."""
        status_counts = {status: 0 for status in PaymentStatus}
        status_amounts = {status: Decimal("0") for status in PaymentStatus}
        for claim in self._claims:
            status_counts[claim.payment_status] += 1
            status_amounts[claim.payment_status] += claim.amount

        frame = self.to_dataframe()
        provider_amounts = (
            frame.groupby("insurance_provider", sort=False)
            .agg(amount=("amount", "sum"), count=("amount", "size"))
            .reset_index()
            .rename(columns={"insurance_provider": "provider"})
        )

        return LedgerSummary(
            total_amount=sum(status_amounts.values(), Decimal("0")),
            total_claims=len(self._claims),
            status_counts=status_counts,
            status_amounts=status_amounts,
            provider_amounts=provider_amounts,
        )
