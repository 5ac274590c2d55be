"""Pytest configuration and shared fixtures."""

import asyncio
from datetime import date
from decimal import Decimal

import pytest

from revenue_forecast.claims import Claim, ClaimLedger, PaymentStatus


def make_claim(amount, status, patient_id="P0", provider="Medicare"):
    return Claim(
        patient_id=patient_id,
        patient_name=f"Patient {patient_id}",
        billing_code="B0000",
        amount=Decimal(str(amount)),
        insurance_provider=provider,
        payment_status=status,
        claim_date=date(2025, 3, 1),
    )


@pytest.fixture
def claim_factory():
    """Factory building a valid claim from an amount and a status."""
    return make_claim


@pytest.fixture
def sample_records():
    """Raw claim records as a claims service would return them."""
    return [
        {
            "patient_id": "P1",
            "patient_name": "John Smith",
            "billing_code": "B1001",
            "amount": "1675.50",
            "insurance_provider": "Blue Shield",
            "payment_status": "Pending",
            "claim_date": "2025-03-25",
        },
        {
            "patient_id": "P2",
            "patient_name": "Sarah Johnson",
            "billing_code": "B2002",
            "amount": "2310.09",
            "insurance_provider": "Medicare",
            "payment_status": "Approved",
            "claim_date": "2025-01-05",
        },
        {
            "patient_id": "P3",
            "patient_name": "Robert Chen",
            "billing_code": "B3003",
            "amount": "4945.57",
            "insurance_provider": "Aetna",
            "payment_status": "Pending",
            "claim_date": "2025-03-04",
        },
        {
            "patient_id": "P4",
            "patient_name": "Lisa Williams",
            "billing_code": "B4004",
            "amount": "8338.89",
            "insurance_provider": "UnitedHealth",
            "payment_status": "Denied",
            "claim_date": "2025-03-20",
        },
        {
            "patient_id": "P5",
            "patient_name": "Michael Garcia",
            "billing_code": "B5005",
            "amount": "3220.05",
            "insurance_provider": "Medicare",
            "payment_status": "Denied",
            "claim_date": "2025-02-21",
        },
    ]


@pytest.fixture
def ledger(sample_records):
    """Five-claim ledger covering every payment status."""
    return ClaimLedger.from_records(sample_records)


@pytest.fixture
def two_claims():
    """One approved $100 claim and one denied $200 claim."""
    return ClaimLedger(
        [
            make_claim(100, PaymentStatus.APPROVED, patient_id="A1"),
            make_claim(200, PaymentStatus.DENIED, patient_id="D1"),
        ]
    )


@pytest.fixture
def event_loop_for_test():
    """A fresh asyncio loop, closed after the test."""
    loop = asyncio.new_event_loop()
    yield loop
    loop.close()
