"""Shared pytest fixtures for sampling engine tests."""

from __future__ import annotations

from datetime import date, datetime, timezone
from pathlib import Path

import pytest

from audit_sampling.cache import PlanCache
from audit_sampling.engine import SamplingOrchestrator
from audit_sampling.ledger import (
    InMemoryLedger,
    LedgerRow,
    PopulationQuery,
    fetch_population,
    summarize_population,
)
from audit_sampling.models import SamplingRequest, Transaction
from audit_sampling.storage import FilesystemPlanStorage

FIXED_NOW = datetime(2024, 10, 18, 14, 5, tzinfo=timezone.utc)

ACCOUNTS = [
    ("1500", "Accounts receivable", "B1"),
    ("2400", "Accounts payable", "B2"),
    ("3000", "Sales revenue", "R1"),
    ("4000", "Cost of goods sold", "R2"),
    ("5000", "Salaries", "R3"),
    ("6300", "Rent", "R4"),
]
DESCRIPTIONS = ["Invoice", "Payment", "Renter på lån", "Avskrivning inventar"]


class CountingLedger(InMemoryLedger):
    """In-memory ledger recording how often it was queried."""

    def __init__(self, rows) -> None:
        super().__init__(rows)
        self.calls = 0

    def fetch(self, query):
        self.calls += 1
        return super().fetch(query)


class FailingLedger:
    """Ledger double whose every query fails."""

    def fetch(self, query):
        raise ConnectionError("ledger database unavailable")


def _make_txn(
    txn_id: str,
    amount: float,
    risk_score: float = 0.1,
    account_number: str = "6300",
) -> Transaction:
    return Transaction(
        id=txn_id,
        transaction_date=date(2024, 1, 1),
        account_number=account_number,
        account_name="Test",
        description="Test",
        amount=amount,
        risk_score=risk_score,
    )


@pytest.fixture()
def make_txn():
    """Factory for bare transactions with a chosen amount and score."""
    return _make_txn


@pytest.fixture()
def failing_ledger() -> FailingLedger:
    return FailingLedger()


@pytest.fixture()
def ledger_rows() -> list[LedgerRow]:
    """Deterministic ledger: 120 rows for C1 in 2024 plus noise rows."""
    rows = []
    for i in range(1, 121):
        account, name, standard = ACCOUNTS[i % len(ACCOUNTS)]
        is_credit = i % 3 == 0
        rows.append(
            LedgerRow(
                id=f"T{i:04d}",
                client_id="C1",
                transaction_date=date(2024, 1 + i % 12, 1 + i % 28),
                debit_amount=None if is_credit else float(i * 250),
                credit_amount=float(i * 100) if is_credit else None,
                description=DESCRIPTIONS[i % len(DESCRIPTIONS)],
                account_number=account,
                account_name=name,
                standard_number=standard,
            )
        )
    rows.append(
        LedgerRow(
            id="X-2023",
            client_id="C1",
            transaction_date=date(2023, 12, 31),
            debit_amount=999.0,
            account_number="1500",
        )
    )
    rows.append(
        LedgerRow(
            id="X-OTHER",
            client_id="C2",
            transaction_date=date(2024, 6, 1),
            debit_amount=999.0,
            account_number="1500",
        )
    )
    return rows


@pytest.fixture()
def ledger(ledger_rows) -> CountingLedger:
    return CountingLedger(ledger_rows)


@pytest.fixture()
def population_totals(ledger) -> tuple[int, float]:
    """Population size and absolute sum of C1 / 2024."""
    summary = summarize_population(
        fetch_population(ledger, PopulationQuery(client_id="C1", fiscal_year=2024))
    )
    ledger.calls = 0
    return summary.total_transactions, summary.total_amount


@pytest.fixture()
def make_request(population_totals):
    """Factory for requests against the C1 / 2024 population."""
    size, total = population_totals

    def _make(**overrides) -> SamplingRequest:
        payload = {
            "client_id": "C1",
            "fiscal_year": 2024,
            "test_type": "SUBSTANTIVE",
            "method": "SRS",
            "population_size": size,
            "population_sum": total,
            "confidence_level": 95,
            "risk_level": "MODERATE",
            "seed": 12345,
        }
        payload.update(overrides)
        return SamplingRequest.model_validate(payload)

    return _make


@pytest.fixture()
def storage(tmp_path: Path) -> FilesystemPlanStorage:
    return FilesystemPlanStorage(tmp_path / "artifacts")


@pytest.fixture()
def orchestrator(ledger, storage) -> SamplingOrchestrator:
    return SamplingOrchestrator(
        ledger=ledger,
        cache=PlanCache(ttl_seconds=300),
        storage=storage,
        clock=lambda: FIXED_NOW,
    )
