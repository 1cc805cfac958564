"""Tests for heuristic transaction risk scoring."""

from __future__ import annotations

from datetime import date

import pytest

from audit_sampling.models import Transaction
from audit_sampling.risk import (
    is_high_risk,
    score_population,
    score_transaction,
)


def test_base_score_only() -> None:
    assert score_transaction(10.0, "6300", "Office supplies") == pytest.approx(0.1)


@pytest.mark.parametrize(
    "account, expected",
    [
        ("1500", 0.2),
        ("2400", 0.3),
        ("3000", 0.35),
        ("4000", 0.25),
        ("5000", 0.25),
        ("7000", 0.1),
        ("", 0.1),
        (None, 0.1),
    ],
)
def test_account_class_weights(account: str | None, expected: float) -> None:
    assert score_transaction(10.0, account, None) == pytest.approx(expected)


def test_large_amount_uses_absolute_value() -> None:
    """Credits count towards the large-amount factor too."""
    debit = score_transaction(600.0, "6300", "", materiality=1000)
    credit = score_transaction(-600.0, "6300", "", materiality=1000)
    small = score_transaction(500.0, "6300", "", materiality=1000)

    assert debit == pytest.approx(0.4)
    assert credit == pytest.approx(0.4)
    assert small == pytest.approx(0.1)


def test_large_amount_skipped_without_materiality() -> None:
    assert score_transaction(1e9, "6300", "") == pytest.approx(0.1)


@pytest.mark.parametrize(
    "description",
    ["Renter på lån", "MVA oppgjør", "Loan repayment", "Depreciation Q4"],
)
def test_keywords_case_insensitive(description: str) -> None:
    assert score_transaction(10.0, "6300", description) == pytest.approx(0.3)


def test_keyword_counted_once() -> None:
    score = score_transaction(10.0, "6300", "interest on loan, depreciation")
    assert score == pytest.approx(0.3)


def test_score_capped_at_one() -> None:
    score = score_transaction(
        5000.0, "3000", "Interest", materiality=1000, keywords=("interest",)
    )
    # 0.1 + 0.3 + 0.25 + 0.2
    assert score == pytest.approx(0.85)
    assert score <= 1.0


def test_high_risk_is_strictly_above_threshold() -> None:
    assert is_high_risk(0.85)
    assert not is_high_risk(0.8)
    assert not is_high_risk(0.5)
    assert is_high_risk(0.5, threshold=0.4)


def test_score_population_returns_scored_copies() -> None:
    original = Transaction(
        id="T1",
        transaction_date=date(2024, 3, 1),
        account_number="3000",
        description="Renteinntekt",
        amount=-9000.0,
    )
    [scored] = score_population([original], materiality=10_000)

    assert scored.risk_score == pytest.approx(0.85)
    assert original.risk_score == 0.0
    assert scored.id == original.id
