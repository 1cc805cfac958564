"""Heuristic transaction risk scoring.

Scores are a best-effort triage aid, not a statistical model. They are only
used to optionally force high-risk items into a sample before the
randomised selection runs.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from .logging_setup import get_logger
from .models import EventCode, Transaction

log = get_logger("risk")

BASE_SCORE = 0.1
LARGE_AMOUNT_WEIGHT = 0.3
LARGE_AMOUNT_RATIO = 0.5
KEYWORD_WEIGHT = 0.2
MAX_SCORE = 1.0
HIGH_RISK_THRESHOLD = 0.8

# Leading digit of the account number per the standard chart of accounts:
# 1 assets, 2 equity and liabilities, 3 revenue, 4-5 cost of sales and payroll.
ACCOUNT_CLASS_WEIGHTS: dict[str, float] = {
    "1": 0.1,
    "2": 0.2,
    "3": 0.25,
    "4": 0.15,
    "5": 0.15,
}

# VAT, loans, interest, depreciation and write-downs, Norwegian and English.
HIGH_RISK_KEYWORDS: tuple[str, ...] = (
    "mva",
    "lån",
    "rente",
    "avskrivning",
    "nedskrivning",
    "value added tax",
    "loan",
    "interest",
    "depreciation",
    "write-down",
)


def score_transaction(
    amount: float,
    account_number: str | None,
    description: str | None,
    materiality: float | None = None,
    keywords: Sequence[str] = HIGH_RISK_KEYWORDS,
) -> float:
    """Score one ledger line in ``[0, 1]``.

    Args:
        amount (float): Signed transaction amount.
        account_number (str | None): Chart-of-accounts number.
        description (str | None): Free-text ledger description.
        materiality (float | None): Overall materiality; the amount factor is
            skipped when absent.
        keywords (Sequence[str]): Lower-case description keywords.

    Returns:
        float: Additive risk score capped at 1.0.
    """
    score = BASE_SCORE

    if materiality and abs(amount) > materiality * LARGE_AMOUNT_RATIO:
        score += LARGE_AMOUNT_WEIGHT

    leading = (account_number or "").strip()[:1]
    score += ACCOUNT_CLASS_WEIGHTS.get(leading, 0.0)

    text = (description or "").lower()
    if any(keyword in text for keyword in keywords):
        score += KEYWORD_WEIGHT

    return min(MAX_SCORE, score)


def score_population(
    transactions: Iterable[Transaction],
    materiality: float | None = None,
) -> list[Transaction]:
    """Return copies of the transactions carrying their risk score.

    Args:
        transactions (Iterable[Transaction]): Population to score.
        materiality (float | None): Overall materiality from the request.

    Returns:
        list[Transaction]: Scored transactions in input order.
    """
    scored = [
        txn.model_copy(
            update={
                "risk_score": score_transaction(
                    txn.amount,
                    txn.account_number,
                    txn.description,
                    materiality,
                )
            }
        )
        for txn in transactions
    ]
    log.info(
        EventCode.RISK_SCORED.value,
        count=len(scored),
        high_risk=sum(1 for t in scored if is_high_risk(t.risk_score)),
    )
    return scored


def is_high_risk(
    score: float, threshold: float = HIGH_RISK_THRESHOLD
) -> bool:
    """Whether a score is strictly above the high-risk cut-off."""

    return score > threshold
