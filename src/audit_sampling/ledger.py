"""Population store adapters for general ledger transactions."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import date
from pathlib import Path
from typing import Protocol

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from .errors import PopulationFetchError, SamplingValidationError
from .logging_setup import get_logger
from .models import EventCode, PopulationSummary, SamplingRequest, Transaction

log = get_logger("ledger")


class LedgerRow(BaseModel):
    """General ledger line joined with its chart-of-accounts entry."""

    id: str
    client_id: str
    transaction_date: date
    debit_amount: float | None = None
    credit_amount: float | None = None
    description: str | None = None
    account_number: str
    account_name: str = ""
    standard_number: str | None = None
    version_id: str | None = None

    @property
    def signed_amount(self) -> float:
        """Debit amount when present, otherwise the negated credit."""

        if self.debit_amount:
            return self.debit_amount
        return -(self.credit_amount or 0.0)

    def to_transaction(self) -> Transaction:
        return Transaction(
            id=self.id,
            transaction_date=self.transaction_date,
            account_number=self.account_number,
            account_name=self.account_name,
            description=self.description or "",
            amount=self.signed_amount,
        )


_ROWS_ADAPTER = TypeAdapter(list[LedgerRow])


class PopulationQuery(BaseModel):
    """Filters bounding the population fetched for one request."""

    client_id: str
    fiscal_year: int
    excluded_account_numbers: list[str] = Field(default_factory=list)
    selected_standard_numbers: list[str] = Field(default_factory=list)
    version_id: str | None = None

    @classmethod
    def from_request(cls, request: SamplingRequest) -> "PopulationQuery":
        return cls(
            client_id=request.client_id,
            fiscal_year=request.fiscal_year,
            excluded_account_numbers=request.excluded_account_numbers,
            selected_standard_numbers=request.selected_standard_numbers,
            version_id=request.version_id,
        )

    @property
    def period_start(self) -> date:
        return date(self.fiscal_year, 1, 1)

    @property
    def period_end(self) -> date:
        return date(self.fiscal_year, 12, 31)

    def matches(self, row: LedgerRow) -> bool:
        """Whether a ledger row belongs to the queried population."""

        if row.client_id != self.client_id:
            return False
        if not self.period_start <= row.transaction_date <= self.period_end:
            return False
        if row.account_number in self.excluded_account_numbers:
            return False
        if (
            self.selected_standard_numbers
            and row.standard_number not in self.selected_standard_numbers
        ):
            return False
        if self.version_id is not None and row.version_id != self.version_id:
            return False
        return True


class LedgerStore(Protocol):
    """Anything that can return the ledger rows matching a query."""

    def fetch(self, query: PopulationQuery) -> list[LedgerRow]: ...


class InMemoryLedger:
    """Ledger rows held in memory."""

    def __init__(self, rows: Iterable[LedgerRow] = ()) -> None:
        self.rows = list(rows)

    def fetch(self, query: PopulationQuery) -> list[LedgerRow]:
        return _apply_query(self.rows, query)


class JsonLedgerStore:
    """Filesystem ledger with one JSON array of rows per client.

    Rows for client ``C`` live in ``<root>/C.json``. A client without a file
    has an empty ledger.
    """

    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    def client_path(self, client_id: str) -> Path:
        if not client_id or any(sep in client_id for sep in ("/", "\\", "..")):
            raise SamplingValidationError(
                "Invalid client identifier", details=f"client_id={client_id!r}"
            )
        return self.root / f"{client_id}.json"

    def fetch(self, query: PopulationQuery) -> list[LedgerRow]:
        path = self.client_path(query.client_id)
        if not path.exists():
            log.warning(EventCode.LEDGER_MISSING.value, path=str(path))
            return []
        try:
            rows = _ROWS_ADAPTER.validate_json(path.read_bytes())
        except (OSError, ValidationError) as exc:
            raise PopulationFetchError(
                "Could not read the ledger population",
                details=f"{path}: {exc}",
            ) from exc
        return _apply_query(rows, query)


def fetch_population(
    store: LedgerStore, query: PopulationQuery
) -> list[Transaction]:
    """Fetch and convert the population for a query.

    Args:
        store (LedgerStore): Ledger backend.
        query (PopulationQuery): Client, fiscal year and account filters.

    Returns:
        list[Transaction]: Transactions ordered by transaction date.

    Raises:
        PopulationFetchError: If the backend fails or returns malformed rows.
    """
    try:
        rows = store.fetch(query)
        transactions = [row.to_transaction() for row in rows]
    except (PopulationFetchError, SamplingValidationError):
        raise
    except Exception as exc:
        raise PopulationFetchError(
            "Could not fetch the ledger population",
            details=f"{type(exc).__name__}: {exc}",
        ) from exc

    log.info(
        EventCode.POPULATION_FETCHED.value,
        client_id=query.client_id,
        fiscal_year=query.fiscal_year,
        count=len(transactions),
    )
    return transactions


def summarize_population(
    transactions: Sequence[Transaction],
) -> PopulationSummary:
    """Count, absolute value, date range and account spread of a population.

    Args:
        transactions (Sequence[Transaction]): Fetched population.

    Returns:
        PopulationSummary: Figures a caller needs to build a request.
    """
    dates = [t.transaction_date for t in transactions]
    return PopulationSummary(
        total_transactions=len(transactions),
        total_amount=sum(t.amount_abs for t in transactions),
        date_range_start=min(dates) if dates else None,
        date_range_end=max(dates) if dates else None,
        unique_accounts=len({t.account_number for t in transactions}),
    )


def _apply_query(
    rows: Iterable[LedgerRow], query: PopulationQuery
) -> list[LedgerRow]:
    matched = [row for row in rows if query.matches(row)]
    matched.sort(key=lambda row: row.transaction_date)
    return matched
