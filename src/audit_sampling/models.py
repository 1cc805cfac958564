"""Core data models for the audit sampling engine."""

from __future__ import annotations

from datetime import date, datetime, timezone
from enum import Enum
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model exchanging camelCase JSON with snake_case attributes."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class TestType(str, Enum):
    """Kind of audit test the sample is drawn for."""

    SUBSTANTIVE = "SUBSTANTIVE"
    CONTROL = "CONTROL"


class SamplingMethod(str, Enum):
    """Selection algorithms supported by the engine."""

    SRS = "SRS"
    SYSTEMATIC = "SYSTEMATIC"
    MUS = "MUS"
    STRATIFIED = "STRATIFIED"
    THRESHOLD = "THRESHOLD"

    @property
    def display_name(self) -> str:
        """Short label used in automatically generated plan names."""

        return METHOD_DETAILS[self]["display_name"]

    @property
    def details(self) -> dict[str, str]:
        """Name and description recorded in plan metadata."""

        info = METHOD_DETAILS[self]
        return {"name": info["name"], "description": info["description"]}


METHOD_DETAILS: dict[SamplingMethod, dict[str, str]] = {
    SamplingMethod.SRS: {
        "display_name": "SRS",
        "name": "Simple Random Sampling",
        "description": "Random selection without stratification",
    },
    SamplingMethod.SYSTEMATIC: {
        "display_name": "Systematic",
        "name": "Systematic Sampling",
        "description": "Fixed-interval selection from a random start",
    },
    SamplingMethod.MUS: {
        "display_name": "MUS",
        "name": "Monetary Unit Sampling",
        "description": "Selection probability proportional to amount",
    },
    SamplingMethod.STRATIFIED: {
        "display_name": "Stratified",
        "name": "Stratified Sampling",
        "description": "Proportional random selection within amount bands",
    },
    SamplingMethod.THRESHOLD: {
        "display_name": "Threshold",
        "name": "Threshold Sampling",
        "description": "All items above the threshold plus a random remainder",
    },
}


class RiskLevel(str, Enum):
    """Assessed risk of material misstatement for the tested area."""

    LOW = "LOW"
    MODERATE = "MODERATE"
    HIGH = "HIGH"

    @property
    def multiplier(self) -> float:
        """Sample size multiplier applied to attribute sampling."""

        return RISK_MULTIPLIERS[self]


RISK_MULTIPLIERS: dict[RiskLevel, float] = {
    RiskLevel.LOW: 0.8,
    RiskLevel.MODERATE: 1.0,
    RiskLevel.HIGH: 1.3,
}


class SamplingRequest(CamelModel):
    """Audit parameters for one sizing and selection run."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True
    )

    client_id: str = Field(min_length=1)
    fiscal_year: int = Field(ge=1900, le=2999)
    test_type: TestType
    method: SamplingMethod
    population_size: int = Field(ge=0)
    population_sum: float = Field(ge=0)
    materiality: float | None = Field(default=None, gt=0)
    expected_misstatement: float | None = Field(default=None, ge=0)
    confidence_level: float = Field(gt=0, lt=100)
    risk_level: RiskLevel = RiskLevel.MODERATE
    tolerable_deviation_rate: float | None = Field(default=None, ge=0, lt=100)
    expected_deviation_rate: float | None = Field(default=None, ge=0, lt=100)
    strata_bounds: list[float] = Field(default_factory=list)
    threshold_amount: float | None = Field(default=None, ge=0)
    seed: int | None = Field(default=None, ge=0)
    use_high_risk_inclusion: bool = False
    save: bool = False
    plan_name: str | None = None
    selected_standard_numbers: list[str] = Field(default_factory=list)
    excluded_account_numbers: list[str] = Field(default_factory=list)
    version_id: str | None = None

    @field_validator("strata_bounds")
    @classmethod
    def validate_strata_bounds(cls, value: list[float]) -> list[float]:
        """Strata breakpoints are positive amounts (0 is the implicit floor)."""

        if any(bound <= 0 for bound in value):
            raise ValueError("strata_bounds must contain positive amounts")
        return value

    @model_validator(mode="after")
    def validate_relationships(self) -> "SamplingRequest":
        """Validate method- and test-specific parameter combinations."""

        if (
            self.method == SamplingMethod.THRESHOLD
            and self.threshold_amount is None
        ):
            raise ValueError("threshold_amount is required for THRESHOLD")
        if (
            self.test_type == TestType.CONTROL
            and self.tolerable_deviation_rate is not None
            and self.expected_deviation_rate is not None
            and self.tolerable_deviation_rate <= self.expected_deviation_rate
        ):
            raise ValueError(
                "tolerable_deviation_rate must be greater than "
                "expected_deviation_rate"
            )
        return self


# Request fields copied verbatim onto the plan record.
PLAN_REQUEST_FIELDS = {
    "client_id",
    "fiscal_year",
    "test_type",
    "method",
    "population_size",
    "population_sum",
    "materiality",
    "expected_misstatement",
    "confidence_level",
    "risk_level",
    "tolerable_deviation_rate",
    "expected_deviation_rate",
    "strata_bounds",
    "threshold_amount",
}


class Transaction(CamelModel):
    """Ledger transaction as seen by the sampling engine."""

    id: str
    transaction_date: date
    account_number: str = ""
    account_name: str = ""
    description: str = ""
    amount: float
    risk_score: float = Field(default=0.0, ge=0, le=1)

    @property
    def amount_abs(self) -> float:
        return abs(self.amount)


class PlanSummary(CamelModel):
    """Compact plan description reported by the health endpoint."""

    plan_id: str | None = None
    client_id: str
    fiscal_year: int
    method: SamplingMethod
    actual_sample_size: int
    coverage_percentage: float
    generated_at: datetime
    notes: str | None = None


class SamplingPlan(CamelModel):
    """Immutable record of a sizing and selection run."""

    plan_id: str | None = None
    client_id: str
    fiscal_year: int
    test_type: TestType
    method: SamplingMethod
    population_size: int
    population_sum: float
    materiality: float | None = None
    expected_misstatement: float | None = None
    confidence_level: float
    risk_level: RiskLevel
    tolerable_deviation_rate: float | None = None
    expected_deviation_rate: float | None = None
    strata_bounds: list[float] = Field(default_factory=list)
    threshold_amount: float | None = None
    recommended_sample_size: int = Field(ge=0)
    actual_sample_size: int = Field(ge=0)
    coverage_percentage: float = Field(ge=0, le=100)
    generated_at: datetime
    notes: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    def summary(self) -> PlanSummary:
        """Return the compact summary of this plan."""

        return PlanSummary(
            plan_id=self.plan_id,
            client_id=self.client_id,
            fiscal_year=self.fiscal_year,
            method=self.method,
            actual_sample_size=self.actual_sample_size,
            coverage_percentage=self.coverage_percentage,
            generated_at=self.generated_at,
            notes=self.notes,
        )


class SamplingResult(CamelModel):
    """Response of a sampling run: the plan and its ordered sample."""

    plan: SamplingPlan
    sample: list[Transaction]


class SampleItem(CamelModel):
    """Persisted sample row referencing its plan."""

    plan_id: str
    transaction_id: str
    amount: float
    risk_score: float
    account_number: str
    account_name: str
    transaction_date: date
    description: str
    is_high_risk: bool
    stratum_id: int
    selection_method: SamplingMethod


class AuditLogEntry(CamelModel):
    """Audit trail row describing an engine action."""

    client_id: str
    action_type: str
    area_name: str = "sampling"
    description: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )


class PopulationSummary(CamelModel):
    """Size and value of a filtered ledger population."""

    total_transactions: int
    total_amount: float
    date_range_start: date | None = None
    date_range_end: date | None = None
    unique_accounts: int


class HealthStatus(CamelModel):
    """Liveness payload of the sampling service."""

    status: str = "healthy"
    timestamp: datetime
    cache_entry_size: int
    last_plan_summary: PlanSummary | None = None


class EventCode(str, Enum):
    """Enumeration of structured logging event codes."""

    RUN_START = "RUN_START"
    REQUEST_RECEIVED = "REQUEST_RECEIVED"
    CACHE_HIT = "CACHE_HIT"
    POPULATION_FETCHED = "POPULATION_FETCHED"
    LEDGER_MISSING = "LEDGER_MISSING"
    RISK_SCORED = "RISK_SCORED"
    SAMPLE_SIZE_CALCULATED = "SAMPLE_SIZE_CALCULATED"
    HIGH_RISK_INCLUDED = "HIGH_RISK_INCLUDED"
    THRESHOLD_ITEMS_TRUNCATED = "THRESHOLD_ITEMS_TRUNCATED"
    SAMPLE_SELECTED = "SAMPLE_SELECTED"
    PLAN_ASSEMBLED = "PLAN_ASSEMBLED"
    PLAN_SAVED = "PLAN_SAVED"
    AUDIT_LOG_FAILED = "AUDIT_LOG_FAILED"
    CACHE_STORED = "CACHE_STORED"
    CACHE_SWEPT = "CACHE_SWEPT"
    RUN_SUMMARY = "RUN_SUMMARY"


class RunSummary(BaseModel):
    """Aggregate CLI run results and timings persisted as JSON."""

    run_id: str
    started_at_utc: datetime
    finished_at_utc: datetime
    duration_seconds: float
    sampling_seconds: float
    request: dict
    plan: dict
    sample_size: int
    output_json: str
    methodology: str = "Statistical sample sizing and selection"
    version: str = "1.0.0"
