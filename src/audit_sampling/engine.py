"""Sampling orchestration: fetch, score, size, select, record."""

from __future__ import annotations

import math
from collections.abc import Callable, Mapping, Sequence
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

import structlog
from pydantic import ValidationError

from .cache import PlanCache, cache_key
from .config import EngineSettings
from .errors import (
    InternalComputationError,
    PersistenceError,
    SamplingError,
    SamplingValidationError,
)
from .ledger import (
    JsonLedgerStore,
    LedgerStore,
    PopulationQuery,
    fetch_population,
    summarize_population,
)
from .logging_setup import get_logger
from .models import (
    PLAN_REQUEST_FIELDS,
    AuditLogEntry,
    EventCode,
    HealthStatus,
    PopulationSummary,
    SampleItem,
    SamplingMethod,
    SamplingPlan,
    SamplingRequest,
    SamplingResult,
    Transaction,
)
from .risk import is_high_risk, score_population
from .rng import SeededRandom
from .sampler import algorithm_for, select_sample
from .sizing import calculate_sample_size
from .storage import FilesystemPlanStorage, PlanStorage

log = get_logger("engine")

# Floating point slack tolerated before coverage counts as above 100%.
COVERAGE_TOLERANCE = 1e-9


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def validate_request(
    request: SamplingRequest | Mapping[str, Any],
) -> SamplingRequest:
    """Coerce raw input into a validated ``SamplingRequest``.

    Args:
        request (SamplingRequest | Mapping[str, Any]): Request model or
            camelCase / snake_case mapping.

    Returns:
        SamplingRequest: Validated, immutable request.

    Raises:
        SamplingValidationError: If the input fails validation.
    """
    if isinstance(request, SamplingRequest):
        return request
    try:
        return SamplingRequest.model_validate(request)
    except ValidationError as exc:
        raise SamplingValidationError(
            "Invalid sampling request", details=str(exc)
        ) from exc


def coverage_percentage(
    sample: Sequence[Transaction], population_sum: float
) -> float:
    """Share of the population value covered by the sample, in percent.

    Args:
        sample (Sequence[Transaction]): Selected transactions.
        population_sum (float): Sum of absolute amounts of the population.

    Returns:
        float: Coverage rounded to two decimals.

    Raises:
        SamplingValidationError: If the sample carries value the declared
            population sum cannot account for.
        InternalComputationError: If the coverage is not a finite number.
    """
    sampled = sum(t.amount_abs for t in sample)
    if population_sum <= 0:
        if sampled == 0:
            return 0.0
        raise SamplingValidationError(
            "Coverage is undefined for a zero population sum",
            details=f"sampled={sampled}, population_sum={population_sum}",
        )

    coverage = sampled / population_sum * 100
    if not math.isfinite(coverage):
        raise InternalComputationError(
            "Could not compute coverage",
            details=f"sampled={sampled}, population_sum={population_sum}",
        )
    if coverage > 100 + COVERAGE_TOLERANCE:
        raise SamplingValidationError(
            "Sample value exceeds the declared population sum",
            details=f"sampled={sampled}, population_sum={population_sum}",
        )
    return round(min(coverage, 100.0), 2)


def automatic_plan_name(method: SamplingMethod, generated_at: datetime) -> str:
    """Name a plan after its method and creation time, e.g. ``MUS 18 Oct, 14:05``."""

    return (
        f"{method.display_name} "
        f"{generated_at.day} {generated_at:%b}, {generated_at:%H:%M}"
    )


class SamplingOrchestrator:
    """Runs sampling requests against a ledger, cache and plan storage.

    One instance is created per service and shared by concurrent requests;
    per-request state (generator, population) never leaves :meth:`run`.
    """

    def __init__(
        self,
        ledger: LedgerStore,
        cache: PlanCache | None = None,
        storage: PlanStorage | None = None,
        settings: EngineSettings | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.settings = settings if settings is not None else EngineSettings()
        self.ledger = ledger
        self.cache = (
            cache
            if cache is not None
            else PlanCache(self.settings.cache_ttl_seconds)
        )
        self.storage = storage
        self._clock = clock
        self._last_plan: SamplingPlan | None = None

    @classmethod
    def from_settings(cls, settings: EngineSettings) -> "SamplingOrchestrator":
        """Wire the filesystem ledger and plan storage named by ``settings``."""

        return cls(
            ledger=JsonLedgerStore(settings.ledger_dir),
            cache=PlanCache(settings.cache_ttl_seconds),
            storage=FilesystemPlanStorage(
                settings.data_dir, settings.high_risk_threshold
            ),
            settings=settings,
        )

    def run(
        self, request: SamplingRequest | Mapping[str, Any]
    ) -> SamplingResult:
        """Produce (or reuse) a sampling plan and its sample.

        Args:
            request (SamplingRequest | Mapping[str, Any]): Sampling request.

        Returns:
            SamplingResult: Plan and ordered sample.

        Raises:
            SamplingValidationError: Invalid request parameters.
            PopulationFetchError: The ledger could not be read.
            InternalComputationError: A numeric step failed.
            PersistenceError: ``save`` was requested and storing failed.
        """
        request = validate_request(request)
        run_id = uuid4().hex
        with structlog.contextvars.bound_contextvars(run_id=run_id):
            log.info(
                EventCode.REQUEST_RECEIVED.value,
                client_id=request.client_id,
                fiscal_year=request.fiscal_year,
                test_type=request.test_type.value,
                method=request.method.value,
                save=request.save,
            )
            key = cache_key(request)

            if not request.save:
                cached = self.cache.get(key)
                if cached is not None:
                    log.info(EventCode.CACHE_HIT.value, cache_key=key)
                    self._last_plan = cached.plan
                    self.cache.sweep()
                    return cached

            if request.save:
                self._require_storage()

            result = self._compute(request)

            if request.save:
                result = self._persist(result)
            else:
                self.cache.put(key, result)

            self._last_plan = result.plan
            self.cache.sweep()
            return result

    def health(self) -> HealthStatus:
        return HealthStatus(
            timestamp=self._clock(),
            cache_entry_size=len(self.cache),
            last_plan_summary=(
                self._last_plan.summary() if self._last_plan else None
            ),
        )

    def population_summary(self, query: PopulationQuery) -> PopulationSummary:
        return summarize_population(fetch_population(self.ledger, query))

    def list_plans(
        self, client_id: str, fiscal_year: int | None = None
    ) -> list[SamplingPlan]:
        return self._require_storage().list_plans(client_id, fiscal_year)

    def load_plan(self, plan_id: str) -> tuple[SamplingPlan, list[SampleItem]]:
        return self._require_storage().load_plan(plan_id)

    def shutdown(self) -> None:
        """Release per-service state at the end of the service lifetime."""

        self.cache.clear()
        self._last_plan = None

    def _compute(self, request: SamplingRequest) -> SamplingResult:
        """Steps 2-7: population, scores, size, selection, coverage, plan."""

        try:
            population = fetch_population(
                self.ledger, PopulationQuery.from_request(request)
            )
            scored = score_population(population, request.materiality)
            recommended = calculate_sample_size(request)
            seed, seed_source = self._resolve_seed(request)
            sample = select_sample(
                scored,
                recommended,
                algorithm_for(request),
                SeededRandom(seed),
                include_high_risk=request.use_high_risk_inclusion,
                high_risk_threshold=self.settings.high_risk_threshold,
            )
            coverage = coverage_percentage(sample, request.population_sum)
        except SamplingError:
            raise
        except Exception as exc:
            raise InternalComputationError(
                "Sampling computation failed",
                details=f"{type(exc).__name__}: {exc}",
            ) from exc

        generated_at = self._clock()
        plan = SamplingPlan(
            **request.model_dump(include=PLAN_REQUEST_FIELDS),
            recommended_sample_size=recommended,
            actual_sample_size=len(sample),
            coverage_percentage=coverage,
            generated_at=generated_at,
            notes=request.plan_name
            or automatic_plan_name(request.method, generated_at),
            metadata={
                "seed": seed,
                "seed_source": seed_source,
                "use_high_risk_inclusion": request.use_high_risk_inclusion,
                "high_risk_in_sample": sum(
                    1
                    for t in sample
                    if is_high_risk(
                        t.risk_score, self.settings.high_risk_threshold
                    )
                ),
                "population_fetched": len(population),
                "method_details": request.method.details,
                "generation_timestamp": generated_at.isoformat(),
                "selected_standard_numbers": request.selected_standard_numbers,
                "excluded_account_numbers": request.excluded_account_numbers,
                "version_id": request.version_id,
            },
        )
        log.info(
            EventCode.PLAN_ASSEMBLED.value,
            recommended=recommended,
            actual=len(sample),
            coverage=coverage,
            seed=seed,
        )
        return SamplingResult(plan=plan, sample=sample)

    def _persist(self, result: SamplingResult) -> SamplingResult:
        """Store plan and items; record the audit trail best-effort."""

        storage = self._require_storage()
        try:
            plan_id = storage.save_plan(result.plan, result.sample)
        except PersistenceError:
            raise
        except Exception as exc:
            raise PersistenceError(
                "Failed to save sampling plan",
                details=f"{type(exc).__name__}: {exc}",
            ) from exc

        plan = result.plan.model_copy(update={"plan_id": plan_id})
        entry = AuditLogEntry(
            client_id=plan.client_id,
            action_type="sampling_plan_created",
            description=(
                f"Audit sampling plan created: {plan.method.value} method, "
                f"{plan.actual_sample_size} items selected"
            ),
            metadata={
                "plan_id": plan_id,
                "test_type": plan.test_type.value,
                "method": plan.method.value,
                "sample_size": plan.actual_sample_size,
                "coverage_percentage": plan.coverage_percentage,
                "fiscal_year": plan.fiscal_year,
            },
        )
        try:
            storage.append_audit_log(entry)
        except Exception as exc:
            log.warning(
                EventCode.AUDIT_LOG_FAILED.value,
                plan_id=plan_id,
                error=f"{type(exc).__name__}: {exc}",
            )
        return SamplingResult(plan=plan, sample=result.sample)

    def _resolve_seed(self, request: SamplingRequest) -> tuple[int, str]:
        if request.seed is not None:
            return request.seed, "request"
        return int(self._clock().timestamp() * 1000), "clock"

    def _require_storage(self) -> PlanStorage:
        if self.storage is None:
            raise PersistenceError(
                "Plan storage is not configured",
                details="the orchestrator was created without a PlanStorage",
            )
        return self.storage
