"""Recommended sample sizes for substantive and control tests."""

from __future__ import annotations

import math

from .errors import InternalComputationError, SamplingValidationError
from .logging_setup import get_logger
from .models import EventCode, RiskLevel, SamplingRequest, TestType

log = get_logger("sizing")

MIN_SAMPLE_SIZE = 30
HEURISTIC_RATE = 0.05
HEURISTIC_CAP = 100

# (minimum confidence, z) pairs, highest first.
Z_SCORES: tuple[tuple[float, float], ...] = (
    (99.0, 2.58),
    (95.0, 1.96),
    (90.0, 1.65),
)
DEFAULT_Z_SCORE = 1.96


def calculate_sample_size(request: SamplingRequest) -> int:
    """Dispatch to the sizing formula matching the request's test type.

    Args:
        request (SamplingRequest): Validated sampling request.

    Returns:
        int: Recommended sample size, never above the population size.
    """
    if request.test_type == TestType.SUBSTANTIVE:
        size = mus_sample_size(
            population_size=request.population_size,
            population_sum=request.population_sum,
            confidence_level=request.confidence_level,
            materiality=request.materiality,
            expected_misstatement=request.expected_misstatement,
        )
    else:
        size = attribute_sample_size(
            population_size=request.population_size,
            confidence_level=request.confidence_level,
            risk_level=request.risk_level,
            tolerable_deviation_rate=request.tolerable_deviation_rate,
            expected_deviation_rate=request.expected_deviation_rate,
        )
    log.info(
        EventCode.SAMPLE_SIZE_CALCULATED.value,
        test_type=request.test_type.value,
        population_size=request.population_size,
        recommended=size,
    )
    return size


def heuristic_sample_size(population_size: int) -> int:
    """Fallback of 5% of the population, bounded to ``[30, 100]``.

    Populations smaller than the bound are tested in full.
    """
    size = min(
        HEURISTIC_CAP,
        max(MIN_SAMPLE_SIZE, math.ceil(population_size * HEURISTIC_RATE)),
    )
    return min(population_size, size)


def mus_sample_size(
    population_size: int,
    population_sum: float,
    confidence_level: float,
    materiality: float | None = None,
    expected_misstatement: float | None = None,
) -> int:
    """Monetary unit sampling size from the Poisson approximation.

    ``n = ceil(populationSum / materiality * (-ln(1 - CL) + EM / materiality))``

    Args:
        population_size (int): Number of items in the population.
        population_sum (float): Sum of absolute amounts.
        confidence_level (float): Confidence in percent, e.g. 95.
        materiality (float | None): Materiality threshold.
        expected_misstatement (float | None): Anticipated misstatement.

    Returns:
        int: Size clamped to ``[30, population_size]``.
    """
    if population_size <= 0:
        return 0
    if materiality is None or expected_misstatement is None:
        return heuristic_sample_size(population_size)

    poisson_factor = -math.log(1 - confidence_level / 100)
    expected_error_factor = expected_misstatement / materiality
    raw = (population_sum / materiality) * (
        poisson_factor + expected_error_factor
    )
    _ensure_finite(raw, "MUS sample size")
    return _clamp(math.ceil(raw), population_size)


def attribute_sample_size(
    population_size: int,
    confidence_level: float,
    risk_level: RiskLevel = RiskLevel.MODERATE,
    tolerable_deviation_rate: float | None = None,
    expected_deviation_rate: float | None = None,
) -> int:
    """Attribute sampling size from Cochran's formula.

    Applies the finite population correction and the risk multiplier.

    Args:
        population_size (int): Number of items in the population.
        confidence_level (float): Confidence in percent, e.g. 95.
        risk_level (RiskLevel): Assessed risk for the tested control.
        tolerable_deviation_rate (float | None): Tolerable rate in percent.
        expected_deviation_rate (float | None): Expected rate in percent.

    Returns:
        int: Size clamped to ``[30, population_size]``.

    Raises:
        SamplingValidationError: If the tolerable rate does not exceed the
            expected rate; the formula diverges there.
    """
    if population_size <= 0:
        return 0
    if tolerable_deviation_rate is None or expected_deviation_rate is None:
        return heuristic_sample_size(population_size)

    precision = (tolerable_deviation_rate - expected_deviation_rate) / 100
    if precision <= 0:
        raise SamplingValidationError(
            "Tolerable deviation rate must exceed the expected deviation rate",
            details=(
                f"tolerable={tolerable_deviation_rate}, "
                f"expected={expected_deviation_rate}"
            ),
        )

    z = z_score_for_confidence(confidence_level)
    p = expected_deviation_rate / 100
    q = 1 - p
    n0 = (z * z * p * q) / (precision * precision)
    # n0 == 0 would make the correction 0/0 for a single-item population
    n = n0 / (1 + (n0 - 1) / population_size) if n0 > 0 else 0.0
    raw = n * risk_level.multiplier
    _ensure_finite(raw, "attribute sample size")
    return _clamp(math.ceil(raw), population_size)


def z_score_for_confidence(confidence_level: float) -> float:
    """Two-sided z value for 99/95/90 percent confidence, else 1.96."""

    for minimum, z in Z_SCORES:
        if confidence_level >= minimum:
            return z
    return DEFAULT_Z_SCORE


def _clamp(size: int, population_size: int) -> int:
    return min(population_size, max(MIN_SAMPLE_SIZE, size))


def _ensure_finite(value: float, label: str) -> None:
    if not math.isfinite(value):
        raise InternalComputationError(
            f"Could not compute {label}",
            details=f"{label} evaluated to {value}",
        )
