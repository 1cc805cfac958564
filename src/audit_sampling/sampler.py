"""Sample selection algorithms.

Every algorithm receives the population, a target size and the run's
``SeededRandom`` and returns at most ``target_size`` transactions. The
high-risk pre-inclusion step in :func:`select_sample` is independent of the
algorithm and runs before any of them.
"""

from __future__ import annotations

import bisect
import itertools
import math
from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence
from typing import ClassVar

from .logging_setup import get_logger
from .models import EventCode, SamplingMethod, SamplingRequest, Transaction
from .risk import HIGH_RISK_THRESHOLD, is_high_risk
from .rng import SeededRandom

log = get_logger("sampler")


class SelectionAlgorithm(ABC):
    """Interface implemented once per sampling method."""

    method: ClassVar[SamplingMethod]

    @abstractmethod
    def select(
        self,
        population: Sequence[Transaction],
        target_size: int,
        rng: SeededRandom,
    ) -> list[Transaction]:
        """Select up to ``target_size`` items from ``population``."""


class SimpleRandomSelection(SelectionAlgorithm):
    method = SamplingMethod.SRS

    def select(self, population, target_size, rng):
        return simple_random_sample(population, target_size, rng)


class SystematicSelection(SelectionAlgorithm):
    method = SamplingMethod.SYSTEMATIC

    def select(self, population, target_size, rng):
        return systematic_sample(population, target_size, rng)


class MonetaryUnitSelection(SelectionAlgorithm):
    method = SamplingMethod.MUS

    def select(self, population, target_size, rng):
        return monetary_unit_sample(population, target_size, rng)


class StratifiedSelection(SelectionAlgorithm):
    method = SamplingMethod.STRATIFIED

    def __init__(self, bounds: Sequence[float] = ()) -> None:
        self.bounds = list(bounds)

    def select(self, population, target_size, rng):
        return stratified_sample(population, target_size, rng, self.bounds)


class ThresholdSelection(SelectionAlgorithm):
    method = SamplingMethod.THRESHOLD

    def __init__(self, threshold: float) -> None:
        self.threshold = threshold

    def select(self, population, target_size, rng):
        return threshold_sample(population, target_size, rng, self.threshold)


# Registry of algorithm builders keyed by method
_ALGORITHM_REGISTRY: dict[
    SamplingMethod, Callable[[SamplingRequest], SelectionAlgorithm]
] = {
    SamplingMethod.SRS: lambda request: SimpleRandomSelection(),
    SamplingMethod.SYSTEMATIC: lambda request: SystematicSelection(),
    SamplingMethod.MUS: lambda request: MonetaryUnitSelection(),
    SamplingMethod.STRATIFIED: lambda request: StratifiedSelection(
        request.strata_bounds
    ),
    SamplingMethod.THRESHOLD: lambda request: ThresholdSelection(
        request.threshold_amount or 0.0
    ),
}


def algorithm_for(request: SamplingRequest) -> SelectionAlgorithm:
    """Build the selection algorithm configured by the request.

    Args:
        request (SamplingRequest): Validated sampling request.

    Returns:
        SelectionAlgorithm: Algorithm instance for ``request.method``.
    """
    return _ALGORITHM_REGISTRY[request.method](request)


def select_sample(
    population: Sequence[Transaction],
    target_size: int,
    algorithm: SelectionAlgorithm,
    rng: SeededRandom,
    include_high_risk: bool = False,
    high_risk_threshold: float = HIGH_RISK_THRESHOLD,
) -> list[Transaction]:
    """Select a sample, optionally forcing high-risk items in first.

    Args:
        population (Sequence[Transaction]): Scored population.
        target_size (int): Recommended sample size.
        algorithm (SelectionAlgorithm): Algorithm filling the remaining budget.
        rng (SeededRandom): Generator for this run.
        include_high_risk (bool): Whether items scoring above
            ``high_risk_threshold`` are included unconditionally.
        high_risk_threshold (float): Risk score cut-off.

    Returns:
        list[Transaction]: Ordered sample without duplicate ids, at most
        ``target_size`` long.
    """
    forced: list[Transaction] = []
    remaining = list(population)

    if include_high_risk:
        forced = [
            t for t in population
            if is_high_risk(t.risk_score, high_risk_threshold)
        ]
        remaining = [
            t for t in population
            if not is_high_risk(t.risk_score, high_risk_threshold)
        ]
        log.info(EventCode.HIGH_RISK_INCLUDED.value, count=len(forced))

    budget = max(0, target_size - len(forced))
    selected = algorithm.select(remaining, budget, rng)
    sample = _unique_by_id(forced + selected)[: max(0, target_size)]

    log.info(
        EventCode.SAMPLE_SELECTED.value,
        method=algorithm.method.value,
        target=target_size,
        forced=len(forced),
        selected=len(sample),
    )
    return sample


def simple_random_sample(
    population: Sequence[Transaction],
    size: int,
    rng: SeededRandom,
) -> list[Transaction]:
    """Draw ``size`` items with a partial Fisher-Yates shuffle.

    Args:
        population (Sequence[Transaction]): Candidate items.
        size (int): Number of items wanted.
        rng (SeededRandom): Generator for this run.

    Returns:
        list[Transaction]: Selected items in draw order.
    """
    if size <= 0 or not population:
        return []

    pool = list(population)
    count = min(size, len(pool))
    for i in range(count):
        j = i + rng.randbelow(len(pool) - i)
        pool[i], pool[j] = pool[j], pool[i]
    return pool[:count]


def systematic_sample(
    population: Sequence[Transaction],
    size: int,
    rng: SeededRandom,
) -> list[Transaction]:
    """Take every ``len // size``-th item from a random start.

    Args:
        population (Sequence[Transaction]): Candidate items in ledger order.
        size (int): Number of items wanted.
        rng (SeededRandom): Generator for this run.

    Returns:
        list[Transaction]: Items at ``start + i * interval``.
    """
    if size <= 0:
        return []
    total = len(population)
    if size >= total:
        return list(population)

    interval = total // size
    start = rng.randbelow(interval)
    return [population[(start + i * interval) % total] for i in range(size)]


def monetary_unit_sample(
    population: Sequence[Transaction],
    size: int,
    rng: SeededRandom,
) -> list[Transaction]:
    """Select items with probability proportional to their absolute amount.

    One monetary unit is drawn at random inside each of ``size`` equal
    intervals of the cumulative absolute amount; the item containing it is
    selected. Items hit more than once are kept once, so the result can be
    shorter than ``size``.

    Args:
        population (Sequence[Transaction]): Candidate items.
        size (int): Number of intervals to draw from.
        rng (SeededRandom): Generator for this run.

    Returns:
        list[Transaction]: Selected items in interval order.
    """
    if size <= 0:
        return []

    candidates = [t for t in population if t.amount != 0]
    cumulative = list(itertools.accumulate(t.amount_abs for t in candidates))
    if not cumulative or cumulative[-1] <= 0:
        return []

    interval = cumulative[-1] / size
    sample: list[Transaction] = []
    seen: set[str] = set()

    for i in range(size):
        target = rng.random() * interval + i * interval
        index = bisect.bisect_left(cumulative, target)
        if index >= len(candidates):
            continue
        txn = candidates[index]
        if txn.id not in seen:
            seen.add(txn.id)
            sample.append(txn)

    return sample


def build_strata(
    population: Sequence[Transaction],
    bounds: Sequence[float],
) -> list[list[Transaction]]:
    """Partition items into ``[lower, upper)`` bands of absolute amount.

    Args:
        population (Sequence[Transaction]): Candidate items.
        bounds (Sequence[float]): Breakpoints; 0 and infinity are implicit.

    Returns:
        list[list[Transaction]]: One (possibly empty) list per band.
    """
    edges = [0.0, *sorted(bounds), math.inf]
    return [
        [t for t in population if lower <= t.amount_abs < upper]
        for lower, upper in zip(edges, edges[1:])
    ]


def stratified_sample(
    population: Sequence[Transaction],
    size: int,
    rng: SeededRandom,
    bounds: Sequence[float],
) -> list[Transaction]:
    """Proportionally allocated simple random samples per amount band.

    Args:
        population (Sequence[Transaction]): Candidate items.
        size (int): Total number of items wanted.
        rng (SeededRandom): Generator shared across strata.
        bounds (Sequence[float]): Amount breakpoints.

    Returns:
        list[Transaction]: Concatenated stratum samples, truncated to ``size``.
    """
    if size <= 0:
        return []
    if not bounds:
        return simple_random_sample(population, size, rng)

    total = len(population)
    sample: list[Transaction] = []
    for stratum in build_strata(population, bounds):
        if not stratum:
            continue
        allocation = max(1, _round_half_up(len(stratum) / total * size))
        sample.extend(simple_random_sample(stratum, allocation, rng))

    return sample[:size]


def threshold_sample(
    population: Sequence[Transaction],
    size: int,
    rng: SeededRandom,
    threshold: float,
) -> list[Transaction]:
    """Include every item at or above ``threshold``, fill the rest randomly.

    Args:
        population (Sequence[Transaction]): Candidate items.
        size (int): Total number of items wanted.
        rng (SeededRandom): Generator for this run.
        threshold (float): Absolute amount tested at 100%.

    Returns:
        list[Transaction]: Threshold items followed by random items.
    """
    if size <= 0:
        return []

    above = [t for t in population if t.amount_abs >= threshold]
    below = [t for t in population if t.amount_abs < threshold]

    if len(above) > size:
        log.warning(
            EventCode.THRESHOLD_ITEMS_TRUNCATED.value,
            threshold=threshold,
            above_threshold=len(above),
            target=size,
        )

    sample = list(above)
    remaining = size - len(sample)
    if remaining > 0 and below:
        sample.extend(simple_random_sample(below, remaining, rng))

    return sample[:size]


def _unique_by_id(transactions: Sequence[Transaction]) -> list[Transaction]:
    """Drop repeated transaction ids, keeping the first occurrence."""

    seen: set[str] = set()
    unique: list[Transaction] = []
    for txn in transactions:
        if txn.id in seen:
            continue
        seen.add(txn.id)
        unique.append(txn)
    return unique


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)
