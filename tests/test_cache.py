"""Tests for the TTL result cache and its key derivation."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from audit_sampling.cache import PlanCache, cache_key
from audit_sampling.models import SamplingPlan, SamplingResult


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def result(make_txn) -> SamplingResult:
    plan = SamplingPlan(
        client_id="C1",
        fiscal_year=2024,
        test_type="SUBSTANTIVE",
        method="SRS",
        population_size=2,
        population_sum=300.0,
        confidence_level=95,
        risk_level="MODERATE",
        recommended_sample_size=2,
        actual_sample_size=2,
        coverage_percentage=100.0,
        generated_at=datetime(2024, 10, 18, tzinfo=timezone.utc),
    )
    return SamplingResult(
        plan=plan, sample=[make_txn("A", 100.0), make_txn("B", 200.0)]
    )


def test_key_is_stable(make_request) -> None:
    assert cache_key(make_request()) == cache_key(make_request())
    assert len(cache_key(make_request())) == 32


def test_key_ignores_save_flag(make_request) -> None:
    assert cache_key(make_request(save=True)) == cache_key(make_request(save=False))


@pytest.mark.parametrize(
    "override",
    [
        {"seed": 999},
        {"method": "SYSTEMATIC"},
        {"materiality": 50_000},
        {"risk_level": "HIGH"},
        {"strata_bounds": [1000]},
        {"excluded_account_numbers": ["1500"]},
        {"selected_standard_numbers": ["R1"]},
        {"use_high_risk_inclusion": True},
        {"plan_name": "Year-end revenue"},
        {"version_id": "v2"},
    ],
)
def test_key_changes_with_result_shaping_fields(make_request, override) -> None:
    assert cache_key(make_request(**override)) != cache_key(make_request())


def test_get_returns_copy(result, clock) -> None:
    cache = PlanCache(ttl_seconds=60, clock=clock)
    cache.put("k", result)

    hit = cache.get("k")
    assert hit == result
    assert hit is not result

    hit.sample.clear()
    assert len(cache.get("k").sample) == 2


def test_miss_for_unknown_key(clock) -> None:
    assert PlanCache(clock=clock).get("missing") is None


def test_entries_expire_after_ttl(result, clock) -> None:
    cache = PlanCache(ttl_seconds=60, clock=clock)
    cache.put("k", result)

    clock.now += 59
    assert cache.get("k") is not None
    clock.now += 1
    assert cache.get("k") is None


def test_sweep_removes_only_expired(result, clock) -> None:
    cache = PlanCache(ttl_seconds=60, clock=clock)
    cache.put("old", result)
    clock.now += 30
    cache.put("new", result)
    clock.now += 40

    assert cache.sweep() == 1
    assert len(cache) == 1
    assert cache.get("new") is not None


def test_clear(result, clock) -> None:
    cache = PlanCache(clock=clock)
    cache.put("k", result)
    cache.clear()
    assert len(cache) == 0
