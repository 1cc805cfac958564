"""Tests for filesystem persistence of plans and the audit log."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from pathlib import Path

import pytest

from audit_sampling.errors import PersistenceError, PlanNotFoundError
from audit_sampling.models import AuditLogEntry, SamplingPlan, Transaction

GENERATED_AT = datetime(2024, 10, 18, 14, 5, tzinfo=timezone.utc)


def _plan(**overrides) -> SamplingPlan:
    fields = {
        "client_id": "C1",
        "fiscal_year": 2024,
        "test_type": "SUBSTANTIVE",
        "method": "MUS",
        "population_size": 150,
        "population_sum": 150_000.0,
        "confidence_level": 95,
        "risk_level": "MODERATE",
        "recommended_sample_size": 150,
        "actual_sample_size": 150,
        "coverage_percentage": 100.0,
        "generated_at": GENERATED_AT,
    }
    fields.update(overrides)
    return SamplingPlan(**fields)


def _sample(count: int) -> list[Transaction]:
    return [
        Transaction(
            id=f"T{i:03d}",
            transaction_date=date(2024, 12, 31) - timedelta(days=i),
            account_number="3000",
            account_name="Sales",
            description="Invoice",
            amount=1000.0,
            risk_score=0.9 if i % 10 == 0 else 0.2,
        )
        for i in range(count)
    ]


def test_save_and_load_round_trip(storage) -> None:
    plan_id = storage.save_plan(_plan(), _sample(150))

    plan, items = storage.load_plan(plan_id)

    assert plan.plan_id == plan_id
    assert plan.method.value == "MUS"
    assert len(items) == 150
    assert all(item.plan_id == plan_id for item in items)


def test_items_grouped_in_strata_of_hundred(storage) -> None:
    plan_id = storage.save_plan(_plan(), _sample(150))
    _, items = storage.load_plan(plan_id)
    by_id = {item.transaction_id: item for item in items}

    assert by_id["T000"].stratum_id == 0
    assert by_id["T099"].stratum_id == 0
    assert by_id["T100"].stratum_id == 1
    assert by_id["T149"].stratum_id == 1


def test_items_flag_high_risk_and_method(storage) -> None:
    plan_id = storage.save_plan(_plan(), _sample(20))
    _, items = storage.load_plan(plan_id)
    flagged = {item.transaction_id for item in items if item.is_high_risk}

    assert flagged == {"T000", "T010"}
    assert {item.selection_method.value for item in items} == {"MUS"}


def test_loaded_items_ordered_by_date(storage) -> None:
    plan_id = storage.save_plan(_plan(), _sample(30))
    _, items = storage.load_plan(plan_id)
    dates = [item.transaction_date for item in items]
    assert dates == sorted(dates)


def test_list_plans_newest_first(storage) -> None:
    older = storage.save_plan(_plan(), _sample(3))
    newer = storage.save_plan(
        _plan(generated_at=GENERATED_AT + timedelta(hours=1)), _sample(3)
    )
    storage.save_plan(_plan(client_id="C2"), _sample(3))
    storage.save_plan(_plan(fiscal_year=2023), _sample(3))

    plans = storage.list_plans("C1", fiscal_year=2024)

    assert [p.plan_id for p in plans] == [newer, older]
    assert len(storage.list_plans("C1")) == 3


def test_load_unknown_plan(storage) -> None:
    with pytest.raises(PlanNotFoundError) as exc_info:
        storage.load_plan("0123456789abcdef")
    assert exc_info.value.status_code == 404


def test_load_rejects_path_like_ids(storage) -> None:
    with pytest.raises(PlanNotFoundError):
        storage.load_plan("../plans")


def test_failed_save_leaves_nothing_behind(storage, monkeypatch) -> None:
    def broken_rename(self, target):
        raise OSError("disk full")

    monkeypatch.setattr(Path, "rename", broken_rename)

    with pytest.raises(PersistenceError):
        storage.save_plan(_plan(), _sample(10))

    assert list(storage.plans_root.iterdir()) == []
    assert storage.list_plans("C1") == []


def test_audit_log_append_and_read(storage) -> None:
    assert storage.read_audit_log() == []

    storage.append_audit_log(
        AuditLogEntry(
            client_id="C1",
            action_type="sampling_plan_created",
            description="first",
        )
    )
    storage.append_audit_log(
        AuditLogEntry(
            client_id="C1",
            action_type="sampling_plan_created",
            description="second",
        )
    )

    entries = storage.read_audit_log()
    assert [e.description for e in entries] == ["first", "second"]
    assert entries[0].area_name == "sampling"
