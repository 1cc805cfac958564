"""Durable storage of sampling plans, their sample items and the audit log."""

from __future__ import annotations

import shutil
import uuid
from collections.abc import Sequence
from pathlib import Path
from typing import Protocol

from pydantic import ValidationError

from .errors import PersistenceError, PlanNotFoundError
from .logging_setup import get_logger
from .models import (
    AuditLogEntry,
    EventCode,
    SampleItem,
    SamplingPlan,
    Transaction,
)
from .risk import HIGH_RISK_THRESHOLD, is_high_risk

ARTIFACT_ROOT = Path("sampling_artifacts")
STRATUM_SIZE = 100

log = get_logger("storage")


class PlanStorage(Protocol):
    """Persistence backend for plans and the audit trail."""

    def save_plan(
        self, plan: SamplingPlan, sample: Sequence[Transaction]
    ) -> str: ...

    def append_audit_log(self, entry: AuditLogEntry) -> None: ...

    def list_plans(
        self, client_id: str, fiscal_year: int | None = None
    ) -> list[SamplingPlan]: ...

    def load_plan(
        self, plan_id: str
    ) -> tuple[SamplingPlan, list[SampleItem]]: ...


def build_sample_items(
    plan_id: str,
    plan: SamplingPlan,
    sample: Sequence[Transaction],
    high_risk_threshold: float = HIGH_RISK_THRESHOLD,
) -> list[SampleItem]:
    """Convert the ordered sample into persisted item rows.

    Args:
        plan_id (str): Identifier of the owning plan.
        plan (SamplingPlan): Plan the items belong to.
        sample (Sequence[Transaction]): Selected transactions in order.
        high_risk_threshold (float): Cut-off for ``is_high_risk``.

    Returns:
        list[SampleItem]: One row per transaction, grouped 100 per stratum id.
    """
    return [
        SampleItem(
            plan_id=plan_id,
            transaction_id=txn.id,
            amount=txn.amount,
            risk_score=txn.risk_score,
            account_number=txn.account_number,
            account_name=txn.account_name,
            transaction_date=txn.transaction_date,
            description=txn.description,
            is_high_risk=is_high_risk(txn.risk_score, high_risk_threshold),
            stratum_id=index // STRATUM_SIZE,
            selection_method=plan.method,
        )
        for index, txn in enumerate(sample)
    ]


class FilesystemPlanStorage:
    """Filesystem-based plan persistence helper."""

    def __init__(
        self,
        root: Path | None = None,
        high_risk_threshold: float = HIGH_RISK_THRESHOLD,
    ) -> None:
        self.root = Path(root or ARTIFACT_ROOT)
        self.high_risk_threshold = high_risk_threshold
        self.plans_root.mkdir(parents=True, exist_ok=True)

    @property
    def plans_root(self) -> Path:
        return self.root / "plans"

    @property
    def audit_log_path(self) -> Path:
        return self.root / "audit_log.jsonl"

    def plan_dir(self, plan_id: str) -> Path:
        return self.plans_root / plan_id

    def save_plan(
        self, plan: SamplingPlan, sample: Sequence[Transaction]
    ) -> str:
        """Write a plan and all of its items, or nothing at all.

        Rows are written into a staging directory that is renamed into
        place once complete.

        :param plan: Plan to persist
        :param sample: Ordered sample belonging to the plan
        :return: Generated plan identifier
        """
        plan_id = uuid.uuid4().hex
        staging = self.plans_root / f".{plan_id}.staging"
        stored = plan.model_copy(update={"plan_id": plan_id})
        try:
            items = build_sample_items(
                plan_id, stored, sample, self.high_risk_threshold
            )
            staging.mkdir(parents=True)
            (staging / "plan.json").write_text(
                stored.model_dump_json(indent=2), encoding="utf-8"
            )
            with (staging / "items.jsonl").open(
                "w", encoding="utf-8"
            ) as handle:
                for item in items:
                    handle.write(item.model_dump_json())
                    handle.write("\n")
            staging.rename(self.plan_dir(plan_id))
        except (OSError, ValueError) as exc:
            shutil.rmtree(staging, ignore_errors=True)
            raise PersistenceError(
                "Failed to save sampling plan",
                details=f"{type(exc).__name__}: {exc}",
            ) from exc

        log.info(
            EventCode.PLAN_SAVED.value, plan_id=plan_id, items=len(items)
        )
        return plan_id

    def append_audit_log(self, entry: AuditLogEntry) -> None:
        with self.audit_log_path.open("a", encoding="utf-8") as handle:
            handle.write(entry.model_dump_json())
            handle.write("\n")

    def read_audit_log(self) -> list[AuditLogEntry]:
        """
        Read every audit log entry in write order.
        :return: Audit log entries
        """
        if not self.audit_log_path.exists():
            return []
        return [
            AuditLogEntry.model_validate_json(line)
            for line in self.audit_log_path.read_text(
                encoding="utf-8"
            ).splitlines()
            if line.strip()
        ]

    def list_plans(
        self, client_id: str, fiscal_year: int | None = None
    ) -> list[SamplingPlan]:
        """
        List saved plans of a client, newest first.
        :param client_id: Client whose plans are listed
        :param fiscal_year: Optional fiscal year filter
        :return: List of SamplingPlan objects
        """
        plans: list[SamplingPlan] = []
        for child in self.plans_root.iterdir():
            if not child.is_dir() or child.name.startswith("."):
                continue
            plan = self._read_plan(child)
            if plan.client_id != client_id:
                continue
            if fiscal_year is not None and plan.fiscal_year != fiscal_year:
                continue
            plans.append(plan)
        plans.sort(key=lambda p: p.generated_at, reverse=True)
        return plans

    def load_plan(self, plan_id: str) -> tuple[SamplingPlan, list[SampleItem]]:
        """
        Load a plan and its items ordered by transaction date.
        :param plan_id:
        :return: Plan and its sample items
        """
        path = self.plan_dir(plan_id)
        if not plan_id.isalnum() or not (path / "plan.json").exists():
            raise PlanNotFoundError(
                "Sampling plan not found", details=f"plan_id={plan_id}"
            )
        plan = self._read_plan(path)
        items = [
            SampleItem.model_validate_json(line)
            for line in (path / "items.jsonl")
            .read_text(encoding="utf-8")
            .splitlines()
            if line.strip()
        ]
        items.sort(key=lambda item: item.transaction_date)
        return plan, items

    @staticmethod
    def _read_plan(path: Path) -> SamplingPlan:
        try:
            return SamplingPlan.model_validate_json(
                (path / "plan.json").read_text(encoding="utf-8")
            )
        except (OSError, ValidationError) as exc:
            raise PersistenceError(
                "Stored sampling plan is unreadable",
                details=f"{path}: {exc}",
            ) from exc
