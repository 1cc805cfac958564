"""CLI entry point for the audit sampling engine."""

from __future__ import annotations

import argparse
import json
import sys
import time
from collections.abc import Sequence
from datetime import datetime, timezone
from pathlib import Path
from uuid import uuid4

from .config import EngineSettings
from .engine import SamplingOrchestrator, validate_request
from .errors import SamplingError, SamplingValidationError
from .ledger import PopulationQuery
from .logging_setup import configure_logging, get_logger
from .models import (
    EventCode,
    RiskLevel,
    RunSummary,
    SamplingMethod,
    TestType,
)


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments for the audit sampling CLI.

    Args:
        argv (Sequence[str] | None): Arguments to parse; ``sys.argv`` when
            omitted.

    Returns:
        argparse.Namespace: Parsed command-line namespace populated from CLI input.
    """

    parser = argparse.ArgumentParser(
        description="Audit sample sizing and selection",
    )
    parser.add_argument("--client-id", required=True, help="Client identifier")
    parser.add_argument(
        "--fiscal-year", type=int, required=True, help="Fiscal year to sample"
    )
    parser.add_argument(
        "--test-type",
        choices=[t.value for t in TestType],
        default=TestType.SUBSTANTIVE.value,
        help="Substantive (MUS sizing) or control (attribute sizing) test",
    )
    parser.add_argument(
        "--method",
        choices=[m.value for m in SamplingMethod],
        default=SamplingMethod.MUS.value,
        help="Selection algorithm",
    )
    parser.add_argument(
        "--population-size",
        type=int,
        default=None,
        help="Population item count; derived from the ledger if omitted",
    )
    parser.add_argument(
        "--population-sum",
        type=float,
        default=None,
        help="Sum of absolute amounts; derived from the ledger if omitted",
    )
    parser.add_argument("--materiality", type=float, default=None)
    parser.add_argument("--expected-misstatement", type=float, default=None)
    parser.add_argument(
        "--confidence",
        type=float,
        default=95.0,
        help="Confidence level in percent",
    )
    parser.add_argument(
        "--risk-level",
        choices=[r.value for r in RiskLevel],
        default=RiskLevel.MODERATE.value,
    )
    parser.add_argument(
        "--tolerable-deviation",
        type=float,
        default=None,
        help="Tolerable deviation rate in percent (control tests)",
    )
    parser.add_argument(
        "--expected-deviation",
        type=float,
        default=None,
        help="Expected deviation rate in percent (control tests)",
    )
    parser.add_argument(
        "--strata-bounds",
        type=float,
        nargs="+",
        default=[],
        help="Amount breakpoints for stratified sampling",
    )
    parser.add_argument(
        "--threshold",
        type=float,
        default=None,
        help="Amount tested at 100%% for threshold sampling",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Deterministic random seed; the current time if omitted",
    )
    parser.add_argument(
        "--high-risk-inclusion",
        action="store_true",
        help="Always include transactions with a high risk score",
    )
    parser.add_argument(
        "--standard-number",
        action="append",
        default=[],
        help="Restrict to accounts mapped to this standard number (repeatable)",
    )
    parser.add_argument(
        "--exclude-account",
        action="append",
        default=[],
        help="Account number to leave out of the population (repeatable)",
    )
    parser.add_argument("--version-id", default=None, help="Ledger version")
    parser.add_argument("--plan-name", default=None)
    parser.add_argument(
        "--save",
        action="store_true",
        help="Persist the plan, its items and an audit log entry",
    )
    parser.add_argument(
        "--ledger-dir",
        type=Path,
        default=None,
        help="Directory holding <client_id>.json ledger files",
    )
    parser.add_argument(
        "--data-dir",
        type=Path,
        default=None,
        help="Directory where saved plans are stored",
    )
    parser.add_argument(
        "--output-dir",
        type=Path,
        required=True,
        help="Directory where the sample JSON and run summary are written",
    )
    parser.add_argument(
        "--run-id",
        type=str,
        default=None,
        help="Optional run identifier; if omitted a UUID is generated",
    )
    return parser.parse_args(argv)


def build_settings(args: argparse.Namespace) -> EngineSettings:
    """Apply CLI directory overrides on top of environment settings."""

    settings = EngineSettings.from_env()
    overrides = {}
    if args.ledger_dir is not None:
        overrides["ledger_dir"] = args.ledger_dir
    if args.data_dir is not None:
        overrides["data_dir"] = args.data_dir
    return settings.model_copy(update=overrides)


def main(argv: Sequence[str] | None = None) -> int:
    """Run one sampling request from CLI parameters to JSON output.

    Returns:
        int: Process exit status code (0 indicates success).
    """

    args = parse_args(argv)
    run_id = args.run_id if args.run_id else str(uuid4())
    configure_logging(run_id)
    log = get_logger("main")

    orchestrator = SamplingOrchestrator.from_settings(build_settings(args))
    started = time.perf_counter()
    started_dt = datetime.now(timezone.utc)

    try:
        population_size = args.population_size
        population_sum = args.population_sum
        if population_size is None or population_sum is None:
            summary = orchestrator.population_summary(
                PopulationQuery(
                    client_id=args.client_id,
                    fiscal_year=args.fiscal_year,
                    excluded_account_numbers=args.exclude_account,
                    selected_standard_numbers=args.standard_number,
                    version_id=args.version_id,
                )
            )
            if population_size is None:
                population_size = summary.total_transactions
            if population_sum is None:
                population_sum = summary.total_amount

        request = validate_request(
            {
                "client_id": args.client_id,
                "fiscal_year": args.fiscal_year,
                "test_type": args.test_type,
                "method": args.method,
                "population_size": population_size,
                "population_sum": population_sum,
                "materiality": args.materiality,
                "expected_misstatement": args.expected_misstatement,
                "confidence_level": args.confidence,
                "risk_level": args.risk_level,
                "tolerable_deviation_rate": args.tolerable_deviation,
                "expected_deviation_rate": args.expected_deviation,
                "strata_bounds": args.strata_bounds,
                "threshold_amount": args.threshold,
                "seed": args.seed,
                "use_high_risk_inclusion": args.high_risk_inclusion,
                "save": args.save,
                "plan_name": args.plan_name,
                "selected_standard_numbers": args.standard_number,
                "excluded_account_numbers": args.exclude_account,
                "version_id": args.version_id,
            }
        )
        log.info(
            EventCode.RUN_START.value,
            parameters=request.model_dump(mode="json"),
        )
        sampling_start = time.perf_counter()
        result = orchestrator.run(request)
        sampling_seconds = time.perf_counter() - sampling_start
    except SamplingError as exc:
        log.error(exc.__class__.__name__, **exc.to_payload())
        print(f"Sampling failed: {exc.message} ({exc.details})", file=sys.stderr)
        return 1 if isinstance(exc, SamplingValidationError) else 2

    args.output_dir.mkdir(parents=True, exist_ok=True)
    output_path = args.output_dir / f"sample_{run_id}.json"
    output_path.write_text(
        result.model_dump_json(by_alias=True, indent=2), encoding="utf-8"
    )
    print(f"Sample written to: {output_path}")

    summary = RunSummary(
        run_id=run_id,
        started_at_utc=started_dt,
        finished_at_utc=datetime.now(timezone.utc),
        duration_seconds=round(time.perf_counter() - started, 2),
        sampling_seconds=round(sampling_seconds, 2),
        request=request.model_dump(mode="json"),
        plan=result.plan.summary().model_dump(mode="json"),
        sample_size=len(result.sample),
        output_json=str(output_path),
    )
    runs_dir = args.output_dir / "runs"
    runs_dir.mkdir(parents=True, exist_ok=True)
    summary_path = runs_dir / f"{run_id}.json"
    with open(summary_path, "w", encoding="utf-8") as f:
        json.dump(summary.model_dump(mode="json"), f, indent=2)
    log.info(EventCode.RUN_SUMMARY.value, path=str(summary_path))
    print(f"Summary written to: {summary_path}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
