"""Tests for the command-line entry point."""

from __future__ import annotations

import json

import pytest

from audit_sampling.main import main, parse_args


@pytest.fixture()
def dirs(tmp_path, ledger_rows, monkeypatch):
    for env in (
        "AUDIT_SAMPLING_DATA_DIR",
        "AUDIT_SAMPLING_LEDGER_DIR",
        "AUDIT_SAMPLING_CACHE_TTL",
        "AUDIT_SAMPLING_HIGH_RISK_THRESHOLD",
    ):
        monkeypatch.delenv(env, raising=False)

    ledger_dir = tmp_path / "ledger"
    ledger_dir.mkdir()
    (ledger_dir / "C1.json").write_text(
        json.dumps([row.model_dump(mode="json") for row in ledger_rows]),
        encoding="utf-8",
    )
    return {
        "ledger": ledger_dir,
        "data": tmp_path / "data",
        "output": tmp_path / "out",
    }


def _argv(dirs, *extra: str) -> list[str]:
    return [
        "--client-id", "C1",
        "--fiscal-year", "2024",
        "--ledger-dir", str(dirs["ledger"]),
        "--data-dir", str(dirs["data"]),
        "--output-dir", str(dirs["output"]),
        "--run-id", "run-1",
        *extra,
    ]


def test_parse_args_defaults(tmp_path) -> None:
    args = parse_args(
        ["--client-id", "C1", "--fiscal-year", "2024", "--output-dir", str(tmp_path)]
    )
    assert args.method == "MUS"
    assert args.test_type == "SUBSTANTIVE"
    assert args.confidence == 95.0
    assert args.strata_bounds == []
    assert args.save is False


def test_run_writes_sample_and_summary(dirs) -> None:
    code = main(_argv(dirs, "--method", "SRS", "--seed", "7"))
    assert code == 0

    sample = json.loads((dirs["output"] / "sample_run-1.json").read_text())
    assert sample["plan"]["populationSize"] == 120
    assert sample["plan"]["actualSampleSize"] == 30
    assert len(sample["sample"]) == 30

    summary = json.loads((dirs["output"] / "runs" / "run-1.json").read_text())
    assert summary["run_id"] == "run-1"
    assert summary["sample_size"] == 30
    assert summary["plan"]["method"] == "SRS"


def test_run_is_reproducible(dirs) -> None:
    main(_argv(dirs, "--method", "SYSTEMATIC", "--seed", "99"))
    first = json.loads((dirs["output"] / "sample_run-1.json").read_text())
    main(_argv(dirs, "--method", "SYSTEMATIC", "--seed", "99"))
    second = json.loads((dirs["output"] / "sample_run-1.json").read_text())

    assert [t["id"] for t in first["sample"]] == [t["id"] for t in second["sample"]]


def test_save_persists_plan(dirs) -> None:
    code = main(
        _argv(
            dirs,
            "--method", "STRATIFIED",
            "--strata-bounds", "5000", "20000",
            "--seed", "3",
            "--save",
        )
    )
    assert code == 0

    plans = [p for p in (dirs["data"] / "plans").iterdir() if p.is_dir()]
    assert len(plans) == 1
    assert (plans[0] / "items.jsonl").exists()
    assert (dirs["data"] / "audit_log.jsonl").exists()


def test_validation_error_exit_code(dirs, capsys) -> None:
    code = main(
        _argv(
            dirs,
            "--test-type", "CONTROL",
            "--tolerable-deviation", "2",
            "--expected-deviation", "5",
        )
    )
    assert code == 1
    assert "Invalid sampling request" in capsys.readouterr().err
    assert not (dirs["output"] / "sample_run-1.json").exists()


def test_ledger_error_exit_code(dirs) -> None:
    (dirs["ledger"] / "C1.json").write_text("not json", encoding="utf-8")
    assert main(_argv(dirs)) == 2
