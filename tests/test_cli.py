from datetime import date
import json
import os
from pathlib import Path
import subprocess
import sys

from qcreport.main import parse_args


def _base_env(tmp_path: Path) -> dict[str, str]:
    env = os.environ.copy()
    env["DATABASE_URL"] = f"sqlite:///{tmp_path / 'cli.db'}"
    env["INPUT_DIR"] = str(tmp_path / "data" / "checklists")
    env["OUTPUT_DIR"] = str(tmp_path / "outputs")
    env["MAX_FETCH_RETRIES"] = "0"
    env["RETRY_BACKOFF_SECONDS"] = "0"
    return env


def _run_cli(tmp_path: Path, *args: str) -> subprocess.CompletedProcess[str]:
    return subprocess.run(
        [sys.executable, "-m", "qcreport.main", *args],
        cwd=Path(__file__).resolve().parents[1],
        env=_base_env(tmp_path),
        check=False,
        capture_output=True,
        text=True,
    )


def test_cli_returns_nonzero_on_report_failure(tmp_path: Path) -> None:
    (tmp_path / "data" / "checklists").mkdir(parents=True, exist_ok=True)
    # A regular file where the output directory should be.
    (tmp_path / "outputs").write_text("", encoding="utf-8")

    proc = _run_cli(tmp_path, "run", "--month", "6", "--year", "2025", "--run-key", "cli-2025-06")

    assert proc.returncode == 1
    assert "status=failed" in proc.stdout


def test_cli_returns_zero_on_success(tmp_path: Path) -> None:
    input_dir = tmp_path / "data" / "checklists"
    input_dir.mkdir(parents=True, exist_ok=True)

    input_file = input_dir / "checklist_footbath_control.jsonl"
    with input_file.open("w", encoding="utf-8") as outfile:
        outfile.write(json.dumps({"date_string": "JUN-05-2025", "measurements": [{"measurePpmValue": 150}]}))
        outfile.write("\n")

    proc = _run_cli(
        tmp_path,
        "run",
        "--month",
        "6",
        "--year",
        "2025",
        "--run-key",
        "cli-2025-06",
        "--trigger-source",
        "manual",
    )

    assert proc.returncode == 0
    assert "status=succeeded" in proc.stdout
    assert "total=1 not_comply=1" in proc.stdout
    assert (tmp_path / "outputs" / "reports" / "cli-2025-06.json").exists()


def test_parse_args_leaves_month_optional() -> None:
    args = parse_args(["run"])

    assert args.command == "run"
    assert args.month is None
    assert args.year is None
    assert args.trigger_source == "manual"


def test_cli_daily_summary(tmp_path: Path) -> None:
    input_dir = tmp_path / "data" / "checklists"
    input_dir.mkdir(parents=True, exist_ok=True)

    with (input_dir / "checklist_envtemp.jsonl").open("w", encoding="utf-8") as outfile:
        outfile.write(json.dumps({"date_string": "JUN-03-2025", "readings": [{"averageTemp": 58}]}))
        outfile.write("\n")
        outfile.write(json.dumps({"date_string": "JUN-04-2025", "readings": [{"averageTemp": 45}]}))
        outfile.write("\n")

    proc = _run_cli(tmp_path, "daily", "--date", "2025-06-03")

    assert proc.returncode == 0
    assert "run_key=daily-2025-06-03 kind=daily" in proc.stdout
    assert "total=1 not_comply=0 needs_review=1" in proc.stdout
    assert (tmp_path / "outputs" / "reports" / "daily-2025-06-03.json").exists()


def test_parse_args_daily_defaults_to_yesterday() -> None:
    args = parse_args(["daily"])

    assert args.command == "daily"
    assert args.date is None
    assert args.trigger_source == "manual"
    assert parse_args(["daily", "--date", "2025-06-03"]).date == date(2025, 6, 3)
