from collections.abc import Generator
import json
from pathlib import Path

import pytest

from qcreport.config import Settings
from qcreport.db_models import build_session_factory
from qcreport.pipeline import ReportRunner


@pytest.fixture()
def temp_workspace(tmp_path: Path) -> Path:
    (tmp_path / "data" / "checklists").mkdir(parents=True, exist_ok=True)
    (tmp_path / "outputs").mkdir(parents=True, exist_ok=True)
    return tmp_path


@pytest.fixture()
def test_settings(temp_workspace: Path) -> Settings:
    return Settings(
        app_name="qcreport",
        database_url=f"sqlite:///{temp_workspace / 'test.db'}",
        log_level="INFO",
        input_dir=str(temp_workspace / "data" / "checklists"),
        output_dir=str(temp_workspace / "outputs"),
        max_fetch_retries=1,
        retry_backoff_seconds=0,
        max_workers=4,
        schedule_day=1,
        schedule_hour_utc=6,
        schedule_minute_utc=0,
        daily_hour_utc=12,
        daily_minute_utc=0,
        stale_run_minutes=60,
    )


@pytest.fixture()
def runner(test_settings: Settings) -> Generator[ReportRunner, None, None]:
    session_factory = build_session_factory(test_settings.database_url)
    yield ReportRunner(test_settings, session_factory)


@pytest.fixture()
def write_table(test_settings: Settings):
    def _write(type_id: str, rows: list[dict[str, object]]) -> Path:
        path = Path(test_settings.input_dir) / f"{type_id}.jsonl"
        with path.open("w", encoding="utf-8") as outfile:
            for row in rows:
                outfile.write(json.dumps(row))
                outfile.write("\n")
        return path

    return _write
